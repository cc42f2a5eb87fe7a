"""Data access layer for Inventra.

This module owns every structure that crosses the persistence boundary and
the helpers that move snapshots to and from disk. Business rules belong in
:mod:`inventra.core_logic`.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Entity store: the frozen row dataclasses and the :class:`Snapshot` that
   bundles them.
3. Durability gateway: persisting a whole snapshot as one workbook per key
   and exporting tabular reports.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_LOCATIONS,
    DEFAULT_SNAPSHOT_KEY,
    EXPECTED_SCHEMA_VERSION,
    Role,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"
WORKBOOK_SUFFIX = ".xlsx"


@dataclass(frozen=True)
class LocationRow:
    """A warehouse or store holding stock."""

    location_id: str
    name: str


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_dir: Path
    snapshot_key: str
    schema_version: str
    default_user: str
    default_role: Role
    locations: tuple[LocationRow, ...]
    unit_value: Decimal


@dataclass(frozen=True)
class ProductRow:
    """Catalog entry; immutable once created."""

    product_id: str
    name: str
    sku: str
    category: str
    uom: str
    reorder_threshold: Optional[int]
    created_at: datetime
    description: Optional[str] = None


@dataclass(frozen=True)
class InventoryRow:
    """On-hand quantity of one product at one location."""

    record_id: str
    product_id: str
    location_id: str
    quantity: int
    updated_at: datetime


@dataclass(frozen=True)
class AuditRow:
    """Append-only audit trail entry."""

    entry_id: str
    kind: str
    user: str
    timestamp: datetime
    details: str


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class OrderRow:
    """Fulfilled sales order with its source location."""

    order_id: str
    destination: str
    location_id: str
    lines: tuple[OrderLine, ...]
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class ReceiptRow:
    """Goods received against a purchase order."""

    receipt_id: str
    po_number: str
    product_id: str
    quantity: int
    location_id: str
    received_at: datetime


@dataclass(frozen=True)
class TransferRow:
    """Stock moved between two distinct locations."""

    transfer_id: str
    source_id: str
    destination_id: str
    product_id: str
    quantity: int
    reason: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class AdjustmentRow:
    """Manual quantity correction; ``approved_by`` is set for increases only."""

    adjustment_id: str
    product_id: str
    location_id: str
    quantity: int
    reason: str
    created_at: datetime
    approved_by: Optional[str] = None


@dataclass(frozen=True)
class AlertRow:
    """Low-stock alert captured at trigger time."""

    alert_id: str
    product_id: str
    location_id: str
    quantity: int
    threshold: int
    created_at: datetime
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None


@dataclass(frozen=True)
class FinancialRow:
    """Value impact of a single movement."""

    entry_id: str
    kind: str
    product_id: str
    unit_value: Decimal
    quantity: int
    total_value: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of every entity owned by the ledger.

    Collections are tuples in append order (oldest first). ``version`` grows
    by one each time a changed snapshot is persisted.
    """

    locations: tuple[LocationRow, ...] = ()
    products: tuple[ProductRow, ...] = ()
    inventory: tuple[InventoryRow, ...] = ()
    orders: tuple[OrderRow, ...] = ()
    receipts: tuple[ReceiptRow, ...] = ()
    transfers: tuple[TransferRow, ...] = ()
    adjustments: tuple[AdjustmentRow, ...] = ()
    alerts: tuple[AlertRow, ...] = ()
    audit: tuple[AuditRow, ...] = ()
    financials: tuple[FinancialRow, ...] = ()
    version: int = 0
    schema_version: str = field(default=EXPECTED_SCHEMA_VERSION)


class SnapshotGateway(Protocol):
    """Durable key-value store that treats a snapshot as one opaque blob."""

    def save(self, key: str, snapshot: Snapshot) -> None:
        ...

    def load(self, key: str) -> Optional[Snapshot]:
        ...


# Column layout for every sheet of a persisted snapshot workbook.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.META.value: ["Key", "Value"],
    SheetName.LOCATIONS.value: ["LocationID", "Name"],
    SheetName.PRODUCTS.value: [
        "ProductID",
        "Name",
        "SKU",
        "Category",
        "UOM",
        "ReorderThreshold",
        "CreatedAt",
        "Description",
    ],
    SheetName.INVENTORY.value: ["RecordID", "ProductID", "LocationID", "Quantity", "UpdatedAt"],
    SheetName.ORDERS.value: ["OrderID", "Destination", "LocationID", "CreatedBy", "CreatedAt"],
    SheetName.ORDER_LINES.value: ["OrderID", "LineNumber", "ProductID", "Quantity"],
    SheetName.RECEIPTS.value: ["ReceiptID", "PONumber", "ProductID", "Quantity", "LocationID", "ReceivedAt"],
    SheetName.TRANSFERS.value: [
        "TransferID",
        "SourceID",
        "DestinationID",
        "ProductID",
        "Quantity",
        "Reason",
        "CreatedAt",
    ],
    SheetName.ADJUSTMENTS.value: [
        "AdjustmentID",
        "ProductID",
        "LocationID",
        "Quantity",
        "Reason",
        "CreatedAt",
        "ApprovedBy",
    ],
    SheetName.ALERTS.value: [
        "AlertID",
        "ProductID",
        "LocationID",
        "Quantity",
        "Threshold",
        "CreatedAt",
        "Acknowledged",
        "AcknowledgedBy",
    ],
    SheetName.AUDIT.value: ["EntryID", "Kind", "User", "Timestamp", "Details"],
    SheetName.FINANCIALS.value: [
        "EntryID",
        "Kind",
        "ProductID",
        "UnitValue",
        "Quantity",
        "TotalValue",
        "Timestamp",
    ],
}


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls the ledger runtime.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the current
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` and ``[Defaults]`` are mandatory. ``[Locations]`` falls back
    to :data:`~inventra.constants.DEFAULT_LOCATIONS` and ``[Costing]`` to a
    unit value of one. Relative ``DataDir`` entries are anchored to
    ``base_path`` (or the current working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used as the anchor for relative
            ``DataDir`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If the default role or the unit value cannot be parsed.
    """

    try:
        data_dir_raw = parser.get("System", "DataDir")
        schema_version = parser.get("System", "SchemaVersion")
        default_user = parser.get("Defaults", "DefaultUser")
        default_role_raw = parser.get("Defaults", "DefaultRole")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    snapshot_key = parser.get("System", "SnapshotKey", fallback=DEFAULT_SNAPSHOT_KEY)

    try:
        default_role = Role(default_role_raw.strip())
    except ValueError as exc:
        raise ValueError(f"Unknown default role: {default_role_raw}") from exc

    unit_value_raw = parser.get("Costing", "UnitValue", fallback="1")
    try:
        unit_value = Decimal(unit_value_raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid unit value: {unit_value_raw}") from exc

    configured = []
    if parser.has_section("Locations"):
        configured = [
            LocationRow(location_id=location_id, name=name)
            for location_id, name in parser.items("Locations")
            if location_id not in parser.defaults()
        ]
    if configured:
        locations = tuple(configured)
    else:
        locations = tuple(LocationRow(location_id=lid, name=name) for lid, name in DEFAULT_LOCATIONS)

    data_dir = Path(data_dir_raw)
    if not data_dir.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_dir = (base_path / data_dir).resolve()

    return ConfigSettings(
        data_dir=data_dir,
        snapshot_key=snapshot_key,
        schema_version=schema_version,
        default_user=default_user,
        default_role=default_role,
        locations=locations,
        unit_value=unit_value,
    )


class WorkbookGateway:
    """Persist snapshots as ``<data_dir>/<key>.xlsx`` workbooks.

    Every save rewrites the whole workbook. The file is written next to the
    target first and then moved into place, so a reader never observes a
    half-written snapshot.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir).expanduser().resolve()

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key:
            raise ValueError(f"Invalid snapshot key: {key!r}")
        return self.data_dir / f"{key}{WORKBOOK_SUFFIX}"

    def save(self, key: str, snapshot: Snapshot) -> None:
        destination = self.path_for(key)
        workbook = build_snapshot_workbook(snapshot)
        save_workbook(workbook, destination)
        log.debug("Saved snapshot v%d under key '%s'", snapshot.version, key)

    def load(self, key: str) -> Optional[Snapshot]:
        source = self.path_for(key)
        if not source.exists():
            log.info("No snapshot stored under key '%s'", key)
            return None
        workbook = open_workbook(source)
        snapshot = read_snapshot_workbook(workbook)
        log.debug("Loaded snapshot v%d from key '%s'", snapshot.version, key)
        return snapshot


def open_workbook(data_file: Path) -> Workbook:
    """Open a workbook from disk.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, replacing any previous file.

    Parent directories are created on demand. The workbook is first written
    to a sibling temporary file which then replaces the destination.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    staging = dest.with_name(f".{dest.name}.tmp")
    workbook.save(staging)
    staging.replace(dest)


def new_workbook(sheet_columns: Mapping[str, Sequence[str]]) -> Workbook:
    """Create an empty workbook with bold header rows for each sheet."""

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font
    return workbook


def iter_sheet_rows(workbook: Workbook, sheet_name: str) -> Iterable[tuple]:
    """Yield the raw values of every non-empty data row in ``sheet_name``.

    Missing sheets yield nothing so that workbooks written by older schema
    versions still load.
    """

    if sheet_name not in workbook.sheetnames:
        return
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def build_snapshot_workbook(snapshot: Snapshot) -> Workbook:
    """Serialize every collection of ``snapshot`` into a fresh workbook."""

    workbook = new_workbook(SHEET_COLUMNS)

    meta = workbook[SheetName.META.value]
    meta.append(["SchemaVersion", snapshot.schema_version])
    meta.append(["SnapshotVersion", snapshot.version])

    sheets: List[tuple[SheetName, Iterable[list[object]]]] = [
        (SheetName.LOCATIONS, (serialize_location(r) for r in snapshot.locations)),
        (SheetName.PRODUCTS, (serialize_product(r) for r in snapshot.products)),
        (SheetName.INVENTORY, (serialize_inventory(r) for r in snapshot.inventory)),
        (SheetName.ORDERS, (serialize_order(r) for r in snapshot.orders)),
        (SheetName.ORDER_LINES, (line for r in snapshot.orders for line in serialize_order_lines(r))),
        (SheetName.RECEIPTS, (serialize_receipt(r) for r in snapshot.receipts)),
        (SheetName.TRANSFERS, (serialize_transfer(r) for r in snapshot.transfers)),
        (SheetName.ADJUSTMENTS, (serialize_adjustment(r) for r in snapshot.adjustments)),
        (SheetName.ALERTS, (serialize_alert(r) for r in snapshot.alerts)),
        (SheetName.AUDIT, (serialize_audit(r) for r in snapshot.audit)),
        (SheetName.FINANCIALS, (serialize_financial(r) for r in snapshot.financials)),
    ]
    for sheet_name, rows in sheets:
        sheet = workbook[sheet_name.value]
        for row in rows:
            sheet.append(row)
    return workbook


def read_snapshot_workbook(workbook: Workbook) -> Snapshot:
    """Rebuild a :class:`Snapshot` from a workbook written by this module."""

    meta = {str(key): value for key, value in iter_sheet_rows(workbook, SheetName.META.value)}

    lines_by_order: Dict[str, List[tuple[int, OrderLine]]] = {}
    for order_id, line_number, product_id, quantity in iter_sheet_rows(workbook, SheetName.ORDER_LINES.value):
        lines_by_order.setdefault(str(order_id), []).append(
            (int(line_number), OrderLine(product_id=str(product_id), quantity=int(quantity)))
        )

    orders = []
    for raw in iter_sheet_rows(workbook, SheetName.ORDERS.value):
        order_id = str(raw[0])
        lines = tuple(line for _, line in sorted(lines_by_order.get(order_id, []), key=lambda item: item[0]))
        orders.append(deserialize_order(raw, lines))

    return Snapshot(
        locations=tuple(deserialize_location(r) for r in iter_sheet_rows(workbook, SheetName.LOCATIONS.value)),
        products=tuple(deserialize_product(r) for r in iter_sheet_rows(workbook, SheetName.PRODUCTS.value)),
        inventory=tuple(deserialize_inventory(r) for r in iter_sheet_rows(workbook, SheetName.INVENTORY.value)),
        orders=tuple(orders),
        receipts=tuple(deserialize_receipt(r) for r in iter_sheet_rows(workbook, SheetName.RECEIPTS.value)),
        transfers=tuple(deserialize_transfer(r) for r in iter_sheet_rows(workbook, SheetName.TRANSFERS.value)),
        adjustments=tuple(deserialize_adjustment(r) for r in iter_sheet_rows(workbook, SheetName.ADJUSTMENTS.value)),
        alerts=tuple(deserialize_alert(r) for r in iter_sheet_rows(workbook, SheetName.ALERTS.value)),
        audit=tuple(deserialize_audit(r) for r in iter_sheet_rows(workbook, SheetName.AUDIT.value)),
        financials=tuple(deserialize_financial(r) for r in iter_sheet_rows(workbook, SheetName.FINANCIALS.value)),
        version=int(meta.get("SnapshotVersion") or 0),
        schema_version=str(meta.get("SchemaVersion") or EXPECTED_SCHEMA_VERSION),
    )


def export_tables(destination: Path, tables: Mapping[str, Sequence[Mapping[str, Any]]]) -> Path:
    """Write one sheet per table into a new workbook at ``destination``.

    Column headers are taken from the keys of the first row of each table,
    mirroring a CSV export. Empty tables produce a sheet without headers.

    Args:
        destination (Path): Target ``.xlsx`` file; overwritten when present.
        tables (Mapping[str, Sequence[Mapping[str, Any]]]): Sheet name to
            row dictionaries.

    Returns:
        Path: The resolved destination path.
    """

    columns = {name: list(rows[0].keys()) if rows else [] for name, rows in tables.items()}
    workbook = new_workbook(columns)
    for name, rows in tables.items():
        sheet = workbook[name]
        for row in rows:
            sheet.append([_to_cell(row.get(column)) for column in columns[name]])

    dest = Path(destination).expanduser().resolve()
    save_workbook(workbook, dest)
    log.info("Exported %d tables to '%s'", len(tables), dest)
    return dest


def _to_cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Role):
        return value.value
    return value


def _optional_str(value: object) -> Optional[str]:
    return str(value) if value is not None else None


def _parse_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _decimal(value: object) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def serialize_location(record: LocationRow) -> list[object]:
    return [record.location_id, record.name]


def deserialize_location(raw_row: Sequence[object]) -> LocationRow:
    return LocationRow(location_id=str(raw_row[0]), name=str(raw_row[1]))


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product into the ``Products`` column ordering."""

    return [
        record.product_id,
        record.name,
        record.sku,
        record.category,
        record.uom,
        record.reorder_threshold,
        record.created_at.isoformat(),
        record.description,
    ]


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw ``Products`` row into a :class:`ProductRow`.

    Identifier and text fields are coerced to ``str`` so that values Excel
    interprets as numbers (a numeric SKU, for example) round-trip as text.
    """

    product_id, name, sku, category, uom, threshold, created_at, description = raw_row
    return ProductRow(
        product_id=str(product_id),
        name=str(name),
        sku=str(sku),
        category=str(category),
        uom=str(uom),
        reorder_threshold=int(threshold) if threshold is not None else None,
        created_at=_parse_timestamp(created_at),
        description=_optional_str(description),
    )


def serialize_inventory(record: InventoryRow) -> list[object]:
    return [record.record_id, record.product_id, record.location_id, record.quantity, record.updated_at.isoformat()]


def deserialize_inventory(raw_row: Sequence[object]) -> InventoryRow:
    record_id, product_id, location_id, quantity, updated_at = raw_row
    return InventoryRow(
        record_id=str(record_id),
        product_id=str(product_id),
        location_id=str(location_id),
        quantity=int(quantity or 0),
        updated_at=_parse_timestamp(updated_at),
    )


def serialize_order(record: OrderRow) -> list[object]:
    return [record.order_id, record.destination, record.location_id, record.created_by, record.created_at.isoformat()]


def serialize_order_lines(record: OrderRow) -> list[list[object]]:
    """Flatten the lines of an order into ``OrderLines`` rows."""

    return [
        [record.order_id, number, line.product_id, line.quantity]
        for number, line in enumerate(record.lines, start=1)
    ]


def deserialize_order(raw_row: Sequence[object], lines: tuple[OrderLine, ...]) -> OrderRow:
    order_id, destination, location_id, created_by, created_at = raw_row
    return OrderRow(
        order_id=str(order_id),
        destination=str(destination),
        location_id=str(location_id),
        lines=lines,
        created_by=str(created_by),
        created_at=_parse_timestamp(created_at),
    )


def serialize_receipt(record: ReceiptRow) -> list[object]:
    return [
        record.receipt_id,
        record.po_number,
        record.product_id,
        record.quantity,
        record.location_id,
        record.received_at.isoformat(),
    ]


def deserialize_receipt(raw_row: Sequence[object]) -> ReceiptRow:
    receipt_id, po_number, product_id, quantity, location_id, received_at = raw_row
    return ReceiptRow(
        receipt_id=str(receipt_id),
        po_number=str(po_number),
        product_id=str(product_id),
        quantity=int(quantity),
        location_id=str(location_id),
        received_at=_parse_timestamp(received_at),
    )


def serialize_transfer(record: TransferRow) -> list[object]:
    return [
        record.transfer_id,
        record.source_id,
        record.destination_id,
        record.product_id,
        record.quantity,
        record.reason,
        record.created_at.isoformat(),
    ]


def deserialize_transfer(raw_row: Sequence[object]) -> TransferRow:
    transfer_id, source_id, destination_id, product_id, quantity, reason, created_at = raw_row
    return TransferRow(
        transfer_id=str(transfer_id),
        source_id=str(source_id),
        destination_id=str(destination_id),
        product_id=str(product_id),
        quantity=int(quantity),
        reason=_optional_str(reason),
        created_at=_parse_timestamp(created_at),
    )


def serialize_adjustment(record: AdjustmentRow) -> list[object]:
    return [
        record.adjustment_id,
        record.product_id,
        record.location_id,
        record.quantity,
        record.reason,
        record.created_at.isoformat(),
        record.approved_by,
    ]


def deserialize_adjustment(raw_row: Sequence[object]) -> AdjustmentRow:
    adjustment_id, product_id, location_id, quantity, reason, created_at, approved_by = raw_row
    return AdjustmentRow(
        adjustment_id=str(adjustment_id),
        product_id=str(product_id),
        location_id=str(location_id),
        quantity=int(quantity),
        reason=str(reason) if reason is not None else "",
        created_at=_parse_timestamp(created_at),
        approved_by=_optional_str(approved_by),
    )


def serialize_alert(record: AlertRow) -> list[object]:
    return [
        record.alert_id,
        record.product_id,
        record.location_id,
        record.quantity,
        record.threshold,
        record.created_at.isoformat(),
        record.acknowledged,
        record.acknowledged_by,
    ]


def deserialize_alert(raw_row: Sequence[object]) -> AlertRow:
    alert_id, product_id, location_id, quantity, threshold, created_at, acknowledged, acknowledged_by = raw_row
    return AlertRow(
        alert_id=str(alert_id),
        product_id=str(product_id),
        location_id=str(location_id),
        quantity=int(quantity),
        threshold=int(threshold),
        created_at=_parse_timestamp(created_at),
        acknowledged=bool(acknowledged),
        acknowledged_by=_optional_str(acknowledged_by),
    )


def serialize_audit(record: AuditRow) -> list[object]:
    return [record.entry_id, record.kind, record.user, record.timestamp.isoformat(), record.details]


def deserialize_audit(raw_row: Sequence[object]) -> AuditRow:
    entry_id, kind, user, timestamp, details = raw_row
    return AuditRow(
        entry_id=str(entry_id),
        kind=str(kind),
        user=str(user) if user is not None else "",
        timestamp=_parse_timestamp(timestamp),
        details=str(details) if details is not None else "",
    )


def serialize_financial(record: FinancialRow) -> list[object]:
    """Convert a financial entry into the ``Financials`` column ordering.

    Monetary fields remain :class:`~decimal.Decimal` instances so the
    workbook stores them as numbers.
    """

    return [
        record.entry_id,
        record.kind,
        record.product_id,
        record.unit_value,
        record.quantity,
        record.total_value,
        record.timestamp.isoformat(),
    ]


def deserialize_financial(raw_row: Sequence[object]) -> FinancialRow:
    entry_id, kind, product_id, unit_value, quantity, total_value, timestamp = raw_row
    return FinancialRow(
        entry_id=str(entry_id),
        kind=str(kind),
        product_id=str(product_id),
        unit_value=_decimal(unit_value),
        quantity=int(quantity or 0),
        total_value=_decimal(total_value),
        timestamp=_parse_timestamp(timestamp),
    )
