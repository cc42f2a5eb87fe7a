"""Ledger engine for Inventra.

This module is the only place where the entity store changes. Every intent,
whether a primitive action such as :class:`ApplyDelta` or a business command
such as :class:`OrderCommand`, flows through :func:`transition`, which is
pure and returns the next :class:`~inventra.data_manager.Snapshot`.
:func:`dispatch` persists the result through the durability gateway before it
becomes the current snapshot of a :class:`RuntimeContext`.

Business commands are validated up front by their orchestrator, which then
emits a :class:`TransitionBatch` of primitive actions. The batch is folded
over the immutable snapshot, so a failure at any step leaves the caller's
snapshot untouched and multi-leg operations apply all-or-nothing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, AuditKind, MovementKind, Role
from .costing import DEFAULT_COSTING, CostingStrategy, FixedUnitCost
from .data_manager import (
    AdjustmentRow,
    AlertRow,
    AuditRow,
    FinancialRow,
    InventoryRow,
    LocationRow,
    OrderLine,
    OrderRow,
    ProductRow,
    ReceiptRow,
    Snapshot,
    TransferRow,
)


TWO_PLACES = Decimal("0.01")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product, location, or alert is unknown."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised when a required field is missing, empty, or malformed."""


class DuplicateSkuError(BusinessRuleViolation):
    """Raised when a SKU collides case-insensitively with an existing product."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a deduction exceeds the on-hand quantity at a location."""


class NegativeStockError(BusinessRuleViolation):
    """Raised when a delta would drive an on-hand quantity below zero."""


class InvalidTransferError(BusinessRuleViolation):
    """Raised when a transfer names the same source and destination."""


class UnauthorizedError(BusinessRuleViolation):
    """Raised when a role may not perform the requested operation."""


@dataclass
class RuntimeContext:
    """Configuration, gateway, and the current snapshot used by the engine."""

    settings: data_manager.ConfigSettings
    gateway: data_manager.SnapshotGateway
    snapshot: Snapshot
    costing: CostingStrategy = field(default=DEFAULT_COSTING)


# ---------------------------------------------------------------------------
# Primitive actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AddProduct:
    """Register ``product`` and open a zero-quantity record at every location."""

    product: ProductRow
    user: str


@dataclass(frozen=True)
class ApplyDelta:
    """Change the on-hand quantity of one product at one location."""

    product_id: str
    location_id: str
    delta: int
    user: str
    timestamp: datetime


@dataclass(frozen=True)
class CheckReorderThreshold:
    """Raise a low-stock alert if the current quantity is below threshold."""

    product_id: str
    location_id: str
    timestamp: datetime


@dataclass(frozen=True)
class AcknowledgeAlert:
    alert_id: str
    user: str
    timestamp: datetime


@dataclass(frozen=True)
class AppendAudit:
    entry: AuditRow


@dataclass(frozen=True)
class AppendFinancial:
    entry: FinancialRow


@dataclass(frozen=True)
class AppendOrder:
    order: OrderRow


@dataclass(frozen=True)
class AppendReceipt:
    receipt: ReceiptRow


@dataclass(frozen=True)
class AppendTransfer:
    transfer: TransferRow


@dataclass(frozen=True)
class AppendAdjustment:
    adjustment: AdjustmentRow


Action = Union[
    AddProduct,
    ApplyDelta,
    CheckReorderThreshold,
    AcknowledgeAlert,
    AppendAudit,
    AppendFinancial,
    AppendOrder,
    AppendReceipt,
    AppendTransfer,
    AppendAdjustment,
]


# ---------------------------------------------------------------------------
# Business commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateProductCommand:
    """User intent for registering a catalog product."""

    name: str
    sku: str
    category: str
    uom: str
    user: str
    reorder_threshold: Optional[int] = None
    description: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class StockUpdateCommand:
    """User intent for a direct, signed stock edit at one location."""

    product_id: str
    location_id: str
    delta: int
    user: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class OrderCommand:
    """User intent for fulfilling a sales order from ``location_id``."""

    destination: str
    location_id: str
    lines: tuple[OrderLine, ...]
    user: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ReceiptCommand:
    """User intent for recording goods received against a purchase order."""

    po_number: str
    product_id: str
    location_id: str
    quantity: int
    user: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TransferCommand:
    """User intent for moving stock between two locations."""

    product_id: str
    source_id: str
    destination_id: str
    quantity: int
    user: str
    reason: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class AdjustmentCommand:
    """User intent for a manual quantity correction."""

    product_id: str
    location_id: str
    delta: int
    reason: str
    user: str
    role: Role
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class AcknowledgeAlertCommand:
    alert_id: str
    user: str
    timestamp: Optional[datetime] = None


Command = Union[
    CreateProductCommand,
    StockUpdateCommand,
    OrderCommand,
    ReceiptCommand,
    TransferCommand,
    AdjustmentCommand,
    AcknowledgeAlertCommand,
]


@dataclass
class TransitionBatch:
    """Ordered primitive actions that commit as a single transition.

    ``commit`` folds every action over the supplied snapshot and returns the
    final result. Because snapshots are immutable, an exception raised by any
    action discards the partial results and leaves the input untouched.
    """

    actions: List[Action] = field(default_factory=list)

    def add(self, action: Action) -> "TransitionBatch":
        self.actions.append(action)
        return self

    def commit(self, snapshot: Snapshot) -> Snapshot:
        result = snapshot
        for action in self.actions:
            result = apply_action(result, action)
        return result


@dataclass(frozen=True)
class TurnoverRow:
    """Inventory turnover of one product over a reporting window."""

    product_id: str
    sku: str
    product: str
    cogs: Decimal
    average_inventory: Decimal
    turnover: Decimal


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Resolve optional timestamps into timezone-aware values.

    Args:
        candidate (datetime | None): Caller-provided timestamp, usually sourced
            from a command object. Naive values are interpreted as UTC.

    Returns:
        datetime: ``candidate`` when provided, otherwise the current UTC
            datetime generated via :func:`datetime.now`.
    """

    if candidate is None:
        return datetime.now(UTC)
    if candidate.tzinfo is None:
        return candidate.replace(tzinfo=UTC)
    return candidate


def generate_entity_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable, collision-resistant identifier.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSS}-{8 hex chars}``.

    The timestamp part keeps identifiers roughly chronological; the random
    suffix keeps entities created within one batch distinct.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}"


def _audit(kind: AuditKind, user: str, timestamp: datetime, details: str) -> AuditRow:
    return AuditRow(
        entry_id=generate_entity_id("A", when=timestamp),
        kind=kind.value,
        user=user,
        timestamp=timestamp,
        details=details,
    )


# ---------------------------------------------------------------------------
# Lookups and guards
# ---------------------------------------------------------------------------


def get_product(snapshot: Snapshot, product_id: str) -> ProductRow:
    """Resolve a product by identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is not in the catalog.
    """
    for product in snapshot.products:
        if product.product_id == product_id:
            return product
    log.warning("Product lookup failed for id '%s'", product_id)
    raise MissingReferenceError(f"Unknown product id: {product_id}")


def get_location(snapshot: Snapshot, location_id: str) -> LocationRow:
    """Resolve a location by identifier.

    Raises:
        MissingReferenceError: If ``location_id`` was not established at
            bootstrap.
    """
    for location in snapshot.locations:
        if location.location_id == location_id:
            return location
    log.warning("Location lookup failed for id '%s'", location_id)
    raise MissingReferenceError(f"Unknown location id: {location_id}")


def get_alert(snapshot: Snapshot, alert_id: str) -> AlertRow:
    for alert in snapshot.alerts:
        if alert.alert_id == alert_id:
            return alert
    log.warning("Alert lookup failed for id '%s'", alert_id)
    raise MissingReferenceError(f"Unknown alert id: {alert_id}")


def find_inventory_record(snapshot: Snapshot, product_id: str, location_id: str) -> Optional[InventoryRow]:
    for record in snapshot.inventory:
        if record.product_id == product_id and record.location_id == location_id:
            return record
    return None


def get_on_hand(snapshot: Snapshot, product_id: str, location_id: str) -> int:
    """Return the on-hand quantity, or zero when no record exists."""
    record = find_inventory_record(snapshot, product_id, location_id)
    return record.quantity if record is not None else 0


def require_text(value: Optional[str], field_name: str) -> str:
    """Validate that a required text field is present and non-blank.

    Returns:
        str: ``value`` stripped of surrounding whitespace.

    Raises:
        ValidationError: If ``value`` is ``None`` or blank.
    """
    if value is None or not str(value).strip():
        log.error("Validation failed: %s is required", field_name)
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def _require_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        log.error("Validation failed: %s must be an integer, got %r", field_name, value)
        raise ValidationError(f"{field_name} must be an integer")
    return value


def require_positive_quantity(quantity: Any, field_name: str = "quantity") -> int:
    """Validate that a quantity is a strictly positive integer.

    Decreases are expressed by the orchestrators as negative deltas, so
    callers always submit positive magnitudes here.

    Raises:
        ValidationError: If ``quantity`` is not an integer or is below one.
    """
    quantity = _require_int(quantity, field_name)
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError(f"{field_name} must be greater than zero")
    return quantity


def require_nonzero_delta(delta: Any) -> int:
    delta = _require_int(delta, "delta")
    if delta == 0:
        log.error("Delta validation failed: zero change requested")
        raise ValidationError("delta must be non-zero")
    return delta


def require_role(role: Any) -> Role:
    """Coerce ``role`` into the fixed :class:`Role` set."""
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError as exc:
        log.error("Unknown role supplied: %r", role)
        raise ValidationError(f"Unknown role: {role}") from exc


def _check_duplicate_sku(snapshot: Snapshot, sku: str) -> None:
    needle = sku.lower()
    if any(product.sku.lower() == needle for product in snapshot.products):
        log.warning("Duplicate SKU rejected: '%s'", sku)
        raise DuplicateSkuError(f"SKU must be unique: {sku}")


# ---------------------------------------------------------------------------
# Movement engine and alert derivation
# ---------------------------------------------------------------------------


def apply_delta(
    snapshot: Snapshot,
    product_id: str,
    location_id: str,
    delta: int,
    user: str,
    *,
    timestamp: datetime,
) -> Snapshot:
    """Apply a signed quantity change to a single inventory record.

    The orchestrators validate stock before building their batches; the
    check is repeated here because this is the only code path that writes
    quantities. Alerts and financial entries are not produced: a transfer
    leg is not a sale, so callers decide which side effects apply.

    Args:
        snapshot (Snapshot): Snapshot to derive from.
        product_id (str): Product whose stock changes.
        location_id (str): Location holding the record.
        delta (int): Signed change in units.
        user (str): Acting user written to the audit trail.
        timestamp (datetime): Time recorded on the record and audit entry.

    Returns:
        Snapshot: New snapshot with the updated record and a ``stock_update``
            audit entry appended.

    Raises:
        MissingReferenceError: If no record exists for the pair.
        NegativeStockError: If the resulting quantity would be negative.
    """
    record = find_inventory_record(snapshot, product_id, location_id)
    if record is None:
        log.warning("No inventory record for product '%s' at '%s'", product_id, location_id)
        raise MissingReferenceError(f"No inventory record for {product_id} @ {location_id}")

    new_quantity = record.quantity + delta
    if new_quantity < 0:
        log.warning(
            "Negative stock rejected for product '%s' at '%s' (on hand=%d, delta=%d)",
            product_id,
            location_id,
            record.quantity,
            delta,
        )
        raise NegativeStockError(
            f"Negative stock not allowed: {product_id} @ {location_id} has {record.quantity}, delta {delta}"
        )

    updated = replace(record, quantity=new_quantity, updated_at=timestamp)
    inventory = tuple(updated if item is record else item for item in snapshot.inventory)
    entry = _audit(
        AuditKind.STOCK_UPDATE,
        user,
        timestamp,
        f"delta {delta:+d} product {product_id} @ {location_id}",
    )
    return replace(snapshot, inventory=inventory, audit=snapshot.audit + (entry,))


def evaluate_reorder_alert(
    snapshot: Snapshot,
    product_id: str,
    location_id: str,
    *,
    timestamp: datetime,
) -> Optional[AlertRow]:
    """Return a new alert when the product is below its reorder threshold.

    Products without a threshold never alert. Open alerts for the same
    product and location are not consulted; every qualifying call yields a
    fresh alert.
    """
    product = get_product(snapshot, product_id)
    if product.reorder_threshold is None:
        return None
    quantity = get_on_hand(snapshot, product_id, location_id)
    if product.reorder_threshold <= quantity:
        return None
    return AlertRow(
        alert_id=generate_entity_id("L", when=timestamp),
        product_id=product_id,
        location_id=location_id,
        quantity=quantity,
        threshold=product.reorder_threshold,
        created_at=timestamp,
    )


def _add_product(snapshot: Snapshot, action: AddProduct) -> Snapshot:
    product = action.product
    _check_duplicate_sku(snapshot, product.sku)
    records = tuple(
        InventoryRow(
            record_id=generate_entity_id("I", when=product.created_at),
            product_id=product.product_id,
            location_id=location.location_id,
            quantity=0,
            updated_at=product.created_at,
        )
        for location in snapshot.locations
    )
    entry = _audit(
        AuditKind.PRODUCT,
        action.user,
        product.created_at,
        f"Added product {product.product_id} ({product.sku})",
    )
    return replace(
        snapshot,
        products=snapshot.products + (product,),
        inventory=snapshot.inventory + records,
        audit=snapshot.audit + (entry,),
    )


def _acknowledge(snapshot: Snapshot, action: AcknowledgeAlert) -> Snapshot:
    alert = get_alert(snapshot, action.alert_id)
    if alert.acknowledged:
        log.debug("Alert '%s' already acknowledged", alert.alert_id)
        return snapshot
    acknowledged = replace(alert, acknowledged=True, acknowledged_by=action.user)
    alerts = tuple(acknowledged if item is alert else item for item in snapshot.alerts)
    entry = _audit(AuditKind.ACK_ALERT, action.user, action.timestamp, f"Ack {alert.alert_id}")
    return replace(snapshot, alerts=alerts, audit=snapshot.audit + (entry,))


def _check_reorder(snapshot: Snapshot, action: CheckReorderThreshold) -> Snapshot:
    alert = evaluate_reorder_alert(snapshot, action.product_id, action.location_id, timestamp=action.timestamp)
    if alert is None:
        return snapshot
    log.info(
        "Low stock alert '%s' for product '%s' at '%s' (quantity=%d, threshold=%d)",
        alert.alert_id,
        alert.product_id,
        alert.location_id,
        alert.quantity,
        alert.threshold,
    )
    return replace(snapshot, alerts=snapshot.alerts + (alert,))


def apply_action(snapshot: Snapshot, action: Any) -> Snapshot:
    """Apply one primitive action and return the next snapshot.

    Unrecognized actions return ``snapshot`` itself so callers can detect a
    no-op with an identity check.
    """
    if isinstance(action, ApplyDelta):
        return apply_delta(
            snapshot,
            action.product_id,
            action.location_id,
            action.delta,
            action.user,
            timestamp=action.timestamp,
        )
    if isinstance(action, CheckReorderThreshold):
        return _check_reorder(snapshot, action)
    if isinstance(action, AddProduct):
        return _add_product(snapshot, action)
    if isinstance(action, AcknowledgeAlert):
        return _acknowledge(snapshot, action)
    if isinstance(action, AppendAudit):
        return replace(snapshot, audit=snapshot.audit + (action.entry,))
    if isinstance(action, AppendFinancial):
        return replace(snapshot, financials=snapshot.financials + (action.entry,))
    if isinstance(action, AppendOrder):
        return replace(snapshot, orders=snapshot.orders + (action.order,))
    if isinstance(action, AppendReceipt):
        return replace(snapshot, receipts=snapshot.receipts + (action.receipt,))
    if isinstance(action, AppendTransfer):
        return replace(snapshot, transfers=snapshot.transfers + (action.transfer,))
    if isinstance(action, AppendAdjustment):
        return replace(snapshot, adjustments=snapshot.adjustments + (action.adjustment,))

    log.debug("Ignoring unrecognized intent %s", type(action).__name__)
    return snapshot


# ---------------------------------------------------------------------------
# Orchestrators
# ---------------------------------------------------------------------------


def _financial_entry(
    kind: MovementKind,
    product_id: str,
    unit_value: Decimal,
    quantity: int,
    timestamp: datetime,
) -> FinancialRow:
    return FinancialRow(
        entry_id=generate_entity_id("F", when=timestamp),
        kind=kind.value,
        product_id=product_id,
        unit_value=unit_value,
        quantity=quantity,
        total_value=unit_value * quantity,
        timestamp=timestamp,
    )


def plan_create_product(snapshot: Snapshot, command: CreateProductCommand, costing: CostingStrategy) -> TransitionBatch:
    """Validate a product registration and plan its :class:`AddProduct` action.

    Raises:
        ValidationError: If name, SKU, category, or unit of measure is blank,
            or the reorder threshold is negative.
        DuplicateSkuError: If the SKU matches an existing one ignoring case.
    """
    name = require_text(command.name, "name")
    sku = require_text(command.sku, "sku")
    category = require_text(command.category, "category")
    uom = require_text(command.uom, "uom")
    threshold = command.reorder_threshold
    if threshold is not None:
        threshold = _require_int(threshold, "reorder_threshold")
        if threshold < 0:
            log.error("Reorder threshold validation failed: %s", threshold)
            raise ValidationError("reorder_threshold must be zero or positive")
    _check_duplicate_sku(snapshot, sku)

    timestamp = _resolve_timestamp(command.timestamp)
    product = ProductRow(
        product_id=generate_entity_id("P", when=timestamp),
        name=name,
        sku=sku,
        category=category,
        uom=uom,
        reorder_threshold=threshold,
        created_at=timestamp,
        description=(command.description or "").strip() or None,
    )
    return TransitionBatch().add(AddProduct(product=product, user=command.user))


def plan_stock_update(snapshot: Snapshot, command: StockUpdateCommand, costing: CostingStrategy) -> TransitionBatch:
    """Validate a direct stock edit.

    Raises:
        MissingReferenceError: If the product or location is unknown.
        ValidationError: If ``delta`` is zero or not an integer.
        NegativeStockError: If the edit would drive stock below zero.
    """
    get_product(snapshot, command.product_id)
    get_location(snapshot, command.location_id)
    delta = require_nonzero_delta(command.delta)
    on_hand = get_on_hand(snapshot, command.product_id, command.location_id)
    if on_hand + delta < 0:
        log.warning(
            "Stock update rejected for product '%s' at '%s' (on hand=%d, delta=%d)",
            command.product_id,
            command.location_id,
            on_hand,
            delta,
        )
        raise NegativeStockError("Negative stock not allowed")

    timestamp = _resolve_timestamp(command.timestamp)
    batch = TransitionBatch().add(
        ApplyDelta(command.product_id, command.location_id, delta, command.user, timestamp)
    )
    if delta < 0:
        batch.add(CheckReorderThreshold(command.product_id, command.location_id, timestamp))
    return batch


def plan_order(snapshot: Snapshot, command: OrderCommand, costing: CostingStrategy) -> TransitionBatch:
    """Validate every order line, then plan the deductions and COGS entries.

    Validation completes before any action is planned: if one line lacks
    stock at the source location the whole order is rejected. Lines naming
    the same product are checked against their combined quantity.

    Args:
        snapshot (Snapshot): Snapshot the order is validated against.
        command (OrderCommand): Destination, source location, and lines.
        costing (CostingStrategy): Supplies the COGS unit value.

    Returns:
        TransitionBatch: Per line a deduction, a reorder check, and an
            ``order_cogs`` entry, followed by the order record and its audit
            entry.

    Raises:
        ValidationError: If the destination is blank, there are no lines, or
            a line quantity is below one.
        MissingReferenceError: If the location or a product is unknown.
        InsufficientStockError: If any product lacks stock at the source.
    """
    destination = require_text(command.destination, "destination")
    get_location(snapshot, command.location_id)
    if not command.lines:
        log.error("Order validation failed: no lines supplied")
        raise ValidationError("Order requires at least one line")

    requested: Dict[str, int] = {}
    for line in command.lines:
        get_product(snapshot, line.product_id)
        quantity = require_positive_quantity(line.quantity)
        requested[line.product_id] = requested.get(line.product_id, 0) + quantity

    for product_id, quantity in requested.items():
        on_hand = get_on_hand(snapshot, product_id, command.location_id)
        if on_hand < quantity:
            log.warning(
                "Order rejected: product '%s' at '%s' has %d, requested %d",
                product_id,
                command.location_id,
                on_hand,
                quantity,
            )
            raise InsufficientStockError(f"Insufficient stock for {product_id}: have {on_hand}, need {quantity}")

    timestamp = _resolve_timestamp(command.timestamp)
    batch = TransitionBatch()
    for line in command.lines:
        unit_value = costing.unit_value(line.product_id, MovementKind.ORDER_COGS)
        batch.add(ApplyDelta(line.product_id, command.location_id, -line.quantity, command.user, timestamp))
        batch.add(CheckReorderThreshold(line.product_id, command.location_id, timestamp))
        batch.add(
            AppendFinancial(
                _financial_entry(MovementKind.ORDER_COGS, line.product_id, unit_value, -line.quantity, timestamp)
            )
        )

    order = OrderRow(
        order_id=generate_entity_id("O", when=timestamp),
        destination=destination,
        location_id=command.location_id,
        lines=tuple(command.lines),
        created_by=command.user,
        created_at=timestamp,
    )
    batch.add(AppendOrder(order))
    batch.add(
        AppendAudit(
            _audit(
                AuditKind.ORDER,
                command.user,
                timestamp,
                f"Order {order.order_id} to {destination} from {command.location_id} ({len(order.lines)} lines)",
            )
        )
    )
    return batch


def plan_receipt(snapshot: Snapshot, command: ReceiptCommand, costing: CostingStrategy) -> TransitionBatch:
    """Validate a goods receipt and plan the stock increase and receipt entry."""
    po_number = require_text(command.po_number, "po_number")
    get_product(snapshot, command.product_id)
    get_location(snapshot, command.location_id)
    quantity = require_positive_quantity(command.quantity)

    timestamp = _resolve_timestamp(command.timestamp)
    unit_value = costing.unit_value(command.product_id, MovementKind.RECEIPT)
    receipt = ReceiptRow(
        receipt_id=generate_entity_id("R", when=timestamp),
        po_number=po_number,
        product_id=command.product_id,
        quantity=quantity,
        location_id=command.location_id,
        received_at=timestamp,
    )
    return (
        TransitionBatch()
        .add(AppendReceipt(receipt))
        .add(ApplyDelta(command.product_id, command.location_id, quantity, command.user, timestamp))
        .add(AppendFinancial(_financial_entry(MovementKind.RECEIPT, command.product_id, unit_value, quantity, timestamp)))
        .add(
            AppendAudit(
                _audit(
                    AuditKind.RECEIPT,
                    command.user,
                    timestamp,
                    f"Receipt {receipt.receipt_id} PO {po_number}: {quantity} x {command.product_id} @ {command.location_id}",
                )
            )
        )
    )


def plan_transfer(snapshot: Snapshot, command: TransferCommand, costing: CostingStrategy) -> TransitionBatch:
    """Validate a transfer and plan both legs as one batch.

    The financial entry is always zero-valued: moving stock between
    locations neither creates nor consumes value.

    Raises:
        InvalidTransferError: If source and destination are identical.
        InsufficientStockError: If the source holds less than ``quantity``.
        MissingReferenceError: If the product or either location is unknown.
        ValidationError: If ``quantity`` is below one.
    """
    get_product(snapshot, command.product_id)
    get_location(snapshot, command.source_id)
    get_location(snapshot, command.destination_id)
    if command.source_id == command.destination_id:
        log.warning("Transfer rejected: source and destination are both '%s'", command.source_id)
        raise InvalidTransferError("Source and destination must differ")
    quantity = require_positive_quantity(command.quantity)
    on_hand = get_on_hand(snapshot, command.product_id, command.source_id)
    if on_hand < quantity:
        log.warning(
            "Transfer rejected: product '%s' at '%s' has %d, requested %d",
            command.product_id,
            command.source_id,
            on_hand,
            quantity,
        )
        raise InsufficientStockError("Insufficient stock at source")

    timestamp = _resolve_timestamp(command.timestamp)
    transfer = TransferRow(
        transfer_id=generate_entity_id("X", when=timestamp),
        source_id=command.source_id,
        destination_id=command.destination_id,
        product_id=command.product_id,
        quantity=quantity,
        reason=(command.reason or "").strip() or None,
        created_at=timestamp,
    )
    return (
        TransitionBatch()
        .add(ApplyDelta(command.product_id, command.source_id, -quantity, command.user, timestamp))
        .add(CheckReorderThreshold(command.product_id, command.source_id, timestamp))
        .add(ApplyDelta(command.product_id, command.destination_id, quantity, command.user, timestamp))
        .add(AppendTransfer(transfer))
        .add(AppendFinancial(_financial_entry(MovementKind.TRANSFER, command.product_id, Decimal("0"), 0, timestamp)))
        .add(
            AppendAudit(
                _audit(
                    AuditKind.TRANSFER,
                    command.user,
                    timestamp,
                    f"Transfer {transfer.transfer_id}: {quantity} x {command.product_id} "
                    f"{command.source_id} -> {command.destination_id}",
                )
            )
        )
    )


def plan_adjustment(snapshot: Snapshot, command: AdjustmentCommand, costing: CostingStrategy) -> TransitionBatch:
    """Authorize and plan a manual stock correction.

    Increases (found stock) require :attr:`Role.ADMIN`, and the acting user
    is recorded as the approver. Decreases are open to every role and carry
    no approver.

    Raises:
        ValidationError: If the reason is blank, the delta is zero, or the role
            is not one of the fixed set.
        UnauthorizedError: If a non-admin submits a positive delta.
        NegativeStockError: If the correction would drive stock below zero.
        MissingReferenceError: If the product or location is unknown.
    """
    get_product(snapshot, command.product_id)
    get_location(snapshot, command.location_id)
    reason = require_text(command.reason, "reason")
    delta = require_nonzero_delta(command.delta)
    role = require_role(command.role)
    if delta > 0 and role is not Role.ADMIN:
        log.warning("Positive adjustment by '%s' rejected for role '%s'", command.user, role.value)
        raise UnauthorizedError("Positive adjustments require admin")
    on_hand = get_on_hand(snapshot, command.product_id, command.location_id)
    if on_hand + delta < 0:
        log.warning(
            "Adjustment rejected for product '%s' at '%s' (on hand=%d, delta=%d)",
            command.product_id,
            command.location_id,
            on_hand,
            delta,
        )
        raise NegativeStockError("Negative stock not allowed")

    timestamp = _resolve_timestamp(command.timestamp)
    unit_value = costing.unit_value(command.product_id, MovementKind.ADJUSTMENT)
    adjustment = AdjustmentRow(
        adjustment_id=generate_entity_id("J", when=timestamp),
        product_id=command.product_id,
        location_id=command.location_id,
        quantity=delta,
        reason=reason,
        created_at=timestamp,
        approved_by=command.user if delta > 0 else None,
    )
    batch = TransitionBatch().add(
        ApplyDelta(command.product_id, command.location_id, delta, command.user, timestamp)
    )
    if delta < 0:
        batch.add(CheckReorderThreshold(command.product_id, command.location_id, timestamp))
    batch.add(AppendAdjustment(adjustment))
    batch.add(AppendFinancial(_financial_entry(MovementKind.ADJUSTMENT, command.product_id, unit_value, delta, timestamp)))
    batch.add(
        AppendAudit(
            _audit(
                AuditKind.ADJUSTMENT,
                command.user,
                timestamp,
                f"Adjustment {adjustment.adjustment_id}: {delta:+d} x {command.product_id} @ {command.location_id} ({reason})",
            )
        )
    )
    return batch


def plan_acknowledgement(snapshot: Snapshot, command: AcknowledgeAlertCommand, costing: CostingStrategy) -> TransitionBatch:
    alert = get_alert(snapshot, command.alert_id)
    if alert.acknowledged:
        return TransitionBatch()
    return TransitionBatch().add(
        AcknowledgeAlert(command.alert_id, command.user, _resolve_timestamp(command.timestamp))
    )


_PLANNERS: Dict[type, Callable[[Snapshot, Any, CostingStrategy], TransitionBatch]] = {
    CreateProductCommand: plan_create_product,
    StockUpdateCommand: plan_stock_update,
    OrderCommand: plan_order,
    ReceiptCommand: plan_receipt,
    TransferCommand: plan_transfer,
    AdjustmentCommand: plan_adjustment,
    AcknowledgeAlertCommand: plan_acknowledgement,
}


def transition(snapshot: Snapshot, intent: Any, *, costing: CostingStrategy = DEFAULT_COSTING) -> Snapshot:
    """Compute the snapshot that follows ``intent``.

    Business commands are validated and expanded into a batch by their
    orchestrator; primitive actions are applied directly. Unrecognized
    intents return ``snapshot`` unchanged. The function performs no I/O.

    Args:
        snapshot (Snapshot): Current snapshot; never modified.
        intent (Any): A command or primitive action.
        costing (CostingStrategy): Valuation used for financial entries.

    Returns:
        Snapshot: The next snapshot, or ``snapshot`` itself for a no-op.

    Raises:
        BusinessRuleViolation: If the intent is rejected. No partial result
            escapes.
    """
    planner = _PLANNERS.get(type(intent))
    if planner is None:
        return apply_action(snapshot, intent)
    batch = planner(snapshot, intent, costing)
    return batch.commit(snapshot)


# ---------------------------------------------------------------------------
# Runtime context and persistence
# ---------------------------------------------------------------------------


def bootstrap_snapshot(locations: Sequence[LocationRow]) -> Snapshot:
    """Return an empty snapshot holding the fixed location set."""
    return Snapshot(locations=tuple(locations), schema_version=EXPECTED_SCHEMA_VERSION)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration, open the gateway, and restore the last snapshot.

    When the gateway holds nothing under the configured key, a fresh
    snapshot is bootstrapped from the configured locations. It is written on
    the first dispatched change.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context ready for dispatching intents.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    gateway = data_manager.WorkbookGateway(settings.data_dir)
    snapshot = gateway.load(settings.snapshot_key)
    if snapshot is None:
        snapshot = bootstrap_snapshot(settings.locations)
        log.info("Bootstrapped empty snapshot with %d locations", len(snapshot.locations))
    log.info("Loaded runtime context for key '%s' at version %d", settings.snapshot_key, snapshot.version)
    return RuntimeContext(
        settings=settings,
        gateway=gateway,
        snapshot=snapshot,
        costing=FixedUnitCost(settings.unit_value),
    )


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate configuration and snapshot compatibility before mutating state.

    Raises:
        RuntimeError: If the configured or stored schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """
    for source, version in (
        ("configuration", context.settings.schema_version),
        ("snapshot", context.snapshot.schema_version),
    ):
        if version != EXPECTED_SCHEMA_VERSION:
            log.error(
                "Schema mismatch in %s: expected %s, found %s",
                source,
                EXPECTED_SCHEMA_VERSION,
                version,
            )
            raise RuntimeError(
                "Schema mismatch in %s: expected %s, found %s"
                % (source, EXPECTED_SCHEMA_VERSION, version)
            )

    log.debug("Schema version '%s' validated", EXPECTED_SCHEMA_VERSION)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the last persisted snapshot into a new context.

    Raises:
        FileNotFoundError: If nothing has been persisted under the key yet.
    """
    snapshot = context.gateway.load(context.settings.snapshot_key)
    if snapshot is None:
        raise FileNotFoundError(f"No snapshot stored under key '{context.settings.snapshot_key}'")
    log.info("Reloaded snapshot '%s' at version %d", context.settings.snapshot_key, snapshot.version)
    return RuntimeContext(
        settings=context.settings,
        gateway=context.gateway,
        snapshot=snapshot,
        costing=context.costing,
    )


def dispatch(context: RuntimeContext, intent: Any) -> Snapshot:
    """Apply ``intent`` to the current snapshot and persist the result.

    The new snapshot receives the next version number and is written
    through the gateway before it replaces ``context.snapshot``. If the write
    fails, the context keeps its previous snapshot. No-op transitions are
    neither versioned nor persisted.

    Returns:
        Snapshot: The snapshot that is current after the call.

    Raises:
        BusinessRuleViolation: If the intent is rejected; the context is left
            unchanged.
    """
    current = context.snapshot
    candidate = transition(current, intent, costing=context.costing)
    if candidate is current:
        log.debug("%s produced no change", type(intent).__name__)
        return current

    committed = replace(candidate, version=current.version + 1)
    context.gateway.save(context.settings.snapshot_key, committed)
    context.snapshot = committed
    log.info("Committed %s as snapshot v%d", type(intent).__name__, committed.version)
    return committed


def create_product(context: RuntimeContext, command: CreateProductCommand) -> ProductRow:
    """Register a product and return it; see :func:`plan_create_product`."""
    snapshot = dispatch(context, command)
    product = snapshot.products[-1]
    log.info("Created product '%s' (sku=%s)", product.product_id, product.sku)
    return product


def update_stock(context: RuntimeContext, command: StockUpdateCommand) -> InventoryRow:
    """Apply a direct stock edit and return the updated inventory record."""
    snapshot = dispatch(context, command)
    record = find_inventory_record(snapshot, command.product_id, command.location_id)
    if record is None:
        raise MissingReferenceError(f"No inventory record for {command.product_id} @ {command.location_id}")
    log.info(
        "Updated stock for product '%s' at '%s' by %+d (now %d)",
        command.product_id,
        command.location_id,
        command.delta,
        record.quantity,
    )
    return record


def submit_order(context: RuntimeContext, command: OrderCommand) -> OrderRow:
    """Fulfil a sales order and return the recorded order."""
    snapshot = dispatch(context, command)
    order = snapshot.orders[-1]
    log.info("Recorded order '%s' with %d lines", order.order_id, len(order.lines))
    return order


def receive_goods(context: RuntimeContext, command: ReceiptCommand) -> ReceiptRow:
    """Record a goods receipt and return it."""
    snapshot = dispatch(context, command)
    receipt = snapshot.receipts[-1]
    log.info(
        "Recorded receipt '%s' for product '%s' (quantity=%d)",
        receipt.receipt_id,
        receipt.product_id,
        receipt.quantity,
    )
    return receipt


def transfer_stock(context: RuntimeContext, command: TransferCommand) -> TransferRow:
    """Move stock between locations and return the transfer record."""
    snapshot = dispatch(context, command)
    transfer = snapshot.transfers[-1]
    log.info(
        "Recorded transfer '%s' of %d x '%s' from '%s' to '%s'",
        transfer.transfer_id,
        transfer.quantity,
        transfer.product_id,
        transfer.source_id,
        transfer.destination_id,
    )
    return transfer


def apply_adjustment(context: RuntimeContext, command: AdjustmentCommand) -> AdjustmentRow:
    """Apply an authorized stock correction and return the adjustment record."""
    snapshot = dispatch(context, command)
    adjustment = snapshot.adjustments[-1]
    log.info(
        "Recorded adjustment '%s' (%+d) approved by %s",
        adjustment.adjustment_id,
        adjustment.quantity,
        adjustment.approved_by or "-",
    )
    return adjustment


def acknowledge_alert(context: RuntimeContext, command: AcknowledgeAlertCommand) -> AlertRow:
    """Acknowledge an alert; repeated calls leave it unchanged."""
    snapshot = dispatch(context, command)
    return get_alert(snapshot, command.alert_id)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def calculate_stock_levels(snapshot: Snapshot) -> Dict[str, int]:
    """Sum on-hand quantities per product across all locations."""
    totals: Dict[str, int] = {product.product_id: 0 for product in snapshot.products}
    for record in snapshot.inventory:
        totals[record.product_id] = totals.get(record.product_id, 0) + record.quantity
    log.debug("Calculated stock levels for %d products", len(totals))
    return totals


def list_open_alerts(snapshot: Snapshot) -> List[AlertRow]:
    return [alert for alert in snapshot.alerts if not alert.acknowledged]


def summarize_financials(snapshot: Snapshot) -> Dict[str, Decimal]:
    """Total the signed value of financial entries per movement kind.

    Every kind appears in the result, with zero when it has no entries.
    """
    summary: Dict[str, Decimal] = {kind.value: Decimal("0") for kind in MovementKind}
    for entry in snapshot.financials:
        summary[entry.kind] = summary.get(entry.kind, Decimal("0")) + entry.total_value
    return summary


def average_inventory(snapshot: Snapshot, product_id: str) -> Decimal:
    """Arithmetic mean of a product's quantities over its inventory records."""
    quantities = [record.quantity for record in snapshot.inventory if record.product_id == product_id]
    if not quantities:
        return Decimal("0")
    return Decimal(sum(quantities)) / Decimal(len(quantities))


def compute_turnover(snapshot: Snapshot, from_date: date, to_date: date) -> List[TurnoverRow]:
    """Compute inventory turnover per product over a date window.

    COGS sums the absolute value of ``order_cogs`` entries stamped within
    ``[from_date, to_date + 1 day)`` in UTC, so ``to_date`` is included in
    full. Turnover divides COGS by the product's average on-hand quantity
    and is zero when that average is zero. Averages and turnover are
    rounded half-up to two decimal places.

    Args:
        snapshot (Snapshot): Snapshot to read; never modified.
        from_date (date): First day of the window.
        to_date (date): Last day of the window, inclusive.

    Returns:
        list[TurnoverRow]: One row per product in catalog order.

    Raises:
        ValidationError: If ``to_date`` precedes ``from_date``.
    """
    if to_date < from_date:
        log.error("Turnover window rejected: %s is before %s", to_date, from_date)
        raise ValidationError("to_date must not precede from_date")

    window_start = datetime.combine(from_date, time.min, tzinfo=UTC)
    window_end = datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=UTC)

    cogs_by_product: Dict[str, Decimal] = {}
    for entry in snapshot.financials:
        if entry.kind != MovementKind.ORDER_COGS.value:
            continue
        if window_start <= entry.timestamp < window_end:
            cogs_by_product[entry.product_id] = cogs_by_product.get(entry.product_id, Decimal("0")) + abs(
                entry.total_value
            )

    rows: List[TurnoverRow] = []
    for product in snapshot.products:
        cogs = cogs_by_product.get(product.product_id, Decimal("0"))
        average = average_inventory(snapshot, product.product_id)
        turnover = cogs / average if average else Decimal("0")
        rows.append(
            TurnoverRow(
                product_id=product.product_id,
                sku=product.sku,
                product=product.name,
                cogs=cogs,
                average_inventory=average.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
                turnover=turnover.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            )
        )
    log.debug("Computed turnover for %d products between %s and %s", len(rows), from_date, to_date)
    return rows


def build_export_tables(snapshot: Snapshot, from_date: date, to_date: date) -> Dict[str, List[Dict[str, Any]]]:
    """Flatten the snapshot into named tables for :func:`data_manager.export_tables`."""
    return {
        "Products": [
            {
                "product_id": p.product_id,
                "name": p.name,
                "sku": p.sku,
                "category": p.category,
                "uom": p.uom,
                "reorder_threshold": p.reorder_threshold,
                "created_at": p.created_at,
            }
            for p in snapshot.products
        ],
        "Stock": [
            {"product_id": r.product_id, "location_id": r.location_id, "quantity": r.quantity}
            for r in snapshot.inventory
        ],
        "Orders": [
            {
                "order_id": o.order_id,
                "destination": o.destination,
                "location_id": o.location_id,
                "lines": "; ".join(f"{line.product_id} x {line.quantity}" for line in o.lines),
                "created_by": o.created_by,
                "created_at": o.created_at,
            }
            for o in snapshot.orders
        ],
        "Receipts": [
            {
                "receipt_id": r.receipt_id,
                "po_number": r.po_number,
                "product_id": r.product_id,
                "quantity": r.quantity,
                "location_id": r.location_id,
                "received_at": r.received_at,
            }
            for r in snapshot.receipts
        ],
        "Financials": [
            {
                "entry_id": f.entry_id,
                "kind": f.kind,
                "product_id": f.product_id,
                "unit_value": f.unit_value,
                "quantity": f.quantity,
                "total_value": f.total_value,
                "timestamp": f.timestamp,
            }
            for f in snapshot.financials
        ],
        "Turnover": [
            {
                "sku": row.sku,
                "product": row.product,
                "cogs": row.cogs,
                "avg_inventory": row.average_inventory,
                "turnover": row.turnover,
            }
            for row in compute_turnover(snapshot, from_date, to_date)
        ],
        "Alerts": [
            {
                "alert_id": a.alert_id,
                "product_id": a.product_id,
                "location_id": a.location_id,
                "quantity": a.quantity,
                "threshold": a.threshold,
                "created_at": a.created_at,
                "acknowledged": a.acknowledged,
                "acknowledged_by": a.acknowledged_by,
            }
            for a in snapshot.alerts
        ],
        "Audit": [
            {"entry_id": e.entry_id, "kind": e.kind, "user": e.user, "timestamp": e.timestamp, "details": e.details}
            for e in snapshot.audit
        ],
    }
