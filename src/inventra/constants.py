"""Enumerations shared across Inventra modules.

Centralises domain constants so that the data access layer (DAL), the ledger
engine, and the CLI rely on a single source of truth for role names, audit
kinds, and the workbook layout used by the durability gateway.
"""

from __future__ import annotations

from enum import Enum


# Schema version written into every persisted snapshot.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_SNAPSHOT_KEY = "inventra_mvp_v1"

# Bootstrap locations used when config.ini has no [Locations] section.
DEFAULT_LOCATIONS: tuple[tuple[str, str], ...] = (
    ("wh1", "Main Warehouse"),
    ("wh2", "City Store"),
)


class Role(str, Enum):
    """Enumerate the fixed set of roles an acting user may hold."""

    OWNER = "owner"
    WAREHOUSE_MANAGER = "warehouse_manager"
    INVENTORY_CLERK = "inventory_clerk"
    SALES_ASSOCIATE = "sales_associate"
    PURCHASING_OFFICER = "purchasing_officer"
    FINANCE_MANAGER = "finance_manager"
    ADMIN = "admin"


class AuditKind(str, Enum):
    """Enumerate the kinds of entries written to the audit trail."""

    PRODUCT = "product"
    STOCK_UPDATE = "stock_update"
    ORDER = "order"
    RECEIPT = "receipt"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    ACK_ALERT = "ack_alert"


class MovementKind(str, Enum):
    """Enumerate the movement types recorded in the financial ledger."""

    ORDER_COGS = "order_cogs"
    RECEIPT = "receipt"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    META = "Meta"
    PRODUCTS = "Products"
    LOCATIONS = "Locations"
    INVENTORY = "Inventory"
    ORDERS = "Orders"
    ORDER_LINES = "OrderLines"
    RECEIPTS = "Receipts"
    TRANSFERS = "Transfers"
    ADJUSTMENTS = "Adjustments"
    ALERTS = "Alerts"
    AUDIT = "Audit"
    FINANCIALS = "Financials"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_SNAPSHOT_KEY",
    "DEFAULT_LOCATIONS",
    "Role",
    "AuditKind",
    "MovementKind",
    "SheetName",
]
