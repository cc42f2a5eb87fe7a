"""Command-line entry points for the Inventra ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the ledger
engine, and printing results. Every mutation goes through
:func:`inventra.core_logic.dispatch`, which persists the new snapshot before
the command returns.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, log
from .constants import Role
from .data_manager import OrderLine


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="inventra-cli",
        description="Command-line tools for the Inventra inventory ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini upward from the cwd).",
    )
    parser.add_argument("--user", default=None, help="Acting user (defaults to [Defaults] DefaultUser).")
    parser.add_argument(
        "--role",
        choices=[member.value for member in Role],
        default=None,
        help="Acting role (defaults to [Defaults] DefaultRole).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as orders and transfers."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "stock-update": register_stock_update_command(subparsers),
        "order": register_order_command(subparsers),
        "receive": register_receive_command(subparsers),
        "transfer": register_transfer_command(subparsers),
        "adjust": register_adjust_command(subparsers),
        "ack-alert": register_ack_alert_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports and exports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "alerts": register_alerts_command(subparsers),
        "audit": register_audit_command(subparsers),
        "financials": register_financials_command(subparsers),
        "turnover": register_turnover_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_window_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="from_date", type=date.fromisoformat, required=True, help="YYYY-MM-DD")
    parser.add_argument("--to", dest="to_date", type=date.fromisoformat, required=True, help="YYYY-MM-DD")


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product and open stock records at every location."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--sku", required=True)
        parser.add_argument("--category", required=True)
        parser.add_argument("--uom", required=True, help="Unit of measure, e.g. pcs.")
        parser.add_argument("--reorder-threshold", type=int, default=None)
        parser.add_argument("--description", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_stock_update_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock-update``."""
    name = "stock-update"
    help_text = "Apply a signed stock change at one location."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--location-id", required=True)
        parser.add_argument("--delta", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_update)


def register_order_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``order``."""
    name = "order"
    help_text = "Fulfil a sales order from one location."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--destination", required=True)
        parser.add_argument("--location-id", required=True)
        parser.add_argument(
            "--line",
            dest="lines",
            action="append",
            required=True,
            metavar="PRODUCT_ID:QUANTITY",
            help="Order line; repeat for multiple products.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_order)


def register_receive_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``receive``."""
    name = "receive"
    help_text = "Record goods received against a purchase order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--po-number", required=True)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--location-id", required=True)
        parser.add_argument("--quantity", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_receive)


def register_transfer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``transfer``."""
    name = "transfer"
    help_text = "Move stock between two locations."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--source-id", required=True)
        parser.add_argument("--destination-id", required=True)
        parser.add_argument("--quantity", type=int, required=True)
        parser.add_argument("--reason", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transfer)


def register_adjust_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``adjust``."""
    name = "adjust"
    help_text = "Record a manual stock correction (increases require the admin role)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--location-id", required=True)
        parser.add_argument("--delta", type=int, required=True)
        parser.add_argument("--reason", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_adjust)


def register_ack_alert_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``ack-alert``."""
    name = "ack-alert"
    help_text = "Acknowledge a low-stock alert."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--alert-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_ack_alert)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display on-hand quantities per product and location."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_alerts_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``alerts``."""
    name = "alerts"
    help_text = "Display low-stock alerts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--all", action="store_true", help="Include acknowledged alerts.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_alerts_report)


def register_audit_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``audit``."""
    name = "audit"
    help_text = "Display the audit trail, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_audit_report)


def register_financials_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``financials``."""
    name = "financials"
    help_text = "Display financial totals per movement kind."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_financials_report)


def register_turnover_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``turnover``."""
    name = "turnover"
    help_text = "Display inventory turnover per product for a date window."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_window_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_turnover_report)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export reports into a workbook."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        _add_window_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def acting_user(context: core_logic.RuntimeContext, args: argparse.Namespace) -> str:
    return getattr(args, "user", None) or context.settings.default_user


def acting_role(context: core_logic.RuntimeContext, args: argparse.Namespace) -> Role:
    role = getattr(args, "role", None)
    return Role(role) if role else context.settings.default_role


def parse_order_line(raw: str) -> OrderLine:
    """Parse a ``PRODUCT_ID:QUANTITY`` token into an :class:`OrderLine`.

    Raises:
        core_logic.ValidationError: If the token is malformed.
    """
    product_id, separator, quantity = raw.rpartition(":")
    if not separator or not product_id.strip():
        raise core_logic.ValidationError(f"Order line must look like PRODUCT_ID:QUANTITY, got {raw!r}")
    try:
        return OrderLine(product_id=product_id.strip(), quantity=int(quantity))
    except ValueError as exc:
        raise core_logic.ValidationError(f"Order line quantity must be an integer, got {quantity!r}") from exc


def translate_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.CreateProductCommand:
    """Translate CLI args into a product registration command."""
    return core_logic.CreateProductCommand(
        name=args.name,
        sku=args.sku,
        category=args.category,
        uom=args.uom,
        user=acting_user(context, args),
        reorder_threshold=args.reorder_threshold,
        description=args.description,
    )


def translate_stock_update(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.StockUpdateCommand:
    """Translate CLI args into a stock update command."""
    return core_logic.StockUpdateCommand(
        product_id=args.product_id,
        location_id=args.location_id,
        delta=args.delta,
        user=acting_user(context, args),
    )


def translate_order(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.OrderCommand:
    """Translate CLI args into an order command."""
    return core_logic.OrderCommand(
        destination=args.destination,
        location_id=args.location_id,
        lines=tuple(parse_order_line(raw) for raw in args.lines),
        user=acting_user(context, args),
    )


def translate_receive(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.ReceiptCommand:
    """Translate CLI args into a receipt command."""
    return core_logic.ReceiptCommand(
        po_number=args.po_number,
        product_id=args.product_id,
        location_id=args.location_id,
        quantity=args.quantity,
        user=acting_user(context, args),
    )


def translate_transfer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.TransferCommand:
    """Translate CLI args into a transfer command."""
    return core_logic.TransferCommand(
        product_id=args.product_id,
        source_id=args.source_id,
        destination_id=args.destination_id,
        quantity=args.quantity,
        user=acting_user(context, args),
        reason=args.reason,
    )


def translate_adjust(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.AdjustmentCommand:
    """Translate CLI args into an adjustment command carrying the acting role."""
    return core_logic.AdjustmentCommand(
        product_id=args.product_id,
        location_id=args.location_id,
        delta=args.delta,
        reason=args.reason,
        user=acting_user(context, args),
        role=acting_role(context, args),
    )


def translate_ack_alert(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.AcknowledgeAlertCommand:
    return core_logic.AcknowledgeAlertCommand(alert_id=args.alert_id, user=acting_user(context, args))


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the product registration workflow."""
    product = core_logic.create_product(context, translate_add_product(context, args))
    print(f"Created product {product.product_id} ({product.sku})")
    return 0


def run_stock_update(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a direct stock edit."""
    record = core_logic.update_stock(context, translate_stock_update(context, args))
    print(f"{record.product_id} @ {record.location_id}: {record.quantity}")
    return 0


def run_order(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the order fulfilment workflow."""
    order = core_logic.submit_order(context, translate_order(context, args))
    print(f"Recorded order {order.order_id} ({len(order.lines)} lines)")
    return 0


def run_receive(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the goods receipt workflow."""
    receipt = core_logic.receive_goods(context, translate_receive(context, args))
    print(f"Recorded receipt {receipt.receipt_id} for PO {receipt.po_number}")
    return 0


def run_transfer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transfer workflow."""
    transfer = core_logic.transfer_stock(context, translate_transfer(context, args))
    print(f"Recorded transfer {transfer.transfer_id}")
    return 0


def run_adjust(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the adjustment workflow."""
    adjustment = core_logic.apply_adjustment(context, translate_adjust(context, args))
    print(f"Recorded adjustment {adjustment.adjustment_id} ({adjustment.quantity:+d})")
    return 0


def run_ack_alert(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the alert acknowledgement workflow."""
    alert = core_logic.acknowledge_alert(context, translate_ack_alert(context, args))
    print(f"Alert {alert.alert_id} acknowledged by {alert.acknowledged_by}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print on-hand quantities per product and location."""
    snapshot = context.snapshot
    location_ids = [location.location_id for location in snapshot.locations]
    print("\t".join(["SKU", "Product", *location_ids, "Total"]))
    totals = core_logic.calculate_stock_levels(snapshot)
    for product in snapshot.products:
        quantities = [str(core_logic.get_on_hand(snapshot, product.product_id, lid)) for lid in location_ids]
        print("\t".join([product.sku, product.name, *quantities, str(totals[product.product_id])]))
    return 0


def run_alerts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print low-stock alerts, open ones only unless ``--all`` is given."""
    snapshot = context.snapshot
    alerts = snapshot.alerts if args.all else core_logic.list_open_alerts(snapshot)
    for alert in reversed(alerts):
        status = f"ack by {alert.acknowledged_by}" if alert.acknowledged else "open"
        print(
            f"{alert.alert_id}\t{alert.product_id} @ {alert.location_id}\t"
            f"{alert.quantity} < {alert.threshold}\t{status}"
        )
    return 0


def run_audit_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the audit trail, newest first."""
    entries = list(reversed(context.snapshot.audit))
    if args.limit is not None:
        entries = entries[: args.limit]
    for entry in entries:
        print(f"{entry.timestamp.isoformat()}\t{entry.user}\t{entry.kind}\t{entry.details}")
    return 0


def run_financials_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print total value per movement kind."""
    for kind, total in core_logic.summarize_financials(context.snapshot).items():
        print(f"{kind}\t{total}")
    return 0


def run_turnover_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print turnover per product for the requested window."""
    print("SKU\tProduct\tCOGS\tAvg Inventory\tTurnover")
    for row in core_logic.compute_turnover(context.snapshot, args.from_date, args.to_date):
        print(f"{row.sku}\t{row.product}\t{row.cogs}\t{row.average_inventory}\t{row.turnover}")
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Write report tables into the workbook named by ``--output``."""
    tables = core_logic.build_export_tables(context.snapshot, args.from_date, args.to_date)
    destination = data_manager.export_tables(args.output, tables)
    print(f"Exported reports to {destination}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
