"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path
from typing import Iterable, Mapping

import pytest

from inventra import cli, constants, core_logic, data_manager


WRITE_COMMANDS = {
    "add-product",
    "stock-update",
    "order",
    "receive",
    "transfer",
    "adjust",
    "ack-alert",
}

READ_COMMANDS = {
    "stock",
    "alerts",
    "audit",
    "financials",
    "turnover",
    "export",
}

# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    """build_parser should set user-facing program metadata."""

    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "inventra-cli"
    assert "Inventra" in (parser.description or "")


def test_build_parser_accepts_global_identity_flags():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    args = parser.parse_args(["--user", "lee", "--role", "admin", "stock"])

    assert args.user == "lee"
    assert args.role == "admin"


def test_build_parser_rejects_unknown_role():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    with pytest.raises(SystemExit):
        parser.parse_args(["--role", "janitor", "stock"])


def test_configure_subcommands_registers_all_commands(cli_parser):
    """configure_subcommands should wire every mutating and read-only command."""

    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert _registered_choices(cli_parser) == WRITE_COMMANDS | READ_COMMANDS


def test_register_write_commands_returns_command_specs(subparsers_action):
    specs = cli.register_write_commands(subparsers_action)

    assert set(specs) == WRITE_COMMANDS
    assert all(isinstance(spec, cli.CommandSpec) for spec in specs.values())


def test_register_read_commands_returns_command_specs(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)

    assert set(specs) == READ_COMMANDS


# ---------------------------------------------------------------------------
# Sub-command arguments
# ---------------------------------------------------------------------------


def test_order_command_collects_repeated_lines():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    args = parser.parse_args(
        ["order", "--destination", "Acme", "--location-id", "wh1", "--line", "P1:2", "--line", "P2:5"]
    )

    assert args.command == "order"
    assert args.lines == ["P1:2", "P2:5"]


def test_turnover_command_parses_dates():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    args = parser.parse_args(["turnover", "--from", "2024-05-01", "--to", "2024-05-31"])

    assert args.from_date == date(2024, 5, 1)
    assert args.to_date == date(2024, 5, 31)


def test_adjust_command_requires_reason():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)

    with pytest.raises(SystemExit):
        parser.parse_args(["adjust", "--product-id", "P1", "--location-id", "wh1", "--delta", "-1"])


# ---------------------------------------------------------------------------
# Runtime context helpers
# ---------------------------------------------------------------------------


def test_load_runtime_context_uses_provided_path(config_file, monkeypatch):
    """load_runtime_context should load settings from the specified config path."""

    sentinel_context = object()

    def fake_loader(path: Path | None) -> object:
        assert path == config_file
        return sentinel_context

    monkeypatch.setattr(core_logic, "load_runtime_context", fake_loader)
    assert cli.load_runtime_context(config_file) is sentinel_context


def test_load_runtime_context_defers_discovery(monkeypatch):
    """Without a path the data layer performs its upward search."""

    sentinel_context = object()

    def fake_loader(path: Path | None) -> object:
        assert path is None
        return sentinel_context

    monkeypatch.setattr(core_logic, "load_runtime_context", fake_loader)
    assert cli.load_runtime_context() is sentinel_context


# ---------------------------------------------------------------------------
# Dispatch helpers
# ---------------------------------------------------------------------------


def test_dispatch_command_invokes_executor(runtime_context, command_table_entry):
    """dispatch_command should call the executor associated with the command."""

    command_name, spec = command_table_entry
    args = argparse.Namespace(command=command_name)
    result = cli.dispatch_command(runtime_context, args, {command_name: spec})
    assert result == 0
    assert spec.execute.__dict__["called"] is True


def test_dispatch_command_handles_unknown_commands(runtime_context):
    """dispatch_command should raise a clear error for unknown commands."""

    args = argparse.Namespace(command="unknown")
    with pytest.raises(KeyError):
        cli.dispatch_command(runtime_context, args, {})


def test_build_command_table_detects_duplicate_commands():
    """build_command_table should guard against duplicate command names."""

    specs = [
        cli.CommandSpec("alpha", "A", lambda s: s.add_parser("alpha"), lambda c, a: 0),
        cli.CommandSpec("alpha", "Duplicate", lambda s: s.add_parser("alpha"), lambda c, a: 0),
    ]
    with pytest.raises(ValueError):
        cli.build_command_table(specs)


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------


def test_parse_order_line_splits_on_last_colon():
    assert cli.parse_order_line("SKU:A:3") == data_manager.OrderLine("SKU:A", 3)


@pytest.mark.parametrize("raw", ["P1", ":3", "P1:three"])
def test_parse_order_line_rejects_malformed_tokens(raw):
    with pytest.raises(core_logic.ValidationError):
        cli.parse_order_line(raw)


def test_translate_order_uses_default_user(runtime_context):
    args = argparse.Namespace(destination="Acme", location_id="wh1", lines=["P1:2"], user=None)

    command = cli.translate_order(runtime_context, args)

    assert command == core_logic.OrderCommand(
        destination="Acme",
        location_id="wh1",
        lines=(data_manager.OrderLine("P1", 2),),
        user=runtime_context.settings.default_user,
    )


def test_translate_adjust_prefers_explicit_identity(runtime_context):
    args = argparse.Namespace(
        product_id="P1",
        location_id="wh1",
        delta=3,
        reason="found stock",
        user="root",
        role="admin",
    )

    command = cli.translate_adjust(runtime_context, args)

    assert command.user == "root"
    assert command.role is constants.Role.ADMIN


def test_translate_adjust_falls_back_to_default_role(runtime_context):
    args = argparse.Namespace(product_id="P1", location_id="wh1", delta=-1, reason="damaged", user=None, role=None)

    command = cli.translate_adjust(runtime_context, args)

    assert command.role is runtime_context.settings.default_role


# ---------------------------------------------------------------------------
# Command execution helpers
# ---------------------------------------------------------------------------


def test_run_order_invokes_bll(runtime_context, monkeypatch, capsys):
    """run_order should delegate to the ledger engine."""

    command = object()
    order = data_manager.OrderRow("O1", "Acme", "wh1", (data_manager.OrderLine("P1", 1),), "sam", None)  # type: ignore[arg-type]
    monkeypatch.setattr(cli, "translate_order", lambda context, args: command)
    called = {}

    def fake_submit(context, cmd):
        called["context"] = context
        called["cmd"] = cmd
        return order

    monkeypatch.setattr(cli.core_logic, "submit_order", fake_submit)

    assert cli.run_order(runtime_context, argparse.Namespace()) == 0
    assert called == {"context": runtime_context, "cmd": command}
    assert "O1" in capsys.readouterr().out


def test_run_stock_report_prints_each_location(runtime_context, capsys):
    product = core_logic.create_product(
        runtime_context, core_logic.CreateProductCommand("Widget", "W-1", "Hardware", "pcs", "sam")
    )
    core_logic.receive_goods(
        runtime_context, core_logic.ReceiptCommand("PO-1", product.product_id, "wh2", 4, "sam")
    )

    assert cli.run_stock_report(runtime_context, argparse.Namespace()) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split("\t") == ["SKU", "Product", "wh1", "wh2", "Total"]
    assert lines[1].split("\t") == ["W-1", "Widget", "0", "4", "4"]


def test_run_export_writes_workbook(runtime_context, tmp_path, capsys):
    output = tmp_path / "reports.xlsx"
    args = argparse.Namespace(output=output, from_date=date(2024, 1, 1), to_date=date(2024, 12, 31))

    assert cli.run_export(runtime_context, args) == 0

    assert output.exists()
    assert str(output.resolve()) in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "error, expected",
    [
        (core_logic.BusinessRuleViolation("invalid"), 2),
        (core_logic.InsufficientStockError("short"), 2),
        (FileNotFoundError("missing"), 3),
        (ValueError("bad value"), 1),
    ],
)
def test_handle_cli_error_returns_exit_code(error: Exception, expected: int, caplog: pytest.LogCaptureFixture):
    """handle_cli_error should convert exceptions into exit codes."""

    caplog.set_level("ERROR")
    exit_code = cli.handle_cli_error(error)
    assert exit_code == expected
    assert any(str(error) in record.getMessage() for record in caplog.records)


# ---------------------------------------------------------------------------
# Program entry point
# ---------------------------------------------------------------------------


def test_main_executes_specified_command(monkeypatch, runtime_context):
    """main should execute the command parsed from argv."""

    parser = _stub_parser(command="stock")
    command_table = {"stock": cli.CommandSpec("stock", "help", lambda _: parser, lambda *_: 0)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)

    called = {}

    def fake_dispatch(context: core_logic.RuntimeContext, args: argparse.Namespace, table: Mapping[str, cli.CommandSpec]) -> int:
        called["context"] = context
        called["args"] = args
        called["table"] = table
        return 0

    monkeypatch.setattr(cli, "dispatch_command", fake_dispatch)

    exit_code = cli.main(["stock"])
    assert exit_code == 0
    assert called["context"] is runtime_context
    assert called["args"].command == "stock"
    assert called["table"] is command_table


def test_main_handles_bll_errors(monkeypatch, runtime_context):
    """main should surface business rule violations as non-zero exits."""

    parser = _stub_parser(command="order")
    command_table = {"order": cli.CommandSpec("order", "help", lambda _: parser, lambda *_: 0)}

    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: command_table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)

    def fake_dispatch(*_: object) -> int:
        raise core_logic.InsufficientStockError("short")

    monkeypatch.setattr(cli, "dispatch_command", fake_dispatch)

    handled = {}

    def fake_handle(error: Exception) -> int:
        handled["error"] = error
        return 99

    monkeypatch.setattr(cli, "handle_cli_error", fake_handle)
    exit_code = cli.main(["order"])
    assert exit_code == 99
    assert isinstance(handled["error"], core_logic.InsufficientStockError)


def test_main_reports_missing_configuration(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    exit_code = cli.main(["--config", str(tmp_path / "absent.ini"), "stock"])

    assert exit_code == 3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stub_parser(command: str) -> argparse.ArgumentParser:
    """Create a stub parser that always returns the supplied command."""

    class _Stub(argparse.ArgumentParser):
        def parse_args(self, args: Iterable[str] | None = None, namespace: argparse.Namespace | None = None):  # type: ignore[override]
            parsed = argparse.Namespace(command=command)
            return parsed

    return _Stub(prog="test")


def _registered_choices(parser: argparse.ArgumentParser) -> set[str]:
    """Return the set of registered sub-command names for assertion helpers."""

    actions = getattr(parser, "_subparsers", None)
    if not actions:
        return set()
    group_actions = actions._group_actions  # type: ignore[attr-defined]
    if not group_actions:
        return set()
    return set(group_actions[0].choices)  # type: ignore[index]
