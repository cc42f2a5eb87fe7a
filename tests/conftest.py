"""Shared pytest fixtures and utilities for Inventra tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from inventra import cli, constants, core_logic, data_manager  # noqa: E402
from inventra.costing import FixedUnitCost  # noqa: E402
from inventra.setup_store import initialize_store  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_USER = "ankita"
FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataDir = {data_dir}\n"
    "SnapshotKey = {snapshot_key}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "DefaultUser = {default_user}\n"
    "DefaultRole = {default_role}\n\n"
    "[Locations]\n"
    "wh1 = Main Warehouse\n"
    "wh2 = City Store\n\n"
    "[Costing]\n"
    "UnitValue = {unit_value}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_dir: Path
    snapshot_key: str
    schema_version: str
    default_user: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that writes config bundles on demand.

    The snapshot store is initialized unless ``initialize`` is ``False``.
    """

    def _create_config(
        *,
        make_relative: bool = False,
        initialize: bool = True,
        snapshot_key: str = "test_snapshot",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_user: str = DEFAULT_USER,
        default_role: str = "owner",
        unit_value: str = "1",
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        data_dir = bundle_dir / "data"
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_dir="data" if make_relative else str(data_dir),
                snapshot_key=snapshot_key,
                schema_version=schema_version,
                default_user=default_user,
                default_role=default_role,
                unit_value=unit_value,
            )
        )
        if initialize:
            initialize_store(config_path)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_dir=data_dir,
            snapshot_key=snapshot_key,
            schema_version=schema_version,
            default_user=default_user,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="inventra-cli", description="Inventra CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_table_entry() -> tuple[str, cli.CommandSpec]:
    """Provide a placeholder command table entry for dispatch tests."""

    def execute(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
        execute.__dict__["called"] = True
        return 0

    def register(
        subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    ) -> argparse.ArgumentParser:
        return subparsers.add_parser("catalog-test")

    spec = cli.CommandSpec(
        name="catalog-test",
        help_text="help",
        register=register,
        execute=execute,
    )
    return "catalog-test", spec


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def locations() -> tuple[data_manager.LocationRow, ...]:
    """Two-location set used by most ledger tests."""

    return (
        data_manager.LocationRow("wh1", "Main Warehouse"),
        data_manager.LocationRow("wh2", "City Store"),
    )


@pytest.fixture
def settings(tmp_path: Path, locations) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_dir=tmp_path / "data",
        snapshot_key="test_snapshot",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        default_user=DEFAULT_USER,
        default_role=constants.Role.OWNER,
        locations=locations,
        unit_value=Decimal("1"),
    )


@pytest.fixture
def gateway() -> Mock:
    """Return a mock durability gateway for business logic tests."""

    return Mock(name="gateway")


@pytest.fixture
def empty_snapshot(locations) -> data_manager.Snapshot:
    return core_logic.bootstrap_snapshot(locations)


@pytest.fixture
def context(settings: data_manager.ConfigSettings, gateway: Mock, empty_snapshot) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and a gateway mock."""

    return core_logic.RuntimeContext(
        settings=settings,
        gateway=gateway,
        snapshot=empty_snapshot,
        costing=FixedUnitCost(Decimal("1")),
    )


@pytest.fixture
def product_factory(context: core_logic.RuntimeContext) -> Callable[..., data_manager.ProductRow]:
    """Register products through the public API with sensible defaults."""

    def _create(
        sku: str = "W-1",
        *,
        name: str = "Widget",
        reorder_threshold: int | None = None,
    ) -> data_manager.ProductRow:
        command = core_logic.CreateProductCommand(
            name=name,
            sku=sku,
            category="Hardware",
            uom="pcs",
            user=DEFAULT_USER,
            reorder_threshold=reorder_threshold,
            timestamp=FIXED_NOW,
        )
        return core_logic.create_product(context, command)

    return _create


@pytest.fixture
def stock(context: core_logic.RuntimeContext) -> Callable[[str, str, int], None]:
    """Receive ``quantity`` units of a product at a location."""

    def _receive(product_id: str, location_id: str, quantity: int) -> None:
        core_logic.receive_goods(
            context,
            core_logic.ReceiptCommand(
                po_number="PO-SEED",
                product_id=product_id,
                location_id=location_id,
                quantity=quantity,
                user=DEFAULT_USER,
                timestamp=FIXED_NOW,
            ),
        )

    return _receive


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
