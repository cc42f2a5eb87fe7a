"""Valuation strategies used by the financial ledger.

Each orchestrator asks a :class:`CostingStrategy` for the unit value of the
movement it records. :class:`FixedUnitCost` assigns every unit the same
value. A real costing engine (FIFO lots, weighted average) can be plugged in
without touching the orchestrators.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from .constants import MovementKind


class CostingStrategy(Protocol):
    """Return the per-unit value of a movement of ``product_id``."""

    def unit_value(self, product_id: str, kind: MovementKind) -> Decimal:
        ...


@dataclass(frozen=True)
class FixedUnitCost:
    """Value every unit at ``value`` regardless of product or movement."""

    value: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.value < Decimal("0"):
            raise ValueError("Unit value must be zero or positive")

    def unit_value(self, product_id: str, kind: MovementKind) -> Decimal:
        return self.value


DEFAULT_COSTING = FixedUnitCost()


__all__ = ["CostingStrategy", "FixedUnitCost", "DEFAULT_COSTING"]
