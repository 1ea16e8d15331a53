"""FIFO lot arithmetic.

Pure helpers over lot rows already loaded by the caller. Quantities are
``Decimal``; conversions go through ``catalog.units`` and results are
quantized to the ledger's 6 decimal places.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from catalog.units import conversion_factor

QUANT = Decimal("0.000001")
ZERO = Decimal("0")


def quantize(value) -> Decimal:
    return Decimal(str(value)).quantize(QUANT, rounding=ROUND_HALF_UP)


@dataclass
class LotDraw:
    lot: object
    quantity: Decimal  # lot unit
    quantity_in_unit: Decimal  # requested unit


@dataclass
class FifoPlan:
    requested: Decimal
    unit: str
    draws: list[LotDraw] = field(default_factory=list)

    @property
    def fulfilled(self) -> Decimal:
        return sum((d.quantity_in_unit for d in self.draws), ZERO)

    @property
    def shortfall(self) -> Decimal:
        return max(self.requested - self.fulfilled, ZERO)

    @property
    def has_shortfall(self) -> bool:
        return self.shortfall > 0


class _Factors:
    def __init__(self):
        self._cache: dict[tuple[str, str], Decimal | None] = {}

    def get(self, src: str, dst: str) -> Decimal | None:
        key = (src, dst)
        if key not in self._cache:
            self._cache[key] = conversion_factor(src, dst)
        return self._cache[key]


def fifo_order(lots: Iterable) -> list:
    return sorted(lots, key=lambda lot: (lot.purchased_at, lot.pk or 0))


def plan_fifo_usage(lots: Iterable, quantity, unit: str) -> FifoPlan:
    """Split ``quantity`` (in ``unit``) across lots, oldest first.

    Lots whose unit cannot be converted to ``unit`` are skipped. Whatever the
    lots cannot cover is reported as ``shortfall``.
    """
    plan = FifoPlan(requested=quantize(quantity), unit=unit)
    factors = _Factors()
    pending = plan.requested

    for lot in fifo_order(lots):
        if pending <= 0:
            break
        remaining = Decimal(lot.remaining_qty)
        if remaining <= 0:
            continue
        to_unit = factors.get(lot.purchase_unit, unit)
        if not to_unit:
            continue
        available = quantize(remaining * to_unit)
        take = min(pending, available)
        if take <= 0:
            continue
        in_lot_unit = remaining if take == available else quantize(take / to_unit)
        plan.draws.append(LotDraw(lot=lot, quantity=min(in_lot_unit, remaining), quantity_in_unit=take))
        pending -= take

    return plan


def total_quantity(lots: Iterable, unit: str) -> Decimal:
    factors = _Factors()
    total = ZERO
    for lot in lots:
        remaining = Decimal(lot.remaining_qty)
        if remaining <= 0:
            continue
        factor = factors.get(lot.purchase_unit, unit)
        if factor is None:
            continue
        total += remaining * factor
    return quantize(total)


def total_value(lots: Iterable) -> Decimal:
    # remaining x cost, both in the lot unit
    total = ZERO
    for lot in lots:
        remaining = Decimal(lot.remaining_qty)
        if remaining > 0:
            total += remaining * Decimal(lot.cost_per_unit)
    return total


def weighted_average_cost(lots: Iterable, unit: str) -> Decimal:
    """Average cost per ``unit`` over the remaining quantity of ``lots``."""
    factors = _Factors()
    value = ZERO
    qty = ZERO
    for lot in lots:
        remaining = Decimal(lot.remaining_qty)
        if remaining <= 0:
            continue
        factor = factors.get(lot.purchase_unit, unit)
        if not factor:
            continue
        qty_in_unit = remaining * factor
        value += qty_in_unit * (Decimal(lot.cost_per_unit) / factor)
        qty += qty_in_unit
    if qty <= 0:
        return ZERO
    return value / qty
