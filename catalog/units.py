from __future__ import annotations

from decimal import Decimal

from catalog.models import UnitOfMeasure

UNIT_ALIASES = {
    "gram": "g",
    "grams": "g",
    "gr": "g",
    "kilogram": "kg",
    "kilograms": "kg",
    "kgs": "kg",
    "milligram": "mg",
    "milligrams": "mg",
    "lbs": "lb",
    "pound": "lb",
    "pounds": "lb",
    "ounce": "oz",
    "ounces": "oz",
    "milliliter": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "millilitres": "ml",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "lt": "l",
    "teaspoon": "tsp",
    "teaspoons": "tsp",
    "tablespoon": "tbsp",
    "tablespoons": "tbsp",
    "tbs": "tbsp",
    "fl oz": "fl-oz",
    "fluid ounce": "fl-oz",
    "fluid ounces": "fl-oz",
    "cups": "cup",
    "pint": "pnt",
    "pints": "pnt",
    "quart": "qt",
    "quarts": "qt",
    "gallon": "gal",
    "gallons": "gal",
    "unit": "each",
    "units": "each",
    "ea": "each",
    "piece": "each",
    "pieces": "each",
    "pc": "each",
    "pcs": "each",
}


def normalize_unit(unit: str | None) -> str:
    code = " ".join((unit or "").strip().lower().split())
    return UNIT_ALIASES.get(code, code)


def _load_units(*codes: str) -> dict[str, UnitOfMeasure]:
    return {u.code: u for u in UnitOfMeasure.objects.filter(code__in=set(codes))}


def conversion_factor(from_unit: str, to_unit: str) -> Decimal | None:
    """Multiplier taking a quantity in ``from_unit`` to ``to_unit``.

    ``None`` when either unit is unknown or they measure different things.
    """
    src = normalize_unit(from_unit)
    dst = normalize_unit(to_unit)
    if src == dst:
        return Decimal("1")

    units = _load_units(src, dst)
    src_unit = units.get(src)
    dst_unit = units.get(dst)
    if not src_unit or not dst_unit or src_unit.kind != dst_unit.kind:
        return None
    if not dst_unit.factor_to_base:
        return None
    return Decimal(src_unit.factor_to_base) / Decimal(dst_unit.factor_to_base)


def convert_quantity(quantity, from_unit: str, to_unit: str) -> Decimal | None:
    factor = conversion_factor(from_unit, to_unit)
    if factor is None:
        return None
    return Decimal(str(quantity)) * factor


def units_compatible(unit_a: str, unit_b: str) -> bool:
    return conversion_factor(unit_a, unit_b) is not None
