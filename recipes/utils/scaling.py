from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from catalog.units import conversion_factor
from core.formatting import format_quantity
from inventory.utils.fifo import quantize


@dataclass
class ScaledLine:
    recipe_id: int
    recipe_name: str
    section_name: str
    ingredient: object
    base_quantity: Decimal
    scale: Decimal
    quantity: Decimal
    unit: str

    @property
    def display_quantity(self) -> str:
        return format_quantity(self.quantity)


@dataclass
class Requirement:
    """Total need for one ingredient, in the ingredient unit when convertible."""

    ingredient: object
    quantity: Decimal
    unit: str
    convertible: bool = True
    contributions: list[ScaledLine] = field(default_factory=list)

    @property
    def display_quantity(self) -> str:
        return format_quantity(self.quantity)

    @property
    def recipe_names(self) -> list[str]:
        names = []
        for line in self.contributions:
            if line.recipe_name not in names:
                names.append(line.recipe_name)
        return names


def scale_recipe(recipe, scale) -> list[ScaledLine]:
    """Every ingredient line of ``recipe`` multiplied by ``scale``.

    Sections are visited in order; the recipe's stored quantities are never
    touched.
    """
    factor = Decimal(str(scale))
    lines = []
    sections = recipe.sections.order_by("order", "id").prefetch_related("ingredients__ingredient")
    for section in sections:
        for item in section.ingredients.all():
            base = Decimal(item.quantity)
            lines.append(
                ScaledLine(
                    recipe_id=recipe.id,
                    recipe_name=recipe.name,
                    section_name=section.name,
                    ingredient=item.ingredient,
                    base_quantity=base,
                    scale=factor,
                    quantity=quantize(base * factor),
                    unit=item.unit,
                )
            )
    return lines


def aggregate_requirements(lines: Iterable[ScaledLine]) -> list[Requirement]:
    """Sum scaled lines per ingredient, converting to the ingredient unit.

    A line whose unit cannot be converted marks the requirement as not
    convertible and is summed in its own unit. Result is ordered by
    ingredient id.
    """
    grouped: dict[int, Requirement] = {}
    for line in lines:
        ingredient = line.ingredient
        factor = conversion_factor(line.unit, ingredient.unit)
        req = grouped.get(ingredient.id)
        if req is None:
            req = Requirement(ingredient=ingredient, quantity=Decimal("0"), unit=ingredient.unit)
            grouped[ingredient.id] = req
        if factor is None:
            req.convertible = False
            req.quantity += line.quantity
        else:
            req.quantity += quantize(line.quantity * factor)
        req.contributions.append(line)
    return [grouped[key] for key in sorted(grouped)]
