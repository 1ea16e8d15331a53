"""Recipes, bake sheets and production sheets.

Sheets are created in DRAFT and completed exactly once. Completion flips the
status with a conditional update and posts the scaled USE transactions in
the same atomic block, so a failed or concurrent completion never leaves a
partial ledger behind.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Max, ProtectedError
from django.utils import timezone

from catalog.models import Ingredient
from core import errors
from core.audit import log_event
from core.formatting import format_quantity
from core.models import ActivityLog
from core.tenancy import TenantContext, ensure_same_bakery, get_scoped, parse_id, scoped
from inventory.models import InventoryTransaction
from inventory.services import StockWarning, live_lots, post_usage
from inventory.utils.fifo import ZERO, weighted_average_cost
from recipes.models import BakeSheet, ProductionSheet, ProductionSheetRecipe, Recipe, RecipeIngredient, RecipeSection, SheetStatus
from recipes.serializers import (
    validate_add_recipe_to_sheet,
    validate_create_bake_sheet,
    validate_create_production_sheet,
    validate_create_recipe,
    validate_remove_recipe_from_sheet,
    validate_update_bake_sheet,
    validate_update_production_sheet,
    validate_update_recipe,
    validate_update_recipe_on_sheet,
)
from recipes.utils.scaling import Requirement, ScaledLine, aggregate_requirements, scale_recipe

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    sheet: BakeSheet | ProductionSheet
    transactions: list[InventoryTransaction] = field(default_factory=list)
    shortfalls: list[StockWarning] = field(default_factory=list)
    requirements: list[Requirement] = field(default_factory=list)


def _acting_user(ctx: TenantContext):
    return ctx.user if getattr(ctx.user, "is_authenticated", False) else None


def _persistence_error(message: str, *args):
    logger.exception(message, *args)
    return errors.PersistenceError()


# Recipes

def list_recipes(ctx: TenantContext):
    return scoped(Recipe.objects.all(), ctx).order_by("name")


def get_recipe(ctx: TenantContext, recipe_id) -> Recipe:
    queryset = Recipe.objects.prefetch_related("sections__ingredients__ingredient")
    return get_scoped(queryset, ctx, recipe_id, entity="Recipe")


def _resolve_ingredients(ctx: TenantContext, sections: list[dict]) -> dict[int, Ingredient]:
    ingredient_ids = {
        item["ingredient_id"]
        for section in sections
        for item in section.get("ingredients") or []
    }
    ingredients = {i.id: i for i in scoped(Ingredient.objects.filter(id__in=ingredient_ids), ctx)}
    if len(ingredients) != len(ingredient_ids):
        raise errors.NotFoundError("Ingredient")
    return ingredients


def _write_sections(recipe: Recipe, sections: list[dict], ingredients: dict[int, Ingredient]) -> None:
    for section_data in sections:
        section = RecipeSection.objects.create(
            recipe=recipe,
            name=section_data["name"].strip(),
            order=section_data["order"],
            instructions=section_data.get("instructions") or "",
        )
        RecipeIngredient.objects.bulk_create(
            [
                RecipeIngredient(
                    section=section,
                    ingredient=ingredients[item["ingredient_id"]],
                    quantity=item["quantity"],
                    unit=item["unit"].strip(),
                )
                for item in section_data.get("ingredients") or []
            ]
        )


def create_recipe(ctx: TenantContext, data: dict) -> Recipe:
    cleaned = validate_create_recipe(data)
    ensure_same_bakery(ctx, cleaned["bakery_id"])
    ingredients = _resolve_ingredients(ctx, cleaned["sections"])

    try:
        with transaction.atomic():
            recipe = Recipe.objects.create(
                bakery=ctx.bakery,
                name=cleaned["name"].strip(),
                description=cleaned.get("description") or "",
                yield_qty=cleaned["yield_qty"],
                yield_unit=cleaned["yield_unit"].strip(),
                created_by=_acting_user(ctx),
            )
            _write_sections(recipe, cleaned["sections"], ingredients)
            log_event(
                ctx.user,
                ActivityLog.ACTION_CREATE,
                "recipe",
                recipe.id,
                bakery=ctx.bakery,
                entity_name=recipe.name,
                description=f'Created recipe "{recipe.name}"',
                metadata={"sections": len(cleaned["sections"]), "ingredients": len(ingredients)},
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to create recipe") from exc
    return recipe


def _has_completed_sheets(recipe: Recipe) -> bool:
    return (
        recipe.bake_sheets.filter(status=SheetStatus.COMPLETED).exists()
        or recipe.production_entries.filter(production_sheet__status=SheetStatus.COMPLETED).exists()
    )


def update_recipe(ctx: TenantContext, recipe_id, data: dict) -> Recipe:
    """Edit a recipe; sections are replaced wholesale when given.

    The ingredient list is frozen once a completed sheet used the recipe.
    """
    cleaned = validate_update_recipe({**(data or {}), "id": recipe_id})
    ingredients = _resolve_ingredients(ctx, cleaned["sections"]) if "sections" in cleaned else None

    try:
        with transaction.atomic():
            recipe = get_scoped(Recipe.objects.select_for_update(), ctx, cleaned["id"], entity="Recipe")
            if ingredients is not None and _has_completed_sheets(recipe):
                raise errors.StateConflictError(
                    "Recipe ingredients cannot change once a completed sheet uses the recipe."
                )
            changed = []
            for name in ("name", "yield_unit"):
                if name in cleaned:
                    setattr(recipe, name, cleaned[name].strip())
                    changed.append(name)
            if "description" in cleaned:
                recipe.description = cleaned["description"] or ""
                changed.append("description")
            if "yield_qty" in cleaned:
                recipe.yield_qty = cleaned["yield_qty"]
                changed.append("yield_qty")
            if changed:
                recipe.save()
            if ingredients is not None:
                recipe.sections.all().delete()
                _write_sections(recipe, cleaned["sections"], ingredients)
                changed.append("sections")
            if changed:
                log_event(
                    ctx.user,
                    ActivityLog.ACTION_UPDATE,
                    "recipe",
                    recipe.id,
                    bakery=ctx.bakery,
                    entity_name=recipe.name,
                    description=f'Updated recipe "{recipe.name}"',
                    metadata={"updated_fields": changed},
                )
    except DatabaseError as exc:
        raise _persistence_error("Failed to update recipe %s", recipe_id) from exc
    return recipe


def delete_recipe(ctx: TenantContext, recipe_id) -> None:
    recipe = get_scoped(Recipe, ctx, recipe_id, entity="Recipe")
    sheets = recipe.bake_sheets.count() + recipe.production_entries.count()
    if sheets:
        raise errors.StateConflictError(
            f"Cannot delete recipe with {sheets} sheet(s). Remove it from sheets first."
        )
    try:
        with transaction.atomic():
            name, pk = recipe.name, recipe.pk
            recipe.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_DELETE,
                "recipe",
                pk,
                bakery=ctx.bakery,
                entity_name=name,
                description=f'Deleted recipe "{name}"',
            )
    except ProtectedError:
        raise errors.StateConflictError("Recipe is still referenced and cannot be deleted.")
    except DatabaseError as exc:
        raise _persistence_error("Failed to delete recipe %s", recipe_id) from exc


# Scaling

def scaled_ingredients(sheet: BakeSheet | ProductionSheet) -> list[ScaledLine]:
    """Scaled recipe lines for a sheet, recipe by recipe in sheet order."""
    if isinstance(sheet, BakeSheet):
        return scale_recipe(sheet.recipe, sheet.scale)
    lines = []
    for entry in sheet.entries.select_related("recipe").order_by("order", "id"):
        lines.extend(scale_recipe(entry.recipe, entry.scale))
    return lines


def estimated_cost(ctx: TenantContext, requirements: Iterable[Requirement]) -> Decimal:
    """Price requirements at the weighted average cost of the open lots."""
    total = ZERO
    for req in requirements:
        if not req.convertible:
            continue
        lots = scoped(live_lots().filter(ingredient=req.ingredient, remaining_qty__gt=0), ctx)
        total += Decimal(req.quantity) * weighted_average_cost(lots, req.unit)
    return total


def _complete(
    ctx: TenantContext,
    model,
    sheet_id,
    *,
    entity: str,
    sheet_field: str,
    describe,
    allow_shortfall: bool,
) -> CompletionResult:
    obj_id = parse_id(sheet_id)
    if obj_id is None:
        raise errors.NotFoundError(entity)

    try:
        with transaction.atomic():
            # Single-writer guard: only one caller can move the row off DRAFT.
            updated = model.objects.filter(pk=obj_id, bakery=ctx.bakery, status=SheetStatus.DRAFT).update(
                status=SheetStatus.COMPLETED,
                completed_at=timezone.now(),
                completed_by=_acting_user(ctx),
            )
            if not updated:
                if model.objects.filter(pk=obj_id, bakery=ctx.bakery).exists():
                    raise errors.AlreadyCompletedError()
                raise errors.NotFoundError(entity)

            sheet = model.objects.get(pk=obj_id)
            requirements = [r for r in aggregate_requirements(scaled_ingredients(sheet)) if r.quantity > 0]
            unconvertible = [r for r in requirements if not r.convertible]
            if unconvertible:
                raise errors.ValidationError(
                    {
                        "ingredients": [
                            f"Recipe unit for {r.ingredient.name} cannot be converted to {r.ingredient.unit}."
                            for r in unconvertible
                        ]
                    }
                )

            note = describe(sheet)
            result = CompletionResult(sheet=sheet, requirements=requirements)
            for req in requirements:
                posting = post_usage(ctx, req.ingredient, req.quantity, notes=note, **{sheet_field: sheet})
                result.transactions.append(posting.transaction)
                if posting.shortfall > 0:
                    result.shortfalls.append(
                        StockWarning(
                            ingredient_id=req.ingredient.id,
                            ingredient_name=req.ingredient.name,
                            required=req.quantity,
                            available=req.quantity - posting.shortfall,
                            shortfall=posting.shortfall,
                            unit=req.unit,
                        )
                    )

            if result.shortfalls and not allow_shortfall:
                raise errors.ValidationError(
                    {
                        "ingredients": [
                            f"Insufficient inventory for {s.ingredient_name}: need "
                            f"{format_quantity(s.required)} {s.unit}, have {format_quantity(s.available)} {s.unit}."
                            for s in result.shortfalls
                        ]
                    }
                )

            log_event(
                ctx.user,
                ActivityLog.ACTION_COMPLETE,
                entity.lower().replace(" ", "_"),
                sheet.id,
                bakery=ctx.bakery,
                entity_name=str(sheet),
                description=note,
                metadata={
                    "transactions": [tx.id for tx in result.transactions],
                    "shortfalls": {str(s.ingredient_id): str(s.shortfall) for s in result.shortfalls},
                },
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to complete %s %s", entity.lower(), sheet_id) from exc

    logger.info(
        "Completed %s %s for bakery %s: %d transactions, %d shortfalls",
        entity.lower(),
        sheet.id,
        ctx.bakery_id,
        len(result.transactions),
        len(result.shortfalls),
    )
    return result


def _lock_draft(ctx: TenantContext, model, sheet_id, entity: str):
    # Call inside an atomic block.
    sheet = get_scoped(model.objects.select_for_update(), ctx, sheet_id, entity=entity)
    if sheet.status != SheetStatus.DRAFT:
        raise errors.NotDraftError()
    return sheet


# Bake sheets

def list_bake_sheets(ctx: TenantContext, status: str | None = None):
    qs = scoped(BakeSheet.objects.select_related("recipe"), ctx)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_bake_sheet(ctx: TenantContext, sheet_id) -> BakeSheet:
    return get_scoped(BakeSheet.objects.select_related("recipe"), ctx, sheet_id, entity="Bake sheet")


def create_bake_sheet(ctx: TenantContext, data: dict) -> BakeSheet:
    cleaned = validate_create_bake_sheet(data)
    ensure_same_bakery(ctx, cleaned["bakery_id"])
    recipe = get_scoped(Recipe, ctx, cleaned["recipe_id"], entity="Recipe")

    try:
        with transaction.atomic():
            sheet = BakeSheet.objects.create(
                bakery=ctx.bakery,
                recipe=recipe,
                scale=cleaned["scale"],
                quantity=cleaned["quantity"].strip(),
                notes=cleaned.get("notes") or "",
                created_by=_acting_user(ctx),
            )
            log_event(
                ctx.user,
                ActivityLog.ACTION_CREATE,
                "bake_sheet",
                sheet.id,
                bakery=ctx.bakery,
                entity_name=f"{sheet.quantity} of {recipe.name}",
                description=(
                    f'Created bake sheet: {sheet.quantity} of "{recipe.name}" '
                    f"(scale: {format_quantity(sheet.scale)}x)"
                ),
                metadata={"recipe_id": recipe.id, "scale": str(sheet.scale), "quantity": sheet.quantity},
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to create bake sheet") from exc
    return sheet


def update_bake_sheet(ctx: TenantContext, sheet_id, data: dict) -> BakeSheet:
    cleaned = validate_update_bake_sheet({**(data or {}), "id": sheet_id})
    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, BakeSheet, cleaned["id"], "Bake sheet")
            changed = []
            if "scale" in cleaned:
                sheet.scale = cleaned["scale"]
                changed.append("scale")
            if "quantity" in cleaned:
                sheet.quantity = cleaned["quantity"].strip()
                changed.append("quantity")
            if "notes" in cleaned:
                sheet.notes = cleaned["notes"] or ""
                changed.append("notes")
            if changed:
                sheet.save(update_fields=changed + ["updated_at"])
                log_event(
                    ctx.user,
                    ActivityLog.ACTION_UPDATE,
                    "bake_sheet",
                    sheet.id,
                    bakery=ctx.bakery,
                    entity_name=f"{sheet.quantity} of {sheet.recipe.name}",
                    description=f'Updated bake sheet for "{sheet.recipe.name}"',
                    metadata={"updated_fields": changed},
                )
    except DatabaseError as exc:
        raise _persistence_error("Failed to update bake sheet %s", sheet_id) from exc
    return sheet


def delete_bake_sheet(ctx: TenantContext, sheet_id) -> None:
    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, BakeSheet, sheet_id, "Bake sheet")
            label = f"{sheet.quantity} of {sheet.recipe.name}"
            pk = sheet.pk
            sheet.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_DELETE,
                "bake_sheet",
                pk,
                bakery=ctx.bakery,
                entity_name=label,
                description=f"Deleted bake sheet: {label}",
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to delete bake sheet %s", sheet_id) from exc


def complete_bake_sheet(ctx: TenantContext, sheet_id) -> CompletionResult:
    return _complete(
        ctx,
        BakeSheet,
        sheet_id,
        entity="Bake sheet",
        sheet_field="bake_sheet",
        describe=lambda sheet: f"Used for bake sheet: {sheet.quantity} of {sheet.recipe.name}",
        allow_shortfall=settings.BAKERY_ALLOW_BAKE_SHEET_SHORTFALL,
    )


# Production sheets

def list_production_sheets(ctx: TenantContext, status: str | None = None):
    qs = scoped(ProductionSheet.objects.prefetch_related("entries__recipe"), ctx)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_production_sheet(ctx: TenantContext, sheet_id) -> ProductionSheet:
    queryset = ProductionSheet.objects.prefetch_related("entries__recipe")
    return get_scoped(queryset, ctx, sheet_id, entity="Production sheet")


def _resolve_entries(ctx: TenantContext, entries: list[dict]) -> list[tuple[Recipe, Decimal, int]]:
    seen = set()
    resolved = []
    for index, entry in enumerate(entries):
        if entry["recipe_id"] in seen:
            raise errors.ValidationError.for_field("recipes", "Each recipe can appear only once per sheet.")
        seen.add(entry["recipe_id"])
        recipe = get_scoped(Recipe, ctx, entry["recipe_id"], entity="Recipe")
        resolved.append((recipe, entry["scale"], entry.get("order", index)))
    return resolved


def _sheet_label(sheet: ProductionSheet) -> str:
    return sheet.description or f"Production sheet #{sheet.id}"


def create_production_sheet(ctx: TenantContext, data: dict) -> ProductionSheet:
    cleaned = validate_create_production_sheet(data)
    ensure_same_bakery(ctx, cleaned["bakery_id"])
    entries = _resolve_entries(ctx, cleaned["recipes"])

    try:
        with transaction.atomic():
            sheet = ProductionSheet.objects.create(
                bakery=ctx.bakery,
                description=(cleaned.get("description") or "").strip(),
                scheduled_for=cleaned.get("scheduled_for"),
                notes=cleaned.get("notes") or "",
                created_by=_acting_user(ctx),
            )
            ProductionSheetRecipe.objects.bulk_create(
                [
                    ProductionSheetRecipe(production_sheet=sheet, recipe=recipe, scale=scale, order=order)
                    for recipe, scale, order in entries
                ]
            )
            log_event(
                ctx.user,
                ActivityLog.ACTION_CREATE,
                "production_sheet",
                sheet.id,
                bakery=ctx.bakery,
                entity_name=_sheet_label(sheet),
                description=f"Created production sheet with {len(entries)} recipe(s)",
                metadata={"recipes": [{"recipe_id": r.id, "scale": str(s)} for r, s, _ in entries]},
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to create production sheet") from exc
    return sheet


def update_production_sheet(ctx: TenantContext, sheet_id, data: dict) -> ProductionSheet:
    cleaned = validate_update_production_sheet({**(data or {}), "id": sheet_id})
    entries = _resolve_entries(ctx, cleaned["recipes"]) if "recipes" in cleaned else None

    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, ProductionSheet, cleaned["id"], "Production sheet")
            changed = []
            if "description" in cleaned:
                sheet.description = (cleaned["description"] or "").strip()
                changed.append("description")
            if "scheduled_for" in cleaned:
                sheet.scheduled_for = cleaned["scheduled_for"]
                changed.append("scheduled_for")
            if "notes" in cleaned:
                sheet.notes = cleaned["notes"] or ""
                changed.append("notes")
            if changed:
                sheet.save(update_fields=changed + ["updated_at"])
            if entries is not None:
                sheet.entries.all().delete()
                ProductionSheetRecipe.objects.bulk_create(
                    [
                        ProductionSheetRecipe(production_sheet=sheet, recipe=recipe, scale=scale, order=order)
                        for recipe, scale, order in entries
                    ]
                )
                changed.append("recipes")
            if changed:
                log_event(
                    ctx.user,
                    ActivityLog.ACTION_UPDATE,
                    "production_sheet",
                    sheet.id,
                    bakery=ctx.bakery,
                    entity_name=_sheet_label(sheet),
                    description=f"Updated {_sheet_label(sheet)}",
                    metadata={"updated_fields": changed},
                )
    except DatabaseError as exc:
        raise _persistence_error("Failed to update production sheet %s", sheet_id) from exc
    return sheet


def delete_production_sheet(ctx: TenantContext, sheet_id) -> None:
    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, ProductionSheet, sheet_id, "Production sheet")
            label = _sheet_label(sheet)
            pk = sheet.pk
            sheet.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_DELETE,
                "production_sheet",
                pk,
                bakery=ctx.bakery,
                entity_name=label,
                description=f"Deleted {label}",
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to delete production sheet %s", sheet_id) from exc


def complete_production_sheet(ctx: TenantContext, sheet_id) -> CompletionResult:
    def describe(sheet):
        names = [e.recipe.name for e in sheet.entries.select_related("recipe").order_by("order", "id")]
        return f"Used for production sheet: {', '.join(names)}"

    return _complete(
        ctx,
        ProductionSheet,
        sheet_id,
        entity="Production sheet",
        sheet_field="production_sheet",
        describe=describe,
        allow_shortfall=settings.BAKERY_ALLOW_PRODUCTION_SHORTFALL,
    )


def add_recipe_to_sheet(ctx: TenantContext, data: dict) -> ProductionSheetRecipe:
    cleaned = validate_add_recipe_to_sheet(data)
    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, ProductionSheet, cleaned["production_sheet_id"], "Production sheet")
            recipe = get_scoped(Recipe, ctx, cleaned["recipe_id"], entity="Recipe")
            if sheet.entries.filter(recipe=recipe).exists():
                raise errors.ValidationError.for_field("recipe_id", "Recipe is already on this sheet.")
            last = sheet.entries.aggregate(last=Max("order"))["last"]
            entry = ProductionSheetRecipe.objects.create(
                production_sheet=sheet,
                recipe=recipe,
                scale=cleaned["scale"],
                order=0 if last is None else last + 1,
            )
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "production_sheet",
                sheet.id,
                bakery=ctx.bakery,
                entity_name=_sheet_label(sheet),
                description=f'Added "{recipe.name}" (scale: {format_quantity(entry.scale)}x)',
            )
    except IntegrityError:
        raise errors.ValidationError.for_field("recipe_id", "Recipe is already on this sheet.")
    except DatabaseError as exc:
        raise _persistence_error("Failed to add recipe to production sheet") from exc
    return entry


def update_recipe_on_sheet(ctx: TenantContext, data: dict) -> ProductionSheetRecipe:
    cleaned = validate_update_recipe_on_sheet(data)
    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, ProductionSheet, cleaned["production_sheet_id"], "Production sheet")
            entry = sheet.entries.select_related("recipe").filter(recipe_id=cleaned["recipe_id"]).first()
            if entry is None:
                raise errors.NotFoundError("Recipe")
            fields = [name for name in ("scale", "order") if name in cleaned]
            for name in fields:
                setattr(entry, name, cleaned[name])
            if fields:
                entry.save(update_fields=fields)
                log_event(
                    ctx.user,
                    ActivityLog.ACTION_UPDATE,
                    "production_sheet",
                    sheet.id,
                    bakery=ctx.bakery,
                    entity_name=_sheet_label(sheet),
                    description=f'Updated "{entry.recipe.name}" on {_sheet_label(sheet)}',
                    metadata={"updated_fields": fields},
                )
    except DatabaseError as exc:
        raise _persistence_error("Failed to update recipe on production sheet") from exc
    return entry


def remove_recipe_from_sheet(ctx: TenantContext, data: dict) -> None:
    cleaned = validate_remove_recipe_from_sheet(data)
    try:
        with transaction.atomic():
            sheet = _lock_draft(ctx, ProductionSheet, cleaned["production_sheet_id"], "Production sheet")
            entry = sheet.entries.select_related("recipe").filter(recipe_id=cleaned["recipe_id"]).first()
            if entry is None:
                raise errors.NotFoundError("Recipe")
            if sheet.entries.count() <= 1:
                raise errors.ValidationError.for_field("recipe_id", "At least one recipe is required.")
            name = entry.recipe.name
            entry.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "production_sheet",
                sheet.id,
                bakery=ctx.bakery,
                entity_name=_sheet_label(sheet),
                description=f'Removed "{name}" from {_sheet_label(sheet)}',
            )
    except DatabaseError as exc:
        raise _persistence_error("Failed to remove recipe from production sheet") from exc

