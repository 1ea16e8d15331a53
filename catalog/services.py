from __future__ import annotations

import logging

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import ProtectedError

from catalog.models import Ingredient, IngredientVendor, Vendor, normalize_name
from catalog.serializers import (
    validate_create_ingredient,
    validate_create_vendor,
    validate_ingredient_vendor,
    validate_update_ingredient,
    validate_update_vendor,
)
from core import errors
from core.audit import log_event
from core.models import ActivityLog
from core.tenancy import TenantContext, ensure_same_bakery, get_scoped

logger = logging.getLogger(__name__)


def _ensure_unique_name(ctx: TenantContext, name: str, exclude_id: int | None = None) -> None:
    qs = Ingredient.objects.filter(bakery=ctx.bakery, normalized_name=normalize_name(name))
    if exclude_id:
        qs = qs.exclude(pk=exclude_id)
    if qs.exists():
        raise errors.ValidationError.for_field("name", "An ingredient with this name already exists.")


def create_ingredient(ctx: TenantContext, data: dict) -> Ingredient:
    cleaned = validate_create_ingredient(data)
    ensure_same_bakery(ctx, cleaned["bakery_id"])
    _ensure_unique_name(ctx, cleaned["name"])
    try:
        with transaction.atomic():
            ingredient = Ingredient.objects.create(
                bakery=ctx.bakery,
                name=cleaned["name"].strip(),
                unit=cleaned["unit"].strip(),
                low_stock_threshold=cleaned.get("low_stock_threshold"),
            )
            log_event(
                ctx.user,
                ActivityLog.ACTION_CREATE,
                "ingredient",
                ingredient.id,
                bakery=ctx.bakery,
                entity_name=ingredient.name,
                description=f'Created ingredient "{ingredient.name}"',
                metadata={"unit": ingredient.unit},
            )
    except IntegrityError:
        raise errors.ValidationError.for_field("name", "An ingredient with this name already exists.")
    except DatabaseError as exc:
        logger.exception("Failed to create ingredient")
        raise errors.PersistenceError() from exc
    return ingredient


def update_ingredient(ctx: TenantContext, ingredient_id, data: dict) -> Ingredient:
    cleaned = validate_update_ingredient({**(data or {}), "id": ingredient_id})
    ingredient = get_scoped(Ingredient, ctx, cleaned["id"], entity="Ingredient")
    if "name" in cleaned:
        _ensure_unique_name(ctx, cleaned["name"], exclude_id=ingredient.id)
        ingredient.name = cleaned["name"].strip()
    if "unit" in cleaned and cleaned["unit"].strip() != ingredient.unit:
        # Ledger rows are stored in the reference unit.
        if ingredient.transactions.exists():
            raise errors.ValidationError.for_field("unit", "Unit cannot change once inventory has been recorded.")
        ingredient.unit = cleaned["unit"].strip()
    if "low_stock_threshold" in cleaned:
        ingredient.low_stock_threshold = cleaned["low_stock_threshold"]
    changed = sorted(k for k in cleaned if k != "id")
    try:
        with transaction.atomic():
            ingredient.save()
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "ingredient",
                ingredient.id,
                bakery=ctx.bakery,
                entity_name=ingredient.name,
                description=f'Updated ingredient "{ingredient.name}"',
                metadata={"updated_fields": changed},
            )
    except DatabaseError as exc:
        logger.exception("Failed to update ingredient %s", ingredient.id)
        raise errors.PersistenceError() from exc
    return ingredient


def create_vendor(ctx: TenantContext, data: dict) -> Vendor:
    cleaned = validate_create_vendor(data)
    ensure_same_bakery(ctx, cleaned.pop("bakery_id"))
    cleaned["notes"] = cleaned.get("notes") or ""
    try:
        with transaction.atomic():
            vendor = Vendor.objects.create(bakery=ctx.bakery, **cleaned)
            log_event(
                ctx.user,
                ActivityLog.ACTION_CREATE,
                "vendor",
                vendor.id,
                bakery=ctx.bakery,
                entity_name=vendor.name,
                description=f'Created vendor "{vendor.name}"',
            )
    except DatabaseError as exc:
        logger.exception("Failed to create vendor")
        raise errors.PersistenceError() from exc
    return vendor


def delete_ingredient(ctx: TenantContext, ingredient_id) -> None:
    """Delete an ingredient no recipe, lot or ledger entry refers to."""
    ingredient = get_scoped(Ingredient, ctx, ingredient_id, entity="Ingredient")
    recipe_uses = ingredient.recipe_lines.count()
    if recipe_uses:
        raise errors.StateConflictError(
            f"Cannot delete ingredient with {recipe_uses} recipe usage(s). Remove it from recipes first."
        )
    if ingredient.lots.exists() or ingredient.transactions.exists():
        raise errors.StateConflictError("Cannot delete ingredient with recorded inventory.")
    try:
        with transaction.atomic():
            name, pk = ingredient.name, ingredient.pk
            ingredient.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_DELETE,
                "ingredient",
                pk,
                bakery=ctx.bakery,
                entity_name=name,
                description=f'Deleted ingredient "{name}"',
            )
    except ProtectedError:
        raise errors.StateConflictError("Ingredient is still referenced and cannot be deleted.")
    except DatabaseError as exc:
        logger.exception("Failed to delete ingredient %s", ingredient_id)
        raise errors.PersistenceError() from exc


def assign_vendor_to_ingredient(ctx: TenantContext, data: dict) -> IngredientVendor:
    cleaned = validate_ingredient_vendor(data)
    ingredient = get_scoped(Ingredient, ctx, cleaned["ingredient_id"], entity="Ingredient")
    vendor = get_scoped(Vendor, ctx, cleaned["vendor_id"], entity="Vendor")
    if IngredientVendor.objects.filter(ingredient=ingredient, vendor=vendor).exists():
        raise errors.ValidationError.for_field("vendor_id", "Vendor is already assigned to this ingredient.")
    try:
        with transaction.atomic():
            link = IngredientVendor.objects.create(ingredient=ingredient, vendor=vendor)
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "ingredient",
                ingredient.id,
                bakery=ctx.bakery,
                entity_name=ingredient.name,
                description=f'Assigned vendor "{vendor.name}" to ingredient "{ingredient.name}"',
                metadata={"vendor_id": vendor.id},
            )
    except IntegrityError:
        raise errors.ValidationError.for_field("vendor_id", "Vendor is already assigned to this ingredient.")
    except DatabaseError as exc:
        logger.exception("Failed to assign vendor %s to ingredient %s", vendor.id, ingredient.id)
        raise errors.PersistenceError() from exc
    return link


def unassign_vendor_from_ingredient(ctx: TenantContext, data: dict) -> None:
    cleaned = validate_ingredient_vendor(data)
    ingredient = get_scoped(Ingredient, ctx, cleaned["ingredient_id"], entity="Ingredient")
    link = ingredient.vendor_links.select_related("vendor").filter(vendor_id=cleaned["vendor_id"]).first()
    if link is None:
        raise errors.NotFoundError("Vendor")
    try:
        with transaction.atomic():
            vendor_name = link.vendor.name
            link.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "ingredient",
                ingredient.id,
                bakery=ctx.bakery,
                entity_name=ingredient.name,
                description=f'Removed vendor "{vendor_name}" from ingredient "{ingredient.name}"',
                metadata={"vendor_id": cleaned["vendor_id"]},
            )
    except DatabaseError as exc:
        logger.exception("Failed to unassign vendor from ingredient %s", ingredient.id)
        raise errors.PersistenceError() from exc


def ingredient_vendors(ctx: TenantContext, ingredient_id) -> list[Vendor]:
    ingredient = get_scoped(Ingredient, ctx, ingredient_id, entity="Ingredient")
    return list(Vendor.objects.filter(ingredient_links__ingredient=ingredient).order_by("name"))


def update_vendor(ctx: TenantContext, vendor_id, data: dict) -> Vendor:
    cleaned = validate_update_vendor({**(data or {}), "id": vendor_id})
    vendor = get_scoped(Vendor, ctx, cleaned.pop("id"), entity="Vendor")
    if "notes" in cleaned:
        cleaned["notes"] = cleaned["notes"] or ""
    for key, value in cleaned.items():
        setattr(vendor, key, value)
    try:
        with transaction.atomic():
            vendor.save()
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "vendor",
                vendor.id,
                bakery=ctx.bakery,
                entity_name=vendor.name,
                description=f'Updated vendor "{vendor.name}"',
                metadata={"updated_fields": sorted(cleaned)},
            )
    except DatabaseError as exc:
        logger.exception("Failed to update vendor %s", vendor.id)
        raise errors.PersistenceError() from exc
    return vendor


def delete_vendor(ctx: TenantContext, vendor_id) -> None:
    vendor = get_scoped(Vendor, ctx, vendor_id, entity="Vendor")
    linked = vendor.ingredient_links.count()
    if linked:
        raise errors.StateConflictError(
            f"Cannot delete vendor with {linked} linked ingredient(s). Unlink them first."
        )
    try:
        with transaction.atomic():
            name, pk = vendor.name, vendor.pk
            # Lots keep their history; only the vendor reference is cleared.
            vendor.delete()
            log_event(
                ctx.user,
                ActivityLog.ACTION_DELETE,
                "vendor",
                pk,
                bakery=ctx.bakery,
                entity_name=name,
                description=f'Deleted vendor "{name}"',
            )
    except ProtectedError:
        raise errors.StateConflictError("Vendor is still referenced and cannot be deleted.")
    except DatabaseError as exc:
        logger.exception("Failed to delete vendor %s", vendor_id)
        raise errors.PersistenceError() from exc
