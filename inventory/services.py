"""Inventory ledger operations.

The ledger is append-only: every stock movement is one
``InventoryTransaction`` and current stock is always derived by folding an
ingredient's transactions in id order. Lots are a per-batch materialization
kept in step with the ledger inside the same atomic block as each append.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Iterable

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from catalog.models import Ingredient, Vendor
from catalog.units import conversion_factor
from core import errors
from core.audit import log_event
from core.formatting import format_currency, format_quantity
from core.models import ActivityLog
from core.tenancy import TenantContext, ensure_same_bakery, get_scoped, scoped
from inventory.filters import InventoryTransactionFilter
from inventory.models import InventoryLot, InventoryTransaction, InventoryUsage
from inventory.serializers import (
    validate_add_inventory_lot,
    validate_create_inventory_transaction,
    validate_update_inventory_lot,
)
from inventory.utils.fifo import ZERO, plan_fifo_usage, quantize, total_quantity, total_value, weighted_average_cost

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 500


@dataclass
class Posting:
    transaction: InventoryTransaction
    shortfall: Decimal = ZERO
    usages: list[InventoryUsage] = field(default_factory=list)


@dataclass
class InventorySummary:
    ingredient: Ingredient
    unit: str
    stock: Decimal
    lot_quantity: Decimal
    average_cost: Decimal
    total_value: Decimal
    lots: list[InventoryLot]


@dataclass
class StockWarning:
    ingredient_id: int
    ingredient_name: str
    required: Decimal
    available: Decimal
    shortfall: Decimal
    unit: str


def signed_delta(tx_type: str, direction: str, quantity) -> Decimal:
    """Stock change contributed by one transaction.

    RECEIVE always adds; USE and WASTE always subtract; ADJUST follows its
    direction.
    """
    qty = Decimal(str(quantity))
    if tx_type == InventoryTransaction.TYPE_RECEIVE:
        return qty
    if tx_type in (InventoryTransaction.TYPE_USE, InventoryTransaction.TYPE_WASTE):
        return -qty
    if tx_type == InventoryTransaction.TYPE_ADJUST:
        return qty if direction == InventoryTransaction.DIRECTION_IN else -qty
    raise ValueError(f"Unknown transaction type: {tx_type}")


def _fold_stock(ingredient: Ingredient, as_of: int | None = None) -> Decimal:
    qs = InventoryTransaction.objects.filter(bakery_id=ingredient.bakery_id, ingredient=ingredient)
    if as_of is not None:
        qs = qs.filter(id__lte=as_of)
    stock = ZERO
    for tx_type, direction, quantity in qs.order_by("id").values_list("type", "direction", "quantity"):
        stock += signed_delta(tx_type, direction, quantity)
    return stock


def get_current_stock(ctx: TenantContext, ingredient_id, as_of=None) -> Decimal:
    """Stock of an ingredient in its own unit.

    ``as_of`` is a transaction id: only transactions up to and including it
    are folded, so the same cutoff always yields the same value.
    """
    ingredient = get_scoped(Ingredient, ctx, ingredient_id, entity="Ingredient")
    cutoff = None
    if as_of is not None:
        try:
            cutoff = int(as_of)
        except (TypeError, ValueError):
            raise errors.ValidationError.for_field("as_of", "Invalid identifier.")
    return _fold_stock(ingredient, cutoff)


def _to_ingredient_unit(ingredient: Ingredient, quantity: Decimal, unit: str) -> Decimal:
    factor = conversion_factor(unit, ingredient.unit)
    if factor is None:
        raise errors.ValidationError.for_field(
            "unit",
            f"Cannot convert {unit} to {ingredient.unit}.",
        )
    converted = quantize(quantity * factor)
    if converted <= 0:
        raise errors.ValidationError.for_field("quantity", "Quantity must be positive.")
    return converted


def _lock_ingredient(ctx: TenantContext, ingredient_id) -> Ingredient:
    return get_scoped(Ingredient.objects.select_for_update(), ctx, ingredient_id, entity="Ingredient")


def live_lots():
    """Lots that have not been retired."""
    return InventoryLot.objects.filter(retired_at__isnull=True)


def _plan_consumption(ingredient: Ingredient, quantity: Decimal):
    lots = list(
        live_lots()
        .select_for_update()
        .filter(bakery_id=ingredient.bakery_id, ingredient=ingredient, remaining_qty__gt=0)
        .order_by("purchased_at", "id")
    )
    return plan_fifo_usage(lots, quantity, ingredient.unit)


def _consume_lots(ingredient: Ingredient, tx: InventoryTransaction, plan) -> list[InventoryUsage]:
    usages = []
    for draw in plan.draws:
        lot = draw.lot
        lot.remaining_qty = max(Decimal(lot.remaining_qty) - draw.quantity, ZERO)
        lot.save(update_fields=["remaining_qty"])
        usages.append(InventoryUsage.objects.create(lot=lot, transaction=tx, quantity=draw.quantity))

    if plan.has_shortfall and usages:
        last = usages[-1]
        factor = conversion_factor(ingredient.unit, last.lot.purchase_unit) or Decimal("1")
        last.shortfall = quantize(plan.shortfall * factor)
        last.save(update_fields=["shortfall"])
    return usages


def _outstanding_shortfall(ingredient: Ingredient, tx: InventoryTransaction) -> Decimal:
    covered = ZERO
    for usage in tx.usages.filter(backfill=True).select_related("lot"):
        factor = conversion_factor(usage.lot.purchase_unit, ingredient.unit) or Decimal("1")
        covered += Decimal(usage.quantity) * factor
    return quantize(max(Decimal(tx.shortfall) - covered, ZERO))


def _settle_deficit(ingredient: Ingredient, lot: InventoryLot, deficit: Decimal) -> list[InventoryUsage]:
    """Net a negative balance against a newly received lot.

    The uncovered part of earlier OUT transactions is drawn from ``lot``
    oldest first, so lot totals keep matching the ledger.
    """
    to_unit = conversion_factor(lot.purchase_unit, ingredient.unit) or Decimal("1")
    available = quantize(Decimal(lot.remaining_qty) * to_unit)
    pending = min(deficit, available)
    usages = []
    short = InventoryTransaction.objects.filter(
        bakery_id=ingredient.bakery_id,
        ingredient=ingredient,
        direction=InventoryTransaction.DIRECTION_OUT,
        shortfall__gt=0,
    ).order_by("id")
    for tx in short:
        if pending <= 0:
            break
        take = min(_outstanding_shortfall(ingredient, tx), pending)
        if take <= 0:
            continue
        remaining = Decimal(lot.remaining_qty)
        in_lot_unit = remaining if take == available else min(quantize(take / to_unit), remaining)
        usages.append(InventoryUsage.objects.create(lot=lot, transaction=tx, quantity=in_lot_unit, backfill=True))
        lot.remaining_qty = remaining - in_lot_unit
        available -= take
        pending -= take
    if usages:
        lot.save(update_fields=["remaining_qty"])
    return usages


def _append(
    ctx: TenantContext,
    ingredient: Ingredient,
    *,
    tx_type: str,
    direction: str,
    quantity: Decimal,
    notes: str = "",
    bake_sheet=None,
    production_sheet=None,
    lot: InventoryLot | None = None,
    consume_lots: bool = True,
) -> Posting:
    # Caller holds the ingredient lock inside an atomic block.
    created_by = ctx.user if getattr(ctx.user, "is_authenticated", False) else None
    incoming = direction == InventoryTransaction.DIRECTION_IN
    balance = _fold_stock(ingredient) if incoming else ZERO
    if incoming and lot is None:
        # Uncosted lot so lot totals and the ledger agree.
        lot = InventoryLot.objects.create(
            bakery=ctx.bakery,
            ingredient=ingredient,
            purchase_qty=quantity,
            remaining_qty=quantity,
            purchase_unit=ingredient.unit,
            cost_per_unit=0,
            notes=notes or "",
            created_by=created_by,
        )

    plan = None
    if direction == InventoryTransaction.DIRECTION_OUT and consume_lots:
        plan = _plan_consumption(ingredient, quantity)

    tx = InventoryTransaction.objects.create(
        bakery=ctx.bakery,
        ingredient=ingredient,
        type=tx_type,
        direction=direction,
        quantity=quantity,
        unit=ingredient.unit,
        shortfall=plan.shortfall if plan is not None else ZERO,
        notes=notes or "",
        created_by=created_by,
        bake_sheet=bake_sheet,
        production_sheet=production_sheet,
        lot=lot,
    )
    posting = Posting(transaction=tx)

    if plan is not None:
        posting.shortfall = plan.shortfall
        posting.usages = _consume_lots(ingredient, tx, plan)
    elif incoming and balance < 0:
        posting.usages = _settle_deficit(ingredient, lot, -balance)

    display_qty = format_quantity(quantity)
    log_event(
        ctx.user,
        tx_type,
        "inventory_transaction",
        tx.id,
        bakery=ctx.bakery,
        entity_name=f"{tx_type} {display_qty} {ingredient.unit} of {ingredient.name}",
        description=f'Recorded {tx_type.lower()} transaction for "{ingredient.name}" ({display_qty} {ingredient.unit})',
        metadata={
            "ingredient_id": ingredient.id,
            "direction": direction,
            "quantity": str(quantity),
            "unit": ingredient.unit,
            "shortfall": str(posting.shortfall),
        },
    )
    return posting


def post_transaction(ctx: TenantContext, data: dict) -> InventoryTransaction:
    """Validate and append one stock movement for the acting bakery."""
    cleaned = validate_create_inventory_transaction(data)
    ensure_same_bakery(ctx, cleaned["bakery_id"])

    try:
        with transaction.atomic():
            ingredient = _lock_ingredient(ctx, cleaned["ingredient_id"])
            quantity = _to_ingredient_unit(ingredient, cleaned["quantity"], cleaned["unit"])
            if cleaned["direction"] == InventoryTransaction.DIRECTION_OUT:
                current = _fold_stock(ingredient)
                if current - quantity < 0:
                    raise errors.ValidationError.for_field(
                        "quantity",
                        f"Insufficient inventory: {ingredient.name} current quantity is "
                        f"{format_quantity(current)} {ingredient.unit}.",
                    )
            posting = _append(
                ctx,
                ingredient,
                tx_type=cleaned["type"],
                direction=cleaned["direction"],
                quantity=quantity,
                notes=cleaned["notes"],
            )
    except DatabaseError as exc:
        logger.exception("Failed to post inventory transaction")
        raise errors.PersistenceError() from exc

    logger.info(
        "Inventory %s %s %s for ingredient %s (bakery %s)",
        posting.transaction.type,
        posting.transaction.quantity,
        posting.transaction.unit,
        posting.transaction.ingredient_id,
        ctx.bakery_id,
    )
    return posting.transaction


def post_usage(
    ctx: TenantContext,
    ingredient: Ingredient,
    quantity: Decimal,
    *,
    notes: str = "",
    bake_sheet=None,
    production_sheet=None,
) -> Posting:
    """Append a USE already expressed in the ingredient unit.

    Must run inside the caller's atomic block. Production is allowed to drive
    stock below zero; the uncovered part is returned as ``shortfall``.
    """
    ingredient = _lock_ingredient(ctx, ingredient.pk)
    return _append(
        ctx,
        ingredient,
        tx_type=InventoryTransaction.TYPE_USE,
        direction=InventoryTransaction.DIRECTION_OUT,
        quantity=quantize(quantity),
        notes=notes,
        bake_sheet=bake_sheet,
        production_sheet=production_sheet,
    )


def list_transactions(
    ctx: TenantContext,
    type: str | None = None,
    ingredient_id=None,
    date_from=None,
    date_to=None,
    limit: int | None = None,
):
    params = {
        "type": type,
        "ingredient_id": ingredient_id,
        "date_from": date_from,
        "date_to": date_to,
    }
    params = {key: value for key, value in params.items() if value not in (None, "")}
    base = scoped(InventoryTransaction.objects.select_related("ingredient"), ctx)
    filterset = InventoryTransactionFilter(data=params, queryset=base)
    if not filterset.is_valid():
        raise errors.ValidationError({key: [str(m) for m in msgs] for key, msgs in filterset.errors.items()})

    if limit is None:
        limit = settings.INVENTORY_TRANSACTIONS_DEFAULT_LIMIT
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise errors.ValidationError.for_field("limit", "Limit must be a number.")
    limit = min(max(limit, 1), MAX_LIST_LIMIT)
    return list(filterset.qs.order_by("-id")[:limit])


def add_inventory_lot(ctx: TenantContext, data: dict) -> InventoryLot:
    """Record a purchase: one costed lot plus its RECEIVE transaction."""
    cleaned = validate_add_inventory_lot(data)
    vendor = None
    if cleaned.get("vendor_id"):
        vendor = get_scoped(Vendor, ctx, cleaned["vendor_id"], entity="Vendor")

    try:
        with transaction.atomic():
            ingredient = _lock_ingredient(ctx, cleaned["ingredient_id"])
            unit = cleaned["unit"].strip()
            quantity = _to_ingredient_unit(ingredient, cleaned["quantity"], unit)
            lot = InventoryLot.objects.create(
                bakery=ctx.bakery,
                ingredient=ingredient,
                vendor=vendor,
                purchase_qty=cleaned["quantity"],
                remaining_qty=cleaned["quantity"],
                purchase_unit=unit,
                cost_per_unit=cleaned["cost_per_unit"],
                purchased_at=cleaned.get("purchased_at") or timezone.now(),
                expires_at=cleaned.get("expires_at"),
                notes=cleaned.get("notes") or "",
                created_by=ctx.user if getattr(ctx.user, "is_authenticated", False) else None,
            )
            _append(
                ctx,
                ingredient,
                tx_type=InventoryTransaction.TYPE_RECEIVE,
                direction=InventoryTransaction.DIRECTION_IN,
                quantity=quantity,
                notes=f"Lot #{lot.id}",
                lot=lot,
            )
            qty_label = f"{format_quantity(cleaned['quantity'])} {unit}"
            log_event(
                ctx.user,
                ActivityLog.ACTION_CREATE,
                "inventory_lot",
                lot.id,
                bakery=ctx.bakery,
                entity_name=f"{ingredient.name} - {qty_label}",
                description=(
                    f'Added {qty_label} of "{ingredient.name}" at '
                    f"{format_currency(cleaned['cost_per_unit'])}/{unit}"
                ),
                metadata={
                    "ingredient_id": ingredient.id,
                    "quantity": str(cleaned["quantity"]),
                    "unit": unit,
                    "cost_per_unit": str(cleaned["cost_per_unit"]),
                    "vendor_id": vendor.id if vendor else None,
                },
            )
    except DatabaseError as exc:
        logger.exception("Failed to add inventory lot")
        raise errors.PersistenceError() from exc
    return lot


def update_inventory_lot(ctx: TenantContext, lot_id, data: dict) -> InventoryLot:
    cleaned = validate_update_inventory_lot({**(data or {}), "id": lot_id})
    lot = get_scoped(live_lots().select_related("ingredient"), ctx, cleaned["id"], entity="Lot")
    update_fields = []
    if "vendor_id" in cleaned:
        vendor_id = cleaned["vendor_id"]
        lot.vendor = get_scoped(Vendor, ctx, vendor_id, entity="Vendor") if vendor_id else None
        update_fields.append("vendor")
    if "expires_at" in cleaned:
        lot.expires_at = cleaned["expires_at"]
        update_fields.append("expires_at")
    if "notes" in cleaned:
        lot.notes = cleaned["notes"] or ""
        update_fields.append("notes")
    if not update_fields:
        return lot

    try:
        with transaction.atomic():
            lot.save(update_fields=update_fields)
            log_event(
                ctx.user,
                ActivityLog.ACTION_UPDATE,
                "inventory_lot",
                lot.id,
                bakery=ctx.bakery,
                entity_name=str(lot.ingredient.name),
                description=f'Updated lot #{lot.id} of "{lot.ingredient.name}"',
                metadata={"updated_fields": update_fields},
            )
    except DatabaseError as exc:
        logger.exception("Failed to update inventory lot %s", lot.id)
        raise errors.PersistenceError() from exc
    return lot


def delete_inventory_lot(ctx: TenantContext, lot_id) -> None:
    """Retire an unused lot, posting an ADJUST OUT for what it still holds.

    The row is kept so the RECEIVE that created it is never rewritten.
    """
    lot = get_scoped(live_lots(), ctx, lot_id, entity="Lot")
    try:
        with transaction.atomic():
            ingredient = _lock_ingredient(ctx, lot.ingredient_id)
            lot = live_lots().select_for_update().get(pk=lot.pk)
            if lot.usages.exists():
                raise errors.StateConflictError("Lots with recorded usage cannot be deleted.")
            if lot.remaining_qty > 0:
                factor = conversion_factor(lot.purchase_unit, ingredient.unit) or Decimal("1")
                _append(
                    ctx,
                    ingredient,
                    tx_type=InventoryTransaction.TYPE_ADJUST,
                    direction=InventoryTransaction.DIRECTION_OUT,
                    quantity=quantize(Decimal(lot.remaining_qty) * factor),
                    notes=f"Lot #{lot.id} deleted",
                    lot=lot,
                    consume_lots=False,
                )
            lot.remaining_qty = ZERO
            lot.retired_at = timezone.now()
            lot.save(update_fields=["remaining_qty", "retired_at"])
            log_event(
                ctx.user,
                ActivityLog.ACTION_DELETE,
                "inventory_lot",
                lot.pk,
                bakery=ctx.bakery,
                entity_name=ingredient.name,
                description=f'Deleted lot #{lot.id} of "{ingredient.name}"',
            )
    except DatabaseError as exc:
        logger.exception("Failed to delete inventory lot %s", lot_id)
        raise errors.PersistenceError() from exc


def _open_lots(ctx: TenantContext):
    return scoped(live_lots().select_related("ingredient", "vendor"), ctx).filter(remaining_qty__gt=0)


def get_inventory_summary(ctx: TenantContext, ingredient_id) -> InventorySummary:
    ingredient = get_scoped(Ingredient, ctx, ingredient_id, entity="Ingredient")
    lots = list(_open_lots(ctx).filter(ingredient=ingredient).order_by("purchased_at", "id"))
    return InventorySummary(
        ingredient=ingredient,
        unit=ingredient.unit,
        stock=_fold_stock(ingredient),
        lot_quantity=total_quantity(lots, ingredient.unit),
        average_cost=weighted_average_cost(lots, ingredient.unit),
        total_value=total_value(lots),
        lots=lots,
    )


def expiring_lots(ctx: TenantContext, within_days: int | None = None) -> list[InventoryLot]:
    if within_days is None:
        within_days = settings.INVENTORY_EXPIRING_WITHIN_DAYS
    cutoff = timezone.now() + timedelta(days=int(within_days))
    return list(_open_lots(ctx).filter(expires_at__isnull=False, expires_at__lte=cutoff).order_by("expires_at", "id"))


def expired_lots(ctx: TenantContext) -> list[InventoryLot]:
    return list(_open_lots(ctx).filter(expires_at__lt=timezone.now()).order_by("expires_at", "id"))


def check_inventory_levels(ctx: TenantContext, requirements: Iterable) -> list[StockWarning]:
    """Warn about requirements the open lots cannot cover.

    Each requirement needs ``ingredient``, ``quantity`` and ``unit``.
    """
    warnings = []
    for req in requirements:
        ingredient = req.ingredient
        if ingredient.bakery_id != ctx.bakery_id:
            raise errors.NotFoundError("Ingredient")
        lots = list(_open_lots(ctx).filter(ingredient=ingredient))
        plan = plan_fifo_usage(lots, req.quantity, req.unit)
        if plan.has_shortfall:
            warnings.append(
                StockWarning(
                    ingredient_id=ingredient.id,
                    ingredient_name=ingredient.name,
                    required=plan.requested,
                    available=plan.fulfilled,
                    shortfall=plan.shortfall,
                    unit=req.unit,
                )
            )
    return warnings
