from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.db import transaction
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from catalog.models import Ingredient, Vendor, seed_basic_units
from core import errors
from core.models import ActivityLog, Bakery
from core.tenancy import TenantContext
from inventory.models import InventoryLot, InventoryTransaction, InventoryUsage
from inventory.services import (
    add_inventory_lot,
    check_inventory_levels,
    delete_inventory_lot,
    expired_lots,
    expiring_lots,
    get_current_stock,
    get_inventory_summary,
    list_transactions,
    live_lots,
    post_transaction,
    post_usage,
    signed_delta,
    update_inventory_lot,
)
from inventory.utils.fifo import plan_fifo_usage, weighted_average_cost


def _at(day: int) -> datetime:
    return datetime(2020, 1, day, 8, 0, tzinfo=dt_timezone.utc)


class FifoHelpersTests(SimpleTestCase):
    def _lot(self, pk, day, remaining, unit="g", cost="0"):
        return SimpleNamespace(
            pk=pk,
            purchased_at=_at(day),
            remaining_qty=Decimal(remaining),
            purchase_unit=unit,
            cost_per_unit=Decimal(cost),
        )

    def test_oldest_lot_is_drawn_first(self):
        newer = self._lot(2, 5, "100")
        older = self._lot(1, 1, "50")
        plan = plan_fifo_usage([newer, older], Decimal("80"), "g")
        self.assertEqual([d.lot.pk for d in plan.draws], [1, 2])
        self.assertEqual([d.quantity for d in plan.draws], [Decimal("50"), Decimal("30")])
        self.assertFalse(plan.has_shortfall)

    def test_same_timestamp_orders_by_id(self):
        plan = plan_fifo_usage([self._lot(9, 1, "10"), self._lot(3, 1, "10")], Decimal("5"), "g")
        self.assertEqual(plan.draws[0].lot.pk, 3)

    def test_shortfall_when_lots_run_out(self):
        plan = plan_fifo_usage([self._lot(1, 1, "40")], Decimal("100"), "g")
        self.assertEqual(plan.fulfilled, Decimal("40"))
        self.assertEqual(plan.shortfall, Decimal("60"))

    def test_weighted_average_cost(self):
        lots = [self._lot(1, 1, "100", cost="0.002"), self._lot(2, 2, "300", cost="0.004")]
        self.assertEqual(weighted_average_cost(lots, "g"), Decimal("0.0035"))
        self.assertEqual(weighted_average_cost([], "g"), Decimal("0"))

    def test_signed_delta(self):
        self.assertEqual(signed_delta("RECEIVE", "IN", "5"), Decimal("5"))
        self.assertEqual(signed_delta("USE", "OUT", "5"), Decimal("-5"))
        self.assertEqual(signed_delta("WASTE", "OUT", "2"), Decimal("-2"))
        self.assertEqual(signed_delta("ADJUST", "IN", "1"), Decimal("1"))
        self.assertEqual(signed_delta("ADJUST", "OUT", "1"), Decimal("-1"))
        with self.assertRaises(ValueError):
            signed_delta("TRANSFER", "IN", "1")


class InventoryLedgerTests(TestCase):
    def setUp(self):
        seed_basic_units()
        self.user = get_user_model().objects.create_user(username="manager", password="test12345")
        self.bakery = Bakery.objects.create(name="Main Street")
        self.other = Bakery.objects.create(name="Harbor")
        self.ctx = TenantContext(bakery=self.bakery, user=self.user)
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")

    def _post(self, tx_type, quantity, unit="g", **extra):
        data = {
            "bakery_id": self.bakery.id,
            "ingredient_id": self.flour.id,
            "type": tx_type,
            "quantity": str(quantity),
            "unit": unit,
        }
        data.update(extra)
        return post_transaction(self.ctx, data)

    def test_receive_converts_to_ingredient_unit(self):
        tx = self._post("RECEIVE", "1.5", unit="kg")
        self.assertEqual(tx.direction, InventoryTransaction.DIRECTION_IN)
        self.assertEqual(tx.quantity, Decimal("1500"))
        self.assertEqual(tx.unit, "g")
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("1500"))
        # Uncosted lot keeps lots and ledger in step.
        self.assertIsNotNone(tx.lot)
        self.assertEqual(tx.lot.remaining_qty, Decimal("1500"))
        self.assertEqual(tx.lot.cost_per_unit, Decimal("0"))
        self.assertTrue(ActivityLog.objects.filter(action="RECEIVE", entity_id=str(tx.id)).exists())

    def test_out_beyond_stock_is_rejected_and_ledger_unchanged(self):
        self._post("RECEIVE", "100")
        with self.assertRaises(errors.ValidationError) as raised:
            self._post("WASTE", "150")
        self.assertIn("Insufficient inventory", raised.exception.errors["quantity"][0])
        self.assertEqual(InventoryTransaction.objects.filter(ingredient=self.flour).count(), 1)
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("100"))

    def test_out_down_to_exactly_zero_is_allowed(self):
        self._post("RECEIVE", "100")
        self._post("USE", "100")
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("0"))

    def test_adjust_requires_direction(self):
        with self.assertRaises(errors.ValidationError) as raised:
            self._post("ADJUST", "10")
        self.assertEqual(raised.exception.errors["direction"], ["Direction is required for adjustments."])

    def test_fixed_direction_cannot_be_overridden(self):
        with self.assertRaises(errors.ValidationError) as raised:
            self._post("RECEIVE", "10", direction="OUT")
        self.assertIn("direction", raised.exception.errors)

    def test_adjust_in_and_out(self):
        self._post("ADJUST", "40", direction="IN")
        self._post("ADJUST", "15", direction="OUT")
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("25"))

    def test_invalid_input_reports_fields(self):
        with self.assertRaises(errors.ValidationError) as raised:
            self._post("STEAL", "-1", unit="")
        self.assertEqual(raised.exception.errors["type"], ["Invalid transaction type."])
        self.assertEqual(raised.exception.errors["quantity"], ["Quantity must be positive."])
        self.assertEqual(raised.exception.errors["unit"], ["Unit is required."])

    def test_incompatible_unit_is_rejected(self):
        with self.assertRaises(errors.ValidationError) as raised:
            self._post("RECEIVE", "1", unit="cup")
        self.assertIn("unit", raised.exception.errors)

    def test_stock_as_of_transaction_cutoff(self):
        first = self._post("RECEIVE", "1000")
        self._post("USE", "300")
        self.assertEqual(get_current_stock(self.ctx, self.flour.id, as_of=first.id), Decimal("1000"))
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("700"))
        with self.assertRaises(errors.ValidationError):
            get_current_stock(self.ctx, self.flour.id, as_of="yesterday")

    def test_other_bakery_cannot_touch_ingredient(self):
        other_ctx = TenantContext(bakery=self.other, user=self.user)
        with self.assertRaises(errors.NotFoundError):
            post_transaction(
                other_ctx,
                {
                    "bakery_id": self.other.id,
                    "ingredient_id": self.flour.id,
                    "type": "RECEIVE",
                    "quantity": "1",
                    "unit": "g",
                },
            )
        with self.assertRaises(errors.NotFoundError):
            self._post("RECEIVE", "1", bakery_id=self.other.id)
        with self.assertRaises(errors.NotFoundError):
            get_current_stock(other_ctx, self.flour.id)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_list_transactions_filters_and_orders_newest_first(self):
        sugar = Ingredient.objects.create(bakery=self.bakery, name="Sugar", unit="g")
        first = self._post("RECEIVE", "10")
        second = self._post("USE", "5")
        post_transaction(
            self.ctx,
            {"bakery_id": self.bakery.id, "ingredient_id": sugar.id, "type": "RECEIVE", "quantity": "3", "unit": "g"},
        )
        rows = list_transactions(self.ctx, ingredient_id=self.flour.id)
        self.assertEqual([r.id for r in rows], [second.id, first.id])
        rows = list_transactions(self.ctx, type="RECEIVE")
        self.assertEqual(len(rows), 2)
        self.assertEqual(len(list_transactions(self.ctx, limit=1)), 1)
        with self.assertRaises(errors.ValidationError):
            list_transactions(self.ctx, type="STEAL")

    def test_list_transactions_date_range(self):
        tx = self._post("RECEIVE", "10")
        InventoryTransaction.objects.filter(pk=tx.pk).update(created_at=_at(3))
        self._post("RECEIVE", "5")
        rows = list_transactions(self.ctx, date_from="2020-01-01T00:00:00Z", date_to="2020-01-05T00:00:00Z")
        self.assertEqual([r.id for r in rows], [tx.id])


class InventoryLotTests(TestCase):
    def setUp(self):
        seed_basic_units()
        self.user = get_user_model().objects.create_user(username="manager", password="test12345")
        self.bakery = Bakery.objects.create(name="Main Street")
        self.ctx = TenantContext(bakery=self.bakery, user=self.user)
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")
        self.vendor = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")

    def _lot(self, quantity, unit, cost, day, **extra):
        data = {
            "ingredient_id": self.flour.id,
            "quantity": quantity,
            "unit": unit,
            "cost_per_unit": cost,
            "purchased_at": _at(day).isoformat(),
        }
        data.update(extra)
        return add_inventory_lot(self.ctx, data)

    def test_add_lot_posts_receive(self):
        lot = self._lot("2", "kg", "1.80", 1, vendor_id=self.vendor.id)
        tx = InventoryTransaction.objects.get(lot=lot)
        self.assertEqual(tx.type, InventoryTransaction.TYPE_RECEIVE)
        self.assertEqual(tx.quantity, Decimal("2000"))
        self.assertEqual(tx.notes, f"Lot #{lot.id}")
        self.assertEqual(lot.vendor, self.vendor)
        self.assertEqual(InventoryLot.objects.filter(ingredient=self.flour).count(), 1)

    def test_usage_consumes_lots_fifo(self):
        older = self._lot("1", "kg", "2", 1)
        newer = self._lot("500", "g", "0.005", 2)
        tx = post_transaction(
            self.ctx,
            {"bakery_id": self.bakery.id, "ingredient_id": self.flour.id, "type": "USE", "quantity": "1200", "unit": "g"},
        )
        older.refresh_from_db()
        newer.refresh_from_db()
        self.assertEqual(older.remaining_qty, Decimal("0"))
        self.assertEqual(newer.remaining_qty, Decimal("300"))
        usages = list(InventoryUsage.objects.filter(transaction=tx).order_by("id"))
        self.assertEqual([(u.lot_id, u.quantity) for u in usages], [(older.id, Decimal("1")), (newer.id, Decimal("200"))])

    def test_summary_values_open_lots(self):
        self._lot("1", "kg", "2", 1)
        self._lot("500", "g", "0.005", 2)
        summary = get_inventory_summary(self.ctx, self.flour.id)
        self.assertEqual(summary.stock, Decimal("1500"))
        self.assertEqual(summary.lot_quantity, Decimal("1500"))
        self.assertEqual(summary.average_cost, Decimal("0.003"))
        self.assertEqual(summary.total_value, Decimal("4.5"))

    def test_update_lot_metadata(self):
        lot = self._lot("1", "kg", "2", 1)
        expires = timezone.now() + timedelta(days=3)
        updated = update_inventory_lot(self.ctx, lot.id, {"expires_at": expires.isoformat(), "notes": "cold room"})
        self.assertEqual(updated.notes, "cold room")
        self.assertIsNotNone(updated.expires_at)

    def test_delete_unused_lot_posts_compensating_adjustment(self):
        lot = self._lot("1", "kg", "2", 1)
        receipt = InventoryTransaction.objects.get(type=InventoryTransaction.TYPE_RECEIVE)
        delete_inventory_lot(self.ctx, lot.id)
        lot.refresh_from_db()
        self.assertIsNotNone(lot.retired_at)
        self.assertEqual(lot.remaining_qty, Decimal("0"))
        self.assertFalse(live_lots().filter(pk=lot.pk).exists())
        # The receipt still points at its lot.
        receipt.refresh_from_db()
        self.assertEqual(receipt.lot_id, lot.id)
        self.assertEqual(receipt.quantity, Decimal("1000"))
        self.assertEqual(get_inventory_summary(self.ctx, self.flour.id).lots, [])
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("0"))
        adjust = InventoryTransaction.objects.get(type=InventoryTransaction.TYPE_ADJUST)
        self.assertEqual(adjust.direction, InventoryTransaction.DIRECTION_OUT)
        self.assertEqual(adjust.quantity, Decimal("1000"))

    def test_delete_used_lot_is_refused(self):
        lot = self._lot("1", "kg", "2", 1)
        post_transaction(
            self.ctx,
            {"bakery_id": self.bakery.id, "ingredient_id": self.flour.id, "type": "USE", "quantity": "10", "unit": "g"},
        )
        with self.assertRaises(errors.StateConflictError):
            delete_inventory_lot(self.ctx, lot.id)
        self.assertTrue(InventoryLot.objects.filter(pk=lot.pk, retired_at__isnull=True).exists())

    def test_retired_lot_cannot_be_deleted_twice(self):
        lot = self._lot("1", "kg", "2", 1)
        delete_inventory_lot(self.ctx, lot.id)
        with self.assertRaises(errors.NotFoundError):
            delete_inventory_lot(self.ctx, lot.id)
        self.assertEqual(InventoryTransaction.objects.filter(type=InventoryTransaction.TYPE_ADJUST).count(), 1)

    def test_shortfall_is_stored_without_any_lots(self):
        with transaction.atomic():
            posting = post_usage(self.ctx, self.flour, Decimal("300"))
        tx = posting.transaction
        tx.refresh_from_db()
        self.assertEqual(posting.usages, [])
        self.assertEqual(tx.shortfall, Decimal("300"))
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("-300"))

    def test_receipt_after_shortfall_settles_the_deficit(self):
        self._lot("100", "g", "0.002", 1)
        with transaction.atomic():
            usage = post_usage(self.ctx, self.flour, Decimal("400")).transaction
        usage.refresh_from_db()
        self.assertEqual(usage.shortfall, Decimal("300"))

        lot = self._lot("1", "kg", "2", 2)
        lot.refresh_from_db()
        self.assertEqual(lot.remaining_qty, Decimal("0.7"))
        backfill = InventoryUsage.objects.get(lot=lot)
        self.assertTrue(backfill.backfill)
        self.assertEqual(backfill.transaction_id, usage.id)
        self.assertEqual(backfill.quantity, Decimal("0.3"))

        summary = get_inventory_summary(self.ctx, self.flour.id)
        self.assertEqual(summary.stock, Decimal("700"))
        self.assertEqual(summary.lot_quantity, summary.stock)

    def test_partial_receipt_leaves_rest_of_deficit_outstanding(self):
        with transaction.atomic():
            post_usage(self.ctx, self.flour, Decimal("500"))
        first = self._lot("200", "g", "0.002", 1)
        first.refresh_from_db()
        self.assertEqual(first.remaining_qty, Decimal("0"))
        second = self._lot("1", "kg", "2", 2)
        second.refresh_from_db()
        self.assertEqual(second.remaining_qty, Decimal("0.7"))
        summary = get_inventory_summary(self.ctx, self.flour.id)
        self.assertEqual(summary.stock, Decimal("700"))
        self.assertEqual(summary.lot_quantity, Decimal("700"))

    def test_vendor_from_another_bakery_is_not_found(self):
        elsewhere = Bakery.objects.create(name="Harbor")
        vendor = Vendor.objects.create(bakery=elsewhere, name="Harbor Mill")
        with self.assertRaises(errors.NotFoundError):
            self._lot("1", "kg", "2", 1, vendor_id=vendor.id)
        self.assertFalse(InventoryLot.objects.exists())

    def test_expiring_and_expired_lots(self):
        now = timezone.now()
        soon = self._lot("1", "kg", "2", 1, expires_at=(now + timedelta(days=2)).isoformat())
        self._lot("1", "kg", "2", 2, expires_at=(now + timedelta(days=30)).isoformat())
        gone = self._lot("1", "kg", "2", 3, expires_at=(now - timedelta(days=1)).isoformat())
        self.assertEqual([lot.id for lot in expiring_lots(self.ctx, within_days=7)], [gone.id, soon.id])
        self.assertEqual([lot.id for lot in expired_lots(self.ctx)], [gone.id])

    def test_check_inventory_levels_reports_shortfall(self):
        self._lot("1", "kg", "2", 1)
        sugar = Ingredient.objects.create(bakery=self.bakery, name="Sugar", unit="g")
        warnings = check_inventory_levels(
            self.ctx,
            [
                SimpleNamespace(ingredient=self.flour, quantity=Decimal("400"), unit="g"),
                SimpleNamespace(ingredient=sugar, quantity=Decimal("250"), unit="g"),
            ],
        )
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0].ingredient_name, "Sugar")
        self.assertEqual(warnings[0].shortfall, Decimal("250"))
        self.assertEqual(warnings[0].available, Decimal("0"))
