import threading
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings

from catalog.models import Ingredient, seed_basic_units
from core import errors
from core.models import ActivityLog, Bakery
from core.tenancy import TenantContext
from inventory.models import InventoryTransaction
from inventory.services import add_inventory_lot, get_current_stock, post_transaction
from recipes.models import BakeSheet, ProductionSheet, Recipe, SheetStatus
from recipes.serializers import validate_create_bake_sheet
from recipes.services import (
    add_recipe_to_sheet,
    complete_bake_sheet,
    complete_production_sheet,
    create_bake_sheet,
    create_production_sheet,
    create_recipe,
    delete_bake_sheet,
    delete_recipe,
    estimated_cost,
    remove_recipe_from_sheet,
    scaled_ingredients,
    update_bake_sheet,
    update_production_sheet,
    update_recipe,
    update_recipe_on_sheet,
)
from recipes.utils.scaling import aggregate_requirements


class BakeryFixtureMixin:
    def make_fixture(self):
        self.user = get_user_model().objects.create_user(username="baker", password="test12345")
        self.bakery = Bakery.objects.create(name="Main Street")
        self.ctx = TenantContext(bakery=self.bakery, user=self.user)
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")
        self.sugar = Ingredient.objects.create(bakery=self.bakery, name="Sugar", unit="g")

    def receive(self, ingredient, quantity, unit="g"):
        return post_transaction(
            self.ctx,
            {
                "bakery_id": self.bakery.id,
                "ingredient_id": ingredient.id,
                "type": "RECEIVE",
                "quantity": str(quantity),
                "unit": unit,
            },
        )

    def make_recipe(self, name="Sweet Bread", lines=None):
        lines = lines or [(self.flour, "10", "g"), (self.sugar, "2", "g")]
        return create_recipe(
            self.ctx,
            {
                "bakery_id": self.bakery.id,
                "name": name,
                "yield_qty": 1,
                "yield_unit": "loaf",
                "sections": [
                    {
                        "name": "Dough",
                        "order": 0,
                        "ingredients": [
                            {"ingredient_id": ingredient.id, "quantity": qty, "unit": unit}
                            for ingredient, qty, unit in lines
                        ],
                    }
                ],
            },
        )

    def dough(self, ingredient, quantity, unit="g"):
        return [
            {
                "name": "Dough",
                "order": 0,
                "ingredients": [{"ingredient_id": ingredient.id, "quantity": quantity, "unit": unit}],
            }
        ]

    def make_bake_sheet(self, recipe, scale="2.5", quantity="2 loaves"):
        return create_bake_sheet(
            self.ctx,
            {"bakery_id": self.bakery.id, "recipe_id": recipe.id, "scale": scale, "quantity": quantity},
        )


class RecipeServiceTests(BakeryFixtureMixin, TestCase):
    def setUp(self):
        seed_basic_units()
        self.make_fixture()

    def test_create_recipe_with_sections(self):
        recipe = self.make_recipe()
        section = recipe.sections.get()
        self.assertEqual(section.name, "Dough")
        self.assertEqual(section.ingredients.count(), 2)
        self.assertTrue(ActivityLog.objects.filter(entity_type="recipe", entity_id=str(recipe.id)).exists())

    def test_recipe_needs_a_section(self):
        with self.assertRaises(errors.ValidationError) as raised:
            create_recipe(
                self.ctx,
                {"bakery_id": self.bakery.id, "name": "Empty", "yield_qty": 1, "yield_unit": "loaf", "sections": []},
            )
        self.assertIn("sections", raised.exception.errors)

    def test_ingredient_from_another_bakery_is_not_found(self):
        elsewhere = Bakery.objects.create(name="Harbor")
        foreign = Ingredient.objects.create(bakery=elsewhere, name="Salt", unit="g")
        with self.assertRaises(errors.NotFoundError):
            self.make_recipe(lines=[(foreign, "1", "g")])

    def test_update_recipe_metadata_and_sections(self):
        recipe = self.make_recipe()
        updated = update_recipe(
            self.ctx,
            recipe.id,
            {
                "name": "Sweet Rolls",
                "yield_qty": 12,
                "sections": self.dough(self.flour, "50"),
            },
        )
        self.assertEqual(updated.name, "Sweet Rolls")
        self.assertEqual(updated.yield_qty, 12)
        line = updated.sections.get().ingredients.get()
        self.assertEqual((line.ingredient_id, line.quantity), (self.flour.id, Decimal("50")))
        entry = ActivityLog.objects.get(action=ActivityLog.ACTION_UPDATE, entity_id=str(recipe.id))
        self.assertEqual(entry.metadata["updated_fields"], ["name", "yield_qty", "sections"])

    def test_completed_sheet_freezes_recipe_ingredients(self):
        self.receive(self.flour, 1000)
        self.receive(self.sugar, 1000)
        recipe = self.make_recipe()
        complete_bake_sheet(self.ctx, self.make_bake_sheet(recipe, scale="1").id)
        with self.assertRaises(errors.StateConflictError):
            update_recipe(self.ctx, recipe.id, {"sections": self.dough(self.sugar, "1")})
        self.assertEqual(recipe.sections.get().ingredients.count(), 2)
        # Metadata stays editable.
        self.assertEqual(update_recipe(self.ctx, recipe.id, {"description": "house loaf"}).description, "house loaf")

    def test_draft_sheet_does_not_freeze_recipe(self):
        recipe = self.make_recipe()
        self.make_bake_sheet(recipe, scale="1")
        update_recipe(self.ctx, recipe.id, {"sections": self.dough(self.sugar, "3")})
        lines = recipe.sections.get().ingredients.values_list("ingredient_id", flat=True)
        self.assertEqual(list(lines), [self.sugar.id])

    def test_update_recipe_rejects_blank_name(self):
        recipe = self.make_recipe()
        with self.assertRaises(errors.ValidationError) as raised:
            update_recipe(self.ctx, recipe.id, {"name": ""})
        self.assertIn("name", raised.exception.errors)

    def test_delete_recipe(self):
        recipe = self.make_recipe()
        delete_recipe(self.ctx, recipe.id)
        self.assertFalse(Recipe.objects.filter(pk=recipe.pk).exists())
        self.assertTrue(ActivityLog.objects.filter(action=ActivityLog.ACTION_DELETE, entity_type="recipe").exists())

    def test_delete_recipe_on_a_sheet_is_refused(self):
        recipe = self.make_recipe()
        self.make_bake_sheet(recipe, scale="1")
        with self.assertRaises(errors.StateConflictError):
            delete_recipe(self.ctx, recipe.id)
        self.assertTrue(Recipe.objects.filter(pk=recipe.pk).exists())

    def test_delete_recipe_from_another_bakery_is_not_found(self):
        recipe = self.make_recipe()
        other_ctx = TenantContext(bakery=Bakery.objects.create(name="Harbor"), user=self.user)
        with self.assertRaises(errors.NotFoundError):
            delete_recipe(other_ctx, recipe.id)


class ScalingTests(BakeryFixtureMixin, TestCase):
    def setUp(self):
        seed_basic_units()
        self.make_fixture()

    def test_scale_bounds(self):
        base = {"bakery_id": self.bakery.id, "recipe_id": 1, "quantity": "1 batch"}
        for scale, message in (("0", "Scale must be positive."), ("-1", "Scale must be positive."), ("101", "Scale too large.")):
            with self.subTest(scale=scale):
                with self.assertRaises(errors.ValidationError) as raised:
                    validate_create_bake_sheet({**base, "scale": scale})
                self.assertEqual(raised.exception.errors["scale"], [message])
        self.assertEqual(validate_create_bake_sheet({**base, "scale": "100"})["scale"], Decimal("100"))

    def test_quantity_description_bounds(self):
        base = {"bakery_id": self.bakery.id, "recipe_id": 1, "scale": "1"}
        with self.assertRaises(errors.ValidationError) as raised:
            validate_create_bake_sheet({**base, "quantity": ""})
        self.assertEqual(raised.exception.errors["quantity"], ["Quantity description is required."])
        with self.assertRaises(errors.ValidationError) as raised:
            validate_create_bake_sheet({**base, "quantity": "x" * 101})
        self.assertEqual(raised.exception.errors["quantity"], ["Quantity description too long."])

    def test_scaled_lines_do_not_touch_recipe(self):
        recipe = self.make_recipe()
        sheet = self.make_bake_sheet(recipe)
        lines = scaled_ingredients(sheet)
        self.assertEqual([(l.ingredient.name, l.quantity) for l in lines], [("Flour", Decimal("25")), ("Sugar", Decimal("5"))])
        self.assertEqual(lines[0].display_quantity, "25")
        self.assertEqual(
            sorted(recipe.sections.get().ingredients.values_list("quantity", flat=True)),
            [Decimal("2"), Decimal("10")],
        )

    def test_requirements_convert_to_ingredient_unit(self):
        recipe = self.make_recipe(lines=[(self.flour, "0.5", "kg"), (self.flour, "100", "g")])
        sheet = self.make_bake_sheet(recipe, scale="2")
        requirements = aggregate_requirements(scaled_ingredients(sheet))
        self.assertEqual(len(requirements), 1)
        self.assertEqual(requirements[0].quantity, Decimal("1200"))
        self.assertEqual(requirements[0].unit, "g")
        self.assertTrue(requirements[0].convertible)

    def test_estimated_cost_uses_average_lot_cost(self):
        recipe = self.make_recipe(lines=[(self.flour, "100", "g")])
        sheet = self.make_bake_sheet(recipe, scale="1")
        add_inventory_lot(self.ctx, {"ingredient_id": self.flour.id, "quantity": "1", "unit": "kg", "cost_per_unit": "3"})
        requirements = aggregate_requirements(scaled_ingredients(sheet))
        self.assertEqual(estimated_cost(self.ctx, requirements), Decimal("0.3"))


class BakeSheetLifecycleTests(BakeryFixtureMixin, TestCase):
    def setUp(self):
        seed_basic_units()
        self.make_fixture()
        self.receive(self.flour, 1000)
        self.receive(self.sugar, 1000)
        self.recipe = self.make_recipe()

    def test_completion_posts_scaled_usage(self):
        sheet = self.make_bake_sheet(self.recipe)
        result = complete_bake_sheet(self.ctx, sheet.id)

        self.assertEqual(result.sheet.status, SheetStatus.COMPLETED)
        self.assertIsNotNone(result.sheet.completed_at)
        self.assertEqual(result.sheet.completed_by, self.user)
        usage = {tx.ingredient_id: tx.quantity for tx in result.transactions}
        self.assertEqual(usage, {self.flour.id: Decimal("25"), self.sugar.id: Decimal("5")})
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("975"))
        self.assertEqual(get_current_stock(self.ctx, self.sugar.id), Decimal("995"))
        tx = InventoryTransaction.objects.get(bake_sheet=sheet, ingredient=self.flour)
        self.assertEqual(tx.type, InventoryTransaction.TYPE_USE)
        self.assertEqual(tx.notes, "Used for bake sheet: 2 loaves of Sweet Bread")
        self.assertTrue(ActivityLog.objects.filter(action=ActivityLog.ACTION_COMPLETE, entity_id=str(sheet.id)).exists())

    def test_second_completion_fails_and_ledger_is_unchanged(self):
        sheet = self.make_bake_sheet(self.recipe)
        complete_bake_sheet(self.ctx, sheet.id)
        before = list(InventoryTransaction.objects.values_list("id", flat=True))
        with self.assertRaises(errors.AlreadyCompletedError):
            complete_bake_sheet(self.ctx, sheet.id)
        self.assertEqual(list(InventoryTransaction.objects.values_list("id", flat=True)), before)

    def test_completed_sheet_is_read_only(self):
        sheet = self.make_bake_sheet(self.recipe)
        complete_bake_sheet(self.ctx, sheet.id)
        with self.assertRaises(errors.NotDraftError):
            update_bake_sheet(self.ctx, sheet.id, {"scale": "3"})
        with self.assertRaises(errors.NotDraftError):
            delete_bake_sheet(self.ctx, sheet.id)
        sheet.refresh_from_db()
        self.assertEqual(sheet.scale, Decimal("2.5"))

    def test_update_and_delete_draft(self):
        sheet = self.make_bake_sheet(self.recipe)
        updated = update_bake_sheet(self.ctx, sheet.id, {"scale": "4", "notes": "extra crusty"})
        self.assertEqual(updated.scale, Decimal("4"))
        self.assertEqual(updated.notes, "extra crusty")
        with self.assertRaises(errors.ValidationError):
            update_bake_sheet(self.ctx, sheet.id, {"scale": "101"})
        delete_bake_sheet(self.ctx, sheet.id)
        self.assertFalse(BakeSheet.objects.filter(pk=sheet.pk).exists())

    def test_other_bakery_cannot_complete(self):
        sheet = self.make_bake_sheet(self.recipe)
        other_ctx = TenantContext(bakery=Bakery.objects.create(name="Harbor"), user=self.user)
        with self.assertRaises(errors.NotFoundError):
            complete_bake_sheet(other_ctx, sheet.id)
        with self.assertRaises(errors.NotFoundError):
            complete_bake_sheet(self.ctx, 999999)
        sheet.refresh_from_db()
        self.assertEqual(sheet.status, SheetStatus.DRAFT)

    @override_settings(BAKERY_ALLOW_BAKE_SHEET_SHORTFALL=True)
    def test_shortfall_is_reported_when_allowed(self):
        sheet = self.make_bake_sheet(self.recipe, scale="100")
        result = complete_bake_sheet(self.ctx, sheet.id)
        self.assertEqual(get_current_stock(self.ctx, self.sugar.id), Decimal("800"))
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("0"))
        self.assertEqual(result.shortfalls, [])

        again = self.make_bake_sheet(self.recipe, scale="1")
        result = complete_bake_sheet(self.ctx, again.id)
        self.assertEqual([s.ingredient_name for s in result.shortfalls], ["Flour"])
        self.assertEqual(result.shortfalls[0].shortfall, Decimal("10"))
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("-10"))

    def test_shortfall_rolls_back_by_default(self):
        sheet = self.make_bake_sheet(self.recipe, scale="100")
        big = self.make_bake_sheet(self.make_recipe(name="Big Batch", lines=[(self.flour, "20", "g")]), scale="60")
        before = InventoryTransaction.objects.count()
        with self.assertRaises(errors.ValidationError) as raised:
            complete_bake_sheet(self.ctx, big.id)
        self.assertIn("ingredients", raised.exception.errors)
        big.refresh_from_db()
        self.assertEqual(big.status, SheetStatus.DRAFT)
        self.assertEqual(InventoryTransaction.objects.count(), before)
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("1000"))
        # A sheet the stock covers still completes.
        complete_bake_sheet(self.ctx, sheet.id)

    def test_sheet_without_any_stock_stays_draft(self):
        yeast = Ingredient.objects.create(bakery=self.bakery, name="Yeast", unit="g")
        sheet = self.make_bake_sheet(self.make_recipe(name="Brioche", lines=[(yeast, "7", "g")]), scale="1")
        before = InventoryTransaction.objects.count()
        with self.assertRaises(errors.ValidationError) as raised:
            complete_bake_sheet(self.ctx, sheet.id)
        self.assertEqual(
            raised.exception.errors["ingredients"],
            ["Insufficient inventory for Yeast: need 7 g, have 0 g."],
        )
        sheet.refresh_from_db()
        self.assertEqual(sheet.status, SheetStatus.DRAFT)
        self.assertEqual(InventoryTransaction.objects.count(), before)
        self.assertEqual(get_current_stock(self.ctx, yeast.id), Decimal("0"))

    def test_unconvertible_recipe_unit_blocks_completion(self):
        recipe = self.make_recipe(name="Cups", lines=[(self.flour, "2", "cup")])
        sheet = self.make_bake_sheet(recipe, scale="1")
        with self.assertRaises(errors.ValidationError) as raised:
            complete_bake_sheet(self.ctx, sheet.id)
        self.assertIn("cannot be converted", raised.exception.errors["ingredients"][0])
        sheet.refresh_from_db()
        self.assertEqual(sheet.status, SheetStatus.DRAFT)


class ProductionSheetTests(BakeryFixtureMixin, TestCase):
    def setUp(self):
        seed_basic_units()
        self.make_fixture()
        self.receive(self.flour, 5, unit="kg")
        self.receive(self.sugar, 5, unit="kg")
        self.bread = self.make_recipe()
        self.cookies = self.make_recipe(name="Cookies", lines=[(self.flour, "0.1", "kg")])

    def _create(self, *entries):
        return create_production_sheet(
            self.ctx,
            {
                "bakery_id": self.bakery.id,
                "description": "Saturday market",
                "recipes": [{"recipe_id": recipe.id, "scale": scale} for recipe, scale in entries],
            },
        )

    def test_requires_at_least_one_recipe(self):
        with self.assertRaises(errors.ValidationError) as raised:
            create_production_sheet(self.ctx, {"bakery_id": self.bakery.id, "recipes": []})
        self.assertIn("recipes", raised.exception.errors)

    def test_duplicate_recipe_is_rejected(self):
        with self.assertRaises(errors.ValidationError):
            self._create((self.bread, "1"), (self.bread, "2"))
        self.assertFalse(ProductionSheet.objects.exists())

    def test_completion_aggregates_per_ingredient(self):
        sheet = self._create((self.bread, "2"), (self.cookies, "3"))
        result = complete_production_sheet(self.ctx, sheet.id)
        usage = {tx.ingredient_id: tx.quantity for tx in result.transactions}
        # 10 g x 2 + 0.1 kg x 3
        self.assertEqual(usage, {self.flour.id: Decimal("320"), self.sugar.id: Decimal("4")})
        self.assertEqual([tx.ingredient_id for tx in result.transactions], sorted(usage))
        tx = InventoryTransaction.objects.get(production_sheet=sheet, ingredient=self.flour)
        self.assertEqual(tx.notes, "Used for production sheet: Sweet Bread, Cookies")
        with self.assertRaises(errors.AlreadyCompletedError):
            complete_production_sheet(self.ctx, sheet.id)

    def test_production_shortfall_is_tolerated(self):
        sheet = self._create((self.cookies, "60"))
        result = complete_production_sheet(self.ctx, sheet.id)
        self.assertEqual(result.sheet.status, SheetStatus.COMPLETED)
        self.assertEqual(result.shortfalls[0].shortfall, Decimal("1000"))
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("-1000"))
        tx = InventoryTransaction.objects.get(production_sheet=sheet)
        self.assertEqual(tx.shortfall, Decimal("1000"))

    @override_settings(BAKERY_ALLOW_PRODUCTION_SHORTFALL=False)
    def test_production_shortfall_can_be_rejected(self):
        sheet = self._create((self.cookies, "60"))
        with self.assertRaises(errors.ValidationError):
            complete_production_sheet(self.ctx, sheet.id)
        sheet.refresh_from_db()
        self.assertEqual(sheet.status, SheetStatus.DRAFT)
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("5000"))

    def test_recipe_entries_while_draft(self):
        sheet = self._create((self.bread, "1"))
        entry = add_recipe_to_sheet(self.ctx, {"production_sheet_id": sheet.id, "recipe_id": self.cookies.id, "scale": "2"})
        self.assertEqual(entry.order, 1)
        with self.assertRaises(errors.ValidationError):
            add_recipe_to_sheet(self.ctx, {"production_sheet_id": sheet.id, "recipe_id": self.cookies.id, "scale": "1"})

        entry = update_recipe_on_sheet(self.ctx, {"production_sheet_id": sheet.id, "recipe_id": self.cookies.id, "scale": "4"})
        self.assertEqual(entry.scale, Decimal("4"))

        remove_recipe_from_sheet(self.ctx, {"production_sheet_id": sheet.id, "recipe_id": self.bread.id})
        self.assertEqual(list(sheet.entries.values_list("recipe_id", flat=True)), [self.cookies.id])
        with self.assertRaises(errors.ValidationError):
            remove_recipe_from_sheet(self.ctx, {"production_sheet_id": sheet.id, "recipe_id": self.cookies.id})

    def test_update_replaces_recipe_list(self):
        sheet = self._create((self.bread, "1"))
        update_production_sheet(self.ctx, sheet.id, {"notes": "bring crates", "recipes": [{"recipe_id": self.cookies.id, "scale": "5"}]})
        sheet.refresh_from_db()
        self.assertEqual(sheet.notes, "bring crates")
        self.assertEqual([(e.recipe_id, e.scale) for e in sheet.entries.all()], [(self.cookies.id, Decimal("5"))])

    def test_completed_sheet_entries_are_locked(self):
        sheet = self._create((self.bread, "1"))
        complete_production_sheet(self.ctx, sheet.id)
        with self.assertRaises(errors.NotDraftError):
            add_recipe_to_sheet(self.ctx, {"production_sheet_id": sheet.id, "recipe_id": self.cookies.id, "scale": "1"})
        with self.assertRaises(errors.NotDraftError):
            update_production_sheet(self.ctx, sheet.id, {"notes": "late"})


class ConcurrentCompletionTests(BakeryFixtureMixin, TransactionTestCase):
    def setUp(self):
        self.make_fixture()
        self.receive(self.flour, 1000)
        self.receive(self.sugar, 1000)
        self.sheet = self.make_bake_sheet(self.make_recipe())

    def test_only_one_completion_wins(self):
        outcomes = []
        barrier = threading.Barrier(2)

        def worker():
            try:
                barrier.wait()
                complete_bake_sheet(self.ctx, self.sheet.id)
                outcomes.append("ok")
            except errors.StateConflictError:
                outcomes.append("conflict")
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ["conflict", "ok"])
        self.assertEqual(InventoryTransaction.objects.filter(bake_sheet=self.sheet).count(), 2)
        self.assertEqual(get_current_stock(self.ctx, self.flour.id), Decimal("975"))
