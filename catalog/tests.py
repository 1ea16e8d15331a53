from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase

from catalog.models import Ingredient, IngredientVendor, UnitOfMeasure, Vendor, normalize_name, seed_basic_units
from catalog.services import (
    assign_vendor_to_ingredient,
    create_ingredient,
    create_vendor,
    delete_ingredient,
    delete_vendor,
    ingredient_vendors,
    unassign_vendor_from_ingredient,
    update_ingredient,
    update_vendor,
)
from catalog.units import conversion_factor, convert_quantity, normalize_unit, units_compatible
from core import errors
from core.models import ActivityLog, Bakery
from core.tenancy import TenantContext
from inventory.models import InventoryLot
from inventory.services import add_inventory_lot
from recipes.models import Recipe, RecipeIngredient, RecipeSection


class UnitConversionTests(TestCase):
    def setUp(self):
        seed_basic_units()

    def test_normalize_unit_aliases(self):
        self.assertEqual(normalize_unit(" Grams "), "g")
        self.assertEqual(normalize_unit("Fluid  Ounces"), "fl-oz")
        self.assertEqual(normalize_unit("kg"), "kg")

    def test_same_unit_needs_no_lookup(self):
        self.assertEqual(conversion_factor("banana", "banana"), Decimal("1"))

    def test_mass_conversion(self):
        self.assertEqual(conversion_factor("kg", "g"), Decimal("1000"))
        self.assertEqual(convert_quantity("2.5", "kilograms", "g"), Decimal("2500"))
        self.assertEqual(convert_quantity(500, "g", "kg"), Decimal("0.5"))

    def test_count_conversion(self):
        self.assertEqual(convert_quantity(2, "dozen", "each"), Decimal("24"))

    def test_incompatible_or_unknown_units(self):
        self.assertIsNone(conversion_factor("cup", "g"))
        self.assertIsNone(conversion_factor("pinch", "g"))
        self.assertFalse(units_compatible("each", "ml"))
        self.assertTrue(units_compatible("tbsp", "tsp"))

    def test_seed_units_command_is_idempotent(self):
        before = UnitOfMeasure.objects.count()
        call_command("seed_units", verbosity=0)
        self.assertEqual(UnitOfMeasure.objects.count(), before)
        self.assertEqual(seed_basic_units(), 0)


class IngredientServiceTests(TestCase):
    def setUp(self):
        user = get_user_model().objects.create_user(username="manager", password="test12345")
        self.bakery = Bakery.objects.create(name="Main Street")
        self.other = Bakery.objects.create(name="Harbor")
        self.ctx = TenantContext(bakery=self.bakery, user=user)
        self.other_ctx = TenantContext(bakery=self.other, user=user)

    def test_normalize_name(self):
        self.assertEqual(normalize_name("  Azúcar   Glass "), "azucar glass")

    def test_create_ingredient(self):
        ingredient = create_ingredient(
            self.ctx,
            {"bakery_id": self.bakery.id, "name": " Bread Flour ", "unit": "g", "low_stock_threshold": "500"},
        )
        self.assertEqual(ingredient.name, "Bread Flour")
        self.assertEqual(ingredient.normalized_name, "bread flour")
        self.assertEqual(ingredient.low_stock_threshold, Decimal("500"))
        self.assertTrue(
            ActivityLog.objects.filter(entity_type="ingredient", entity_id=str(ingredient.id), bakery=self.bakery).exists()
        )

    def test_duplicate_names_are_case_and_accent_insensitive(self):
        create_ingredient(self.ctx, {"bakery_id": self.bakery.id, "name": "Azúcar", "unit": "g"})
        with self.assertRaises(errors.ValidationError) as raised:
            create_ingredient(self.ctx, {"bakery_id": self.bakery.id, "name": "AZUCAR", "unit": "kg"})
        self.assertIn("name", raised.exception.errors)

    def test_same_name_is_allowed_in_another_bakery(self):
        create_ingredient(self.ctx, {"bakery_id": self.bakery.id, "name": "Butter", "unit": "g"})
        create_ingredient(self.other_ctx, {"bakery_id": self.other.id, "name": "Butter", "unit": "g"})
        self.assertEqual(Ingredient.objects.filter(normalized_name="butter").count(), 2)

    def test_create_requires_matching_bakery(self):
        with self.assertRaises(errors.NotFoundError):
            create_ingredient(self.ctx, {"bakery_id": self.other.id, "name": "Salt", "unit": "g"})

    def test_create_reports_missing_fields(self):
        with self.assertRaises(errors.ValidationError) as raised:
            create_ingredient(self.ctx, {"bakery_id": self.bakery.id, "name": "", "unit": ""})
        self.assertEqual(raised.exception.errors["name"], ["Ingredient name is required."])
        self.assertEqual(raised.exception.errors["unit"], ["Unit is required."])

    def test_update_ingredient(self):
        ingredient = Ingredient.objects.create(bakery=self.bakery, name="Yeast", unit="g")
        updated = update_ingredient(self.ctx, ingredient.id, {"name": "Instant Yeast", "low_stock_threshold": None})
        self.assertEqual(updated.name, "Instant Yeast")
        self.assertIsNone(updated.low_stock_threshold)

    def test_update_from_another_bakery_is_not_found(self):
        ingredient = Ingredient.objects.create(bakery=self.bakery, name="Yeast", unit="g")
        with self.assertRaises(errors.NotFoundError):
            update_ingredient(self.other_ctx, ingredient.id, {"name": "Stolen"})
        ingredient.refresh_from_db()
        self.assertEqual(ingredient.name, "Yeast")

    def test_update_rejects_duplicate_name(self):
        Ingredient.objects.create(bakery=self.bakery, name="Milk", unit="ml")
        cream = Ingredient.objects.create(bakery=self.bakery, name="Cream", unit="ml")
        with self.assertRaises(errors.ValidationError):
            update_ingredient(self.ctx, cream.id, {"name": " milk "})

    def test_delete_unused_ingredient(self):
        ingredient = Ingredient.objects.create(bakery=self.bakery, name="Cardamom", unit="g")
        delete_ingredient(self.ctx, ingredient.id)
        self.assertFalse(Ingredient.objects.filter(pk=ingredient.pk).exists())
        self.assertTrue(
            ActivityLog.objects.filter(action=ActivityLog.ACTION_DELETE, entity_id=str(ingredient.id)).exists()
        )

    def test_delete_ingredient_used_by_recipe_is_refused(self):
        ingredient = Ingredient.objects.create(bakery=self.bakery, name="Rye", unit="g")
        recipe = Recipe.objects.create(bakery=self.bakery, name="Rye Loaf", yield_qty=1, yield_unit="loaf")
        section = RecipeSection.objects.create(recipe=recipe, name="Dough", order=0)
        RecipeIngredient.objects.create(section=section, ingredient=ingredient, quantity=Decimal("500"), unit="g")
        with self.assertRaises(errors.StateConflictError) as raised:
            delete_ingredient(self.ctx, ingredient.id)
        self.assertIn("1 recipe usage", str(raised.exception))
        self.assertTrue(Ingredient.objects.filter(pk=ingredient.pk).exists())

    def test_delete_ingredient_with_inventory_is_refused(self):
        seed_basic_units()
        ingredient = Ingredient.objects.create(bakery=self.bakery, name="Honey", unit="g")
        add_inventory_lot(self.ctx, {"ingredient_id": ingredient.id, "quantity": "1", "unit": "kg", "cost_per_unit": "8"})
        with self.assertRaises(errors.StateConflictError):
            delete_ingredient(self.ctx, ingredient.id)
        self.assertTrue(InventoryLot.objects.filter(ingredient=ingredient).exists())

    def test_delete_ingredient_from_another_bakery_is_not_found(self):
        ingredient = Ingredient.objects.create(bakery=self.bakery, name="Yeast", unit="g")
        with self.assertRaises(errors.NotFoundError):
            delete_ingredient(self.other_ctx, ingredient.id)
        self.assertTrue(Ingredient.objects.filter(pk=ingredient.pk).exists())


class VendorServiceTests(TestCase):
    def setUp(self):
        self.bakery = Bakery.objects.create(name="Main Street")
        self.ctx = TenantContext(bakery=self.bakery)

    def test_create_vendor(self):
        vendor = create_vendor(
            self.ctx,
            {"bakery_id": self.bakery.id, "name": "Mill Supply", "email": "orders@mill.example", "notes": None},
        )
        self.assertEqual(vendor.bakery, self.bakery)
        self.assertEqual(vendor.notes, "")
        self.assertEqual(Vendor.objects.filter(bakery=self.bakery).count(), 1)

    def test_vendor_name_required(self):
        with self.assertRaises(errors.ValidationError) as raised:
            create_vendor(self.ctx, {"bakery_id": self.bakery.id})
        self.assertEqual(raised.exception.errors["name"], ["Vendor name is required."])

    def test_update_vendor(self):
        vendor = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")
        updated = update_vendor(self.ctx, vendor.id, {"phone": "555-0100", "notes": None})
        self.assertEqual(updated.phone, "555-0100")
        self.assertEqual(updated.notes, "")
        self.assertEqual(updated.name, "Mill Supply")
        entry = ActivityLog.objects.get(action=ActivityLog.ACTION_UPDATE, entity_type="vendor")
        self.assertEqual(entry.metadata["updated_fields"], ["notes", "phone"])

    def test_update_vendor_validates_fields(self):
        vendor = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")
        with self.assertRaises(errors.ValidationError) as raised:
            update_vendor(self.ctx, vendor.id, {"name": "", "email": "not-an-email"})
        self.assertEqual(raised.exception.errors["name"], ["Vendor name is required."])
        self.assertIn("email", raised.exception.errors)

    def test_update_vendor_from_another_bakery_is_not_found(self):
        elsewhere = Bakery.objects.create(name="Harbor")
        vendor = Vendor.objects.create(bakery=elsewhere, name="Harbor Mill")
        with self.assertRaises(errors.NotFoundError):
            update_vendor(self.ctx, vendor.id, {"name": "Mine now"})

    def test_delete_vendor_keeps_lot_history(self):
        seed_basic_units()
        vendor = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")
        flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")
        lot = add_inventory_lot(
            self.ctx,
            {"ingredient_id": flour.id, "quantity": "1", "unit": "kg", "cost_per_unit": "2", "vendor_id": vendor.id},
        )
        delete_vendor(self.ctx, vendor.id)
        self.assertFalse(Vendor.objects.filter(pk=vendor.pk).exists())
        lot.refresh_from_db()
        self.assertIsNone(lot.vendor)

    def test_delete_vendor_with_linked_ingredients_is_refused(self):
        vendor = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")
        flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")
        IngredientVendor.objects.create(ingredient=flour, vendor=vendor)
        with self.assertRaises(errors.StateConflictError):
            delete_vendor(self.ctx, vendor.id)
        self.assertTrue(Vendor.objects.filter(pk=vendor.pk).exists())


class IngredientVendorTests(TestCase):
    def setUp(self):
        self.bakery = Bakery.objects.create(name="Main Street")
        self.ctx = TenantContext(bakery=self.bakery)
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")
        self.mill = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")
        self.farm = Vendor.objects.create(bakery=self.bakery, name="Farm Direct")

    def _link(self, vendor, ingredient=None):
        return {"ingredient_id": (ingredient or self.flour).id, "vendor_id": vendor.id}

    def test_assign_and_list_vendors(self):
        assign_vendor_to_ingredient(self.ctx, self._link(self.mill))
        assign_vendor_to_ingredient(self.ctx, self._link(self.farm))
        self.assertEqual([v.name for v in ingredient_vendors(self.ctx, self.flour.id)], ["Farm Direct", "Mill Supply"])
        self.assertEqual(
            ActivityLog.objects.filter(action=ActivityLog.ACTION_UPDATE, entity_type="ingredient").count(), 2
        )

    def test_assigning_twice_is_rejected(self):
        assign_vendor_to_ingredient(self.ctx, self._link(self.mill))
        with self.assertRaises(errors.ValidationError) as raised:
            assign_vendor_to_ingredient(self.ctx, self._link(self.mill))
        self.assertEqual(raised.exception.errors["vendor_id"], ["Vendor is already assigned to this ingredient."])
        self.assertEqual(IngredientVendor.objects.count(), 1)

    def test_unassign_vendor(self):
        assign_vendor_to_ingredient(self.ctx, self._link(self.mill))
        unassign_vendor_from_ingredient(self.ctx, self._link(self.mill))
        self.assertEqual(ingredient_vendors(self.ctx, self.flour.id), [])
        with self.assertRaises(errors.NotFoundError):
            unassign_vendor_from_ingredient(self.ctx, self._link(self.mill))

    def test_vendor_from_another_bakery_is_not_found(self):
        elsewhere = Bakery.objects.create(name="Harbor")
        foreign = Vendor.objects.create(bakery=elsewhere, name="Harbor Mill")
        with self.assertRaises(errors.NotFoundError):
            assign_vendor_to_ingredient(self.ctx, self._link(foreign))
        other_ctx = TenantContext(bakery=elsewhere)
        with self.assertRaises(errors.NotFoundError):
            assign_vendor_to_ingredient(other_ctx, {"ingredient_id": self.flour.id, "vendor_id": foreign.id})
        self.assertFalse(IngredientVendor.objects.exists())

    def test_invalid_identifiers_are_reported(self):
        with self.assertRaises(errors.ValidationError) as raised:
            assign_vendor_to_ingredient(self.ctx, {"ingredient_id": "abc", "vendor_id": ""})
        self.assertIn("ingredient_id", raised.exception.errors)
        self.assertIn("vendor_id", raised.exception.errors)
