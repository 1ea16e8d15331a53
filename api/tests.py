from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from catalog.models import Ingredient, Vendor, seed_basic_units
from core.access import ROLE_BAKER, ROLE_MANAGER, ROLE_VIEWER
from core.models import ActivityLog, Bakery, UserProfile
from inventory.models import InventoryLot, InventoryTransaction
from recipes.models import SheetStatus


def _member(username, bakery, role):
    user = get_user_model().objects.create_user(username=username, password="test12345")
    UserProfile.objects.create(user=user, bakery=bakery)
    user.groups.add(Group.objects.get_or_create(name=role)[0])
    return user


class ApiAuthTests(TestCase):
    def setUp(self):
        self.bakery = Bakery.objects.create(name="Main Street")
        self.user = _member("manager", self.bakery, ROLE_MANAGER)

    def test_endpoint_auth_token_obtain_and_access_api(self):
        resp = self.client.post(
            reverse("api_auth_token"),
            {"username": "manager", "password": "test12345"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        token = resp.json().get("token")
        self.assertTrue(token)

        resp = self.client.get(reverse("api_ingredients"), HTTP_AUTHORIZATION=f"Token {token}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["items"], [])

    def test_anonymous_requests_are_rejected(self):
        resp = self.client.get(reverse("api_ingredients"))
        self.assertEqual(resp.status_code, 401)

    def test_user_without_bakery_gets_404(self):
        loner = get_user_model().objects.create_user(username="loner", password="test12345")
        loner.groups.add(Group.objects.get_or_create(name=ROLE_MANAGER)[0])
        self.client.force_login(loner)
        resp = self.client.get(reverse("api_ingredients"))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Bakery not found.")

    def test_health_check(self):
        resp = self.client.get(reverse("health"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})


class ApiPermissionTests(TestCase):
    def setUp(self):
        seed_basic_units()
        self.bakery = Bakery.objects.create(name="Main Street")
        self.viewer = _member("viewer", self.bakery, ROLE_VIEWER)
        self.baker = _member("baker", self.bakery, ROLE_BAKER)
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")

    def test_viewer_can_read_but_not_write(self):
        self.client.force_login(self.viewer)
        self.assertEqual(self.client.get(reverse("api_ingredients")).status_code, 200)
        resp = self.client.post(
            reverse("api_inventory_transactions"),
            {"ingredient_id": self.flour.id, "type": "RECEIVE", "quantity": "5", "unit": "g"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 403)
        self.assertFalse(InventoryTransaction.objects.exists())

    def test_baker_cannot_manage_catalog_or_see_activity(self):
        self.client.force_login(self.baker)
        resp = self.client.post(
            reverse("api_ingredients"),
            {"name": "Salt", "unit": "g"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.client.get(reverse("api_activity")).status_code, 403)

    def test_only_platform_admin_creates_bakeries(self):
        self.client.force_login(self.baker)
        resp = self.client.post(reverse("api_bakeries"), {"name": "Second"}, content_type="application/json")
        self.assertEqual(resp.status_code, 403)

        admin = get_user_model().objects.create_superuser(
            username="platform", email="platform@example.com", password="test12345"
        )
        self.client.force_login(admin)
        resp = self.client.post(reverse("api_bakeries"), {"name": "Second"}, content_type="application/json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["name"], "Second")


class ApiFlowTests(TestCase):
    def setUp(self):
        seed_basic_units()
        self.bakery = Bakery.objects.create(name="Main Street")
        self.manager = _member("manager", self.bakery, ROLE_MANAGER)
        self.client.force_login(self.manager)

    def _post(self, name, payload, **kwargs):
        return self.client.post(reverse(name, kwargs=kwargs or None), payload, content_type="application/json")

    def _ingredient(self, name):
        resp = self._post("api_ingredients", {"name": name, "unit": "g"})
        self.assertEqual(resp.status_code, 201)
        return resp.json()["id"]

    def test_bake_sheet_round_trip(self):
        flour = self._ingredient("Flour")
        sugar = self._ingredient("Sugar")
        for ingredient_id in (flour, sugar):
            resp = self._post(
                "api_inventory_lots",
                {"ingredient_id": ingredient_id, "quantity": "1", "unit": "kg", "cost_per_unit": "2"},
            )
            self.assertEqual(resp.status_code, 201)

        resp = self._post(
            "api_recipes",
            {
                "name": "Sweet Bread",
                "yield_qty": 1,
                "yield_unit": "loaf",
                "sections": [
                    {
                        "name": "Dough",
                        "order": 0,
                        "ingredients": [
                            {"ingredient_id": flour, "quantity": "10", "unit": "g"},
                            {"ingredient_id": sugar, "quantity": "2", "unit": "g"},
                        ],
                    }
                ],
            },
        )
        self.assertEqual(resp.status_code, 201)
        recipe_id = resp.json()["id"]

        resp = self._post("api_bake_sheets", {"recipe_id": recipe_id, "scale": "2.5", "quantity": "2 loaves"})
        self.assertEqual(resp.status_code, 201)
        sheet = resp.json()
        self.assertEqual(sheet["status"], SheetStatus.DRAFT)
        self.assertEqual([r["display_quantity"] for r in sheet["requirements"]], ["25", "5"])
        self.assertEqual(sheet["warnings"], [])
        self.assertEqual(sheet["estimated_cost"], "$0.06")

        resp = self._post("api_bake_sheet_complete", {}, sheet_id=sheet["id"])
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["transactions"]), 2)

        resp = self._post("api_bake_sheet_complete", {}, sheet_id=sheet["id"])
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["detail"], "Sheet is already completed.")

        resp = self.client.patch(
            reverse("api_bake_sheet_detail", kwargs={"sheet_id": sheet["id"]}),
            {"scale": "3"},
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 409)

        resp = self.client.get(reverse("api_ingredient_stock", kwargs={"ingredient_id": flour}))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["display_stock"], "975")
        self.assertEqual(Decimal(resp.json()["lots"][0]["remaining_qty"]), Decimal("0.975"))

        resp = self.client.get(reverse("api_inventory_transactions"), {"type": "use"})
        self.assertEqual({row["type"] for row in resp.json()["items"]}, {"USE"})
        self.assertTrue(ActivityLog.objects.filter(action=ActivityLog.ACTION_COMPLETE).exists())

    def test_validation_errors_return_field_map(self):
        resp = self._post("api_bake_sheets", {"recipe_id": 1, "scale": "101", "quantity": ""})
        self.assertEqual(resp.status_code, 400)
        errors = resp.json()["errors"]
        self.assertEqual(errors["scale"], ["Scale too large."])
        self.assertEqual(errors["quantity"], ["Quantity description is required."])

    def test_negative_stock_is_a_validation_error(self):
        flour = self._ingredient("Flour")
        resp = self._post(
            "api_inventory_transactions",
            {"ingredient_id": flour, "type": "WASTE", "quantity": "1", "unit": "g"},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("Insufficient inventory", resp.json()["errors"]["quantity"][0])

    def test_other_bakery_rows_are_not_found(self):
        elsewhere = Bakery.objects.create(name="Harbor")
        foreign = Ingredient.objects.create(bakery=elsewhere, name="Salt", unit="g")
        resp = self.client.get(reverse("api_ingredient_detail", kwargs={"ingredient_id": foreign.id}))
        self.assertEqual(resp.status_code, 404)
        resp = self._post("api_ingredients", {"bakery_id": elsewhere.id, "name": "Salt", "unit": "g"})
        self.assertEqual(resp.status_code, 404)

    def test_storage_failure_maps_to_503(self):
        flour = self._ingredient("Flour")
        with patch("inventory.services._fold_stock", side_effect=OperationalError("database is locked")):
            resp = self._post(
                "api_inventory_transactions",
                {"ingredient_id": flour, "type": "USE", "quantity": "1", "unit": "g"},
            )
        self.assertEqual(resp.status_code, 503)
        self.assertFalse(InventoryTransaction.objects.filter(type="USE").exists())


class ApiLotQueryTests(TestCase):
    def setUp(self):
        seed_basic_units()
        self.bakery = Bakery.objects.create(name="Main Street")
        self.client.force_login(_member("manager", self.bakery, ROLE_MANAGER))
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")

    def _lot(self, expires_in_days):
        resp = self.client.post(
            reverse("api_inventory_lots"),
            {
                "ingredient_id": self.flour.id,
                "quantity": "1",
                "unit": "kg",
                "cost_per_unit": "2",
                "expires_at": (timezone.now() + timedelta(days=expires_in_days)).isoformat(),
            },
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        return resp.json()["id"]

    def test_malformed_ingredient_filter_is_a_validation_error(self):
        resp = self.client.get(reverse("api_inventory_lots"), {"ingredient_id": "abc"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["ingredient_id"], ["Invalid identifier."])

    def test_ingredient_filter(self):
        lot_id = self._lot(30)
        resp = self.client.get(reverse("api_inventory_lots"), {"ingredient_id": self.flour.id})
        self.assertEqual([row["id"] for row in resp.json()["items"]], [lot_id])

    @override_settings(INVENTORY_EXPIRING_WITHIN_DAYS=30)
    def test_expiring_window_defaults_to_setting(self):
        soon = self._lot(3)
        later = self._lot(20)
        self._lot(60)
        resp = self.client.get(reverse("api_inventory_lots"), {"view": "expiring"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([row["id"] for row in resp.json()["items"]], [soon, later])

        resp = self.client.get(reverse("api_inventory_lots"), {"view": "expiring", "days": "7"})
        self.assertEqual([row["id"] for row in resp.json()["items"]], [soon])

    def test_deleted_lot_is_retired(self):
        lot_id = self._lot(30)
        resp = self.client.delete(reverse("api_inventory_lot_detail", kwargs={"lot_id": lot_id}))
        self.assertEqual(resp.status_code, 204)
        self.assertIsNotNone(InventoryLot.objects.get(pk=lot_id).retired_at)
        resp = self.client.get(reverse("api_inventory_lot_detail", kwargs={"lot_id": lot_id}))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(self.client.get(reverse("api_inventory_lots")).json()["items"], [])


class ApiCatalogMaintenanceTests(TestCase):
    def setUp(self):
        seed_basic_units()
        self.bakery = Bakery.objects.create(name="Main Street")
        self.manager = _member("manager", self.bakery, ROLE_MANAGER)
        self.client.force_login(self.manager)
        self.flour = Ingredient.objects.create(bakery=self.bakery, name="Flour", unit="g")
        self.vendor = Vendor.objects.create(bakery=self.bakery, name="Mill Supply")

    def test_vendor_detail_update_and_delete(self):
        url = reverse("api_vendor_detail", kwargs={"vendor_id": self.vendor.id})
        self.assertEqual(self.client.get(url).json()["name"], "Mill Supply")
        resp = self.client.patch(url, {"contact_name": "Ada"}, content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["contact_name"], "Ada")
        self.assertEqual(self.client.delete(url).status_code, 204)
        self.assertEqual(self.client.get(url).status_code, 404)

    def test_assign_and_unassign_vendor(self):
        url = reverse("api_ingredient_vendors", kwargs={"ingredient_id": self.flour.id})
        resp = self.client.post(url, {"vendor_id": self.vendor.id}, content_type="application/json")
        self.assertEqual(resp.status_code, 201)
        self.assertEqual([row["id"] for row in self.client.get(url).json()["items"]], [self.vendor.id])

        resp = self.client.post(url, {"vendor_id": self.vendor.id}, content_type="application/json")
        self.assertEqual(resp.status_code, 400)
        # Linked vendors cannot be deleted.
        resp = self.client.delete(reverse("api_vendor_detail", kwargs={"vendor_id": self.vendor.id}))
        self.assertEqual(resp.status_code, 409)

        detail = reverse(
            "api_ingredient_vendor_detail", kwargs={"ingredient_id": self.flour.id, "vendor_id": self.vendor.id}
        )
        self.assertEqual(self.client.delete(detail).status_code, 204)
        self.assertEqual(self.client.get(url).json()["items"], [])
        self.assertEqual(self.client.delete(detail).status_code, 404)

    def test_delete_ingredient(self):
        url = reverse("api_ingredient_detail", kwargs={"ingredient_id": self.flour.id})
        self.assertEqual(self.client.delete(url).status_code, 204)
        self.assertFalse(Ingredient.objects.filter(pk=self.flour.pk).exists())

    def test_viewer_cannot_delete_catalog_rows(self):
        self.client.force_login(_member("viewer", self.bakery, ROLE_VIEWER))
        resp = self.client.delete(reverse("api_ingredient_detail", kwargs={"ingredient_id": self.flour.id}))
        self.assertEqual(resp.status_code, 403)
        resp = self.client.delete(reverse("api_vendor_detail", kwargs={"vendor_id": self.vendor.id}))
        self.assertEqual(resp.status_code, 403)
        self.assertTrue(Vendor.objects.filter(pk=self.vendor.pk).exists())

    def test_recipe_update_and_delete(self):
        resp = self.client.post(
            reverse("api_recipes"),
            {
                "name": "Flatbread",
                "yield_qty": 4,
                "yield_unit": "pieces",
                "sections": [
                    {
                        "name": "Dough",
                        "order": 0,
                        "ingredients": [{"ingredient_id": self.flour.id, "quantity": "250", "unit": "g"}],
                    }
                ],
            },
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        url = reverse("api_recipe_detail", kwargs={"recipe_id": resp.json()["id"]})
        resp = self.client.patch(url, {"name": "Garlic Flatbread"}, content_type="application/json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["name"], "Garlic Flatbread")
        self.assertEqual(self.client.delete(url).status_code, 204)
        self.assertEqual(self.client.get(url).status_code, 404)

    def test_platform_admin_deletes_bakery(self):
        empty = Bakery.objects.create(name="Pop-up Stand")
        admin = get_user_model().objects.create_superuser(
            username="platform", email="platform@example.com", password="test12345"
        )
        resp = self.client.delete(reverse("api_bakery_detail", kwargs={"bakery_id": empty.id}))
        self.assertEqual(resp.status_code, 403)
        self.client.force_login(admin)
        resp = self.client.delete(reverse("api_bakery_detail", kwargs={"bakery_id": self.bakery.id}))
        self.assertEqual(resp.status_code, 409)
        resp = self.client.delete(reverse("api_bakery_detail", kwargs={"bakery_id": empty.id}))
        self.assertEqual(resp.status_code, 204)
        self.assertFalse(Bakery.objects.filter(pk=empty.pk).exists())
