from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand

from core.access import ROLE_BAKER, ROLE_MANAGER, ROLE_OWNER, ROLE_VIEWER

READ_ONLY = [
    "catalog.view_ingredient",
    "catalog.view_vendor",
    "catalog.view_unitofmeasure",
    "recipes.view_recipe",
    "recipes.view_recipesection",
    "recipes.view_recipeingredient",
    "recipes.view_bakesheet",
    "recipes.view_productionsheet",
    "recipes.view_productionsheetrecipe",
    "inventory.view_inventorytransaction",
    "inventory.view_inventorylot",
    "inventory.view_inventoryusage",
]

SHEETS = [
    "recipes.add_bakesheet",
    "recipes.change_bakesheet",
    "recipes.delete_bakesheet",
    "recipes.add_productionsheet",
    "recipes.change_productionsheet",
    "recipes.delete_productionsheet",
    "recipes.add_productionsheetrecipe",
    "recipes.change_productionsheetrecipe",
    "recipes.delete_productionsheetrecipe",
]

MANAGEMENT = [
    "core.view_activitylog",
    "catalog.add_ingredient",
    "catalog.change_ingredient",
    "catalog.add_vendor",
    "catalog.change_vendor",
    "recipes.add_recipe",
    "recipes.change_recipe",
    "recipes.add_recipesection",
    "recipes.change_recipesection",
    "recipes.add_recipeingredient",
    "recipes.change_recipeingredient",
    "recipes.delete_recipeingredient",
    # Ledger rows are append-only: add, never change.
    "inventory.add_inventorytransaction",
    "inventory.add_inventorylot",
    "inventory.change_inventorylot",
    "inventory.delete_inventorylot",
]

ROLE_PERMS = {
    ROLE_OWNER: READ_ONLY + SHEETS + MANAGEMENT + ["core.view_bakery", "core.change_bakery"],
    ROLE_MANAGER: READ_ONLY + SHEETS + MANAGEMENT,
    ROLE_BAKER: READ_ONLY + SHEETS,
    ROLE_VIEWER: READ_ONLY,
}


class Command(BaseCommand):
    help = "Creates the bakery role groups and assigns their model permissions."

    def handle(self, *args, **options):
        created = 0
        for role, perm_codes in ROLE_PERMS.items():
            group, was_created = Group.objects.get_or_create(name=role)
            if was_created:
                created += 1
            perms = []
            for code in perm_codes:
                app_label, codename = code.split(".", 1)
                perm = Permission.objects.filter(content_type__app_label=app_label, codename=codename).first()
                if perm is None:
                    self.stdout.write(self.style.WARNING(f"Permission not found: {code}"))
                    continue
                perms.append(perm)
            group.permissions.set(perms)
        self.stdout.write(self.style.SUCCESS(f"Roles ready. New groups created: {created}"))
