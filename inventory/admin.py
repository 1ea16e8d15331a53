from django.contrib import admin

from .models import InventoryLot, InventoryTransaction, InventoryUsage


class InventoryUsageInline(admin.TabularInline):
    model = InventoryUsage
    extra = 0
    readonly_fields = ("transaction", "quantity", "shortfall", "backfill", "created_at")
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(InventoryLot)
class InventoryLotAdmin(admin.ModelAdmin):
    list_display = ("ingredient", "bakery", "purchase_qty", "remaining_qty", "purchase_unit", "cost_per_unit", "purchased_at", "expires_at")
    list_filter = ("bakery",)
    search_fields = ("ingredient__name", "vendor__name", "notes")
    readonly_fields = ("purchase_qty", "remaining_qty", "purchase_unit", "retired_at")
    inlines = [InventoryUsageInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    # Ledger rows are append-only.
    list_display = ("id", "created_at", "bakery", "type", "direction", "ingredient", "quantity", "unit", "shortfall", "created_by")
    list_filter = ("type", "direction", "bakery")
    search_fields = ("ingredient__name", "notes")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InventoryUsage)
class InventoryUsageAdmin(admin.ModelAdmin):
    list_display = ("id", "lot", "transaction", "quantity", "shortfall", "backfill", "created_at")
    readonly_fields = ("lot", "transaction", "quantity", "shortfall", "backfill", "created_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
