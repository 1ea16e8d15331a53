from django.contrib import admin

from .models import Ingredient, UnitOfMeasure, Vendor


@admin.register(UnitOfMeasure)
class UnitOfMeasureAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "kind", "factor_to_base")
    list_filter = ("kind",)
    search_fields = ("code", "name")


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ("name", "bakery", "contact_name", "email", "phone")
    list_filter = ("bakery",)
    search_fields = ("name", "contact_name", "email")


@admin.register(Ingredient)
class IngredientAdmin(admin.ModelAdmin):
    list_display = ("name", "bakery", "unit", "low_stock_threshold")
    list_filter = ("bakery",)
    search_fields = ("name", "normalized_name")
    readonly_fields = ("normalized_name",)
