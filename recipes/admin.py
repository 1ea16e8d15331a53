from django.contrib import admin

from .models import BakeSheet, ProductionSheet, ProductionSheetRecipe, Recipe, RecipeIngredient, RecipeSection


class RecipeSectionInline(admin.TabularInline):
    model = RecipeSection
    extra = 0
    fields = ("name", "order", "instructions")


class RecipeIngredientInline(admin.TabularInline):
    model = RecipeIngredient
    extra = 0
    autocomplete_fields = ("ingredient",)


@admin.register(Recipe)
class RecipeAdmin(admin.ModelAdmin):
    list_display = ("name", "bakery", "yield_qty", "yield_unit", "created_at")
    list_filter = ("bakery",)
    search_fields = ("name", "normalized_name")
    readonly_fields = ("normalized_name",)
    inlines = [RecipeSectionInline]


@admin.register(RecipeSection)
class RecipeSectionAdmin(admin.ModelAdmin):
    list_display = ("recipe", "name", "order")
    search_fields = ("recipe__name", "name")
    inlines = [RecipeIngredientInline]


@admin.register(BakeSheet)
class BakeSheetAdmin(admin.ModelAdmin):
    list_display = ("recipe", "bakery", "scale", "quantity", "status", "created_at", "completed_at")
    list_filter = ("status", "bakery")
    search_fields = ("recipe__name", "quantity", "notes")
    # Status changes go through the completion service.
    readonly_fields = ("status", "completed_at", "completed_by")


class ProductionSheetRecipeInline(admin.TabularInline):
    model = ProductionSheetRecipe
    extra = 0
    autocomplete_fields = ("recipe",)


@admin.register(ProductionSheet)
class ProductionSheetAdmin(admin.ModelAdmin):
    list_display = ("__str__", "bakery", "scheduled_for", "status", "created_at", "completed_at")
    list_filter = ("status", "bakery", "scheduled_for")
    search_fields = ("description", "notes")
    readonly_fields = ("status", "completed_at", "completed_by")
    inlines = [ProductionSheetRecipeInline]
