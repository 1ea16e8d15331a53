from django.urls import path
from rest_framework.authtoken.views import obtain_auth_token

from .views import (
    ActivityLogListView,
    BakeryDetailView,
    BakeryListView,
    BakeSheetCompleteView,
    BakeSheetDetailView,
    BakeSheetListView,
    IngredientDetailView,
    IngredientListView,
    IngredientStockView,
    IngredientVendorDetailView,
    IngredientVendorsView,
    InventoryLotDetailView,
    InventoryLotListView,
    InventoryTransactionListView,
    ProductionSheetCompleteView,
    ProductionSheetDetailView,
    ProductionSheetListView,
    ProductionSheetRecipeDetailView,
    ProductionSheetRecipesView,
    RecipeDetailView,
    RecipeListView,
    VendorDetailView,
    VendorListView,
)

urlpatterns = [
    path("auth/token/", obtain_auth_token, name="api_auth_token"),
    path("bakeries/", BakeryListView.as_view(), name="api_bakeries"),
    path("bakeries/<int:bakery_id>/", BakeryDetailView.as_view(), name="api_bakery_detail"),
    path("ingredients/", IngredientListView.as_view(), name="api_ingredients"),
    path("ingredients/<int:ingredient_id>/", IngredientDetailView.as_view(), name="api_ingredient_detail"),
    path("ingredients/<int:ingredient_id>/stock/", IngredientStockView.as_view(), name="api_ingredient_stock"),
    path("ingredients/<int:ingredient_id>/vendors/", IngredientVendorsView.as_view(), name="api_ingredient_vendors"),
    path(
        "ingredients/<int:ingredient_id>/vendors/<int:vendor_id>/",
        IngredientVendorDetailView.as_view(),
        name="api_ingredient_vendor_detail",
    ),
    path("vendors/", VendorListView.as_view(), name="api_vendors"),
    path("vendors/<int:vendor_id>/", VendorDetailView.as_view(), name="api_vendor_detail"),
    path("recipes/", RecipeListView.as_view(), name="api_recipes"),
    path("recipes/<int:recipe_id>/", RecipeDetailView.as_view(), name="api_recipe_detail"),
    path("inventory/transactions/", InventoryTransactionListView.as_view(), name="api_inventory_transactions"),
    path("inventory/lots/", InventoryLotListView.as_view(), name="api_inventory_lots"),
    path("inventory/lots/<int:lot_id>/", InventoryLotDetailView.as_view(), name="api_inventory_lot_detail"),
    path("bake-sheets/", BakeSheetListView.as_view(), name="api_bake_sheets"),
    path("bake-sheets/<int:sheet_id>/", BakeSheetDetailView.as_view(), name="api_bake_sheet_detail"),
    path("bake-sheets/<int:sheet_id>/complete/", BakeSheetCompleteView.as_view(), name="api_bake_sheet_complete"),
    path("production-sheets/", ProductionSheetListView.as_view(), name="api_production_sheets"),
    path("production-sheets/<int:sheet_id>/", ProductionSheetDetailView.as_view(), name="api_production_sheet_detail"),
    path(
        "production-sheets/<int:sheet_id>/recipes/",
        ProductionSheetRecipesView.as_view(),
        name="api_production_sheet_recipes",
    ),
    path(
        "production-sheets/<int:sheet_id>/recipes/<int:recipe_id>/",
        ProductionSheetRecipeDetailView.as_view(),
        name="api_production_sheet_recipe_detail",
    ),
    path(
        "production-sheets/<int:sheet_id>/complete/",
        ProductionSheetCompleteView.as_view(),
        name="api_production_sheet_complete",
    ),
    path("activity/", ActivityLogListView.as_view(), name="api_activity"),
]
