import logging

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from catalog.models import Ingredient, Vendor
from catalog.serializers import IngredientSerializer, VendorSerializer
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
from core import errors
from core.access import (
    can_complete_sheets,
    can_manage_catalog,
    can_manage_inventory,
    can_manage_recipes,
    can_manage_sheets,
    can_view_activity,
    can_view_catalog,
    can_view_inventory,
    can_view_recipes,
    can_view_sheets,
)
from core.formatting import format_currency, format_quantity
from core.models import ActivityLog
from core.serializers import ActivityLogSerializer, BakerySerializer
from core.services import create_bakery, delete_bakery, get_bakery, update_bakery, visible_bakeries
from core.tenancy import context_for_request, get_scoped, parse_id, scoped
from inventory.serializers import InventoryLotSerializer, InventoryTransactionSerializer
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
    update_inventory_lot,
)
from recipes.serializers import (
    BakeSheetSerializer,
    ProductionSheetRecipeSerializer,
    ProductionSheetSerializer,
    RecipeListSerializer,
    RecipeSerializer,
)
from recipes.services import (
    add_recipe_to_sheet,
    complete_bake_sheet,
    complete_production_sheet,
    create_bake_sheet,
    create_production_sheet,
    create_recipe,
    delete_bake_sheet,
    delete_production_sheet,
    delete_recipe,
    estimated_cost,
    get_bake_sheet,
    get_production_sheet,
    get_recipe,
    list_bake_sheets,
    list_production_sheets,
    list_recipes,
    remove_recipe_from_sheet,
    scaled_ingredients,
    update_bake_sheet,
    update_production_sheet,
    update_recipe,
    update_recipe_on_sheet,
)
from recipes.utils.scaling import aggregate_requirements

logger = logging.getLogger(__name__)


def _forbidden(detail: str) -> Response:
    return Response({"detail": detail}, status=status.HTTP_403_FORBIDDEN)


def _payload(request, **defaults) -> dict:
    data = request.data
    data = data.dict() if hasattr(data, "dict") else dict(data or {})
    for key, value in defaults.items():
        data.setdefault(key, value)
    return data


def _parse_bounded_int(raw, *, default: int, min_value: int, max_value: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(min_value, min(value, max_value))


def _serialize_requirement(req) -> dict:
    return {
        "ingredient_id": req.ingredient.id,
        "ingredient_name": req.ingredient.name,
        "quantity": str(req.quantity),
        "display_quantity": req.display_quantity,
        "unit": req.unit,
        "convertible": req.convertible,
        "recipes": req.recipe_names,
    }


def _serialize_warning(warning) -> dict:
    return {
        "ingredient_id": warning.ingredient_id,
        "ingredient_name": warning.ingredient_name,
        "required": format_quantity(warning.required),
        "available": format_quantity(warning.available),
        "shortfall": format_quantity(warning.shortfall),
        "unit": warning.unit,
    }


def _sheet_detail(ctx, sheet, serializer_class) -> dict:
    lines = scaled_ingredients(sheet)
    requirements = aggregate_requirements(lines)
    payload = serializer_class(sheet).data
    payload["lines"] = [
        {
            "recipe_id": line.recipe_id,
            "recipe_name": line.recipe_name,
            "section": line.section_name,
            "ingredient_id": line.ingredient.id,
            "ingredient_name": line.ingredient.name,
            "quantity": str(line.quantity),
            "display_quantity": line.display_quantity,
            "unit": line.unit,
        }
        for line in lines
    ]
    payload["requirements"] = [_serialize_requirement(req) for req in requirements]
    if sheet.is_draft:
        convertible = [req for req in requirements if req.convertible]
        payload["warnings"] = [_serialize_warning(w) for w in check_inventory_levels(ctx, convertible)]
        payload["estimated_cost"] = format_currency(estimated_cost(ctx, requirements))
    return payload


def _completion_payload(result, serializer_class) -> dict:
    return {
        "sheet": serializer_class(result.sheet).data,
        "transactions": InventoryTransactionSerializer(result.transactions, many=True).data,
        "shortfalls": [_serialize_warning(w) for w in result.shortfalls],
    }


# Bakeries

class BakeryListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        bakeries = visible_bakeries(request.user).order_by("name")
        return Response({"items": BakerySerializer(bakeries, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        bakery = create_bakery(request.user, _payload(request))
        return Response(BakerySerializer(bakery).data, status=status.HTTP_201_CREATED)


class BakeryDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, bakery_id: int):
        bakery = get_bakery(request.user, bakery_id)
        return Response(BakerySerializer(bakery).data, status=status.HTTP_200_OK)

    def patch(self, request, bakery_id: int):
        bakery = update_bakery(request.user, bakery_id, _payload(request))
        return Response(BakerySerializer(bakery).data, status=status.HTTP_200_OK)

    def delete(self, request, bakery_id: int):
        delete_bakery(request.user, bakery_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Catalog

class IngredientListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_catalog(request.user):
            return _forbidden("You do not have permission to view ingredients.")
        ctx = context_for_request(request)
        qs = scoped(Ingredient.objects.all(), ctx).order_by("name")
        q = (request.GET.get("q") or "").strip()
        if q:
            qs = qs.filter(name__icontains=q)
        return Response({"items": IngredientSerializer(qs, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to create ingredients.")
        ctx = context_for_request(request)
        ingredient = create_ingredient(ctx, _payload(request, bakery_id=ctx.bakery_id))
        return Response(IngredientSerializer(ingredient).data, status=status.HTTP_201_CREATED)


class IngredientDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, ingredient_id: int):
        if not can_view_catalog(request.user):
            return _forbidden("You do not have permission to view ingredients.")
        ctx = context_for_request(request)
        ingredient = get_scoped(Ingredient, ctx, ingredient_id, entity="Ingredient")
        return Response(IngredientSerializer(ingredient).data, status=status.HTTP_200_OK)

    def patch(self, request, ingredient_id: int):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to edit ingredients.")
        ctx = context_for_request(request)
        ingredient = update_ingredient(ctx, ingredient_id, _payload(request))
        return Response(IngredientSerializer(ingredient).data, status=status.HTTP_200_OK)

    def delete(self, request, ingredient_id: int):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to delete ingredients.")
        ctx = context_for_request(request)
        delete_ingredient(ctx, ingredient_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class IngredientVendorsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, ingredient_id: int):
        if not can_view_catalog(request.user):
            return _forbidden("You do not have permission to view vendors.")
        ctx = context_for_request(request)
        vendors = ingredient_vendors(ctx, ingredient_id)
        return Response({"items": VendorSerializer(vendors, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request, ingredient_id: int):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to assign vendors.")
        ctx = context_for_request(request)
        link = assign_vendor_to_ingredient(ctx, {**_payload(request), "ingredient_id": ingredient_id})
        return Response(VendorSerializer(link.vendor).data, status=status.HTTP_201_CREATED)


class IngredientVendorDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def delete(self, request, ingredient_id: int, vendor_id: int):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to unassign vendors.")
        ctx = context_for_request(request)
        unassign_vendor_from_ingredient(ctx, {"ingredient_id": ingredient_id, "vendor_id": vendor_id})
        return Response(status=status.HTTP_204_NO_CONTENT)


class IngredientStockView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, ingredient_id: int):
        if not can_view_inventory(request.user):
            return _forbidden("You do not have permission to view inventory.")
        ctx = context_for_request(request)
        as_of = request.GET.get("as_of") or None
        stock = get_current_stock(ctx, ingredient_id, as_of=as_of)
        payload = {
            "ingredient_id": ingredient_id,
            "as_of": as_of,
            "stock": str(stock),
            "display_stock": format_quantity(stock),
        }
        if as_of is None:
            summary = get_inventory_summary(ctx, ingredient_id)
            payload.update(
                {
                    "unit": summary.unit,
                    "lot_quantity": format_quantity(summary.lot_quantity),
                    "average_cost": format_currency(summary.average_cost),
                    "total_value": format_currency(summary.total_value),
                    "lots": InventoryLotSerializer(summary.lots, many=True).data,
                }
            )
        return Response(payload, status=status.HTTP_200_OK)


class VendorListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_catalog(request.user):
            return _forbidden("You do not have permission to view vendors.")
        ctx = context_for_request(request)
        qs = scoped(Vendor.objects.all(), ctx).order_by("name")
        return Response({"items": VendorSerializer(qs, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to create vendors.")
        ctx = context_for_request(request)
        vendor = create_vendor(ctx, _payload(request, bakery_id=ctx.bakery_id))
        return Response(VendorSerializer(vendor).data, status=status.HTTP_201_CREATED)


class VendorDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, vendor_id: int):
        if not can_view_catalog(request.user):
            return _forbidden("You do not have permission to view vendors.")
        ctx = context_for_request(request)
        vendor = get_scoped(Vendor, ctx, vendor_id, entity="Vendor")
        return Response(VendorSerializer(vendor).data, status=status.HTTP_200_OK)

    def patch(self, request, vendor_id: int):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to edit vendors.")
        ctx = context_for_request(request)
        vendor = update_vendor(ctx, vendor_id, _payload(request))
        return Response(VendorSerializer(vendor).data, status=status.HTTP_200_OK)

    def delete(self, request, vendor_id: int):
        if not can_manage_catalog(request.user):
            return _forbidden("You do not have permission to delete vendors.")
        ctx = context_for_request(request)
        delete_vendor(ctx, vendor_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Recipes

class RecipeListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_recipes(request.user):
            return _forbidden("You do not have permission to view recipes.")
        ctx = context_for_request(request)
        return Response({"items": RecipeListSerializer(list_recipes(ctx), many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_recipes(request.user):
            return _forbidden("You do not have permission to create recipes.")
        ctx = context_for_request(request)
        recipe = create_recipe(ctx, _payload(request, bakery_id=ctx.bakery_id))
        return Response(RecipeSerializer(get_recipe(ctx, recipe.id)).data, status=status.HTTP_201_CREATED)


class RecipeDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, recipe_id: int):
        if not can_view_recipes(request.user):
            return _forbidden("You do not have permission to view recipes.")
        ctx = context_for_request(request)
        return Response(RecipeSerializer(get_recipe(ctx, recipe_id)).data, status=status.HTTP_200_OK)

    def patch(self, request, recipe_id: int):
        if not can_manage_recipes(request.user):
            return _forbidden("You do not have permission to edit recipes.")
        ctx = context_for_request(request)
        recipe = update_recipe(ctx, recipe_id, _payload(request))
        return Response(RecipeSerializer(get_recipe(ctx, recipe.id)).data, status=status.HTTP_200_OK)

    def delete(self, request, recipe_id: int):
        if not can_manage_recipes(request.user):
            return _forbidden("You do not have permission to delete recipes.")
        ctx = context_for_request(request)
        delete_recipe(ctx, recipe_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Inventory

class InventoryTransactionListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_inventory(request.user):
            return _forbidden("You do not have permission to view inventory transactions.")
        ctx = context_for_request(request)
        rows = list_transactions(
            ctx,
            type=(request.GET.get("type") or "").strip().upper() or None,
            ingredient_id=request.GET.get("ingredient_id"),
            date_from=request.GET.get("date_from"),
            date_to=request.GET.get("date_to"),
            limit=request.GET.get("limit"),
        )
        return Response({"items": InventoryTransactionSerializer(rows, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_inventory(request.user):
            return _forbidden("You do not have permission to record inventory transactions.")
        ctx = context_for_request(request)
        tx = post_transaction(ctx, _payload(request, bakery_id=ctx.bakery_id))
        return Response(InventoryTransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


class InventoryLotListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_inventory(request.user):
            return _forbidden("You do not have permission to view inventory lots.")
        ctx = context_for_request(request)
        view = (request.GET.get("view") or "").strip().lower()
        if view == "expiring":
            days = None
            if request.GET.get("days") not in (None, ""):
                days = _parse_bounded_int(
                    request.GET.get("days"),
                    default=settings.INVENTORY_EXPIRING_WITHIN_DAYS,
                    min_value=0,
                    max_value=365,
                )
            lots = expiring_lots(ctx, within_days=days)
        elif view == "expired":
            lots = expired_lots(ctx)
        else:
            qs = scoped(live_lots().select_related("ingredient", "vendor"), ctx)
            raw_ingredient = request.GET.get("ingredient_id")
            if raw_ingredient:
                ingredient_id = parse_id(raw_ingredient)
                if ingredient_id is None:
                    raise errors.ValidationError.for_field("ingredient_id", "Invalid identifier.")
                qs = qs.filter(ingredient_id=ingredient_id)
            if request.GET.get("open") == "1":
                qs = qs.filter(remaining_qty__gt=0)
            lots = qs.order_by("purchased_at", "id")
        return Response({"items": InventoryLotSerializer(lots, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_inventory(request.user):
            return _forbidden("You do not have permission to receive inventory.")
        ctx = context_for_request(request)
        lot = add_inventory_lot(ctx, _payload(request))
        return Response(InventoryLotSerializer(lot).data, status=status.HTTP_201_CREATED)


class InventoryLotDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, lot_id: int):
        if not can_view_inventory(request.user):
            return _forbidden("You do not have permission to view inventory lots.")
        ctx = context_for_request(request)
        lot = get_scoped(live_lots().select_related("ingredient", "vendor"), ctx, lot_id, entity="Inventory lot")
        return Response(InventoryLotSerializer(lot).data, status=status.HTTP_200_OK)

    def patch(self, request, lot_id: int):
        if not can_manage_inventory(request.user):
            return _forbidden("You do not have permission to edit inventory lots.")
        ctx = context_for_request(request)
        lot = update_inventory_lot(ctx, lot_id, _payload(request))
        return Response(InventoryLotSerializer(lot).data, status=status.HTTP_200_OK)

    def delete(self, request, lot_id: int):
        if not can_manage_inventory(request.user):
            return _forbidden("You do not have permission to delete inventory lots.")
        ctx = context_for_request(request)
        delete_inventory_lot(ctx, lot_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Bake sheets

class BakeSheetListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_sheets(request.user):
            return _forbidden("You do not have permission to view bake sheets.")
        ctx = context_for_request(request)
        sheets = list_bake_sheets(ctx, status=(request.GET.get("status") or "").strip().upper() or None)
        return Response({"items": BakeSheetSerializer(sheets.order_by("-created_at", "-id"), many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to create bake sheets.")
        ctx = context_for_request(request)
        sheet = create_bake_sheet(ctx, _payload(request, bakery_id=ctx.bakery_id))
        return Response(_sheet_detail(ctx, sheet, BakeSheetSerializer), status=status.HTTP_201_CREATED)


class BakeSheetDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, sheet_id: int):
        if not can_view_sheets(request.user):
            return _forbidden("You do not have permission to view bake sheets.")
        ctx = context_for_request(request)
        sheet = get_bake_sheet(ctx, sheet_id)
        return Response(_sheet_detail(ctx, sheet, BakeSheetSerializer), status=status.HTTP_200_OK)

    def patch(self, request, sheet_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to edit bake sheets.")
        ctx = context_for_request(request)
        sheet = update_bake_sheet(ctx, sheet_id, _payload(request))
        return Response(_sheet_detail(ctx, sheet, BakeSheetSerializer), status=status.HTTP_200_OK)

    def delete(self, request, sheet_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to delete bake sheets.")
        ctx = context_for_request(request)
        delete_bake_sheet(ctx, sheet_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class BakeSheetCompleteView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, sheet_id: int):
        if not can_complete_sheets(request.user):
            return _forbidden("You do not have permission to complete bake sheets.")
        ctx = context_for_request(request)
        result = complete_bake_sheet(ctx, sheet_id)
        return Response(_completion_payload(result, BakeSheetSerializer), status=status.HTTP_200_OK)


# Production sheets

class ProductionSheetListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_sheets(request.user):
            return _forbidden("You do not have permission to view production sheets.")
        ctx = context_for_request(request)
        sheets = list_production_sheets(ctx, status=(request.GET.get("status") or "").strip().upper() or None)
        sheets = sheets.prefetch_related("entries__recipe").order_by("-created_at", "-id")
        return Response({"items": ProductionSheetSerializer(sheets, many=True).data}, status=status.HTTP_200_OK)

    def post(self, request):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to create production sheets.")
        ctx = context_for_request(request)
        sheet = create_production_sheet(ctx, _payload(request, bakery_id=ctx.bakery_id))
        return Response(_sheet_detail(ctx, sheet, ProductionSheetSerializer), status=status.HTTP_201_CREATED)


class ProductionSheetDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, sheet_id: int):
        if not can_view_sheets(request.user):
            return _forbidden("You do not have permission to view production sheets.")
        ctx = context_for_request(request)
        sheet = get_production_sheet(ctx, sheet_id)
        return Response(_sheet_detail(ctx, sheet, ProductionSheetSerializer), status=status.HTTP_200_OK)

    def patch(self, request, sheet_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to edit production sheets.")
        ctx = context_for_request(request)
        sheet = update_production_sheet(ctx, sheet_id, _payload(request))
        return Response(_sheet_detail(ctx, sheet, ProductionSheetSerializer), status=status.HTTP_200_OK)

    def delete(self, request, sheet_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to delete production sheets.")
        ctx = context_for_request(request)
        delete_production_sheet(ctx, sheet_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProductionSheetRecipesView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, sheet_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to edit production sheets.")
        ctx = context_for_request(request)
        entry = add_recipe_to_sheet(ctx, _payload(request, production_sheet_id=sheet_id))
        return Response(ProductionSheetRecipeSerializer(entry).data, status=status.HTTP_201_CREATED)


class ProductionSheetRecipeDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def patch(self, request, sheet_id: int, recipe_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to edit production sheets.")
        ctx = context_for_request(request)
        data = _payload(request, production_sheet_id=sheet_id, recipe_id=recipe_id)
        entry = update_recipe_on_sheet(ctx, data)
        return Response(ProductionSheetRecipeSerializer(entry).data, status=status.HTTP_200_OK)

    def delete(self, request, sheet_id: int, recipe_id: int):
        if not can_manage_sheets(request.user):
            return _forbidden("You do not have permission to edit production sheets.")
        ctx = context_for_request(request)
        remove_recipe_from_sheet(ctx, {"production_sheet_id": sheet_id, "recipe_id": recipe_id})
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProductionSheetCompleteView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, sheet_id: int):
        if not can_complete_sheets(request.user):
            return _forbidden("You do not have permission to complete production sheets.")
        ctx = context_for_request(request)
        result = complete_production_sheet(ctx, sheet_id)
        return Response(_completion_payload(result, ProductionSheetSerializer), status=status.HTTP_200_OK)


# Activity

class ActivityLogListView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not can_view_activity(request.user):
            return _forbidden("You do not have permission to view activity.")
        ctx = context_for_request(request)
        limit = _parse_bounded_int(request.GET.get("limit", 100), default=100, min_value=1, max_value=500)
        qs = scoped(ActivityLog.objects.select_related("user"), ctx).order_by("-timestamp", "-id")
        entity_type = (request.GET.get("entity_type") or "").strip()
        if entity_type:
            qs = qs.filter(entity_type=entity_type)
        return Response({"items": ActivityLogSerializer(qs[:limit], many=True).data}, status=status.HTTP_200_OK)
