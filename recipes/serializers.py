from rest_framework import serializers

from core.validation import IdentifierField, PositiveDecimalField, validate_input
from recipes.models import MAX_SCALE, BakeSheet, ProductionSheet, ProductionSheetRecipe, Recipe, RecipeIngredient, RecipeSection


class ScaleField(PositiveDecimalField):
    """Recipe multiplier in (0, 100]."""

    def __init__(self, **kwargs):
        kwargs.setdefault("positive_message", "Scale must be positive.")
        kwargs.setdefault("max_digits", 18)
        kwargs.setdefault("decimal_places", 6)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if value > MAX_SCALE:
            raise serializers.ValidationError("Scale too large.")
        return value


def _notes_field():
    return serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        allow_null=True,
        error_messages={"max_length": "Notes too long."},
    )


def _quantity_description(**kwargs):
    return serializers.CharField(
        max_length=100,
        error_messages={
            "blank": "Quantity description is required.",
            "required": "Quantity description is required.",
            "max_length": "Quantity description too long.",
        },
        **kwargs,
    )


# Recipes

class RecipeIngredientInputSerializer(serializers.Serializer):
    ingredient_id = IdentifierField(error_messages={"invalid": "Invalid ingredient.", "min_value": "Invalid ingredient."})
    quantity = PositiveDecimalField(positive_message="Quantity must be positive.")
    unit = serializers.CharField(max_length=20, error_messages={"blank": "Unit is required.", "required": "Unit is required."})


class RecipeSectionInputSerializer(serializers.Serializer):
    name = serializers.CharField(
        max_length=100,
        error_messages={"blank": "Section name is required.", "required": "Section name is required."},
    )
    order = serializers.IntegerField(
        min_value=0,
        error_messages={"min_value": "Order must be a non-negative integer."},
    )
    instructions = serializers.CharField(
        max_length=10000,
        required=False,
        allow_blank=True,
        default="",
        error_messages={"max_length": "Instructions too long."},
    )
    ingredients = RecipeIngredientInputSerializer(many=True, required=False, default=list)


class RecipeCreateSerializer(serializers.Serializer):
    bakery_id = IdentifierField()
    name = serializers.CharField(
        max_length=200,
        error_messages={"blank": "Recipe name is required.", "required": "Recipe name is required."},
    )
    description = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)
    yield_qty = serializers.IntegerField(
        min_value=1,
        error_messages={"min_value": "Yield quantity must be a positive number."},
    )
    yield_unit = serializers.CharField(
        max_length=100,
        error_messages={"blank": "Yield unit is required.", "required": "Yield unit is required."},
    )
    sections = RecipeSectionInputSerializer(
        many=True,
        allow_empty=False,
        error_messages={"empty": "At least one section is required."},
    )


class RecipeUpdateSerializer(serializers.Serializer):
    id = IdentifierField()
    name = serializers.CharField(max_length=200, required=False, error_messages={"blank": "Recipe name is required."})
    description = serializers.CharField(max_length=2000, required=False, allow_blank=True, allow_null=True)
    yield_qty = serializers.IntegerField(
        min_value=1,
        required=False,
        error_messages={"min_value": "Yield quantity must be a positive number."},
    )
    yield_unit = serializers.CharField(max_length=100, required=False, error_messages={"blank": "Yield unit is required."})
    sections = RecipeSectionInputSerializer(
        many=True,
        required=False,
        allow_empty=False,
        error_messages={"empty": "At least one section is required."},
    )


class RecipeIngredientSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source="ingredient.name", read_only=True)

    class Meta:
        model = RecipeIngredient
        fields = ["id", "ingredient", "ingredient_name", "quantity", "unit"]


class RecipeSectionSerializer(serializers.ModelSerializer):
    ingredients = RecipeIngredientSerializer(many=True, read_only=True)

    class Meta:
        model = RecipeSection
        fields = ["id", "name", "order", "instructions", "ingredients"]


class RecipeSerializer(serializers.ModelSerializer):
    sections = RecipeSectionSerializer(many=True, read_only=True)

    class Meta:
        model = Recipe
        fields = ["id", "name", "description", "yield_qty", "yield_unit", "sections", "created_at"]


class RecipeListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Recipe
        fields = ["id", "name", "yield_qty", "yield_unit"]


# Bake sheets

class BakeSheetCreateSerializer(serializers.Serializer):
    bakery_id = IdentifierField()
    recipe_id = IdentifierField(error_messages={"invalid": "Invalid recipe.", "min_value": "Invalid recipe."})
    scale = ScaleField()
    quantity = _quantity_description()
    notes = _notes_field()


class BakeSheetUpdateSerializer(serializers.Serializer):
    id = IdentifierField()
    scale = ScaleField(required=False)
    quantity = _quantity_description(required=False)
    notes = _notes_field()


class BakeSheetSerializer(serializers.ModelSerializer):
    recipe_name = serializers.CharField(source="recipe.name", read_only=True)

    class Meta:
        model = BakeSheet
        fields = [
            "id",
            "recipe",
            "recipe_name",
            "scale",
            "quantity",
            "notes",
            "status",
            "created_at",
            "created_by",
            "completed_at",
            "completed_by",
        ]


# Production sheets

class ProductionSheetRecipeInputSerializer(serializers.Serializer):
    recipe_id = IdentifierField(error_messages={"invalid": "Invalid recipe.", "min_value": "Invalid recipe."})
    scale = ScaleField()
    order = serializers.IntegerField(min_value=0, required=False)


def _recipes_field(**kwargs):
    return ProductionSheetRecipeInputSerializer(
        many=True,
        allow_empty=False,
        error_messages={"empty": "At least one recipe is required."},
        **kwargs,
    )


class ProductionSheetCreateSerializer(serializers.Serializer):
    bakery_id = IdentifierField()
    description = serializers.CharField(
        max_length=500,
        required=False,
        allow_blank=True,
        allow_null=True,
        error_messages={"max_length": "Description too long."},
    )
    scheduled_for = serializers.DateField(required=False, allow_null=True)
    notes = _notes_field()
    recipes = _recipes_field()


class ProductionSheetUpdateSerializer(serializers.Serializer):
    id = IdentifierField()
    description = serializers.CharField(
        max_length=500,
        required=False,
        allow_blank=True,
        allow_null=True,
        error_messages={"max_length": "Description too long."},
    )
    scheduled_for = serializers.DateField(required=False, allow_null=True)
    notes = _notes_field()
    # Replaces the whole list when present.
    recipes = _recipes_field(required=False)


class AddRecipeToSheetSerializer(serializers.Serializer):
    production_sheet_id = IdentifierField()
    recipe_id = IdentifierField(error_messages={"invalid": "Invalid recipe.", "min_value": "Invalid recipe."})
    scale = ScaleField()


class UpdateRecipeOnSheetSerializer(serializers.Serializer):
    production_sheet_id = IdentifierField()
    recipe_id = IdentifierField(error_messages={"invalid": "Invalid recipe.", "min_value": "Invalid recipe."})
    scale = ScaleField(required=False)
    order = serializers.IntegerField(min_value=0, required=False)


class RemoveRecipeFromSheetSerializer(serializers.Serializer):
    production_sheet_id = IdentifierField()
    recipe_id = IdentifierField(error_messages={"invalid": "Invalid recipe.", "min_value": "Invalid recipe."})


class ProductionSheetRecipeSerializer(serializers.ModelSerializer):
    recipe_name = serializers.CharField(source="recipe.name", read_only=True)

    class Meta:
        model = ProductionSheetRecipe
        fields = ["id", "recipe", "recipe_name", "scale", "order"]


class ProductionSheetSerializer(serializers.ModelSerializer):
    entries = ProductionSheetRecipeSerializer(many=True, read_only=True)

    class Meta:
        model = ProductionSheet
        fields = [
            "id",
            "description",
            "scheduled_for",
            "notes",
            "status",
            "entries",
            "created_at",
            "created_by",
            "completed_at",
            "completed_by",
        ]


def validate_create_recipe(data):
    return validate_input(RecipeCreateSerializer, data)


def validate_update_recipe(data):
    return validate_input(RecipeUpdateSerializer, data)


def validate_create_bake_sheet(data):
    return validate_input(BakeSheetCreateSerializer, data)


def validate_update_bake_sheet(data):
    return validate_input(BakeSheetUpdateSerializer, data)


def validate_create_production_sheet(data):
    return validate_input(ProductionSheetCreateSerializer, data)


def validate_update_production_sheet(data):
    return validate_input(ProductionSheetUpdateSerializer, data)


def validate_add_recipe_to_sheet(data):
    return validate_input(AddRecipeToSheetSerializer, data)


def validate_update_recipe_on_sheet(data):
    return validate_input(UpdateRecipeOnSheetSerializer, data)


def validate_remove_recipe_from_sheet(data):
    return validate_input(RemoveRecipeFromSheetSerializer, data)
