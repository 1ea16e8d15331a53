from rest_framework import serializers

from core.validation import IdentifierField, validate_input


class IngredientCreateSerializer(serializers.Serializer):
    bakery_id = IdentifierField()
    name = serializers.CharField(
        max_length=100,
        error_messages={
            "blank": "Ingredient name is required.",
            "required": "Ingredient name is required.",
        },
    )
    unit = serializers.CharField(max_length=20, error_messages={"blank": "Unit is required.", "required": "Unit is required."})
    low_stock_threshold = serializers.DecimalField(
        max_digits=18,
        decimal_places=3,
        min_value=0,
        required=False,
        allow_null=True,
        default=None,
    )


class IngredientUpdateSerializer(serializers.Serializer):
    id = IdentifierField()
    name = serializers.CharField(max_length=100, required=False, error_messages={"blank": "Ingredient name is required."})
    unit = serializers.CharField(max_length=20, required=False, error_messages={"blank": "Unit is required."})
    # null = no alert
    low_stock_threshold = serializers.DecimalField(
        max_digits=18,
        decimal_places=3,
        min_value=0,
        required=False,
        allow_null=True,
    )


class IngredientSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    unit = serializers.CharField()
    low_stock_threshold = serializers.DecimalField(max_digits=18, decimal_places=3, allow_null=True)


class VendorCreateSerializer(serializers.Serializer):
    bakery_id = IdentifierField()
    name = serializers.CharField(
        max_length=100,
        error_messages={"blank": "Vendor name is required.", "required": "Vendor name is required."},
    )
    contact_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default="")
    website = serializers.URLField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        allow_null=True,
        default="",
        error_messages={"max_length": "Notes too long."},
    )


class VendorUpdateSerializer(serializers.Serializer):
    id = IdentifierField()
    name = serializers.CharField(max_length=100, required=False, error_messages={"blank": "Vendor name is required."})
    contact_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    website = serializers.URLField(required=False, allow_blank=True)
    notes = serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        allow_null=True,
        error_messages={"max_length": "Notes too long."},
    )


class IngredientVendorSerializer(serializers.Serializer):
    ingredient_id = IdentifierField()
    vendor_id = IdentifierField()


class VendorSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    contact_name = serializers.CharField()
    email = serializers.CharField()
    phone = serializers.CharField()
    website = serializers.CharField()
    notes = serializers.CharField()


def validate_create_ingredient(data):
    return validate_input(IngredientCreateSerializer, data)


def validate_update_ingredient(data):
    return validate_input(IngredientUpdateSerializer, data)


def validate_create_vendor(data):
    return validate_input(VendorCreateSerializer, data)


def validate_update_vendor(data):
    return validate_input(VendorUpdateSerializer, data)


def validate_ingredient_vendor(data):
    return validate_input(IngredientVendorSerializer, data)
