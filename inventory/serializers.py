from rest_framework import serializers

from core.validation import IdentifierField, PositiveDecimalField, validate_input
from inventory.models import InventoryLot, InventoryTransaction

FIXED_DIRECTIONS = {
    InventoryTransaction.TYPE_RECEIVE: InventoryTransaction.DIRECTION_IN,
    InventoryTransaction.TYPE_USE: InventoryTransaction.DIRECTION_OUT,
    InventoryTransaction.TYPE_WASTE: InventoryTransaction.DIRECTION_OUT,
}


def _notes_field():
    return serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        allow_null=True,
        error_messages={"max_length": "Notes too long."},
    )


def _unit_field(**kwargs):
    return serializers.CharField(
        max_length=20,
        error_messages={"blank": "Unit is required.", "required": "Unit is required."},
        **kwargs,
    )


class InventoryTransactionCreateSerializer(serializers.Serializer):
    bakery_id = IdentifierField()
    ingredient_id = IdentifierField(error_messages={"invalid": "Invalid ingredient.", "min_value": "Invalid ingredient."})
    type = serializers.ChoiceField(
        choices=InventoryTransaction.TYPE_CHOICES,
        error_messages={"invalid_choice": "Invalid transaction type."},
    )
    direction = serializers.ChoiceField(
        choices=InventoryTransaction.DIRECTION_CHOICES,
        required=False,
        allow_null=True,
        error_messages={"invalid_choice": "Direction must be IN or OUT."},
    )
    quantity = PositiveDecimalField(positive_message="Quantity must be positive.")
    unit = _unit_field()
    notes = _notes_field()

    def validate(self, attrs):
        tx_type = attrs["type"]
        direction = attrs.get("direction")
        if tx_type == InventoryTransaction.TYPE_ADJUST:
            if not direction:
                raise serializers.ValidationError({"direction": ["Direction is required for adjustments."]})
        else:
            fixed = FIXED_DIRECTIONS[tx_type]
            if direction and direction != fixed:
                raise serializers.ValidationError({"direction": [f"{tx_type} transactions are always {fixed}."]})
            attrs["direction"] = fixed
        attrs["notes"] = attrs.get("notes") or ""
        attrs["unit"] = attrs["unit"].strip()
        return attrs


class InventoryTransactionSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source="ingredient.name", read_only=True)
    signed_quantity = serializers.DecimalField(max_digits=18, decimal_places=6, read_only=True)

    class Meta:
        model = InventoryTransaction
        fields = [
            "id",
            "ingredient",
            "ingredient_name",
            "type",
            "direction",
            "quantity",
            "signed_quantity",
            "unit",
            "shortfall",
            "notes",
            "created_at",
            "created_by",
            "bake_sheet",
            "production_sheet",
            "lot",
        ]


class InventoryLotCreateSerializer(serializers.Serializer):
    ingredient_id = IdentifierField(error_messages={"invalid": "Invalid ingredient.", "min_value": "Invalid ingredient."})
    quantity = PositiveDecimalField(positive_message="Quantity must be positive.")
    unit = _unit_field()
    cost_per_unit = serializers.DecimalField(
        max_digits=18,
        decimal_places=6,
        min_value=0,
        error_messages={"min_value": "Cost per unit cannot be negative."},
    )
    purchased_at = serializers.DateTimeField(required=False, allow_null=True)
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    vendor_id = IdentifierField(required=False, allow_null=True)
    notes = _notes_field()


class InventoryLotUpdateSerializer(serializers.Serializer):
    """Lot metadata only. Quantities change through the ledger."""

    id = IdentifierField()
    expires_at = serializers.DateTimeField(required=False, allow_null=True)
    vendor_id = IdentifierField(required=False, allow_null=True)
    notes = _notes_field()


class InventoryLotSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source="ingredient.name", read_only=True)
    vendor_name = serializers.CharField(source="vendor.name", read_only=True, default=None)

    class Meta:
        model = InventoryLot
        fields = [
            "id",
            "ingredient",
            "ingredient_name",
            "vendor",
            "vendor_name",
            "purchase_qty",
            "remaining_qty",
            "purchase_unit",
            "cost_per_unit",
            "purchased_at",
            "expires_at",
            "notes",
        ]


def validate_create_inventory_transaction(data):
    return validate_input(InventoryTransactionCreateSerializer, data)


def validate_add_inventory_lot(data):
    return validate_input(InventoryLotCreateSerializer, data)


def validate_update_inventory_lot(data):
    return validate_input(InventoryLotUpdateSerializer, data)
