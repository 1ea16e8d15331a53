from rest_framework import serializers

from core.validation import IdentifierField, validate_input


class BakeryCreateSerializer(serializers.Serializer):
    name = serializers.CharField(
        max_length=100,
        error_messages={
            "blank": "Name is required.",
            "required": "Name is required.",
            "max_length": "Name must be 100 characters or less.",
        },
    )
    description = serializers.CharField(required=False, allow_blank=True, default="")
    address = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default="")
    email = serializers.EmailField(
        required=False,
        allow_blank=True,
        default="",
        error_messages={"invalid": "Invalid email address."},
    )
    website = serializers.URLField(
        required=False,
        allow_blank=True,
        default="",
        error_messages={"invalid": "Invalid URL."},
    )

    def validate_name(self, value):
        value = " ".join((value or "").split())
        if not value:
            raise serializers.ValidationError("Name is required.")
        return value


class BakeryUpdateSerializer(serializers.Serializer):
    id = IdentifierField()
    name = serializers.CharField(
        max_length=100,
        required=False,
        error_messages={
            "blank": "Name is required.",
            "max_length": "Name must be 100 characters or less.",
        },
    )
    description = serializers.CharField(required=False, allow_blank=True)
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True, error_messages={"invalid": "Invalid email address."})
    website = serializers.URLField(required=False, allow_blank=True, error_messages={"invalid": "Invalid URL."})

    validate_name = BakeryCreateSerializer.validate_name


class BakerySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    description = serializers.CharField()
    address = serializers.CharField()
    phone = serializers.CharField()
    email = serializers.CharField()
    website = serializers.CharField()
    is_active = serializers.BooleanField()
    created_at = serializers.DateTimeField()


class ActivityLogSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    timestamp = serializers.DateTimeField()
    username = serializers.CharField(source="user.username", default="")
    action = serializers.CharField()
    entity_type = serializers.CharField()
    entity_id = serializers.CharField()
    entity_name = serializers.CharField()
    description = serializers.CharField()
    metadata = serializers.JSONField()


def validate_create_bakery(data):
    return validate_input(BakeryCreateSerializer, data)


def validate_update_bakery(data):
    return validate_input(BakeryUpdateSerializer, data)
