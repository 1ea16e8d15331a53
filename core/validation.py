from __future__ import annotations

from typing import Any

from rest_framework import serializers

from core import errors


def _flatten(detail) -> Any:
    if isinstance(detail, dict):
        return {key: _flatten(value) for key, value in detail.items()}
    if isinstance(detail, list):
        if all(isinstance(item, (str, serializers.ErrorDetail)) for item in detail):
            return [str(item) for item in detail]
        return [_flatten(item) for item in detail]
    return [str(detail)]


def validate_input(
    serializer_class: type[serializers.Serializer],
    data: dict[str, Any] | None,
    *,
    partial: bool = False,
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Run a schema and return its normalized data.

    Raises ``errors.ValidationError`` with the serializer's field map
    (``{"scale": ["Scale must be positive."]}``) instead of the DRF exception
    so service code never depends on the HTTP layer.
    """
    ser = serializer_class(data=data or {}, partial=partial, context=context or {})
    if not ser.is_valid():
        raise errors.ValidationError(_flatten(ser.errors))
    return dict(ser.validated_data)


class IdentifierField(serializers.IntegerField):
    """Primary key reference. Only the format is checked here."""

    default_error_messages = {
        "invalid": "Invalid identifier.",
        "min_value": "Invalid identifier.",
        "max_string_length": "Invalid identifier.",
    }

    def __init__(self, **kwargs):
        kwargs.setdefault("min_value", 1)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        if isinstance(data, bool) or isinstance(data, float):
            self.fail("invalid")
        return super().to_internal_value(data)


class PositiveDecimalField(serializers.DecimalField):
    def __init__(self, *, positive_message: str = "Must be positive.", **kwargs):
        kwargs.setdefault("max_digits", 18)
        kwargs.setdefault("decimal_places", 6)
        self.positive_message = positive_message
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if value <= 0:
            raise serializers.ValidationError(self.positive_message)
        return value
