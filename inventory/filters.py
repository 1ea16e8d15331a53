import django_filters

from inventory.models import InventoryTransaction


class InventoryTransactionFilter(django_filters.FilterSet):
    type = django_filters.ChoiceFilter(choices=InventoryTransaction.TYPE_CHOICES)
    ingredient_id = django_filters.NumberFilter(field_name="ingredient_id", min_value=1)
    date_from = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    date_to = django_filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
