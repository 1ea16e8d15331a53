from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from catalog.models import Ingredient, Vendor
from core.models import Bakery


class InventoryLot(models.Model):
    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="inventory_lots")
    ingredient = models.ForeignKey(Ingredient, on_delete=models.PROTECT, related_name="lots")
    vendor = models.ForeignKey(Vendor, null=True, blank=True, on_delete=models.SET_NULL, related_name="lots")
    purchase_qty = models.DecimalField(max_digits=18, decimal_places=6)
    remaining_qty = models.DecimalField(max_digits=18, decimal_places=6)
    purchase_unit = models.CharField(max_length=20)
    cost_per_unit = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    purchased_at = models.DateTimeField(default=timezone.now, db_index=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    # Set when the lot is written off; the row stays so its receipt keeps pointing at it.
    retired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Inventory lot"
        verbose_name_plural = "Inventory lots"
        ordering = ["purchased_at", "id"]

    @property
    def is_depleted(self) -> bool:
        return self.remaining_qty <= 0

    @property
    def remaining_value(self) -> Decimal:
        if self.remaining_qty <= 0:
            return Decimal("0")
        return Decimal(self.remaining_qty) * Decimal(self.cost_per_unit)

    def __str__(self) -> str:
        return f"{self.ingredient.name} {self.purchase_qty} {self.purchase_unit} ({self.purchased_at:%Y-%m-%d})"


class InventoryTransaction(models.Model):
    TYPE_RECEIVE = "RECEIVE"
    TYPE_USE = "USE"
    TYPE_ADJUST = "ADJUST"
    TYPE_WASTE = "WASTE"
    TYPE_CHOICES = [
        (TYPE_RECEIVE, "Receive"),
        (TYPE_USE, "Use"),
        (TYPE_ADJUST, "Adjust"),
        (TYPE_WASTE, "Waste"),
    ]

    DIRECTION_IN = "IN"
    DIRECTION_OUT = "OUT"
    DIRECTION_CHOICES = [
        (DIRECTION_IN, "In"),
        (DIRECTION_OUT, "Out"),
    ]

    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="inventory_transactions")
    ingredient = models.ForeignKey(Ingredient, on_delete=models.PROTECT, related_name="transactions")
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, db_index=True)
    direction = models.CharField(max_length=3, choices=DIRECTION_CHOICES)
    # Always positive, expressed in the ingredient unit.
    quantity = models.DecimalField(max_digits=18, decimal_places=6)
    unit = models.CharField(max_length=20)
    # OUT quantity no lot could cover when the row was written (ingredient unit).
    shortfall = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    bake_sheet = models.ForeignKey(
        "recipes.BakeSheet",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    production_sheet = models.ForeignKey(
        "recipes.ProductionSheet",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    lot = models.ForeignKey(
        InventoryLot,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="receipts",
    )

    class Meta:
        verbose_name = "Inventory transaction"
        verbose_name_plural = "Inventory transactions"
        ordering = ["id"]
        indexes = [models.Index(fields=["bakery", "ingredient", "id"], name="inv_tx_ledger_idx")]

    @property
    def signed_quantity(self) -> Decimal:
        if self.direction == self.DIRECTION_OUT:
            return -Decimal(self.quantity)
        return Decimal(self.quantity)

    def __str__(self) -> str:
        return f"{self.type} {self.ingredient.name} {self.quantity} {self.unit}"


class InventoryUsage(models.Model):
    lot = models.ForeignKey(InventoryLot, on_delete=models.PROTECT, related_name="usages")
    transaction = models.ForeignKey(InventoryTransaction, on_delete=models.PROTECT, related_name="usages")
    # Both in the lot's purchase unit.
    quantity = models.DecimalField(max_digits=18, decimal_places=6)
    shortfall = models.DecimalField(max_digits=18, decimal_places=6, default=0)
    # Drawn later from a new lot to cover an earlier shortfall of ``transaction``.
    backfill = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Inventory usage"
        verbose_name_plural = "Inventory usages"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.lot_id}: {self.quantity}"
