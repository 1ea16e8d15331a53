from django.db import models
from django.utils import timezone
from unidecode import unidecode

from core.models import Bakery


def normalize_name(text: str | None) -> str:
    return " ".join(unidecode(text or "").lower().strip().split())


class UnitOfMeasure(models.Model):
    KIND_MASS = "MASS"
    KIND_VOLUME = "VOLUME"
    KIND_COUNT = "COUNT"
    KIND_CHOICES = [
        (KIND_MASS, "Mass"),
        (KIND_VOLUME, "Volume"),
        (KIND_COUNT, "Count"),
    ]

    code = models.CharField(max_length=20, unique=True)  # g, kg, lb, ml, cup, each...
    name = models.CharField(max_length=60)
    kind = models.CharField(max_length=10, choices=KIND_CHOICES, default=KIND_COUNT)
    # factor to the base unit of the kind (g for mass, ml for volume, piece for count)
    factor_to_base = models.DecimalField(max_digits=18, decimal_places=6, default=1)

    class Meta:
        verbose_name = "Unit of measure"
        verbose_name_plural = "Units of measure"
        ordering = ["kind", "code"]

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().lower()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.code


class Vendor(models.Model):
    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="vendors")
    name = models.CharField(max_length=100)
    contact_name = models.CharField(max_length=100, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=30, blank=True, default="")
    website = models.URLField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Vendor"
        verbose_name_plural = "Vendors"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Ingredient(models.Model):
    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="ingredients")
    name = models.CharField(max_length=100)
    normalized_name = models.CharField(max_length=120, db_index=True)
    # Reference unit: recipes, stock and the ledger are expressed in it.
    unit = models.CharField(max_length=20)
    low_stock_threshold = models.DecimalField(max_digits=18, decimal_places=3, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Ingredient"
        verbose_name_plural = "Ingredients"
        ordering = ["name"]
        unique_together = [("bakery", "normalized_name")]

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_name(self.name)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.name


class IngredientVendor(models.Model):
    """A vendor an ingredient can be bought from."""

    ingredient = models.ForeignKey(Ingredient, on_delete=models.CASCADE, related_name="vendor_links")
    # Vendors with linked ingredients cannot be deleted.
    vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name="ingredient_links")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        verbose_name = "Ingredient vendor"
        verbose_name_plural = "Ingredient vendors"
        ordering = ["id"]
        unique_together = [("ingredient", "vendor")]

    def __str__(self) -> str:
        return f"{self.ingredient} <- {self.vendor}"


BASIC_UNITS = [
    ("g", "Gram", UnitOfMeasure.KIND_MASS, "1"),
    ("kg", "Kilogram", UnitOfMeasure.KIND_MASS, "1000"),
    ("mg", "Milligram", UnitOfMeasure.KIND_MASS, "0.001"),
    ("lb", "Pound", UnitOfMeasure.KIND_MASS, "453.59237"),
    ("oz", "Ounce", UnitOfMeasure.KIND_MASS, "28.349523"),
    ("ml", "Milliliter", UnitOfMeasure.KIND_VOLUME, "1"),
    ("l", "Liter", UnitOfMeasure.KIND_VOLUME, "1000"),
    ("tsp", "Teaspoon", UnitOfMeasure.KIND_VOLUME, "4.928922"),
    ("tbsp", "Tablespoon", UnitOfMeasure.KIND_VOLUME, "14.786765"),
    ("fl-oz", "Fluid ounce", UnitOfMeasure.KIND_VOLUME, "29.573530"),
    ("cup", "Cup", UnitOfMeasure.KIND_VOLUME, "236.588237"),
    ("pnt", "Pint", UnitOfMeasure.KIND_VOLUME, "473.176473"),
    ("qt", "Quart", UnitOfMeasure.KIND_VOLUME, "946.352946"),
    ("gal", "Gallon", UnitOfMeasure.KIND_VOLUME, "3785.411784"),
    ("each", "Each", UnitOfMeasure.KIND_COUNT, "1"),
    ("dozen", "Dozen", UnitOfMeasure.KIND_COUNT, "12"),
]


def seed_basic_units() -> int:
    # Safe to call repeatedly.
    created = 0
    for code, name, kind, factor in BASIC_UNITS:
        _, was_created = UnitOfMeasure.objects.get_or_create(
            code=code,
            defaults={"name": name, "kind": kind, "factor_to_base": factor},
        )
        created += int(was_created)
    return created
