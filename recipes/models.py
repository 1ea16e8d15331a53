from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from catalog.models import Ingredient, normalize_name
from core.models import Bakery

MAX_SCALE = Decimal("100")


class Recipe(models.Model):
    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="recipes")
    name = models.CharField(max_length=200)
    normalized_name = models.CharField(max_length=220, db_index=True)
    description = models.TextField(blank=True, default="")
    yield_qty = models.PositiveIntegerField(default=1)
    yield_unit = models.CharField(max_length=100)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Recipe"
        verbose_name_plural = "Recipes"
        ordering = ["name"]

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_name(self.name)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.name


class RecipeSection(models.Model):
    recipe = models.ForeignKey(Recipe, on_delete=models.CASCADE, related_name="sections")
    name = models.CharField(max_length=100)
    order = models.PositiveIntegerField(default=0)
    instructions = models.TextField(blank=True, default="")

    class Meta:
        verbose_name = "Recipe section"
        verbose_name_plural = "Recipe sections"
        ordering = ["recipe", "order", "id"]

    def __str__(self) -> str:
        return f"{self.recipe.name} - {self.name}"


class RecipeIngredient(models.Model):
    section = models.ForeignKey(RecipeSection, on_delete=models.CASCADE, related_name="ingredients")
    ingredient = models.ForeignKey(Ingredient, on_delete=models.PROTECT, related_name="recipe_lines")
    # Quantity at scale 1.
    quantity = models.DecimalField(max_digits=18, decimal_places=6)
    unit = models.CharField(max_length=20)

    class Meta:
        verbose_name = "Recipe ingredient"
        verbose_name_plural = "Recipe ingredients"
        ordering = ["section", "id"]

    def __str__(self) -> str:
        return f"{self.ingredient.name} {self.quantity} {self.unit}"


class SheetStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    COMPLETED = "COMPLETED", "Completed"


def scale_validators():
    return [MinValueValidator(Decimal("0.000001")), MaxValueValidator(MAX_SCALE)]


class BakeSheet(models.Model):
    STATUS_DRAFT = SheetStatus.DRAFT
    STATUS_COMPLETED = SheetStatus.COMPLETED

    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="bake_sheets")
    recipe = models.ForeignKey(Recipe, on_delete=models.PROTECT, related_name="bake_sheets")
    scale = models.DecimalField(max_digits=12, decimal_places=6, validators=scale_validators())
    quantity = models.CharField(max_length=100)
    notes = models.TextField(blank=True, default="")
    status = models.CharField(max_length=12, choices=SheetStatus.choices, default=SheetStatus.DRAFT, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="bake_sheets_created",
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="bake_sheets_completed",
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Bake sheet"
        verbose_name_plural = "Bake sheets"
        ordering = ["-created_at", "-id"]

    @property
    def is_draft(self) -> bool:
        return self.status == SheetStatus.DRAFT

    def __str__(self) -> str:
        return f"{self.recipe.name} x{self.scale} ({self.quantity})"


class ProductionSheet(models.Model):
    STATUS_DRAFT = SheetStatus.DRAFT
    STATUS_COMPLETED = SheetStatus.COMPLETED

    bakery = models.ForeignKey(Bakery, on_delete=models.CASCADE, related_name="production_sheets")
    description = models.CharField(max_length=500, blank=True, default="")
    scheduled_for = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    status = models.CharField(max_length=12, choices=SheetStatus.choices, default=SheetStatus.DRAFT, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="production_sheets_created",
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="production_sheets_completed",
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Production sheet"
        verbose_name_plural = "Production sheets"
        ordering = ["-created_at", "-id"]

    @property
    def is_draft(self) -> bool:
        return self.status == SheetStatus.DRAFT

    def __str__(self) -> str:
        return self.description or f"Production sheet {self.pk}"


class ProductionSheetRecipe(models.Model):
    production_sheet = models.ForeignKey(ProductionSheet, on_delete=models.CASCADE, related_name="entries")
    recipe = models.ForeignKey(Recipe, on_delete=models.PROTECT, related_name="production_entries")
    scale = models.DecimalField(max_digits=12, decimal_places=6, validators=scale_validators())
    order = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "Production sheet recipe"
        verbose_name_plural = "Production sheet recipes"
        ordering = ["production_sheet", "order", "id"]
        unique_together = [("production_sheet", "recipe")]

    def __str__(self) -> str:
        return f"{self.recipe.name} x{self.scale}"
