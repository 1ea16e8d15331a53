# Generated manually
from decimal import Decimal

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

STATUS_CHOICES = [("DRAFT", "Draft"), ("COMPLETED", "Completed")]


def scale_validators():
    return [
        django.core.validators.MinValueValidator(Decimal("0.000001")),
        django.core.validators.MaxValueValidator(Decimal("100")),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("core", "0001_initial"),
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Recipe",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("normalized_name", models.CharField(db_index=True, max_length=220)),
                ("description", models.TextField(blank=True, default="")),
                ("yield_qty", models.PositiveIntegerField(default=1)),
                ("yield_unit", models.CharField(max_length=100)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("bakery", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="recipes", to="core.bakery")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Recipe",
                "verbose_name_plural": "Recipes",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="RecipeSection",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("order", models.PositiveIntegerField(default=0)),
                ("instructions", models.TextField(blank=True, default="")),
                ("recipe", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sections", to="recipes.recipe")),
            ],
            options={
                "verbose_name": "Recipe section",
                "verbose_name_plural": "Recipe sections",
                "ordering": ["recipe", "order", "id"],
            },
        ),
        migrations.CreateModel(
            name="RecipeIngredient",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=6, max_digits=18)),
                ("unit", models.CharField(max_length=20)),
                ("ingredient", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="recipe_lines", to="catalog.ingredient")),
                ("section", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="ingredients", to="recipes.recipesection")),
            ],
            options={
                "verbose_name": "Recipe ingredient",
                "verbose_name_plural": "Recipe ingredients",
                "ordering": ["section", "id"],
            },
        ),
        migrations.CreateModel(
            name="BakeSheet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scale", models.DecimalField(decimal_places=6, max_digits=12, validators=scale_validators())),
                ("quantity", models.CharField(max_length=100)),
                ("notes", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="DRAFT", max_length=12)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("bakery", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bake_sheets", to="core.bakery")),
                ("recipe", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bake_sheets", to="recipes.recipe")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bake_sheets_created",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "completed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bake_sheets_completed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Bake sheet",
                "verbose_name_plural": "Bake sheets",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="ProductionSheet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(blank=True, default="", max_length=500)),
                ("scheduled_for", models.DateField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="DRAFT", max_length=12)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("bakery", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="production_sheets", to="core.bakery")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="production_sheets_created",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "completed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="production_sheets_completed",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Production sheet",
                "verbose_name_plural": "Production sheets",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="ProductionSheetRecipe",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("scale", models.DecimalField(decimal_places=6, max_digits=12, validators=scale_validators())),
                ("order", models.PositiveIntegerField(default=0)),
                ("production_sheet", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="entries", to="recipes.productionsheet")),
                ("recipe", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="production_entries", to="recipes.recipe")),
            ],
            options={
                "verbose_name": "Production sheet recipe",
                "verbose_name_plural": "Production sheet recipes",
                "ordering": ["production_sheet", "order", "id"],
                "unique_together": {("production_sheet", "recipe")},
            },
        ),
    ]
