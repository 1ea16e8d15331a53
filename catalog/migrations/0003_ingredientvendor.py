# Generated manually
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    dependencies = [
        ("catalog", "0002_seed_units"),
    ]

    operations = [
        migrations.CreateModel(
            name="IngredientVendor",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "ingredient",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="vendor_links",
                        to="catalog.ingredient",
                    ),
                ),
                (
                    "vendor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ingredient_links",
                        to="catalog.vendor",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ingredient vendor",
                "verbose_name_plural": "Ingredient vendors",
                "ordering": ["id"],
                "unique_together": {("ingredient", "vendor")},
            },
        ),
    ]
