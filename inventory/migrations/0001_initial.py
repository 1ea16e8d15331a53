# Generated manually
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("core", "0001_initial"),
        ("catalog", "0001_initial"),
        ("recipes", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="InventoryLot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("purchase_qty", models.DecimalField(decimal_places=6, max_digits=18)),
                ("remaining_qty", models.DecimalField(decimal_places=6, max_digits=18)),
                ("purchase_unit", models.CharField(max_length=20)),
                ("cost_per_unit", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("purchased_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                ("bakery", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="inventory_lots", to="core.bakery")),
                ("ingredient", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="lots", to="catalog.ingredient")),
                (
                    "vendor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="lots",
                        to="catalog.vendor",
                    ),
                ),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Inventory lot",
                "verbose_name_plural": "Inventory lots",
                "ordering": ["purchased_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="InventoryTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "type",
                    models.CharField(
                        choices=[("RECEIVE", "Receive"), ("USE", "Use"), ("ADJUST", "Adjust"), ("WASTE", "Waste")],
                        db_index=True,
                        max_length=10,
                    ),
                ),
                ("direction", models.CharField(choices=[("IN", "In"), ("OUT", "Out")], max_length=3)),
                ("quantity", models.DecimalField(decimal_places=6, max_digits=18)),
                ("unit", models.CharField(max_length=20)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("bakery", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="inventory_transactions", to="core.bakery")),
                ("ingredient", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="transactions", to="catalog.ingredient")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                (
                    "bake_sheet",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="recipes.bakesheet",
                    ),
                ),
                (
                    "production_sheet",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="recipes.productionsheet",
                    ),
                ),
                (
                    "lot",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="receipts",
                        to="inventory.inventorylot",
                    ),
                ),
            ],
            options={
                "verbose_name": "Inventory transaction",
                "verbose_name_plural": "Inventory transactions",
                "ordering": ["id"],
                "indexes": [models.Index(fields=["bakery", "ingredient", "id"], name="inv_tx_ledger_idx")],
            },
        ),
        migrations.CreateModel(
            name="InventoryUsage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=6, max_digits=18)),
                ("shortfall", models.DecimalField(decimal_places=6, default=0, max_digits=18)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("lot", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="usages", to="inventory.inventorylot")),
                ("transaction", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="usages", to="inventory.inventorytransaction")),
            ],
            options={
                "verbose_name": "Inventory usage",
                "verbose_name_plural": "Inventory usages",
                "ordering": ["id"],
            },
        ),
    ]
