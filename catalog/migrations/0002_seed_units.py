from django.db import migrations

UNITS = [
    ("g", "Gram", "MASS", "1"),
    ("kg", "Kilogram", "MASS", "1000"),
    ("mg", "Milligram", "MASS", "0.001"),
    ("lb", "Pound", "MASS", "453.59237"),
    ("oz", "Ounce", "MASS", "28.349523"),
    ("ml", "Milliliter", "VOLUME", "1"),
    ("l", "Liter", "VOLUME", "1000"),
    ("tsp", "Teaspoon", "VOLUME", "4.928922"),
    ("tbsp", "Tablespoon", "VOLUME", "14.786765"),
    ("fl-oz", "Fluid ounce", "VOLUME", "29.573530"),
    ("cup", "Cup", "VOLUME", "236.588237"),
    ("pnt", "Pint", "VOLUME", "473.176473"),
    ("qt", "Quart", "VOLUME", "946.352946"),
    ("gal", "Gallon", "VOLUME", "3785.411784"),
    ("each", "Each", "COUNT", "1"),
    ("dozen", "Dozen", "COUNT", "12"),
]


def seed_units(apps, schema_editor):
    UnitOfMeasure = apps.get_model("catalog", "UnitOfMeasure")
    for code, name, kind, factor in UNITS:
        UnitOfMeasure.objects.get_or_create(code=code, defaults={"name": name, "kind": kind, "factor_to_base": factor})


class Migration(migrations.Migration):

    dependencies = [
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_units, migrations.RunPython.noop),
    ]
