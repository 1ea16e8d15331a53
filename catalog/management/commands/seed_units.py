from django.core.management.base import BaseCommand

from catalog.models import UnitOfMeasure, seed_basic_units


class Command(BaseCommand):
    help = "Loads the basic mass, volume and count units of measure."

    def handle(self, *args, **options):
        created = seed_basic_units()
        total = UnitOfMeasure.objects.count()
        self.stdout.write(self.style.SUCCESS(f"Units ready. Created: {created}, total: {total}"))
