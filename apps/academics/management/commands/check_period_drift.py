from django.core.management.base import BaseCommand, CommandError

from apps.academics.services import PeriodRegistryNotInitialized, PeriodRegistryService


class Command(BaseCommand):
    help = 'Compare the period registry with the legacy current-year setting and repair drift'

    def handle(self, *args, **options):
        try:
            fault = PeriodRegistryService().detect_drift()
        except PeriodRegistryNotInitialized as e:
            raise CommandError(str(e))

        if fault is None:
            self.stdout.write(self.style.SUCCESS('No drift: legacy setting matches the period registry'))
            return

        before = 'missing' if fault['mirror_missing'] else fault['mirror_before']['academic_year']
        self.stdout.write(self.style.WARNING(
            f"Drift repaired: legacy setting was {before}, "
            f"now {fault['primary']['academic_year']}"
        ))
