"""
Management command to bring identifier counters back in line with the
identifiers actually issued, and to backfill entities that never got one.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.core.management.base import BaseCommand, CommandError

from apps.core.services import IdentifierAllocator, IdentifierSpaceExhausted


class Command(BaseCommand):
    help = 'Reconcile identifier counters with issued identifiers and backfill missing ones'

    def add_arguments(self, parser):
        parser.add_argument(
            'year_keys',
            nargs='*',
            type=str,
            help='Year keys to reconcile (default: every year with a counter or an admitted entity)'
        )
        parser.add_argument(
            '--prefix',
            type=str,
            default=getattr(settings, 'IDENTIFIER_DEFAULT_PREFIX', 'UCAES'),
            help='Identifier prefix (default: IDENTIFIER_DEFAULT_PREFIX)'
        )
        parser.add_argument(
            '--source',
            type=str,
            default='student',
            help='IDENTIFIER_SOURCES entry to scan (default: student)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would be corrected without saving',
        )

    def handle(self, *args, **options):
        prefix = options['prefix']
        allocator = IdentifierAllocator()

        try:
            year_keys = options['year_keys'] or allocator.year_keys(prefix, source=options['source'])
        except (ValidationError, ImproperlyConfigured) as e:
            raise CommandError(f'{prefix}: {e}')
        if not year_keys:
            self.stdout.write(self.style.WARNING(f'No counters or identifiers found for prefix {prefix}'))
            return

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No data will be saved'))

        for year_key in year_keys:
            try:
                if options['dry_run']:
                    self.show_inspection(allocator.inspect(prefix, year_key, source=options['source']))
                else:
                    self.show_report(allocator.reconcile(prefix, year_key, source=options['source']))
            except (ValidationError, ImproperlyConfigured) as e:
                raise CommandError(f'{prefix}{year_key}: {e}')
            except IdentifierSpaceExhausted as e:
                self.stdout.write(self.style.ERROR(str(e)))

    def show_inspection(self, info):
        key = f"{info['prefix']}{info['year_key']}"
        if info['behind']:
            self.stdout.write(self.style.WARNING(
                f"{key}: counter {info['counter']} is behind issued identifiers ({info['max_observed']})"
            ))
        else:
            self.stdout.write(f"{key}: counter {info['counter']} OK (highest issued {info['max_observed']})")
        if info['missing']:
            self.stdout.write(self.style.WARNING(f"{key}: {info['missing']} entities without an identifier"))

    def show_report(self, report):
        key = f"{report['prefix']}{report['year_key']}"
        if report['corrected']:
            self.stdout.write(self.style.WARNING(
                f"{key}: counter raised {report['counter_before']} -> {report['counter_after']}"
            ))
        for entry in report['backfilled']:
            self.stdout.write(f"  {entry['pk']}: {entry['identifier']}")
        self.stdout.write(self.style.SUCCESS(
            f"{key}: reconciled (counter {report['counter_after']}, "
            f"{len(report['backfilled'])} backfilled)"
        ))
