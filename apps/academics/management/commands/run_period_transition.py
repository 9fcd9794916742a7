"""
Management command to apply semester/trimester and academic year transitions.

Meant to be run by an external scheduler (cron) with --scheduled, or by an
administrator with --type.
"""

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from apps.academics.models import ProgramType
from apps.academics.progression import ProgressionAborted
from apps.academics.services import PeriodRegistryNotInitialized, TransitionEngine
from apps.audit.models import TransitionRecord


class Command(BaseCommand):
    help = 'Apply due (or forced) period transitions'

    def add_arguments(self, parser):
        parser.add_argument(
            '--type',
            type=str,
            choices=TransitionRecord.TransitionType.values,
            help='Transition to apply'
        )
        parser.add_argument(
            '--program-type',
            type=str,
            choices=ProgramType.values,
            default=ProgramType.REGULAR,
            help='Program track for semester transitions (default: regular)'
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Apply even if the current period has not ended'
        )
        parser.add_argument(
            '--scheduled',
            action='store_true',
            help='Apply every transition that is due (scheduler mode)'
        )
        parser.add_argument(
            '--date',
            type=str,
            help='Evaluate as of this date (YYYY-MM-DD) instead of today'
        )
        parser.add_argument(
            '--actor',
            type=str,
            help='Name recorded on the transition (default: system, or scheduler with --scheduled)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show which transitions are due without applying them',
        )

    def handle(self, *args, **options):
        now = None
        if options['date']:
            now = parse_date(options['date'])
            if now is None:
                raise CommandError(f"Invalid date \"{options['date']}\"")

        if not options['type'] and not options['scheduled'] and not options['dry_run']:
            raise CommandError('Pass --type, --scheduled or --dry-run')

        engine = TransitionEngine()
        try:
            if options['dry_run']:
                self.show_due(engine.evaluate_due(now))
                return

            if options['scheduled']:
                results = engine.run_scheduled(now, actor=options['actor'] or 'scheduler')
                if not results:
                    self.stdout.write('No transitions due')
            else:
                results = [engine.apply_transition(
                    options['type'],
                    force=options['force'],
                    program_type=options['program_type'],
                    triggered_by=TransitionRecord.TriggerType.MANUAL,
                    actor=options['actor'] or 'system',
                    now=now,
                )]
        except PeriodRegistryNotInitialized as e:
            raise CommandError(str(e))
        except ValidationError as e:
            raise CommandError('; '.join(e.messages))
        except ProgressionAborted as e:
            raise CommandError(f'{e} ({len(e.results)} students written); run run_progression to finish')

        for result in results:
            self.show_result(result)

    def show_due(self, due):
        if not due:
            self.stdout.write('No transitions due')
        for entry in due:
            track = f" [{entry['program_type']}]" if entry['program_type'] else ''
            self.stdout.write(f"Due: {entry['type']}{track} {entry['previous_value']} -> {entry['new_value']}")

    def show_result(self, result):
        track = f" [{result['program_type']}]" if result.get('program_type') else ''
        if not result['applied']:
            self.stdout.write(self.style.WARNING(f"{result['type']}{track} not applied: {result['reason']}"))
            return

        self.stdout.write(self.style.SUCCESS(
            f"{result['type']}{track}: {result['previous_value']} -> {result['new_value']}"
        ))
        self.stdout.write(
            f"  Students processed: {result['students_processed']}, "
            f"succeeded: {result['succeeded']}, failed: {result['failed']}"
        )
        if result['failed']:
            for entry in result.get('results', []):
                if entry['status'] == 'failed':
                    self.stdout.write(self.style.ERROR(f"  {entry['student_id']}: {entry['error']}"))
