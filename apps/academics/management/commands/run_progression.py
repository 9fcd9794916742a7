"""
Management command to (re)run student progression into an academic year.

Students already advanced into the year are skipped, so this finishes an
interrupted run or retries students that failed.
"""

from django.core.management.base import BaseCommand, CommandError

from apps.academics.models import AcademicYear
from apps.academics.progression import OUTCOME_FAILED, ProgressionAborted, ProgressionBatchProcessor
from apps.academics.services import PeriodRegistryNotInitialized, PeriodRegistryService


class Command(BaseCommand):
    help = 'Progress pending students into an academic year'

    def add_arguments(self, parser):
        parser.add_argument(
            '--academic-year',
            type=str,
            help='Name of the target academic year (default: the current academic year)'
        )
        parser.add_argument(
            '--workers',
            type=int,
            help='Worker threads (default: PROGRESSION_MAX_WORKERS)'
        )
        parser.add_argument(
            '--chunk-size',
            type=int,
            help='Students per page (default: PROGRESSION_CHUNK_SIZE)'
        )
        parser.add_argument(
            '--actor',
            type=str,
            default='system',
            help='Name recorded on the transition record'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show how many students are pending without processing them',
        )

    def handle(self, *args, **options):
        if options['academic_year']:
            target = AcademicYear.objects.filter(name=options['academic_year']).first()
            if target is None:
                raise CommandError(f"Academic year \"{options['academic_year']}\" not found")
        else:
            try:
                target = PeriodRegistryService().get_registry().current_academic_year
            except PeriodRegistryNotInitialized as e:
                raise CommandError(str(e))

        processor = ProgressionBatchProcessor(
            max_workers=options['workers'],
            chunk_size=options['chunk_size'],
        )

        if options['dry_run']:
            pending = processor.pending_students(target).count()
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No data will be saved'))
            self.stdout.write(f'{pending} students pending progression into {target}')
            return

        try:
            summary = processor.run(target, actor=options['actor'], previous_value=target.name)
        except ProgressionAborted as e:
            raise CommandError(f'{e} ({len(e.results)} students written); run again to finish')

        for entry in summary['results']:
            if entry['status'] == OUTCOME_FAILED:
                self.stdout.write(self.style.ERROR(f"  {entry['student_id']}: {entry['error']}"))

        style = self.style.WARNING if summary['failed'] else self.style.SUCCESS
        self.stdout.write(style(
            f"Progression into {target} complete: {summary['students_processed']} processed, "
            f"{summary['succeeded']} succeeded, {summary['failed']} failed"
        ))
