"""
Management command to create the period registry and its legacy mirror.
"""

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.academics.models import AcademicYear, Semester
from apps.academics.services import PeriodRegistryService


class Command(BaseCommand):
    help = 'Initialize the current period registry (once)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--academic-year',
            type=str,
            help='Name of the current academic year (default: the year in session today)'
        )
        parser.add_argument(
            '--semester',
            type=str,
            choices=Semester.values,
            default=Semester.FIRST,
            help='Current semester of regular programs (default: First)'
        )
        parser.add_argument(
            '--trimester',
            type=str,
            choices=Semester.values,
            default=Semester.FIRST,
            help='Current trimester of weekend programs (default: First)'
        )
        parser.add_argument(
            '--actor',
            type=str,
            default='bootstrap',
            help='Name recorded as the updater'
        )

    def handle(self, *args, **options):
        if options['academic_year']:
            academic_year = AcademicYear.objects.filter(name=options['academic_year']).first()
            if academic_year is None:
                raise CommandError(f"Academic year \"{options['academic_year']}\" not found")
        else:
            academic_year = AcademicYear.in_session_on(timezone.localdate())
            if academic_year is None:
                raise CommandError('No academic year in session today; pass --academic-year')

        try:
            registry, created = PeriodRegistryService().bootstrap(
                academic_year,
                semester=options['semester'],
                trimester=options['trimester'],
                actor=options['actor'],
            )
        except ValidationError as e:
            raise CommandError('; '.join(e.messages))

        if created:
            self.stdout.write(self.style.SUCCESS(f'Period registry initialized: {registry}'))
        else:
            self.stdout.write(self.style.WARNING(f'Period registry already initialized: {registry}'))
