# apps/academics/tests.py

import json
import threading
from datetime import date
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase
from django.urls import reverse

from apps.audit.models import TransitionRecord
from .models import (
    AcademicSemester, AcademicYear, CourseRegistration, LegacyAcademicSetting,
    PeriodRegistry, Program, ProgramType, Semester, Student
)
from .progression import (
    OUTCOME_COMPLETE, OUTCOME_FAILED, OUTCOME_PROGRESSED, ProgressionAborted, ProgressionBatchProcessor,
    parse_level
)
from .services import (
    REASON_ALREADY_APPLIED, REASON_FINAL_PERIOD, REASON_NO_NEXT_YEAR, REASON_NOT_DUE,
    PeriodRegistryNotInitialized, PeriodRegistryService, RegistrationGate, TransitionEngine
)

User = get_user_model()


def create_calendar():
    """Two academic years with regular semesters and weekend trimesters."""
    years = {}
    for start in (2025, 2026):
        year = AcademicYear.objects.create(
            name=f'{start}-{start + 1}',
            year_key=str(start),
            start_date=date(start, 9, 1),
            end_date=date(start + 1, 7, 31),
        )
        AcademicSemester.objects.create(
            academic_year=year, program_type=ProgramType.REGULAR, number=1,
            start_date=date(start, 9, 1), end_date=date(start + 1, 1, 31)
        )
        AcademicSemester.objects.create(
            academic_year=year, program_type=ProgramType.REGULAR, number=2,
            start_date=date(start + 1, 2, 1), end_date=date(start + 1, 7, 31)
        )
        AcademicSemester.objects.create(
            academic_year=year, program_type=ProgramType.WEEKEND, number=1,
            start_date=date(start, 9, 1), end_date=date(start, 12, 15)
        )
        AcademicSemester.objects.create(
            academic_year=year, program_type=ProgramType.WEEKEND, number=2,
            start_date=date(start + 1, 1, 5), end_date=date(start + 1, 3, 31)
        )
        AcademicSemester.objects.create(
            academic_year=year, program_type=ProgramType.WEEKEND, number=3,
            start_date=date(start + 1, 4, 1), end_date=date(start + 1, 7, 31)
        )
        years[start] = year
    return years[2025], years[2026]


class AcademicTestMixin:
    """Calendar, bootstrapped registry and a few students."""

    def setUp(self):
        self.year_2025, self.year_2026 = create_calendar()
        self.registry_service = PeriodRegistryService()
        self.registry_service.bootstrap(self.year_2025, actor='test')
        self.engine = TransitionEngine()

    def create_student(self, first_name, level='100', **kwargs):
        kwargs.setdefault('admission_year', '2025')
        kwargs.setdefault('academic_year_enrolled', self.year_2025)
        return Student.objects.create(first_name=first_name, last_name='Test', level=level, **kwargs)

    def registry(self):
        return PeriodRegistry.objects.get(key=PeriodRegistry.SINGLETON_KEY)


class PeriodRegistryServiceTestCase(AcademicTestMixin, TestCase):
    """Test cases for the period registry"""

    def test_missing_registry_raises(self):
        PeriodRegistry.objects.all().delete()
        with self.assertRaises(PeriodRegistryNotInitialized):
            self.registry_service.get_current_period()

    def test_bootstrap_creates_primary_and_mirror_once(self):
        registry, created = self.registry_service.bootstrap(self.year_2026)
        self.assertFalse(created)
        self.assertEqual(registry.current_academic_year, self.year_2025)
        self.assertEqual(PeriodRegistry.objects.count(), 1)
        self.assertEqual(LegacyAcademicSetting.objects.get().current_year, self.year_2025)
        self.year_2025.refresh_from_db()
        self.assertEqual(self.year_2025.status, AcademicYear.YearStatus.ACTIVE)

    def test_get_current_period_per_track(self):
        self.registry_service.set_current_period(
            self.year_2025, new_semester=Semester.SECOND, new_trimester=Semester.THIRD
        )
        regular = self.registry_service.get_current_period('regular')
        weekend = self.registry_service.get_current_period('weekend')
        self.assertEqual(regular['academic_year'], '2025-2026')
        self.assertEqual(regular['academic_year_id'], str(self.year_2025.pk))
        self.assertEqual(regular['semester'], 'Second')
        self.assertEqual(weekend['semester'], 'Third')
        self.assertEqual(weekend['regular_semester'], 'Second')
        self.assertEqual(regular['admission_status'], 'closed')

    def test_unknown_program_type(self):
        with self.assertRaises(ValidationError):
            self.registry_service.get_current_period('evening')

    def test_set_current_period_writes_primary_and_mirror(self):
        self.registry_service.set_current_period(self.year_2026, new_semester='First', actor='registrar')
        registry = self.registry()
        self.assertEqual(registry.current_academic_year, self.year_2026)
        self.assertEqual(registry.current_academic_year_display, '2026-2027')
        self.assertEqual(registry.updated_by, 'registrar')
        self.assertEqual(
            self.registry_service.legacy_view(),
            {'currentYear': str(self.year_2026.pk), 'currentYearName': '2026-2027'}
        )

    def test_none_semester_leaves_track_unchanged(self):
        self.registry_service.set_current_period(self.year_2025, new_trimester=Semester.SECOND)
        registry = self.registry()
        self.assertEqual(registry.current_semester, 'First')
        self.assertEqual(registry.current_trimester, 'Second')

    def test_invalid_semesters_rejected(self):
        with self.assertRaises(ValidationError):
            self.registry_service.set_current_period(self.year_2025, new_semester='Fourth')
        with self.assertRaises(ValidationError):
            self.registry_service.set_current_period(self.year_2025, new_semester=Semester.THIRD)
        self.assertEqual(self.registry().current_semester, 'First')

    def test_stale_expected_snapshot_skips_write(self):
        snapshot = self.registry_service.snapshot(self.registry())
        self.registry_service.set_current_period(self.year_2025, new_semester=Semester.SECOND)
        result = self.registry_service.set_current_period(
            self.year_2026, new_semester=Semester.FIRST, expected=snapshot
        )
        self.assertIsNone(result)
        self.assertEqual(self.registry().current_academic_year, self.year_2025)
        self.assertEqual(LegacyAcademicSetting.objects.get().current_year, self.year_2025)

    def test_no_drift(self):
        self.assertIsNone(self.registry_service.detect_drift())

    def test_drift_is_repaired_toward_primary(self):
        previous = AcademicYear.objects.create(
            name='2024-2025', year_key='2024', start_date=date(2024, 9, 1), end_date=date(2025, 7, 31)
        )
        LegacyAcademicSetting.objects.update(current_year=previous)

        with self.assertLogs('apps.academics.services', level='WARNING'):
            fault = self.registry_service.detect_drift()

        self.assertEqual(fault['primary']['academic_year'], '2025-2026')
        self.assertEqual(fault['mirror_before']['academic_year'], '2024-2025')
        self.assertTrue(fault['repaired'])
        self.assertEqual(LegacyAcademicSetting.objects.get().current_year, self.year_2025)
        self.assertEqual(self.registry().current_academic_year, self.year_2025)
        self.assertIsNone(self.registry_service.detect_drift())

    def test_missing_mirror_is_recreated(self):
        LegacyAcademicSetting.objects.all().delete()
        fault = self.registry_service.detect_drift()
        self.assertTrue(fault['mirror_missing'])
        self.assertEqual(LegacyAcademicSetting.objects.get().current_year, self.year_2025)


class SemesterTransitionTestCase(AcademicTestMixin, TestCase):
    """Test cases for semester and trimester transitions"""

    def setUp(self):
        super().setUp()
        self.regular = self.create_student('Ama')
        self.weekend = self.create_student('Kofi', program_type=ProgramType.WEEKEND)

    def test_not_due(self):
        result = self.engine.apply_transition('semester', now=date(2025, 10, 1))
        self.assertFalse(result['applied'])
        self.assertEqual(result['reason'], REASON_NOT_DUE)
        self.assertEqual(self.registry().current_semester, 'First')
        self.assertFalse(TransitionRecord.objects.exists())

    def test_due_transition_moves_regular_track_only(self):
        result = self.engine.apply_transition('semester', now=date(2026, 2, 1), actor='registrar')

        self.assertTrue(result['applied'])
        self.assertEqual(result['previous_value'], 'First')
        self.assertEqual(result['new_value'], 'Second')
        registry = self.registry()
        self.assertEqual(registry.current_semester, 'Second')
        self.assertEqual(registry.current_trimester, 'First')

        self.regular.refresh_from_db()
        self.weekend.refresh_from_db()
        self.assertEqual(self.regular.current_period_index, 2)
        self.assertEqual(self.weekend.current_period_index, 1)

        record = TransitionRecord.objects.get()
        self.assertEqual(record.type, TransitionRecord.TransitionType.SEMESTER)
        self.assertEqual(record.program_type, 'regular')
        self.assertEqual(record.actor, 'registrar')
        self.assertEqual(record.students_processed, 1)

    def test_semester_rows_follow_the_transition(self):
        self.engine.apply_transition('semester', now=date(2026, 2, 1))
        semesters = AcademicSemester.objects.filter(
            academic_year=self.year_2025, program_type=ProgramType.REGULAR
        )
        self.assertEqual(semesters.get(number=1).status, AcademicYear.YearStatus.COMPLETED)
        self.assertEqual(semesters.get(number=2).status, AcademicYear.YearStatus.ACTIVE)

    def test_forced_transition_applies_once(self):
        first = self.engine.apply_transition('semester', force=True, now=date(2025, 10, 1))
        second = self.engine.apply_transition('semester', force=True, now=date(2025, 10, 1))

        self.assertTrue(first['applied'])
        self.assertFalse(second['applied'])
        self.assertEqual(second['reason'], REASON_ALREADY_APPLIED)
        self.assertEqual(self.registry().current_semester, 'Second')
        self.assertEqual(TransitionRecord.objects.count(), 1)

    def test_final_semester_does_not_wrap(self):
        self.registry_service.set_current_period(self.year_2025, new_semester=Semester.SECOND)
        result = self.engine.apply_transition('semester', force=True, now=date(2026, 7, 31))
        self.assertFalse(result['applied'])
        self.assertEqual(result['reason'], REASON_FINAL_PERIOD)
        self.assertEqual(self.registry().current_academic_year, self.year_2025)

    def test_weekend_track(self):
        result = self.engine.apply_transition('semester', program_type='weekend', now=date(2026, 1, 10))
        self.assertTrue(result['applied'])
        self.assertEqual(result['new_value'], 'Second')
        registry = self.registry()
        self.assertEqual(registry.current_trimester, 'Second')
        self.assertEqual(registry.current_semester, 'First')
        self.weekend.refresh_from_db()
        self.assertEqual(self.weekend.current_period_index, 2)

    def test_weekend_third_trimester_is_final(self):
        self.registry_service.set_current_period(self.year_2025, new_trimester=Semester.THIRD)
        result = self.engine.apply_transition('semester', program_type='weekend', force=True,
                                              now=date(2026, 7, 31))
        self.assertEqual(result['reason'], REASON_FINAL_PERIOD)

    def test_forced_catch_up_applies_once(self):
        first = self.engine.apply_transition('semester', program_type='weekend', force=True,
                                             now=date(2026, 1, 10))
        second = self.engine.apply_transition('semester', program_type='weekend', force=True,
                                              now=date(2026, 1, 10))

        self.assertTrue(first['applied'])
        self.assertEqual(first['new_value'], 'Second')
        self.assertFalse(second['applied'])
        self.assertEqual(second['reason'], REASON_ALREADY_APPLIED)
        self.assertEqual(self.registry().current_trimester, 'Second')
        self.assertEqual(self.registry().trimester_entered_on, date(2026, 1, 10))

        # Once the caught-up trimester ends the next one applies as usual.
        third = self.engine.apply_transition('semester', program_type='weekend', now=date(2026, 3, 31))
        self.assertTrue(third['applied'])
        self.assertEqual(third['new_value'], 'Third')

    def test_forced_early_transition_from_a_period_entered_on_time(self):
        self.engine.apply_transition('semester', program_type='weekend', now=date(2025, 12, 15))
        result = self.engine.apply_transition('semester', program_type='weekend', force=True,
                                              now=date(2026, 1, 20))
        self.assertTrue(result['applied'])
        self.assertEqual(result['new_value'], 'Third')

    def test_invalid_input(self):
        with self.assertRaises(ValidationError):
            self.engine.apply_transition('quarter')
        with self.assertRaises(ValidationError):
            self.engine.apply_transition('semester', program_type='evening')


class AcademicYearTransitionTestCase(AcademicTestMixin, TestCase):
    """Test cases for academic year transitions and progression"""

    def setUp(self):
        super().setUp()
        self.fresher = self.create_student('Ama', level='100')
        self.sophomore = self.create_student('Kofi', level='200')
        self.finalist = self.create_student('Yaw', level='400')
        self.deferred = self.create_student('Esi', level='100', status=Student.StudentStatus.DEFERRED)

    def test_not_due(self):
        result = self.engine.apply_transition('academic-year', now=date(2026, 3, 1))
        self.assertFalse(result['applied'])
        self.assertEqual(result['reason'], REASON_NOT_DUE)
        self.fresher.refresh_from_db()
        self.assertEqual(self.fresher.level, '100')

    def test_due_transition_progresses_students(self):
        result = self.engine.apply_transition('academic-year', now=date(2026, 8, 1))

        self.assertTrue(result['applied'])
        self.assertEqual(result['previous_value'], '2025-2026')
        self.assertEqual(result['new_value'], '2026-2027')
        self.assertEqual(result['students_processed'], 3)
        self.assertEqual(result['succeeded'], 3)
        self.assertEqual(result['failed'], 0)

        for student, level in [(self.fresher, '200'), (self.sophomore, '300'), (self.finalist, '400')]:
            student.refresh_from_db()
            self.assertEqual(student.level, level)
            self.assertEqual(student.academic_year_enrolled, self.year_2026)
            self.assertEqual(student.last_processed_target_year, self.year_2026)
            self.assertEqual(student.current_period_index, 1)
            self.assertIsNotNone(student.last_progression_date)
        self.assertTrue(self.finalist.progression_complete)
        self.assertFalse(self.fresher.progression_complete)

        self.deferred.refresh_from_db()
        self.assertEqual(self.deferred.level, '100')
        self.assertEqual(self.deferred.academic_year_enrolled, self.year_2025)

    def test_registry_and_years_after_transition(self):
        self.engine.apply_transition('academic-year', now=date(2026, 8, 1))
        registry = self.registry()
        self.assertEqual(registry.current_academic_year, self.year_2026)
        self.assertEqual(registry.current_semester, 'First')
        self.assertEqual(registry.current_trimester, 'First')
        self.assertEqual(LegacyAcademicSetting.objects.get().current_year, self.year_2026)

        self.year_2025.refresh_from_db()
        self.year_2026.refresh_from_db()
        self.assertEqual(self.year_2025.status, AcademicYear.YearStatus.COMPLETED)
        self.assertEqual(self.year_2026.status, AcademicYear.YearStatus.ACTIVE)

    def test_outcomes_are_recorded(self):
        result = self.engine.apply_transition('academic-year', now=date(2026, 8, 1))
        outcomes = {entry['student_id']: entry for entry in result['results']}
        self.assertEqual(outcomes[self.fresher.registration_number]['status'], OUTCOME_PROGRESSED)
        self.assertEqual(outcomes[self.finalist.registration_number]['status'], OUTCOME_COMPLETE)

        record = TransitionRecord.objects.get(type=TransitionRecord.TransitionType.ACADEMIC_YEAR)
        self.assertEqual(record.students_processed, 3)
        self.assertEqual(record.new_value, '2026-2027')
        self.assertEqual(len(record.results), 3)

    def test_forced_transition_twice_progresses_once(self):
        first = self.engine.apply_transition('academic-year', force=True, now=date(2026, 3, 1))
        second = self.engine.apply_transition('academic-year', force=True, now=date(2026, 3, 1))

        self.assertTrue(first['applied'])
        self.assertFalse(second['applied'])
        self.assertEqual(second['reason'], REASON_ALREADY_APPLIED)

        self.fresher.refresh_from_db()
        self.assertEqual(self.fresher.level, '200')
        self.assertEqual(
            TransitionRecord.objects.filter(type=TransitionRecord.TransitionType.ACADEMIC_YEAR).count(), 1
        )

    def test_next_year_not_found(self):
        self.engine.apply_transition('academic-year', force=True, now=date(2026, 8, 1))
        result = self.engine.apply_transition('academic-year', force=True, now=date(2026, 10, 1))
        self.assertFalse(result['applied'])
        self.assertEqual(result['reason'], REASON_NO_NEXT_YEAR)

    def test_forced_catch_up_progresses_once(self):
        year_2027 = AcademicYear.objects.create(
            name='2027-2028', year_key='2027', start_date=date(2027, 9, 1), end_date=date(2028, 7, 31)
        )

        first = self.engine.apply_transition('academic-year', force=True, now=date(2026, 10, 1))
        second = self.engine.apply_transition('academic-year', force=True, now=date(2026, 10, 1))

        self.assertTrue(first['applied'])
        self.assertEqual(first['new_value'], '2026-2027')
        self.assertFalse(second['applied'])
        self.assertEqual(second['reason'], REASON_ALREADY_APPLIED)
        self.assertEqual(self.registry().current_academic_year, self.year_2026)
        self.fresher.refresh_from_db()
        self.assertEqual(self.fresher.level, '200')
        self.assertEqual(
            TransitionRecord.objects.filter(type=TransitionRecord.TransitionType.ACADEMIC_YEAR).count(), 1
        )

        # The caught-up year still rolls over once it ends.
        result = self.engine.apply_transition('academic-year', now=date(2027, 8, 1))
        self.assertTrue(result['applied'])
        self.assertEqual(self.registry().current_academic_year, year_2027)
        self.fresher.refresh_from_db()
        self.assertEqual(self.fresher.level, '300')

    def test_store_fault_aborts_and_is_recorded(self):
        process_student = ProgressionBatchProcessor.process_student

        def store_fails_on_sophomore(processor, pk, label, target_year):
            if pk == self.sophomore.pk:
                raise OperationalError('disk I/O error')
            return process_student(processor, pk, label, target_year)

        with mock.patch.object(ProgressionBatchProcessor, 'process_student', autospec=True,
                               side_effect=store_fails_on_sophomore):
            with self.assertRaises(ProgressionAborted) as aborted:
                self.engine.apply_transition('academic-year', force=True, now=date(2026, 3, 1))

        # The registry change stands and the run is on record.
        self.assertEqual(self.registry().current_academic_year, self.year_2026)
        record = TransitionRecord.objects.get(type=TransitionRecord.TransitionType.ACADEMIC_YEAR)
        self.assertTrue(record.aborted)
        self.assertEqual(record.new_value, '2026-2027')
        written = Student.objects.filter(last_processed_target_year=self.year_2026).count()
        self.assertEqual(len(aborted.exception.results), written)
        self.assertEqual(record.students_processed, written)

        again = self.engine.apply_transition('academic-year', force=True, now=date(2026, 3, 1))
        self.assertEqual(again['reason'], REASON_ALREADY_APPLIED)

        retry = ProgressionBatchProcessor().run(self.year_2026)
        self.assertEqual(retry['students_processed'], 3 - written)
        self.sophomore.refresh_from_db()
        self.assertEqual(self.sophomore.level, '300')

    def test_partial_failure_and_retry(self):
        broken = self.create_student('Abena', level='abc')

        result = self.engine.apply_transition('academic-year', now=date(2026, 8, 1))
        self.assertEqual(result['students_processed'], 4)
        self.assertEqual(result['succeeded'], 3)
        self.assertEqual(result['failed'], 1)
        failure = [entry for entry in result['results'] if entry['status'] == OUTCOME_FAILED]
        self.assertEqual(failure[0]['student_id'], broken.registration_number)
        self.assertIn('abc', failure[0]['error'])

        # A rerun only touches the student that failed.
        rerun = ProgressionBatchProcessor().run(self.year_2026)
        self.assertEqual(rerun['students_processed'], 1)
        self.assertEqual(rerun['failed'], 1)

        Student.objects.filter(pk=broken.pk).update(level='300')
        rerun = ProgressionBatchProcessor().run(self.year_2026)
        self.assertEqual(rerun['students_processed'], 1)
        self.assertEqual(rerun['succeeded'], 1)

        broken.refresh_from_db()
        self.fresher.refresh_from_db()
        self.assertEqual(broken.level, '400')
        self.assertEqual(self.fresher.level, '200')


class ProgressionBatchProcessorTestCase(AcademicTestMixin, TestCase):
    """Test cases for the progression batch processor"""

    def test_parse_level(self):
        self.assertEqual(parse_level('100'), 100)
        self.assertEqual(parse_level(' 300 '), 300)
        for value in ['abc', '', None, '0', '150', '-100', '1e2']:
            with self.assertRaises(ValueError):
                parse_level(value)

    def test_level_above_terminal_fails(self):
        student = self.create_student('Ama', level='500')
        result = ProgressionBatchProcessor().run(self.year_2026)
        self.assertEqual(result['failed'], 1)
        student.refresh_from_db()
        self.assertEqual(student.level, '500')
        self.assertIsNone(student.last_processed_target_year)

    def test_program_terminal_level(self):
        program = Program.objects.create(code='DIP', name='Diploma', duration_years=3, terminal_level=300)
        student = self.create_student('Ama', level='300', program=program)
        result = ProgressionBatchProcessor().run(self.year_2026)
        self.assertEqual(result['results'][0]['status'], OUTCOME_COMPLETE)
        student.refresh_from_db()
        self.assertEqual(student.level, '300')
        self.assertTrue(student.progression_complete)

    def test_all_pages_are_processed(self):
        students = [self.create_student(f'Student {n}') for n in range(5)]
        result = ProgressionBatchProcessor(chunk_size=2).run(self.year_2026)
        self.assertEqual(result['students_processed'], 5)
        for student in students:
            student.refresh_from_db()
            self.assertEqual(student.level, '200')

    def test_soft_deleted_students_are_skipped(self):
        student = self.create_student('Ama')
        student.delete()
        result = ProgressionBatchProcessor().run(self.year_2026)
        self.assertEqual(result['students_processed'], 0)

    def test_empty_run_still_records(self):
        result = ProgressionBatchProcessor().run(self.year_2026, previous_value='2025-2026')
        self.assertEqual(result['students_processed'], 0)
        self.assertTrue(TransitionRecord.objects.filter(pk=result['record_id']).exists())


class ScheduledTransitionTestCase(AcademicTestMixin, TestCase):

    def test_nothing_due_early_in_the_year(self):
        self.assertEqual(self.engine.evaluate_due(date(2025, 10, 1)), [])

    def test_evaluate_due_lists_semester_transitions(self):
        due = self.engine.evaluate_due(date(2026, 2, 1))
        self.assertIn(
            {'type': 'semester', 'program_type': 'regular', 'previous_value': 'First', 'new_value': 'Second'},
            due
        )
        self.assertIn(
            {'type': 'semester', 'program_type': 'weekend', 'previous_value': 'First', 'new_value': 'Second'},
            due
        )
        self.assertNotIn('academic-year', [entry['type'] for entry in due])
        self.assertFalse(TransitionRecord.objects.exists())

    def test_evaluate_due_lists_academic_year_transition(self):
        self.registry_service.set_current_period(
            self.year_2025, new_semester=Semester.SECOND, new_trimester=Semester.THIRD
        )
        due = self.engine.evaluate_due(date(2026, 8, 1))
        self.assertEqual(due, [{
            'type': 'academic-year', 'program_type': None,
            'previous_value': '2025-2026', 'new_value': '2026-2027',
        }])

    def test_run_scheduled(self):
        results = self.engine.run_scheduled(date(2026, 2, 1))
        self.assertEqual(len(results), 2)
        self.assertTrue(all(result['applied'] for result in results))
        self.assertEqual(
            TransitionRecord.objects.filter(triggered_by=TransitionRecord.TriggerType.SCHEDULED).count(), 2
        )
        # Nothing left to do on the next tick.
        self.assertEqual(self.engine.run_scheduled(date(2026, 2, 1)), [])


class RegistrationGateTestCase(AcademicTestMixin, TestCase):
    """Test cases for the registration gate"""

    def setUp(self):
        super().setUp()
        self.gate = RegistrationGate()
        self.student = self.create_student('Ama')

    def test_register_once_per_period(self):
        registration = self.gate.register(self.student)
        self.assertEqual(registration.semester, 'First')
        self.assertEqual(registration.academic_year, self.year_2025)
        self.assertTrue(self.gate.is_registered(self.student))
        with self.assertRaises(ValidationError):
            self.gate.register(self.student)
        self.assertEqual(CourseRegistration.objects.count(), 1)

    def test_new_period_opens_registration(self):
        self.gate.register(self.student)
        self.engine.apply_transition('semester', now=date(2026, 2, 1))
        self.assertFalse(self.gate.is_registered(self.student))
        self.assertEqual(self.gate.register(self.student).semester, 'Second')

    def test_weekend_students_follow_trimester(self):
        weekend = self.create_student('Kofi', program_type=ProgramType.WEEKEND)
        self.registry_service.set_current_period(self.year_2025, new_trimester=Semester.THIRD)
        self.assertEqual(self.gate.registration_key(weekend), (str(self.year_2025.pk), 'Third'))
        self.assertEqual(self.gate.registration_key(self.student), (str(self.year_2025.pk), 'First'))

    def test_inactive_students_cannot_register(self):
        deferred = self.create_student('Esi', status=Student.StudentStatus.DEFERRED)
        with self.assertRaises(ValidationError):
            self.gate.register(deferred)


class AcademicsViewsTestCase(AcademicTestMixin, TestCase):
    """Test cases for the period JSON endpoints"""

    def setUp(self):
        super().setUp()
        self.staff_user = User.objects.create_user(username='registrar', password='testpass123', is_staff=True)
        self.user = User.objects.create_user(username='lecturer', password='testpass123')
        self.create_student('Ama')

    def test_current_period_requires_login(self):
        response = self.client.get(reverse('academics:current_period'))
        self.assertEqual(response.status_code, 403)

    def test_current_period(self):
        self.client.force_login(self.user)
        response = self.client.get(reverse('academics:current_period'), {'program_type': 'weekend'})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['academic_year'], '2025-2026')
        self.assertEqual(data['semester'], 'First')
        self.assertEqual(data['program_type'], 'weekend')

    def test_current_period_uninitialized(self):
        PeriodRegistry.objects.all().delete()
        self.client.force_login(self.user)
        response = self.client.get(reverse('academics:current_period'))
        self.assertEqual(response.status_code, 409)

    def test_transitions_require_staff(self):
        self.client.force_login(self.user)
        response = self.client.post(reverse('academics:semester_transition'), {'force': 'true'})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.registry().current_semester, 'First')

    def test_forced_semester_transition(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(reverse('academics:semester_transition'), {'force': 'true'})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['applied'])
        self.assertEqual(TransitionRecord.objects.get().actor, 'registrar')

    def test_semester_transition_not_due_is_not_an_error(self):
        self.registry_service.set_current_period(self.year_2025, new_semester=Semester.SECOND)
        self.client.force_login(self.staff_user)
        response = self.client.post(reverse('academics:semester_transition'))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['applied'])

    def test_invalid_program_type(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(reverse('academics:semester_transition'), {'program_type': 'evening'})
        self.assertEqual(response.status_code, 400)

    def test_academic_year_transition_with_json_body(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(
            reverse('academics:academic_year_transition'),
            data=json.dumps({'force': True}),
            content_type='application/json'
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['applied'])
        self.assertEqual(data['new_value'], '2026-2027')
        self.assertEqual(data['students_processed'], 1)

    def test_malformed_json(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(
            reverse('academics:academic_year_transition'),
            data='{force',
            content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)

    def test_get_not_allowed(self):
        self.client.force_login(self.staff_user)
        response = self.client.get(reverse('academics:semester_transition'))
        self.assertEqual(response.status_code, 405)

    def test_drift_check(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(reverse('academics:drift_check'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'drift': False, 'fault': None})

    def test_reconcile(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(reverse('academics:reconcile_identifiers'), {'year_key': '2025'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['counter_after'], 1)

        response = self.client.post(reverse('academics:reconcile_identifiers'), {'year_key': '25'})
        self.assertEqual(response.status_code, 400)

    def test_progression_retry(self):
        self.client.force_login(self.staff_user)
        response = self.client.post(
            reverse('academics:progression_retry'), {'academic_year': str(self.year_2026.pk)}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['students_processed'], 1)

        response = self.client.post(
            reverse('academics:progression_retry'), {'academic_year': str(self.year_2026.pk)}
        )
        self.assertEqual(response.json()['students_processed'], 0)


class AcademicsCommandsTestCase(TestCase):
    """Test cases for the period management commands"""

    def setUp(self):
        self.year_2025, self.year_2026 = create_calendar()

    def call(self, *args):
        out = StringIO()
        call_command(*args, stdout=out)
        return out.getvalue()

    def test_bootstrap(self):
        output = self.call('bootstrap_period_registry', '--academic-year', '2025-2026')
        self.assertIn('initialized', output)
        self.assertEqual(PeriodRegistry.objects.get().current_academic_year, self.year_2025)

        output = self.call('bootstrap_period_registry', '--academic-year', '2026-2027')
        self.assertIn('already initialized', output)
        self.assertEqual(PeriodRegistry.objects.get().current_academic_year, self.year_2025)

    def test_bootstrap_unknown_year(self):
        with self.assertRaises(CommandError):
            self.call('bootstrap_period_registry', '--academic-year', '1999-2000')

    def test_transition_without_registry(self):
        with self.assertRaises(CommandError):
            self.call('run_period_transition', '--type', 'semester')

    def test_run_period_transition(self):
        self.call('bootstrap_period_registry', '--academic-year', '2025-2026')

        output = self.call('run_period_transition', '--dry-run', '--date', '2026-02-01')
        self.assertIn('Due: semester [regular] First -> Second', output)
        self.assertEqual(PeriodRegistry.objects.get().current_semester, 'First')

        output = self.call('run_period_transition', '--type', 'semester', '--date', '2025-10-01')
        self.assertIn('not applied: not due', output)

        output = self.call('run_period_transition', '--type', 'semester', '--force', '--date', '2025-10-01')
        self.assertIn('semester [regular]: First -> Second', output)
        self.assertEqual(PeriodRegistry.objects.get().current_semester, 'Second')

    def test_scheduled_mode(self):
        self.call('bootstrap_period_registry', '--academic-year', '2025-2026')
        output = self.call('run_period_transition', '--scheduled', '--date', '2026-02-01')
        self.assertIn('First -> Second', output)
        self.assertEqual(
            TransitionRecord.objects.filter(triggered_by=TransitionRecord.TriggerType.SCHEDULED).count(), 2
        )

    def test_check_period_drift(self):
        self.call('bootstrap_period_registry', '--academic-year', '2025-2026')
        self.assertIn('No drift', self.call('check_period_drift'))

        LegacyAcademicSetting.objects.update(current_year=self.year_2026)
        output = self.call('check_period_drift')
        self.assertIn('Drift repaired', output)
        self.assertEqual(LegacyAcademicSetting.objects.get().current_year, self.year_2025)

    def test_run_progression(self):
        self.call('bootstrap_period_registry', '--academic-year', '2025-2026')
        Student.objects.create(first_name='Ama', last_name='Test', admission_year='2025', level='100')

        output = self.call('run_progression', '--academic-year', '2026-2027', '--dry-run')
        self.assertIn('1 students pending', output)

        output = self.call('run_progression', '--academic-year', '2026-2027')
        self.assertIn('1 processed, 1 succeeded, 0 failed', output)


class ConcurrentTransitionTestCase(TransactionTestCase):
    """Transitions and progression across several database connections"""

    def setUp(self):
        self.year_2025, self.year_2026 = create_calendar()
        PeriodRegistryService().bootstrap(self.year_2025)

    def test_parallel_workers_progress_every_student_once(self):
        students = [
            Student.objects.create(first_name=f'Student {n}', last_name='Test', admission_year='2025', level='100')
            for n in range(10)
        ]
        result = ProgressionBatchProcessor(max_workers=3, chunk_size=4).run(self.year_2026)

        self.assertEqual(result['students_processed'], 10)
        self.assertEqual(result['succeeded'], 10)
        for student in students:
            student.refresh_from_db()
            self.assertEqual(student.level, '200')
            self.assertEqual(student.last_processed_target_year_id, self.year_2026.pk)

    def test_simultaneous_forced_transitions_apply_once(self):
        Student.objects.create(first_name='Ama', last_name='Test', admission_year='2025', level='100')
        barrier = threading.Barrier(2)
        results = []
        errors = []
        lock = threading.Lock()

        def trigger():
            try:
                barrier.wait()
                result = TransitionEngine().apply_transition(
                    'academic-year', force=True, now=date(2026, 3, 1)
                )
                with lock:
                    results.append(result)
            except Exception as e:
                with lock:
                    errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=trigger) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(sorted(result['applied'] for result in results), [False, True])
        student = Student.objects.get()
        self.assertEqual(student.level, '200')
        self.assertEqual(
            TransitionRecord.objects.filter(type=TransitionRecord.TransitionType.ACADEMIC_YEAR).count(), 1
        )

    def test_store_fault_in_one_worker_reports_every_write(self):
        students = [
            Student.objects.create(first_name=f'Student {n}', last_name='Test', admission_year='2025', level='100')
            for n in range(8)
        ]
        broken_pk = students[3].pk
        process_student = ProgressionBatchProcessor.process_student

        def store_fails_on_one(processor, pk, label, target_year):
            if pk == broken_pk:
                raise OperationalError('disk I/O error')
            return process_student(processor, pk, label, target_year)

        with mock.patch.object(ProgressionBatchProcessor, 'process_student', autospec=True,
                               side_effect=store_fails_on_one):
            with self.assertRaises(ProgressionAborted) as aborted:
                ProgressionBatchProcessor(max_workers=2, chunk_size=8).run(self.year_2026)

        written = Student.objects.filter(last_processed_target_year=self.year_2026).count()
        self.assertGreater(written, 0)
        self.assertEqual(len(aborted.exception.results), written)
        record = TransitionRecord.objects.get(type=TransitionRecord.TransitionType.ACADEMIC_YEAR)
        self.assertTrue(record.aborted)
        self.assertEqual(record.students_processed, written)
