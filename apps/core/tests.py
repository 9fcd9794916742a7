# apps/core/tests.py

import threading
from io import StringIO

from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.core.management import call_command
from django.db import IntegrityError, OperationalError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from datetime import timedelta

from apps.academics.models import Student
from .models import IdentifierCounter
from .services import (
    IdentifierAllocator, IdentifierSpaceExhausted, allocate_identifier, run_in_transaction
)


class IdentifierAllocatorTestCase(TestCase):
    """Test cases for identifier allocation"""

    def setUp(self):
        self.allocator = IdentifierAllocator()

    def test_first_allocation_creates_counter(self):
        self.assertEqual(self.allocator.allocate('UCAES', '2026'), 'UCAES20260001')
        counter = IdentifierCounter.objects.get(prefix='UCAES', year_key='2026')
        self.assertEqual(counter.last_number, 1)
        self.assertEqual(counter.key, 'UCAES2026')

    def test_sequential_allocations_have_no_gaps(self):
        identifiers = [self.allocator.allocate('UCAES', '2026') for _ in range(5)]
        self.assertEqual(identifiers, [f'UCAES2026{n:04d}' for n in range(1, 6)])
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 5)

    def test_spaces_are_independent(self):
        self.allocator.allocate('UCAES', '2026')
        self.allocator.allocate('UCAES', '2026')
        self.assertEqual(self.allocator.allocate('UCAES', '2025'), 'UCAES20250001')
        self.assertEqual(self.allocator.allocate('STF', '2026'), 'STF20260001')
        self.assertEqual(IdentifierCounter.objects.count(), 3)

    def test_input_is_stripped(self):
        self.assertEqual(self.allocator.allocate(' UCAES ', ' 2026'), 'UCAES20260001')

    def test_invalid_prefix_rejected_without_mutation(self):
        for prefix in ['ucaes', '', '1ABC', 'ABCDEFGHIJK', 'UC-AES', None]:
            with self.assertRaises(ValidationError):
                self.allocator.allocate(prefix, '2026')
        self.assertFalse(IdentifierCounter.objects.exists())

    def test_invalid_year_key_rejected_without_mutation(self):
        for year_key in ['26', '20266', 'abcd', '', None]:
            with self.assertRaises(ValidationError):
                self.allocator.allocate('UCAES', year_key)
        self.assertFalse(IdentifierCounter.objects.exists())

    def test_exhausted_space_is_rejected_and_rolled_back(self):
        IdentifierCounter.objects.create(prefix='UCAES', year_key='2026', last_number=9999)
        with self.assertRaises(IdentifierSpaceExhausted):
            self.allocator.allocate('UCAES', '2026')
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 9999)

    def test_last_sequence_is_allocated(self):
        IdentifierCounter.objects.create(prefix='UCAES', year_key='2026', last_number=9998)
        self.assertEqual(self.allocator.allocate('UCAES', '2026'), 'UCAES20269999')

    def test_peek_unknown_space(self):
        self.assertEqual(self.allocator.peek('UCAES', '2030'), 0)

    def test_parse_sequence(self):
        self.assertEqual(IdentifierAllocator.parse_sequence('UCAES20260042', 'UCAES', '2026'), 42)
        self.assertIsNone(IdentifierAllocator.parse_sequence('UCAES20250042', 'UCAES', '2026'))
        self.assertIsNone(IdentifierAllocator.parse_sequence('UCAES2026042', 'UCAES', '2026'))
        self.assertIsNone(IdentifierAllocator.parse_sequence(None, 'UCAES', '2026'))

    @override_settings(IDENTIFIER_DEFAULT_PREFIX='STU')
    def test_allocate_identifier_uses_default_prefix(self):
        self.assertEqual(allocate_identifier(year_key='2026'), 'STU20260001')

    def test_student_gets_registration_number_on_create(self):
        first = Student.objects.create(first_name='Ama', last_name='Mensah', admission_year='2026')
        second = Student.objects.create(first_name='Kofi', last_name='Boateng', admission_year='2026')
        self.assertEqual(first.registration_number, 'UCAES20260001')
        self.assertEqual(second.registration_number, 'UCAES20260002')

    def test_registration_number_not_reassigned_on_update(self):
        student = Student.objects.create(first_name='Ama', last_name='Mensah', admission_year='2026')
        student.first_name = 'Akua'
        student.save()
        student.refresh_from_db()
        self.assertEqual(student.registration_number, 'UCAES20260001')
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 1)

    def test_numbers_of_deleted_students_are_not_reused(self):
        student = Student.objects.create(first_name='Ama', last_name='Mensah', admission_year='2026')
        student.hard_delete()
        replacement = Student.objects.create(first_name='Kofi', last_name='Boateng', admission_year='2026')
        self.assertEqual(replacement.registration_number, 'UCAES20260002')


class RunInTransactionTestCase(TestCase):

    def test_integrity_error_is_retried(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise IntegrityError('duplicate key')
            return 'ok'

        self.assertEqual(run_in_transaction(flaky, max_attempts=3), 'ok')
        self.assertEqual(len(calls), 2)

    def test_error_propagates_after_last_attempt(self):
        def always_conflicts():
            raise IntegrityError('duplicate key')

        with self.assertRaises(IntegrityError):
            run_in_transaction(always_conflicts, max_attempts=2)

    def test_operational_error_not_retried_inside_outer_transaction(self):
        calls = []

        def locked():
            calls.append(1)
            raise OperationalError('database is locked')

        with self.assertRaises(OperationalError):
            run_in_transaction(locked, max_attempts=3)
        self.assertEqual(len(calls), 1)


class ReconcileTestCase(TestCase):
    """Test cases for counter reconciliation and identifier backfill"""

    def setUp(self):
        self.allocator = IdentifierAllocator()
        for name in ['Ama', 'Kofi', 'Yaw']:
            Student.objects.create(first_name=name, last_name='Test', admission_year='2026')

    def test_consistent_space_is_a_no_op(self):
        report = self.allocator.reconcile('UCAES', '2026')
        self.assertFalse(report['corrected'])
        self.assertEqual(report['backfilled'], [])
        self.assertEqual(report['counter_before'], 3)
        self.assertEqual(report['counter_after'], 3)
        self.assertEqual(report['max_observed'], 3)

    def test_counter_behind_issued_identifiers_is_raised(self):
        Student.objects.create(
            first_name='Esi', last_name='Imported', admission_year='2026',
            registration_number='UCAES20260007'
        )
        with self.assertLogs('apps.core.services', level='WARNING'):
            report = self.allocator.reconcile('UCAES', '2026')
        self.assertTrue(report['corrected'])
        self.assertEqual(report['counter_before'], 3)
        self.assertEqual(report['counter_after'], 7)
        self.assertEqual(self.allocator.allocate('UCAES', '2026'), 'UCAES20260008')

    def test_counter_is_never_lowered(self):
        IdentifierCounter.objects.filter(prefix='UCAES', year_key='2026').update(last_number=10)
        report = self.allocator.reconcile('UCAES', '2026')
        self.assertFalse(report['corrected'])
        self.assertEqual(report['counter_after'], 10)

    def test_identifiers_of_other_spaces_are_ignored(self):
        Student.objects.create(
            first_name='Esi', last_name='Imported', admission_year='2025',
            registration_number='UCAES20250050'
        )
        Student.objects.create(
            first_name='Abena', last_name='Imported', admission_year='2026',
            registration_number='OLD20260090'
        )
        report = self.allocator.reconcile('UCAES', '2026')
        self.assertEqual(report['max_observed'], 3)
        self.assertFalse(report['corrected'])

    def test_missing_counter_is_created(self):
        IdentifierCounter.objects.all().delete()
        report = self.allocator.reconcile('UCAES', '2026')
        self.assertTrue(report['corrected'])
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 3)

    @override_settings(IDENTIFIER_AUTO_ASSIGN=False)
    def test_students_without_identifier_are_backfilled_oldest_first(self):
        newer = Student.objects.create(first_name='Newer', last_name='Blank', admission_year='2026')
        older = Student.objects.create(first_name='Older', last_name='Blank', admission_year='2026')
        Student.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(days=2))
        Student.objects.filter(pk=newer.pk).update(created_at=timezone.now() - timedelta(days=1))

        report = self.allocator.reconcile('UCAES', '2026')

        older.refresh_from_db()
        newer.refresh_from_db()
        self.assertEqual(older.registration_number, 'UCAES20260004')
        self.assertEqual(newer.registration_number, 'UCAES20260005')
        self.assertEqual(
            report['backfilled'],
            [
                {'pk': str(older.pk), 'identifier': 'UCAES20260004'},
                {'pk': str(newer.pk), 'identifier': 'UCAES20260005'},
            ]
        )
        self.assertEqual(report['counter_after'], 5)

    @override_settings(IDENTIFIER_AUTO_ASSIGN=False)
    def test_blank_students_of_other_years_are_left_alone(self):
        other = Student.objects.create(first_name='Other', last_name='Blank', admission_year='2025')
        self.allocator.reconcile('UCAES', '2026')
        other.refresh_from_db()
        self.assertIsNone(other.registration_number)

    @override_settings(IDENTIFIER_AUTO_ASSIGN=False)
    def test_inspect_reports_without_writing(self):
        Student.objects.create(first_name='Blank', last_name='Student', admission_year='2026')
        Student.objects.create(
            first_name='Esi', last_name='Imported', admission_year='2026',
            registration_number='UCAES20260009'
        )
        info = self.allocator.inspect('UCAES', '2026')
        self.assertTrue(info['behind'])
        self.assertEqual(info['missing'], 1)
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 3)

    @override_settings(IDENTIFIER_AUTO_ASSIGN=False)
    def test_soft_deleted_students_are_not_backfilled(self):
        withdrawn = Student.objects.create(first_name='Withdrawn', last_name='Blank', admission_year='2026')
        withdrawn.delete()

        self.assertEqual(self.allocator.inspect('UCAES', '2026')['missing'], 0)
        report = self.allocator.reconcile('UCAES', '2026')

        withdrawn.refresh_from_db()
        self.assertIsNone(withdrawn.registration_number)
        self.assertEqual(report['backfilled'], [])
        self.assertEqual(report['counter_after'], 3)

    def test_year_keys_include_years_without_a_counter(self):
        Student.objects.create(
            first_name='Esi', last_name='Imported', admission_year='2024',
            registration_number='UCAES20240012'
        )
        IdentifierCounter.objects.create(prefix='UCAES', year_key='2027', last_number=0)
        IdentifierCounter.objects.create(prefix='OLD', year_key='2019', last_number=40)
        self.assertEqual(self.allocator.year_keys('UCAES'), ['2024', '2026', '2027'])

    def test_unknown_source(self):
        with self.assertRaises(ImproperlyConfigured):
            self.allocator.reconcile('UCAES', '2026', source='staff')

    def test_reconcile_command(self):
        Student.objects.create(
            first_name='Esi', last_name='Imported', admission_year='2026',
            registration_number='UCAES20260007'
        )
        out = StringIO()
        call_command('reconcile_identifiers', '2026', stdout=out)
        self.assertIn('counter raised 3 -> 7', out.getvalue())
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 7)

    def test_reconcile_command_recovers_lost_counter(self):
        IdentifierCounter.objects.all().delete()
        out = StringIO()
        call_command('reconcile_identifiers', stdout=out)

        self.assertIn('UCAES2026: counter raised 0 -> 3', out.getvalue())
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 3)
        student = Student.objects.create(first_name='Kofi', last_name='Boateng', admission_year='2026')
        self.assertEqual(student.registration_number, 'UCAES20260004')

    def test_reconcile_command_dry_run(self):
        Student.objects.create(
            first_name='Esi', last_name='Imported', admission_year='2026',
            registration_number='UCAES20260007'
        )
        out = StringIO()
        call_command('reconcile_identifiers', '--dry-run', stdout=out)
        self.assertIn('DRY RUN', out.getvalue())
        self.assertIn('behind', out.getvalue())
        self.assertEqual(self.allocator.peek('UCAES', '2026'), 3)


class ConcurrentAllocationTestCase(TransactionTestCase):
    """Allocations from several threads, each on its own database connection"""

    def run_concurrently(self, targets):
        barrier = threading.Barrier(len(targets))
        results = []
        errors = []
        lock = threading.Lock()

        def worker(target):
            try:
                barrier.wait()
                value = target()
                with lock:
                    results.append(value)
            except Exception as e:
                with lock:
                    errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(target,)) for target in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    def run_in_threads(self, count, target):
        return self.run_concurrently([target] * count)

    def test_three_requests_for_a_new_space(self):
        results, errors = self.run_in_threads(3, lambda: IdentifierAllocator().allocate('UCAES', '2026'))
        self.assertEqual(errors, [])
        self.assertEqual(sorted(results), ['UCAES20260001', 'UCAES20260002', 'UCAES20260003'])
        self.assertEqual(IdentifierCounter.objects.get(prefix='UCAES', year_key='2026').last_number, 3)

    def test_many_concurrent_allocations_are_unique_and_gapless(self):
        def allocate_five():
            allocator = IdentifierAllocator()
            return [allocator.allocate('UCAES', '2026') for _ in range(5)]

        results, errors = self.run_in_threads(4, allocate_five)
        self.assertEqual(errors, [])
        identifiers = [identifier for batch in results for identifier in batch]
        self.assertEqual(len(identifiers), 20)
        self.assertEqual(sorted(identifiers), [f'UCAES2026{n:04d}' for n in range(1, 21)])
        self.assertEqual(IdentifierAllocator().peek('UCAES', '2026'), 20)

    @override_settings(IDENTIFIER_AUTO_ASSIGN=False)
    def test_reconcile_during_live_allocation(self):
        blanks = [
            Student.objects.create(first_name=f'Blank {n}', last_name='Student', admission_year='2026')
            for n in range(6)
        ]

        def allocate_five():
            allocator = IdentifierAllocator()
            return [allocator.allocate('UCAES', '2026') for _ in range(5)]

        def reconcile():
            return IdentifierAllocator().reconcile('UCAES', '2026')

        results, errors = self.run_concurrently([reconcile, allocate_five, allocate_five, allocate_five])
        self.assertEqual(errors, [])

        reports = [result for result in results if isinstance(result, dict)]
        allocated = [identifier for result in results if isinstance(result, list) for identifier in result]
        self.assertEqual(len(reports[0]['backfilled']), 6)
        self.assertEqual(len(allocated), 15)

        backfilled = list(
            Student.objects.filter(pk__in=[s.pk for s in blanks]).values_list('registration_number', flat=True)
        )
        self.assertNotIn(None, backfilled)
        identifiers = backfilled + allocated
        self.assertEqual(sorted(identifiers), [f'UCAES2026{n:04d}' for n in range(1, 22)])
        self.assertEqual(IdentifierAllocator().peek('UCAES', '2026'), 21)
