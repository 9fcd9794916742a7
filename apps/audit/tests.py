from datetime import datetime

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from .models import TransitionRecord

User = get_user_model()


def aware(*args):
    return timezone.make_aware(datetime(*args))


class TransitionRecordTestCase(TestCase):
    """Test cases for the transition audit log"""

    def setUp(self):
        self.semester = TransitionRecord.objects.create(
            type=TransitionRecord.TransitionType.SEMESTER,
            program_type='regular',
            previous_value='First',
            new_value='Second',
            actor='registrar',
            students_processed=12,
            succeeded=12,
        )
        self.year = TransitionRecord.objects.create(
            type=TransitionRecord.TransitionType.ACADEMIC_YEAR,
            previous_value='2025-2026',
            new_value='2026-2027',
            triggered_by=TransitionRecord.TriggerType.SCHEDULED,
            actor='scheduler',
            students_processed=2,
            succeeded=1,
            failed=1,
            results=[
                {'student_id': 'UCAES20250001', 'status': 'progressed', 'from_level': '100', 'to_level': '200'},
                {'student_id': 'UCAES20250002', 'status': 'failed', 'error': "Malformed level 'abc'"},
            ],
        )
        TransitionRecord.objects.filter(pk=self.semester.pk).update(timestamp=aware(2026, 2, 1, 9, 0))
        TransitionRecord.objects.filter(pk=self.year.pk).update(timestamp=aware(2026, 8, 1, 9, 0))

    def test_records_cannot_be_modified(self):
        self.semester.new_value = 'Third'
        with self.assertRaises(ValueError):
            self.semester.save()
        self.semester.refresh_from_db()
        self.assertEqual(self.semester.new_value, 'Second')

    def test_records_cannot_be_deleted(self):
        with self.assertRaises(ValueError):
            self.year.delete()
        self.assertTrue(TransitionRecord.objects.filter(pk=self.year.pk).exists())

    def test_for_period_filters(self):
        records = TransitionRecord.objects.for_period(transition_type='semester')
        self.assertEqual(list(records), [self.semester])

        records = TransitionRecord.objects.for_period(start=aware(2026, 3, 1))
        self.assertEqual(list(records), [self.year])

        records = TransitionRecord.objects.for_period(start=aware(2026, 1, 1), end=aware(2026, 12, 31))
        self.assertEqual(list(records), [self.year, self.semester])

    def test_range_is_inclusive(self):
        records = TransitionRecord.objects.for_period(start=aware(2026, 2, 1, 9, 0), end=aware(2026, 2, 1, 9, 0))
        self.assertEqual(list(records), [self.semester])


class TransitionRecordViewsTestCase(TestCase):
    """Test cases for the transition record JSON views"""

    def setUp(self):
        self.superuser = User.objects.create_superuser(
            username='admin', email='admin@example.com', password='testpass123'
        )
        self.auditor = User.objects.create_user(username='auditor', password='testpass123')
        self.auditor.user_permissions.add(Permission.objects.get(codename='view_transitionrecord'))
        self.user = User.objects.create_user(username='lecturer', password='testpass123')

        self.semester = TransitionRecord.objects.create(
            type=TransitionRecord.TransitionType.SEMESTER,
            program_type='weekend',
            previous_value='First',
            new_value='Second',
            actor='registrar',
        )
        self.year = TransitionRecord.objects.create(
            type=TransitionRecord.TransitionType.ACADEMIC_YEAR,
            previous_value='2025-2026',
            new_value='2026-2027',
            actor='registrar',
            students_processed=1,
            succeeded=1,
            results=[{'student_id': 'UCAES20250001', 'status': 'progressed'}],
        )
        TransitionRecord.objects.filter(pk=self.semester.pk).update(timestamp=aware(2026, 1, 10, 8, 0))
        TransitionRecord.objects.filter(pk=self.year.pk).update(timestamp=aware(2026, 8, 1, 8, 0))
        self.url = reverse('audit:transition_list')

    def test_list_requires_permission(self):
        self.client.force_login(self.user)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 403)

    def test_anonymous_is_rejected(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 403)

    def test_list_newest_first(self):
        self.client.force_login(self.superuser)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['count'], 2)
        self.assertEqual([r['type'] for r in data['records']], ['academic-year', 'semester'])
        self.assertNotIn('results', data['records'][0])

    def test_list_with_results(self):
        self.client.force_login(self.auditor)
        response = self.client.get(self.url, {'type': 'academic-year', 'results': '1'})
        self.assertEqual(response.status_code, 200)
        records = response.json()['records']
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]['results'][0]['student_id'], 'UCAES20250001')

    def test_filter_by_date_range(self):
        self.client.force_login(self.auditor)
        response = self.client.get(self.url, {'start': '2026-01-10', 'end': '2026-01-10'})
        records = response.json()['records']
        self.assertEqual([r['id'] for r in records], [str(self.semester.pk)])

        response = self.client.get(self.url, {'start': '2026-02-01'})
        records = response.json()['records']
        self.assertEqual([r['id'] for r in records], [str(self.year.pk)])

    def test_invalid_filters(self):
        self.client.force_login(self.auditor)
        self.assertEqual(self.client.get(self.url, {'type': 'quarter'}).status_code, 400)
        self.assertEqual(self.client.get(self.url, {'start': 'yesterday'}).status_code, 400)

    def test_detail(self):
        self.client.force_login(self.auditor)
        response = self.client.get(reverse('audit:transition_detail', args=[self.year.pk]))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['new_value'], '2026-2027')
        self.assertEqual(data['students_processed'], 1)
        self.assertEqual(len(data['results']), 1)
