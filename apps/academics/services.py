# apps/academics/services.py
"""
Current period services: the period registry, the transition engine that
moves it forward, and the registration gate that reads it.
"""

import logging
from datetime import date, datetime

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.audit.models import TransitionRecord
from .models import (
    AcademicSemester,
    AcademicYear,
    CourseRegistration,
    LegacyAcademicSetting,
    PERIODS_PER_YEAR,
    PeriodRegistry,
    ProgramType,
    Semester,
    Student,
    semester_from_number,
    semester_number,
)
from .progression import ProgressionBatchProcessor

logger = logging.getLogger(__name__)

REASON_NOT_DUE = 'not due'
REASON_ALREADY_APPLIED = 'already applied'
REASON_FINAL_PERIOD = 'final period of academic year'
REASON_NO_NEXT_YEAR = 'next academic year not found'


class PeriodRegistryNotInitialized(Exception):
    """Raised when the period registry has not been bootstrapped."""


def as_date(now=None):
    if now is None:
        return timezone.localdate()
    if isinstance(now, datetime):
        return timezone.localdate(now) if timezone.is_aware(now) else now.date()
    if isinstance(now, date):
        return now
    raise TypeError(f"Expected a date or datetime, got {type(now).__name__}")


def clean_semester(value):
    try:
        return Semester(value)
    except ValueError:
        raise ValidationError(_('Unknown semester "%(value)s".'), params={'value': value})


def clean_program_type(value):
    try:
        return ProgramType(value or ProgramType.REGULAR)
    except ValueError:
        raise ValidationError(_('Unknown program type "%(value)s".'), params={'value': value})


class PeriodRegistryService:
    """
    Reads and writes the current period.

    The primary ``PeriodRegistry`` row is authoritative. The legacy
    ``current-year`` row is overwritten in the same transaction on every
    write and repaired by ``detect_drift`` if it ever diverges.
    """

    @staticmethod
    def get_registry(for_update=False):
        queryset = PeriodRegistry.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        else:
            queryset = queryset.select_related('current_academic_year')
        try:
            return queryset.get(key=PeriodRegistry.SINGLETON_KEY)
        except PeriodRegistry.DoesNotExist:
            raise PeriodRegistryNotInitialized(
                "Period registry has not been initialized; run bootstrap_period_registry"
            )

    @staticmethod
    def snapshot(registry):
        return (registry.current_academic_year_id, registry.current_semester, registry.current_trimester)

    def get_current_period(self, program_type=ProgramType.REGULAR):
        """
        Current period as read by registration, admissions and fees.
        """
        program_type = clean_program_type(program_type)
        registry = self.get_registry()
        year = registry.current_academic_year
        return {
            'academic_year_id': str(year.pk) if year else None,
            'academic_year': registry.current_academic_year_display,
            'semester': registry.period_for(program_type),
            'program_type': program_type.value,
            'regular_semester': registry.current_semester,
            'weekend_trimester': registry.current_trimester,
            'admission_status': year.admission_status if year else AcademicYear.AdmissionStatus.CLOSED,
        }

    def set_current_period(self, academic_year, new_semester=None, actor='system',
                           new_trimester=None, expected=None, effective_date=None):
        """
        Write the current period to the primary record and the legacy mirror.

        ``None`` for a semester leaves that track unchanged. When
        ``expected`` (a ``snapshot``) is given the write only happens if the
        registry still holds that value; otherwise None is returned.
        ``effective_date`` (default today) is stored as the day each changed
        track entered its new period.
        """
        entered_on = effective_date or timezone.localdate()
        if not isinstance(academic_year, AcademicYear):
            academic_year = AcademicYear.objects.get(pk=academic_year)
        if new_semester is not None:
            new_semester = clean_semester(new_semester)
        if new_trimester is not None:
            new_trimester = clean_semester(new_trimester)
            if semester_number(new_trimester) > PERIODS_PER_YEAR[ProgramType.WEEKEND]:
                raise ValidationError(_('Invalid trimester.'))
        if new_semester is not None and semester_number(new_semester) > PERIODS_PER_YEAR[ProgramType.REGULAR]:
            raise ValidationError(_('Regular programs only have two semesters.'))

        with transaction.atomic():
            registry = self.get_registry(for_update=True)
            if expected is not None and self.snapshot(registry) != expected:
                logger.info("Period registry changed concurrently, write skipped")
                return None

            year_changed = registry.current_academic_year_id != academic_year.pk
            if year_changed:
                registry.academic_year_entered_on = entered_on
            if new_semester is not None and (year_changed or new_semester != registry.current_semester):
                registry.semester_entered_on = entered_on
            if new_trimester is not None and (year_changed or new_trimester != registry.current_trimester):
                registry.trimester_entered_on = entered_on

            registry.current_academic_year = academic_year
            registry.current_academic_year_display = academic_year.name
            if new_semester is not None:
                registry.current_semester = new_semester
            if new_trimester is not None:
                registry.current_trimester = new_trimester
            registry.updated_by = actor
            registry.save()

            mirror, created = LegacyAcademicSetting.objects.select_for_update().get_or_create(
                key=LegacyAcademicSetting.SINGLETON_KEY
            )
            mirror.current_year = academic_year
            mirror.updated_by = actor
            mirror.save()

        logger.info(
            f"Current period set to {registry.current_academic_year_display} "
            f"({registry.current_semester} / {registry.current_trimester}) by {actor}"
        )
        return registry

    def detect_drift(self):
        """
        Compare the primary record with the legacy mirror.

        Returns None when they agree. Otherwise repairs the mirror toward the
        primary and returns a description of the fault.
        """
        with transaction.atomic():
            registry = self.get_registry(for_update=True)
            mirror = (
                LegacyAcademicSetting.objects.select_for_update()
                .select_related('current_year')
                .filter(key=LegacyAcademicSetting.SINGLETON_KEY)
                .first()
            )
            if mirror is not None and mirror.current_year_id == registry.current_academic_year_id:
                return None

            fault = {
                'primary': {
                    'academic_year_id': str(registry.current_academic_year_id) if registry.current_academic_year_id else None,
                    'academic_year': registry.current_academic_year_display,
                },
                'mirror_before': {
                    'academic_year_id': str(mirror.current_year_id) if mirror and mirror.current_year_id else None,
                    'academic_year': mirror.current_year.name if mirror and mirror.current_year else None,
                },
                'mirror_missing': mirror is None,
                'repaired': True,
            }
            if mirror is None:
                mirror = LegacyAcademicSetting(key=LegacyAcademicSetting.SINGLETON_KEY)
            mirror.current_year_id = registry.current_academic_year_id
            mirror.updated_by = 'drift-repair'
            mirror.save()

        logger.warning(
            f"Period registry drift: legacy mirror held {fault['mirror_before']['academic_year']!r}, "
            f"primary holds {fault['primary']['academic_year']!r}; mirror repaired"
        )
        return fault

    @staticmethod
    def legacy_view():
        """The ``current-year`` shape older consumers expect."""
        mirror = (
            LegacyAcademicSetting.objects.select_related('current_year')
            .filter(key=LegacyAcademicSetting.SINGLETON_KEY)
            .first()
        )
        if mirror is None or mirror.current_year is None:
            return {'currentYear': None, 'currentYearName': None}
        return {'currentYear': str(mirror.current_year_id), 'currentYearName': mirror.current_year.name}

    def bootstrap(self, academic_year, semester=Semester.FIRST, trimester=Semester.FIRST, actor='system'):
        """
        Create the registry and its mirror once. Returns (registry, created).
        """
        semester = clean_semester(semester)
        trimester = clean_semester(trimester)
        with transaction.atomic():
            registry, created = PeriodRegistry.objects.get_or_create(
                key=PeriodRegistry.SINGLETON_KEY,
                defaults={
                    'current_academic_year': academic_year,
                    'current_academic_year_display': academic_year.name,
                    'current_semester': semester,
                    'current_trimester': trimester,
                    'updated_by': actor,
                }
            )
            if created:
                LegacyAcademicSetting.objects.update_or_create(
                    key=LegacyAcademicSetting.SINGLETON_KEY,
                    defaults={'current_year': academic_year, 'updated_by': actor}
                )
                if academic_year.status == AcademicYear.YearStatus.UPCOMING:
                    academic_year.status = AcademicYear.YearStatus.ACTIVE
                    academic_year.save(update_fields=['status', 'status_changed_at', 'updated_at'])
                logger.info(f"Period registry initialized at {academic_year} by {actor}")
        return registry, created


class TransitionEngine:
    """
    Decides whether a semester/trimester or academic year transition is due
    and applies it.

    Targets are anchored on the academic calendar: the engine never moves a
    track more than one period past the period that has started on the
    calendar, so calling it twice (forced or not) applies a transition once.
    A track that was brought into its period after that period had started
    (a catch-up) is not forced on again until the period is due.
    """

    def __init__(self, registry_service=None, processor=None):
        self.registry = registry_service or PeriodRegistryService()
        self.processor = processor or ProgressionBatchProcessor()

    def _current_year(self, registry):
        if registry.current_academic_year is None:
            raise PeriodRegistryNotInitialized("Period registry has no current academic year")
        return registry.current_academic_year

    def semester_plan(self, registry, program_type, today):
        year = self._current_year(registry)
        current = semester_number(registry.period_for(program_type))
        semesters = {s.number: s for s in year.semesters_for(program_type)}
        started = [number for number, s in semesters.items() if s.start_date <= today]
        on_calendar = max(started) if started else 0

        target = current + 1 if current < on_calendar else on_calendar + 1
        current_row = semesters.get(current)
        due = current < on_calendar or bool(current_row and current_row.end_date <= today)
        entered_on = registry.entered_on(program_type)
        return {
            'year': year,
            'current': current,
            'target': target,
            'periods': PERIODS_PER_YEAR[program_type],
            'due': due,
            # Entered after the period had started: a catch-up already happened in this window.
            'caught_up': bool(entered_on and current_row and entered_on >= current_row.start_date),
        }

    def year_plan(self, registry, today):
        current = self._current_year(registry)
        on_calendar = AcademicYear.in_session_on(today) or current
        if current.start_date < on_calendar.start_date:
            target = current.successor()
        else:
            target = on_calendar.successor()
        entered_on = registry.academic_year_entered_on
        return {
            'current': current,
            'target': target,
            'due': current.end_date <= today,
            'caught_up': bool(entered_on and entered_on >= current.start_date),
        }

    def evaluate_due(self, now=None):
        """
        List the transitions due at ``now`` without changing anything.
        """
        today = as_date(now)
        registry = self.registry.get_registry()
        due = []

        for program_type in ProgramType:
            plan = self.semester_plan(registry, program_type, today)
            if plan['due'] and plan['current'] < plan['target'] <= plan['periods']:
                due.append({
                    'type': TransitionRecord.TransitionType.SEMESTER.value,
                    'program_type': program_type.value,
                    'previous_value': registry.period_for(program_type),
                    'new_value': semester_from_number(plan['target']).value,
                })

        plan = self.year_plan(registry, today)
        target = plan['target']
        if plan['due'] and target is not None and target.start_date > plan['current'].start_date:
            due.append({
                'type': TransitionRecord.TransitionType.ACADEMIC_YEAR.value,
                'program_type': None,
                'previous_value': plan['current'].name,
                'new_value': target.name,
            })
        return due

    def apply_transition(self, transition_type, force=False, program_type=ProgramType.REGULAR,
                         triggered_by=TransitionRecord.TriggerType.MANUAL, actor='system', now=None):
        """
        Apply a semester or academic-year transition if it is due (or forced).

        Returns a dict with ``applied`` and either a ``reason`` or the
        previous/new values and progression counts.
        """
        try:
            transition_type = TransitionRecord.TransitionType(transition_type)
        except ValueError:
            raise ValidationError(
                _('Invalid transition type "%(value)s". Must be "semester" or "academic-year".'),
                params={'value': transition_type}
            )
        today = as_date(now)

        if transition_type == TransitionRecord.TransitionType.SEMESTER:
            result = self._apply_semester(clean_program_type(program_type), force, triggered_by, actor, today)
        else:
            result = self._apply_academic_year(force, triggered_by, actor, today)

        result.setdefault('type', transition_type.value)
        if not result['applied']:
            logger.info(f"{transition_type.label} transition not applied: {result['reason']}")
        return result

    def _apply_semester(self, program_type, force, triggered_by, actor, today):
        registry = self.registry.get_registry()
        plan = self.semester_plan(registry, program_type, today)
        previous = registry.period_for(program_type)
        base = {'program_type': program_type.value, 'previous_value': previous}

        if plan['target'] <= plan['current']:
            return {'applied': False, 'reason': REASON_ALREADY_APPLIED, **base}
        if plan['target'] > plan['periods']:
            return {'applied': False, 'reason': REASON_FINAL_PERIOD, **base}
        if not plan['due'] and not force:
            return {'applied': False, 'reason': REASON_NOT_DUE, **base}
        if not plan['due'] and plan['caught_up']:
            return {'applied': False, 'reason': REASON_ALREADY_APPLIED, **base}

        year = plan['year']
        new_value = semester_from_number(plan['target'])
        track = {'new_trimester': new_value} if program_type == ProgramType.WEEKEND else {'new_semester': new_value}

        with transaction.atomic():
            updated = self.registry.set_current_period(
                year, actor=actor, expected=self.registry.snapshot(registry),
                effective_date=today, **track
            )
            if updated is None:
                return {'applied': False, 'reason': REASON_ALREADY_APPLIED, **base}

            semesters = AcademicSemester.objects.filter(academic_year=year, program_type=program_type)
            semesters.filter(number=plan['current']).update(
                status=AcademicYear.YearStatus.COMPLETED, status_changed_at=timezone.now()
            )
            semesters.filter(number=plan['target']).update(
                status=AcademicYear.YearStatus.ACTIVE, status_changed_at=timezone.now()
            )
            students = Student.objects.filter(
                status=Student.StudentStatus.ACTIVE, is_deleted=False, program_type=program_type
            ).update(current_period_index=plan['target'])

            record = TransitionRecord.objects.create(
                type=TransitionRecord.TransitionType.SEMESTER,
                program_type=program_type,
                previous_value=previous,
                new_value=new_value,
                triggered_by=triggered_by,
                actor=actor,
                students_processed=students,
                succeeded=students,
                failed=0,
            )

        logger.info(
            f"{program_type.label} period transitioned {previous} -> {new_value} "
            f"in {year} ({students} students, {'forced' if force else 'due'})"
        )
        return {
            'applied': True,
            **base,
            'new_value': new_value.value,
            'academic_year': year.name,
            'students_processed': students,
            'succeeded': students,
            'failed': 0,
            'record_id': str(record.pk),
        }

    def _apply_academic_year(self, force, triggered_by, actor, today):
        registry = self.registry.get_registry()
        plan = self.year_plan(registry, today)
        current, target = plan['current'], plan['target']
        base = {'previous_value': current.name}

        if target is not None and target.start_date <= current.start_date:
            return {'applied': False, 'reason': REASON_ALREADY_APPLIED, **base}
        if target is None:
            return {'applied': False, 'reason': REASON_NO_NEXT_YEAR, **base}
        if not plan['due'] and not force:
            return {'applied': False, 'reason': REASON_NOT_DUE, **base}
        if not plan['due'] and plan['caught_up']:
            return {'applied': False, 'reason': REASON_ALREADY_APPLIED, **base}

        with transaction.atomic():
            updated = self.registry.set_current_period(
                target,
                new_semester=Semester.FIRST,
                new_trimester=Semester.FIRST,
                actor=actor,
                expected=self.registry.snapshot(registry),
                effective_date=today,
            )
            if updated is None:
                return {'applied': False, 'reason': REASON_ALREADY_APPLIED, **base}

            now = timezone.now()
            AcademicYear.objects.filter(pk=current.pk).update(
                status=AcademicYear.YearStatus.COMPLETED, status_changed_at=now
            )
            AcademicYear.objects.filter(pk=target.pk).update(
                status=AcademicYear.YearStatus.ACTIVE, status_changed_at=now
            )
            AcademicSemester.objects.filter(academic_year=current).update(
                status=AcademicYear.YearStatus.COMPLETED, status_changed_at=now
            )
            AcademicSemester.objects.filter(academic_year=target, number=1).update(
                status=AcademicYear.YearStatus.ACTIVE, status_changed_at=now
            )

        logger.info(f"Academic year transitioned {current} -> {target} ({'forced' if force else 'due'})")
        summary = self.processor.run(
            target, triggered_by=triggered_by, actor=actor, previous_value=current.name
        )
        return {
            'applied': True,
            **base,
            'new_value': target.name,
            **summary,
        }

    def run_scheduled(self, now=None, actor='scheduler'):
        """
        Scheduler tick: apply every transition that is due at ``now``.
        """
        results = []
        for entry in self.evaluate_due(now):
            results.append(self.apply_transition(
                entry['type'],
                program_type=entry['program_type'] or ProgramType.REGULAR,
                triggered_by=TransitionRecord.TriggerType.SCHEDULED,
                actor=actor,
                now=now,
            ))
        return results


class RegistrationGate:
    """
    Enforces one course registration per student per period.
    """

    def __init__(self, registry_service=None):
        self.registry = registry_service or PeriodRegistryService()

    def registration_key(self, student):
        period = self.registry.get_current_period(student.program_type)
        return period['academic_year_id'], period['semester']

    def is_registered(self, student):
        academic_year_id, semester = self.registration_key(student)
        return CourseRegistration.objects.filter(
            student=student, academic_year_id=academic_year_id, semester=semester
        ).exists()

    def register(self, student):
        academic_year_id, semester = self.registration_key(student)
        if academic_year_id is None or semester == Semester.NONE:
            raise ValidationError(_('There is no open registration period.'))
        if student.status != Student.StudentStatus.ACTIVE:
            raise ValidationError(_('Only active students can register.'))

        try:
            with transaction.atomic():
                registration = CourseRegistration.objects.create(
                    student=student,
                    academic_year_id=academic_year_id,
                    semester=semester,
                )
        except IntegrityError:
            raise ValidationError(_('Student is already registered for this period.'))

        logger.info(f"Registered {student.identifier} for {semester} {academic_year_id}")
        return registration
