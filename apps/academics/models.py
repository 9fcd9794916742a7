# apps/academics/models.py

from django.conf import settings
from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils.translation import gettext_lazy as _
from django.core.exceptions import ValidationError

from apps.core.models import CoreBaseModel


class ProgramType(models.TextChoices):
    REGULAR = 'regular', _('Regular (semesters)')
    WEEKEND = 'weekend', _('Weekend (trimesters)')


PERIODS_PER_YEAR = {
    ProgramType.REGULAR: 2,
    ProgramType.WEEKEND: 3,
}


class Semester(models.TextChoices):
    FIRST = 'First', _('First')
    SECOND = 'Second', _('Second')
    THIRD = 'Third', _('Third')
    NONE = 'None', _('None')


SEMESTER_NUMBERS = {
    Semester.NONE: 0,
    Semester.FIRST: 1,
    Semester.SECOND: 2,
    Semester.THIRD: 3,
}


def semester_number(value):
    """Position of a semester/trimester within the year, 0 for None."""
    return SEMESTER_NUMBERS[Semester(value or Semester.NONE)]


def semester_from_number(number):
    for semester, position in SEMESTER_NUMBERS.items():
        if position == number:
            return semester
    raise ValueError(f"No semester at position {number}")


class AcademicYear(CoreBaseModel):
    """
    Model for managing academic years.

    Years and their dates are maintained by administration; the period
    engine only moves ``status`` forward when it transitions years.
    """
    class YearStatus(models.TextChoices):
        UPCOMING = 'upcoming', _('Upcoming')
        ACTIVE = 'active', _('Active')
        COMPLETED = 'completed', _('Completed')

    class AdmissionStatus(models.TextChoices):
        OPEN = 'open', _('Open')
        CLOSED = 'closed', _('Closed')

    name = models.CharField(_('academic year'), max_length=20, unique=True, help_text=_('e.g. 2025-2026'))
    year_key = models.CharField(
        _('year key'),
        max_length=4,
        help_text=_('Four digit year used in identifiers issued for this year, e.g. 2025')
    )
    start_date = models.DateField(_('start date'))
    end_date = models.DateField(_('end date'))
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=YearStatus.choices,
        default=YearStatus.UPCOMING,
        db_index=True
    )
    admission_status = models.CharField(
        _('admission status'),
        max_length=10,
        choices=AdmissionStatus.choices,
        default=AdmissionStatus.CLOSED
    )

    class Meta:
        verbose_name = _('Academic Year')
        verbose_name_plural = _('Academic Years')
        ordering = ['-start_date']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F('start_date')),
                name='academic_year_end_after_start'
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError(_('End date must be after start date.'))

    def successor(self):
        """The next academic year by start date, if administration has created it."""
        return (
            AcademicYear.objects.filter(is_deleted=False, start_date__gt=self.start_date)
            .order_by('start_date')
            .first()
        )

    @classmethod
    def in_session_on(cls, day):
        """Latest academic year that has started on ``day``."""
        return (
            cls.objects.filter(is_deleted=False, start_date__lte=day)
            .order_by('-start_date')
            .first()
        )

    def semesters_for(self, program_type):
        return self.semesters.filter(program_type=program_type, is_deleted=False).order_by('number')


class AcademicSemester(CoreBaseModel):
    """
    A semester (regular track) or trimester (weekend track) of an academic year.
    """
    academic_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.CASCADE,
        related_name='semesters',
        verbose_name=_('academic year')
    )
    program_type = models.CharField(
        _('program type'),
        max_length=10,
        choices=ProgramType.choices,
        default=ProgramType.REGULAR
    )
    number = models.PositiveSmallIntegerField(
        _('number'),
        validators=[MinValueValidator(1), MaxValueValidator(3)]
    )
    start_date = models.DateField(_('start date'))
    end_date = models.DateField(_('end date'))
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=AcademicYear.YearStatus.choices,
        default=AcademicYear.YearStatus.UPCOMING,
        db_index=True
    )

    class Meta:
        verbose_name = _('Academic Semester')
        verbose_name_plural = _('Academic Semesters')
        ordering = ['academic_year', 'program_type', 'number']
        constraints = [
            models.UniqueConstraint(
                fields=['academic_year', 'program_type', 'number'],
                name='unique_semester_per_track'
            ),
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F('start_date')),
                name='semester_end_after_start'
            ),
        ]

    def __str__(self):
        return f"{self.academic_year} {self.semester} ({self.get_program_type_display()})"

    @property
    def semester(self):
        return semester_from_number(self.number)

    def clean(self):
        if self.number and self.number > PERIODS_PER_YEAR[ProgramType(self.program_type)]:
            raise ValidationError(
                _('Number cannot exceed the periods per year of the program type.')
            )


class Program(CoreBaseModel):
    """
    Academic program a student is admitted into.

    ``terminal_level`` is the final level of the program; students at that
    level are not advanced further on a year transition.
    """
    code = models.CharField(_('program code'), max_length=20, unique=True)
    name = models.CharField(_('program name'), max_length=200)
    duration_years = models.PositiveSmallIntegerField(_('duration (years)'), default=4)
    terminal_level = models.PositiveIntegerField(_('terminal level'), default=400)

    class Meta:
        verbose_name = _('Program')
        verbose_name_plural = _('Programs')
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"

    def clean(self):
        if self.terminal_level % 100 != 0:
            raise ValidationError(_('Terminal level must be a multiple of 100.'))


class Student(CoreBaseModel):
    """
    Student record as seen by the period and progression engine.
    """
    class StudentStatus(models.TextChoices):
        ACTIVE = 'active', _('Active')
        DEFERRED = 'deferred', _('Deferred')
        GRADUATED = 'graduated', _('Graduated')

    registration_number = models.CharField(
        _('registration number'),
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        db_index=True
    )
    admission_year = models.CharField(
        _('admission year'),
        max_length=4,
        blank=True,
        db_index=True,
        help_text=_('Year key of the identifier space the registration number comes from')
    )
    first_name = models.CharField(_('first name'), max_length=100)
    last_name = models.CharField(_('last name'), max_length=100)
    email = models.EmailField(_('email address'), blank=True)

    # Level is stored as text; imported records are not guaranteed to be numeric.
    level = models.CharField(_('level'), max_length=10, default='100')
    program = models.ForeignKey(
        Program,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='students',
        verbose_name=_('program')
    )
    program_type = models.CharField(
        _('program type'),
        max_length=10,
        choices=ProgramType.choices,
        default=ProgramType.REGULAR,
        db_index=True
    )
    academic_year_enrolled = models.ForeignKey(
        AcademicYear,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='enrolled_students',
        verbose_name=_('academic year enrolled')
    )
    current_period_index = models.PositiveSmallIntegerField(_('current period index'), default=1)
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=StudentStatus.choices,
        default=StudentStatus.ACTIVE,
        db_index=True
    )
    progression_complete = models.BooleanField(_('progression complete'), default=False)
    last_processed_target_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('last processed target year')
    )
    last_progression_date = models.DateTimeField(_('last progression date'), null=True, blank=True)

    class Meta:
        verbose_name = _('Student')
        verbose_name_plural = _('Students')
        ordering = ['registration_number']
        indexes = [
            models.Index(fields=['status', 'program_type'], name='student_status_track_idx'),
            models.Index(fields=['admission_year', 'registration_number'], name='student_admission_reg_idx'),
        ]

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.registration_number or 'unassigned'})"

    def save(self, *args, **kwargs):
        """Allocate a registration number on first save if the admission year is known."""
        if not self.registration_number:
            self.registration_number = None
            if (self._state.adding and self.admission_year
                    and getattr(settings, 'IDENTIFIER_AUTO_ASSIGN', True)):
                from apps.core.services import allocate_identifier
                self.registration_number = allocate_identifier(year_key=self.admission_year)
        super().save(*args, **kwargs)

    @property
    def terminal_level(self):
        if self.program_id:
            return self.program.terminal_level
        return getattr(settings, 'PROGRESSION_DEFAULT_TERMINAL_LEVEL', 400)

    @property
    def identifier(self):
        return self.registration_number or str(self.pk)


class PeriodRegistry(models.Model):
    """
    Authoritative record of the institution's current period.

    A single row (``key='academic-period'``). Regular students follow
    ``current_semester``; weekend students follow ``current_trimester``.
    """
    SINGLETON_KEY = 'academic-period'

    key = models.CharField(_('key'), max_length=50, unique=True, default=SINGLETON_KEY)
    current_academic_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.PROTECT,
        null=True,
        related_name='+',
        verbose_name=_('current academic year')
    )
    current_academic_year_display = models.CharField(_('current academic year (display)'), max_length=50, blank=True)
    current_semester = models.CharField(
        _('current semester'),
        max_length=10,
        choices=Semester.choices,
        default=Semester.NONE
    )
    current_trimester = models.CharField(
        _('current trimester'),
        max_length=10,
        choices=Semester.choices,
        default=Semester.NONE
    )
    # Evaluation date on which each track entered its current period; unknown after bootstrap.
    academic_year_entered_on = models.DateField(_('academic year entered on'), null=True, blank=True)
    semester_entered_on = models.DateField(_('semester entered on'), null=True, blank=True)
    trimester_entered_on = models.DateField(_('trimester entered on'), null=True, blank=True)
    last_updated = models.DateTimeField(_('last updated'), auto_now=True)
    updated_by = models.CharField(_('updated by'), max_length=150, blank=True)

    class Meta:
        verbose_name = _('Period Registry')
        verbose_name_plural = _('Period Registry')

    def __str__(self):
        return f"{self.current_academic_year_display} / {self.current_semester} / {self.current_trimester}"

    def period_for(self, program_type):
        if ProgramType(program_type) == ProgramType.WEEKEND:
            return self.current_trimester
        return self.current_semester

    def entered_on(self, program_type):
        if ProgramType(program_type) == ProgramType.WEEKEND:
            return self.trimester_entered_on
        return self.semester_entered_on


class LegacyAcademicSetting(models.Model):
    """
    Legacy ``current-year`` setting still read by older portals.

    Must always name the same academic year as ``PeriodRegistry``; the
    registry service writes both together and repairs any drift.
    """
    SINGLETON_KEY = 'current-year'

    key = models.CharField(_('key'), max_length=50, unique=True, default=SINGLETON_KEY)
    current_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.PROTECT,
        null=True,
        related_name='+',
        verbose_name=_('current year')
    )
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    updated_by = models.CharField(_('updated by'), max_length=150, blank=True)

    class Meta:
        verbose_name = _('Legacy Academic Setting')
        verbose_name_plural = _('Legacy Academic Settings')

    def __str__(self):
        return f"{self.key}: {self.current_year}"


class CourseRegistration(CoreBaseModel):
    """
    One registration per student per period, keyed off the period registry.
    """
    student = models.ForeignKey(
        Student,
        on_delete=models.CASCADE,
        related_name='registrations',
        verbose_name=_('student')
    )
    academic_year = models.ForeignKey(
        AcademicYear,
        on_delete=models.PROTECT,
        related_name='registrations',
        verbose_name=_('academic year')
    )
    semester = models.CharField(_('semester'), max_length=10, choices=Semester.choices)
    registered_at = models.DateTimeField(_('registered at'), auto_now_add=True)

    class Meta:
        verbose_name = _('Course Registration')
        verbose_name_plural = _('Course Registrations')
        ordering = ['-registered_at']
        constraints = [
            models.UniqueConstraint(
                fields=['student', 'academic_year', 'semester'],
                name='one_registration_per_period'
            ),
        ]

    def __str__(self):
        return f"{self.student} - {self.academic_year} {self.semester}"
