from django.db import models
from django.utils.translation import gettext_lazy as _
from apps.core.models import CoreBaseModel


class TransitionRecordQuerySet(models.QuerySet):

    def for_period(self, transition_type=None, start=None, end=None):
        """Filter by transition type and an inclusive timestamp range."""
        queryset = self
        if transition_type:
            queryset = queryset.filter(type=transition_type)
        if start:
            queryset = queryset.filter(timestamp__gte=start)
        if end:
            queryset = queryset.filter(timestamp__lte=end)
        return queryset


class TransitionRecord(CoreBaseModel):
    """
    Append-only audit record of one period transition or progression run.
    """
    class TransitionType(models.TextChoices):
        SEMESTER = 'semester', _('Semester')
        ACADEMIC_YEAR = 'academic-year', _('Academic Year')

    class TriggerType(models.TextChoices):
        MANUAL = 'manual', _('Manual')
        SCHEDULED = 'scheduled', _('Scheduled')

    type = models.CharField(_('type'), max_length=20, choices=TransitionType.choices, db_index=True)
    program_type = models.CharField(_('program type'), max_length=10, blank=True)
    previous_value = models.CharField(_('previous value'), max_length=100, blank=True)
    new_value = models.CharField(_('new value'), max_length=100, blank=True)
    triggered_by = models.CharField(
        _('triggered by'),
        max_length=10,
        choices=TriggerType.choices,
        default=TriggerType.MANUAL
    )
    actor = models.CharField(_('actor'), max_length=150, blank=True)
    timestamp = models.DateTimeField(_('timestamp'), auto_now_add=True, db_index=True)
    students_processed = models.PositiveIntegerField(_('students processed'), default=0)
    succeeded = models.PositiveIntegerField(_('succeeded'), default=0)
    failed = models.PositiveIntegerField(_('failed'), default=0)
    results = models.JSONField(_('results'), default=list, blank=True)
    aborted = models.BooleanField(
        _('aborted'),
        default=False,
        help_text=_('The run stopped on a store fault; results cover the students written before it')
    )

    objects = TransitionRecordQuerySet.as_manager()

    class Meta:
        verbose_name = _('Transition Record')
        verbose_name_plural = _('Transition Records')
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['type', 'timestamp'], name='transition_type_time_idx'),
        ]

    def __str__(self):
        return f"{self.type}: {self.previous_value} -> {self.new_value} ({self.timestamp})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Transition records are append-only and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ValueError("Transition records are append-only and cannot be deleted.")
