# apps/core/models.py
import uuid
from django.db import models
from django.utils import timezone
from django.core.validators import MaxValueValidator, RegexValidator
from django.utils.translation import gettext_lazy as _


IDENTIFIER_PREFIX_REGEX = r'^[A-Z][A-Z0-9]{0,9}$'
IDENTIFIER_YEAR_KEY_REGEX = r'^\d{4}$'
IDENTIFIER_SEQUENCE_DIGITS = 4
IDENTIFIER_MAX_SEQUENCE = 10 ** IDENTIFIER_SEQUENCE_DIGITS - 1


class CoreBaseModel(models.Model):
    """
    Comprehensive base model combining all core functionalities:
    - UUID primary key
    - Created/updated timestamps
    - Status tracking with change timestamp
    - Soft delete functionality
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', _('Active')
        INACTIVE = 'inactive', _('Inactive')
        ARCHIVED = 'archived', _('Archived')

    # UUID Primary Key
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Timestamp fields
    created_at = models.DateTimeField(_('created at'), auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True, db_index=True)

    # Status fields
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )
    status_changed_at = models.DateTimeField(_('status changed at'), auto_now_add=True)

    # Soft delete fields
    is_deleted = models.BooleanField(_('is deleted'), default=False, db_index=True)
    deleted_at = models.DateTimeField(_('deleted at'), null=True, blank=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Update status_changed_at when status changes.
        """
        if self.pk and not self._state.adding:
            original_status = (
                self.__class__.objects.filter(pk=self.pk)
                .values_list('status', flat=True)
                .first()
            )
            if original_status is not None and original_status != self.status:
                self.status_changed_at = timezone.now()
                update_fields = kwargs.get('update_fields')
                if update_fields is not None:
                    kwargs['update_fields'] = set(update_fields) | {'status_changed_at'}

        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        """
        Soft delete by setting is_deleted flag and deleted_at timestamp.
        """
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])

    def hard_delete(self, using=None, keep_parents=False):
        """
        Perform actual database deletion.
        """
        super().delete(using=using, keep_parents=keep_parents)

    def __str__(self):
        return f"{self.__class__.__name__} {self.id}"


class IdentifierCounter(models.Model):
    """
    Last sequence number handed out for one (prefix, year) identifier space.

    Rows are created lazily by the allocator and only ever move forward;
    a number is never handed out twice, even after the entity that carried
    it is deleted.
    """
    prefix = models.CharField(
        _('prefix'),
        max_length=10,
        validators=[RegexValidator(IDENTIFIER_PREFIX_REGEX)]
    )
    year_key = models.CharField(
        _('year key'),
        max_length=4,
        validators=[RegexValidator(IDENTIFIER_YEAR_KEY_REGEX)]
    )
    last_number = models.PositiveIntegerField(
        _('last number'),
        default=0,
        validators=[MaxValueValidator(IDENTIFIER_MAX_SEQUENCE)]
    )
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    last_updated = models.DateTimeField(_('last updated'), auto_now=True)

    class Meta:
        verbose_name = _('Identifier Counter')
        verbose_name_plural = _('Identifier Counters')
        ordering = ['prefix', '-year_key']
        constraints = [
            models.UniqueConstraint(
                fields=['prefix', 'year_key'],
                name='unique_identifier_counter'
            ),
        ]

    def __str__(self):
        return f"{self.prefix}{self.year_key} - Last: {self.last_number}"

    @property
    def key(self):
        return f"{self.prefix}{self.year_key}"
