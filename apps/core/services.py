"""
Identifier allocation services.

Identifiers look like ``UCAES20260001``: a prefix, a four digit year key and
a four digit zero-padded sequence taken from an ``IdentifierCounter`` row.
Every increment is a single-row atomic update, so any number of request
handlers (or processes) can allocate at the same time without locks held in
Python.
"""

import logging
import re
import time

from django.apps import apps
from django.conf import settings
from django.core.exceptions import FieldDoesNotExist, ImproperlyConfigured, ValidationError
from django.core.validators import RegexValidator
from django.db import IntegrityError, OperationalError, connection, transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .models import (
    IdentifierCounter,
    IDENTIFIER_MAX_SEQUENCE,
    IDENTIFIER_PREFIX_REGEX,
    IDENTIFIER_SEQUENCE_DIGITS,
    IDENTIFIER_YEAR_KEY_REGEX,
)

logger = logging.getLogger(__name__)

validate_identifier_prefix = RegexValidator(
    IDENTIFIER_PREFIX_REGEX,
    message=_('Prefix must be 1-10 upper-case letters or digits and start with a letter.'),
    code='invalid_prefix',
)
validate_identifier_year_key = RegexValidator(
    IDENTIFIER_YEAR_KEY_REGEX,
    message=_('Year key must be a four digit year.'),
    code='invalid_year_key',
)


class IdentifierSpaceExhausted(Exception):
    """Raised when a (prefix, year) space has no four digit sequence left."""


def run_in_transaction(func, *args, max_attempts=None, **kwargs):
    """
    Run ``func`` inside ``transaction.atomic`` and retry it on write conflicts.

    ``IntegrityError`` (a lost row-creation race) is retried at any nesting
    level because the failed savepoint is rolled back cleanly.
    ``OperationalError`` (lock timeout, serialization failure) is only
    retried when this call owns the outermost transaction.
    """
    attempts = max_attempts or getattr(settings, 'IDENTIFIER_ALLOCATION_MAX_ATTEMPTS', 5)
    backoff = getattr(settings, 'IDENTIFIER_ALLOCATION_RETRY_BACKOFF', 0.05)
    owns_transaction = not connection.in_atomic_block

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except IntegrityError as e:
            if attempt == attempts:
                raise
            logger.debug(f"Write conflict in {func.__name__} (attempt {attempt}): {e}")
        except OperationalError as e:
            if attempt == attempts or not owns_transaction:
                raise
            logger.warning(f"Transaction for {func.__name__} failed (attempt {attempt}), retrying: {e}")
            time.sleep(backoff * attempt)


class IdentifierAllocator:
    """
    Service class for allocating and reconciling sequential identifiers.
    """

    def __init__(self, max_attempts=None):
        self.max_attempts = max_attempts or getattr(settings, 'IDENTIFIER_ALLOCATION_MAX_ATTEMPTS', 5)

    @staticmethod
    def normalize(prefix, year_key):
        """Validate and normalize allocation input. Raises ValidationError."""
        if prefix is None or year_key is None:
            raise ValidationError(_('Prefix and year key are required.'))
        prefix = str(prefix).strip()
        year_key = str(year_key).strip()
        validate_identifier_prefix(prefix)
        validate_identifier_year_key(year_key)
        return prefix, year_key

    @staticmethod
    def format_identifier(prefix, year_key, sequence):
        return f"{prefix}{year_key}{sequence:0{IDENTIFIER_SEQUENCE_DIGITS}d}"

    @staticmethod
    def parse_sequence(identifier, prefix, year_key):
        """Return the sequence carried by ``identifier`` or None if it is not in this space."""
        if not identifier:
            return None
        pattern = rf'^{re.escape(prefix)}{re.escape(year_key)}(\d{{{IDENTIFIER_SEQUENCE_DIGITS}}})$'
        match = re.match(pattern, identifier)
        return int(match.group(1)) if match else None

    def allocate(self, prefix, year_key):
        """
        Allocate the next identifier for (prefix, year_key).

        The counter row is created on first use. Concurrent callers never
        receive the same number; write conflicts are retried here and never
        reach the caller.
        """
        prefix, year_key = self.normalize(prefix, year_key)
        sequence = run_in_transaction(
            self._increment, prefix, year_key, max_attempts=self.max_attempts
        )
        identifier = self.format_identifier(prefix, year_key, sequence)
        logger.info(f"Allocated identifier {identifier}")
        return identifier

    def _increment(self, prefix, year_key):
        counters = IdentifierCounter.objects.filter(prefix=prefix, year_key=year_key)
        updated = counters.update(last_number=F('last_number') + 1, last_updated=timezone.now())
        if updated:
            sequence = counters.values_list('last_number', flat=True).get()
        else:
            IdentifierCounter.objects.create(prefix=prefix, year_key=year_key, last_number=1)
            sequence = 1

        if sequence > IDENTIFIER_MAX_SEQUENCE:
            # Raising inside the atomic block rolls the increment back.
            raise IdentifierSpaceExhausted(
                f"Identifier space {prefix}{year_key} is exhausted ({IDENTIFIER_MAX_SEQUENCE} used)"
            )
        return sequence

    def peek(self, prefix, year_key):
        """Return the last number handed out for (prefix, year_key), 0 if none."""
        prefix, year_key = self.normalize(prefix, year_key)
        return (
            IdentifierCounter.objects.filter(prefix=prefix, year_key=year_key)
            .values_list('last_number', flat=True)
            .first()
        ) or 0

    def inspect(self, prefix, year_key, source='student'):
        """
        Read-only view of what ``reconcile`` would find for (prefix, year_key).
        """
        prefix, year_key = self.normalize(prefix, year_key)
        model, field, year_field = self.get_source(source)
        counter = self.peek(prefix, year_key)
        max_observed = self._max_observed_sequence(model, field, prefix, year_key)
        return {
            'prefix': prefix,
            'year_key': year_key,
            'counter': counter,
            'max_observed': max_observed,
            'behind': max_observed > counter,
            'missing': self._missing_identifiers(model, field, year_field, year_key).count(),
        }

    def reconcile(self, prefix, year_key, source='student'):
        """
        Bring a counter and its identifier space back into a consistent state.

        1. Raise the counter to the highest sequence actually carried by an
           entity, if the counter fell behind.
        2. Give every entity of that year without an identifier a fresh one,
           oldest first, through ``allocate``.

        Safe to run while live traffic allocates: the counter is only ever
        raised, and backfilled numbers come from the same atomic increment.
        """
        prefix, year_key = self.normalize(prefix, year_key)
        model, field, year_field = self.get_source(source)

        counter_before = self.peek(prefix, year_key)
        max_observed = self._max_observed_sequence(model, field, prefix, year_key)

        corrected = False
        if max_observed > counter_before:
            corrected = run_in_transaction(
                self._raise_counter, prefix, year_key, max_observed,
                max_attempts=self.max_attempts
            )
            if corrected:
                logger.warning(
                    f"Counter {prefix}{year_key} was behind issued identifiers: "
                    f"{counter_before} < {max_observed}, corrected"
                )

        backfilled = []
        missing = (
            self._missing_identifiers(model, field, year_field, year_key)
            .order_by('created_at', 'pk')
            .values_list('pk', flat=True)
        )
        # Materialized: the loop writes to the rows the query filters on.
        for pk in list(missing):
            identifier = run_in_transaction(
                self._assign_missing, model, field, pk, prefix, year_key,
                max_attempts=self.max_attempts
            )
            if identifier:
                backfilled.append({'pk': str(pk), 'identifier': identifier})

        if backfilled:
            logger.info(f"Backfilled {len(backfilled)} missing identifiers in {prefix}{year_key}")

        return {
            'prefix': prefix,
            'year_key': year_key,
            'counter_before': counter_before,
            'counter_after': self.peek(prefix, year_key),
            'max_observed': max_observed,
            'corrected': corrected,
            'backfilled': backfilled,
        }

    @staticmethod
    def get_source(source):
        """Resolve an IDENTIFIER_SOURCES entry to (model, field, year_field)."""
        sources = getattr(settings, 'IDENTIFIER_SOURCES', {})
        try:
            config = sources[source]
        except KeyError:
            raise ImproperlyConfigured(f"Unknown identifier source '{source}'")
        return apps.get_model(config['model']), config['field'], config['year_field']

    def year_keys(self, prefix, source='student'):
        """
        Year keys worth reconciling for ``prefix``: every year with a counter
        plus every year an entity of ``source`` was admitted in, so a lost
        counter row is still found.
        """
        prefix = str(prefix).strip()
        validate_identifier_prefix(prefix)
        model, _field, year_field = self.get_source(source)

        keys = set(
            IdentifierCounter.objects.filter(prefix=prefix).values_list('year_key', flat=True)
        )
        observed = (
            model.objects.exclude(**{f'{year_field}__isnull': True})
            .values_list(year_field, flat=True)
            .distinct()
        )
        keys.update(
            key.strip() for key in observed
            if key and re.match(IDENTIFIER_YEAR_KEY_REGEX, key.strip())
        )
        return sorted(keys)

    @staticmethod
    def _live(model):
        """Entities of ``model`` that are not soft-deleted."""
        try:
            model._meta.get_field('is_deleted')
        except FieldDoesNotExist:
            return model.objects.all()
        return model.objects.filter(is_deleted=False)

    @classmethod
    def _missing_identifiers(cls, model, field, year_field, year_key):
        return (
            cls._live(model).filter(**{year_field: year_key})
            .filter(Q(**{field: ''}) | Q(**{f'{field}__isnull': True}))
        )

    def _max_observed_sequence(self, model, field, prefix, year_key):
        identifiers = (
            model.objects.filter(**{f'{field}__startswith': f'{prefix}{year_key}'})
            .values_list(field, flat=True)
        )
        highest = 0
        for identifier in identifiers.iterator():
            sequence = self.parse_sequence(identifier, prefix, year_key)
            if sequence is not None and sequence > highest:
                highest = sequence
        return highest

    @staticmethod
    def _raise_counter(prefix, year_key, value):
        counters = IdentifierCounter.objects.filter(prefix=prefix, year_key=year_key)
        if counters.filter(last_number__lt=value).update(last_number=value, last_updated=timezone.now()):
            return True
        if not counters.exists():
            IdentifierCounter.objects.create(prefix=prefix, year_key=year_key, last_number=value)
            return True
        return False

    def _assign_missing(self, model, field, pk, prefix, year_key):
        entity = (
            model.objects.select_for_update()
            .filter(pk=pk)
            .filter(Q(**{field: ''}) | Q(**{f'{field}__isnull': True}))
            .first()
        )
        if entity is None:
            # Someone assigned it after the scan.
            return None
        identifier = self.allocate(prefix, year_key)
        model.objects.filter(pk=pk).update(**{field: identifier})
        return identifier


def allocate_identifier(prefix=None, year_key=None):
    """Shortcut used by models: allocate with the default prefix when none is given."""
    prefix = prefix or getattr(settings, 'IDENTIFIER_DEFAULT_PREFIX', 'UCAES')
    return IdentifierAllocator().allocate(prefix, year_key)
