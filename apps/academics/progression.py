# apps/academics/progression.py
"""
Student level progression for academic year transitions.

Every active student is advanced one level (100 -> 200 ...) into the target
academic year. Each student is written in its own transaction, so one bad
record never aborts the run, and ``last_processed_target_year`` makes a
re-run for the same target pick up only the students that did not make it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from django.conf import settings
from django.db import InterfaceError, OperationalError, connection, transaction
from django.utils import timezone

from apps.audit.models import TransitionRecord
from .models import Student

logger = logging.getLogger(__name__)

OUTCOME_PROGRESSED = 'progressed'
OUTCOME_COMPLETE = 'progression-complete'
OUTCOME_FAILED = 'failed'
OUTCOME_SKIPPED = 'skipped'


class ProgressionAborted(Exception):
    """The store became unavailable mid-run; students already written stay written."""

    def __init__(self, message, results=None):
        super().__init__(message)
        self.results = results or []


def parse_level(value):
    """Return a stored level as an int. Raises ValueError for malformed levels."""
    text = str(value if value is not None else '').strip()
    if not text.isdigit():
        raise ValueError(f"Malformed level '{value}'")
    level = int(text)
    if level <= 0 or level % 100:
        raise ValueError(f"Level {level} is not a positive multiple of 100")
    return level


class ProgressionBatchProcessor:
    """
    Advances the active student population into a target academic year.
    """

    def __init__(self, max_workers=None, chunk_size=None):
        self.max_workers = max_workers or getattr(settings, 'PROGRESSION_MAX_WORKERS', 4)
        self.chunk_size = chunk_size or getattr(settings, 'PROGRESSION_CHUNK_SIZE', 200)

    @staticmethod
    def pending_students(target_year):
        """Active students not yet advanced into ``target_year``."""
        return (
            Student.objects.filter(status=Student.StudentStatus.ACTIVE, is_deleted=False)
            .exclude(last_processed_target_year=target_year)
        )

    def iter_chunks(self, target_year):
        """
        Walk the pending population in primary key order, one page at a time.

        Keyset paging keeps memory bounded and is unaffected by rows leaving
        the filter as they are processed.
        """
        last_pk = None
        while True:
            page = self.pending_students(target_year).order_by('pk')
            if last_pk is not None:
                page = page.filter(pk__gt=last_pk)
            chunk = list(page.values_list('pk', 'registration_number')[:self.chunk_size])
            if not chunk:
                return
            yield chunk
            last_pk = chunk[-1][0]

    def run(self, target_year, triggered_by=TransitionRecord.TriggerType.MANUAL,
            actor='system', previous_value=''):
        """
        Progress every pending student into ``target_year`` and append a
        TransitionRecord summarizing the run.

        Returns a dict with ``students_processed``, ``succeeded``, ``failed``
        and per-student ``results``. A fatal store fault stops the run; the
        students written so far are recorded (``aborted``) and
        ``ProgressionAborted`` is raised.
        """
        logger.info(f"Starting progression into {target_year} ({triggered_by} by {actor})")
        results = []
        fault = None
        executor = ThreadPoolExecutor(max_workers=self.max_workers) if self.max_workers > 1 else None
        try:
            for chunk in self.iter_chunks(target_year):
                chunk_results, fault = self._process_chunk(chunk, target_year, executor)
                results.extend(chunk_results)
                if fault is not None:
                    break
        except (OperationalError, InterfaceError) as e:
            fault = e
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        processed = [r for r in results if r['status'] != OUTCOME_SKIPPED]
        failed = sum(1 for r in processed if r['status'] == OUTCOME_FAILED)
        succeeded = len(processed) - failed
        record_fields = dict(
            type=TransitionRecord.TransitionType.ACADEMIC_YEAR,
            previous_value=previous_value or '',
            new_value=target_year.name,
            triggered_by=triggered_by,
            actor=actor,
            students_processed=len(processed),
            succeeded=succeeded,
            failed=failed,
            results=processed,
        )

        if fault is not None:
            logger.error(
                f"Progression into {target_year} aborted after {len(processed)} students: {fault}"
            )
            try:
                TransitionRecord.objects.create(aborted=True, **record_fields)
            except (OperationalError, InterfaceError) as e:
                logger.error(f"Could not record aborted progression into {target_year}: {e}")
            raise ProgressionAborted(f"Progression into {target_year} aborted: {fault}", processed) from fault

        record = TransitionRecord.objects.create(**record_fields)

        log = logger.warning if failed else logger.info
        log(
            f"Progression into {target_year} complete: {len(processed)} processed, "
            f"{succeeded} succeeded, {failed} failed"
        )
        return {
            'students_processed': len(processed),
            'succeeded': succeeded,
            'failed': failed,
            'results': processed,
            'record_id': str(record.pk),
        }

    def _process_chunk(self, chunk, target_year, executor):
        """
        Process one page. Returns (results, fault): every outcome written in
        this page, and the first fatal store error a worker hit, if any.
        """
        if executor is None:
            return self._process_slice(chunk, target_year)

        # One slice per worker so each thread reuses a single connection.
        slices = [chunk[i::self.max_workers] for i in range(self.max_workers)]
        futures = [
            executor.submit(self._process_slice, students, target_year, True)
            for students in slices if students
        ]
        results = []
        fault = None
        for future in as_completed(futures):
            slice_results, slice_fault = future.result()
            results.extend(slice_results)
            fault = fault or slice_fault
        return results, fault

    def _process_slice(self, students, target_year, close_connection=False):
        results = []
        try:
            for pk, label in students:
                results.append(self.process_student(pk, label, target_year))
        except (OperationalError, InterfaceError) as e:
            return results, e
        finally:
            if close_connection:
                connection.close()
        return results, None

    def process_student(self, pk, label, target_year):
        """
        Progress one student. Data problems are returned as a failed outcome;
        infrastructure errors propagate and abort the run.
        """
        student_id = label or str(pk)
        try:
            with transaction.atomic():
                student = Student.objects.select_for_update().get(pk=pk)
                if student.last_processed_target_year_id == target_year.pk:
                    return {'student_id': student_id, 'status': OUTCOME_SKIPPED}
                return self.progress(student, target_year)
        except (OperationalError, InterfaceError):
            raise
        except Exception as e:
            logger.warning(f"Could not progress student {student_id} into {target_year}: {e}")
            return {'student_id': student_id, 'status': OUTCOME_FAILED, 'error': str(e)}

    @staticmethod
    def progress(student, target_year):
        from_level = student.level
        level = parse_level(student.level)
        terminal_level = student.terminal_level

        if level > terminal_level:
            raise ValueError(f"Level {level} is above the terminal level {terminal_level}")

        if level == terminal_level:
            student.progression_complete = True
            outcome = OUTCOME_COMPLETE
        else:
            level += 100
            outcome = OUTCOME_PROGRESSED

        student.level = str(level)
        student.academic_year_enrolled = target_year
        student.current_period_index = 1
        student.last_processed_target_year = target_year
        student.last_progression_date = timezone.now()
        student.save(update_fields=[
            'level', 'progression_complete', 'academic_year_enrolled', 'current_period_index',
            'last_processed_target_year', 'last_progression_date', 'updated_at',
        ])

        return {
            'student_id': student.identifier,
            'status': outcome,
            'from_level': from_level,
            'to_level': student.level,
        }
