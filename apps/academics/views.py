# apps/academics/views.py

import json
import logging

from django.conf import settings
from django.contrib.auth.mixins import LoginRequiredMixin, UserPassesTestMixin
from django.core.exceptions import ImproperlyConfigured, ValidationError
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.utils.translation import gettext_lazy as _
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.audit.models import TransitionRecord
from apps.core.services import IdentifierAllocator, IdentifierSpaceExhausted
from .models import AcademicYear
from .progression import ProgressionAborted, ProgressionBatchProcessor
from .services import PeriodRegistryNotInitialized, PeriodRegistryService, TransitionEngine

logger = logging.getLogger(__name__)


# =============================================================================
# MIXINS AND BASE CLASSES
# =============================================================================

class StaffRequiredMixin(LoginRequiredMixin, UserPassesTestMixin):
    """Mixin to ensure user is staff."""
    raise_exception = True

    def test_func(self):
        return self.request.user.is_staff


def error_messages(error):
    if hasattr(error, 'message_dict'):
        return error.message_dict
    return error.messages


def actor_name(request):
    return request.user.get_username() or 'system'


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in ('true', '1', 't', 'yes', 'on')


class JsonApiView(View):
    """
    Base view for the period JSON endpoints.

    Accepts a JSON body or form fields and maps service errors to status
    codes: ValidationError 400, uninitialized registry 409, anything else 500.
    """

    def request_data(self, request):
        if request.content_type == 'application/json' and request.body:
            try:
                data = json.loads(request.body)
            except json.JSONDecodeError:
                raise ValidationError(_('Request body is not valid JSON.'))
            if not isinstance(data, dict):
                raise ValidationError(_('Request body must be a JSON object.'))
            return data
        return request.POST.dict()

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except ValidationError as e:
            return JsonResponse({'success': False, 'errors': error_messages(e)}, status=400)
        except PeriodRegistryNotInitialized as e:
            return JsonResponse({'success': False, 'error': str(e)}, status=409)
        except Exception as e:
            logger.exception(f"{self.__class__.__name__} failed: {e}")
            return JsonResponse({'success': False, 'error': _('Internal error.')}, status=500)


# =============================================================================
# PERIOD REGISTRY
# =============================================================================

class CurrentPeriodView(LoginRequiredMixin, JsonApiView):
    """Current academic year and semester/trimester for a program track."""
    raise_exception = True
    http_method_names = ['get']

    def get(self, request):
        program_type = request.GET.get('program_type', 'regular')
        period = PeriodRegistryService().get_current_period(program_type)
        return JsonResponse(period)


# =============================================================================
# TRANSITIONS
# =============================================================================

@method_decorator(csrf_exempt, name='dispatch')
class TransitionTriggerView(StaffRequiredMixin, JsonApiView):
    """
    Manually trigger a semester or academic year transition.

    Always returns 200 with the engine's result; ``applied`` is false when
    the transition is not due or was already applied.
    """
    http_method_names = ['post']
    transition_type = None

    def post(self, request):
        data = self.request_data(request)
        result = TransitionEngine().apply_transition(
            self.transition_type,
            force=parse_bool(data.get('force')),
            program_type=data.get('program_type') or 'regular',
            triggered_by=TransitionRecord.TriggerType.MANUAL,
            actor=actor_name(request),
        )
        return JsonResponse(result)


class SemesterTransitionView(TransitionTriggerView):
    transition_type = TransitionRecord.TransitionType.SEMESTER


class AcademicYearTransitionView(TransitionTriggerView):
    transition_type = TransitionRecord.TransitionType.ACADEMIC_YEAR

    def post(self, request):
        try:
            return super().post(request)
        except ProgressionAborted as e:
            # The registry already moved; the retry endpoint finishes the run.
            return JsonResponse({
                'success': False,
                'error': str(e),
                'students_processed': len(e.results),
            }, status=503)


# =============================================================================
# MAINTENANCE
# =============================================================================

@method_decorator(csrf_exempt, name='dispatch')
class DriftCheckView(StaffRequiredMixin, JsonApiView):
    http_method_names = ['post']

    def post(self, request):
        fault = PeriodRegistryService().detect_drift()
        return JsonResponse({'drift': fault is not None, 'fault': fault})


@method_decorator(csrf_exempt, name='dispatch')
class ReconcileIdentifiersView(StaffRequiredMixin, JsonApiView):
    """Reconcile one identifier counter against the identifiers actually issued."""
    http_method_names = ['post']

    def post(self, request):
        data = self.request_data(request)
        try:
            report = IdentifierAllocator().reconcile(
                data.get('prefix') or getattr(settings, 'IDENTIFIER_DEFAULT_PREFIX', 'UCAES'),
                data.get('year_key'),
                source=data.get('source') or 'student',
            )
        except ImproperlyConfigured as e:
            return JsonResponse({'success': False, 'error': str(e)}, status=400)
        except IdentifierSpaceExhausted as e:
            return JsonResponse({'success': False, 'error': str(e)}, status=409)
        return JsonResponse(report)


@method_decorator(csrf_exempt, name='dispatch')
class ProgressionRetryView(StaffRequiredMixin, JsonApiView):
    """
    Re-run progression into an academic year. Students already advanced into
    that year are skipped, so only previously failed students are processed.
    """
    http_method_names = ['post']

    def post(self, request):
        data = self.request_data(request)
        year_id = data.get('academic_year')
        if year_id:
            target = AcademicYear.objects.filter(pk=year_id).first()
            if target is None:
                raise ValidationError({'academic_year': [_('Academic year not found.')]})
        else:
            target = PeriodRegistryService().get_registry().current_academic_year

        try:
            summary = ProgressionBatchProcessor().run(
                target,
                triggered_by=TransitionRecord.TriggerType.MANUAL,
                actor=actor_name(request),
                previous_value=target.name,
            )
        except ProgressionAborted as e:
            return JsonResponse({
                'success': False,
                'error': str(e),
                'students_processed': len(e.results),
            }, status=503)
        return JsonResponse({'academic_year': target.name, **summary})
