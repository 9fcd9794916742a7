# apps/audit/views.py
from datetime import datetime, time

from django.contrib.auth.mixins import LoginRequiredMixin, PermissionRequiredMixin
from django.core.paginator import Paginator
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from django.utils.translation import gettext_lazy as _
from django.views import View

from .models import TransitionRecord
from .serializers import TransitionRecordSerializer, TransitionSummarySerializer


def parse_bound(value, end=False):
    """
    Parse a ``start``/``end`` query value. A bare date covers the whole day.
    Returns None for a missing value and raises ValueError for a bad one.
    """
    if not value:
        return None
    moment = parse_datetime(value)
    if moment is None:
        day = parse_date(value)
        if day is None:
            raise ValueError(value)
        moment = datetime.combine(day, time.max if end else time.min)
    if timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment


class TransitionRecordListView(LoginRequiredMixin, PermissionRequiredMixin, View):
    """
    Transition records, newest first, filtered by ``type`` and an inclusive
    ``start``/``end`` range.
    """
    permission_required = 'audit.view_transitionrecord'
    raise_exception = True
    paginate_by = 50

    def get(self, request, *args, **kwargs):
        transition_type = request.GET.get('type')
        if transition_type and transition_type not in TransitionRecord.TransitionType.values:
            return JsonResponse({'success': False, 'error': _('Unknown transition type.')}, status=400)

        try:
            start = parse_bound(request.GET.get('start'))
            end = parse_bound(request.GET.get('end'), end=True)
        except ValueError:
            return JsonResponse({'success': False, 'error': _('Invalid start or end date.')}, status=400)

        queryset = TransitionRecord.objects.filter(is_deleted=False).for_period(transition_type, start, end)
        paginator = Paginator(queryset, self.paginate_by)
        page = paginator.get_page(request.GET.get('page'))

        serializer_class = TransitionRecordSerializer if request.GET.get('results') else TransitionSummarySerializer
        return JsonResponse({
            'count': paginator.count,
            'page': page.number,
            'num_pages': paginator.num_pages,
            'records': serializer_class(page.object_list, many=True).data,
        })


class TransitionRecordDetailView(LoginRequiredMixin, PermissionRequiredMixin, View):
    """One transition record including per-student outcomes."""
    permission_required = 'audit.view_transitionrecord'
    raise_exception = True

    def get(self, request, pk, *args, **kwargs):
        record = get_object_or_404(TransitionRecord, pk=pk)
        return JsonResponse(TransitionRecordSerializer(record).data)
