# apps/academics/urls.py

from django.urls import path
from . import views

app_name = 'academics'

urlpatterns = [
    # Period registry
    path('period/current/', views.CurrentPeriodView.as_view(), name='current_period'),

    # Transitions
    path('transitions/semester/', views.SemesterTransitionView.as_view(), name='semester_transition'),
    path('transitions/academic-year/', views.AcademicYearTransitionView.as_view(), name='academic_year_transition'),

    # Maintenance
    path('maintenance/drift/', views.DriftCheckView.as_view(), name='drift_check'),
    path('maintenance/reconcile/', views.ReconcileIdentifiersView.as_view(), name='reconcile_identifiers'),
    path('progression/retry/', views.ProgressionRetryView.as_view(), name='progression_retry'),
]
