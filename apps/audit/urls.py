# apps/audit/urls.py
from django.urls import path
from . import views

app_name = 'audit'

urlpatterns = [
    # Transition record URLs
    path('transitions/', views.TransitionRecordListView.as_view(), name='transition_list'),
    path('transitions/<uuid:pk>/', views.TransitionRecordDetailView.as_view(), name='transition_detail'),
]
