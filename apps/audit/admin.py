from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from .models import TransitionRecord


@admin.register(TransitionRecord)
class TransitionRecordAdmin(admin.ModelAdmin):
    """
    Admin interface for TransitionRecord model. Records are append-only.
    """
    list_display = ('type', 'program_type', 'previous_value', 'new_value', 'triggered_by',
                    'actor', 'students_processed', 'succeeded', 'failed', 'aborted', 'timestamp')
    list_filter = ('type', 'triggered_by', 'program_type', 'aborted', 'timestamp')
    search_fields = ('previous_value', 'new_value', 'actor')
    readonly_fields = ('type', 'program_type', 'previous_value', 'new_value', 'triggered_by', 'actor',
                       'timestamp', 'students_processed', 'succeeded', 'failed', 'aborted', 'results',
                       'created_at', 'updated_at')
    date_hierarchy = 'timestamp'

    fieldsets = (
        (_('Transition'), {
            'fields': ('type', 'program_type', 'previous_value', 'new_value', 'timestamp')
        }),
        (_('Trigger'), {
            'fields': ('triggered_by', 'actor')
        }),
        (_('Progression'), {
            'fields': ('students_processed', 'succeeded', 'failed', 'aborted', 'results'),
            'classes': ('collapse',)
        }),
        (_('System Metadata'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        """Records are written by the transition engine only."""
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
