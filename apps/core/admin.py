# apps/core/admin.py

from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from .models import IdentifierCounter


@admin.register(IdentifierCounter)
class IdentifierCounterAdmin(admin.ModelAdmin):
    """
    Admin interface for IdentifierCounter model.

    Counters are owned by the allocator; use the reconcile_identifiers
    command to correct one.
    """
    list_display = ('key', 'prefix', 'year_key', 'last_number', 'last_updated')
    list_filter = ('prefix', 'year_key')
    search_fields = ('prefix', 'year_key')
    readonly_fields = ('prefix', 'year_key', 'last_number', 'created_at', 'last_updated')

    fieldsets = (
        (_('Identifier Space'), {
            'fields': ('prefix', 'year_key', 'last_number')
        }),
        (_('System Metadata'), {
            'fields': ('created_at', 'last_updated'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        """Deleting a counter would let numbers be reissued."""
        return False
