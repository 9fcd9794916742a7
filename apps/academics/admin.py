# apps/academics/admin.py

from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from .models import (
    AcademicYear, AcademicSemester, Program, Student, PeriodRegistry,
    LegacyAcademicSetting, CourseRegistration
)


class AcademicSemesterInline(admin.TabularInline):
    """
    Inline admin for the semesters and trimesters of an academic year.
    """
    model = AcademicSemester
    extra = 0
    fields = ('program_type', 'number', 'start_date', 'end_date', 'status')


@admin.register(AcademicYear)
class AcademicYearAdmin(admin.ModelAdmin):
    """
    Admin interface for AcademicYear model.
    """
    list_display = ('name', 'year_key', 'start_date', 'end_date', 'status', 'admission_status')
    list_filter = ('status', 'admission_status')
    search_fields = ('name', 'year_key')
    readonly_fields = ('status_changed_at', 'created_at', 'updated_at')
    date_hierarchy = 'start_date'

    fieldsets = (
        (_('Academic Year'), {
            'fields': ('name', 'year_key', 'start_date', 'end_date')
        }),
        (_('Status'), {
            'fields': ('status', 'status_changed_at', 'admission_status')
        }),
        (_('System Metadata'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    inlines = [AcademicSemesterInline]


@admin.register(Program)
class ProgramAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'duration_years', 'terminal_level', 'status')
    list_filter = ('status',)
    search_fields = ('code', 'name')


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    """
    Admin interface for Student model.
    """
    list_display = ('registration_number', 'first_name', 'last_name', 'level', 'program_type',
                    'academic_year_enrolled', 'status', 'progression_complete')
    list_filter = ('status', 'program_type', 'level', 'progression_complete', 'program')
    search_fields = ('registration_number', 'first_name', 'last_name', 'email')
    readonly_fields = ('registration_number', 'last_processed_target_year', 'last_progression_date',
                       'created_at', 'updated_at')
    raw_id_fields = ('academic_year_enrolled',)

    fieldsets = (
        (_('Personal Information'), {
            'fields': ('registration_number', 'admission_year', 'first_name', 'last_name', 'email')
        }),
        (_('Academic Information'), {
            'fields': ('program', 'program_type', 'level', 'academic_year_enrolled',
                       'current_period_index', 'status')
        }),
        (_('Progression'), {
            'fields': ('progression_complete', 'last_processed_target_year', 'last_progression_date'),
            'classes': ('collapse',)
        }),
        (_('System Metadata'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(PeriodRegistry)
class PeriodRegistryAdmin(admin.ModelAdmin):
    """
    Read-only view of the current period. Changes go through the transition
    engine or the run_period_transition command.
    """
    list_display = ('current_academic_year_display', 'current_semester', 'current_trimester',
                    'last_updated', 'updated_by')
    readonly_fields = ('key', 'current_academic_year', 'current_academic_year_display',
                       'current_semester', 'current_trimester', 'academic_year_entered_on',
                       'semester_entered_on', 'trimester_entered_on', 'last_updated', 'updated_by')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(LegacyAcademicSetting)
class LegacyAcademicSettingAdmin(admin.ModelAdmin):
    list_display = ('key', 'current_year', 'updated_at', 'updated_by')
    readonly_fields = ('key', 'current_year', 'updated_at', 'updated_by')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CourseRegistration)
class CourseRegistrationAdmin(admin.ModelAdmin):
    list_display = ('student', 'academic_year', 'semester', 'registered_at')
    list_filter = ('academic_year', 'semester')
    search_fields = ('student__registration_number', 'student__first_name', 'student__last_name')
    raw_id_fields = ('student',)
