from rest_framework import serializers
from .models import TransitionRecord


class TransitionRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = TransitionRecord
        fields = [
            'id', 'type', 'program_type', 'previous_value', 'new_value',
            'triggered_by', 'actor', 'timestamp', 'students_processed',
            'succeeded', 'failed', 'aborted', 'results',
        ]
        read_only_fields = fields


class TransitionSummarySerializer(serializers.ModelSerializer):
    """Record without per-student results, for list pages."""
    class Meta:
        model = TransitionRecord
        fields = [
            'id', 'type', 'program_type', 'previous_value', 'new_value',
            'triggered_by', 'actor', 'timestamp', 'students_processed',
            'succeeded', 'failed', 'aborted',
        ]
        read_only_fields = fields
