"""
Serializers for the pickup scheduling API.
"""

from rest_framework import serializers
from django.utils import timezone

from .models import PickupRequest, ServiceDefinition
from .recurrence import RecurrenceRule
from . import services


class ServiceDefinitionReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying ServiceDefinition (output)."""

    weekdays = serializers.ListField(source='allowed_weekdays', read_only=True)
    next_service_date = serializers.SerializerMethodField()

    class Meta:
        model = ServiceDefinition
        fields = [
            'id',
            'name',
            'time',
            'category',
            'frequency',
            'ordinal',
            'weekdays',
            'start_date',
            'end_date',
            'is_active',
            'next_service_date',
            'created_at',
            'updated_at',
        ]

    def get_next_service_date(self, obj):
        if not obj.is_active:
            return None
        return services.next_service_date(obj, timezone.localdate())


class ServiceDefinitionCreateSerializer(serializers.Serializer):
    """Serializer for creating a service with its weekdays."""

    name = serializers.CharField(max_length=200)
    time = serializers.TimeField()
    weekdays = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6),
        min_length=1
    )
    category = serializers.ChoiceField(
        choices=ServiceDefinition.CATEGORY_CHOICES,
        default='RECURRING'
    )
    frequency = serializers.ChoiceField(
        choices=ServiceDefinition.FREQUENCY_CHOICES,
        default='WEEKLY'
    )
    ordinal = serializers.ChoiceField(
        choices=ServiceDefinition.ORDINAL_CHOICES,
        default='NEXT'
    )
    start_date = serializers.DateField(required=False, allow_null=True)
    end_date = serializers.DateField(required=False, allow_null=True)
    is_active = serializers.BooleanField(default=True)

    def validate(self, data):
        """Validate service data."""
        start_date = data.get('start_date')
        end_date = data.get('end_date')

        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({
                'end_date': 'End date cannot be before start date.'
            })

        try:
            RecurrenceRule.from_choices(data['frequency'], data['ordinal'], data['weekdays'])
        except ValueError as exc:
            raise serializers.ValidationError({'frequency': str(exc)})

        return data


class ServiceDefinitionWriteSerializer(serializers.Serializer):
    """Serializer for updating a service (input)."""

    name = serializers.CharField(max_length=200, required=False)
    time = serializers.TimeField(required=False)
    weekdays = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6),
        min_length=1,
        required=False
    )
    category = serializers.ChoiceField(choices=ServiceDefinition.CATEGORY_CHOICES, required=False)
    frequency = serializers.ChoiceField(choices=ServiceDefinition.FREQUENCY_CHOICES, required=False)
    ordinal = serializers.ChoiceField(choices=ServiceDefinition.ORDINAL_CHOICES, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)


class OccurrencePreviewQuerySerializer(serializers.Serializer):
    """Serializer for occurrence preview query parameters."""

    start = serializers.DateField(required=False)
    count = serializers.IntegerField(min_value=1, max_value=100, default=5)


class PickupRequestReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying PickupRequest (output)."""

    service_name = serializers.CharField(source='service.name', read_only=True)
    day_of_week = serializers.IntegerField(source='service_weekday.day_of_week', read_only=True)
    is_recurring = serializers.BooleanField(read_only=True)

    class Meta:
        model = PickupRequest
        fields = [
            'id',
            'user',
            'driver',
            'service',
            'service_name',
            'day_of_week',
            'address',
            'series',
            'request_date',
            'status',
            'is_pick_up',
            'is_drop_off',
            'is_group_ride',
            'number_of_group',
            'notes',
            'is_recurring',
            'created_at',
            'updated_at',
        ]


class PickupRequestWriteSerializer(serializers.Serializer):
    """Serializer for creating or updating a pickup request (input)."""

    service_id = serializers.IntegerField()
    day_of_week = serializers.IntegerField(min_value=0, max_value=6)
    address_id = serializers.IntegerField()
    request_date = serializers.DateField()
    user_id = serializers.IntegerField(required=False, allow_null=True)
    is_recurring = serializers.BooleanField(default=False)
    end_date = serializers.DateField(required=False, allow_null=True)
    is_pick_up = serializers.BooleanField(default=True)
    is_drop_off = serializers.BooleanField(default=False)
    is_group_ride = serializers.BooleanField(default=False)
    number_of_group = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    update_series = serializers.BooleanField(default=False)

    def validate(self, data):
        """A pickup request must be a pick-up, a drop-off, or both."""
        if not data.get('is_pick_up') and not data.get('is_drop_off'):
            raise serializers.ValidationError(
                "Select pick-up, drop-off, or both."
            )
        return data


class CancelRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class RequestStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['PENDING', 'ACCEPTED', 'COMPLETED'])
