"""
Serializers for schedule management.

Input serializers only check the shape of a request; schedule rules
(availability, conflicts, transitions) are enforced in schedules.services.
"""
from rest_framework import serializers

from fleet.models import Driver, Conductor
from fleet.serializers import RouteSerializer, BusSummarySerializer
from .models import Schedule

# Minute resolution; clients send HH:MM
TIME_INPUT_FORMATS = ['%H:%M']


class DriverSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Driver
        fields = ['id', 'name', 'license_number', 'availability']


class ConductorSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Conductor
        fields = ['id', 'name', 'availability']


class ScheduleSerializer(serializers.ModelSerializer):
    """Serializer for viewing schedules."""
    route = RouteSerializer(read_only=True)
    bus = BusSummarySerializer(read_only=True, allow_null=True)
    driver = DriverSummarySerializer(read_only=True, allow_null=True)
    conductor = ConductorSummarySerializer(read_only=True, allow_null=True)
    departure_time = serializers.TimeField(format='%H:%M', read_only=True)
    arrival_time = serializers.TimeField(format='%H:%M', read_only=True)
    trips_remaining = serializers.IntegerField(read_only=True)

    class Meta:
        model = Schedule
        fields = [
            'id', 'route', 'bus', 'driver', 'conductor', 'date',
            'departure_time', 'arrival_time', 'status',
            'trips_total', 'trips_done', 'trips_remaining',
            'flagged_for_reassignment', 'depot', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ScheduleCreateSerializer(serializers.Serializer):
    """Serializer for creating a schedule."""
    route_id = serializers.IntegerField()
    bus_id = serializers.IntegerField()
    driver_id = serializers.IntegerField()
    conductor_id = serializers.IntegerField()
    date = serializers.DateField()
    departure_time = serializers.TimeField(input_formats=TIME_INPUT_FORMATS)
    arrival_time = serializers.TimeField(input_formats=TIME_INPUT_FORMATS)
    trips_total = serializers.IntegerField(min_value=1, required=False)


class ScheduleUpdateSerializer(serializers.Serializer):
    """Partial update of a schedule; only the fields sent are changed."""
    route_id = serializers.IntegerField(required=False)
    bus_id = serializers.IntegerField(required=False, allow_null=True)
    driver_id = serializers.IntegerField(required=False, allow_null=True)
    conductor_id = serializers.IntegerField(required=False, allow_null=True)
    date = serializers.DateField(required=False)
    departure_time = serializers.TimeField(input_formats=TIME_INPUT_FORMATS, required=False)
    arrival_time = serializers.TimeField(input_formats=TIME_INPUT_FORMATS, required=False)
    status = serializers.ChoiceField(choices=Schedule.STATUS_CHOICES, required=False)
    trips_total = serializers.IntegerField(min_value=1, required=False)
    trips_done = serializers.IntegerField(min_value=0, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No updatable fields were provided.")
        return attrs


class ReassignSerializer(serializers.Serializer):
    """New resources for a flagged schedule; omitted resources are kept."""
    bus_id = serializers.IntegerField(required=False, allow_null=True)
    driver_id = serializers.IntegerField(required=False, allow_null=True)
    conductor_id = serializers.IntegerField(required=False, allow_null=True)


class ConflictCheckSerializer(serializers.Serializer):
    """Proposal for a dry-run conflict check."""
    date = serializers.DateField()
    departure_time = serializers.TimeField(input_formats=TIME_INPUT_FORMATS)
    arrival_time = serializers.TimeField(input_formats=TIME_INPUT_FORMATS)
    bus_id = serializers.IntegerField(required=False, allow_null=True)
    driver_id = serializers.IntegerField(required=False, allow_null=True)
    conductor_id = serializers.IntegerField(required=False, allow_null=True)
    exclude_schedule_id = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        """Validate the time window."""
        if attrs['arrival_time'] <= attrs['departure_time']:
            raise serializers.ValidationError({
                'arrival_time': "Arrival time must be after departure time."
            })
        return attrs


class ConflictResultSerializer(serializers.Serializer):
    has_conflicts = serializers.BooleanField()
    conflicts = serializers.ListField(child=serializers.CharField())
    by_resource = serializers.DictField(child=serializers.ListField(child=serializers.CharField()))
