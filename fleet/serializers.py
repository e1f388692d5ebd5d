"""
Serializers for fleet resources and maintenance records.
"""
from django.db import transaction
from rest_framework import serializers

from .models import Route, Bus, Driver, Conductor, MaintenanceRecord


class RouteSerializer(serializers.ModelSerializer):
    """Serializer for Route model."""

    class Meta:
        model = Route
        fields = ['id', 'route_name', 'start_location', 'end_location', 'distance_km', 'estimated_duration']
        read_only_fields = fields


class BusSerializer(serializers.ModelSerializer):
    """Serializer for Bus model."""

    class Meta:
        model = Bus
        fields = [
            'id', 'number', 'model', 'status', 'mileage',
            'last_service_date', 'next_service_due', 'depot'
        ]
        read_only_fields = ['id', 'number', 'depot']


class DriverSerializer(serializers.ModelSerializer):
    """Serializer for Driver model."""

    class Meta:
        model = Driver
        fields = [
            'id', 'name', 'license_number', 'license_expiry',
            'contact_number', 'availability', 'depot'
        ]
        read_only_fields = ['id', 'depot']


class ConductorSerializer(serializers.ModelSerializer):
    """Serializer for Conductor model."""

    class Meta:
        model = Conductor
        fields = ['id', 'name', 'contact_number', 'availability', 'depot']
        read_only_fields = ['id', 'depot']


RESOURCE_SERIALIZERS = {
    'bus': BusSerializer,
    'driver': DriverSerializer,
    'conductor': ConductorSerializer,
}


class BusSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Bus
        fields = ['id', 'number', 'model', 'status']


class MaintenanceRecordSerializer(serializers.ModelSerializer):
    """Serializer for viewing and writing maintenance records."""
    bus = BusSummarySerializer(read_only=True)
    bus_id = serializers.IntegerField(write_only=True)

    class Meta:
        model = MaintenanceRecord
        fields = [
            'id', 'bus', 'bus_id', 'type', 'status', 'description',
            'scheduled_date', 'completed_date', 'cost', 'depot'
        ]
        read_only_fields = ['id', 'depot']

    def validate_bus_id(self, value):
        """Validate that the bus belongs to the operator's depot."""
        try:
            return Bus.objects.get(pk=value, depot=self.context['depot'])
        except Bus.DoesNotExist:
            raise serializers.ValidationError("Bus not found in this depot.")

    def validate(self, attrs):
        """Validate completion data."""
        instance = self.instance
        scheduled_date = attrs.get('scheduled_date', instance.scheduled_date if instance else None)
        completed_date = attrs.get('completed_date', instance.completed_date if instance else None)
        status = attrs.get('status', instance.status if instance else 'scheduled')

        if completed_date and scheduled_date and completed_date < scheduled_date:
            raise serializers.ValidationError({
                'completed_date': "Completed date cannot be before the scheduled date."
            })
        if status == 'completed' and not completed_date:
            raise serializers.ValidationError({
                'completed_date': "A completed record needs a completed date."
            })
        return attrs

    def create(self, validated_data):
        validated_data['bus'] = validated_data.pop('bus_id')
        validated_data['depot'] = self.context['depot']
        with transaction.atomic():
            record = MaintenanceRecord.objects.create(**validated_data)
            self._record_service(record)
        return record

    def update(self, instance, validated_data):
        if 'bus_id' in validated_data:
            validated_data['bus'] = validated_data.pop('bus_id')
        with transaction.atomic():
            record = super().update(instance, validated_data)
            self._record_service(record)
        return record

    def _record_service(self, record):
        """A completed record becomes the bus's latest service date."""
        if record.status != 'completed' or not record.completed_date:
            return
        bus = record.bus
        if bus.last_service_date is None or bus.last_service_date < record.completed_date:
            bus.last_service_date = record.completed_date
            bus.save(update_fields=['last_service_date'])


class MaintenanceStatusSerializer(serializers.Serializer):
    """Maintenance-due evaluation of a bus (read only)."""
    bus_id = serializers.IntegerField()
    bus_number = serializers.CharField()
    status = serializers.CharField()
    last_service_date = serializers.DateField(allow_null=True)
    next_service_due = serializers.DateField(allow_null=True)
    is_overdue = serializers.BooleanField()
    is_due_soon = serializers.BooleanField()
    days_until_due = serializers.IntegerField(allow_null=True)
    days_since_due = serializers.IntegerField(allow_null=True)
