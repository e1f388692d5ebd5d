"""
Fleet resource models: routes, buses, drivers, conductors and maintenance records.
"""
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from core.models import Depot


BUS = 'bus'
DRIVER = 'driver'
CONDUCTOR = 'conductor'
RESOURCE_TYPES = (BUS, DRIVER, CONDUCTOR)


class Route(models.Model):
    """
    Route reference data (immutable, admin owned).
    Maps to the 'routes' table.
    """
    route_name = models.CharField(max_length=100, unique=True)
    start_location = models.CharField(max_length=255)
    end_location = models.CharField(max_length=255)
    distance_km = models.DecimalField(max_digits=7, decimal_places=2, validators=[MinValueValidator(0)])
    estimated_duration = models.PositiveIntegerField(help_text='Estimated duration in minutes')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'routes'
        ordering = ['route_name']

    def __str__(self):
        return f"Route {self.route_name}"


class Bus(models.Model):
    """
    A depot's bus. Only active buses can be put on a schedule.
    Maps to the 'buses' table.
    """
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_MAINTENANCE = 'maintenance'
    STATUS_BREAKDOWN = 'breakdown'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_INACTIVE, 'Inactive'),
        (STATUS_MAINTENANCE, 'Maintenance'),
        (STATUS_BREAKDOWN, 'Breakdown'),
    ]

    number = models.CharField(max_length=20, unique=True, help_text='Registration number')
    model = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    mileage = models.PositiveIntegerField(default=0)
    last_service_date = models.DateField(null=True, blank=True)
    next_service_due = models.DateField(null=True, blank=True)
    depot = models.ForeignKey(Depot, on_delete=models.CASCADE, related_name='buses')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'buses'
        ordering = ['number']
        indexes = [
            models.Index(fields=['depot', 'status'], name='buses_depot_status_idx'),
        ]

    def __str__(self):
        return f"Bus {self.number}"

    @property
    def is_assignable(self):
        return self.status == self.STATUS_ACTIVE


class Staff(models.Model):
    """Shared shape of drivers and conductors."""
    AVAILABLE = 'available'
    ON_DUTY = 'on_duty'
    OFF = 'off'
    LEAVE = 'leave'
    AVAILABILITY_CHOICES = [
        (AVAILABLE, 'Available'),
        (ON_DUTY, 'On duty'),
        (OFF, 'Off'),
        (LEAVE, 'Leave'),
    ]

    name = models.CharField(max_length=255)
    contact_number = models.CharField(max_length=20, blank=True)
    availability = models.CharField(max_length=10, choices=AVAILABILITY_CHOICES, default=AVAILABLE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def is_assignable(self):
        return self.availability == self.AVAILABLE


class Driver(Staff):
    license_number = models.CharField(max_length=30, unique=True)
    license_expiry = models.DateField(null=True, blank=True)
    depot = models.ForeignKey(Depot, on_delete=models.CASCADE, related_name='drivers')

    class Meta(Staff.Meta):
        db_table = 'drivers'

    def __str__(self):
        return f"Driver {self.name}"


class Conductor(Staff):
    depot = models.ForeignKey(Depot, on_delete=models.CASCADE, related_name='conductors')

    class Meta(Staff.Meta):
        db_table = 'conductors'

    def __str__(self):
        return f"Conductor {self.name}"


RESOURCE_MODELS = {
    BUS: Bus,
    DRIVER: Driver,
    CONDUCTOR: Conductor,
}


class MaintenanceRecord(models.Model):
    """
    Service history of a single bus.
    Maps to the 'maintenance_records' table.
    """
    TYPE_CHOICES = [('routine', 'Routine'), ('repair', 'Repair'), ('breakdown', 'Breakdown')]
    STATUS_CHOICES = [('scheduled', 'Scheduled'), ('in_progress', 'In progress'), ('completed', 'Completed')]

    bus = models.ForeignKey(Bus, on_delete=models.CASCADE, related_name='maintenance_records')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='routine')
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='scheduled')
    description = models.TextField()
    scheduled_date = models.DateField()
    completed_date = models.DateField(null=True, blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True,
                               validators=[MinValueValidator(0)])
    depot = models.ForeignKey(Depot, on_delete=models.CASCADE, related_name='maintenance_records')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'maintenance_records'
        ordering = ['-scheduled_date']

    def __str__(self):
        return f"{self.get_type_display()} for {self.bus} on {self.scheduled_date}"

    def clean(self):
        if self.completed_date and self.completed_date < self.scheduled_date:
            raise ValidationError({'completed_date': 'Completed date cannot be before the scheduled date.'})
