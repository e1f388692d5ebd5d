"""Schedule model."""
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from core.models import Depot
from fleet.models import Route, Bus, Driver, Conductor
from .assignment import from_id


class Schedule(models.Model):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # Allowed status moves; completed and cancelled are terminal.
    TRANSITIONS = {
        STATUS_SCHEDULED: {STATUS_IN_PROGRESS, STATUS_CANCELLED},
        STATUS_IN_PROGRESS: {STATUS_COMPLETED, STATUS_CANCELLED},
        STATUS_COMPLETED: set(),
        STATUS_CANCELLED: set(),
    }
    ACTIVE_STATUSES = (STATUS_SCHEDULED, STATUS_IN_PROGRESS)

    route = models.ForeignKey(Route, on_delete=models.PROTECT, related_name='schedules')
    bus = models.ForeignKey(Bus, on_delete=models.SET_NULL, null=True, blank=True, related_name='schedules')
    driver = models.ForeignKey(Driver, on_delete=models.SET_NULL, null=True, blank=True, related_name='schedules')
    conductor = models.ForeignKey(Conductor, on_delete=models.SET_NULL, null=True, blank=True, related_name='schedules')
    date = models.DateField()
    departure_time = models.TimeField()
    arrival_time = models.TimeField()
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)
    trips_total = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    trips_done = models.PositiveSmallIntegerField(default=0)
    flagged_for_reassignment = models.BooleanField(default=False)
    depot = models.ForeignKey(Depot, on_delete=models.CASCADE, related_name='schedules')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'schedules'
        ordering = ['date', 'departure_time']
        indexes = [
            models.Index(fields=['date', 'bus'], name='schedules_date_bus_idx'),
            models.Index(fields=['date', 'driver'], name='schedules_date_driver_idx'),
            models.Index(fields=['date', 'conductor'], name='schedules_date_conductor_idx'),
            models.Index(fields=['depot', 'flagged_for_reassignment'], name='schedules_depot_flagged_idx'),
        ]
        constraints = [
            # Storage-level guard against double booking: no two live schedules
            # may start the same resource at the same minute of the same day.
            models.UniqueConstraint(
                fields=['bus', 'date', 'departure_time'],
                condition=~Q(status='cancelled'),
                name='unique_live_bus_departure',
            ),
            models.UniqueConstraint(
                fields=['driver', 'date', 'departure_time'],
                condition=~Q(status='cancelled'),
                name='unique_live_driver_departure',
            ),
            models.UniqueConstraint(
                fields=['conductor', 'date', 'departure_time'],
                condition=~Q(status='cancelled'),
                name='unique_live_conductor_departure',
            ),
            models.CheckConstraint(
                condition=Q(trips_done__lte=F('trips_total')),
                name='trips_done_within_total',
            ),
            models.CheckConstraint(
                condition=Q(arrival_time__gt=F('departure_time')),
                name='arrival_after_departure',
            ),
        ]

    def __str__(self):
        return f"{self.route} on {self.date} {self.departure_time:%H:%M}-{self.arrival_time:%H:%M}"

    @property
    def trips_remaining(self):
        return max(self.trips_total - self.trips_done, 0)

    @property
    def is_terminal(self):
        return not self.TRANSITIONS[self.status]

    def assignment(self, resource_type):
        """Assigned(id) or UNASSIGNED for 'bus', 'driver' or 'conductor'."""
        return from_id(getattr(self, f'{resource_type}_id'))

    def can_transition_to(self, new_status):
        return new_status == self.status or new_status in self.TRANSITIONS[self.status]
