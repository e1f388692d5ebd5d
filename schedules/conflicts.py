"""
Conflict checking for proposed schedule assignments.

Checks run at write time against the schedules already stored for the same
date. Per-resource daily schedule counts are small, so a plain query per
resource is used instead of an interval index.
"""
from collections import namedtuple

from fleet.models import RESOURCE_TYPES
from fleet.registry import resource_label
from .assignment import from_id
from .models import Schedule


ConflictProposal = namedtuple(
    'ConflictProposal',
    ['bus', 'driver', 'conductor', 'date', 'departure_time', 'arrival_time']
)


def windows_overlap(departure_a, arrival_a, departure_b, arrival_b):
    """Half-open [departure, arrival) overlap; back-to-back windows do not overlap."""
    return departure_a < arrival_b and departure_b < arrival_a


def build_proposal(date, departure_time, arrival_time, bus_id=None, driver_id=None, conductor_id=None):
    return ConflictProposal(
        bus=from_id(bus_id),
        driver=from_id(driver_id),
        conductor=from_id(conductor_id),
        date=date,
        departure_time=departure_time,
        arrival_time=arrival_time,
    )


def proposal_for(schedule):
    """Proposal describing a schedule's current assignment and window."""
    return ConflictProposal(
        bus=schedule.assignment('bus'),
        driver=schedule.assignment('driver'),
        conductor=schedule.assignment('conductor'),
        date=schedule.date,
        departure_time=schedule.departure_time,
        arrival_time=schedule.arrival_time,
    )


class ConflictResult:
    """Conflict descriptions grouped by resource type."""

    def __init__(self):
        self.by_resource = {resource_type: [] for resource_type in RESOURCE_TYPES}

    def add(self, resource_type, message):
        self.by_resource[resource_type].append(message)

    @property
    def messages(self):
        return [m for resource_type in RESOURCE_TYPES for m in self.by_resource[resource_type]]

    @property
    def has_conflicts(self):
        return any(self.by_resource.values())

    def __bool__(self):
        return self.has_conflicts

    def to_dict(self):
        return {
            'has_conflicts': self.has_conflicts,
            'conflicts': self.messages,
            'by_resource': {k: list(v) for k, v in self.by_resource.items()},
        }


def describe_conflict(resource, schedule):
    return (
        f"{resource_label(resource)} is already scheduled on {schedule.route} "
        f"from {schedule.departure_time:%H:%M} to {schedule.arrival_time:%H:%M}"
    )


def check_conflict(proposal, exclude_schedule_id=None):
    """
    Find schedules that already hold one of the proposed resources in an
    overlapping window on the same date.

    The check spans all depots: a bus or a person cannot be in two places at
    once. Cancelled schedules do not hold their resources.

    Args:
        proposal: ConflictProposal with Assigned/UNASSIGNED slots
        exclude_schedule_id: schedule being updated, ignored in the check

    Returns:
        ConflictResult, empty when the proposal is free of conflicts
    """
    result = ConflictResult()

    for resource_type in RESOURCE_TYPES:
        slot = getattr(proposal, resource_type)
        if not slot.is_assigned:
            continue

        queryset = Schedule.objects.filter(
            date=proposal.date,
            **{f'{resource_type}_id': slot.id}
        ).exclude(
            status=Schedule.STATUS_CANCELLED
        ).select_related('route', resource_type)

        if exclude_schedule_id is not None:
            queryset = queryset.exclude(pk=exclude_schedule_id)

        for existing in queryset.order_by('departure_time'):
            if windows_overlap(proposal.departure_time, proposal.arrival_time,
                               existing.departure_time, existing.arrival_time):
                result.add(resource_type, describe_conflict(getattr(existing, resource_type), existing))

    return result
