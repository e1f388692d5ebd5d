"""
Maintenance-due evaluation for buses.

Advisory only: an overdue bus stays assignable until its status is set to
maintenance or breakdown.
"""
from collections import namedtuple

from django.conf import settings
from django.utils import timezone

from .models import Bus


MaintenanceDue = namedtuple(
    'MaintenanceDue',
    ['is_overdue', 'is_due_soon', 'days_until_due', 'days_since_due']
)


def due_soon_window():
    return getattr(settings, 'MAINTENANCE_DUE_SOON_DAYS', 30)


def evaluate_maintenance(next_service_due, today=None, window_days=None):
    """
    Evaluate a bus's next service date against today.

    Returns None when no service date is recorded, otherwise a MaintenanceDue
    where exactly one of days_until_due / days_since_due is set.
    """
    if next_service_due is None:
        return None
    today = today or timezone.localdate()
    window_days = due_soon_window() if window_days is None else window_days

    delta = (next_service_due - today).days
    if delta < 0:
        return MaintenanceDue(is_overdue=True, is_due_soon=False, days_until_due=None, days_since_due=-delta)
    return MaintenanceDue(
        is_overdue=False,
        is_due_soon=delta <= window_days,
        days_until_due=delta,
        days_since_due=None,
    )


def bus_maintenance_status(bus, today=None):
    """Maintenance status of one bus as returned by the API."""
    due = evaluate_maintenance(bus.next_service_due, today)
    return {
        'bus_id': bus.id,
        'bus_number': bus.number,
        'status': bus.status,
        'last_service_date': bus.last_service_date,
        'next_service_due': bus.next_service_due,
        'is_overdue': bool(due and due.is_overdue),
        'is_due_soon': bool(due and due.is_due_soon),
        'days_until_due': due.days_until_due if due else None,
        'days_since_due': due.days_since_due if due else None,
    }


def maintenance_due_alerts(depot, today=None):
    """Alerts for the depot's buses that are overdue or due soon, most urgent first."""
    today = today or timezone.localdate()
    alerts = []
    buses = Bus.objects.filter(depot=depot, next_service_due__isnull=False)
    for bus in buses:
        status = bus_maintenance_status(bus, today)
        if status['is_overdue'] or status['is_due_soon']:
            alerts.append(status)
    alerts.sort(key=lambda a: a['next_service_due'])
    return alerts


def maintenance_warnings(bus, today=None):
    """Advisory messages attached to a schedule commit for this bus."""
    due = evaluate_maintenance(bus.next_service_due, today)
    if due is None:
        return []
    if due.is_overdue:
        return [f"Bus {bus.number} is overdue for service by {due.days_since_due} day(s)"]
    if due.is_due_soon:
        return [f"Bus {bus.number} is due for service in {due.days_until_due} day(s)"]
    return []
