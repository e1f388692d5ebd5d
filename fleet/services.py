"""
Resource mutations that can invalidate existing schedules.

A bus, driver or conductor that is deleted or becomes unassignable is
detached from its live schedules in the same transaction. The resource row
is locked before its schedule rows, the same order schedule writes use.
"""
import logging
from contextlib import contextmanager

from django.db import OperationalError, transaction

from schedules.exceptions import ConcurrentUpdateError, ValidationError, is_lock_error
from schedules.flagging import flag_schedules_for_resource
from . import registry
from .models import BUS

logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = {
    'bus': ('status', 'model', 'mileage', 'last_service_date', 'next_service_due'),
    'driver': ('availability', 'name', 'contact_number', 'license_number', 'license_expiry'),
    'conductor': ('availability', 'name', 'contact_number'),
}


def _state_field(resource_type):
    return 'status' if resource_type == BUS else 'availability'


@contextmanager
def _resource_transaction(action):
    try:
        with transaction.atomic():
            yield
    except OperationalError as e:
        if not is_lock_error(e):
            raise
        logger.warning("Lock contention while %s: %s", action, e)
        raise ConcurrentUpdateError()


def update_resource(depot, resource_type, resource_id, changes, today=None):
    """
    Update a depot resource. When the resource ends up unassignable, its live
    schedules are flagged for reassignment.

    Returns:
        (resource, flagged_schedules)
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS[resource_type])
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(field, f"'{field}' cannot be updated.")

    state_field = _state_field(resource_type)
    with _resource_transaction(f"updating {resource_type} {resource_id}"):
        resource = registry.get_resource(resource_type, resource_id, depot=depot, for_update=True)
        previous_state = getattr(resource, state_field)

        for field, value in changes.items():
            setattr(resource, field, value)
        resource.save()

        flagged = []
        if not registry.is_assignable(resource):
            flagged = flag_schedules_for_resource(resource_type, resource.pk, today)

    if previous_state != getattr(resource, state_field):
        logger.info("%s %s changed %s from %s to %s", resource_type.capitalize(), resource.pk,
                    state_field, previous_state, getattr(resource, state_field))
    return resource, flagged


def delete_resource(depot, resource_type, resource_id, today=None):
    """
    Delete a depot resource after flagging the live schedules that used it.

    Returns the flagged schedules.
    """
    with _resource_transaction(f"deleting {resource_type} {resource_id}"):
        resource = registry.get_resource(resource_type, resource_id, depot=depot, for_update=True)
        flagged = flag_schedules_for_resource(resource_type, resource.pk, today)
        resource.delete()

    logger.info("Deleted %s %s; %d schedule(s) flagged", resource_type, resource_id, len(flagged))
    return flagged
