"""
Flagging of schedules whose resource became unavailable.

Runs inside the transaction that deletes or deactivates the resource, so no
stale assignment is ever visible as valid.
"""
import logging

from django.utils import timezone

from .models import Schedule

logger = logging.getLogger(__name__)


def affected_schedules(resource_type, resource_id, today=None):
    """
    Live schedules still relying on the resource: scheduled or in progress,
    dated today or later. Past and finished schedules keep their history.
    """
    today = today or timezone.localdate()
    return Schedule.objects.filter(
        **{f'{resource_type}_id': resource_id},
        status__in=Schedule.ACTIVE_STATUSES,
        date__gte=today,
    )


def flag_schedules_for_resource(resource_type, resource_id, today=None):
    """
    Detach the resource from affected schedules and flag them for reassignment.

    Must be called inside a transaction, with the resource row already
    locked. Schedule rows are locked in primary key order.
    Returns the flagged schedules.
    """
    field = f'{resource_type}_id'
    schedules = list(affected_schedules(resource_type, resource_id, today).order_by('pk').select_for_update())

    for schedule in schedules:
        setattr(schedule, field, None)
        schedule.flagged_for_reassignment = True
        schedule.save(update_fields=[field, 'flagged_for_reassignment', 'updated_at'])

    if schedules:
        logger.info(
            "Flagged %d schedule(s) for reassignment after %s %s became unavailable: %s",
            len(schedules), resource_type, resource_id, [s.pk for s in schedules]
        )
    return schedules


def list_flagged_schedules(depot):
    return Schedule.objects.filter(
        depot=depot,
        flagged_for_reassignment=True,
    ).select_related('route', 'bus', 'driver', 'conductor').order_by('date', 'departure_time')
