"""
Schedule lifecycle: create, update, reassign, trip progress and delete.

Every write runs inside one transaction that locks the schedule row and the
rows of the resources being committed, so the availability check, the
conflict check and the save form a single critical section.

Lock order, shared with fleet.services and schedules.flagging: resource rows
first (bus, driver, conductor), then schedule rows.
"""
import logging
from contextlib import contextmanager

from django.db import IntegrityError, OperationalError, transaction

from fleet import registry
from fleet.maintenance import maintenance_warnings
from fleet.models import Route, RESOURCE_TYPES
from .conflicts import check_conflict, proposal_for
from .exceptions import (
    ConcurrentUpdateError,
    ConflictError,
    NotFoundError,
    ResourceUnavailableError,
    ValidationError,
    is_lock_error,
)
from .models import Schedule

logger = logging.getLogger(__name__)


RESOURCE_FIELDS = tuple(f'{resource_type}_id' for resource_type in RESOURCE_TYPES)
WINDOW_FIELDS = ('date', 'departure_time', 'arrival_time')
PROGRESS_FIELDS = ('status', 'trips_total', 'trips_done')
UPDATABLE_FIELDS = ('route_id',) + RESOURCE_FIELDS + WINDOW_FIELDS + PROGRESS_FIELDS
ASSIGNMENT_FIELDS = ('route_id',) + RESOURCE_FIELDS + WINDOW_FIELDS

CONCURRENT_BOOKING_MESSAGE = (
    "One of the selected resources was booked for the same departure by another "
    "request. Refresh the schedule list and try again."
)


@contextmanager
def write_transaction(action):
    """
    Run a schedule write atomically and translate lost races into
    scheduling errors: unique constraint hits become a ConflictError,
    lock timeouts and deadlocks a ConcurrentUpdateError.
    """
    try:
        with transaction.atomic():
            yield
    except IntegrityError:
        logger.warning("Concurrent booking detected while %s", action)
        raise ConflictError([CONCURRENT_BOOKING_MESSAGE])
    except OperationalError as e:
        if not is_lock_error(e):
            raise
        logger.warning("Lock contention while %s: %s", action, e)
        raise ConcurrentUpdateError()


# =============================================================================
# Lookups
# =============================================================================

def get_schedule(depot, schedule_id, for_update=False):
    queryset = Schedule.objects.select_related('route', 'bus', 'driver', 'conductor')
    if for_update:
        queryset = Schedule.objects.select_for_update()
    try:
        return queryset.get(pk=schedule_id, depot=depot)
    except Schedule.DoesNotExist:
        raise NotFoundError('schedule', schedule_id)


def list_schedules(depot, date=None, status=None, flagged=None):
    queryset = Schedule.objects.filter(depot=depot).select_related('route', 'bus', 'driver', 'conductor')
    if date is not None:
        queryset = queryset.filter(date=date)
    if status is not None:
        queryset = queryset.filter(status=status)
    if flagged is not None:
        queryset = queryset.filter(flagged_for_reassignment=flagged)
    return queryset.order_by('date', 'departure_time')


def _get_route(route_id):
    try:
        return Route.objects.get(pk=route_id)
    except Route.DoesNotExist:
        raise NotFoundError('route', route_id)


# =============================================================================
# Validation helpers
# =============================================================================

def _require(data, field):
    value = data.get(field)
    if value is None or value == '':
        raise ValidationError(field, 'This field is required.')
    return value


def _validate_window(departure_time, arrival_time):
    if arrival_time <= departure_time:
        raise ValidationError('arrival_time', 'Arrival time must be after departure time.')


def _validate_trip_counts(trips_total, trips_done):
    if trips_total < 1:
        raise ValidationError('trips_total', 'A schedule needs at least one trip.')
    if trips_done < 0:
        raise ValidationError('trips_done', 'Completed trips cannot be negative.')
    if trips_done > trips_total:
        raise ValidationError(
            'trips_done',
            f"Completed trips ({trips_done}) cannot exceed total trips ({trips_total})."
        )


def _validate_transition(schedule, new_status):
    if new_status not in Schedule.TRANSITIONS:
        raise ValidationError('status', f"'{new_status}' is not a valid schedule status.")
    if not schedule.can_transition_to(new_status):
        raise ValidationError(
            'status',
            f"Cannot change status from '{schedule.status}' to '{new_status}'."
        )


def _ensure_modifiable(schedule):
    if schedule.is_terminal:
        raise ValidationError('status', f"A {schedule.status} schedule can no longer be modified.")


def _lock_assignable(depot, resource_type, resource_id):
    """Lock a depot resource and make sure it can take a new assignment."""
    resource = registry.get_resource(resource_type, resource_id, depot=depot, for_update=True)
    if not registry.is_assignable(resource):
        raise ResourceUnavailableError(resource_type, resource_id, registry.resource_state(resource))
    return resource


def _lock_resources(depot, new_ids, kept_ids):
    """
    Lock resource rows in bus, driver, conductor order.

    new_ids are resources about to be committed and must be assignable;
    kept_ids are already on the schedule and are only locked.
    """
    resources = {}
    for resource_type in RESOURCE_TYPES:
        if resource_type in new_ids:
            resources[resource_type] = _lock_assignable(depot, resource_type, new_ids[resource_type])
        elif resource_type in kept_ids:
            resources[resource_type] = registry.get_resource(
                resource_type, kept_ids[resource_type], depot=depot, for_update=True
            )
    return resources


def _lock_schedule(depot, schedule_id, kept_ids):
    """
    Lock the schedule row after its resources. The kept resources were read
    before the lock, so a schedule that moved off them meanwhile is retried.
    """
    schedule = get_schedule(depot, schedule_id, for_update=True)
    for resource_type, resource_id in kept_ids.items():
        if getattr(schedule, f'{resource_type}_id') != resource_id:
            logger.info("Schedule %s changed %s while locking", schedule_id, resource_type)
            raise ConcurrentUpdateError()
    return schedule


def _ensure_no_conflicts(schedule):
    result = check_conflict(proposal_for(schedule), exclude_schedule_id=schedule.pk)
    if result.has_conflicts:
        logger.info("Rejected schedule for %s on %s: %s", schedule.route, schedule.date, result.messages)
        raise ConflictError(result.messages)


# =============================================================================
# Operations
# =============================================================================

def create_schedule(depot, data, today=None):
    """
    Create a schedule for the depot.

    Args:
        depot: depot owning the schedule and the resources
        data: route_id, bus_id, driver_id, conductor_id, date,
              departure_time, arrival_time and optional trips_total

    Returns:
        (schedule, warnings) where warnings are advisory maintenance messages

    Raises:
        ValidationError, NotFoundError, ResourceUnavailableError,
        ConflictError, ConcurrentUpdateError
    """
    route_id = _require(data, 'route_id')
    resource_ids = {resource_type: _require(data, f'{resource_type}_id') for resource_type in RESOURCE_TYPES}
    date = _require(data, 'date')
    departure_time = _require(data, 'departure_time')
    arrival_time = _require(data, 'arrival_time')
    trips_total = data.get('trips_total')
    if trips_total is None:
        trips_total = 1

    _validate_window(departure_time, arrival_time)
    _validate_trip_counts(trips_total, 0)

    with write_transaction(f"creating schedule on {date}"):
        route = _get_route(route_id)
        resources = _lock_resources(depot, resource_ids, {})

        schedule = Schedule(
            route=route,
            date=date,
            departure_time=departure_time,
            arrival_time=arrival_time,
            trips_total=trips_total,
            trips_done=0,
            status=Schedule.STATUS_SCHEDULED,
            flagged_for_reassignment=False,
            depot=depot,
            **resources
        )
        _ensure_no_conflicts(schedule)
        schedule.save()

    logger.info("Created schedule %s (%s) for depot %s", schedule.pk, schedule, depot.pk)
    return schedule, maintenance_warnings(resources['bus'], today)


def update_schedule(depot, schedule_id, patch):
    """
    Apply a partial update.

    Route, resource and time changes go through the same availability and
    conflict checks as create. A patch touching only status and trip counters
    skips them.
    """
    unknown = set(patch) - set(UPDATABLE_FIELDS)
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(field, f"'{field}' cannot be updated.")

    with write_transaction(f"updating schedule {schedule_id}"):
        snapshot = get_schedule(depot, schedule_id)
        changed = _changed_fields(snapshot, patch)
        if any(field in changed for field in ASSIGNMENT_FIELDS + ('trips_total', 'trips_done')):
            _ensure_modifiable(snapshot)
        to_lock = _resources_to_lock(snapshot, changed)

        resources = _lock_resources(depot, *to_lock)
        schedule = _lock_schedule(depot, schedule_id, to_lock[1])
        changed = _changed_fields(schedule, patch)
        if _resources_to_lock(schedule, changed) != to_lock:
            raise ConcurrentUpdateError()

        if any(field in changed for field in ASSIGNMENT_FIELDS):
            _ensure_modifiable(schedule)
            _apply_assignment_changes(schedule, changed, resources)

        if 'trips_total' in changed or 'trips_done' in changed:
            _ensure_modifiable(schedule)
            _validate_trip_counts(
                changed.get('trips_total', schedule.trips_total),
                changed.get('trips_done', schedule.trips_done),
            )
            schedule.trips_total = changed.get('trips_total', schedule.trips_total)
            schedule.trips_done = changed.get('trips_done', schedule.trips_done)

        if 'status' in changed:
            _validate_transition(schedule, changed['status'])
            schedule.status = changed['status']

        if changed:
            schedule.save()

    if changed:
        logger.info("Updated schedule %s: %s", schedule.pk, sorted(changed))
    return schedule


def _changed_fields(schedule, patch):
    return {field: value for field, value in patch.items() if getattr(schedule, field) != value}


def _resources_to_lock(schedule, changed):
    """
    Split the resources an update touches into (new_ids, kept_ids).
    Kept resources are locked only when the time window moves.
    """
    window_changed = any(field in changed for field in WINDOW_FIELDS)
    new_ids, kept_ids = {}, {}
    for resource_type in RESOURCE_TYPES:
        field = f'{resource_type}_id'
        if field in changed:
            if changed[field] is None:
                raise ValidationError(field, f"A {resource_type} is required.")
            new_ids[resource_type] = changed[field]
        elif window_changed and getattr(schedule, field) is not None:
            kept_ids[resource_type] = getattr(schedule, field)
    return new_ids, kept_ids


def _apply_assignment_changes(schedule, changed, resources):
    if 'route_id' in changed:
        schedule.route = _get_route(changed['route_id'])

    for resource_type in RESOURCE_TYPES:
        if f'{resource_type}_id' in changed:
            setattr(schedule, resource_type, resources[resource_type])

    window_changed = any(field in changed for field in WINDOW_FIELDS)
    for field in WINDOW_FIELDS:
        if field in changed:
            setattr(schedule, field, changed[field])
    _validate_window(schedule.departure_time, schedule.arrival_time)

    if window_changed or any(field in changed for field in RESOURCE_FIELDS):
        _ensure_no_conflicts(schedule)
        if schedule.flagged_for_reassignment and _assignment_is_valid(schedule):
            schedule.flagged_for_reassignment = False


def _assignment_is_valid(schedule):
    for resource_type in RESOURCE_TYPES:
        resource_id = getattr(schedule, f'{resource_type}_id')
        if resource_id is None:
            return False
        if not registry.is_assignable(registry.get_resource(resource_type, resource_id)):
            return False
    return True


def reassign_schedule(depot, schedule_id, bus_id=None, driver_id=None, conductor_id=None):
    """
    Replace resources of a schedule and clear its reassignment flag.

    Resources not given are kept; every slot must end up assigned to an
    assignable resource and the result must pass the conflict check.
    """
    requested = {'bus': bus_id, 'driver': driver_id, 'conductor': conductor_id}

    with write_transaction(f"reassigning schedule {schedule_id}"):
        snapshot = get_schedule(depot, schedule_id)
        _ensure_modifiable(snapshot)

        new_ids, kept_ids = {}, {}
        for resource_type in RESOURCE_TYPES:
            if requested[resource_type] is not None:
                new_ids[resource_type] = requested[resource_type]
                continue
            current = snapshot.assignment(resource_type)
            if not current.is_assigned:
                raise ValidationError(
                    f'{resource_type}_id',
                    f"A {resource_type} must be assigned before the schedule can be cleared."
                )
            kept_ids[resource_type] = current.id

        # Kept resources must still be assignable too.
        resources = _lock_resources(depot, {**new_ids, **kept_ids}, {})
        schedule = _lock_schedule(depot, schedule_id, kept_ids)
        _ensure_modifiable(schedule)

        for resource_type in new_ids:
            setattr(schedule, resource_type, resources[resource_type])
        _ensure_no_conflicts(schedule)
        schedule.flagged_for_reassignment = False
        schedule.save()

    logger.info("Reassigned schedule %s (bus=%s driver=%s conductor=%s)",
                schedule.pk, schedule.bus_id, schedule.driver_id, schedule.conductor_id)
    return schedule


def record_trip(depot, schedule_id):
    """
    Tick one completed trip. The first trip starts the schedule, the last
    one completes it.
    """
    with write_transaction(f"recording a trip on schedule {schedule_id}"):
        schedule = get_schedule(depot, schedule_id, for_update=True)
        if schedule.is_terminal:
            raise ValidationError('status', f"Cannot record trips on a {schedule.status} schedule.")
        if schedule.trips_done >= schedule.trips_total:
            raise ValidationError('trips_done', 'All trips for this schedule are already recorded.')

        schedule.trips_done += 1
        if schedule.status == Schedule.STATUS_SCHEDULED:
            schedule.status = Schedule.STATUS_IN_PROGRESS
        if schedule.trips_done == schedule.trips_total:
            schedule.status = Schedule.STATUS_COMPLETED
        schedule.save(update_fields=['trips_done', 'status', 'updated_at'])

    logger.info("Recorded trip %s/%s on schedule %s", schedule.trips_done, schedule.trips_total, schedule.pk)
    return schedule


def delete_schedule(depot, schedule_id):
    """Hard delete; the schedule's resources are free for later conflict checks."""
    with write_transaction(f"deleting schedule {schedule_id}"):
        schedule = get_schedule(depot, schedule_id, for_update=True)
        schedule.delete()
    logger.info("Deleted schedule %s", schedule_id)
