"""
Tests for schedules app.
Tests cover: Assignment slots, Conflict detection, Schedule lifecycle,
Flagging & reassignment, API contract and concurrent bookings.
"""
from datetime import date, time, timedelta
from decimal import Decimal
from unittest.mock import patch
from django.test import TestCase, TransactionTestCase, override_settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, OperationalError, connection, transaction
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status
import threading

from core.models import Depot
from fleet.models import Route, Bus, Driver, Conductor
from fleet.services import update_resource, delete_resource
from schedules import services
from schedules.assignment import Assigned, UNASSIGNED, from_id
from schedules.conflicts import ConflictResult, build_proposal, check_conflict, windows_overlap
from schedules.exceptions import (
    ConcurrentUpdateError, ConflictError, NotFoundError, ResourceUnavailableError, ValidationError,
)
from schedules.flagging import list_flagged_schedules
from schedules.models import Schedule

User = get_user_model()

DAY = date(2024, 6, 1)


def make_route(name='138'):
    route, _ = Route.objects.get_or_create(
        route_name=name,
        defaults={
            'start_location': 'Swargate',
            'end_location': 'Hinjewadi',
            'distance_km': Decimal('24.50'),
            'estimated_duration': 120,
        }
    )
    return route


def make_bus(depot, number='B1', **extra):
    return Bus.objects.create(number=number, model='Tata Starbus', depot=depot, **extra)


def make_driver(depot, name='D1', **extra):
    return Driver.objects.create(name=name, license_number=f'LIC-{name}', depot=depot, **extra)


def make_conductor(depot, name='C1', **extra):
    return Conductor.objects.create(name=name, depot=depot, **extra)


def schedule_data(route, bus, driver, conductor, day=DAY, departure=time(8, 0), arrival=time(10, 0), **extra):
    data = {
        'route_id': route.pk,
        'bus_id': bus.pk,
        'driver_id': driver.pk,
        'conductor_id': conductor.pk,
        'date': day,
        'departure_time': departure,
        'arrival_time': arrival,
    }
    data.update(extra)
    return data


class SchedulingTestCase(TestCase):
    """Depot with one route and one free bus, driver and conductor."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.route = make_route('R1')
        self.route2 = make_route('R2')
        self.bus = make_bus(self.depot)
        self.driver = make_driver(self.depot)
        self.conductor = make_conductor(self.depot)

    def create(self, **kwargs):
        data = schedule_data(self.route, kwargs.pop('bus', self.bus), kwargs.pop('driver', self.driver),
                             kwargs.pop('conductor', self.conductor), **kwargs)
        schedule, _ = services.create_schedule(self.depot, data, today=DAY)
        return schedule


# =============================================================================
# UNIT TESTS - Assignment slots
# =============================================================================

class AssignmentTests(TestCase):
    """Test the Assigned / UNASSIGNED slot values."""

    def test_from_id(self):
        """Test nullable ids map to the right slot."""
        self.assertEqual(from_id(5), Assigned(5))
        self.assertIs(from_id(None), UNASSIGNED)
        self.assertTrue(from_id(5).is_assigned)
        self.assertFalse(from_id(None).is_assigned)

    def test_assigned_requires_id(self):
        """Test Assigned cannot wrap a missing id."""
        with self.assertRaises(ValueError):
            Assigned(None)

    def test_schedule_exposes_slots(self):
        """Test a schedule's nulled resource reads as UNASSIGNED."""
        depot = Depot.objects.create(name='Central Depot')
        schedule = Schedule(route=make_route(), depot=depot, date=DAY,
                            departure_time=time(8, 0), arrival_time=time(9, 0), bus_id=3)
        self.assertEqual(schedule.assignment('bus'), Assigned(3))
        self.assertIs(schedule.assignment('driver'), UNASSIGNED)


# =============================================================================
# UNIT TESTS - Conflict detection
# =============================================================================

class WindowOverlapTests(TestCase):
    """Test half-open window overlap."""

    def test_overlapping_windows(self):
        """Test partially and fully overlapping windows conflict."""
        self.assertTrue(windows_overlap(time(8), time(10), time(9), time(11)))
        self.assertTrue(windows_overlap(time(9), time(11), time(8), time(10)))
        self.assertTrue(windows_overlap(time(8), time(12), time(9), time(10)))
        self.assertTrue(windows_overlap(time(8), time(10), time(8), time(10)))

    def test_adjacent_windows_do_not_overlap(self):
        """Test back-to-back windows are not a conflict."""
        self.assertFalse(windows_overlap(time(8), time(10), time(10), time(12)))
        self.assertFalse(windows_overlap(time(10), time(12), time(8), time(10)))

    def test_disjoint_windows(self):
        """Test separated windows are not a conflict."""
        self.assertFalse(windows_overlap(time(6), time(7), time(8), time(9)))


class ConflictCheckerTests(SchedulingTestCase):
    """Test conflict detection against stored schedules."""

    def setUp(self):
        super().setUp()
        self.existing = self.create()

    def test_overlap_reports_each_resource(self):
        """Test every shared resource in an overlapping window is reported."""
        result = check_conflict(build_proposal(
            DAY, time(9, 0), time(11, 0),
            bus_id=self.bus.pk, driver_id=self.driver.pk, conductor_id=self.conductor.pk
        ))

        self.assertTrue(result.has_conflicts)
        self.assertEqual(len(result.messages), 3)
        self.assertEqual(result.by_resource['bus'],
                         ['Bus B1 is already scheduled on Route R1 from 08:00 to 10:00'])
        self.assertEqual(result.by_resource['driver'],
                         ['Driver D1 is already scheduled on Route R1 from 08:00 to 10:00'])

    def test_no_conflict_other_date(self):
        """Test the same window on another date is free."""
        result = check_conflict(build_proposal(DAY + timedelta(days=1), time(8, 0), time(10, 0),
                                               bus_id=self.bus.pk))
        self.assertFalse(result)

    def test_unassigned_slots_are_skipped(self):
        """Test an empty proposal never conflicts."""
        result = check_conflict(build_proposal(DAY, time(8, 0), time(10, 0)))
        self.assertEqual(result.messages, [])

    def test_excluded_schedule_ignored(self):
        """Test the schedule being updated does not conflict with itself."""
        result = check_conflict(
            build_proposal(DAY, time(8, 30), time(10, 30), bus_id=self.bus.pk),
            exclude_schedule_id=self.existing.pk
        )
        self.assertFalse(result.has_conflicts)

    def test_cancelled_schedule_releases_resources(self):
        """Test cancelled schedules do not hold their resources."""
        Schedule.objects.filter(pk=self.existing.pk).update(status=Schedule.STATUS_CANCELLED)
        result = check_conflict(build_proposal(DAY, time(9, 0), time(11, 0), bus_id=self.bus.pk))
        self.assertFalse(result.has_conflicts)

    def test_completed_schedule_still_holds_window(self):
        """Test completed schedules still occupy their window."""
        Schedule.objects.filter(pk=self.existing.pk).update(status=Schedule.STATUS_COMPLETED, trips_done=1)
        result = check_conflict(build_proposal(DAY, time(9, 0), time(11, 0), bus_id=self.bus.pk))
        self.assertTrue(result.has_conflicts)

    def test_conflicts_span_depots(self):
        """Test a driver booked by another depot's schedule still conflicts."""
        other_depot = Depot.objects.create(name='North Depot')
        Schedule.objects.create(
            route=self.route2, depot=other_depot, driver=make_driver(other_depot, 'D9'),
            date=DAY, departure_time=time(12, 0), arrival_time=time(13, 0)
        )
        shared_driver = Driver.objects.get(name='D9')

        result = check_conflict(build_proposal(DAY, time(12, 30), time(14, 0), driver_id=shared_driver.pk))

        self.assertEqual(len(result.by_resource['driver']), 1)

    def test_result_to_dict(self):
        """Test the dry-run payload shape."""
        result = ConflictResult()
        self.assertEqual(result.to_dict(), {
            'has_conflicts': False,
            'conflicts': [],
            'by_resource': {'bus': [], 'driver': [], 'conductor': []},
        })


# =============================================================================
# UNIT TESTS - Schedule lifecycle
# =============================================================================

class CreateScheduleTests(SchedulingTestCase):
    """Test schedule creation rules."""

    def test_create_success(self):
        """Test a valid request creates a fresh schedule."""
        schedule = self.create(trips_total=3)

        self.assertEqual(schedule.status, Schedule.STATUS_SCHEDULED)
        self.assertEqual(schedule.trips_done, 0)
        self.assertEqual(schedule.trips_total, 3)
        self.assertEqual(schedule.trips_remaining, 3)
        self.assertFalse(schedule.flagged_for_reassignment)
        self.assertEqual(schedule.depot, self.depot)

    def test_trips_total_defaults_to_one(self):
        """Test trips_total defaults to one trip."""
        self.assertEqual(self.create().trips_total, 1)

    def test_overlapping_booking_conflicts(self):
        """Test B1 08:00-10:00, then 09:00-11:00 conflicts and 10:00-12:00 is accepted."""
        self.create()
        other_driver = make_driver(self.depot, 'D2')
        other_conductor = make_conductor(self.depot, 'C2')

        with self.assertRaises(ConflictError) as ctx:
            services.create_schedule(self.depot, schedule_data(
                self.route2, self.bus, other_driver, other_conductor,
                departure=time(9, 0), arrival=time(11, 0)
            ))
        self.assertEqual(ctx.exception.conflicts, ['Bus B1 is already scheduled on Route R1 from 08:00 to 10:00'])
        self.assertEqual(ctx.exception.status_code, 409)

        adjacent, _ = services.create_schedule(self.depot, schedule_data(
            self.route2, self.bus, self.driver, self.conductor,
            departure=time(10, 0), arrival=time(12, 0)
        ))
        self.assertEqual(adjacent.route, self.route2)
        self.assertEqual(Schedule.objects.filter(bus=self.bus, date=DAY).count(), 2)

    def test_inactive_bus_is_unavailable_not_conflict(self):
        """Test an unavailable bus is reported as unavailable even when it also conflicts."""
        self.create()
        Bus.objects.filter(pk=self.bus.pk).update(status=Bus.STATUS_MAINTENANCE)

        with self.assertRaises(ResourceUnavailableError) as ctx:
            self.create(departure=time(9, 0), arrival=time(11, 0))
        self.assertEqual(ctx.exception.resource_type, 'bus')
        self.assertEqual(ctx.exception.state, 'maintenance')

    def test_unavailable_staff_rejected(self):
        """Test a driver on duty cannot be assigned."""
        busy = make_driver(self.depot, 'D2', availability=Driver.ON_DUTY)
        with self.assertRaises(ResourceUnavailableError):
            self.create(driver=busy)

    def test_missing_resource(self):
        """Test unknown ids are reported as not found."""
        data = schedule_data(self.route, self.bus, self.driver, self.conductor)
        data['conductor_id'] = 99999
        with self.assertRaises(NotFoundError) as ctx:
            services.create_schedule(self.depot, data)
        self.assertEqual(ctx.exception.resource_type, 'conductor')

    def test_resource_of_other_depot(self):
        """Test resources must belong to the caller's depot."""
        other_depot = Depot.objects.create(name='North Depot')
        with self.assertRaises(NotFoundError):
            services.create_schedule(other_depot, schedule_data(self.route, self.bus, self.driver, self.conductor))

    def test_arrival_must_follow_departure(self):
        """Test inverted or empty windows are rejected."""
        with self.assertRaises(ValidationError) as ctx:
            self.create(departure=time(10, 0), arrival=time(10, 0))
        self.assertEqual(ctx.exception.field, 'arrival_time')

    def test_trips_total_must_be_positive(self):
        """Test a schedule needs at least one trip."""
        with self.assertRaises(ValidationError) as ctx:
            self.create(trips_total=0)
        self.assertEqual(ctx.exception.field, 'trips_total')

    def test_maintenance_warning_is_advisory(self):
        """Test an overdue bus is scheduled with a warning."""
        self.bus.next_service_due = DAY - timedelta(days=4)
        self.bus.save()

        schedule, warnings = services.create_schedule(
            self.depot, schedule_data(self.route, self.bus, self.driver, self.conductor), today=DAY
        )

        self.assertIsNotNone(schedule.pk)
        self.assertEqual(warnings, ['Bus B1 is overdue for service by 4 day(s)'])

    def test_failed_create_leaves_nothing(self):
        """Test a rejected request writes no schedule."""
        self.create()
        with self.assertRaises(ConflictError):
            self.create(departure=time(9, 0), arrival=time(11, 0))
        self.assertEqual(Schedule.objects.count(), 1)


class UpdateScheduleTests(SchedulingTestCase):
    """Test partial updates, status transitions and trip counters."""

    def setUp(self):
        super().setUp()
        self.schedule = self.create(trips_total=2)

    def test_status_and_trips_update_skips_conflict_check(self):
        """Test a patch touching only status and trip counters never checks conflicts."""
        with patch('schedules.services.check_conflict') as mock_check:
            services.update_schedule(self.depot, self.schedule.pk, {'status': Schedule.STATUS_IN_PROGRESS})
            services.update_schedule(self.depot, self.schedule.pk, {'trips_done': 1})
            services.update_schedule(self.depot, self.schedule.pk, {'trips_total': 3, 'trips_done': 2})

        mock_check.assert_not_called()
        self.schedule.refresh_from_db()
        self.assertEqual(self.schedule.trips_done, 2)
        self.assertEqual(self.schedule.trips_remaining, 1)

    def test_time_change_runs_conflict_check(self):
        """Test moving the window re-validates conflicts."""
        other = services.create_schedule(self.depot, schedule_data(
            self.route2, self.bus, self.driver, self.conductor,
            departure=time(11, 0), arrival=time(12, 0)
        ))[0]

        with self.assertRaises(ConflictError):
            services.update_schedule(self.depot, other.pk, {'departure_time': time(9, 30)})

        other.refresh_from_db()
        self.assertEqual(other.departure_time, time(11, 0))

    def test_time_change_without_conflict(self):
        """Test a free window is accepted and the schedule does not conflict with itself."""
        updated = services.update_schedule(self.depot, self.schedule.pk, {'arrival_time': time(10, 30)})
        self.assertEqual(updated.arrival_time, time(10, 30))

    def test_new_resource_must_be_assignable(self):
        """Test newly assigned resources go through the availability check."""
        broken = make_bus(self.depot, 'B2', status=Bus.STATUS_BREAKDOWN)
        with self.assertRaises(ResourceUnavailableError):
            services.update_schedule(self.depot, self.schedule.pk, {'bus_id': broken.pk})

    def test_resource_cannot_be_cleared(self):
        """Test a patch cannot null a resource."""
        with self.assertRaises(ValidationError) as ctx:
            services.update_schedule(self.depot, self.schedule.pk, {'driver_id': None})
        self.assertEqual(ctx.exception.field, 'driver_id')

    def test_trips_done_cannot_exceed_total(self):
        """Test trips_done stays within trips_total."""
        with self.assertRaises(ValidationError):
            services.update_schedule(self.depot, self.schedule.pk, {'trips_done': 3})
        with self.assertRaises(ValidationError):
            services.update_schedule(self.depot, self.schedule.pk, {'trips_done': 2, 'trips_total': 1})

    def test_trips_invariant_across_sequences(self):
        """Test no mix of updates and trip ticks pushes trips_done over trips_total."""
        operations = [
            lambda: services.record_trip(self.depot, self.schedule.pk),
            lambda: services.update_schedule(self.depot, self.schedule.pk, {'trips_total': 1}),
            lambda: services.record_trip(self.depot, self.schedule.pk),
            lambda: services.update_schedule(self.depot, self.schedule.pk, {'trips_done': 5}),
            lambda: services.record_trip(self.depot, self.schedule.pk),
        ]
        for operation in operations:
            try:
                operation()
            except ValidationError:
                pass
            self.schedule.refresh_from_db()
            self.assertLessEqual(self.schedule.trips_done, self.schedule.trips_total)

    def test_status_transitions(self):
        """Test only allowed status moves are accepted."""
        with self.assertRaises(ValidationError):
            services.update_schedule(self.depot, self.schedule.pk, {'status': Schedule.STATUS_COMPLETED})

        services.update_schedule(self.depot, self.schedule.pk, {'status': Schedule.STATUS_IN_PROGRESS})
        services.update_schedule(self.depot, self.schedule.pk, {'status': Schedule.STATUS_COMPLETED})

        with self.assertRaises(ValidationError):
            services.update_schedule(self.depot, self.schedule.pk, {'status': Schedule.STATUS_CANCELLED})

    def test_terminal_schedule_resources_frozen(self):
        """Test a cancelled schedule's resources and window cannot change."""
        services.update_schedule(self.depot, self.schedule.pk, {'status': Schedule.STATUS_CANCELLED})
        with self.assertRaises(ValidationError):
            services.update_schedule(self.depot, self.schedule.pk, {'departure_time': time(7, 0)})

    def test_terminal_schedule_trip_counters_frozen(self):
        """Test trip counters of a completed or cancelled schedule cannot change."""
        services.record_trip(self.depot, self.schedule.pk)
        services.record_trip(self.depot, self.schedule.pk)
        cancelled = self.create(departure=time(11, 0), arrival=time(12, 0), trips_total=2)
        services.update_schedule(self.depot, cancelled.pk, {'status': Schedule.STATUS_CANCELLED})

        with self.assertRaises(ValidationError) as ctx:
            services.update_schedule(self.depot, self.schedule.pk, {'trips_total': 3})
        self.assertEqual(ctx.exception.field, 'status')
        with self.assertRaises(ValidationError):
            services.update_schedule(self.depot, cancelled.pk, {'trips_done': 1})

        self.schedule.refresh_from_db()
        cancelled.refresh_from_db()
        self.assertEqual((self.schedule.trips_total, self.schedule.trips_done), (2, 2))
        self.assertEqual(self.schedule.status, Schedule.STATUS_COMPLETED)
        self.assertEqual(cancelled.trips_done, 0)

    def test_resources_locked_before_schedule(self):
        """Test updates and reassignments lock bus, driver, conductor and then the schedule row."""
        locks = []
        get_resource = services.registry.get_resource
        get_schedule = services.get_schedule

        def recording_get_resource(resource_type, resource_id, depot=None, for_update=False):
            if for_update:
                locks.append(resource_type)
            return get_resource(resource_type, resource_id, depot=depot, for_update=for_update)

        def recording_get_schedule(depot, schedule_id, for_update=False):
            if for_update:
                locks.append('schedule')
            return get_schedule(depot, schedule_id, for_update=for_update)

        new_bus = make_bus(self.depot, 'B2')
        new_driver = make_driver(self.depot, 'D2')
        with patch('schedules.services.registry.get_resource', side_effect=recording_get_resource), \
                patch('schedules.services.get_schedule', side_effect=recording_get_schedule):
            services.update_schedule(self.depot, self.schedule.pk,
                                     {'bus_id': new_bus.pk, 'departure_time': time(7, 0)})
            services.reassign_schedule(self.depot, self.schedule.pk, driver_id=new_driver.pk)

        self.assertEqual(locks, ['bus', 'driver', 'conductor', 'schedule'] * 2)
        self.schedule.refresh_from_db()
        self.assertEqual((self.schedule.bus_id, self.schedule.driver_id), (new_bus.pk, new_driver.pk))

    def test_deadlock_reported_as_concurrent_update(self):
        """Test a deadlock or lock wait timeout becomes a retryable 409 error."""
        deadlock = OperationalError(1213, 'Deadlock found when trying to get lock; try restarting transaction')
        with patch('schedules.services._lock_resources', side_effect=deadlock):
            with self.assertRaises(ConcurrentUpdateError) as ctx:
                services.update_schedule(self.depot, self.schedule.pk, {'departure_time': time(7, 0)})

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.to_dict()['error'], 'Concurrent update')
        self.schedule.refresh_from_db()
        self.assertEqual(self.schedule.departure_time, time(8, 0))

    def test_other_operational_errors_propagate(self):
        """Test database errors unrelated to locking are not masked."""
        with patch('schedules.services._lock_resources', side_effect=OperationalError('no such column: bus_id')):
            with self.assertRaises(OperationalError):
                services.update_schedule(self.depot, self.schedule.pk, {'departure_time': time(7, 0)})

    def test_unknown_field_rejected(self):
        """Test fields outside the updatable set are rejected."""
        with self.assertRaises(ValidationError) as ctx:
            services.update_schedule(self.depot, self.schedule.pk, {'flagged_for_reassignment': False})
        self.assertEqual(ctx.exception.field, 'flagged_for_reassignment')

    def test_update_refills_flagged_slot(self):
        """Test assigning a new bus to a flagged schedule clears the flag."""
        update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_MAINTENANCE}, today=DAY)
        replacement = make_bus(self.depot, 'B2')

        updated = services.update_schedule(self.depot, self.schedule.pk, {'bus_id': replacement.pk})

        self.assertEqual(updated.bus_id, replacement.pk)
        self.assertFalse(updated.flagged_for_reassignment)


class RecordTripTests(SchedulingTestCase):
    """Test trip progress."""

    def test_trips_drive_status(self):
        """Test the first trip starts and the last trip completes the schedule."""
        schedule = self.create(trips_total=2)

        schedule = services.record_trip(self.depot, schedule.pk)
        self.assertEqual(schedule.status, Schedule.STATUS_IN_PROGRESS)
        self.assertEqual(schedule.trips_remaining, 1)

        schedule = services.record_trip(self.depot, schedule.pk)
        self.assertEqual(schedule.status, Schedule.STATUS_COMPLETED)
        self.assertEqual(schedule.trips_remaining, 0)

        with self.assertRaises(ValidationError):
            services.record_trip(self.depot, schedule.pk)

    def test_cancelled_schedule_rejects_trips(self):
        """Test trips cannot be recorded on a cancelled schedule."""
        schedule = self.create()
        services.update_schedule(self.depot, schedule.pk, {'status': Schedule.STATUS_CANCELLED})
        with self.assertRaises(ValidationError):
            services.record_trip(self.depot, schedule.pk)


class DeleteScheduleTests(SchedulingTestCase):
    """Test hard delete."""

    def test_delete_frees_resources(self):
        """Test a deleted schedule no longer blocks its window."""
        schedule = self.create()
        services.delete_schedule(self.depot, schedule.pk)

        self.assertFalse(Schedule.objects.filter(pk=schedule.pk).exists())
        self.assertIsNotNone(self.create(departure=time(9, 0), arrival=time(11, 0)).pk)

    def test_delete_other_depot_not_found(self):
        """Test schedules are scoped to their depot."""
        schedule = self.create()
        other_depot = Depot.objects.create(name='North Depot')
        with self.assertRaises(NotFoundError):
            services.delete_schedule(other_depot, schedule.pk)


# =============================================================================
# UNIT TESTS - Flagging & reassignment
# =============================================================================

class FlaggingTests(SchedulingTestCase):
    """Test flagging triggered by resource changes."""

    def test_driver_on_leave_flags_future_schedule(self):
        """Test D1 going on leave flags S1 and nulls its driver."""
        s1 = self.create()

        update_resource(self.depot, 'driver', self.driver.pk, {'availability': Driver.LEAVE},
                        today=DAY - timedelta(days=7))

        s1.refresh_from_db()
        self.assertTrue(s1.flagged_for_reassignment)
        self.assertIsNone(s1.driver_id)

    def test_deleting_driver_flags_both_schedules(self):
        """Test deleting a driver with two future schedules flags both and nothing else."""
        first = self.create()
        second = self.create(day=DAY + timedelta(days=1))
        other_driver = make_driver(self.depot, 'D2')
        unrelated = self.create(driver=other_driver, bus=make_bus(self.depot, 'B2'),
                                conductor=make_conductor(self.depot, 'C2'))

        flagged = delete_resource(self.depot, 'driver', self.driver.pk, today=DAY)

        self.assertEqual({s.pk for s in flagged}, {first.pk, second.pk})
        for schedule in (first, second):
            schedule.refresh_from_db()
            self.assertTrue(schedule.flagged_for_reassignment)
            self.assertIsNone(schedule.driver_id)
        unrelated.refresh_from_db()
        self.assertFalse(unrelated.flagged_for_reassignment)
        self.assertEqual(unrelated.driver_id, other_driver.pk)

    def test_list_flagged_schedules(self):
        """Test flagged schedules are listed per depot."""
        schedule = self.create()
        self.create(day=DAY - timedelta(days=3))
        update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_INACTIVE}, today=DAY)

        self.assertEqual([s.pk for s in list_flagged_schedules(self.depot)], [schedule.pk])
        self.assertEqual(list(list_flagged_schedules(Depot.objects.create(name='North Depot'))), [])


class ReassignScheduleTests(SchedulingTestCase):
    """Test reassignment of flagged schedules."""

    def setUp(self):
        super().setUp()
        self.schedule = self.create()
        update_resource(self.depot, 'driver', self.driver.pk, {'availability': Driver.LEAVE}, today=DAY)
        self.replacement = make_driver(self.depot, 'D2')

    def test_reassign_clears_flag(self):
        """Test a successful reassignment clears the flag through the conflict check."""
        with patch('schedules.services.check_conflict', wraps=check_conflict) as spy:
            schedule = services.reassign_schedule(self.depot, self.schedule.pk, driver_id=self.replacement.pk)

        spy.assert_called_once()
        self.assertFalse(schedule.flagged_for_reassignment)
        self.assertEqual(schedule.driver_id, self.replacement.pk)
        self.assertEqual(schedule.bus_id, self.bus.pk)

    def test_reassign_requires_all_slots(self):
        """Test an empty slot must be filled."""
        with self.assertRaises(ValidationError) as ctx:
            services.reassign_schedule(self.depot, self.schedule.pk)
        self.assertEqual(ctx.exception.field, 'driver_id')

    def test_reassign_conflict_keeps_flag(self):
        """Test a conflicting replacement is rejected and the schedule stays flagged."""
        services.create_schedule(self.depot, schedule_data(
            self.route2, make_bus(self.depot, 'B2'), self.replacement, make_conductor(self.depot, 'C2'),
            departure=time(9, 0), arrival=time(9, 45)
        ))

        with self.assertRaises(ConflictError):
            services.reassign_schedule(self.depot, self.schedule.pk, driver_id=self.replacement.pk)

        self.schedule.refresh_from_db()
        self.assertTrue(self.schedule.flagged_for_reassignment)
        self.assertIsNone(self.schedule.driver_id)

    def test_reassign_unavailable_replacement(self):
        """Test the replacement must be assignable."""
        self.replacement.availability = Driver.OFF
        self.replacement.save()
        with self.assertRaises(ResourceUnavailableError):
            services.reassign_schedule(self.depot, self.schedule.pk, driver_id=self.replacement.pk)

    def test_reassign_revalidates_kept_resources(self):
        """Test kept resources that became unassignable block the reassignment."""
        Bus.objects.filter(pk=self.bus.pk).update(status=Bus.STATUS_BREAKDOWN)
        with self.assertRaises(ResourceUnavailableError):
            services.reassign_schedule(self.depot, self.schedule.pk, driver_id=self.replacement.pk)


# =============================================================================
# INTEGRATION TESTS - API
# =============================================================================

@override_settings(API_LOGGING_ENABLED=False)
class ScheduleAPITests(APITestCase):
    """Integration tests for schedule endpoints."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.user = User.objects.create_user(
            email='operator@example.com', password='OperatorPass123!', name='Operator', depot=self.depot
        )
        self.route = make_route('R1')
        self.bus = make_bus(self.depot)
        self.driver = make_driver(self.depot)
        self.conductor = make_conductor(self.depot)
        self.day = timezone.localdate() + timedelta(days=1)
        self.client.force_authenticate(user=self.user)

    def payload(self, **extra):
        data = {
            'route_id': self.route.pk,
            'bus_id': self.bus.pk,
            'driver_id': self.driver.pk,
            'conductor_id': self.conductor.pk,
            'date': str(self.day),
            'departure_time': '08:00',
            'arrival_time': '10:00',
            'trips_total': 2,
        }
        data.update(extra)
        return data

    def test_create_schedule_success(self):
        """Test creating a schedule returns it with computed fields."""
        response = self.client.post('/api/schedules/', self.payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        schedule = response.data['schedule']
        self.assertEqual(schedule['departure_time'], '08:00')
        self.assertEqual(schedule['trips_remaining'], 2)
        self.assertEqual(schedule['bus']['number'], 'B1')
        self.assertEqual(schedule['status'], 'scheduled')
        self.assertEqual(response.data['warnings'], [])

    def test_create_conflict_returns_409(self):
        """Test an overlapping request returns the conflict list."""
        self.client.post('/api/schedules/', self.payload(), format='json')
        response = self.client.post('/api/schedules/', self.payload(departure_time='09:00', arrival_time='11:00'),
                                    format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'Scheduling conflict')
        self.assertIn('Bus B1 is already scheduled on Route R1 from 08:00 to 10:00', response.data['conflicts'])

    def test_create_unavailable_returns_409(self):
        """Test an unavailable resource returns its type and id."""
        self.bus.status = Bus.STATUS_INACTIVE
        self.bus.save()

        response = self.client.post('/api/schedules/', self.payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['resource_type'], 'bus')
        self.assertEqual(response.data['resource_id'], self.bus.pk)

    def test_create_validation_error(self):
        """Test a rule violation returns the offending field."""
        response = self.client.post('/api/schedules/', self.payload(arrival_time='07:00'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'arrival_time')

    def test_create_malformed_payload(self):
        """Test malformed input returns serializer errors."""
        response = self.client.post('/api/schedules/', {'route_id': 'x'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('bus_id', response.data)

    def test_list_with_filters(self):
        """Test listing by date and flag."""
        self.client.post('/api/schedules/', self.payload(), format='json')
        self.client.post('/api/schedules/', self.payload(date=str(self.day + timedelta(days=1))), format='json')

        by_date = self.client.get('/api/schedules/', {'date': str(self.day)})
        flagged = self.client.get('/api/schedules/', {'flagged': 'true'})
        bad = self.client.get('/api/schedules/', {'date': 'tomorrow'})

        self.assertEqual(by_date.data['count'], 1)
        self.assertEqual(flagged.data['count'], 0)
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)

    def test_flag_and_reassign_flow(self):
        """Test driver leave -> flagged list -> reassign clears the flag."""
        created = self.client.post('/api/schedules/', self.payload(), format='json')
        schedule_id = created.data['schedule']['id']

        self.client.patch(f'/api/fleet/drivers/{self.driver.pk}/', {'availability': 'leave'}, format='json')
        flagged = self.client.get('/api/schedules/flagged/')
        self.assertEqual(flagged.data['count'], 1)
        self.assertIsNone(flagged.data['results'][0]['driver'])

        replacement = make_driver(self.depot, 'D2')
        response = self.client.post(f'/api/schedules/{schedule_id}/reassign/',
                                    {'driver_id': replacement.pk}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['schedule']['flagged_for_reassignment'])
        self.assertEqual(response.data['schedule']['driver']['id'], replacement.pk)
        self.assertEqual(self.client.get('/api/schedules/flagged/').data['count'], 0)

    def test_patch_and_trips(self):
        """Test status patch and trip recording."""
        created = self.client.post('/api/schedules/', self.payload(), format='json')
        schedule_id = created.data['schedule']['id']

        trip = self.client.post(f'/api/schedules/{schedule_id}/trips/')
        self.assertEqual(trip.status_code, status.HTTP_200_OK)
        self.assertEqual(trip.data['schedule']['status'], 'in_progress')

        bad = self.client.patch(f'/api/schedules/{schedule_id}/', {'status': 'scheduled'}, format='json')
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)

        done = self.client.patch(f'/api/schedules/{schedule_id}/', {'trips_done': 2, 'status': 'completed'},
                                 format='json')
        self.assertEqual(done.status_code, status.HTTP_200_OK)
        self.assertEqual(done.data['schedule']['trips_remaining'], 0)

    def test_check_conflicts_dry_run(self):
        """Test the dry run reports conflicts without writing."""
        self.client.post('/api/schedules/', self.payload(), format='json')

        response = self.client.post('/api/schedules/check-conflicts/', {
            'date': str(self.day),
            'departure_time': '09:30',
            'arrival_time': '10:30',
            'bus_id': self.bus.pk,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['has_conflicts'])
        self.assertEqual(len(response.data['by_resource']['bus']), 1)
        self.assertEqual(Schedule.objects.count(), 1)

    def test_create_rejects_seconds(self):
        """Test times are accepted at minute resolution only."""
        response = self.client.post('/api/schedules/', self.payload(departure_time='08:00:30'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('departure_time', response.data)
        self.assertEqual(Schedule.objects.count(), 0)

    def test_check_conflicts_excludes_own_schedule(self):
        """Test a schedule can be checked against everything but itself."""
        created = self.client.post('/api/schedules/', self.payload(), format='json')

        response = self.client.post('/api/schedules/check-conflicts/', {
            'date': str(self.day),
            'departure_time': '09:00',
            'arrival_time': '11:00',
            'bus_id': self.bus.pk,
            'exclude_schedule_id': created.data['schedule']['id'],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['has_conflicts'])

    def test_check_conflicts_exclude_other_depot_schedule(self):
        """Test a schedule of another depot cannot be excluded from the check."""
        north = Depot.objects.create(name='North Depot')
        foreign, _ = services.create_schedule(north, schedule_data(
            self.route, make_bus(north, 'N1'), make_driver(north, 'ND1'), make_conductor(north, 'NC1'),
            day=self.day
        ))

        response = self.client.post('/api/schedules/check-conflicts/', {
            'date': str(self.day),
            'departure_time': '09:00',
            'arrival_time': '11:00',
            'bus_id': self.bus.pk,
            'exclude_schedule_id': foreign.pk,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['resource_type'], 'schedule')

    def test_delete_schedule(self):
        """Test hard delete and 404 afterwards."""
        created = self.client.post('/api/schedules/', self.payload(), format='json')
        schedule_id = created.data['schedule']['id']

        response = self.client.delete(f'/api/schedules/{schedule_id}/')
        missing = self.client.get(f'/api/schedules/{schedule_id}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(missing.status_code, status.HTTP_404_NOT_FOUND)

    def test_other_depot_cannot_see_schedule(self):
        """Test schedules are scoped to the operator's depot."""
        created = self.client.post('/api/schedules/', self.payload(), format='json')
        other = User.objects.create_user(email='other@example.com', password='x', name='Other',
                                         depot=Depot.objects.create(name='North Depot'))
        self.client.force_authenticate(user=other)

        response = self.client.get(f"/api/schedules/{created.data['schedule']['id']}/")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unauthenticated(self):
        """Test schedule endpoints require authentication."""
        self.client.force_authenticate(user=None)
        response = self.client.get('/api/schedules/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


# =============================================================================
# CONCURRENCY TESTS - Race Conditions
# =============================================================================

class ScheduleConcurrencyTests(TransactionTestCase):
    """
    Test double-booking protection.
    Uses TransactionTestCase for proper transaction isolation.
    """

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.route = make_route('R1')
        self.bus = make_bus(self.depot)
        self.drivers = [make_driver(self.depot, 'D1'), make_driver(self.depot, 'D2')]
        self.conductors = [make_conductor(self.depot, 'C1'), make_conductor(self.depot, 'C2')]

    def test_unique_constraint_blocks_same_departure(self):
        """Test storage rejects two live schedules starting the same bus at the same time."""
        Schedule.objects.create(route=self.route, bus=self.bus, depot=self.depot, date=DAY,
                                departure_time=time(8, 0), arrival_time=time(10, 0))
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Schedule.objects.create(route=self.route, bus=self.bus, depot=self.depot, date=DAY,
                                        departure_time=time(8, 0), arrival_time=time(9, 0))

    def test_cancelled_schedule_allows_same_departure(self):
        """Test a cancelled schedule does not block the same slot."""
        Schedule.objects.create(route=self.route, bus=self.bus, depot=self.depot, date=DAY,
                                departure_time=time(8, 0), arrival_time=time(10, 0),
                                status=Schedule.STATUS_CANCELLED)
        schedule, _ = services.create_schedule(self.depot, schedule_data(
            self.route, self.bus, self.drivers[0], self.conductors[0]
        ))
        self.assertEqual(schedule.status, Schedule.STATUS_SCHEDULED)

    def test_lost_race_reported_as_conflict(self):
        """Test an IntegrityError at commit is reported as a scheduling conflict."""
        services.create_schedule(self.depot, schedule_data(self.route, self.bus, self.drivers[0], self.conductors[0]))

        # The second writer's check ran before the first commit became visible.
        with patch('schedules.services.check_conflict', return_value=ConflictResult()):
            with self.assertRaises(ConflictError) as ctx:
                services.create_schedule(self.depot, schedule_data(
                    self.route, self.bus, self.drivers[1], self.conductors[1]
                ))

        self.assertEqual(ctx.exception.conflicts, [services.CONCURRENT_BOOKING_MESSAGE])
        self.assertEqual(Schedule.objects.count(), 1)

    def test_concurrent_creates_dont_double_book(self):
        """
        Test two requests racing for the same bus in overlapping windows:
        exactly one is booked and the other gets a scheduling conflict.
        """
        barrier = threading.Barrier(2, timeout=10)
        windows = [(time(8, 0), time(10, 0)), (time(9, 0), time(11, 0))]
        outcomes = [None, None]

        def book(index):
            departure, arrival = windows[index]
            try:
                barrier.wait()
                services.create_schedule(self.depot, schedule_data(
                    self.route, self.bus, self.drivers[index], self.conductors[index],
                    departure=departure, arrival=arrival
                ))
                outcomes[index] = 'booked'
            except Exception as e:
                outcomes[index] = type(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=book, args=(i,)) for i in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count('booked'), 1, outcomes)
        self.assertIn(ConflictError, outcomes)
        self.assertEqual(Schedule.objects.filter(bus=self.bus, date=DAY).count(), 1)
