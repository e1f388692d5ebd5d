"""
Tests for fleet app.
Tests cover: Resource models, Registry, Maintenance evaluation, Resource
mutations that flag schedules, Maintenance records and the fleet API.
"""
from datetime import date, time, timedelta
from decimal import Decimal
from unittest.mock import patch
from django.test import TestCase, override_settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import OperationalError
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from core.models import Depot
from fleet import registry
from fleet.maintenance import (
    evaluate_maintenance, bus_maintenance_status, maintenance_due_alerts, maintenance_warnings
)
from fleet.models import Route, Bus, Driver, Conductor, MaintenanceRecord
from fleet.serializers import MaintenanceRecordSerializer
from fleet.services import update_resource, delete_resource
from schedules.exceptions import ConcurrentUpdateError, NotFoundError, ValidationError
from schedules.models import Schedule

User = get_user_model()

TODAY = date(2025, 6, 1)


def create_fleet(depot, suffix=''):
    """Create one route and one bus, driver and conductor for a depot."""
    route, _ = Route.objects.get_or_create(
        route_name='138',
        defaults={
            'start_location': 'Swargate',
            'end_location': 'Hinjewadi',
            'distance_km': Decimal('24.50'),
            'estimated_duration': 75,
        }
    )
    bus = Bus.objects.create(number=f'NB-1234{suffix}', model='Tata Starbus', depot=depot)
    driver = Driver.objects.create(name=f'Ramesh{suffix}', license_number=f'DL-001{suffix}', depot=depot)
    conductor = Conductor.objects.create(name=f'Ganesh{suffix}', depot=depot)
    return route, bus, driver, conductor


def create_schedule(depot, route, bus, driver, conductor, day=TODAY,
                    departure=time(8, 0), arrival=time(10, 0), **extra):
    return Schedule.objects.create(
        route=route, bus=bus, driver=driver, conductor=conductor, depot=depot,
        date=day, departure_time=departure, arrival_time=arrival, **extra
    )


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class ResourceModelTests(TestCase):
    """Test assignability of buses and staff."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.route, self.bus, self.driver, self.conductor = create_fleet(self.depot)

    def test_only_active_bus_is_assignable(self):
        """Test a bus is assignable only while active."""
        self.assertTrue(self.bus.is_assignable)
        for state in (Bus.STATUS_INACTIVE, Bus.STATUS_MAINTENANCE, Bus.STATUS_BREAKDOWN):
            self.bus.status = state
            self.assertFalse(self.bus.is_assignable, state)

    def test_only_available_staff_is_assignable(self):
        """Test drivers and conductors are assignable only while available."""
        self.assertTrue(self.driver.is_assignable)
        self.assertTrue(self.conductor.is_assignable)
        for state in (Driver.ON_DUTY, Driver.OFF, Driver.LEAVE):
            self.driver.availability = state
            self.conductor.availability = state
            self.assertFalse(self.driver.is_assignable, state)
            self.assertFalse(self.conductor.is_assignable, state)

    def test_string_representations(self):
        """Test resource __str__ values used in conflict messages."""
        self.assertEqual(str(self.route), 'Route 138')
        self.assertEqual(str(self.bus), 'Bus NB-1234')
        self.assertEqual(str(self.driver), 'Driver Ramesh')
        self.assertEqual(str(self.conductor), 'Conductor Ganesh')

    def test_maintenance_record_completed_before_scheduled(self):
        """Test a record cannot be completed before it was scheduled."""
        record = MaintenanceRecord(
            bus=self.bus, depot=self.depot, description='Oil change',
            scheduled_date=TODAY, completed_date=TODAY - timedelta(days=1)
        )
        with self.assertRaises(DjangoValidationError):
            record.clean()


# =============================================================================
# UNIT TESTS - Registry
# =============================================================================

class RegistryTests(TestCase):
    """Test the assignable-resource registry."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.other_depot = Depot.objects.create(name='North Depot')
        self.route, self.bus, self.driver, self.conductor = create_fleet(self.depot)
        create_fleet(self.other_depot, suffix='-N')

    def test_lists_only_assignable_resources_of_depot(self):
        """Test lists contain active/available resources of the given depot."""
        Bus.objects.create(number='NB-9999', depot=self.depot, status=Bus.STATUS_MAINTENANCE)
        Driver.objects.create(name='Sunil', license_number='DL-002', depot=self.depot,
                              availability=Driver.LEAVE)
        Conductor.objects.create(name='Vijay', depot=self.depot, availability=Conductor.ON_DUTY)

        self.assertEqual(list(registry.list_assignable_buses(self.depot)), [self.bus])
        self.assertEqual(list(registry.list_assignable_drivers(self.depot)), [self.driver])
        self.assertEqual(list(registry.list_assignable_conductors(self.depot)), [self.conductor])

    def test_get_resource_scoped_to_depot(self):
        """Test a resource of another depot is not found."""
        self.assertEqual(registry.get_resource('bus', self.bus.pk, depot=self.depot), self.bus)
        with self.assertRaises(NotFoundError) as ctx:
            registry.get_resource('bus', self.bus.pk, depot=self.other_depot)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_get_missing_resource(self):
        """Test a missing id raises NotFoundError with its type."""
        with self.assertRaises(NotFoundError) as ctx:
            registry.get_resource('driver', 99999)
        self.assertEqual(ctx.exception.resource_type, 'driver')

    def test_resource_state_and_label(self):
        """Test state and label helpers."""
        self.assertEqual(registry.resource_state(self.bus), 'active')
        self.assertEqual(registry.resource_state(self.driver), 'available')
        self.assertEqual(registry.resource_label(self.bus), 'Bus NB-1234')
        self.assertEqual(registry.resource_label(self.conductor), 'Conductor Ganesh')


# =============================================================================
# UNIT TESTS - Maintenance evaluation
# =============================================================================

class MaintenanceEvaluationTests(TestCase):
    """Test the maintenance-due evaluator."""

    def test_no_due_date(self):
        """Test buses without a service date are not evaluated."""
        self.assertIsNone(evaluate_maintenance(None, TODAY))

    def test_overdue(self):
        """Test a past due date is overdue with days since due."""
        due = evaluate_maintenance(TODAY - timedelta(days=3), TODAY)
        self.assertTrue(due.is_overdue)
        self.assertFalse(due.is_due_soon)
        self.assertEqual(due.days_since_due, 3)
        self.assertIsNone(due.days_until_due)

    def test_due_today_is_due_soon(self):
        """Test a due date of today is due soon, not overdue."""
        due = evaluate_maintenance(TODAY, TODAY)
        self.assertFalse(due.is_overdue)
        self.assertTrue(due.is_due_soon)
        self.assertEqual(due.days_until_due, 0)

    def test_due_in_ten_days(self):
        """Test a bus due in ten days is due soon."""
        due = evaluate_maintenance(TODAY + timedelta(days=10), TODAY)
        self.assertTrue(due.is_due_soon)
        self.assertFalse(due.is_overdue)
        self.assertEqual(due.days_until_due, 10)

    def test_due_soon_window_boundary(self):
        """Test the due-soon window includes its last day."""
        self.assertTrue(evaluate_maintenance(TODAY + timedelta(days=30), TODAY).is_due_soon)
        later = evaluate_maintenance(TODAY + timedelta(days=31), TODAY)
        self.assertFalse(later.is_due_soon)
        self.assertEqual(later.days_until_due, 31)
        self.assertIsNone(later.days_since_due)

    def test_custom_window(self):
        """Test the window length can be configured."""
        self.assertFalse(evaluate_maintenance(TODAY + timedelta(days=10), TODAY, window_days=7).is_due_soon)

    @override_settings(MAINTENANCE_DUE_SOON_DAYS=7)
    def test_window_from_settings(self):
        """Test the default window comes from settings."""
        self.assertFalse(evaluate_maintenance(TODAY + timedelta(days=10), TODAY).is_due_soon)

    def test_alerts_and_warnings(self):
        """Test depot alerts are ordered by due date and warnings are advisory."""
        depot = Depot.objects.create(name='Central Depot')
        soon = Bus.objects.create(number='B-SOON', depot=depot, next_service_due=TODAY + timedelta(days=5))
        overdue = Bus.objects.create(number='B-LATE', depot=depot, next_service_due=TODAY - timedelta(days=2))
        Bus.objects.create(number='B-OK', depot=depot, next_service_due=TODAY + timedelta(days=90))
        Bus.objects.create(number='B-NONE', depot=depot)

        alerts = maintenance_due_alerts(depot, TODAY)

        self.assertEqual([a['bus_number'] for a in alerts], ['B-LATE', 'B-SOON'])
        self.assertEqual(maintenance_warnings(overdue, TODAY),
                         ['Bus B-LATE is overdue for service by 2 day(s)'])
        self.assertEqual(maintenance_warnings(soon, TODAY),
                         ['Bus B-SOON is due for service in 5 day(s)'])
        self.assertTrue(overdue.is_assignable)

    def test_bus_maintenance_status(self):
        """Test the per-bus status payload."""
        depot = Depot.objects.create(name='Central Depot')
        bus = Bus.objects.create(number='B-1', depot=depot, next_service_due=TODAY + timedelta(days=40))

        result = bus_maintenance_status(bus, TODAY)

        self.assertFalse(result['is_overdue'])
        self.assertFalse(result['is_due_soon'])
        self.assertEqual(result['days_until_due'], 40)


# =============================================================================
# UNIT TESTS - Resource mutations
# =============================================================================

class ResourceMutationTests(TestCase):
    """Test that status changes and deletions flag dependent schedules."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.route, self.bus, self.driver, self.conductor = create_fleet(self.depot)
        self.schedule = create_schedule(self.depot, self.route, self.bus, self.driver, self.conductor)

    def test_bus_to_maintenance_flags_schedule(self):
        """Test a bus leaving active status flags and detaches its schedules."""
        bus, flagged = update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_MAINTENANCE},
                                       today=TODAY)

        self.assertEqual(bus.status, Bus.STATUS_MAINTENANCE)
        self.assertEqual([s.pk for s in flagged], [self.schedule.pk])
        self.schedule.refresh_from_db()
        self.assertTrue(self.schedule.flagged_for_reassignment)
        self.assertIsNone(self.schedule.bus_id)
        self.assertEqual(self.schedule.driver_id, self.driver.pk)

    def test_driver_on_leave_flags_schedule(self):
        """Test a driver going on leave flags the schedule and keeps the other resources."""
        _, flagged = update_resource(self.depot, 'driver', self.driver.pk, {'availability': Driver.LEAVE},
                                     today=TODAY)

        self.assertEqual(len(flagged), 1)
        self.schedule.refresh_from_db()
        self.assertTrue(self.schedule.flagged_for_reassignment)
        self.assertIsNone(self.schedule.driver_id)
        self.assertEqual(self.schedule.bus_id, self.bus.pk)
        self.assertEqual(self.schedule.conductor_id, self.conductor.pk)

    def test_assignable_change_flags_nothing(self):
        """Test an update that keeps the resource assignable flags nothing."""
        _, flagged = update_resource(self.depot, 'bus', self.bus.pk, {'mileage': 50000}, today=TODAY)

        self.assertEqual(flagged, [])
        self.schedule.refresh_from_db()
        self.assertFalse(self.schedule.flagged_for_reassignment)

    def test_past_and_finished_schedules_untouched(self):
        """Test only scheduled/in-progress schedules from today on are flagged."""
        past = create_schedule(self.depot, self.route, self.bus, self.driver, self.conductor,
                               day=TODAY - timedelta(days=1))
        done = create_schedule(self.depot, self.route, self.bus, self.driver, self.conductor,
                               day=TODAY, departure=time(12, 0), arrival=time(13, 0),
                               status=Schedule.STATUS_COMPLETED, trips_done=1)
        cancelled = create_schedule(self.depot, self.route, self.bus, self.driver, self.conductor,
                                    day=TODAY + timedelta(days=1), status=Schedule.STATUS_CANCELLED)

        _, flagged = update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_BREAKDOWN},
                                     today=TODAY)

        self.assertEqual([s.pk for s in flagged], [self.schedule.pk])
        for schedule in (past, done, cancelled):
            schedule.refresh_from_db()
            self.assertFalse(schedule.flagged_for_reassignment)
            self.assertEqual(schedule.bus_id, self.bus.pk)

    def test_unrelated_schedules_untouched(self):
        """Test schedules using other resources are not flagged."""
        other_route, other_bus, other_driver, other_conductor = create_fleet(self.depot, suffix='-2')
        other = create_schedule(self.depot, other_route, other_bus, other_driver, other_conductor)

        update_resource(self.depot, 'conductor', self.conductor.pk, {'availability': Conductor.OFF},
                        today=TODAY)

        other.refresh_from_db()
        self.assertFalse(other.flagged_for_reassignment)

    def test_second_unassignable_transition_flags_nothing_new(self):
        """Test moving between unassignable states does not flag again."""
        update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_MAINTENANCE}, today=TODAY)
        _, flagged = update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_BREAKDOWN},
                                     today=TODAY)
        self.assertEqual(flagged, [])

    def test_delete_flags_schedule(self):
        """Test deleting a resource flags its schedules."""
        flagged = delete_resource(self.depot, 'conductor', self.conductor.pk, today=TODAY)

        self.assertEqual(len(flagged), 1)
        self.assertFalse(Conductor.objects.filter(pk=self.conductor.pk).exists())
        self.schedule.refresh_from_db()
        self.assertTrue(self.schedule.flagged_for_reassignment)
        self.assertIsNone(self.schedule.conductor_id)

    def test_lock_contention_reported_as_concurrent_update(self):
        """Test a locked table while flagging rolls the status change back with a retryable error."""
        with patch('fleet.services.flag_schedules_for_resource',
                   side_effect=OperationalError('database table is locked')):
            with self.assertRaises(ConcurrentUpdateError):
                update_resource(self.depot, 'bus', self.bus.pk, {'status': Bus.STATUS_MAINTENANCE},
                                today=TODAY)

        self.bus.refresh_from_db()
        self.assertEqual(self.bus.status, Bus.STATUS_ACTIVE)

    def test_unknown_field_rejected(self):
        """Test fields outside the updatable set are rejected."""
        with self.assertRaises(ValidationError) as ctx:
            update_resource(self.depot, 'bus', self.bus.pk, {'depot': None})
        self.assertEqual(ctx.exception.field, 'depot')

    def test_other_depot_cannot_mutate(self):
        """Test resources of another depot are not found."""
        other_depot = Depot.objects.create(name='North Depot')
        with self.assertRaises(NotFoundError):
            delete_resource(other_depot, 'bus', self.bus.pk)
        self.assertTrue(Bus.objects.filter(pk=self.bus.pk).exists())


# =============================================================================
# UNIT TESTS - Serializers
# =============================================================================

class MaintenanceRecordSerializerTests(TestCase):
    """Test maintenance record validation and service date bookkeeping."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.route, self.bus, self.driver, self.conductor = create_fleet(self.depot)

    def test_completed_record_sets_last_service_date(self):
        """Test completing a record updates the bus's last service date."""
        serializer = MaintenanceRecordSerializer(data={
            'bus_id': self.bus.pk,
            'type': 'routine',
            'status': 'completed',
            'description': 'Quarterly service',
            'scheduled_date': '2025-05-01',
            'completed_date': '2025-05-02',
        }, context={'depot': self.depot})

        self.assertTrue(serializer.is_valid(), serializer.errors)
        record = serializer.save()

        self.bus.refresh_from_db()
        self.assertEqual(record.depot, self.depot)
        self.assertEqual(self.bus.last_service_date, date(2025, 5, 2))

    def test_completed_date_before_scheduled_rejected(self):
        """Test completed date must not precede the scheduled date."""
        serializer = MaintenanceRecordSerializer(data={
            'bus_id': self.bus.pk,
            'description': 'Brake repair',
            'scheduled_date': '2025-05-10',
            'completed_date': '2025-05-01',
        }, context={'depot': self.depot})

        self.assertFalse(serializer.is_valid())
        self.assertIn('completed_date', serializer.errors)

    def test_completed_without_date_rejected(self):
        """Test a completed record needs its completion date."""
        serializer = MaintenanceRecordSerializer(data={
            'bus_id': self.bus.pk,
            'status': 'completed',
            'description': 'Brake repair',
            'scheduled_date': '2025-05-10',
        }, context={'depot': self.depot})

        self.assertFalse(serializer.is_valid())
        self.assertIn('completed_date', serializer.errors)

    def test_bus_of_other_depot_rejected(self):
        """Test records can only be created for the depot's own buses."""
        other_depot = Depot.objects.create(name='North Depot')
        serializer = MaintenanceRecordSerializer(data={
            'bus_id': self.bus.pk,
            'description': 'Oil change',
            'scheduled_date': '2025-05-10',
        }, context={'depot': other_depot})

        self.assertFalse(serializer.is_valid())
        self.assertIn('bus_id', serializer.errors)


# =============================================================================
# INTEGRATION TESTS - API
# =============================================================================

@override_settings(API_LOGGING_ENABLED=False)
class FleetAPITests(APITestCase):
    """Integration tests for fleet endpoints."""

    def setUp(self):
        self.depot = Depot.objects.create(name='Central Depot')
        self.user = User.objects.create_user(
            email='operator@example.com', password='OperatorPass123!', name='Operator', depot=self.depot
        )
        self.route, self.bus, self.driver, self.conductor = create_fleet(self.depot)
        self.today = timezone.localdate()
        self.schedule = create_schedule(self.depot, self.route, self.bus, self.driver, self.conductor,
                                        day=self.today + timedelta(days=1))
        self.client.force_authenticate(user=self.user)

    def test_list_routes(self):
        """Test routes are listed for any authenticated user."""
        response = self.client.get('/api/fleet/routes/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['route_name'], '138')

    def test_list_assignable_buses(self):
        """Test the registry endpoint lists active buses only."""
        Bus.objects.create(number='NB-0000', depot=self.depot, status=Bus.STATUS_BREAKDOWN)

        response = self.client.get('/api/fleet/buses/assignable/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([b['number'] for b in response.data['results']], ['NB-1234'])

    def test_patch_bus_status_returns_flagged(self):
        """Test a status change through the API flags the schedule."""
        response = self.client.patch(f'/api/fleet/buses/{self.bus.pk}/', {'status': 'maintenance'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['bus']['status'], 'maintenance')
        self.assertEqual(len(response.data['flagged_schedules']), 1)
        self.assertTrue(response.data['flagged_schedules'][0]['flagged_for_reassignment'])
        self.assertIsNone(response.data['flagged_schedules'][0]['bus'])

    def test_patch_invalid_status(self):
        """Test an unknown status is rejected by the serializer."""
        response = self.client.patch(f'/api/fleet/buses/{self.bus.pk}/', {'status': 'flying'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('status', response.data)

    def test_delete_driver(self):
        """Test deleting a driver flags the schedule."""
        response = self.client.delete(f'/api/fleet/drivers/{self.driver.pk}/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['flagged_schedules']), 1)
        self.schedule.refresh_from_db()
        self.assertTrue(self.schedule.flagged_for_reassignment)

    def test_resource_of_other_depot_not_found(self):
        """Test operators cannot touch other depots' resources."""
        other_depot = Depot.objects.create(name='North Depot')
        _, other_bus, _, _ = create_fleet(other_depot, suffix='-N')

        response = self.client.patch(f'/api/fleet/buses/{other_bus.pk}/', {'status': 'inactive'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Not found')

    def test_maintenance_due_and_status(self):
        """Test maintenance alert endpoints."""
        self.bus.next_service_due = self.today - timedelta(days=1)
        self.bus.save()

        due = self.client.get('/api/fleet/maintenance/due/')
        detail = self.client.get(f'/api/fleet/buses/{self.bus.pk}/maintenance-status/')

        self.assertEqual(due.status_code, status.HTTP_200_OK)
        self.assertEqual(due.data['count'], 1)
        self.assertTrue(detail.data['is_overdue'])
        self.assertEqual(detail.data['days_since_due'], 1)

    def test_maintenance_record_lifecycle(self):
        """Test create, complete and delete a maintenance record."""
        created = self.client.post('/api/fleet/maintenance/', {
            'bus_id': self.bus.pk,
            'type': 'repair',
            'description': 'Brake pads',
            'scheduled_date': str(self.today),
        }, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        record_id = created.data['record']['id']

        completed = self.client.patch(f'/api/fleet/maintenance/{record_id}/', {
            'status': 'completed',
            'completed_date': str(self.today),
        }, format='json')
        self.assertEqual(completed.status_code, status.HTTP_200_OK)
        self.bus.refresh_from_db()
        self.assertEqual(self.bus.last_service_date, self.today)

        deleted = self.client.delete(f'/api/fleet/maintenance/{record_id}/')
        self.assertEqual(deleted.status_code, status.HTTP_200_OK)
        self.assertFalse(MaintenanceRecord.objects.filter(pk=record_id).exists())

    def test_user_without_depot_forbidden(self):
        """Test users without a depot cannot use depot endpoints."""
        outsider = User.objects.create_user(email='out@example.com', password='x', name='Out')
        self.client.force_authenticate(user=outsider)

        response = self.client.get('/api/fleet/buses/assignable/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated(self):
        """Test unauthenticated requests are rejected."""
        self.client.force_authenticate(user=None)
        response = self.client.get('/api/fleet/routes/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
