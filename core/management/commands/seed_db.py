"""
Management command to seed the database with sample data.

Usage:
    python manage.py seed_db           # Seed with default data
    python manage.py seed_db --clear   # Clear existing data first
"""
from datetime import time, timedelta
from decimal import Decimal
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.models import Depot, User
from fleet.models import Route, Bus, Driver, Conductor, MaintenanceRecord
from schedules.models import Schedule


class Command(BaseCommand):
    help = 'Seed the database with sample data for testing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Seeding database...')

        with transaction.atomic():
            depots = self.create_depots()
            self.create_users(depots)
            routes = self.create_routes()
            for depot in depots:
                fleet = self.create_fleet(depot)
                self.create_schedules(depot, routes, fleet)

        self.stdout.write(self.style.SUCCESS('Database seeded successfully!'))
        self.print_summary()

    def clear_data(self):
        Schedule.objects.all().delete()
        MaintenanceRecord.objects.all().delete()
        Bus.objects.all().delete()
        Driver.objects.all().delete()
        Conductor.objects.all().delete()
        Route.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()
        Depot.objects.all().delete()
        self.stdout.write(self.style.WARNING('  Cleared all non-superuser data'))

    def create_depots(self):
        depots_data = [
            ('Central Depot', 'Ring Road', 'Pune'),
            ('North Depot', 'Airport Road', 'Pune'),
        ]
        depots = []
        for name, location, city in depots_data:
            depot, created = Depot.objects.get_or_create(
                name=name,
                defaults={'location': location, 'city': city}
            )
            if created:
                self.stdout.write(f'  Created depot: {name}')
            depots.append(depot)
        return depots

    def create_users(self, depots):
        admin, created = User.objects.get_or_create(
            email='admin@fleet.local',
            defaults={'name': 'Admin User', 'is_admin': True, 'is_staff': True}
        )
        if created:
            admin.set_password('Admin@123')
            admin.save()
            self.stdout.write('  Created admin: admin@fleet.local / Admin@123')

        for depot in depots:
            email = f"operator.{depot.name.split()[0].lower()}@fleet.local"
            operator, created = User.objects.get_or_create(
                email=email,
                defaults={'name': f'{depot.name} Operator', 'depot': depot}
            )
            if created:
                operator.set_password('Operator@123')
                operator.save()
                self.stdout.write(f'  Created operator: {email} / Operator@123')

    def create_routes(self):
        routes_data = [
            ('138', 'Swargate', 'Hinjewadi', Decimal('24.5'), 75),
            ('21', 'Shivajinagar', 'Hadapsar', Decimal('13.0'), 45),
            ('94', 'Katraj', 'Pune Station', Decimal('11.2'), 40),
            ('204', 'Nigdi', 'Viman Nagar', Decimal('28.7'), 90),
        ]
        routes = []
        for name, start, end, distance, duration in routes_data:
            route, created = Route.objects.get_or_create(
                route_name=name,
                defaults={
                    'start_location': start,
                    'end_location': end,
                    'distance_km': distance,
                    'estimated_duration': duration,
                }
            )
            if created:
                self.stdout.write(f'  Created route: {name} {start} - {end}')
            routes.append(route)
        return routes

    def create_fleet(self, depot):
        today = timezone.localdate()
        prefix = depot.name[0]
        buses = []
        for i, (model, next_due) in enumerate([
            ('Tata Starbus', today + timedelta(days=120)),
            ('Ashok Leyland Viking', today + timedelta(days=10)),
            ('Volvo 8400', today - timedelta(days=5)),
        ], start=1):
            bus, _ = Bus.objects.get_or_create(
                number=f'MH12-{prefix}{i:03d}',
                defaults={
                    'model': model,
                    'depot': depot,
                    'mileage': 40000 * i,
                    'last_service_date': next_due - timedelta(days=180),
                    'next_service_due': next_due,
                }
            )
            buses.append(bus)

        drivers = []
        for i, name in enumerate(['Ramesh Patil', 'Sunil Jadhav', 'Anil More'], start=1):
            driver, _ = Driver.objects.get_or_create(
                license_number=f'DL-{prefix}-{i:05d}',
                defaults={
                    'name': name,
                    'depot': depot,
                    'license_expiry': today + timedelta(days=365 * i),
                    'contact_number': f'98220{i:05d}',
                }
            )
            drivers.append(driver)

        conductors = []
        for i, name in enumerate(['Ganesh Kale', 'Vijay Shinde', 'Prakash Pawar'], start=1):
            conductor, _ = Conductor.objects.get_or_create(
                name=f'{name} ({prefix})',
                depot=depot,
                defaults={'contact_number': f'98230{i:05d}'}
            )
            conductors.append(conductor)

        self.stdout.write(f'  Created fleet for {depot.name}')
        return buses, drivers, conductors

    def create_schedules(self, depot, routes, fleet):
        buses, drivers, conductors = fleet
        today = timezone.localdate()
        slots = [(time(6, 0), time(8, 0)), (time(8, 30), time(10, 30)), (time(17, 0), time(19, 0))]

        count = 0
        for day in range(3):
            for i, (departure, arrival) in enumerate(slots):
                _, created = Schedule.objects.get_or_create(
                    bus=buses[i],
                    date=today + timedelta(days=day),
                    departure_time=departure,
                    defaults={
                        'route': routes[i % len(routes)],
                        'driver': drivers[i],
                        'conductor': conductors[i],
                        'arrival_time': arrival,
                        'trips_total': 2,
                        'depot': depot,
                    }
                )
                count += int(created)
        self.stdout.write(f'  Created {count} schedules for {depot.name}')

    def print_summary(self):
        self.stdout.write('\n' + '=' * 50)
        self.stdout.write('DATABASE SUMMARY')
        self.stdout.write('=' * 50)
        self.stdout.write(f'  Depots:       {Depot.objects.count()}')
        self.stdout.write(f'  Users:        {User.objects.count()}')
        self.stdout.write(f'  Routes:       {Route.objects.count()}')
        self.stdout.write(f'  Buses:        {Bus.objects.count()}')
        self.stdout.write(f'  Drivers:      {Driver.objects.count()}')
        self.stdout.write(f'  Conductors:   {Conductor.objects.count()}')
        self.stdout.write(f'  Schedules:    {Schedule.objects.count()}')
        self.stdout.write('=' * 50)
