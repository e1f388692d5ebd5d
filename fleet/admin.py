from django.contrib import admin
from .models import Route, Bus, Driver, Conductor, MaintenanceRecord


@admin.register(Route)
class RouteAdmin(admin.ModelAdmin):
    list_display = ['route_name', 'start_location', 'end_location', 'distance_km', 'estimated_duration']
    search_fields = ['route_name', 'start_location', 'end_location']
    ordering = ['route_name']


@admin.register(Bus)
class BusAdmin(admin.ModelAdmin):
    list_display = ['number', 'model', 'status', 'mileage', 'next_service_due', 'depot']
    list_filter = ['status', 'depot']
    search_fields = ['number', 'model']
    ordering = ['number']


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    list_display = ['name', 'license_number', 'license_expiry', 'availability', 'depot']
    list_filter = ['availability', 'depot']
    search_fields = ['name', 'license_number']


@admin.register(Conductor)
class ConductorAdmin(admin.ModelAdmin):
    list_display = ['name', 'contact_number', 'availability', 'depot']
    list_filter = ['availability', 'depot']
    search_fields = ['name']


@admin.register(MaintenanceRecord)
class MaintenanceRecordAdmin(admin.ModelAdmin):
    list_display = ['bus', 'type', 'status', 'scheduled_date', 'completed_date', 'cost']
    list_filter = ['type', 'status']
    search_fields = ['bus__number', 'description']
    ordering = ['-scheduled_date']
