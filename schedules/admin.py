from django.contrib import admin
from .models import Schedule


@admin.register(Schedule)
class ScheduleAdmin(admin.ModelAdmin):
    list_display = [
        'route', 'date', 'departure_time', 'arrival_time', 'bus', 'driver', 'conductor',
        'status', 'trips_done', 'trips_total', 'flagged_for_reassignment'
    ]
    list_filter = ['status', 'flagged_for_reassignment', 'date', 'depot']
    search_fields = ['route__route_name', 'bus__number', 'driver__name', 'conductor__name']
    ordering = ['date', 'departure_time']
    raw_id_fields = ['bus', 'driver', 'conductor']
