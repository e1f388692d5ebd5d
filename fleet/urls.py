"""
URL configuration for fleet app.
"""
from django.urls import path
from .views import (
    RouteListView, AssignableResourceListView, ResourceDetailView,
    BusMaintenanceStatusView, MaintenanceDueView, MaintenanceListCreateView, MaintenanceDetailView,
)

urlpatterns = [
    path('routes/', RouteListView.as_view(), name='route_list'),

    path('buses/assignable/', AssignableResourceListView.as_view(resource_type='bus'), name='assignable_buses'),
    path('drivers/assignable/', AssignableResourceListView.as_view(resource_type='driver'), name='assignable_drivers'),
    path('conductors/assignable/', AssignableResourceListView.as_view(resource_type='conductor'), name='assignable_conductors'),

    path('buses/<int:pk>/', ResourceDetailView.as_view(resource_type='bus'), name='bus_detail'),
    path('drivers/<int:pk>/', ResourceDetailView.as_view(resource_type='driver'), name='driver_detail'),
    path('conductors/<int:pk>/', ResourceDetailView.as_view(resource_type='conductor'), name='conductor_detail'),

    path('buses/<int:pk>/maintenance-status/', BusMaintenanceStatusView.as_view(), name='bus_maintenance_status'),
    path('maintenance/', MaintenanceListCreateView.as_view(), name='maintenance_list'),
    path('maintenance/due/', MaintenanceDueView.as_view(), name='maintenance_due'),
    path('maintenance/<int:pk>/', MaintenanceDetailView.as_view(), name='maintenance_detail'),
]
