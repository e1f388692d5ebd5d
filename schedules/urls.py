"""
URL configuration for schedules app.
"""
from django.urls import path
from .views import (
    ScheduleListCreateView, ScheduleDetailView, ScheduleReassignView,
    ScheduleTripView, FlaggedScheduleListView, ConflictCheckView,
)

urlpatterns = [
    path('', ScheduleListCreateView.as_view(), name='schedule_list'),
    path('flagged/', FlaggedScheduleListView.as_view(), name='schedule_flagged'),
    path('check-conflicts/', ConflictCheckView.as_view(), name='schedule_check_conflicts'),
    path('<int:pk>/', ScheduleDetailView.as_view(), name='schedule_detail'),
    path('<int:pk>/reassign/', ScheduleReassignView.as_view(), name='schedule_reassign'),
    path('<int:pk>/trips/', ScheduleTripView.as_view(), name='schedule_trip'),
]
