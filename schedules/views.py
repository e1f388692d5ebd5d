"""Views for schedule management."""
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from rest_framework import serializers as drf_serializers

from core.permissions import IsDepotOperator
from . import services
from .conflicts import build_proposal, check_conflict
from .exceptions import SchedulingError
from .flagging import list_flagged_schedules
from .models import Schedule
from .serializers import (
    ScheduleSerializer, ScheduleCreateSerializer, ScheduleUpdateSerializer,
    ReassignSerializer, ConflictCheckSerializer, ConflictResultSerializer
)


# Response serializers for Swagger
class ScheduleResponseSerializer(drf_serializers.Serializer):
    message = drf_serializers.CharField()
    schedule = ScheduleSerializer()


class ScheduleCreateResponseSerializer(ScheduleResponseSerializer):
    warnings = drf_serializers.ListField(child=drf_serializers.CharField())


class ScheduleListResponseSerializer(drf_serializers.Serializer):
    count = drf_serializers.IntegerField()
    results = ScheduleSerializer(many=True)


class ConflictErrorSerializer(drf_serializers.Serializer):
    error = drf_serializers.CharField()
    conflicts = drf_serializers.ListField(child=drf_serializers.CharField())


def _parse_flag(value):
    if value is None:
        return None
    return value.lower() in ('1', 'true', 'yes')


class ScheduleListCreateView(APIView):
    """List the depot's schedules or create a new one."""
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="List schedules",
        description="Schedules of the operator's depot ordered by date and departure",
        parameters=[
            OpenApiParameter(name='date', type=str, description='Filter by date (YYYY-MM-DD)'),
            OpenApiParameter(name='status', type=str, description='Filter by status'),
            OpenApiParameter(name='flagged', type=bool, description='Only flagged / unflagged schedules'),
        ],
        responses={200: ScheduleListResponseSerializer},
        tags=["Schedules"]
    )
    def get(self, request):
        date = request.query_params.get('date')
        schedule_status = request.query_params.get('status')

        if date is not None:
            try:
                date = parse_date(date)
            except ValueError:
                date = None
            if date is None:
                return Response({'error': 'Invalid date. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST)
        if schedule_status is not None and schedule_status not in Schedule.TRANSITIONS:
            return Response({'error': f"Invalid status '{schedule_status}'."}, status=status.HTTP_400_BAD_REQUEST)

        schedules = services.list_schedules(
            request.user.depot,
            date=date,
            status=schedule_status,
            flagged=_parse_flag(request.query_params.get('flagged')),
        )
        return Response({
            'count': schedules.count(),
            'results': ScheduleSerializer(schedules, many=True).data
        })

    @extend_schema(
        summary="Create a schedule",
        description="Assign a bus, driver and conductor to a route for a date and time window. "
                    "Rejected with 409 when a resource is unavailable or already scheduled in an "
                    "overlapping window.",
        request=ScheduleCreateSerializer,
        responses={201: ScheduleCreateResponseSerializer, 409: ConflictErrorSerializer},
        examples=[
            OpenApiExample(
                "Morning run",
                value={
                    "route_id": 1,
                    "bus_id": 1,
                    "driver_id": 1,
                    "conductor_id": 1,
                    "date": "2025-06-01",
                    "departure_time": "08:00",
                    "arrival_time": "10:00",
                    "trips_total": 2
                },
                request_only=True
            )
        ],
        tags=["Schedules"]
    )
    def post(self, request):
        serializer = ScheduleCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            schedule, warnings = services.create_schedule(request.user.depot, serializer.validated_data)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response({
            'message': 'Schedule created successfully',
            'schedule': ScheduleSerializer(schedule).data,
            'warnings': warnings
        }, status=status.HTTP_201_CREATED)


class ScheduleDetailView(APIView):
    """Read, update or delete a schedule."""
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(summary="Get schedule", responses={200: ScheduleSerializer}, tags=["Schedules"])
    def get(self, request, pk):
        try:
            schedule = services.get_schedule(request.user.depot, pk)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)
        return Response(ScheduleSerializer(schedule).data)

    @extend_schema(
        summary="Update schedule",
        description="Partial update. Route, resource and time changes are re-validated like a new "
                    "schedule; status and trip counter changes follow the status transition rules.",
        request=ScheduleUpdateSerializer,
        responses={200: ScheduleResponseSerializer, 409: ConflictErrorSerializer},
        tags=["Schedules"]
    )
    def patch(self, request, pk):
        serializer = ScheduleUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            schedule = services.update_schedule(request.user.depot, pk, serializer.validated_data)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response({
            'message': 'Schedule updated successfully',
            'schedule': ScheduleSerializer(services.get_schedule(request.user.depot, schedule.pk)).data
        })

    @extend_schema(summary="Delete schedule", tags=["Schedules"])
    def delete(self, request, pk):
        try:
            services.delete_schedule(request.user.depot, pk)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)
        return Response({'message': 'Schedule deleted successfully'})


class ScheduleReassignView(APIView):
    """Assign replacement resources to a (flagged) schedule."""
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="Reassign schedule resources",
        description="Replace the bus, driver and/or conductor. All three must end up assigned "
                    "and free of conflicts; the reassignment flag is cleared.",
        request=ReassignSerializer,
        responses={200: ScheduleResponseSerializer, 409: ConflictErrorSerializer},
        tags=["Schedules"]
    )
    def post(self, request, pk):
        serializer = ReassignSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            schedule = services.reassign_schedule(request.user.depot, pk, **serializer.validated_data)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response({
            'message': 'Schedule reassigned successfully',
            'schedule': ScheduleSerializer(services.get_schedule(request.user.depot, schedule.pk)).data
        })


class ScheduleTripView(APIView):
    """Record one completed trip."""
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="Record a completed trip",
        request=None,
        responses={200: ScheduleResponseSerializer},
        tags=["Schedules"]
    )
    def post(self, request, pk):
        try:
            schedule = services.record_trip(request.user.depot, pk)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response({
            'message': f"Trip {schedule.trips_done} of {schedule.trips_total} recorded",
            'schedule': ScheduleSerializer(services.get_schedule(request.user.depot, schedule.pk)).data
        })


class FlaggedScheduleListView(APIView):
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="Flagged schedules",
        description="Schedules that lost a resource and need reassignment",
        responses={200: ScheduleListResponseSerializer},
        tags=["Schedules"]
    )
    def get(self, request):
        schedules = list_flagged_schedules(request.user.depot)
        return Response({
            'count': schedules.count(),
            'results': ScheduleSerializer(schedules, many=True).data
        })


class ConflictCheckView(APIView):
    """Dry-run conflict check; nothing is written."""
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="Check a proposal for conflicts",
        request=ConflictCheckSerializer,
        responses={200: ConflictResultSerializer},
        tags=["Schedules"]
    )
    def post(self, request):
        serializer = ConflictCheckSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        exclude_schedule_id = data.get('exclude_schedule_id')
        if exclude_schedule_id is not None:
            try:
                services.get_schedule(request.user.depot, exclude_schedule_id)
            except SchedulingError as e:
                return Response(e.to_dict(), status=e.status_code)

        proposal = build_proposal(
            data['date'], data['departure_time'], data['arrival_time'],
            bus_id=data.get('bus_id'),
            driver_id=data.get('driver_id'),
            conductor_id=data.get('conductor_id'),
        )
        result = check_conflict(proposal, exclude_schedule_id=exclude_schedule_id)
        return Response(result.to_dict())
