"""Views for fleet resources, the assignable-resource registry and maintenance."""
from django.utils import timezone
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers as drf_serializers

from core.permissions import IsDepotOperator
from schedules.exceptions import SchedulingError, NotFoundError
from schedules.serializers import ScheduleSerializer
from . import registry, services
from .maintenance import bus_maintenance_status, maintenance_due_alerts
from .models import Route, MaintenanceRecord
from .serializers import (
    RouteSerializer, RESOURCE_SERIALIZERS, MaintenanceRecordSerializer, MaintenanceStatusSerializer
)


# Response serializers for Swagger
class FlaggedResponseSerializer(drf_serializers.Serializer):
    message = drf_serializers.CharField()
    flagged_schedules = ScheduleSerializer(many=True)


class RouteListView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List routes",
        description="Route reference data shared by all depots",
        responses={200: RouteSerializer(many=True)},
        tags=["Fleet"]
    )
    def get(self, request):
        routes = Route.objects.all().order_by('route_name')
        return Response({'count': routes.count(), 'results': RouteSerializer(routes, many=True).data})


class AssignableResourceListView(APIView):
    """Buses, drivers or conductors that can take a new assignment."""
    permission_classes = [IsAuthenticated, IsDepotOperator]
    resource_type = None

    @extend_schema(
        summary="List assignable resources",
        description="Active buses or available drivers/conductors of the operator's depot",
        tags=["Fleet"]
    )
    def get(self, request):
        resources = registry.ASSIGNABLE_LISTS[self.resource_type](request.user.depot)
        serializer_class = RESOURCE_SERIALIZERS[self.resource_type]
        return Response({'count': resources.count(), 'results': serializer_class(resources, many=True).data})


class ResourceDetailView(APIView):
    """
    Read, update or delete a bus, driver or conductor.
    Status/availability changes and deletions flag dependent schedules.
    """
    permission_classes = [IsAuthenticated, IsDepotOperator]
    resource_type = None

    @extend_schema(summary="Get resource", tags=["Fleet"])
    def get(self, request, pk):
        try:
            resource = registry.get_resource(self.resource_type, pk, depot=request.user.depot)
        except NotFoundError as e:
            return Response(e.to_dict(), status=e.status_code)
        return Response(RESOURCE_SERIALIZERS[self.resource_type](resource).data)

    @extend_schema(
        summary="Update resource",
        description="Partial update. A bus leaving 'active' or staff leaving 'available' "
                    "flags their upcoming schedules for reassignment.",
        responses={200: FlaggedResponseSerializer},
        tags=["Fleet"]
    )
    def patch(self, request, pk):
        depot = request.user.depot
        serializer_class = RESOURCE_SERIALIZERS[self.resource_type]
        try:
            resource = registry.get_resource(self.resource_type, pk, depot=depot)
            serializer = serializer_class(resource, data=request.data, partial=True)
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            resource, flagged = services.update_resource(
                depot, self.resource_type, pk, serializer.validated_data
            )
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response({
            'message': f"{self.resource_type.capitalize()} updated successfully",
            self.resource_type: serializer_class(resource).data,
            'flagged_schedules': ScheduleSerializer(flagged, many=True).data,
        })

    @extend_schema(
        summary="Delete resource",
        description="Hard delete. Upcoming schedules using the resource are flagged for reassignment.",
        responses={200: FlaggedResponseSerializer},
        tags=["Fleet"]
    )
    def delete(self, request, pk):
        try:
            flagged = services.delete_resource(request.user.depot, self.resource_type, pk)
        except SchedulingError as e:
            return Response(e.to_dict(), status=e.status_code)

        return Response({
            'message': f"{self.resource_type.capitalize()} deleted successfully",
            'flagged_schedules': ScheduleSerializer(flagged, many=True).data,
        })


class BusMaintenanceStatusView(APIView):
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="Bus maintenance status",
        responses={200: MaintenanceStatusSerializer},
        tags=["Maintenance"]
    )
    def get(self, request, pk):
        try:
            bus = registry.get_resource('bus', pk, depot=request.user.depot)
        except NotFoundError as e:
            return Response(e.to_dict(), status=e.status_code)
        return Response(MaintenanceStatusSerializer(bus_maintenance_status(bus)).data)


class MaintenanceDueView(APIView):
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="Maintenance due alerts",
        description="Buses of the depot that are overdue or due for service soon",
        responses={200: inline_serializer(name='MaintenanceDueResponse', fields={
            'count': drf_serializers.IntegerField(),
            'results': MaintenanceStatusSerializer(many=True),
        })},
        tags=["Maintenance"]
    )
    def get(self, request):
        alerts = maintenance_due_alerts(request.user.depot, timezone.localdate())
        return Response({'count': len(alerts), 'results': MaintenanceStatusSerializer(alerts, many=True).data})


class MaintenanceListCreateView(APIView):
    permission_classes = [IsAuthenticated, IsDepotOperator]

    @extend_schema(
        summary="List maintenance records",
        responses={200: MaintenanceRecordSerializer(many=True)},
        tags=["Maintenance"]
    )
    def get(self, request):
        records = MaintenanceRecord.objects.filter(
            depot=request.user.depot
        ).select_related('bus').order_by('-scheduled_date')
        return Response({'count': records.count(), 'results': MaintenanceRecordSerializer(records, many=True).data})

    @extend_schema(
        summary="Create maintenance record",
        request=MaintenanceRecordSerializer,
        responses={201: MaintenanceRecordSerializer},
        tags=["Maintenance"]
    )
    def post(self, request):
        serializer = MaintenanceRecordSerializer(data=request.data, context={'depot': request.user.depot})
        if serializer.is_valid():
            record = serializer.save()
            return Response({
                'message': 'Maintenance record created successfully',
                'record': MaintenanceRecordSerializer(record).data
            }, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class MaintenanceDetailView(APIView):
    permission_classes = [IsAuthenticated, IsDepotOperator]

    def _get_record(self, request, pk):
        return MaintenanceRecord.objects.select_related('bus').get(pk=pk, depot=request.user.depot)

    @extend_schema(
        summary="Update maintenance record",
        description="Partial update; marking a record completed sets the bus's last service date.",
        request=MaintenanceRecordSerializer,
        responses={200: MaintenanceRecordSerializer},
        tags=["Maintenance"]
    )
    def patch(self, request, pk):
        try:
            record = self._get_record(request, pk)
        except MaintenanceRecord.DoesNotExist:
            return Response({'error': 'Maintenance record not found'}, status=status.HTTP_404_NOT_FOUND)

        serializer = MaintenanceRecordSerializer(
            record, data=request.data, partial=True, context={'depot': request.user.depot}
        )
        if serializer.is_valid():
            record = serializer.save()
            return Response({
                'message': 'Maintenance record updated successfully',
                'record': MaintenanceRecordSerializer(record).data
            })
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    @extend_schema(summary="Delete maintenance record", tags=["Maintenance"])
    def delete(self, request, pk):
        try:
            record = self._get_record(request, pk)
        except MaintenanceRecord.DoesNotExist:
            return Response({'error': 'Maintenance record not found'}, status=status.HTTP_404_NOT_FOUND)
        record.delete()
        return Response({'message': 'Maintenance record deleted successfully'})
