"""Views for the pickup scheduling API."""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.shortcuts import get_object_or_404
from django.utils import timezone

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import PickupRequest, ServiceDefinition
from .serializers import (
    CancelRequestSerializer,
    OccurrencePreviewQuerySerializer,
    PickupRequestReadSerializer,
    PickupRequestWriteSerializer,
    RequestStatusSerializer,
    ServiceDefinitionCreateSerializer,
    ServiceDefinitionReadSerializer,
    ServiceDefinitionWriteSerializer,
)
from . import services
from .types import RequestData, ServiceData, ServiceUpdateData


class IsStaffOrReadOnly(permissions.BasePermission):
    """Authenticated users may read; only staff may write."""

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return request.user.is_staff


def _request_data(validated_data) -> RequestData:
    return RequestData(
        service_id=validated_data['service_id'],
        day_of_week=validated_data['day_of_week'],
        address_id=validated_data['address_id'],
        request_date=validated_data['request_date'],
        user_id=validated_data.get('user_id'),
        is_recurring=validated_data.get('is_recurring', False),
        end_date=validated_data.get('end_date'),
        is_pick_up=validated_data.get('is_pick_up', True),
        is_drop_off=validated_data.get('is_drop_off', False),
        is_group_ride=validated_data.get('is_group_ride', False),
        number_of_group=validated_data.get('number_of_group'),
        notes=validated_data.get('notes'),
    )


def _visible_requests(user):
    queryset = PickupRequest.objects.select_related('service', 'service_weekday')
    if user.is_staff:
        return queryset
    return queryset.filter(user=user)


class ServiceListCreateView(APIView):
    """
    List all services or create a new one.

    GET /api/services/ - List services
    POST /api/services/ - Create a service (staff only)
    """

    permission_classes = [IsStaffOrReadOnly]

    def get(self, request):
        """List services; ``?active=true`` keeps only active ones."""
        queryset = ServiceDefinition.objects.prefetch_related('weekdays')
        if request.query_params.get('active', '').lower() == 'true':
            queryset = queryset.active()
        serializer = ServiceDefinitionReadSerializer(queryset, many=True)
        return Response(serializer.data)

    def post(self, request):
        """Create a service with its weekdays."""
        serializer = ServiceDefinitionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        service = services.create_service(ServiceData(
            name=data['name'],
            time_of_day=data['time'],
            weekdays=data['weekdays'],
            category=data['category'],
            frequency=data['frequency'],
            ordinal=data['ordinal'],
            start_date=data.get('start_date'),
            end_date=data.get('end_date'),
            is_active=data['is_active'],
        ))

        response_serializer = ServiceDefinitionReadSerializer(service)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class ServiceDetailView(APIView):
    """
    Retrieve or update a service.

    GET /api/services/{id}/ - Retrieve service
    PATCH /api/services/{id}/ - Update service (staff only)
    """

    permission_classes = [IsStaffOrReadOnly]

    def get(self, request, pk):
        service = get_object_or_404(ServiceDefinition, pk=pk)
        serializer = ServiceDefinitionReadSerializer(service)
        return Response(serializer.data)

    def patch(self, request, pk):
        service = get_object_or_404(ServiceDefinition, pk=pk)
        serializer = ServiceDefinitionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        update_data = ServiceUpdateData(
            name=data.get('name'),
            time_of_day=data.get('time'),
            weekdays=data.get('weekdays'),
            category=data.get('category'),
            frequency=data.get('frequency'),
            ordinal=data.get('ordinal'),
            start_date=data.get('start_date'),
            end_date=data.get('end_date'),
        )
        try:
            updated_service = services.update_service(service, update_data)
        except ValueError as exc:
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except DjangoValidationError as exc:
            return Response({'error': exc.messages}, status=status.HTTP_400_BAD_REQUEST)

        response_serializer = ServiceDefinitionReadSerializer(updated_service)
        return Response(response_serializer.data)


class ServiceToggleActiveView(APIView):
    """
    Archive or restore a service.

    POST /api/services/{id}/toggle-active/
    """

    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        service = get_object_or_404(ServiceDefinition, pk=pk)
        updated_service = services.toggle_service_active(service)

        return Response({
            'message': f"Service {'restored' if updated_service.is_active else 'deactivated'}",
            'service': ServiceDefinitionReadSerializer(updated_service).data
        })


class ServiceOccurrencesView(APIView):
    """
    Preview the upcoming dates of a service.

    GET /api/services/{id}/occurrences/?start=YYYY-MM-DD&count=N
    """

    def get(self, request, pk):
        service = get_object_or_404(ServiceDefinition, pk=pk)
        query_serializer = OccurrencePreviewQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        start = query_serializer.validated_data.get('start') or timezone.localdate()
        count = query_serializer.validated_data['count']
        dates = services.upcoming_service_dates(service, start, count)

        return Response({
            'service': service.pk,
            'dates': [d.isoformat() for d in dates]
        })


class PickupRequestListCreateView(APIView):
    """
    List the caller's pickup requests or create new ones.

    GET /api/requests/ - List requests (staff see everyone's)
    POST /api/requests/ - Create a one-off or recurring request
    """

    def get(self, request):
        queryset = _visible_requests(request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter.upper())
        serializer = PickupRequestReadSerializer(queryset, many=True)
        return Response(serializer.data)

    def post(self, request):
        serializer = PickupRequestWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        created = services.create_request(request.user, _request_data(serializer.validated_data))

        return Response({
            'series_id': created[0].series_id,
            'requests': PickupRequestReadSerializer(created, many=True).data
        }, status=status.HTTP_201_CREATED)


class PickupRequestDetailView(APIView):
    """
    Retrieve or update a pickup request.

    GET /api/requests/{id}/ - Retrieve request
    PATCH /api/requests/{id}/ - Update the request, or the rest of its series
    """

    def get(self, request, pk):
        pickup_request = get_object_or_404(_visible_requests(request.user), pk=pk)
        serializer = PickupRequestReadSerializer(pickup_request)
        return Response(serializer.data)

    def patch(self, request, pk):
        serializer = PickupRequestWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        updated = services.update_request(
            request.user,
            pk,
            _request_data(serializer.validated_data),
            update_series=serializer.validated_data['update_series']
        )

        return Response({
            'requests': PickupRequestReadSerializer(updated, many=True).data
        })


class PickupRequestCancelView(APIView):
    """
    Cancel a pickup request.

    POST /api/requests/{id}/cancel/
    """

    def post(self, request, pk):
        serializer = CancelRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pickup_request = services.cancel_request(
            request.user, pk, serializer.validated_data['reason']
        )

        return Response({
            'message': f'Pickup request on {pickup_request.request_date} has been cancelled.',
            'request': PickupRequestReadSerializer(pickup_request).data
        })


class PickupRequestStatusView(APIView):
    """
    Change the status of a pickup request.

    POST /api/requests/{id}/status/
    """

    def post(self, request, pk):
        serializer = RequestStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pickup_request = services.update_request_status(
            request.user, pk, serializer.validated_data['status']
        )

        return Response(PickupRequestReadSerializer(pickup_request).data)
