import logging

from django.db import DatabaseError
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from storefront.catalog.utils import get_catalog_snapshot
from storefront.core.cache_utils import cached_query, ORDERS_PREFIX, ORDERS_LIST_CACHE_TTL
from storefront.core.exceptions import (
    RemoteReadFailure, RemoteWriteFailure, ValidationFailure, error_response,
)
from .composer import OrderDraft
from .filters import OrderFilter
from .models import Order
from .persistence import DjangoOrderStore
from .serializers import OrderSerializer, OrderDetailSerializer, OrderStatusSerializer
from .status import STATUS_LABELS, can_transition

logger = logging.getLogger(__name__)


@cached_query(cache_ttl=ORDERS_LIST_CACHE_TTL, key_prefix=ORDERS_PREFIX)
def get_order_rows(params):
    """Serialized orders, newest first, for a sorted tuple of filter params"""
    try:
        queryset = OrderFilter(dict(params), queryset=Order.objects.all()).qs
        return list(OrderSerializer(queryset, many=True).data)
    except DatabaseError as e:
        logger.error(f"Failed to load orders: {str(e)}")
        raise RemoteReadFailure('Error loading orders') from e


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_list_create(request):
    """
    GET: orders newest first, filtered by ``search``, ``status``, ``date_from`` and ``date_to``.
    POST: compose and store an order with its line items.
    """
    if request.method == 'GET':
        params = {
            key: value for key, value in request.query_params.items()
            if key in OrderFilter.base_filters and value != ''
        }
        filterset = OrderFilter(params, queryset=Order.objects.none())
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            rows = get_order_rows(tuple(sorted(params.items())))
        except RemoteReadFailure as e:
            return error_response(e, results=[], count=0)
        return Response({'results': rows, 'count': len(rows)})

    # POST
    try:
        draft = OrderDraft.from_payload(request.data)
    except ValidationFailure as e:
        return error_response(e)
    failure = draft.validate()
    if failure is not None:
        return error_response(failure)

    try:
        catalog = get_catalog_snapshot()
    except RemoteReadFailure as e:
        return error_response(e)

    try:
        order = draft.submit(catalog, DjangoOrderStore())
    except (ValidationFailure, RemoteWriteFailure) as e:
        return error_response(e)

    order = Order.objects.prefetch_related('items__product').get(pk=order.pk)
    return Response(OrderDetailSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """Retrieve an order with its line items"""
    order = get_object_or_404(Order.objects.prefetch_related('items__product'), pk=pk)
    return Response(OrderDetailSerializer(order).data)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def order_update_status(request, pk):
    """Change the status of an order"""
    order = get_object_or_404(Order, pk=pk)
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    new_status = serializer.validated_data['status']
    if not can_transition(order.status, new_status):
        return error_response(ValidationFailure(
            'status',
            f"Cannot change status from {STATUS_LABELS[order.status]} to {STATUS_LABELS[new_status]}",
        ))

    previous = order.status
    order.status = new_status
    try:
        order.save(update_fields=['status', 'updated_at'])
    except DatabaseError as e:
        logger.error(f"Failed to update status of order {order.pk}: {str(e)}")
        return error_response(RemoteWriteFailure('Error updating status'))

    logger.info(f"Order {order.pk} status changed from {previous} to {new_status}")
    return Response(OrderSerializer(order).data)
