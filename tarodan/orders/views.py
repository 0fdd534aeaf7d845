from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from tarodan.core.permissions import IsNotBanned
from tarodan.core.utils import paginate
from .models import Order
from .serializers import OrderSerializer, BuyNowSerializer, ShipOrderSerializer, CancelOrderSerializer
from . import services


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def order_list_create(request):
    """
    GET: the user's orders; `role=buyer|seller` narrows to purchases or sales.
    POST: buy a listing now.
    """
    if request.method == 'GET':
        user = request.user
        role = request.query_params.get('role')
        if role == 'buyer':
            orders = Order.objects.filter(buyer=user)
        elif role == 'seller':
            orders = Order.objects.filter(seller=user)
        else:
            orders = Order.objects.filter(Q(buyer=user) | Q(seller=user))
        status_filter = request.query_params.get('status')
        if status_filter:
            orders = orders.filter(status=status_filter)
        orders = orders.select_related('buyer', 'seller', 'product')
        return Response(paginate(orders, request, OrderSerializer))

    serializer = BuyNowSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    order = services.buy_now(
        request.user,
        serializer.validated_data['product_id'],
        serializer.validated_data['shipping_address'],
        request=request,
    )
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    order = services.get_order_for_party(pk, request.user)
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def order_ship(request, pk):
    serializer = ShipOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    order = services.ship_order(
        pk, request.user,
        serializer.validated_data['carrier'],
        serializer.validated_data['tracking_number'],
        request=request,
    )
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def order_deliver(request, pk):
    order = services.confirm_delivery(pk, request.user, request=request)
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def order_complete(request, pk):
    order = services.complete_order(pk, request.user, request=request)
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def order_cancel(request, pk):
    serializer = CancelOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    order = services.cancel_order(pk, request.user, serializer.validated_data['reason'], request=request)
    return Response(OrderSerializer(order).data)
