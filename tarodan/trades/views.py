from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from tarodan.core.permissions import IsNotBanned
from tarodan.core.utils import paginate
from .models import Trade
from .serializers import TradeSerializer, TradeCreateSerializer, TradeProposalSerializer, TradeResponseSerializer, TradeCancelSerializer
from . import services


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def trade_list_create(request):
    """
    GET: trades the user is part of; `role=initiator|receiver`, optional `status`.
    POST: propose a trade.
    """
    if request.method == 'GET':
        user = request.user
        role = request.query_params.get('role')
        if role == 'initiator':
            trades = Trade.objects.filter(initiator=user)
        elif role == 'receiver':
            trades = Trade.objects.filter(receiver=user)
        else:
            trades = Trade.objects.filter(Q(initiator=user) | Q(receiver=user))
        status_filter = request.query_params.get('status')
        if status_filter:
            trades = trades.filter(status=status_filter)
        trades = trades.select_related('initiator', 'receiver').prefetch_related('items__product__images')
        return Response(paginate(trades, request, TradeSerializer))

    serializer = TradeCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    trade = services.create_trade(
        request.user,
        data['receiver_id'],
        data['initiator_items'],
        data['receiver_items'],
        cash_amount=data['cash_amount'],
        message=data['message'],
        request=request,
    )
    return Response(TradeSerializer(trade).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def trade_detail(request, pk):
    trade = services.get_trade_for_party(pk, request.user)
    return Response(TradeSerializer(trade).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def trade_accept(request, pk):
    serializer = TradeResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    trade = services.accept_trade(pk, request.user, serializer.validated_data['message'], request=request)
    return Response(TradeSerializer(trade).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def trade_reject(request, pk):
    serializer = TradeResponseSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    trade = services.reject_trade(pk, request.user, serializer.validated_data['message'], request=request)
    return Response(TradeSerializer(trade).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def trade_counter(request, pk):
    serializer = TradeProposalSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    counter = services.counter_trade(
        pk, request.user,
        data['initiator_items'],
        data['receiver_items'],
        cash_amount=data['cash_amount'],
        message=data['message'],
        request=request,
    )
    return Response(TradeSerializer(counter).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trade_cancel(request, pk):
    serializer = TradeCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    trade = services.cancel_trade(pk, request.user, serializer.validated_data['reason'], request=request)
    return Response(TradeSerializer(trade).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def trade_confirm(request, pk):
    trade = services.confirm_trade(pk, request.user, request=request)
    return Response(TradeSerializer(trade).data)
