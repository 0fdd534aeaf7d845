from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from tarodan.core.permissions import IsNotBanned
from tarodan.core.utils import paginate
from tarodan.orders.serializers import OrderSerializer
from .models import Offer
from .serializers import OfferSerializer, OfferCreateSerializer, CounterOfferSerializer
from . import services


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def offer_list_create(request):
    """
    GET: offers the user is part of; `role=buyer` for offers made,
    `role=seller` for offers received, optional `status` and `product`.
    POST: make an offer on a listing.
    """
    if request.method == 'GET':
        user = request.user
        role = request.query_params.get('role')
        if role == 'buyer':
            offers = Offer.objects.filter(buyer=user)
        elif role == 'seller':
            offers = Offer.objects.filter(seller=user)
        else:
            offers = Offer.objects.filter(Q(buyer=user) | Q(seller=user))
        status_filter = request.query_params.get('status')
        if status_filter:
            offers = offers.filter(status=status_filter)
        product_id = request.query_params.get('product')
        if product_id:
            offers = offers.filter(product_id=product_id)
        offers = offers.select_related('product', 'buyer', 'seller')
        return Response(paginate(offers, request, OfferSerializer))

    serializer = OfferCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    offer = services.create_offer(
        request.user,
        serializer.validated_data['product_id'],
        serializer.validated_data['amount'],
        serializer.validated_data['message'],
        request=request,
    )
    return Response(OfferSerializer(offer).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def offer_detail(request, pk):
    offer = services.get_offer_for_party(pk, request.user)
    return Response(OfferSerializer(offer).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def offer_accept(request, pk):
    offer, order = services.accept_offer(pk, request.user, request=request)
    return Response({
        'offer': OfferSerializer(offer).data,
        'order': OrderSerializer(order).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def offer_reject(request, pk):
    offer = services.reject_offer(pk, request.user, request=request)
    return Response(OfferSerializer(offer).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def offer_counter(request, pk):
    serializer = CounterOfferSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    counter = services.counter_offer(
        pk, request.user,
        serializer.validated_data['amount'],
        serializer.validated_data['message'],
        request=request,
    )
    return Response(OfferSerializer(counter).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def offer_cancel(request, pk):
    offer = services.cancel_offer(pk, request.user, request=request)
    return Response(OfferSerializer(offer).data)
