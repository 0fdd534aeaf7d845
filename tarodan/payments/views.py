import logging

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser, AllowAny
from tarodan.core.permissions import IsNotBanned
from tarodan.core.utils import paginate
from .models import Payment, PaymentHold
from .serializers import (
    PaymentSerializer, PaymentAdminSerializer, PaymentHoldSerializer,
    InitiatePaymentSerializer, RetryPaymentSerializer, RefundSerializer,
)
from . import services

logger = logging.getLogger(__name__)


def _serializer_for(user):
    return PaymentAdminSerializer if user.is_staff else PaymentSerializer


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def payment_initiate(request):
    """Start a checkout for an order awaiting payment"""
    serializer = InitiatePaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    result = services.initiate_payment(
        request.user,
        serializer.validated_data['order_id'],
        serializer.validated_data['provider'],
        request=request,
    )
    return Response(result, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_list(request):
    """The user's payments; staff see every payment"""
    payments = Payment.objects.select_related('order')
    if not request.user.is_staff:
        payments = payments.filter(order__buyer=request.user)
    status_filter = request.query_params.get('status')
    if status_filter:
        payments = payments.filter(status=status_filter)
    return Response(paginate(payments, request, _serializer_for(request.user)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_detail(request, pk):
    payment = services.get_payment_for_user(pk, request.user)
    return Response(_serializer_for(request.user)(payment).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_status(request, pk):
    """Polled by clients while the checkout page is open"""
    return Response(services.get_payment_status(pk, request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def payment_retry(request, pk):
    serializer = RetryPaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    result = services.retry_payment(pk, request.user, serializer.validated_data.get('provider'), request=request)
    return Response(result, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def payment_cancel(request, pk):
    payment = services.cancel_payment(pk, request.user, request=request)
    return Response(PaymentSerializer(payment).data)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def payment_refund(request, order_id):
    serializer = RefundSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    payment = services.refund_payment(
        order_id,
        request.user,
        amount=serializer.validated_data.get('amount'),
        reason=serializer.validated_data['reason'],
        request=request,
    )
    return Response(PaymentAdminSerializer(payment).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_holds(request):
    """Seller's escrowed and released funds"""
    holds = PaymentHold.objects.filter(seller=request.user).select_related('order')
    status_filter = request.query_params.get('status')
    if status_filter:
        holds = holds.filter(status=status_filter)
    return Response(paginate(holds, request, PaymentHoldSerializer))


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def iyzico_callback(request):
    """Checkout result posted by iyzico (or forwarded by the web client)"""
    raw_body = request.body
    data = request.data.dict() if hasattr(request.data, 'dict') else dict(request.data)
    data.setdefault('paymentId', request.query_params.get('paymentId'))
    payment = services.handle_iyzico_callback(
        data,
        raw_body=raw_body,
        signature=request.headers.get('X-Iyz-Signature'),
        request=request,
    )
    return Response({'payment_id': payment.id, 'status': payment.status, 'order_id': payment.order_id})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def paytr_callback(request):
    """PayTR server notification; PayTR expects a plain `OK` body"""
    data = request.data.dict() if hasattr(request.data, 'dict') else dict(request.data)
    try:
        services.handle_paytr_callback(data, request=request)
    except APIException as e:
        logger.warning(f"PayTR callback rejected: {e.detail}")
        return HttpResponse('FAIL', status=e.status_code, content_type='text/plain')
    return HttpResponse('OK', content_type='text/plain')
