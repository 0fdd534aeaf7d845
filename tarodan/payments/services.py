"""
Payment flows: initiate a checkout, handle provider callbacks, retry, cancel,
refund and release of the seller's escrow hold.

A payment attempt is one Payment row. The order moves to `paid` only from a
verified provider result; the seller's share stays in a PaymentHold until the
buyer completes the order.
"""
import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.exceptions import ValidationError, PermissionDenied

from tarodan.catalog.models import Product
from tarodan.core.cache_utils import invalidate_products_cache, invalidate_membership_limits
from tarodan.core.utils import create_audit_log, get_client_ip
from tarodan.notifications.services import notify
from tarodan.orders.models import Order
from .models import Payment, PaymentHold
from .providers import get_client, ProviderError

logger = logging.getLogger(__name__)

PAYMENT_EXPIRES_IN = 300
PAYMENT_HOLD_DAYS = getattr(settings, 'PAYMENT_HOLD_DAYS', 7)
PAYMENT_TIMEOUT_MINUTES = getattr(settings, 'PAYMENT_TIMEOUT_MINUTES', 15)
DEFAULT_CITY = 'Istanbul'
DEFAULT_PHONE = '+905000000000'
LOCALLY_CLOSED_EVENTS = ('expired', 'cancelled', 'order_cancelled', 'superseded')
LATE_PAYMENT_REASON = 'Order no longer awaiting payment'


def _append_history(payment, event, **details):
    """Keep a per-payment trail of status events in metadata"""
    metadata = dict(payment.metadata or {})
    history = list(metadata.get('audit_history', []))
    history.append({'event': event, 'at': timezone.now().isoformat(), **details})
    metadata['audit_history'] = history
    payment.metadata = metadata


def _audit(payment, action, user=None, request=None, changes=None):
    create_audit_log(
        request=request,
        user=user,
        action=action,
        model_name='Payment',
        object_id=str(payment.id),
        object_reference=payment.order.order_number,
        changes=changes or {},
    )


def _split_name(user):
    parts = (user.get_display_name() or '').split(' ')
    first = parts[0] or 'Customer'
    last = ' '.join(parts[1:]) or first
    return first, last


def merchant_oid_for(payment):
    """PayTR only accepts alphanumeric merchant_oid values"""
    return f"{payment.order.order_number.replace('-', '')}{payment.id}"


def _start_iyzico(payment, order, client_ip):
    client = get_client('iyzico')
    first, last = _split_name(order.buyer)
    address = {
        'contactName': f"{first} {last}",
        'city': DEFAULT_CITY,
        'country': 'Turkey',
        'address': order.shipping_address or 'Turkey',
    }
    total = f"{order.total_amount:.2f}"
    result = client.initialize_checkout_form({
        'locale': 'tr',
        'conversationId': str(payment.id),
        'price': total,
        'paidPrice': total,
        'currency': 'TRY',
        'basketId': order.order_number,
        'paymentGroup': 'PRODUCT',
        'callbackUrl': f"{settings.FRONTEND_URL}/payment/callback/iyzico?paymentId={payment.id}",
        'enabledInstallments': [1, 2, 3, 6, 9],
        'buyer': {
            'id': str(order.buyer_id),
            'name': first,
            'surname': last,
            'gsmNumber': order.buyer.phone or DEFAULT_PHONE,
            'email': order.buyer.email,
            'identityNumber': '00000000000',
            'registrationAddress': address['address'],
            'ip': client_ip,
            'city': DEFAULT_CITY,
            'country': 'Turkey',
        },
        'shippingAddress': address,
        'billingAddress': address,
        'basketItems': [{
            'id': str(order.product_id),
            'name': order.product.title,
            'category1': 'Collectibles',
            'itemType': 'PHYSICAL',
            'price': total,
        }],
    })

    payment.provider_payment_id = result.get('token') or str(payment.id)
    payment.provider_conversation_id = str(payment.id)
    metadata = dict(payment.metadata or {})
    metadata.update({'token': result.get('token'), 'tokenExpireTime': result.get('tokenExpireTime')})
    payment.metadata = metadata

    if result.get('paymentPageUrl'):
        return result['paymentPageUrl'], None
    return f"{settings.FRONTEND_URL}/payment/iyzico/{payment.id}", result.get('checkoutFormContent')


def _start_paytr(payment, order, client_ip):
    client = get_client('paytr')
    merchant_oid = merchant_oid_for(payment)
    first, last = _split_name(order.buyer)
    result = client.create_iframe_token(
        merchant_oid=merchant_oid,
        email=order.buyer.email,
        amount=order.total_amount,
        user_ip=client_ip,
        basket_items=[{'name': order.product.title, 'price': order.total_amount, 'quantity': 1}],
        user_name=f"{first} {last}",
        user_address=order.shipping_address or 'Turkey',
        user_phone=order.buyer.phone or DEFAULT_PHONE,
        ok_url=f"{settings.FRONTEND_URL}/payment/success?paymentId={payment.id}",
        fail_url=f"{settings.FRONTEND_URL}/payment/fail?paymentId={payment.id}",
        timeout_limit=PAYMENT_TIMEOUT_MINUTES,
    )
    payment.provider_payment_id = result['token']
    payment.provider_conversation_id = merchant_oid
    html = (
        f'<iframe src="{result["iframe_url"]}" id="paytriframe" frameborder="0" '
        f'scrolling="no" style="width: 100%; min-height: 600px;"></iframe>'
    )
    return result['iframe_url'], html


def _start_provider(payment, order, request):
    client_ip = get_client_ip(request) or '127.0.0.1'
    try:
        if payment.provider == 'iyzico':
            url, html = _start_iyzico(payment, order, client_ip)
        else:
            url, html = _start_paytr(payment, order, client_ip)
    except ProviderError as e:
        logger.error(f"{payment.provider} initialization failed for payment {payment.id}: {str(e)}")
        payment.status = 'failed'
        payment.failure_reason = str(e)
        _append_history(payment, 'failed', reason=str(e))
        payment.save()
        raise ValidationError(f"Payment could not be started: {str(e)}")

    metadata = dict(payment.metadata or {})
    metadata.update({'payment_url': url, 'payment_html': html})
    payment.metadata = metadata
    payment.save()
    return url, html


def _response(payment):
    metadata = payment.metadata or {}
    return {
        'payment_id': payment.id,
        'payment_url': metadata.get('payment_url'),
        'payment_html': metadata.get('payment_html'),
        'provider': payment.provider,
        'expires_in': PAYMENT_EXPIRES_IN,
    }


def initiate_payment(user, order_id, provider, request=None):
    """
    Start paying an order as its buyer.

    An existing pending payment for the order is returned again instead of
    opening a second checkout. Asking for the other provider closes that
    attempt and starts a new one.
    """
    if provider not in dict(Payment.PROVIDER_CHOICES):
        raise ValidationError({'provider': 'Unsupported payment provider.'})

    with transaction.atomic():
        order = get_object_or_404(
            Order.objects.select_for_update().select_related('buyer', 'product'), pk=order_id
        )
        if order.buyer_id != user.pk:
            raise PermissionDenied('Only the buyer can pay for this order.')
        if order.status != 'pending_payment':
            raise ValidationError('This order is not awaiting payment.')

        existing = Payment.objects.filter(order=order, status='pending').first()
        if existing and existing.provider != provider:
            fail_pending_payments(order, f'Replaced by a {provider} checkout', 'superseded')
            existing = None
        if existing and (existing.metadata or {}).get('payment_url'):
            return _response(existing)

        payment = existing
        if payment is None:
            payment = Payment.objects.create(
                order=order,
                amount=order.total_amount,
                provider=provider,
                metadata={},
            )
            _append_history(payment, 'created', provider=provider, amount=str(order.total_amount))
            _audit(payment, 'payment_create', user, request, {'provider': provider, 'amount': str(order.total_amount)})

    _start_provider(payment, order, request)
    logger.info(f"Payment {payment.id} started with {provider} for order {order.order_number}")
    return _response(payment)


def _closed_locally(payment):
    """Failed by our timeout or a cancellation, not by a provider result"""
    if payment.status != 'failed':
        return False
    history = (payment.metadata or {}).get('audit_history') or []
    return bool(history) and history[-1].get('event') in LOCALLY_CLOSED_EVENTS


def fail_pending_payments(order, reason, event, exclude=None):
    """Close the order's open attempts; runs inside the caller's transaction"""
    pending = Payment.objects.select_for_update().filter(order=order, status='pending')
    if exclude is not None:
        pending = pending.exclude(pk=exclude.pk)
    closed = list(pending)
    for payment in closed:
        payment.status = 'failed'
        payment.failure_reason = reason
        _append_history(payment, event, reason=reason)
        payment.save(update_fields=['status', 'failure_reason', 'metadata', 'updated_at'])
    return closed


def _refund_late_payment(payment, order, request=None):
    """
    Give back money captured for an order that can no longer be paid.

    Returns True when the provider accepted the refund. Otherwise the payment
    is left completed so an admin can refund it by hand.
    """
    try:
        provider_result = _provider_refund(payment, payment.amount, request)
    except (ProviderError, ValidationError) as e:
        logger.error(f"Automatic refund failed for payment {payment.id} on order {order.order_number}: {str(e)}")
        payment.status = 'completed'
        payment.failure_reason = ''
        _append_history(payment, 'refund_failed', reason=str(e))
        payment.save()
        _audit(payment, 'payment_refund', None, request, {
            'automatic': True, 'succeeded': False, 'order_status': order.status, 'error': str(e),
        })
        return False

    payment.status = 'refunded'
    _append_history(payment, 'refunded', amount=str(payment.amount), reason=LATE_PAYMENT_REASON)
    metadata = dict(payment.metadata)
    metadata['refund'] = {
        'amount': str(payment.amount), 'reason': LATE_PAYMENT_REASON, 'provider_status': provider_result.get('status'),
    }
    payment.metadata = metadata
    payment.save()
    _audit(payment, 'payment_refund', None, request, {
        'automatic': True, 'succeeded': True, 'amount': str(payment.amount), 'order_status': order.status,
    })
    return True


def process_successful_payment(payment_id, provider_payment_id=None, extra_metadata=None, request=None):
    """
    Mark a payment completed and settle the order.

    Idempotent: a payment that is already completed is returned unchanged.
    A success arriving after we timed out or cancelled the attempt still
    settles the order while it awaits payment; if the order has moved on,
    the captured amount is refunded.
    """
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('order').get(pk=payment_id)
        if payment.status == 'completed':
            return payment
        late = _closed_locally(payment)
        if payment.status != 'pending' and not late:
            logger.warning(f"Ignoring success for payment {payment.id} in status {payment.status}")
            return payment

        order = Order.objects.select_for_update().select_related('buyer', 'seller', 'product').get(pk=payment.order_id)

        if provider_payment_id:
            payment.provider_payment_id = provider_payment_id
        if extra_metadata:
            payment.metadata = {**(payment.metadata or {}), **extra_metadata}

        if order.status != 'pending_payment':
            logger.warning(
                f"Payment {payment.id} succeeded but order {order.order_number} is {order.status}; refunding"
            )
            refunded = _refund_late_payment(payment, order, request)
        else:
            refunded = None
            now = timezone.now()
            payment.status = 'completed'
            payment.failure_reason = ''
            _append_history(payment, 'completed', provider_payment_id=payment.provider_payment_id, late=late)
            payment.save()
            fail_pending_payments(order, f'Superseded by payment {payment.id}', 'superseded', exclude=payment)

            order.status = 'paid'
            order.paid_at = now
            order.version += 1
            order.save(update_fields=['status', 'paid_at', 'version', 'updated_at'])

            product = Product.objects.select_for_update().get(pk=order.product_id)
            product.status = 'sold'
            product.version += 1
            product.save(update_fields=['status', 'version', 'updated_at'])

            hold = PaymentHold.objects.create(
                payment=payment,
                order=order,
                seller=order.seller,
                amount=order.total_amount - order.commission_amount,
                release_at=now + timedelta(days=PAYMENT_HOLD_DAYS),
            )

            _audit(payment, 'payment_complete', order.buyer, request, {
                'amount': str(payment.amount), 'hold_id': hold.id, 'late': late,
            })
            create_audit_log(
                request=request,
                user=order.buyer,
                action='order_status',
                model_name='Order',
                object_id=str(order.id),
                object_reference=order.order_number,
                changes={'status': {'from': 'pending_payment', 'to': 'paid'}, 'payment_id': payment.id},
            )
            invalidate_products_cache()
            invalidate_membership_limits(order.seller_id)

    if refunded is not None:
        if refunded:
            notify(
                order.buyer,
                'payment_refunded',
                'Refund issued',
                f'{payment.amount} TL was refunded for {order.order_number}: the order was no longer awaiting payment.',
                orderId=order.id,
            )
        return payment

    notify(
        order.buyer,
        'payment_completed',
        'Payment received',
        f'Your payment for {order.order_number} was successful.',
        orderId=order.id,
    )
    notify(
        order.seller,
        'order_paid',
        'Order paid',
        f'"{order.product.title}" was paid. Please ship it.',
        orderId=order.id,
    )
    logger.info(f"Payment {payment.id} completed for order {order.order_number}")
    return payment


def process_failed_payment(payment_id, reason, request=None):
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('order', 'order__buyer').get(pk=payment_id)
        if payment.status != 'pending':
            return payment
        payment.status = 'failed'
        payment.failure_reason = reason or 'Payment failed'
        _append_history(payment, 'failed', reason=payment.failure_reason)
        payment.save()
        _audit(payment, 'payment_fail', payment.order.buyer, request, {'reason': payment.failure_reason})

    notify(
        payment.order.buyer,
        'payment_failed',
        'Payment failed',
        f'Your payment for {payment.order.order_number} failed: {payment.failure_reason}',
        orderId=payment.order_id,
    )
    logger.info(f"Payment {payment.id} failed: {payment.failure_reason}")
    return payment


def handle_iyzico_callback(data, raw_body=b'', signature=None, request=None):
    """
    Resolve an iyzico checkout result.

    The signature is checked only when iyzico sends one. The authoritative
    result comes from retrieving the checkout form; if that call fails the
    status posted in the callback is used.
    """
    client = get_client('iyzico')
    if signature and not client.verify_webhook_signature(raw_body, signature):
        logger.warning("iyzico callback with invalid signature")
        raise PermissionDenied('Invalid signature.')

    token = data.get('token')
    payment_id = data.get('paymentId') or data.get('conversationId')
    payment = None
    if token:
        payment = Payment.objects.filter(provider='iyzico', provider_payment_id=token).first()
    if payment is None and payment_id and str(payment_id).isdigit():
        payment = Payment.objects.filter(provider='iyzico', pk=payment_id).first()
    if payment is None:
        raise ValidationError('Payment not found for callback.')

    status = data.get('status')
    result = {}
    if token:
        try:
            result = client.retrieve_checkout_form(token, conversation_id=payment.provider_conversation_id)
            status = result.get('paymentStatus') or result.get('status') or status
        except ProviderError as e:
            logger.error(f"iyzico retrieve failed for payment {payment.id}, using callback status: {str(e)}")

    if str(status).upper() == 'SUCCESS':
        transaction_ids = [
            item.get('paymentTransactionId')
            for item in result.get('itemTransactions') or []
            if item.get('paymentTransactionId')
        ]
        extra = {'iyzico_payment_id': result.get('paymentId')}
        if transaction_ids:
            extra['payment_transaction_ids'] = transaction_ids
        return process_successful_payment(
            payment.id,
            provider_payment_id=result.get('paymentId') or payment.provider_payment_id,
            extra_metadata=extra,
            request=request,
        )
    reason = result.get('errorMessage') or data.get('errorMessage') or 'Payment was not approved'
    return process_failed_payment(payment.id, reason, request=request)


def handle_paytr_callback(data, request=None):
    """PayTR posts merchant_oid, status, total_amount and hash"""
    merchant_oid = data.get('merchant_oid', '')
    status = data.get('status', '')
    total_amount = data.get('total_amount', '')

    client = get_client('paytr')
    if not client.verify_callback(merchant_oid, status, total_amount, data.get('hash', '')):
        logger.warning(f"PayTR callback with invalid hash for {merchant_oid}")
        raise PermissionDenied('Invalid hash.')

    payment = Payment.objects.filter(provider='paytr', provider_conversation_id=merchant_oid).first()
    if payment is None:
        raise ValidationError('Payment not found for callback.')

    if status == 'success':
        return process_successful_payment(
            payment.id, extra_metadata={'paytr_total_amount': total_amount}, request=request
        )
    reason = data.get('failed_reason_msg') or 'Payment was not approved'
    return process_failed_payment(payment.id, reason, request=request)


def get_payment_for_user(payment_id, user):
    payment = get_object_or_404(Payment.objects.select_related('order'), pk=payment_id)
    if payment.order.buyer_id != user.pk and not user.is_staff:
        raise PermissionDenied('You do not have access to this payment.')
    return payment


def get_payment_status(payment_id, user):
    payment = get_payment_for_user(payment_id, user)
    return {
        'payment_id': payment.id,
        'status': payment.status,
        'order_id': payment.order_id,
        'order_status': payment.order.status,
        'failure_reason': payment.failure_reason or None,
        'updated_at': payment.updated_at,
    }


def retry_payment(payment_id, user, provider=None, request=None):
    """A failed attempt on an unpaid order opens a new payment"""
    payment = get_payment_for_user(payment_id, user)
    if payment.status != 'failed':
        raise ValidationError('Only failed payments can be retried.')
    if payment.order.status != 'pending_payment':
        raise ValidationError('This order is not awaiting payment.')
    if Payment.objects.filter(order=payment.order, status='pending').exists():
        raise ValidationError('A payment for this order is already in progress.')

    provider = provider or payment.provider
    with transaction.atomic():
        new_payment = Payment.objects.create(
            order=payment.order,
            amount=payment.order.total_amount,
            provider=provider,
            metadata={'retried_from': payment.id},
        )
        _append_history(new_payment, 'created', provider=provider, retried_from=payment.id)
        _audit(new_payment, 'payment_create', user, request, {'retried_from': payment.id, 'provider': provider})

    order = Order.objects.select_related('buyer', 'product').get(pk=payment.order_id)
    _start_provider(new_payment, order, request)
    return _response(new_payment)


def cancel_payment(payment_id, user, request=None):
    get_payment_for_user(payment_id, user)
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('order').get(pk=payment_id)
        if payment.status != 'pending':
            raise ValidationError('Only pending payments can be cancelled.')
        payment.status = 'failed'
        payment.failure_reason = 'Cancelled by user'
        _append_history(payment, 'cancelled')
        payment.save()
        _audit(payment, 'payment_fail', user, request, {'reason': payment.failure_reason})
    return payment


def _provider_refund(payment, amount, request=None):
    client = get_client(payment.provider)
    if payment.provider == 'paytr':
        return client.refund(payment.provider_conversation_id, amount)

    transaction_ids = (payment.metadata or {}).get('payment_transaction_ids') or []
    if not transaction_ids:
        raise ValidationError('Payment has no iyzico transaction to refund.')
    return client.refund(transaction_ids[0], amount, ip=get_client_ip(request) or '127.0.0.1')


def refund_payment(order_id, admin, amount=None, reason='', request=None):
    """
    Refund the completed payment of an order (admin).

    A full refund moves the order to `refunded` when its status allows it;
    held seller funds are cancelled either way.
    """
    with transaction.atomic():
        order = get_object_or_404(Order.objects.select_for_update().select_related('buyer', 'seller'), pk=order_id)
        payment = Payment.objects.select_for_update().filter(order=order, status='completed').first()
        if payment is None:
            raise ValidationError('This order has no completed payment to refund.')

        amount = Decimal(amount) if amount is not None else payment.amount
        if amount <= 0 or amount > payment.amount:
            raise ValidationError({'amount': 'Refund amount must be between 0 and the paid amount.'})

        try:
            provider_result = _provider_refund(payment, amount, request)
        except ProviderError as e:
            logger.error(f"Refund failed for payment {payment.id}: {str(e)}")
            raise ValidationError(f"Refund failed: {str(e)}")

        payment.status = 'refunded'
        _append_history(payment, 'refunded', amount=str(amount), reason=reason)
        metadata = dict(payment.metadata)
        metadata['refund'] = {'amount': str(amount), 'reason': reason, 'provider_status': provider_result.get('status')}
        payment.metadata = metadata
        payment.save()

        PaymentHold.objects.filter(payment=payment, status='held').update(status='cancelled', updated_at=timezone.now())

        full_refund = amount == payment.amount
        old_status = order.status
        if full_refund and order.can_transition_to('refunded'):
            order.status = 'refunded'
            order.version += 1
            order.save(update_fields=['status', 'version', 'updated_at'])

        _audit(payment, 'payment_refund', admin, request, {
            'amount': str(amount),
            'reason': reason,
            'order_status': {'from': old_status, 'to': order.status},
        })

    notify(
        order.buyer,
        'payment_refunded',
        'Refund issued',
        f'{amount} TL was refunded for {order.order_number}.',
        orderId=order.id,
    )
    logger.info(f"Refunded {amount} of payment {payment.id} for order {order.order_number}")
    return payment


def release_payment(order, request=None):
    """
    Release the seller's held funds for a completed order.

    Runs inside the caller's transaction. Returns the released hold or None
    when the order has nothing held.
    """
    hold = PaymentHold.objects.select_for_update().filter(order=order, status='held').first()
    if hold is None:
        logger.warning(f"No held payment to release for order {order.order_number}")
        return None

    hold.status = 'released'
    hold.released_at = timezone.now()
    hold.save(update_fields=['status', 'released_at', 'updated_at'])

    create_audit_log(
        request=request,
        action='payment_release',
        model_name='PaymentHold',
        object_id=str(hold.id),
        object_reference=order.order_number,
        changes={'amount': str(hold.amount), 'seller_id': hold.seller_id},
    )
    logger.info(f"Released {hold.amount} to seller {hold.seller_id} for order {order.order_number}")
    return hold


def cancel_expired_payments(now=None):
    """Pending payments older than the timeout become failed; returns the count"""
    now = now or timezone.now()
    cutoff = now - timedelta(minutes=PAYMENT_TIMEOUT_MINUTES)
    expired = list(Payment.objects.filter(status='pending', created_at__lt=cutoff))
    for payment in expired:
        payment.status = 'failed'
        payment.failure_reason = 'Payment timed out'
        _append_history(payment, 'expired')
        payment.save(update_fields=['status', 'failure_reason', 'metadata', 'updated_at'])
    logger.info(f"Cancelled {len(expired)} expired payment(s)")
    return len(expired)
