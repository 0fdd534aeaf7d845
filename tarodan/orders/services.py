"""
Order lifecycle: buy-now creation, shipping, delivery, completion and cancellation.

Every status change goes through `_transition`, which enforces
Order.ALLOWED_TRANSITIONS, writes the audit log and notifies the other party.
"""
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.exceptions import ValidationError, PermissionDenied

from tarodan.catalog.models import Product
from tarodan.core.cache_utils import invalidate_products_cache, invalidate_membership_limits
from tarodan.core.utils import create_audit_log
from tarodan.membership.services import commission_rate_for
from tarodan.notifications.services import notify
from .models import Order

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

STATUS_TIMESTAMPS = {
    'paid': 'paid_at',
    'shipped': 'shipped_at',
    'delivered': 'delivered_at',
    'completed': 'completed_at',
    'cancelled': 'cancelled_at',
}


def generate_order_number():
    """TRD-YYYYMMDD-XXXXXXXX"""
    order_number = f"TRD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while Order.objects.filter(order_number=order_number).exists():
        order_number = f"TRD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return order_number


def calculate_commission(amount, rate):
    return (Decimal(amount) * Decimal(rate) / Decimal('100')).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def create_order(buyer, product, item_price, offer=None, shipping_address='', shipping_cost=Decimal('0.00'), request=None):
    """
    Create an order and reserve the listing.

    The caller must hold a row lock on `product` inside a transaction.
    """
    rate = commission_rate_for(product.seller)
    total = Decimal(item_price) + Decimal(shipping_cost)
    order = Order.objects.create(
        order_number=generate_order_number(),
        buyer=buyer,
        seller=product.seller,
        product=product,
        offer=offer,
        item_price=item_price,
        shipping_cost=shipping_cost,
        total_amount=total,
        commission_rate=rate,
        commission_amount=calculate_commission(total, rate),
        shipping_address=shipping_address or '',
    )

    product.status = 'reserved'
    product.version += 1
    product.save(update_fields=['status', 'version', 'updated_at'])

    invalidate_products_cache()
    create_audit_log(
        request=request,
        user=buyer,
        action='order_create',
        model_name='Order',
        object_id=str(order.id),
        object_reference=order.order_number,
        changes={
            'product_id': product.id,
            'item_price': str(order.item_price),
            'total_amount': str(order.total_amount),
            'offer_id': offer.id if offer else None,
        },
    )
    logger.info(f"Order {order.order_number} created for product {product.id}")
    return order


def buy_now(buyer, product_id, shipping_address='', request=None):
    """Buy a listing at its asking price"""
    if buyer.is_banned:
        raise PermissionDenied('Your account has been banned. You cannot place orders.')

    with transaction.atomic():
        product = get_object_or_404(Product.objects.select_for_update(), pk=product_id)
        if product.seller_id == buyer.pk:
            raise ValidationError('You cannot buy your own listing.')
        if product.status != 'active':
            raise ValidationError('This listing is not available for purchase.')
        order = create_order(buyer, product, product.price, shipping_address=shipping_address, request=request)

    notify(
        order.seller,
        'order_created',
        'New order',
        f'"{product.title}" was ordered. Waiting for payment.',
        orderId=order.id,
    )
    return order


def _transition(order, new_status, actor, request=None, extra_fields=None, audit_changes=None):
    """Move a locked order to `new_status`"""
    if not order.can_transition_to(new_status):
        raise ValidationError(f"Order cannot move from {order.status} to {new_status}.")

    old_status = order.status
    order.status = new_status
    update_fields = ['status', 'version', 'updated_at']
    timestamp_field = STATUS_TIMESTAMPS.get(new_status)
    if timestamp_field:
        setattr(order, timestamp_field, timezone.now())
        update_fields.append(timestamp_field)
    for field, value in (extra_fields or {}).items():
        setattr(order, field, value)
        update_fields.append(field)
    order.version += 1
    order.save(update_fields=update_fields)

    create_audit_log(
        request=request,
        user=actor,
        action='order_status',
        model_name='Order',
        object_id=str(order.id),
        object_reference=order.order_number,
        changes={'status': {'from': old_status, 'to': new_status}, **(audit_changes or {})},
    )
    logger.info(f"Order {order.order_number}: {old_status} -> {new_status}")
    return order


def get_order_for_party(order_id, user):
    order = get_object_or_404(Order.objects.select_related('product', 'buyer', 'seller'), pk=order_id)
    if user.pk not in (order.buyer_id, order.seller_id) and not user.is_staff:
        raise PermissionDenied('You do not have access to this order.')
    return order


def _lock_order(order_id):
    return get_object_or_404(Order.objects.select_for_update().select_related('product', 'buyer', 'seller'), pk=order_id)


def ship_order(order_id, user, carrier, tracking_number, request=None):
    if not carrier or not tracking_number:
        raise ValidationError('Carrier and tracking number are required.')

    with transaction.atomic():
        order = _lock_order(order_id)
        if order.seller_id != user.pk:
            raise PermissionDenied('Only the seller can ship this order.')
        _transition(
            order, 'shipped', user, request,
            extra_fields={'carrier': carrier, 'tracking_number': tracking_number},
            audit_changes={'carrier': carrier, 'tracking_number': tracking_number},
        )

    notify(
        order.buyer,
        'order_shipped',
        'Your order is on its way',
        f'{order.order_number} was shipped with {carrier} ({tracking_number}).',
        orderId=order.id,
    )
    return order


def confirm_delivery(order_id, user, request=None):
    with transaction.atomic():
        order = _lock_order(order_id)
        if order.buyer_id != user.pk:
            raise PermissionDenied('Only the buyer can confirm delivery.')
        _transition(order, 'delivered', user, request)

    notify(
        order.seller,
        'order_delivered',
        'Order delivered',
        f'The buyer confirmed delivery of {order.order_number}.',
        orderId=order.id,
    )
    return order


def complete_order(order_id, user, request=None):
    """Buyer approves the order; the seller's payment hold is released"""
    from tarodan.payments.services import release_payment

    with transaction.atomic():
        order = _lock_order(order_id)
        if order.buyer_id != user.pk:
            raise PermissionDenied('Only the buyer can complete this order.')
        _transition(order, 'completed', user, request)
        release_payment(order, request=request)

    notify(
        order.seller,
        'order_completed',
        'Order completed',
        f'{order.order_number} is complete. Your payment has been released.',
        orderId=order.id,
    )
    return order


def cancel_order(order_id, user, reason='', request=None):
    """Either party may cancel before payment; the listing goes back on sale"""
    from tarodan.payments.services import fail_pending_payments

    with transaction.atomic():
        order = _lock_order(order_id)
        if user.pk not in (order.buyer_id, order.seller_id) and not user.is_staff:
            raise PermissionDenied('You do not have access to this order.')
        if order.status != 'pending_payment':
            raise ValidationError('Only orders awaiting payment can be cancelled.')

        _transition(order, 'cancelled', user, request, extra_fields={'cancel_reason': reason or ''}, audit_changes={'reason': reason})

        fail_pending_payments(order, 'Order cancelled', 'order_cancelled')

        product = Product.objects.select_for_update().get(pk=order.product_id)
        if product.status == 'reserved':
            product.status = 'active'
            product.version += 1
            product.save(update_fields=['status', 'version', 'updated_at'])
        invalidate_products_cache()
        invalidate_membership_limits(order.seller_id)

    counterparty = order.seller if user.pk == order.buyer_id else order.buyer
    notify(
        counterparty,
        'order_cancelled',
        'Order cancelled',
        f'{order.order_number} was cancelled.' + (f' Reason: {reason}' if reason else ''),
        orderId=order.id,
    )
    return order
