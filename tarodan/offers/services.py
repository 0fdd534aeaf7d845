"""
Offer negotiation between a buyer and a seller on one listing.

Whoever did not make a proposal answers it: accept, reject or counter.
The proposer can only cancel. Accepting turns the offer into an order at the
offered amount.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.exceptions import ValidationError, PermissionDenied

from tarodan.catalog.models import Product
from tarodan.core.utils import create_audit_log
from tarodan.notifications.services import notify
from tarodan.orders.services import create_order
from .models import Offer

logger = logging.getLogger(__name__)

OFFER_EXPIRY_HOURS = getattr(settings, 'OFFER_EXPIRY_HOURS', 48)


def _expiry():
    return timezone.now() + timedelta(hours=OFFER_EXPIRY_HOURS)


def _validate_amount(amount, product):
    if amount <= 0:
        raise ValidationError({'amount': 'Offer amount must be greater than zero.'})
    if amount >= product.price:
        raise ValidationError({'amount': 'Offer amount must be below the listing price. Use buy now instead.'})


def _audit(offer, action, user, request=None, changes=None):
    create_audit_log(
        request=request,
        user=user,
        action=action,
        model_name='Offer',
        object_id=str(offer.id),
        changes=changes or {},
    )


def _lock_pending_offer(offer_id):
    offer = get_object_or_404(Offer.objects.select_for_update().select_related('product', 'buyer', 'seller'), pk=offer_id)
    if offer.status != 'pending':
        raise ValidationError(f'This offer is no longer pending (status: {offer.status}).')
    return offer


def _ensure_not_expired(offer):
    if offer.expires_at <= timezone.now():
        raise ValidationError('This offer has expired.')


def get_offer_for_party(offer_id, user):
    offer = get_object_or_404(Offer.objects.select_related('product', 'buyer', 'seller'), pk=offer_id)
    if user.pk not in (offer.buyer_id, offer.seller_id) and not user.is_staff:
        raise PermissionDenied('You do not have access to this offer.')
    return offer


def create_offer(buyer, product_id, amount, message='', request=None):
    if buyer.is_banned:
        raise PermissionDenied('Your account has been banned. You cannot make offers.')

    product = get_object_or_404(Product.objects.select_related('seller'), pk=product_id)
    if product.seller_id == buyer.pk:
        raise ValidationError('You cannot make an offer on your own listing.')
    if product.status != 'active':
        raise ValidationError('This listing is not accepting offers.')
    _validate_amount(amount, product)

    if Offer.objects.filter(product=product, buyer=buyer, status='pending').exists():
        raise ValidationError('You already have a pending offer on this listing.')

    offer = Offer.objects.create(
        product=product,
        buyer=buyer,
        seller=product.seller,
        amount=amount,
        message=message or '',
        proposed_by='buyer',
        expires_at=_expiry(),
    )
    _audit(offer, 'create', buyer, request, {'amount': str(amount), 'product_id': product.id})

    notify(
        product.seller,
        'offer_received',
        'New offer',
        f'You received an offer of {amount} TL for "{product.title}".',
        offerId=offer.id,
        productId=product.id,
    )
    logger.info(f"Offer {offer.id} created on product {product.id} by user {buyer.pk}")
    return offer


def accept_offer(offer_id, user, request=None):
    """Accept as the recipient; reserves the listing and creates the order"""
    with transaction.atomic():
        offer = _lock_pending_offer(offer_id)
        if offer.recipient.pk != user.pk:
            raise PermissionDenied('Only the recipient of this offer can accept it.')
        _ensure_not_expired(offer)

        product = Product.objects.select_for_update().select_related('seller').get(pk=offer.product_id)
        if product.status != 'active':
            raise ValidationError('This listing is no longer available.')

        offer.status = 'accepted'
        offer.responded_at = timezone.now()
        offer.save(update_fields=['status', 'responded_at', 'updated_at'])

        order = create_order(offer.buyer, product, offer.amount, offer=offer, request=request)

        others = list(
            Offer.objects.select_for_update()
            .filter(product=product, status='pending')
            .exclude(pk=offer.pk)
            .select_related('buyer')
        )
        for other in others:
            other.status = 'rejected'
            other.responded_at = timezone.now()
            other.save(update_fields=['status', 'responded_at', 'updated_at'])

        _audit(offer, 'offer_accept', user, request, {'order_id': order.id, 'amount': str(offer.amount)})

    notify(
        offer.proposer,
        'offer_accepted',
        'Offer accepted',
        f'Your offer of {offer.amount} TL for "{product.title}" was accepted.',
        offerId=offer.id,
        orderId=order.id,
    )
    if offer.proposed_by == 'seller':
        # Buyer accepted the seller's counter and now owes the payment
        notify(
            offer.buyer,
            'order_created',
            'Order created',
            f'Complete the payment for "{product.title}".',
            orderId=order.id,
        )
    for other in others:
        notify(
            other.buyer,
            'offer_rejected',
            'Offer declined',
            f'"{product.title}" was sold to another buyer.',
            offerId=other.id,
        )
    return offer, order


def reject_offer(offer_id, user, request=None):
    with transaction.atomic():
        offer = _lock_pending_offer(offer_id)
        if offer.recipient.pk != user.pk:
            raise PermissionDenied('Only the recipient of this offer can reject it.')
        offer.status = 'rejected'
        offer.responded_at = timezone.now()
        offer.save(update_fields=['status', 'responded_at', 'updated_at'])
        _audit(offer, 'offer_reject', user, request)

    notify(
        offer.proposer,
        'offer_rejected',
        'Offer rejected',
        f'Your offer of {offer.amount} TL for "{offer.product.title}" was rejected.',
        offerId=offer.id,
    )
    return offer


def counter_offer(offer_id, user, amount, message='', request=None):
    """The recipient answers with a new amount; the original becomes `countered`"""
    with transaction.atomic():
        offer = _lock_pending_offer(offer_id)
        if offer.recipient.pk != user.pk:
            raise PermissionDenied('Only the recipient of this offer can counter it.')
        _ensure_not_expired(offer)
        if offer.product.status != 'active':
            raise ValidationError('This listing is no longer available.')
        _validate_amount(amount, offer.product)

        offer.status = 'countered'
        offer.responded_at = timezone.now()
        offer.save(update_fields=['status', 'responded_at', 'updated_at'])

        counter = Offer.objects.create(
            product=offer.product,
            buyer=offer.buyer,
            seller=offer.seller,
            amount=amount,
            message=message or '',
            proposed_by='seller' if offer.proposed_by == 'buyer' else 'buyer',
            parent=offer,
            expires_at=_expiry(),
        )
        _audit(offer, 'offer_counter', user, request, {
            'from': str(offer.amount), 'to': str(amount), 'counter_offer_id': counter.id,
        })

    notify(
        counter.recipient,
        'offer_countered',
        'Counter offer',
        f'You received a counter offer of {amount} TL for "{offer.product.title}".',
        offerId=counter.id,
    )
    return counter


def cancel_offer(offer_id, user, request=None):
    with transaction.atomic():
        offer = _lock_pending_offer(offer_id)
        if offer.proposer.pk != user.pk:
            raise PermissionDenied('Only the party that made this offer can cancel it.')
        offer.status = 'cancelled'
        offer.responded_at = timezone.now()
        offer.save(update_fields=['status', 'responded_at', 'updated_at'])
        _audit(offer, 'offer_cancel', user, request)
    return offer


def expire_offers(now=None):
    """Pending offers past expires_at become expired; returns the count"""
    now = now or timezone.now()
    count = Offer.objects.filter(status='pending', expires_at__lte=now).update(status='expired', updated_at=now)
    logger.info(f"Expired {count} offer(s)")
    return count
