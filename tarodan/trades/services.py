"""
Barter trades between two collectors.

Trading is a membership feature. A trade moves pending -> accepted ->
completed once both parties confirm they received the other side's items.
While accepted, every item in the trade is reserved.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.exceptions import ValidationError, PermissionDenied

from tarodan.catalog.models import Product
from tarodan.core.cache_utils import invalidate_products_cache, invalidate_membership_limits
from tarodan.core.models import User
from tarodan.core.utils import create_audit_log
from tarodan.membership.services import can_trade
from tarodan.notifications.services import notify
from .models import Trade, TradeItem

logger = logging.getLogger(__name__)

TRADE_EXPIRY_HOURS = getattr(settings, 'TRADE_EXPIRY_HOURS', 72)


def generate_trade_number():
    """TRT-YYYYMMDD-XXXXXXXX"""
    trade_number = f"TRT-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while Trade.objects.filter(trade_number=trade_number).exists():
        trade_number = f"TRT-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return trade_number


def _audit(trade, user, request=None, changes=None, action='trade_status'):
    create_audit_log(
        request=request,
        user=user,
        action=action,
        model_name='Trade',
        object_id=str(trade.id),
        object_reference=trade.trade_number,
        changes=changes or {},
    )


def _lock_products(product_ids):
    products = list(Product.objects.select_for_update().filter(pk__in=product_ids))
    if len(products) != len(set(product_ids)):
        raise ValidationError('One or more listings in this trade do not exist.')
    return products


def _validate_side(products, owner, label):
    for product in products:
        if product.seller_id != owner.pk:
            raise ValidationError(f'"{product.title}" does not belong to the {label}.')
        if product.status != 'active':
            raise ValidationError(f'"{product.title}" is not available.')
        if not product.is_trade_enabled:
            raise ValidationError(f'"{product.title}" is not open to trades.')


def _set_status(products, new_status):
    for product in products:
        product.status = new_status
        product.version += 1
        product.save(update_fields=['status', 'version', 'updated_at'])
    invalidate_products_cache()


def _build_trade(initiator, receiver, initiator_item_ids, receiver_item_ids, cash_amount, message, parent=None):
    """Validate both sides and create the trade rows; caller holds the transaction"""
    if initiator.pk == receiver.pk:
        raise ValidationError('You cannot trade with yourself.')
    if not initiator_item_ids or not receiver_item_ids:
        raise ValidationError('A trade needs at least one item on each side.')
    if set(initiator_item_ids) & set(receiver_item_ids):
        raise ValidationError('An item cannot be on both sides of a trade.')
    cash_amount = Decimal(cash_amount or 0)
    if cash_amount < 0:
        raise ValidationError({'cash_amount': 'Cash amount cannot be negative.'})

    offered = _lock_products(initiator_item_ids)
    wanted = _lock_products(receiver_item_ids)
    _validate_side(offered, initiator, 'trade initiator')
    _validate_side(wanted, receiver, 'trade receiver')

    trade = Trade.objects.create(
        trade_number=generate_trade_number(),
        initiator=initiator,
        receiver=receiver,
        cash_amount=cash_amount,
        message=message or '',
        parent=parent,
        expires_at=timezone.now() + timedelta(hours=TRADE_EXPIRY_HOURS),
    )
    TradeItem.objects.bulk_create(
        [TradeItem(trade=trade, product=p, side='initiator') for p in offered]
        + [TradeItem(trade=trade, product=p, side='receiver') for p in wanted]
    )
    return trade


def create_trade(initiator, receiver_id, initiator_item_ids, receiver_item_ids,
                 cash_amount=0, message='', request=None):
    if initiator.is_banned:
        raise PermissionDenied('Your account has been banned. You cannot trade.')
    if not can_trade(initiator):
        raise PermissionDenied('Your membership does not include trading. Upgrade to trade with other collectors.')

    receiver = get_object_or_404(User, pk=receiver_id, is_active=True)
    with transaction.atomic():
        trade = _build_trade(initiator, receiver, initiator_item_ids, receiver_item_ids, cash_amount, message)
        _audit(trade, initiator, request, {
            'initiator_items': list(initiator_item_ids),
            'receiver_items': list(receiver_item_ids),
            'cash_amount': str(trade.cash_amount),
        }, action='create')

    notify(
        receiver,
        'trade_received',
        'New trade offer',
        f'{initiator.get_display_name()} wants to trade with you.',
        tradeId=trade.id,
    )
    logger.info(f"Trade {trade.trade_number} created by user {initiator.pk}")
    return trade


def get_trade_for_party(trade_id, user):
    trade = get_object_or_404(Trade.objects.select_related('initiator', 'receiver'), pk=trade_id)
    if user.pk not in (trade.initiator_id, trade.receiver_id) and not user.is_staff:
        raise PermissionDenied('You do not have access to this trade.')
    return trade


def _lock_trade(trade_id):
    return get_object_or_404(Trade.objects.select_for_update().select_related('initiator', 'receiver'), pk=trade_id)


def _trade_products(trade):
    return _lock_products(list(trade.items.values_list('product_id', flat=True)))


def _ensure_pending_for_receiver(trade, user, action):
    if trade.receiver_id != user.pk:
        raise PermissionDenied(f'Only the receiver of this trade can {action} it.')
    if trade.status != 'pending':
        raise ValidationError(f'This trade is no longer pending (status: {trade.status}).')


def accept_trade(trade_id, user, message='', request=None):
    with transaction.atomic():
        trade = _lock_trade(trade_id)
        _ensure_pending_for_receiver(trade, user, 'accept')
        if trade.expires_at <= timezone.now():
            raise ValidationError('This trade has expired.')

        products = _trade_products(trade)
        unavailable = [p.title for p in products if p.status != 'active']
        if unavailable:
            raise ValidationError(f'These items are no longer available: {", ".join(unavailable)}')
        _set_status(products, 'reserved')

        trade.status = 'accepted'
        trade.response_message = message or ''
        trade.responded_at = timezone.now()
        trade.save(update_fields=['status', 'response_message', 'responded_at', 'updated_at'])
        _audit(trade, user, request, {'status': {'from': 'pending', 'to': 'accepted'}})

    notify(
        trade.initiator,
        'trade_accepted',
        'Trade accepted',
        f'{trade.trade_number} was accepted. Ship your items and confirm when you receive theirs.',
        tradeId=trade.id,
    )
    return trade


def reject_trade(trade_id, user, reason='', request=None):
    with transaction.atomic():
        trade = _lock_trade(trade_id)
        _ensure_pending_for_receiver(trade, user, 'reject')
        trade.status = 'rejected'
        trade.response_message = reason or ''
        trade.responded_at = timezone.now()
        trade.save(update_fields=['status', 'response_message', 'responded_at', 'updated_at'])
        _audit(trade, user, request, {'status': {'from': 'pending', 'to': 'rejected'}, 'reason': reason})

    notify(
        trade.initiator,
        'trade_rejected',
        'Trade rejected',
        f'{trade.trade_number} was rejected.' + (f' Reason: {reason}' if reason else ''),
        tradeId=trade.id,
    )
    return trade


def counter_trade(trade_id, user, initiator_item_ids, receiver_item_ids, cash_amount=0, message='', request=None):
    """
    The receiver answers with their own proposal.

    The counter is a new trade where the original receiver is the initiator:
    `initiator_item_ids` are their items, `receiver_item_ids` the items they
    want from the original initiator.
    """
    if not can_trade(user):
        raise PermissionDenied('Your membership does not include trading. Upgrade to trade with other collectors.')

    with transaction.atomic():
        trade = _lock_trade(trade_id)
        _ensure_pending_for_receiver(trade, user, 'counter')
        if trade.expires_at <= timezone.now():
            raise ValidationError('This trade has expired.')

        trade.status = 'countered'
        trade.responded_at = timezone.now()
        trade.save(update_fields=['status', 'responded_at', 'updated_at'])

        counter = _build_trade(
            user, trade.initiator, initiator_item_ids, receiver_item_ids, cash_amount, message, parent=trade
        )
        _audit(trade, user, request, {
            'status': {'from': 'pending', 'to': 'countered'}, 'counter_trade_id': counter.id,
        })

    notify(
        trade.initiator,
        'trade_countered',
        'Counter trade offer',
        f'{user.get_display_name()} answered {trade.trade_number} with a counter offer.',
        tradeId=counter.id,
    )
    return counter


def cancel_trade(trade_id, user, reason, request=None):
    if not reason or not reason.strip():
        raise ValidationError({'reason': 'A reason is required to cancel a trade.'})

    with transaction.atomic():
        trade = _lock_trade(trade_id)
        if user.pk not in (trade.initiator_id, trade.receiver_id):
            raise PermissionDenied('You do not have access to this trade.')
        if trade.status not in ('pending', 'accepted'):
            raise ValidationError(f'This trade cannot be cancelled (status: {trade.status}).')

        old_status = trade.status
        if old_status == 'accepted':
            _set_status([p for p in _trade_products(trade) if p.status == 'reserved'], 'active')

        trade.status = 'cancelled'
        trade.cancel_reason = reason
        trade.cancelled_at = timezone.now()
        trade.save(update_fields=['status', 'cancel_reason', 'cancelled_at', 'updated_at'])
        _audit(trade, user, request, {'status': {'from': old_status, 'to': 'cancelled'}, 'reason': reason})

    counterparty = trade.receiver if user.pk == trade.initiator_id else trade.initiator
    notify(
        counterparty,
        'trade_cancelled',
        'Trade cancelled',
        f'{trade.trade_number} was cancelled. Reason: {reason}',
        tradeId=trade.id,
    )
    return trade


def confirm_trade(trade_id, user, request=None):
    """Each party confirms receipt; the second confirmation completes the trade"""
    with transaction.atomic():
        trade = _lock_trade(trade_id)
        if trade.status != 'accepted':
            raise ValidationError('Only accepted trades can be confirmed.')
        if user.pk == trade.initiator_id:
            if trade.initiator_confirmed:
                raise ValidationError('You already confirmed this trade.')
            trade.initiator_confirmed = True
        elif user.pk == trade.receiver_id:
            if trade.receiver_confirmed:
                raise ValidationError('You already confirmed this trade.')
            trade.receiver_confirmed = True
        else:
            raise PermissionDenied('You do not have access to this trade.')

        update_fields = ['initiator_confirmed', 'receiver_confirmed', 'updated_at']
        completed = trade.initiator_confirmed and trade.receiver_confirmed
        if completed:
            trade.status = 'completed'
            trade.completed_at = timezone.now()
            update_fields += ['status', 'completed_at']
            _set_status(_trade_products(trade), 'sold')
            invalidate_membership_limits(trade.initiator_id)
            invalidate_membership_limits(trade.receiver_id)
        trade.save(update_fields=update_fields)
        _audit(trade, user, request, {'confirmed_by': user.pk, 'completed': completed})

    counterparty = trade.receiver if user.pk == trade.initiator_id else trade.initiator
    if completed:
        for party in (trade.initiator, trade.receiver):
            notify(party, 'trade_completed', 'Trade completed', f'{trade.trade_number} is complete.', tradeId=trade.id)
    else:
        notify(
            counterparty,
            'trade_confirmed',
            'Trade receipt confirmed',
            f'The other party received their items for {trade.trade_number}.',
            tradeId=trade.id,
        )
    return trade


def expire_trades(now=None):
    """Pending trades past expires_at become expired; returns the count"""
    now = now or timezone.now()
    count = Trade.objects.filter(status='pending', expires_at__lte=now).update(status='expired', updated_at=now)
    logger.info(f"Expired {count} trade(s)")
    return count
