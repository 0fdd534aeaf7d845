"""
Membership rules: which tier a user is on and what it allows.

Users without an active membership are on the free tier.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError, NotFound

from tarodan.core.cache_utils import (
    get_cached_membership_limits, cache_membership_limits, invalidate_membership_limits,
)
from tarodan.core.utils import create_audit_log
from tarodan.notifications.services import notify
from .models import MembershipTier, UserMembership
from .tiers import FREE_TIER

logger = logging.getLogger(__name__)

# Listing statuses that count against the listing limit
COUNTED_LISTING_STATUSES = ['active', 'pending', 'reserved']

PERIOD_DAYS = {
    'monthly': 30,
    'yearly': 365,
}

REMINDER_DAYS = (7, 1)


def get_active_membership(user):
    """The user's membership when it is active and its period has not ended"""
    if user is None or not user.is_authenticated:
        return None
    return UserMembership.objects.select_related('tier').filter(
        user=user,
        status='active',
        current_period_end__gt=timezone.now(),
    ).first()


def get_free_tier():
    tier = MembershipTier.objects.filter(type='free').first()
    if tier is None:
        # Unsaved fallback so limits still resolve before tiers are seeded
        tier = MembershipTier(**FREE_TIER)
    return tier


def get_user_tier(user):
    membership = get_active_membership(user)
    if membership:
        return membership.tier
    return get_free_tier()


def active_listing_count(user):
    from tarodan.catalog.models import Product
    return Product.objects.filter(seller=user, status__in=COUNTED_LISTING_STATUSES).count()


def get_user_limits(user, use_cache=True):
    """
    Limits and feature flags of the user's tier plus current usage.

    Cached per user; callers that change listing counts or memberships must
    call invalidate_membership_limits().
    """
    if use_cache:
        cached = get_cached_membership_limits(user.pk)
        if cached is not None:
            return cached

    membership = get_active_membership(user)
    tier = membership.tier if membership else get_free_tier()
    listing_count = active_listing_count(user)

    limits = {
        'tier_type': tier.type,
        'tier_name': tier.name,
        'max_free_listings': tier.max_free_listings,
        'max_total_listings': tier.max_total_listings,
        'max_images_per_listing': tier.max_images_per_listing,
        'active_listing_count': listing_count,
        'remaining_free_listings': max(tier.max_free_listings - listing_count, 0),
        'remaining_total_listings': max(tier.max_total_listings - listing_count, 0),
        'can_trade': tier.can_trade,
        'can_create_collections': tier.can_create_collections,
        'commission_rate': str(tier.commission_rate),
        'expires_at': membership.current_period_end.isoformat() if membership else None,
    }
    cache_membership_limits(user.pk, limits)
    return limits


def can_create_listing(user):
    """Returns (allowed, reason)"""
    limits = get_user_limits(user, use_cache=False)
    if limits['remaining_total_listings'] <= 0:
        return False, (
            f"Listing limit reached. Your {limits['tier_name']} membership allows at most "
            f"{limits['max_total_listings']} listings. Upgrade your membership to add more."
        )
    return True, None


def can_create_collection(user):
    tier = get_user_tier(user)
    if not tier.can_create_collections:
        return False, f"Collections are not available on the {tier.name} membership."
    return True, None


def can_trade(user):
    return get_user_tier(user).can_trade


def commission_rate_for(user):
    return get_user_tier(user).commission_rate


def subscribe(user, tier_type, billing_period='monthly', request=None):
    """
    Start a new subscription period on the given tier.

    Subscribing to the free tier ends the current paid membership at once.
    """
    if billing_period not in PERIOD_DAYS:
        raise ValidationError({'billing_period': f"Must be one of: {', '.join(PERIOD_DAYS)}"})

    tier = MembershipTier.objects.filter(type=tier_type, is_active=True).first()
    if tier is None:
        raise NotFound('Membership tier not found.')

    now = timezone.now()
    with transaction.atomic():
        membership = UserMembership.objects.select_for_update().filter(user=user).first()
        old_tier = membership.tier.type if membership and membership.status == 'active' else 'free'

        if tier.type == 'free':
            if membership and membership.status == 'active':
                membership.status = 'cancelled'
                membership.cancelled_at = now
                membership.current_period_end = now
                membership.save()
        else:
            period_end = now + timedelta(days=PERIOD_DAYS[billing_period])
            if membership is None:
                membership = UserMembership(user=user)
            membership.tier = tier
            membership.status = 'active'
            membership.billing_period = billing_period
            membership.current_period_start = now
            membership.current_period_end = period_end
            membership.cancel_at_period_end = False
            membership.cancelled_at = None
            membership.save()

    invalidate_membership_limits(user.pk)
    create_audit_log(
        request=request,
        user=user,
        action='membership_change',
        model_name='UserMembership',
        object_id=str(user.pk),
        changes={'from': old_tier, 'to': tier.type, 'billing_period': billing_period},
    )
    logger.info(f"User {user.pk} subscribed to {tier.type} ({billing_period})")
    return get_active_membership(user)


def cancel_membership(user, request=None):
    """Stop renewal; the tier stays usable until the period ends"""
    membership = get_active_membership(user)
    if membership is None:
        raise ValidationError('You have no active membership to cancel.')
    if membership.cancel_at_period_end:
        raise ValidationError('Membership is already cancelled.')

    membership.cancel_at_period_end = True
    membership.cancelled_at = timezone.now()
    membership.save(update_fields=['cancel_at_period_end', 'cancelled_at', 'updated_at'])

    create_audit_log(
        request=request,
        user=user,
        action='membership_change',
        model_name='UserMembership',
        object_id=str(user.pk),
        changes={'cancel_at_period_end': True, 'tier': membership.tier.type},
    )
    return membership


def expire_memberships(now=None):
    """Mark active memberships whose period ended as expired; returns the count"""
    now = now or timezone.now()
    expired = list(UserMembership.objects.filter(status='active', current_period_end__lte=now))
    for membership in expired:
        membership.status = 'expired'
        membership.save(update_fields=['status', 'updated_at'])
        invalidate_membership_limits(membership.user_id)
        logger.info(f"Membership {membership.id} of user {membership.user_id} expired")
    return len(expired)


def expiring_memberships(days, now=None):
    """Active memberships whose period ends on the calendar day `days` from now"""
    now = now or timezone.now()
    target = timezone.localtime(now) + timedelta(days=days)
    day_start = target.replace(hour=0, minute=0, second=0, microsecond=0)
    day_end = day_start + timedelta(days=1)
    return UserMembership.objects.select_related('user', 'tier').filter(
        status='active',
        cancel_at_period_end=False,
        current_period_end__gte=day_start,
        current_period_end__lt=day_end,
    )


def send_expiration_reminders(now=None):
    """Notify members 7 days and 1 day before their period ends"""
    counts = {}
    for days in REMINDER_DAYS:
        memberships = list(expiring_memberships(days, now))
        for membership in memberships:
            if days == 1:
                title = f"Your {membership.tier.name} membership ends tomorrow"
            else:
                title = f"Your {membership.tier.name} membership ends in {days} days"
            notify(
                membership.user,
                'membership_expiring',
                title,
                'Renew now to keep your listing limits and features.',
                daysRemaining=days,
            )
        counts[f'{days}_day'] = len(memberships)
    logger.info(f"Membership expiration reminders sent: {counts}")
    return counts
