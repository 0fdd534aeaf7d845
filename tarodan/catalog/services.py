"""
Listing lifecycle: creation against membership limits, seller edits, admin
moderation, likes, view counting and scheduled expiry.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.exceptions import ValidationError, PermissionDenied

from tarodan.core.cache_utils import invalidate_products_cache, invalidate_membership_limits
from tarodan.core.exceptions import Conflict
from tarodan.core.utils import create_audit_log
from tarodan.membership.services import can_create_listing, get_user_limits, get_user_tier
from tarodan.notifications.services import notify
from .models import Category, Product, ProductImage, ProductLike

logger = logging.getLogger(__name__)

LISTING_EXPIRY_DAYS = getattr(settings, 'LISTING_EXPIRY_DAYS', 60)

POPULARITY_WEIGHTS = {
    'view': 1,
    'like': 5,
    'sale': 20,
    'recent_view': 2,
    'recent_like': 10,
}
RECENT_ACTIVITY_DAYS = 7

SELLER_EDITABLE_STATUSES = ('active', 'inactive')
LOCKED_STATUSES = ('sold', 'reserved')

BOT_USER_AGENT_MARKERS = [
    'bot', 'crawler', 'spider', 'scraper', 'curl', 'wget', 'python-requests',
    'java/', 'go-http-client', 'libwww', 'httpunit', 'nutch', 'linkwalker',
    'archiver', 'fetch', 'slurp', 'yandex', 'bingbot', 'googlebot', 'baiduspider',
]

UPDATABLE_FIELDS = ['title', 'description', 'price', 'condition', 'brand', 'scale', 'quantity', 'status', 'is_trade_enabled']


def _get_active_category(category_id):
    category = Category.objects.filter(pk=category_id).first()
    if category is None or not category.is_active:
        raise ValidationError({'category_id': 'Invalid category.'})
    return category


def _check_not_banned(user, action='create listings'):
    if user.is_banned:
        raise PermissionDenied(f'Your account has been banned. You cannot {action}.')


def _replace_images(product, image_urls):
    product.images.all().delete()
    ProductImage.objects.bulk_create([
        ProductImage(product=product, url=url, sort_order=index)
        for index, url in enumerate(image_urls)
    ])


def _listings_changed(seller_id):
    invalidate_products_cache()
    invalidate_membership_limits(seller_id)


def create_product(user, data, request=None):
    """
    Create a listing for `user` from validated serializer data.

    New listings wait for admin approval in `pending`.
    """
    _check_not_banned(user)

    allowed, reason = can_create_listing(user)
    if not allowed:
        raise ValidationError(reason)

    limits = get_user_limits(user, use_cache=False)
    image_urls = data.get('image_urls') or []
    if len(image_urls) > limits['max_images_per_listing']:
        raise ValidationError({
            'image_urls': f"Your membership allows at most {limits['max_images_per_listing']} images per listing."
        })

    category = _get_active_category(data['category_id'])

    if data.get('is_trade_enabled') and not limits['can_trade']:
        raise ValidationError({'is_trade_enabled': 'Trading requires a Premium membership. Upgrade your membership.'})

    with transaction.atomic():
        product = Product.objects.create(
            seller=user,
            category=category,
            title=data['title'],
            description=data.get('description', ''),
            price=data['price'],
            condition=data.get('condition', 'new'),
            brand=data.get('brand', ''),
            scale=data.get('scale', ''),
            quantity=data.get('quantity', 1),
            is_trade_enabled=bool(data.get('is_trade_enabled')),
            status='pending',
        )
        _replace_images(product, image_urls)

        if not user.is_seller:
            user.is_seller = True
            user.save(update_fields=['is_seller', 'updated_at'])

    _listings_changed(user.pk)
    create_audit_log(
        request=request,
        user=user,
        action='create',
        model_name='Product',
        object_id=str(product.id),
        changes={'title': product.title, 'price': str(product.price), 'status': product.status},
    )
    logger.info(f"Listing {product.id} created by seller {user.pk}")
    return product


def update_product(product_id, user, data, request=None):
    """
    Apply a seller's edits with an optimistic version check.

    Sold and reserved listings are immutable and sellers may only move a
    listing between active and inactive. Reactivating counts against the
    membership listing limit again.
    """
    product = get_object_or_404(Product, pk=product_id)

    if product.seller_id != user.pk:
        raise PermissionDenied('You do not have permission to edit this listing.')
    _check_not_banned(user, 'edit listings')

    if product.status in LOCKED_STATUSES:
        raise ValidationError('Sold or reserved listings cannot be updated.')

    new_status = data.get('status')
    if new_status and new_status not in SELLER_EDITABLE_STATUSES:
        raise PermissionDenied('You can only set a listing to active or inactive.')
    if new_status == 'active' and product.status in ('pending', 'rejected'):
        raise PermissionDenied('Listings awaiting approval cannot be activated by the seller.')
    if new_status == 'active' and product.status == 'inactive':
        allowed, reason = can_create_listing(user)
        if not allowed:
            raise ValidationError({'status': reason})

    if data.get('is_trade_enabled') and not get_user_tier(user).can_trade:
        raise ValidationError({'is_trade_enabled': 'Trading requires a Premium membership. Upgrade your membership.'})

    changes = {}
    values = {}
    if 'category_id' in data:
        values['category'] = _get_active_category(data['category_id'])
        changes['category_id'] = data['category_id']
    for field in UPDATABLE_FIELDS:
        if field in data and getattr(product, field) != data[field]:
            values[field] = data[field]
            changes[field] = {'from': str(getattr(product, field)), 'to': str(data[field])}

    if 'image_urls' in data:
        max_images = get_user_tier(user).max_images_per_listing
        if len(data['image_urls']) > max_images:
            raise ValidationError({'image_urls': f"Your membership allows at most {max_images} images per listing."})

    with transaction.atomic():
        expected_version = data.get('version', product.version)
        updated = Product.objects.filter(pk=product.pk, version=expected_version).update(
            version=F('version') + 1,
            updated_at=timezone.now(),
            **values
        )
        if not updated:
            raise Conflict('This listing was updated by another request. Please refresh and try again.')
        if 'image_urls' in data:
            _replace_images(product, data['image_urls'])
            changes['images'] = len(data['image_urls'])

    product.refresh_from_db()
    _listings_changed(user.pk)

    if changes:
        create_audit_log(
            request=request,
            user=user,
            action='update',
            model_name='Product',
            object_id=str(product.id),
            changes=changes,
        )
    return product


def remove_product(product_id, user, request=None):
    """Soft delete: the listing becomes inactive"""
    product = get_object_or_404(Product, pk=product_id)
    if product.seller_id != user.pk:
        raise PermissionDenied('You do not have permission to delete this listing.')
    if product.status in LOCKED_STATUSES:
        raise ValidationError('Sold or reserved listings cannot be deleted.')

    old_status = product.status
    product.status = 'inactive'
    product.version += 1
    product.save(update_fields=['status', 'version', 'updated_at'])
    _listings_changed(user.pk)

    create_audit_log(
        request=request,
        user=user,
        action='delete',
        model_name='Product',
        object_id=str(product.id),
        changes={'status': {'from': old_status, 'to': 'inactive'}},
    )
    return product


def _moderate(product_id, new_status, action, admin_user, request=None, reason=''):
    with transaction.atomic():
        product = get_object_or_404(Product.objects.select_for_update(), pk=product_id)
        if product.status != 'pending':
            raise ValidationError(f'Only pending listings can be moderated (current status: {product.status}).')
        product.status = new_status
        product.rejection_reason = reason
        product.version += 1
        product.save(update_fields=['status', 'rejection_reason', 'version', 'updated_at'])

    _listings_changed(product.seller_id)
    create_audit_log(
        request=request,
        user=admin_user,
        action=action,
        model_name='Product',
        object_id=str(product.id),
        changes={'status': {'from': 'pending', 'to': new_status}, 'reason': reason},
    )
    return product


def approve_product(product_id, admin_user, request=None):
    product = _moderate(product_id, 'active', 'listing_approve', admin_user, request)
    notify(
        product.seller,
        'product_approved',
        'Your listing is live',
        f'"{product.title}" was approved and is now visible to buyers.',
        productId=product.id,
    )
    return product


def reject_product(product_id, admin_user, reason, request=None):
    product = _moderate(product_id, 'rejected', 'listing_reject', admin_user, request, reason=reason)
    notify(
        product.seller,
        'product_rejected',
        'Your listing was rejected',
        f'"{product.title}" was rejected: {reason}',
        productId=product.id,
    )
    return product


def like_product(product_id, user):
    product = get_object_or_404(Product, pk=product_id)
    if product.seller_id == user.pk:
        raise ValidationError('You cannot like your own listing.')

    with transaction.atomic():
        _, created = ProductLike.objects.get_or_create(product=product, user=user)
        if not created:
            raise ValidationError('You already liked this listing.')
        Product.objects.filter(pk=product.pk).update(like_count=F('like_count') + 1)

    product.refresh_from_db(fields=['like_count'])
    return {'liked': True, 'like_count': product.like_count}


def unlike_product(product_id, user):
    product = get_object_or_404(Product, pk=product_id)
    with transaction.atomic():
        deleted, _ = ProductLike.objects.filter(product=product, user=user).delete()
        if not deleted:
            raise ValidationError('You have not liked this listing.')
        Product.objects.filter(pk=product.pk, like_count__gt=0).update(like_count=F('like_count') - 1)

    product.refresh_from_db(fields=['like_count'])
    return {'liked': False, 'like_count': product.like_count}


def is_bot(user_agent):
    """Missing user agents count as bots"""
    if not user_agent:
        return True
    ua = user_agent.lower()
    return any(marker in ua for marker in BOT_USER_AGENT_MARKERS)


def increment_view_count(product_id, user=None, user_agent=None):
    """Count a view unless it comes from the owner or a bot"""
    product = get_object_or_404(Product, pk=product_id)
    if user is not None and user.is_authenticated and product.seller_id == user.pk:
        return {'view_count': product.view_count}
    if is_bot(user_agent):
        return {'view_count': product.view_count}

    Product.objects.filter(pk=product.pk).update(view_count=F('view_count') + 1)
    product.refresh_from_db(fields=['view_count'])
    return {'view_count': product.view_count}


def popularity_score(views, likes, sales=0, recent_views=0, recent_likes=0):
    return (
        views * POPULARITY_WEIGHTS['view'] +
        likes * POPULARITY_WEIGHTS['like'] +
        sales * POPULARITY_WEIGHTS['sale'] +
        recent_views * POPULARITY_WEIGHTS['recent_view'] +
        recent_likes * POPULARITY_WEIGHTS['recent_like']
    )


def update_popularity_scores(now=None):
    """Recompute popularity_score for every active listing; returns the count"""
    now = now or timezone.now()
    recent_since = now - timedelta(days=RECENT_ACTIVITY_DAYS)
    products = Product.objects.filter(status='active').annotate(
        sales=Count('orders', filter=Q(orders__status='completed'), distinct=True),
        recent_likes=Count('likes', filter=Q(likes__created_at__gte=recent_since), distinct=True),
    )
    updated = 0
    for product in products:
        score = popularity_score(product.view_count, product.like_count, product.sales, 0, product.recent_likes)
        if score != product.popularity_score:
            Product.objects.filter(pk=product.pk).update(popularity_score=score)
        updated += 1
    if updated:
        invalidate_products_cache()
    logger.info(f"Popularity scores updated for {updated} listings")
    return updated


def expire_old_listings(now=None):
    """Active listings older than LISTING_EXPIRY_DAYS become inactive"""
    now = now or timezone.now()
    cutoff = now - timedelta(days=LISTING_EXPIRY_DAYS)
    expired = Product.objects.filter(status='active', created_at__lt=cutoff)
    seller_ids = set(expired.values_list('seller_id', flat=True))
    count = expired.update(status='inactive', updated_at=now)

    if count:
        invalidate_products_cache()
        for seller_id in seller_ids:
            invalidate_membership_limits(seller_id)
        logger.info(f"Expired {count} listings older than {LISTING_EXPIRY_DAYS} days")
    else:
        logger.info("No listings to expire")
    return count


def expiring_listings(days=7, now=None):
    """Active listings that expire within `days`"""
    now = now or timezone.now()
    return Product.objects.select_related('seller').filter(
        status='active',
        created_at__lt=now - timedelta(days=LISTING_EXPIRY_DAYS - days),
        created_at__gte=now - timedelta(days=LISTING_EXPIRY_DAYS),
    )


def send_expiration_warnings(days=7, now=None):
    """Notify each seller once about their listings expiring soon; returns sellers notified"""
    by_seller = {}
    for product in expiring_listings(days, now):
        by_seller.setdefault(product.seller, []).append(product)

    for seller, products in by_seller.items():
        if len(products) == 1:
            notify(
                seller,
                'listing_expiring',
                'Your listing expires soon',
                f'"{products[0].title}" will be deactivated within {days} days.',
                productId=products[0].id,
            )
        else:
            notify(
                seller,
                'listing_expiring',
                'Your listings expire soon',
                f'{len(products)} of your listings will be deactivated within {days} days.',
            )
    logger.info(f"Listing expiration warnings sent to {len(by_seller)} sellers")
    return len(by_seller)


def seller_listing_stats(user):
    """Counts by status plus the membership limit summary"""
    counts = {key: 0 for key, _ in Product.STATUS_CHOICES}
    for row in Product.objects.filter(seller=user).values('status').annotate(total=Count('id')):
        counts[row['status']] = row['total']
    active_listings = counts['pending'] + counts['active'] + counts['reserved']
    limits = get_user_limits(user, use_cache=False)
    max_total = limits['max_total_listings']
    return {
        'counts': {**counts, 'active_listings': active_listings},
        'limits': limits,
        'summary': {
            'used': active_listings,
            'max': max_total,
            'remaining': limits['remaining_total_listings'],
            'can_create': limits['remaining_total_listings'] > 0,
            'percent_used': round(active_listings / max_total * 100) if max_total > 0 else 0,
        },
    }
