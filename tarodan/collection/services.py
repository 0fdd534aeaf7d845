"""
Digital Garage: user collections of listings.

Creating collections is a membership feature; viewing public ones is open to
everyone.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Max, Q
from django.shortcuts import get_object_or_404
from django.utils.text import slugify
from rest_framework.exceptions import ValidationError, PermissionDenied

from tarodan.catalog.models import Product
from tarodan.membership.services import can_create_collection
from tarodan.notifications.services import notify
from .models import Collection, CollectionItem, CollectionLike

logger = logging.getLogger(__name__)

BROWSE_ORDERING = {
    'popular': ['-view_count', '-created_at'],
    'recent': ['-created_at'],
    'name': ['name'],
    'items': ['-item_count', '-created_at'],
    'liked': ['-like_count', '-created_at'],
}
DEFAULT_BROWSE_ORDERING = 'popular'


def make_slug(name):
    slug = slugify(name)
    if not slug:
        raise ValidationError({'name': 'Collection name must contain letters or digits.'})
    return slug


def _ensure_owner(collection, user, action='edit'):
    if collection.user_id != user.pk:
        raise PermissionDenied(f'You do not have permission to {action} this collection.')


def _ensure_visible(collection, user):
    is_owner = user is not None and user.is_authenticated and collection.user_id == user.pk
    if not collection.is_public and not is_owner:
        raise PermissionDenied('This collection is private.')
    return is_owner


def create_collection(user, data):
    allowed, reason = can_create_collection(user)
    if not allowed:
        raise PermissionDenied(reason)

    slug = make_slug(data['name'])
    if Collection.objects.filter(user=user, slug=slug).exists():
        raise ValidationError({'name': 'You already have a collection with this name.'})

    try:
        with transaction.atomic():
            collection = Collection.objects.create(
                user=user,
                name=data['name'],
                slug=slug,
                description=data.get('description', ''),
                cover_image_url=data.get('cover_image_url', ''),
                is_public=data.get('is_public', True),
            )
    except IntegrityError:
        raise ValidationError({'name': 'You already have a collection with this name.'})
    logger.info(f"Collection {collection.id} created by user {user.pk}")
    return collection


def get_collection(collection_id, user=None, count_view=True):
    """A collection the viewer may see; views by others are counted"""
    collection = get_object_or_404(Collection.objects.select_related('user'), pk=collection_id)
    is_owner = _ensure_visible(collection, user)
    if count_view and not is_owner:
        Collection.objects.filter(pk=collection.pk).update(view_count=F('view_count') + 1)
        collection.refresh_from_db(fields=['view_count'])
    return collection


def update_collection(collection_id, user, data):
    collection = get_object_or_404(Collection, pk=collection_id)
    _ensure_owner(collection, user)

    update_fields = ['updated_at']
    if 'name' in data and data['name'] != collection.name:
        slug = make_slug(data['name'])
        if Collection.objects.filter(user=user, slug=slug).exclude(pk=collection.pk).exists():
            raise ValidationError({'name': 'You already have a collection with this name.'})
        collection.name = data['name']
        collection.slug = slug
        update_fields += ['name', 'slug']
    for field in ('description', 'cover_image_url', 'is_public'):
        if field in data:
            setattr(collection, field, data[field])
            update_fields.append(field)
    collection.save(update_fields=update_fields)
    return collection


def delete_collection(collection_id, user):
    collection = get_object_or_404(Collection, pk=collection_id)
    _ensure_owner(collection, user, 'delete')
    collection.delete()
    logger.info(f"Collection {collection_id} deleted by user {user.pk}")


def add_item(collection_id, user, product_id, note='', sort_order=None):
    collection = get_object_or_404(Collection, pk=collection_id)
    _ensure_owner(collection, user)
    product = get_object_or_404(Product, pk=product_id)

    if CollectionItem.objects.filter(collection=collection, product=product).exists():
        raise ValidationError('This listing is already in the collection.')

    if sort_order is None:
        current_max = collection.items.aggregate(max_order=Max('sort_order'))['max_order']
        sort_order = (current_max or 0) + 1
    return CollectionItem.objects.create(collection=collection, product=product, note=note or '', sort_order=sort_order)


def remove_item(collection_id, item_id, user):
    collection = get_object_or_404(Collection, pk=collection_id)
    _ensure_owner(collection, user)
    item = get_object_or_404(CollectionItem, pk=item_id, collection=collection)
    item.delete()


def reorder_items(collection_id, user, item_ids):
    """`item_ids` lists every item of the collection in its new order"""
    collection = get_object_or_404(Collection, pk=collection_id)
    _ensure_owner(collection, user)

    existing = set(collection.items.values_list('id', flat=True))
    if len(item_ids) != len(set(item_ids)) or set(item_ids) != existing:
        raise ValidationError({'item_ids': 'Provide every item of the collection exactly once.'})

    with transaction.atomic():
        for position, item_id in enumerate(item_ids, start=1):
            CollectionItem.objects.filter(pk=item_id, collection=collection).update(sort_order=position)
    return collection.items.select_related('product')


def like_collection(collection_id, user):
    collection = get_object_or_404(Collection, pk=collection_id)
    if collection.user_id == user.pk:
        raise ValidationError('You cannot like your own collection.')
    if not collection.is_public:
        raise PermissionDenied('This collection is private.')

    with transaction.atomic():
        _, created = CollectionLike.objects.get_or_create(collection=collection, user=user)
        if not created:
            raise ValidationError('You already liked this collection.')
        Collection.objects.filter(pk=collection.pk).update(like_count=F('like_count') + 1)

    collection.refresh_from_db(fields=['like_count'])
    notify(
        collection.user,
        'collection_liked',
        'Your collection got a like',
        f'{user.get_display_name()} liked "{collection.name}".',
        collectionId=collection.id,
    )
    return {'liked': True, 'like_count': collection.like_count}


def unlike_collection(collection_id, user):
    collection = get_object_or_404(Collection, pk=collection_id)
    with transaction.atomic():
        deleted, _ = CollectionLike.objects.filter(collection=collection, user=user).delete()
        if not deleted:
            raise ValidationError('You have not liked this collection.')
        Collection.objects.filter(pk=collection.pk, like_count__gt=0).update(like_count=F('like_count') - 1)

    collection.refresh_from_db(fields=['like_count'])
    return {'liked': False, 'like_count': collection.like_count}


def browse_collections(search=None, ordering=None):
    collections = Collection.objects.filter(is_public=True).select_related('user').annotate(item_count=Count('items'))
    if search:
        collections = collections.filter(
            Q(name__icontains=search) | Q(description__icontains=search) | Q(user__display_name__icontains=search)
        )
    return collections.order_by(*BROWSE_ORDERING.get(ordering, BROWSE_ORDERING[DEFAULT_BROWSE_ORDERING]))
