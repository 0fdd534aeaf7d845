from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from tarodan.core.permissions import IsNotBanned
from tarodan.core.utils import paginate
from .models import Collection
from .serializers import (
    CollectionSerializer, CollectionDetailSerializer, CollectionWriteSerializer,
    CollectionItemSerializer, AddItemSerializer, ReorderSerializer,
)
from . import services


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def collection_list_create(request):
    """
    GET: the user's own collections, public and private.
    POST: create a collection (membership feature).
    """
    if request.method == 'GET':
        collections = Collection.objects.filter(user=request.user).select_related('user')
        return Response(paginate(collections, request, CollectionSerializer))

    serializer = CollectionWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    collection = services.create_collection(request.user, serializer.validated_data)
    return Response(
        CollectionDetailSerializer(collection, context={'request': request}).data,
        status=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([AllowAny])
def collection_browse(request):
    """Public collections; `search` and `ordering=popular|recent|name|items|liked`"""
    collections = services.browse_collections(
        search=request.query_params.get('search'),
        ordering=request.query_params.get('ordering'),
    )
    user_id = request.query_params.get('user')
    if user_id:
        collections = collections.filter(user_id=user_id)
    return Response(paginate(collections, request, CollectionSerializer))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def collection_liked(request):
    collections = Collection.objects.filter(
        likes__user=request.user, is_public=True
    ).select_related('user').order_by('-likes__created_at')
    return Response(paginate(collections, request, CollectionSerializer))


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsNotBanned])
def collection_detail(request, pk):
    if request.method == 'GET':
        collection = services.get_collection(pk, request.user)
        return Response(CollectionDetailSerializer(collection, context={'request': request}).data)

    if not request.user.is_authenticated:
        return Response({'detail': 'Authentication credentials were not provided.'}, status=status.HTTP_401_UNAUTHORIZED)

    if request.method == 'PATCH':
        serializer = CollectionWriteSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        collection = services.update_collection(pk, request.user, serializer.validated_data)
        return Response(CollectionDetailSerializer(collection, context={'request': request}).data)

    services.delete_collection(pk, request.user)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def collection_add_item(request, pk):
    serializer = AddItemSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    item = services.add_item(
        pk, request.user,
        serializer.validated_data['product_id'],
        note=serializer.validated_data['note'],
        sort_order=serializer.validated_data.get('sort_order'),
    )
    return Response(CollectionItemSerializer(item, context={'request': request}).data, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsNotBanned])
def collection_remove_item(request, pk, item_id):
    services.remove_item(pk, item_id, request.user)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def collection_reorder(request, pk):
    serializer = ReorderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    items = services.reorder_items(pk, request.user, serializer.validated_data['item_ids'])
    return Response(CollectionItemSerializer(items, many=True, context={'request': request}).data)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated, IsNotBanned])
def collection_like(request, pk):
    if request.method == 'POST':
        return Response(services.like_collection(pk, request.user))
    return Response(services.unlike_collection(pk, request.user))
