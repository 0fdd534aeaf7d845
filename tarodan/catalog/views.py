import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser, AllowAny
from django.shortcuts import get_object_or_404
from django.http import Http404
from tarodan.core.cache_utils import get_cached_products_list, cache_products_list
from tarodan.core.permissions import IsNotBanned
from tarodan.core.utils import paginate
from .filters import ProductFilter, ORDERING_CHOICES, DEFAULT_ORDERING
from .models import Category, Product
from .serializers import (
    CategorySerializer, ProductListSerializer, ProductDetailSerializer,
    ProductCreateSerializer, ProductUpdateSerializer, ProductRejectSerializer,
)
from . import services

logger = logging.getLogger(__name__)


def _product_queryset():
    return Product.objects.select_related('seller', 'category').prefetch_related('images')


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def category_list_create(request):
    """List active categories (public) or create one (admin)"""
    if request.method == 'GET':
        categories = Category.objects.filter(is_active=True)
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)

    if not (request.user and request.user.is_authenticated and request.user.is_staff):
        return Response({'detail': 'Only administrators can create categories.'}, status=status.HTTP_403_FORBIDDEN)
    serializer = CategorySerializer(data=request.data)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([AllowAny])
def product_list(request):
    """
    Public browse of active listings.

    Results are cached per query string for a short TTL and invalidated
    whenever a listing changes.
    """
    cached_data, cache_key = get_cached_products_list(request.query_params.dict())
    if cached_data is not None:
        return Response(cached_data)

    queryset = _product_queryset().filter(status='active').order_by(*ORDERING_CHOICES[DEFAULT_ORDERING])
    filterset = ProductFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)

    data = paginate(filterset.qs, request, ProductListSerializer)
    cache_products_list(cache_key, data)
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNotBanned])
def product_create(request):
    serializer = ProductCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    product = services.create_product(request.user, serializer.validated_data, request=request)
    product = _product_queryset().get(pk=product.pk)
    return Response(ProductDetailSerializer(product, context={'request': request}).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsNotBanned])
def product_detail(request, pk):
    """
    Retrieve a listing, or update / soft delete it as its seller.

    Listings that are not active are only visible to the seller and admins.
    """
    if request.method == 'GET':
        product = get_object_or_404(_product_queryset(), pk=pk)
        user = request.user
        is_privileged = user.is_authenticated and (user.pk == product.seller_id or user.is_staff)
        if product.status not in ('active', 'reserved', 'sold') and not is_privileged:
            raise Http404
        return Response(ProductDetailSerializer(product, context={'request': request}).data)

    if not request.user.is_authenticated:
        return Response({'detail': 'Authentication credentials were not provided.'}, status=status.HTTP_401_UNAUTHORIZED)

    if request.method == 'PATCH':
        serializer = ProductUpdateSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        product = services.update_product(pk, request.user, serializer.validated_data, request=request)
        product = _product_queryset().get(pk=product.pk)
        return Response(ProductDetailSerializer(product, context={'request': request}).data)

    services.remove_product(pk, request.user, request=request)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_products(request):
    """The current seller's listings in every status"""
    products = _product_queryset().filter(seller=request.user)
    status_filter = request.query_params.get('status')
    if status_filter:
        products = products.filter(status=status_filter)
    return Response(paginate(products, request, ProductListSerializer))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_listing_stats(request):
    return Response(services.seller_listing_stats(request.user))


@api_view(['POST'])
@permission_classes([AllowAny])
def product_view(request, pk):
    """Count a listing view"""
    result = services.increment_view_count(
        pk,
        user=request.user,
        user_agent=request.META.get('HTTP_USER_AGENT'),
    )
    return Response(result)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated, IsNotBanned])
def product_like(request, pk):
    if request.method == 'POST':
        return Response(services.like_product(pk, request.user))
    return Response(services.unlike_product(pk, request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminUser])
def pending_products(request):
    """Moderation queue, oldest first"""
    products = _product_queryset().filter(status='pending').order_by('created_at')
    return Response(paginate(products, request, ProductListSerializer))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def product_approve(request, pk):
    product = services.approve_product(pk, request.user, request=request)
    return Response(ProductDetailSerializer(product, context={'request': request}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminUser])
def product_reject(request, pk):
    serializer = ProductRejectSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    product = services.reject_product(pk, request.user, serializer.validated_data['reason'], request=request)
    return Response(ProductDetailSerializer(product, context={'request': request}).data)
