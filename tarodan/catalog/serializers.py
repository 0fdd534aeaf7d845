from decimal import Decimal
from rest_framework import serializers
from tarodan.core.serializers import PublicUserSerializer
from .models import Category, Product, ProductImage


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'slug', 'parent', 'description', 'is_active', 'sort_order']


class ProductImageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductImage
        fields = ['id', 'url', 'sort_order']


class ProductListSerializer(serializers.ModelSerializer):
    """Compact listing card for browse results"""
    seller = PublicUserSerializer(read_only=True)
    category_name = serializers.CharField(source='category.name', read_only=True)
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'title', 'price', 'condition', 'brand', 'scale', 'status', 'is_trade_enabled',
            'seller', 'category', 'category_name', 'image_url', 'view_count', 'like_count', 'created_at',
        ]

    def get_image_url(self, obj):
        # Uses prefetched images when available
        images = list(obj.images.all())
        return images[0].url if images else None


class ProductDetailSerializer(serializers.ModelSerializer):
    seller = PublicUserSerializer(read_only=True)
    category = CategorySerializer(read_only=True)
    images = ProductImageSerializer(many=True, read_only=True)
    is_liked = serializers.SerializerMethodField()
    is_owner = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'title', 'description', 'price', 'condition', 'brand', 'scale', 'status',
            'quantity', 'is_trade_enabled', 'seller', 'category', 'images', 'view_count',
            'like_count', 'rejection_reason', 'version', 'is_liked', 'is_owner',
            'created_at', 'updated_at',
        ]

    def _user(self):
        request = self.context.get('request')
        if request and request.user and request.user.is_authenticated:
            return request.user
        return None

    def get_is_liked(self, obj):
        user = self._user()
        if not user:
            return False
        return obj.likes.filter(user=user).exists()

    def get_is_owner(self, obj):
        user = self._user()
        return bool(user and obj.seller_id == user.id)


class ProductCreateSerializer(serializers.Serializer):
    category_id = serializers.IntegerField()
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    condition = serializers.ChoiceField(choices=Product.CONDITION_CHOICES, default='new')
    brand = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    scale = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    quantity = serializers.IntegerField(min_value=1, default=1)
    is_trade_enabled = serializers.BooleanField(default=False)
    image_urls = serializers.ListField(child=serializers.URLField(max_length=500), required=False, default=list)


class ProductUpdateSerializer(serializers.Serializer):
    category_id = serializers.IntegerField(required=False)
    title = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    condition = serializers.ChoiceField(choices=Product.CONDITION_CHOICES, required=False)
    brand = serializers.CharField(max_length=100, required=False, allow_blank=True)
    scale = serializers.CharField(max_length=20, required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=Product.STATUS_CHOICES, required=False)
    is_trade_enabled = serializers.BooleanField(required=False)
    image_urls = serializers.ListField(child=serializers.URLField(max_length=500), required=False)
    version = serializers.IntegerField(required=False, help_text="Version the client edited; a mismatch is a conflict")


class ProductRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)
