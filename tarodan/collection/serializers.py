from rest_framework import serializers
from tarodan.core.serializers import PublicUserSerializer
from tarodan.catalog.serializers import ProductListSerializer
from .models import Collection, CollectionItem


class CollectionItemSerializer(serializers.ModelSerializer):
    product = ProductListSerializer(read_only=True)

    class Meta:
        model = CollectionItem
        fields = ['id', 'product', 'sort_order', 'note', 'created_at']


class CollectionSerializer(serializers.ModelSerializer):
    user = PublicUserSerializer(read_only=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Collection
        fields = [
            'id', 'user', 'name', 'slug', 'description', 'cover_image_url', 'is_public',
            'view_count', 'like_count', 'item_count', 'created_at', 'updated_at',
        ]

    def get_item_count(self, obj):
        count = getattr(obj, 'item_count', None)
        return count if count is not None else obj.items.count()


class CollectionDetailSerializer(CollectionSerializer):
    items = serializers.SerializerMethodField()
    is_liked = serializers.SerializerMethodField()
    is_owner = serializers.SerializerMethodField()

    class Meta(CollectionSerializer.Meta):
        fields = CollectionSerializer.Meta.fields + ['items', 'is_liked', 'is_owner']

    def _user(self):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        return user if user is not None and user.is_authenticated else None

    def get_items(self, obj):
        items = obj.items.select_related('product', 'product__seller', 'product__category')
        return CollectionItemSerializer(items, many=True, context=self.context).data

    def get_is_liked(self, obj):
        user = self._user()
        return bool(user) and obj.likes.filter(user=user).exists()

    def get_is_owner(self, obj):
        user = self._user()
        return bool(user) and obj.user_id == user.pk


class CollectionWriteSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=3, max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)
    cover_image_url = serializers.URLField(required=False, allow_blank=True, max_length=500)
    is_public = serializers.BooleanField(required=False)


class AddItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    note = serializers.CharField(required=False, allow_blank=True, default='', max_length=1000)
    sort_order = serializers.IntegerField(required=False)


class ReorderSerializer(serializers.Serializer):
    item_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
