from decimal import Decimal
from django.utils import timezone
from rest_framework import serializers
from tarodan.core.serializers import PublicUserSerializer
from .models import Offer


class OfferSerializer(serializers.ModelSerializer):
    buyer = PublicUserSerializer(read_only=True)
    seller = PublicUserSerializer(read_only=True)
    product_title = serializers.CharField(source='product.title', read_only=True)
    product_price = serializers.DecimalField(source='product.price', max_digits=12, decimal_places=2, read_only=True)
    is_expired = serializers.SerializerMethodField()

    class Meta:
        model = Offer
        fields = [
            'id', 'product', 'product_title', 'product_price', 'buyer', 'seller', 'amount',
            'message', 'status', 'proposed_by', 'parent', 'expires_at', 'is_expired',
            'responded_at', 'created_at',
        ]

    def get_is_expired(self, obj):
        return obj.status == 'expired' or (obj.status == 'pending' and obj.expires_at <= timezone.now())


class OfferCreateSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    message = serializers.CharField(required=False, allow_blank=True, default='', max_length=1000)


class CounterOfferSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    message = serializers.CharField(required=False, allow_blank=True, default='', max_length=1000)
