from rest_framework import serializers
from tarodan.core.serializers import PublicUserSerializer
from .models import Order


class OrderSerializer(serializers.ModelSerializer):
    buyer = PublicUserSerializer(read_only=True)
    seller = PublicUserSerializer(read_only=True)
    product_title = serializers.CharField(source='product.title', read_only=True)
    product_image_url = serializers.CharField(source='product.primary_image_url', read_only=True)
    seller_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'buyer', 'seller', 'product', 'product_title', 'product_image_url',
            'offer', 'item_price', 'shipping_cost', 'total_amount', 'commission_rate',
            'commission_amount', 'seller_amount', 'status', 'allowed_transitions',
            'shipping_address', 'carrier', 'tracking_number', 'cancel_reason',
            'paid_at', 'shipped_at', 'delivered_at', 'completed_at', 'cancelled_at',
            'created_at', 'updated_at',
        ]

    def get_allowed_transitions(self, obj):
        return Order.ALLOWED_TRANSITIONS.get(obj.status, [])


class BuyNowSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    shipping_address = serializers.CharField(required=False, allow_blank=True, default='')


class ShipOrderSerializer(serializers.Serializer):
    carrier = serializers.CharField(max_length=100)
    tracking_number = serializers.CharField(max_length=100)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')
