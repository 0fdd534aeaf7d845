from decimal import Decimal
from rest_framework import serializers
from tarodan.core.serializers import PublicUserSerializer
from .models import Trade, TradeItem


class TradeItemSerializer(serializers.ModelSerializer):
    product_title = serializers.CharField(source='product.title', read_only=True)
    product_price = serializers.DecimalField(source='product.price', max_digits=12, decimal_places=2, read_only=True)
    product_image_url = serializers.CharField(source='product.primary_image_url', read_only=True)

    class Meta:
        model = TradeItem
        fields = ['id', 'product', 'product_title', 'product_price', 'product_image_url', 'side']


class TradeSerializer(serializers.ModelSerializer):
    initiator = PublicUserSerializer(read_only=True)
    receiver = PublicUserSerializer(read_only=True)
    initiator_items = serializers.SerializerMethodField()
    receiver_items = serializers.SerializerMethodField()

    class Meta:
        model = Trade
        fields = [
            'id', 'trade_number', 'initiator', 'receiver', 'status', 'cash_amount', 'message',
            'response_message', 'cancel_reason', 'parent', 'expires_at', 'initiator_confirmed',
            'receiver_confirmed', 'initiator_items', 'receiver_items', 'responded_at',
            'completed_at', 'cancelled_at', 'created_at',
        ]

    def _items(self, obj, side):
        items = [item for item in obj.items.all() if item.side == side]
        return TradeItemSerializer(items, many=True).data

    def get_initiator_items(self, obj):
        return self._items(obj, 'initiator')

    def get_receiver_items(self, obj):
        return self._items(obj, 'receiver')


class TradeProposalSerializer(serializers.Serializer):
    """Items are listing ids; the initiator offers theirs for the receiver's"""
    initiator_items = serializers.ListField(child=serializers.IntegerField(), min_length=1)
    receiver_items = serializers.ListField(child=serializers.IntegerField(), min_length=1)
    cash_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False, default=Decimal('0'))
    message = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)


class TradeCreateSerializer(TradeProposalSerializer):
    receiver_id = serializers.IntegerField()


class TradeResponseSerializer(serializers.Serializer):
    message = serializers.CharField(required=False, allow_blank=True, default='', max_length=500)


class TradeCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)
