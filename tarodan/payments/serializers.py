from rest_framework import serializers
from .models import Payment, PaymentHold


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    order_status = serializers.CharField(source='order.status', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'order', 'order_number', 'order_status', 'amount', 'currency', 'provider',
            'status', 'failure_reason', 'created_at', 'updated_at',
        ]


class PaymentAdminSerializer(PaymentSerializer):
    """Staff view including provider references and the audit history"""

    class Meta(PaymentSerializer.Meta):
        fields = PaymentSerializer.Meta.fields + ['provider_payment_id', 'provider_conversation_id', 'metadata']


class PaymentHoldSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)

    class Meta:
        model = PaymentHold
        fields = ['id', 'payment', 'order', 'order_number', 'amount', 'status', 'release_at', 'released_at', 'created_at']


class InitiatePaymentSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    provider = serializers.ChoiceField(choices=Payment.PROVIDER_CHOICES)


class RetryPaymentSerializer(serializers.Serializer):
    provider = serializers.ChoiceField(choices=Payment.PROVIDER_CHOICES, required=False)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    reason = serializers.CharField(required=False, allow_blank=True, default='')
