from rest_framework import serializers
from .models import MembershipTier, UserMembership


class MembershipTierSerializer(serializers.ModelSerializer):
    class Meta:
        model = MembershipTier
        fields = [
            'id', 'type', 'name', 'description', 'monthly_price', 'yearly_price',
            'max_free_listings', 'max_total_listings', 'max_images_per_listing',
            'can_trade', 'can_create_collections', 'commission_rate', 'sort_order',
        ]


class UserMembershipSerializer(serializers.ModelSerializer):
    tier = MembershipTierSerializer(read_only=True)

    class Meta:
        model = UserMembership
        fields = [
            'id', 'tier', 'status', 'billing_period', 'current_period_start',
            'current_period_end', 'cancel_at_period_end', 'cancelled_at', 'created_at',
        ]


class SubscribeSerializer(serializers.Serializer):
    tier_type = serializers.ChoiceField(choices=[choice[0] for choice in MembershipTier.TIER_TYPE_CHOICES])
    billing_period = serializers.ChoiceField(
        choices=[choice[0] for choice in UserMembership.BILLING_PERIOD_CHOICES],
        default='monthly',
    )
