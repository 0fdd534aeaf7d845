from django.contrib import admin
from .models import MembershipTier, UserMembership


@admin.register(MembershipTier)
class MembershipTierAdmin(admin.ModelAdmin):
    list_display = ['name', 'type', 'monthly_price', 'yearly_price', 'max_total_listings', 'can_trade', 'can_create_collections', 'commission_rate', 'is_active']
    list_filter = ['is_active', 'can_trade', 'can_create_collections']
    search_fields = ['name', 'type']
    ordering = ['sort_order']


@admin.register(UserMembership)
class UserMembershipAdmin(admin.ModelAdmin):
    list_display = ['user', 'tier', 'status', 'billing_period', 'current_period_end', 'cancel_at_period_end']
    list_filter = ['status', 'billing_period', 'tier']
    search_fields = ['user__username', 'user__email']
    readonly_fields = ['created_at', 'updated_at']
