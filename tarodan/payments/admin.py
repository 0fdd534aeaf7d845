from django.contrib import admin
from .models import Payment, PaymentHold


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'provider', 'amount', 'status', 'created_at']
    list_filter = ['provider', 'status', 'created_at']
    search_fields = ['order__order_number', 'provider_payment_id', 'provider_conversation_id']
    ordering = ['-created_at']
    readonly_fields = ['provider_payment_id', 'provider_conversation_id', 'metadata', 'created_at', 'updated_at']


@admin.register(PaymentHold)
class PaymentHoldAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'seller', 'amount', 'status', 'release_at', 'released_at']
    list_filter = ['status']
    search_fields = ['order__order_number', 'seller__username']
    ordering = ['-created_at']
