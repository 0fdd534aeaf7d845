from django.contrib import admin
from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'buyer', 'seller', 'product', 'total_amount', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['order_number', 'buyer__username', 'seller__username', 'product__title', 'tracking_number']
    ordering = ['-created_at']
    readonly_fields = ['order_number', 'commission_rate', 'commission_amount', 'version', 'created_at', 'updated_at']
