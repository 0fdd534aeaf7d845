from django.contrib import admin
from .models import Trade, TradeItem


class TradeItemInline(admin.TabularInline):
    model = TradeItem
    extra = 0
    raw_id_fields = ['product']


@admin.register(Trade)
class TradeAdmin(admin.ModelAdmin):
    list_display = ['trade_number', 'initiator', 'receiver', 'status', 'cash_amount', 'expires_at', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['trade_number', 'initiator__username', 'receiver__username']
    ordering = ['-created_at']
    inlines = [TradeItemInline]
