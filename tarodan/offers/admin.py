from django.contrib import admin
from .models import Offer


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    list_display = ['id', 'product', 'buyer', 'seller', 'amount', 'status', 'proposed_by', 'expires_at', 'created_at']
    list_filter = ['status', 'proposed_by', 'created_at']
    search_fields = ['product__title', 'buyer__username', 'seller__username']
    ordering = ['-created_at']
