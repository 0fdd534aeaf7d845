from django.contrib import admin
from .models import Category, Product, ProductImage, ProductLike


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'parent', 'is_active', 'sort_order']
    list_filter = ['is_active']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    ordering = ['sort_order', 'name']


class ProductImageInline(admin.TabularInline):
    model = ProductImage
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['title', 'seller', 'category', 'price', 'status', 'is_trade_enabled', 'view_count', 'like_count', 'created_at']
    list_filter = ['status', 'condition', 'is_trade_enabled', 'category', 'created_at']
    search_fields = ['title', 'description', 'brand', 'seller__username']
    ordering = ['-created_at']
    readonly_fields = ['view_count', 'like_count', 'popularity_score', 'version', 'created_at', 'updated_at']
    inlines = [ProductImageInline]


@admin.register(ProductLike)
class ProductLikeAdmin(admin.ModelAdmin):
    list_display = ['product', 'user', 'created_at']
    search_fields = ['product__title', 'user__username']
