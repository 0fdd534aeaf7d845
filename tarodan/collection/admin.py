from django.contrib import admin
from .models import Collection, CollectionItem


class CollectionItemInline(admin.TabularInline):
    model = CollectionItem
    extra = 0
    raw_id_fields = ['product']


@admin.register(Collection)
class CollectionAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'is_public', 'view_count', 'like_count', 'created_at']
    list_filter = ['is_public', 'created_at']
    search_fields = ['name', 'slug', 'user__username']
    ordering = ['-created_at']
    inlines = [CollectionItemInline]
