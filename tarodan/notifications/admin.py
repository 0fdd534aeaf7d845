from django.contrib import admin
from .models import NotificationLog


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'channel', 'type', 'title', 'status', 'is_read', 'created_at']
    list_filter = ['channel', 'type', 'status', 'is_read']
    search_fields = ['user__username', 'title', 'body']
    ordering = ['-created_at']
    readonly_fields = ['created_at', 'sent_at', 'read_at']
