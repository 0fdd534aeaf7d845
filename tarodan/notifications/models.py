from django.db import models
from tarodan.core.models import User


class NotificationLog(models.Model):
    """One row per delivered notification; in-app rows back the notification center"""
    CHANNEL_CHOICES = [
        ('in_app', 'In-App'),
        ('push', 'Push'),
    ]

    STATUS_CHOICES = [
        ('sent', 'Sent'),
        ('failed', 'Failed'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default='in_app')
    type = models.CharField(max_length=50, default='general', db_index=True)
    title = models.CharField(max_length=255)
    body = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='sent')
    error = models.TextField(blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.type} -> {self.user_id}"

    class Meta:
        db_table = 'notification_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'channel', 'is_read'], name='notif_user_channel_read_idx'),
        ]
