from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Marketplace account. Every user can buy; listing a product turns on seller mode."""
    phone = models.CharField(max_length=20, blank=True, null=True)
    display_name = models.CharField(max_length=100, blank=True)
    is_seller = models.BooleanField(default=False)
    is_banned = models.BooleanField(default=False, db_index=True)
    ban_reason = models.TextField(blank=True)
    push_token = models.CharField(max_length=255, blank=True, null=True, help_text="Expo push token of the user's device")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def get_display_name(self):
        return self.display_name or self.get_full_name() or self.username

    class Meta:
        db_table = 'users'


class AuditLog(models.Model):
    """Audit log for status changes and admin operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('listing_approve', 'Listing Approved'),
        ('listing_reject', 'Listing Rejected'),
        ('offer_accept', 'Offer Accepted'),
        ('offer_reject', 'Offer Rejected'),
        ('offer_counter', 'Offer Countered'),
        ('offer_cancel', 'Offer Cancelled'),
        ('order_create', 'Order Created'),
        ('order_status', 'Order Status Changed'),
        ('payment_create', 'Payment Created'),
        ('payment_complete', 'Payment Completed'),
        ('payment_fail', 'Payment Failed'),
        ('payment_refund', 'Payment Refunded'),
        ('payment_release', 'Payment Released'),
        ('trade_status', 'Trade Status Changed'),
        ('membership_change', 'Membership Changed'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number, trade number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_d2b1f4_idx'),
            models.Index(fields=['action'], name='audit_logs_action_7a3c2e_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_5e9b1d_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__c4a8f0_idx'),
        ]
