from django.db import models
from tarodan.core.models import User
from tarodan.orders.models import Order


class Payment(models.Model):
    """One payment attempt for an order; retries create new rows"""
    PROVIDER_CHOICES = [
        ('iyzico', 'iyzico'),
        ('paytr', 'PayTR'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    ]

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='TRY')
    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    provider_payment_id = models.CharField(max_length=255, blank=True, null=True, db_index=True, help_text="Checkout token, later the provider's payment id")
    provider_conversation_id = models.CharField(max_length=255, blank=True, null=True, db_index=True, help_text="Our reference sent to the provider (merchant_oid / conversationId)")
    failure_reason = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Payment {self.id} - {self.order.order_number} ({self.status})"

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']


class PaymentHold(models.Model):
    """Seller payout held in escrow until the buyer completes the order"""
    STATUS_CHOICES = [
        ('held', 'Held'),
        ('released', 'Released'),
        ('cancelled', 'Cancelled'),
    ]

    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name='holds')
    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='payment_holds')
    seller = models.ForeignKey(User, on_delete=models.PROTECT, related_name='payment_holds')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='held', db_index=True)
    release_at = models.DateTimeField()
    released_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Hold {self.id} for {self.seller_id}: {self.amount} ({self.status})"

    class Meta:
        db_table = 'payment_holds'
        ordering = ['-created_at']
