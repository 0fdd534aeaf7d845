from django.db import models
from tarodan.core.models import User
from tarodan.catalog.models import Product


class Trade(models.Model):
    """
    A barter proposal: the initiator offers their items for the receiver's,
    optionally topped up with cash paid by the initiator.
    """
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('countered', 'Countered'),
        ('cancelled', 'Cancelled'),
        ('completed', 'Completed'),
        ('expired', 'Expired'),
    ]

    trade_number = models.CharField(max_length=50, unique=True)
    initiator = models.ForeignKey(User, on_delete=models.CASCADE, related_name='trades_initiated')
    receiver = models.ForeignKey(User, on_delete=models.CASCADE, related_name='trades_received')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    cash_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    message = models.TextField(blank=True)
    response_message = models.TextField(blank=True)
    cancel_reason = models.TextField(blank=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='counter_trades')
    expires_at = models.DateTimeField(db_index=True)
    initiator_confirmed = models.BooleanField(default=False)
    receiver_confirmed = models.BooleanField(default=False)
    responded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.trade_number} ({self.status})"

    class Meta:
        db_table = 'trades'
        ordering = ['-created_at']


class TradeItem(models.Model):
    SIDE_CHOICES = [
        ('initiator', 'Initiator'),
        ('receiver', 'Receiver'),
    ]

    trade = models.ForeignKey(Trade, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='trade_items')
    side = models.CharField(max_length=10, choices=SIDE_CHOICES)

    def __str__(self):
        return f"{self.trade_id}: {self.product_id} ({self.side})"

    class Meta:
        db_table = 'trade_items'
        unique_together = ['trade', 'product']
