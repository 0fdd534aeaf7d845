from django.db import models
from tarodan.core.models import User
from tarodan.catalog.models import Product


class Offer(models.Model):
    """
    A price proposal on a listing.

    Counter offers are new rows pointing at the offer they answer through
    `parent`; `proposed_by` tells which side made the proposal and therefore
    which side may accept or reject it.
    """
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('countered', 'Countered'),
        ('cancelled', 'Cancelled'),
        ('expired', 'Expired'),
    ]

    PROPOSED_BY_CHOICES = [
        ('buyer', 'Buyer'),
        ('seller', 'Seller'),
    ]

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='offers')
    buyer = models.ForeignKey(User, on_delete=models.CASCADE, related_name='offers_made')
    seller = models.ForeignKey(User, on_delete=models.CASCADE, related_name='offers_received')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    message = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    proposed_by = models.CharField(max_length=10, choices=PROPOSED_BY_CHOICES, default='buyer')
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='counter_offers')
    expires_at = models.DateTimeField(db_index=True)
    responded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Offer {self.id} on {self.product_id}: {self.amount} ({self.status})"

    @property
    def proposer(self):
        return self.buyer if self.proposed_by == 'buyer' else self.seller

    @property
    def recipient(self):
        return self.seller if self.proposed_by == 'buyer' else self.buyer

    class Meta:
        db_table = 'offers'
        ordering = ['-created_at']
