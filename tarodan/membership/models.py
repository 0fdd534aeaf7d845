from django.db import models
from decimal import Decimal
from tarodan.core.models import User


class MembershipTier(models.Model):
    """Subscription level gating listing counts and features"""
    TIER_TYPE_CHOICES = [
        ('free', 'Free'),
        ('basic', 'Basic'),
        ('premium', 'Premium'),
        ('business', 'Business'),
    ]

    type = models.CharField(max_length=20, choices=TIER_TYPE_CHOICES, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    monthly_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    yearly_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    max_free_listings = models.IntegerField(default=5)
    max_total_listings = models.IntegerField(default=10)
    max_images_per_listing = models.IntegerField(default=6)
    can_trade = models.BooleanField(default=False)
    can_create_collections = models.BooleanField(default=False)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('8.00'), help_text="Percent of the sale price kept by the marketplace")
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'membership_tiers'
        ordering = ['sort_order', 'id']


class UserMembership(models.Model):
    """A user's current subscription period"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('cancelled', 'Cancelled'),
        ('expired', 'Expired'),
    ]

    BILLING_PERIOD_CHOICES = [
        ('monthly', 'Monthly'),
        ('yearly', 'Yearly'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='membership')
    tier = models.ForeignKey(MembershipTier, on_delete=models.PROTECT, related_name='memberships')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    billing_period = models.CharField(max_length=20, choices=BILLING_PERIOD_CHOICES, default='monthly')
    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField(db_index=True)
    cancel_at_period_end = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user.username} - {self.tier.name} ({self.status})"

    class Meta:
        db_table = 'user_memberships'
