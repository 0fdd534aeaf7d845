"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from tarodan.catalog.models import Category, Product, ProductImage
from tarodan.membership.models import MembershipTier, UserMembership
from tarodan.offers.models import Offer
from tarodan.orders.services import create_order
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False,
                    is_superuser=False, **extra):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser,
            **extra
        )

    @staticmethod
    def create_admin(username=None):
        return TestDataFactory.create_user(username=username, is_staff=True)

    @staticmethod
    def create_category(name=None, parent=None, is_active=True):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            slug=name.lower().replace('_', '-'),
            parent=parent,
            is_active=is_active,
        )

    @staticmethod
    def create_product(seller=None, category=None, title=None, price=None, status='active',
                       is_trade_enabled=False, image_urls=None, **extra):
        """Create a listing directly, bypassing moderation"""
        if not seller:
            seller = TestDataFactory.create_user()
        if not category:
            category = TestDataFactory.create_category()
        if not title:
            title = f'Model_{TestDataFactory.random_string(6)}'
        if price is None:
            price = Decimal('1000.00')
        product = Product.objects.create(
            seller=seller,
            category=category,
            title=title,
            price=price,
            status=status,
            is_trade_enabled=is_trade_enabled,
            brand=extra.pop('brand', 'Hot Wheels'),
            scale=extra.pop('scale', '1:64'),
            **extra
        )
        for index, url in enumerate(image_urls or []):
            ProductImage.objects.create(product=product, url=url, sort_order=index)
        return product

    @staticmethod
    def create_membership(user, tier_type='premium', days=30, status='active'):
        """Put a user on a tier; tiers are seeded by migration"""
        now = timezone.now()
        return UserMembership.objects.create(
            user=user,
            tier=MembershipTier.objects.get(type=tier_type),
            status=status,
            current_period_start=now,
            current_period_end=now + timedelta(days=days),
        )

    @staticmethod
    def create_offer(product, buyer=None, amount=None, proposed_by='buyer', status='pending', expires_in_hours=48):
        if not buyer:
            buyer = TestDataFactory.create_user()
        if amount is None:
            amount = product.price - Decimal('100.00')
        return Offer.objects.create(
            product=product,
            buyer=buyer,
            seller=product.seller,
            amount=amount,
            proposed_by=proposed_by,
            status=status,
            expires_at=timezone.now() + timedelta(hours=expires_in_hours),
        )

    @staticmethod
    def create_order(buyer=None, product=None, item_price=None, status=None):
        """Create an order through the service so the listing is reserved"""
        if not buyer:
            buyer = TestDataFactory.create_user()
        if not product:
            product = TestDataFactory.create_product()
        order = create_order(buyer, product, item_price if item_price is not None else product.price,
                             shipping_address='Bagdat Cad. 1, Istanbul')
        if status:
            order.status = status
            order.save(update_fields=['status'])
        return order


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()


class MarketplaceTestCase(TestCase):
    """TestCase that starts every test with an empty cache"""

    def setUp(self):
        cache.clear()
        super().setUp()
