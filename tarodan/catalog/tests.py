"""
Test suite for the catalog: listing creation against membership limits,
seller edits, moderation, likes, views, browse filters and listing expiry
"""
from datetime import timedelta
from decimal import Decimal
from django.core.management import call_command
from django.utils import timezone
from rest_framework import status
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.catalog.models import Product, ProductLike
from tarodan.catalog import services
from tarodan.notifications.models import NotificationLog

BROWSER_UA = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15'


class ProductCreateTests(MarketplaceTestCase):
    """Test listing creation rules"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()
        self.category = TestDataFactory.create_category()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def payload(self, **overrides):
        data = {
            'category_id': self.category.id,
            'title': 'Ferrari F40 1:18',
            'description': 'Boxed, mint condition',
            'price': '1500.00',
            'condition': 'like_new',
            'brand': 'Bburago',
            'scale': '1:18',
            'image_urls': ['https://cdn.test/f40-1.jpg', 'https://cdn.test/f40-2.jpg'],
        }
        data.update(overrides)
        return data

    def test_create_listing_starts_pending(self):
        """Test new listings wait for approval and turn on seller mode"""
        response = self.client.post('/api/v1/products/create/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(len(response.data['images']), 2)
        self.user.refresh_from_db()
        self.assertTrue(self.user.is_seller)

    def test_banned_user_cannot_create(self):
        """Test banned users are refused"""
        self.user.is_banned = True
        self.user.save()
        response = self.client.post('/api/v1/products/create/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_listing_limit_enforced(self):
        """Test free tier stops at 10 counted listings"""
        for _ in range(10):
            TestDataFactory.create_product(seller=self.user, category=self.category, status='pending')
        response = self.client.post('/api/v1/products/create/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Product.objects.filter(seller=self.user).count(), 10)

    def test_image_limit_enforced(self):
        """Test free tier allows at most 6 images"""
        urls = [f'https://cdn.test/{i}.jpg' for i in range(7)]
        response = self.client.post('/api/v1/products/create/', self.payload(image_urls=urls), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inactive_category_rejected(self):
        """Test listings need an active category"""
        category = TestDataFactory.create_category(is_active=False)
        response = self.client.post('/api/v1/products/create/', self.payload(category_id=category.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_trade_flag_requires_trade_tier(self):
        """Test free users cannot open listings to trades"""
        response = self.client.post('/api/v1/products/create/', self.payload(is_trade_enabled=True), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        TestDataFactory.create_membership(self.user, 'premium')
        response = self.client.post('/api/v1/products/create/', self.payload(is_trade_enabled=True), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_trade_enabled'])

    def test_zero_price_rejected(self):
        """Test price must be positive"""
        response = self.client.post('/api/v1/products/create/', self.payload(price='0'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProductUpdateTests(MarketplaceTestCase):
    """Test seller edits and soft delete"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller, price=Decimal('500.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.seller)
        self.url = f'/api/v1/products/{self.product.id}/'

    def test_update_price_bumps_version(self):
        """Test an edit changes the field and increments version"""
        response = self.client.patch(self.url, {'price': '450.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.price, Decimal('450.00'))
        self.assertEqual(self.product.version, 2)

    def test_stale_version_conflicts(self):
        """Test an edit based on an old version is a 409"""
        self.client.patch(self.url, {'price': '450.00'}, format='json')
        response = self.client.patch(self.url, {'price': '400.00', 'version': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_other_user_cannot_edit(self):
        """Test only the owner can edit"""
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.patch(self.url, {'price': '1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reserved_listing_is_locked(self):
        """Test reserved listings cannot be edited or deleted"""
        self.product.status = 'reserved'
        self.product.save()
        self.assertEqual(self.client.patch(self.url, {'title': 'x'}, format='json').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.delete(self.url).status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_cannot_mark_sold(self):
        """Test sellers may only toggle active and inactive"""
        response = self.client.patch(self.url, {'status': 'sold'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_pending_listing_cannot_self_activate(self):
        """Test moderation cannot be skipped by the seller"""
        self.product.status = 'pending'
        self.product.save()
        response = self.client.patch(self.url, {'status': 'active'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reactivation_respects_listing_limit(self):
        """Test a deactivated listing cannot come back once the slot is reused"""
        for _ in range(9):
            TestDataFactory.create_product(seller=self.seller)
        response = self.client.patch(self.url, {'status': 'inactive'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        TestDataFactory.create_product(seller=self.seller)

        response = self.client.patch(self.url, {'status': 'active'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'inactive')
        self.assertEqual(Product.objects.filter(seller=self.seller, status='active').count(), 10)

    def test_reactivation_within_limit(self):
        self.client.patch(self.url, {'status': 'inactive'}, format='json')
        response = self.client.patch(self.url, {'status': 'active'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'active')

    def test_replace_images(self):
        """Test image_urls replaces the image set"""
        response = self.client.patch(self.url, {'image_urls': ['https://cdn.test/new.jpg']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([i.url for i in self.product.images.all()], ['https://cdn.test/new.jpg'])

    def test_delete_is_soft(self):
        """Test delete deactivates the listing"""
        response = self.client.delete(self.url)
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'inactive')

    def test_anonymous_delete_unauthorized(self):
        """Test writes need authentication"""
        self.client.logout()
        self.assertEqual(self.client.delete(self.url).status_code, status.HTTP_401_UNAUTHORIZED)


class ModerationTests(MarketplaceTestCase):
    """Test admin approval and rejection"""

    def setUp(self):
        super().setUp()
        self.admin = TestDataFactory.create_admin()
        self.seller = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller, status='pending')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_approve(self):
        """Test approval activates the listing and notifies the seller"""
        response = self.client.post(f'/api/v1/products/{self.product.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'active')
        notification = NotificationLog.objects.get(user=self.seller, type='product_approved')
        self.assertEqual(notification.data['link'], f'/listings/{self.product.id}')

    def test_reject_with_reason(self):
        """Test rejection stores the reason"""
        response = self.client.post(
            f'/api/v1/products/{self.product.id}/reject/', {'reason': 'Blurry photos'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'rejected')
        self.assertEqual(self.product.rejection_reason, 'Blurry photos')

    def test_only_pending_can_be_moderated(self):
        """Test active listings cannot be approved again"""
        self.client.post(f'/api/v1/products/{self.product.id}/approve/')
        response = self.client.post(f'/api/v1/products/{self.product.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_non_admin_forbidden(self):
        """Test regular users cannot moderate"""
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/products/{self.product.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_pending_hidden_from_public(self):
        """Test pending listings are only visible to owner and staff"""
        self.client.logout()
        self.assertEqual(self.client.get(f'/api/v1/products/{self.product.id}/').status_code, status.HTTP_404_NOT_FOUND)
        self.client.authenticate_user(self.seller)
        self.assertEqual(self.client.get(f'/api/v1/products/{self.product.id}/').status_code, status.HTTP_200_OK)


class LikeAndViewTests(MarketplaceTestCase):
    """Test likes and view counting"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.buyer)
        self.like_url = f'/api/v1/products/{self.product.id}/like/'

    def test_like_and_unlike(self):
        """Test like count follows likes"""
        response = self.client.post(self.like_url)
        self.assertEqual(response.data, {'liked': True, 'like_count': 1})
        response = self.client.delete(self.like_url)
        self.assertEqual(response.data, {'liked': False, 'like_count': 0})
        self.assertFalse(ProductLike.objects.exists())

    def test_duplicate_like_rejected(self):
        """Test a user can like a listing once"""
        self.client.post(self.like_url)
        self.assertEqual(self.client.post(self.like_url).status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_like_own_listing(self):
        """Test sellers cannot like their listings"""
        self.client.authenticate_user(self.seller)
        self.assertEqual(self.client.post(self.like_url).status_code, status.HTTP_400_BAD_REQUEST)

    def test_view_counted_for_browser(self):
        """Test a regular browser view is counted"""
        response = self.client.post(f'/api/v1/products/{self.product.id}/view/', HTTP_USER_AGENT=BROWSER_UA)
        self.assertEqual(response.data['view_count'], 1)

    def test_bot_and_owner_views_ignored(self):
        """Test bots and the owner do not inflate views"""
        self.client.post(f'/api/v1/products/{self.product.id}/view/', HTTP_USER_AGENT='Googlebot/2.1')
        self.client.authenticate_user(self.seller)
        self.client.post(f'/api/v1/products/{self.product.id}/view/', HTTP_USER_AGENT=BROWSER_UA)
        self.product.refresh_from_db()
        self.assertEqual(self.product.view_count, 0)

    def test_missing_user_agent_is_bot(self):
        self.assertTrue(services.is_bot(None))
        self.assertFalse(services.is_bot(BROWSER_UA))


class BrowseTests(MarketplaceTestCase):
    """Test public listing browse"""

    def setUp(self):
        super().setUp()
        self.client = AuthenticatedAPIClient()
        self.parent = TestDataFactory.create_category(name='Cars')
        self.child = TestDataFactory.create_category(name='Cars_164', parent=self.parent)
        self.cheap = TestDataFactory.create_product(category=self.child, title='Mini Cooper', price=Decimal('100.00'))
        self.pricey = TestDataFactory.create_product(
            category=self.parent, title='Porsche 911', price=Decimal('900.00'), brand='Minichamps', is_trade_enabled=True,
        )
        TestDataFactory.create_product(category=self.parent, title='Hidden', status='pending')

    def results(self, **params):
        response = self.client.get('/api/v1/products/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return [item['title'] for item in response.data['results']]

    def test_only_active_listed(self):
        self.assertCountEqual(self.results(), ['Mini Cooper', 'Porsche 911'])

    def test_filters(self):
        """Test price, brand, trade and search filters"""
        self.assertEqual(self.results(min_price='500'), ['Porsche 911'])
        self.assertEqual(self.results(brand='minichamps'), ['Porsche 911'])
        self.assertEqual(self.results(trade_only='true'), ['Porsche 911'])
        self.assertEqual(self.results(search='cooper'), ['Mini Cooper'])

    def test_category_includes_children(self):
        """Test a parent category slug matches subcategory listings"""
        self.assertCountEqual(self.results(category='cars'), ['Mini Cooper', 'Porsche 911'])
        self.assertEqual(self.results(category=str(self.child.id)), ['Mini Cooper'])

    def test_price_ordering(self):
        self.assertEqual(self.results(ordering='price_desc'), ['Porsche 911', 'Mini Cooper'])
        self.assertEqual(self.results(ordering='price_asc'), ['Mini Cooper', 'Porsche 911'])

    def test_cache_invalidated_on_change(self):
        """Test a cached page reflects a listing that was just removed"""
        self.assertEqual(len(self.results()), 2)
        services.remove_product(self.cheap.id, self.cheap.seller)
        self.assertEqual(self.results(), ['Porsche 911'])


class ListingMaintenanceTests(MarketplaceTestCase):
    """Test expiry, warnings and popularity"""

    def test_expire_old_listings(self):
        """Test active listings past 60 days become inactive"""
        old = TestDataFactory.create_product()
        fresh = TestDataFactory.create_product()
        Product.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=61))

        self.assertEqual(services.expire_old_listings(), 1)
        old.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(old.status, 'inactive')
        self.assertEqual(fresh.status, 'active')

    def test_expiration_warnings_one_per_seller(self):
        """Test sellers get one warning for several expiring listings"""
        seller = TestDataFactory.create_user()
        for _ in range(2):
            product = TestDataFactory.create_product(seller=seller)
            Product.objects.filter(pk=product.pk).update(created_at=timezone.now() - timedelta(days=55))
        self.assertEqual(services.send_expiration_warnings(days=7), 1)
        self.assertEqual(NotificationLog.objects.filter(user=seller, type='listing_expiring').count(), 1)

    def test_popularity_weights(self):
        self.assertEqual(services.popularity_score(10, 2, 1, 3, 1), 10 + 10 + 20 + 6 + 10)

    def test_expire_listings_command(self):
        """Test the cron command deactivates and rescores"""
        product = TestDataFactory.create_product()
        Product.objects.filter(pk=product.pk).update(created_at=timezone.now() - timedelta(days=90))
        call_command('expire_listings', '--warn-days', '0')
        product.refresh_from_db()
        self.assertEqual(product.status, 'inactive')

    def test_listing_stats(self):
        """Test stats count listings by status"""
        seller = TestDataFactory.create_user()
        TestDataFactory.create_product(seller=seller, status='active')
        TestDataFactory.create_product(seller=seller, status='sold')
        stats = services.seller_listing_stats(seller)
        self.assertEqual(stats['counts']['active'], 1)
        self.assertEqual(stats['counts']['sold'], 1)
        self.assertEqual(stats['summary']['used'], 1)
        self.assertEqual(stats['summary']['remaining'], 9)
