"""
Test suite for membership tiers, limits, subscriptions and scheduled expiry
"""
from datetime import timedelta
from decimal import Decimal
from django.core.management import call_command
from django.utils import timezone
from rest_framework import status
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.membership.models import MembershipTier, UserMembership
from tarodan.membership import services
from tarodan.notifications.models import NotificationLog


class TierTableTests(MarketplaceTestCase):
    """Test the seeded tier table"""

    def test_default_tiers_seeded(self):
        """Test the four default tiers exist with their limits"""
        tiers = {t.type: t for t in MembershipTier.objects.all()}
        self.assertEqual(set(tiers), {'free', 'basic', 'premium', 'business'})
        self.assertEqual(tiers['free'].max_total_listings, 10)
        self.assertEqual(tiers['basic'].commission_rate, Decimal('7.00'))
        self.assertTrue(tiers['premium'].can_trade)
        self.assertEqual(tiers['business'].max_images_per_listing, 20)

    def test_seed_command_is_idempotent(self):
        """Test seeding twice does not duplicate tiers"""
        call_command('seed_membership_tiers')
        call_command('seed_membership_tiers')
        self.assertEqual(MembershipTier.objects.count(), 4)

    def test_tier_list_is_public(self):
        """Test anonymous users can read tiers"""
        response = AuthenticatedAPIClient().get('/api/v1/membership/tiers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t['type'] for t in response.data], ['free', 'basic', 'premium', 'business'])


class UserLimitsTests(MarketplaceTestCase):
    """Test tier resolution and limit calculation"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()

    def test_user_without_membership_is_free(self):
        """Test users without a membership fall back to free"""
        self.assertEqual(services.get_user_tier(self.user).type, 'free')
        self.assertFalse(services.can_trade(self.user))

    def test_expired_period_falls_back_to_free(self):
        """Test a membership whose period ended is ignored"""
        membership = TestDataFactory.create_membership(self.user, 'premium')
        membership.current_period_end = timezone.now() - timedelta(minutes=1)
        membership.save()
        self.assertEqual(services.get_user_tier(self.user).type, 'free')

    def test_limits_count_pending_active_reserved(self):
        """Test only pending, active and reserved listings count against the limit"""
        for listing_status in ('pending', 'active', 'reserved', 'sold', 'inactive', 'rejected'):
            TestDataFactory.create_product(seller=self.user, status=listing_status)
        limits = services.get_user_limits(self.user, use_cache=False)
        self.assertEqual(limits['active_listing_count'], 3)
        self.assertEqual(limits['remaining_total_listings'], 7)
        self.assertEqual(limits['remaining_free_listings'], 2)
        self.assertEqual(limits['commission_rate'], '8.00')

    def test_listing_limit_reached(self):
        """Test can_create_listing refuses once the tier limit is used up"""
        for _ in range(10):
            TestDataFactory.create_product(seller=self.user, status='active')
        allowed, reason = services.can_create_listing(self.user)
        self.assertFalse(allowed)
        self.assertIn('Listing limit reached', reason)

    def test_collections_gated_by_tier(self):
        """Test collections need a collection-capable tier"""
        self.assertFalse(services.can_create_collection(self.user)[0])
        TestDataFactory.create_membership(self.user, 'premium')
        self.assertEqual(services.can_create_collection(self.user), (True, None))

    def test_limits_endpoint(self):
        """Test limits endpoint returns the premium limits for a member"""
        TestDataFactory.create_membership(self.user, 'premium')
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.user)
        response = client.get('/api/v1/membership/limits/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['tier_type'], 'premium')
        self.assertEqual(response.data['max_total_listings'], 200)
        self.assertTrue(response.data['can_trade'])


class SubscriptionTests(MarketplaceTestCase):
    """Test subscribe and cancel flows"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_subscribe_monthly(self):
        """Test subscribing starts a 30 day period"""
        response = self.client.post('/api/v1/membership/subscribe/', {'tier_type': 'premium'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['limits']['tier_type'], 'premium')
        membership = UserMembership.objects.get(user=self.user)
        period = membership.current_period_end - membership.current_period_start
        self.assertEqual(period.days, 30)

    def test_subscribe_yearly(self):
        """Test yearly billing gives a 365 day period"""
        membership = services.subscribe(self.user, 'basic', 'yearly')
        self.assertEqual((membership.current_period_end - membership.current_period_start).days, 365)

    def test_subscribe_invalidates_cached_limits(self):
        """Test cached free limits are replaced after upgrading"""
        self.assertEqual(services.get_user_limits(self.user)['tier_type'], 'free')
        services.subscribe(self.user, 'business')
        self.assertEqual(services.get_user_limits(self.user)['tier_type'], 'business')

    def test_subscribe_unknown_tier(self):
        """Test unknown tiers are a 404"""
        response = self.client.post('/api/v1/membership/subscribe/', {'tier_type': 'platinum'}, format='json')
        self.assertIn(response.status_code, (status.HTTP_400_BAD_REQUEST, status.HTTP_404_NOT_FOUND))

    def test_switch_to_free_ends_membership(self):
        """Test subscribing to free cancels the paid membership immediately"""
        services.subscribe(self.user, 'premium')
        services.subscribe(self.user, 'free')
        self.assertIsNone(services.get_active_membership(self.user))
        self.assertEqual(services.get_user_tier(self.user).type, 'free')

    def test_cancel_keeps_access_until_period_end(self):
        """Test cancelling only stops renewal"""
        services.subscribe(self.user, 'premium')
        response = self.client.post('/api/v1/membership/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['cancel_at_period_end'])
        self.assertEqual(services.get_user_tier(self.user).type, 'premium')

    def test_cancel_twice_rejected(self):
        """Test a cancelled membership cannot be cancelled again"""
        services.subscribe(self.user, 'premium')
        self.client.post('/api/v1/membership/cancel/')
        response = self.client.post('/api/v1/membership/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_without_membership(self):
        """Test free users have nothing to cancel"""
        response = self.client.post('/api/v1/membership/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MembershipSchedulerTests(MarketplaceTestCase):
    """Test expiry and reminder jobs"""

    def test_expire_memberships(self):
        """Test memberships past period end become expired"""
        user = TestDataFactory.create_user()
        membership = TestDataFactory.create_membership(user, 'premium')
        UserMembership.objects.filter(pk=membership.pk).update(current_period_end=timezone.now() - timedelta(hours=1))

        self.assertEqual(services.expire_memberships(), 1)
        membership.refresh_from_db()
        self.assertEqual(membership.status, 'expired')

    def test_reminders_sent_seven_and_one_day_before(self):
        """Test reminders go to members whose period ends in 7 or 1 days"""
        now = timezone.now()
        week_user = TestDataFactory.create_user()
        day_user = TestDataFactory.create_user()
        other_user = TestDataFactory.create_user()
        for user, days in ((week_user, 7), (day_user, 1), (other_user, 3)):
            membership = TestDataFactory.create_membership(user, 'premium')
            UserMembership.objects.filter(pk=membership.pk).update(current_period_end=now + timedelta(days=days))

        counts = services.send_expiration_reminders(now=now)
        self.assertEqual(counts, {'7_day': 1, '1_day': 1})
        self.assertTrue(NotificationLog.objects.filter(user=week_user, type='membership_expiring').exists())
        self.assertTrue(NotificationLog.objects.filter(user=day_user, type='membership_expiring').exists())
        self.assertFalse(NotificationLog.objects.filter(user=other_user).exists())

    def test_process_memberships_command(self):
        """Test the cron command runs expiry"""
        user = TestDataFactory.create_user()
        membership = TestDataFactory.create_membership(user, 'basic')
        UserMembership.objects.filter(pk=membership.pk).update(current_period_end=timezone.now() - timedelta(days=1))
        call_command('process_memberships', '--skip-reminders')
        membership.refresh_from_db()
        self.assertEqual(membership.status, 'expired')
