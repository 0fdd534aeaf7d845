"""
Test suite for offers: proposals, counters, acceptance into orders and expiry
"""
from datetime import timedelta
from decimal import Decimal
from django.core.management import call_command
from django.utils import timezone
from rest_framework import status
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.offers.models import Offer
from tarodan.offers import services
from tarodan.orders.models import Order
from tarodan.notifications.models import NotificationLog


class OfferCreateTests(MarketplaceTestCase):
    """Test making offers"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller, price=Decimal('1000.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.buyer)

    def make_offer(self, amount='800.00'):
        return self.client.post('/api/v1/offers/', {
            'product_id': self.product.id, 'amount': amount, 'message': 'Would you take 800?',
        }, format='json')

    def test_create_offer(self):
        """Test a pending offer is created and the seller notified"""
        response = self.make_offer()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['proposed_by'], 'buyer')
        self.assertFalse(response.data['is_expired'])
        offer = Offer.objects.get(pk=response.data['id'])
        self.assertAlmostEqual((offer.expires_at - offer.created_at).total_seconds(), 48 * 3600, delta=5)
        self.assertTrue(NotificationLog.objects.filter(user=self.seller, type='offer_received').exists())

    def test_amount_must_be_below_price(self):
        self.assertEqual(self.make_offer('1000.00').status_code, status.HTTP_400_BAD_REQUEST)

    def test_one_pending_offer_per_buyer(self):
        self.make_offer()
        self.assertEqual(self.make_offer('850.00').status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_offer_on_own_listing(self):
        self.client.authenticate_user(self.seller)
        self.assertEqual(self.make_offer().status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_offer_on_inactive_listing(self):
        self.product.status = 'sold'
        self.product.save()
        self.assertEqual(self.make_offer().status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_by_role(self):
        self.make_offer()
        self.assertEqual(self.client.get('/api/v1/offers/', {'role': 'buyer'}).data['count'], 1)
        self.client.authenticate_user(self.seller)
        self.assertEqual(self.client.get('/api/v1/offers/', {'role': 'seller'}).data['count'], 1)


class OfferResponseTests(MarketplaceTestCase):
    """Test accept, reject, counter and cancel"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller, price=Decimal('1000.00'))
        self.offer = TestDataFactory.create_offer(self.product, buyer=self.buyer, amount=Decimal('800.00'))
        self.client = AuthenticatedAPIClient()

    def test_seller_accepts_creates_order(self):
        """Test acceptance creates an order at the offered amount and reserves the listing"""
        other = TestDataFactory.create_offer(self.product, amount=Decimal('700.00'))
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['offer']['status'], 'accepted')
        self.assertEqual(Decimal(response.data['order']['item_price']), Decimal('800.00'))

        order = Order.objects.get(pk=response.data['order']['id'])
        self.assertEqual(order.offer, self.offer)
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'reserved')
        other.refresh_from_db()
        self.assertEqual(other.status, 'rejected')
        self.assertTrue(NotificationLog.objects.filter(user=self.buyer, type='offer_accepted').exists())

    def test_proposer_cannot_accept(self):
        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_expired_offer_cannot_be_accepted(self):
        Offer.objects.filter(pk=self.offer.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reject(self):
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/reject/')
        self.assertEqual(response.data['status'], 'rejected')
        self.assertIsNotNone(response.data['responded_at'])

    def test_counter_chain(self):
        """Test a seller counter goes to the buyer, who can accept it"""
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/counter/', {'amount': '900.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['proposed_by'], 'seller')
        self.assertEqual(response.data['parent'], self.offer.id)
        self.offer.refresh_from_db()
        self.assertEqual(self.offer.status, 'countered')

        counter_id = response.data['id']
        self.assertEqual(
            self.client.post(f'/api/v1/offers/{counter_id}/accept/').status_code, status.HTTP_403_FORBIDDEN
        )

        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/offers/{counter_id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['order']['total_amount']), Decimal('900.00'))
        self.assertTrue(NotificationLog.objects.filter(user=self.buyer, type='order_created').exists())

    def test_countered_offer_is_closed(self):
        services.counter_offer(self.offer.id, self.seller, Decimal('950.00'))
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/reject/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_by_proposer_only(self):
        self.client.authenticate_user(self.seller)
        self.assertEqual(
            self.client.post(f'/api/v1/offers/{self.offer.id}/cancel/').status_code, status.HTTP_403_FORBIDDEN
        )
        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/offers/{self.offer.id}/cancel/')
        self.assertEqual(response.data['status'], 'cancelled')

    def test_stranger_cannot_view(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/offers/{self.offer.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class OfferExpiryTests(MarketplaceTestCase):
    def test_expire_offers_command(self):
        """Test only pending offers past their deadline expire"""
        product = TestDataFactory.create_product()
        stale = TestDataFactory.create_offer(product, expires_in_hours=-1)
        fresh = TestDataFactory.create_offer(product)
        rejected = TestDataFactory.create_offer(product, status='rejected', expires_in_hours=-1)

        call_command('expire_offers')

        stale.refresh_from_db()
        fresh.refresh_from_db()
        rejected.refresh_from_db()
        self.assertEqual(stale.status, 'expired')
        self.assertEqual(fresh.status, 'pending')
        self.assertEqual(rejected.status, 'rejected')
