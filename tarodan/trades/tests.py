"""
Test suite for trades: proposals between premium members, responses,
confirmation and expiry
"""
from datetime import timedelta
from decimal import Decimal
from django.core.management import call_command
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import ValidationError
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.catalog.models import Product
from tarodan.notifications.models import NotificationLog
from tarodan.trades.models import Trade
from tarodan.trades import services


class TradeTestCase(MarketplaceTestCase):
    """Two premium collectors with trade-enabled listings"""

    def setUp(self):
        super().setUp()
        self.alice = TestDataFactory.create_user(username='alice')
        self.bob = TestDataFactory.create_user(username='bob')
        TestDataFactory.create_membership(self.alice, 'premium')
        TestDataFactory.create_membership(self.bob, 'premium')
        self.alice_car = TestDataFactory.create_product(seller=self.alice, title='Skyline GT-R', is_trade_enabled=True)
        self.bob_car = TestDataFactory.create_product(seller=self.bob, title='Supra MK4', is_trade_enabled=True)
        self.client = AuthenticatedAPIClient()

    def propose(self, **overrides):
        payload = {
            'receiver_id': self.bob.id,
            'initiator_items': [self.alice_car.id],
            'receiver_items': [self.bob_car.id],
            'cash_amount': '50.00',
            'message': 'Straight swap plus cash?',
        }
        payload.update(overrides)
        self.client.authenticate_user(self.alice)
        return self.client.post('/api/v1/trades/', payload, format='json')

    def create_trade(self):
        return services.create_trade(self.alice, self.bob.id, [self.alice_car.id], [self.bob_car.id])

    def product_status(self, product):
        return Product.objects.get(pk=product.pk).status


class TradeCreateTests(TradeTestCase):
    """Test proposing trades"""

    def test_create_trade(self):
        """Test a pending trade lists both sides and notifies the receiver"""
        response = self.propose()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertTrue(response.data['trade_number'].startswith('TRT-'))
        self.assertEqual([i['product'] for i in response.data['initiator_items']], [self.alice_car.id])
        self.assertEqual([i['product'] for i in response.data['receiver_items']], [self.bob_car.id])
        self.assertEqual(Decimal(response.data['cash_amount']), Decimal('50.00'))
        self.assertTrue(NotificationLog.objects.filter(user=self.bob, type='trade_received').exists())
        self.assertEqual(self.product_status(self.alice_car), 'active')

    def test_free_member_cannot_trade(self):
        carol = TestDataFactory.create_user()
        self.client.authenticate_user(carol)
        response = self.client.post('/api/v1/trades/', {
            'receiver_id': self.bob.id, 'initiator_items': [self.alice_car.id], 'receiver_items': [self.bob_car.id],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cannot_offer_someone_elses_item(self):
        response = self.propose(initiator_items=[self.bob_car.id], receiver_items=[self.alice_car.id])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_items_must_be_trade_enabled(self):
        self.bob_car.is_trade_enabled = False
        self.bob_car.save()
        self.assertEqual(self.propose().status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_trade_with_self(self):
        other = TestDataFactory.create_product(seller=self.alice, is_trade_enabled=True)
        response = self.propose(receiver_id=self.alice.id, receiver_items=[other.id])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_both_sides_required(self):
        self.assertEqual(self.propose(receiver_items=[]).status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_cash_rejected(self):
        self.assertEqual(self.propose(cash_amount='-5').status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_listing(self):
        self.assertEqual(self.propose(receiver_items=[999999]).status_code, status.HTTP_400_BAD_REQUEST)


class TradeResponseTests(TradeTestCase):
    """Test accept, reject, counter and cancel"""

    def test_accept_reserves_items(self):
        trade = self.create_trade()
        self.client.authenticate_user(self.bob)
        response = self.client.post(f'/api/v1/trades/{trade.id}/accept/', {'message': 'Deal'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')
        self.assertEqual(response.data['response_message'], 'Deal')
        self.assertEqual(self.product_status(self.alice_car), 'reserved')
        self.assertEqual(self.product_status(self.bob_car), 'reserved')

    def test_initiator_cannot_accept(self):
        trade = self.create_trade()
        self.client.authenticate_user(self.alice)
        response = self.client.post(f'/api/v1/trades/{trade.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_accept_fails_when_item_sold(self):
        trade = self.create_trade()
        Product.objects.filter(pk=self.alice_car.pk).update(status='sold')
        self.client.authenticate_user(self.bob)
        response = self.client.post(f'/api/v1/trades/{trade.id}/accept/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_expired_trade_cannot_be_accepted(self):
        trade = self.create_trade()
        Trade.objects.filter(pk=trade.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        self.client.authenticate_user(self.bob)
        self.assertEqual(self.client.post(f'/api/v1/trades/{trade.id}/accept/').status_code, status.HTTP_400_BAD_REQUEST)

    def test_reject(self):
        trade = self.create_trade()
        self.client.authenticate_user(self.bob)
        response = self.client.post(f'/api/v1/trades/{trade.id}/reject/', {'message': 'Not interested'}, format='json')
        self.assertEqual(response.data['status'], 'rejected')
        self.assertTrue(NotificationLog.objects.filter(user=self.alice, type='trade_rejected').exists())

    def test_counter_swaps_sides(self):
        """Test the counter is a new trade initiated by the original receiver"""
        extra = TestDataFactory.create_product(seller=self.alice, title='NSX', is_trade_enabled=True)
        trade = self.create_trade()
        self.client.authenticate_user(self.bob)
        response = self.client.post(f'/api/v1/trades/{trade.id}/counter/', {
            'initiator_items': [self.bob_car.id],
            'receiver_items': [self.alice_car.id, extra.id],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['initiator']['id'], self.bob.id)
        self.assertEqual(response.data['receiver']['id'], self.alice.id)
        self.assertEqual(response.data['parent'], trade.id)
        self.assertEqual(len(response.data['receiver_items']), 2)

        trade.refresh_from_db()
        self.assertEqual(trade.status, 'countered')
        self.assertTrue(NotificationLog.objects.filter(user=self.alice, type='trade_countered').exists())

    def test_cancel_requires_reason(self):
        trade = self.create_trade()
        self.client.authenticate_user(self.alice)
        response = self.client.post(f'/api/v1/trades/{trade.id}/cancel/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_accepted_trade_releases_items(self):
        trade = self.create_trade()
        services.accept_trade(trade.id, self.bob)
        self.client.authenticate_user(self.alice)
        response = self.client.post(f'/api/v1/trades/{trade.id}/cancel/', {'reason': 'Found a dent'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['cancel_reason'], 'Found a dent')
        self.assertEqual(self.product_status(self.alice_car), 'active')
        self.assertEqual(self.product_status(self.bob_car), 'active')
        self.assertTrue(NotificationLog.objects.filter(user=self.bob, type='trade_cancelled').exists())

    def test_stranger_cannot_view(self):
        trade = self.create_trade()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(self.client.get(f'/api/v1/trades/{trade.id}/').status_code, status.HTTP_403_FORBIDDEN)


class TradeCompletionTests(TradeTestCase):
    """Test two-sided confirmation"""

    def test_both_confirmations_complete_trade(self):
        trade = self.create_trade()
        services.accept_trade(trade.id, self.bob)

        self.client.authenticate_user(self.alice)
        response = self.client.post(f'/api/v1/trades/{trade.id}/confirm/')
        self.assertEqual(response.data['status'], 'accepted')
        self.assertTrue(response.data['initiator_confirmed'])
        self.assertEqual(
            self.client.post(f'/api/v1/trades/{trade.id}/confirm/').status_code, status.HTTP_400_BAD_REQUEST
        )

        self.client.authenticate_user(self.bob)
        response = self.client.post(f'/api/v1/trades/{trade.id}/confirm/')
        self.assertEqual(response.data['status'], 'completed')
        self.assertIsNotNone(response.data['completed_at'])
        self.assertEqual(self.product_status(self.alice_car), 'sold')
        self.assertEqual(self.product_status(self.bob_car), 'sold')
        self.assertEqual(NotificationLog.objects.filter(type='trade_completed').count(), 2)

    def test_confirm_pending_trade_rejected(self):
        trade = self.create_trade()
        with self.assertRaises(ValidationError):
            services.confirm_trade(trade.id, self.alice)

    def test_list_by_role(self):
        self.create_trade()
        self.client.authenticate_user(self.bob)
        self.assertEqual(self.client.get('/api/v1/trades/', {'role': 'receiver'}).data['count'], 1)
        self.assertEqual(self.client.get('/api/v1/trades/', {'role': 'initiator'}).data['count'], 0)

    def test_expire_trades_command(self):
        trade = self.create_trade()
        fresh = services.create_trade(
            self.alice, self.bob.id,
            [TestDataFactory.create_product(seller=self.alice, is_trade_enabled=True).id],
            [TestDataFactory.create_product(seller=self.bob, is_trade_enabled=True).id],
        )
        Trade.objects.filter(pk=trade.pk).update(expires_at=timezone.now() - timedelta(hours=1))

        call_command('expire_trades')

        trade.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(trade.status, 'expired')
        self.assertEqual(fresh.status, 'pending')
