"""
Test suite for orders: buy now, commission, the status machine and cancellation
"""
from decimal import Decimal
from rest_framework import status
from tarodan.core.models import AuditLog
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.orders.models import Order
from tarodan.orders import services
from tarodan.notifications.models import NotificationLog


class CommissionTests(MarketplaceTestCase):
    def test_calculate_commission_rounds_half_up(self):
        self.assertEqual(services.calculate_commission(Decimal('99.99'), Decimal('8.00')), Decimal('8.00'))
        self.assertEqual(services.calculate_commission(Decimal('1000'), Decimal('5.5')), Decimal('55.00'))

    def test_order_number_format(self):
        number = services.generate_order_number()
        self.assertTrue(number.startswith('TRD-'))
        self.assertEqual(len(number.split('-')[2]), 8)


class BuyNowTests(MarketplaceTestCase):
    """Test buy-now order creation"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller, price=Decimal('1250.00'))
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.buyer)

    def buy(self, product_id=None):
        return self.client.post('/api/v1/orders/', {
            'product_id': product_id or self.product.id,
            'shipping_address': 'Moda Cad. 5, Istanbul',
        }, format='json')

    def test_buy_now_reserves_listing(self):
        """Test the order captures price and commission and reserves the listing"""
        response = self.buy()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending_payment')
        self.assertEqual(Decimal(response.data['total_amount']), Decimal('1250.00'))
        self.assertEqual(Decimal(response.data['commission_rate']), Decimal('8.00'))
        self.assertEqual(Decimal(response.data['commission_amount']), Decimal('100.00'))
        self.assertEqual(Decimal(response.data['seller_amount']), Decimal('1150.00'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'reserved')
        self.assertTrue(NotificationLog.objects.filter(user=self.seller, type='order_created').exists())
        self.assertTrue(AuditLog.objects.filter(action='order_create', model_name='Order').exists())

    def test_commission_follows_seller_tier(self):
        """Test premium sellers pay their tier's rate"""
        TestDataFactory.create_membership(self.seller, 'premium')
        response = self.buy()
        order = Order.objects.get(pk=response.data['id'])
        self.assertLess(order.commission_rate, Decimal('8.00'))

    def test_cannot_buy_reserved_listing(self):
        """Test a second buyer is refused"""
        self.buy()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(self.buy().status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 1)

    def test_cannot_buy_own_listing(self):
        self.client.authenticate_user(self.seller)
        self.assertEqual(self.buy().status_code, status.HTTP_400_BAD_REQUEST)

    def test_banned_buyer_forbidden(self):
        self.buyer.is_banned = True
        self.buyer.save()
        self.assertEqual(self.buy().status_code, status.HTTP_403_FORBIDDEN)

    def test_unknown_product(self):
        self.assertEqual(self.buy(product_id=999999).status_code, status.HTTP_404_NOT_FOUND)

    def test_order_list_by_role(self):
        """Test role narrows to purchases or sales"""
        self.buy()
        response = self.client.get('/api/v1/orders/', {'role': 'buyer'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get('/api/v1/orders/', {'role': 'seller'})
        self.assertEqual(response.data['count'], 0)

    def test_detail_only_for_parties(self):
        order_id = self.buy().data['id']
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/orders/{order_id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class OrderLifecycleTests(MarketplaceTestCase):
    """Test ship, deliver, complete and cancel"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller)
        self.order = TestDataFactory.create_order(buyer=self.buyer, product=self.product)
        self.client = AuthenticatedAPIClient()

    def mark_paid(self):
        self.order.status = 'paid'
        self.order.save(update_fields=['status'])

    def test_full_lifecycle(self):
        """Test paid -> shipped -> delivered -> completed"""
        self.mark_paid()
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/ship/', {
            'carrier': 'Yurtici', 'tracking_number': 'YK123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'shipped')
        self.assertEqual(response.data['allowed_transitions'], ['delivered'])

        self.client.authenticate_user(self.buyer)
        self.assertEqual(self.client.post(f'/api/v1/orders/{self.order.id}/deliver/').data['status'], 'delivered')
        response = self.client.post(f'/api/v1/orders/{self.order.id}/complete/')
        self.assertEqual(response.data['status'], 'completed')

        self.order.refresh_from_db()
        self.assertIsNotNone(self.order.shipped_at)
        self.assertIsNotNone(self.order.delivered_at)
        self.assertIsNotNone(self.order.completed_at)
        self.assertEqual(self.order.version, 4)

    def test_cannot_ship_unpaid_order(self):
        """Test transitions outside the allowed table are refused"""
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/ship/', {
            'carrier': 'Aras', 'tracking_number': 'A1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_seller_ships(self):
        self.mark_paid()
        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/ship/', {
            'carrier': 'Aras', 'tracking_number': 'A1',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_ship_requires_tracking(self):
        self.mark_paid()
        self.client.authenticate_user(self.seller)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/ship/', {'carrier': 'Aras'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_relists_product(self):
        """Test cancelling before payment puts the listing back on sale"""
        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/cancel/', {'reason': 'Changed my mind'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        self.assertEqual(response.data['cancel_reason'], 'Changed my mind')
        self.product.refresh_from_db()
        self.assertEqual(self.product.status, 'active')
        self.assertTrue(NotificationLog.objects.filter(user=self.seller, type='order_cancelled').exists())

    def test_cannot_cancel_paid_order(self):
        self.mark_paid()
        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/orders/{self.order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stranger_cannot_cancel(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.post(f'/api/v1/orders/{self.order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
