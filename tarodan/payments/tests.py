"""
Test suite for payments: provider clients, checkout initiation, callbacks,
retries, refunds and the seller escrow hold
"""
import base64
import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch, MagicMock
from django.core.management import call_command
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.exceptions import ValidationError
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.notifications.models import NotificationLog
from tarodan.orders import services as order_services
from tarodan.payments import services
from tarodan.payments.models import Payment, PaymentHold
from tarodan.payments.providers import get_client, IyzicoClient, PayTRClient, PayTRError
from tarodan.payments.providers.paytr import to_kurus, encode_basket, REFUND_URL

PROVIDER_SETTINGS = dict(
    PAYTR_MERCHANT_ID='123456',
    PAYTR_MERCHANT_KEY='paytr-key',
    PAYTR_MERCHANT_SALT='paytr-salt',
    PAYTR_TEST_MODE='1',
    IYZICO_API_KEY='iyzico-api',
    IYZICO_SECRET_KEY='iyzico-secret',
    IYZICO_BASE_URL='https://sandbox-api.iyzipay.com',
)


def provider_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class PayTRClientTests(MarketplaceTestCase):
    """Test PayTR hashing and token requests"""

    def setUp(self):
        super().setUp()
        self.client = PayTRClient('123456', 'paytr-key', 'paytr-salt', '1')

    def test_to_kurus(self):
        self.assertEqual(to_kurus(Decimal('1250.50')), 125050)
        self.assertEqual(to_kurus('0.10'), 10)

    def test_encode_basket(self):
        encoded = encode_basket([{'name': 'F40', 'price': Decimal('10'), 'quantity': 1}])
        self.assertEqual(json.loads(base64.b64decode(encoded)), [['F40', '10.00', 1]])

    def test_callback_hash_roundtrip(self):
        expected = self.client.callback_hash('TRD1', 'success', '10000')
        self.assertTrue(self.client.verify_callback('TRD1', 'success', '10000', expected))
        self.assertFalse(self.client.verify_callback('TRD1', 'failed', '10000', expected))
        self.assertFalse(self.client.verify_callback('TRD1', 'success', '10000', ''))

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_create_iframe_token(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        result = self.client.create_iframe_token(
            'TRD1', 'a@test.com', Decimal('100.00'), '1.2.3.4',
            [{'name': 'Car', 'price': Decimal('100.00')}], 'A B', 'Addr', '+90', 'ok', 'fail',
        )
        self.assertEqual(result['token'], 'tok123')
        self.assertTrue(result['iframe_url'].endswith('/tok123'))
        sent = mock_post.call_args.kwargs['data']
        self.assertEqual(sent['payment_amount'], 10000)
        self.assertEqual(sent['paytr_token'], self.client.token_hash(
            '1.2.3.4', 'TRD1', 'a@test.com', 10000, sent['user_basket'], 0, 0, 'TL'
        ))

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_token_failure_raises(self, mock_post):
        mock_post.return_value = provider_response({'status': 'failed', 'reason': 'bad hash'})
        with self.assertRaises(PayTRError):
            self.client.create_iframe_token('TRD1', 'a@test.com', 1, '1.2.3.4', [], 'A', 'B', 'C', 'ok', 'fail')

    def test_unconfigured_client_raises(self):
        with self.assertRaises(PayTRError):
            PayTRClient('', '', '').refund('TRD1', 1)


class IyzicoClientTests(MarketplaceTestCase):
    def setUp(self):
        super().setUp()
        self.client = IyzicoClient('api', 'secret', 'https://sandbox-api.iyzipay.com')

    def test_webhook_signature(self):
        body = b'{"token": "abc"}'
        signature = self.client.webhook_signature(body)
        self.assertTrue(self.client.verify_webhook_signature(body, signature))
        self.assertFalse(self.client.verify_webhook_signature(b'{}', signature))

    @patch('tarodan.payments.providers.iyzico.requests.post')
    def test_signed_request_sends_signed_body(self, mock_post):
        """Test the body sent is the one that was signed"""
        mock_post.return_value = provider_response({'status': 'success', 'paymentStatus': 'SUCCESS'})
        self.client.retrieve_checkout_form('tok')
        kwargs = mock_post.call_args.kwargs
        headers = kwargs['headers']
        self.assertTrue(headers['Authorization'].startswith('IYZWSv2 '))
        expected = self.client.authorization_header(
            '/payment/iyzipos/checkoutform/auth/ecom/detail', kwargs['data'], headers['x-iyzi-rnd']
        )
        self.assertEqual(headers['Authorization'], expected)

    def test_unknown_provider(self):
        with self.assertRaises(ValueError):
            get_client('stripe')


@override_settings(**PROVIDER_SETTINGS)
class PaymentFlowTests(MarketplaceTestCase):
    """Test checkout, callbacks and order settlement"""

    def setUp(self):
        super().setUp()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user(first_name='Ayse', last_name='Yilmaz')
        self.product = TestDataFactory.create_product(seller=self.seller, price=Decimal('1000.00'))
        self.order = TestDataFactory.create_order(buyer=self.buyer, product=self.product)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.buyer)

    def initiate(self, provider='paytr'):
        return self.client.post('/api/v1/payments/initiate/', {
            'order_id': self.order.id, 'provider': provider,
        }, format='json')

    def paytr_callback(self, payment, paytr_status='success', total_amount='100000'):
        merchant_oid = payment.provider_conversation_id
        return self.client.post('/api/v1/payments/callback/paytr/', {
            'merchant_oid': merchant_oid,
            'status': paytr_status,
            'total_amount': total_amount,
            'hash': PayTRClient().callback_hash(merchant_oid, paytr_status, total_amount),
        })

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_initiate_paytr(self, mock_post):
        """Test PayTR checkout returns the iframe and stores merchant_oid"""
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        response = self.initiate()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['provider'], 'paytr')
        self.assertEqual(response.data['expires_in'], 300)
        self.assertIn('tok123', response.data['payment_url'])
        self.assertIn('<iframe', response.data['payment_html'])

        payment = Payment.objects.get(pk=response.data['payment_id'])
        self.assertEqual(payment.provider_conversation_id, services.merchant_oid_for(payment))
        self.assertTrue(payment.provider_conversation_id.isalnum())
        self.assertEqual(payment.amount, self.order.total_amount)
        self.assertEqual(mock_post.call_args.kwargs['data']['timeout_limit'], services.PAYMENT_TIMEOUT_MINUTES)

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_initiate_reuses_pending_payment(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        first = self.initiate().data['payment_id']
        second = self.initiate().data['payment_id']
        self.assertEqual(first, second)
        self.assertEqual(mock_post.call_count, 1)

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_initiate_with_other_provider_replaces_attempt(self, mock_post):
        """Test switching provider closes the open attempt and starts the requested one"""
        mock_post.return_value = provider_response({
            'status': 'success', 'token': 'tok123', 'paymentPageUrl': 'https://sandbox.iyzico/pay/tok123',
        })
        first = self.initiate('paytr').data['payment_id']
        response = self.initiate('iyzico')
        self.assertEqual(response.data['provider'], 'iyzico')
        self.assertNotEqual(response.data['payment_id'], first)

        replaced = Payment.objects.get(pk=first)
        self.assertEqual(replaced.status, 'failed')
        self.assertEqual(replaced.failure_reason, 'Replaced by a iyzico checkout')
        self.assertEqual(Payment.objects.filter(order=self.order, status='pending').count(), 1)

    def test_initiate_only_by_buyer(self):
        self.client.authenticate_user(self.seller)
        self.assertEqual(self.initiate().status_code, status.HTTP_403_FORBIDDEN)

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_provider_error_fails_payment(self, mock_post):
        """Test a provider failure is a 400 and the attempt is recorded as failed"""
        mock_post.return_value = provider_response({'status': 'failed', 'reason': 'invalid merchant'})
        response = self.initiate()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        payment = Payment.objects.get(order=self.order)
        self.assertEqual(payment.status, 'failed')
        self.assertEqual(payment.failure_reason, 'invalid merchant')

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_paytr_success_callback_settles_order(self, mock_post):
        """Test a verified success pays the order, sells the listing and holds the seller share"""
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])

        self.client.logout()
        response = self.paytr_callback(payment)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'OK')

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(payment.status, 'completed')
        self.assertEqual(self.order.status, 'paid')
        self.assertIsNotNone(self.order.paid_at)
        self.assertEqual(self.product.status, 'sold')

        hold = PaymentHold.objects.get(order=self.order)
        self.assertEqual(hold.status, 'held')
        self.assertEqual(hold.amount, Decimal('920.00'))
        self.assertEqual(hold.seller, self.seller)
        self.assertTrue(NotificationLog.objects.filter(user=self.seller, type='order_paid').exists())
        self.assertTrue(NotificationLog.objects.filter(user=self.buyer, type='payment_completed').exists())

        events = [entry['event'] for entry in payment.metadata['audit_history']]
        self.assertEqual(events, ['created', 'completed'])

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_duplicate_callback_is_idempotent(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])
        self.paytr_callback(payment)
        response = self.paytr_callback(payment)
        self.assertEqual(response.content, b'OK')
        self.assertEqual(PaymentHold.objects.filter(order=self.order).count(), 1)

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_success_after_timeout_sweep_settles_order(self, mock_post):
        """Test a provider success on an attempt we timed out still pays the order"""
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])
        services.cancel_expired_payments(now=timezone.now() + timedelta(minutes=services.PAYMENT_TIMEOUT_MINUTES + 5))
        payment.refresh_from_db()
        self.assertEqual(payment.status, 'failed')

        self.client.logout()
        response = self.paytr_callback(payment)
        self.assertEqual(response.content, b'OK')

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(payment.status, 'completed')
        self.assertEqual(payment.failure_reason, '')
        self.assertEqual(self.order.status, 'paid')
        self.assertEqual(self.product.status, 'sold')
        self.assertEqual(PaymentHold.objects.get(order=self.order).status, 'held')
        events = [entry['event'] for entry in payment.metadata['audit_history']]
        self.assertEqual(events, ['created', 'expired', 'completed'])

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_success_after_order_cancelled_is_refunded(self, mock_post):
        """Test money captured for a cancelled order goes back to the buyer"""
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])
        order_services.cancel_order(self.order.id, self.buyer, reason='Changed my mind')

        self.client.logout()
        response = self.paytr_callback(payment)
        self.assertEqual(response.content, b'OK')

        payment.refresh_from_db()
        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(payment.status, 'refunded')
        self.assertEqual(self.order.status, 'cancelled')
        self.assertEqual(self.product.status, 'active')
        self.assertFalse(PaymentHold.objects.filter(order=self.order).exists())

        refund_call = mock_post.call_args
        self.assertEqual(refund_call.args[0], REFUND_URL)
        self.assertEqual(refund_call.kwargs['data']['merchant_oid'], payment.provider_conversation_id)
        self.assertEqual(refund_call.kwargs['data']['return_amount'], f'{payment.amount:.2f}')
        events = [entry['event'] for entry in payment.metadata['audit_history']]
        self.assertEqual(events, ['created', 'order_cancelled', 'refunded'])
        self.assertTrue(NotificationLog.objects.filter(user=self.buyer, type='payment_refunded').exists())

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_failed_automatic_refund_left_for_admin(self, mock_post):
        """Test a refused automatic refund leaves the payment completed for a manual refund"""
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])
        order_services.cancel_order(self.order.id, self.buyer)

        mock_post.return_value = provider_response({'status': 'error', 'err_msg': 'refund window closed'})
        self.paytr_callback(payment)

        payment.refresh_from_db()
        self.assertEqual(payment.status, 'completed')
        self.assertEqual(payment.metadata['audit_history'][-1]['event'], 'refund_failed')
        self.assertFalse(PaymentHold.objects.filter(order=self.order).exists())

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_paytr_bad_hash_rejected(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])
        response = self.client.post('/api/v1/payments/callback/paytr/', {
            'merchant_oid': payment.provider_conversation_id,
            'status': 'success',
            'total_amount': '100000',
            'hash': 'forged',
        })
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.content, b'FAIL')
        payment.refresh_from_db()
        self.assertEqual(payment.status, 'pending')

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_failed_callback_then_retry(self, mock_post):
        """Test a failed attempt can be retried as a new payment"""
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment = Payment.objects.get(pk=self.initiate().data['payment_id'])
        self.paytr_callback(payment, paytr_status='failed')
        payment.refresh_from_db()
        self.assertEqual(payment.status, 'failed')
        self.assertTrue(NotificationLog.objects.filter(user=self.buyer, type='payment_failed').exists())

        response = self.client.post(f'/api/v1/payments/{payment.id}/retry/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        retried = Payment.objects.get(pk=response.data['payment_id'])
        self.assertEqual(retried.metadata['retried_from'], payment.id)
        self.assertEqual(retried.status, 'pending')

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_cancel_pending_payment(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment_id = self.initiate().data['payment_id']
        response = self.client.post(f'/api/v1/payments/{payment_id}/cancel/')
        self.assertEqual(response.data['status'], 'failed')
        self.assertEqual(response.data['failure_reason'], 'Cancelled by user')
        self.assertEqual(
            self.client.post(f'/api/v1/payments/{payment_id}/cancel/').status_code, status.HTTP_400_BAD_REQUEST
        )

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_status_polling(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success', 'token': 'tok123'})
        payment_id = self.initiate().data['payment_id']
        response = self.client.get(f'/api/v1/payments/{payment_id}/status/')
        self.assertEqual(response.data['status'], 'pending')
        self.assertEqual(response.data['order_status'], 'pending_payment')

        self.client.authenticate_user(self.seller)
        response = self.client.get(f'/api/v1/payments/{payment_id}/status/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @patch('tarodan.payments.providers.iyzico.requests.post')
    def test_iyzico_checkout_and_callback(self, mock_post):
        """Test the retrieved checkout result drives the payment outcome"""
        mock_post.return_value = provider_response({
            'status': 'success', 'token': 'itok', 'paymentPageUrl': 'https://sandbox.iyzico/pay/itok',
        })
        response = self.initiate('iyzico')
        self.assertEqual(response.data['payment_url'], 'https://sandbox.iyzico/pay/itok')

        mock_post.return_value = provider_response({
            'status': 'success',
            'paymentStatus': 'SUCCESS',
            'paymentId': '987',
            'itemTransactions': [{'paymentTransactionId': '555'}],
        })
        self.client.logout()
        response = self.client.post('/api/v1/payments/callback/iyzico/', {'token': 'itok'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')

        payment = Payment.objects.get(pk=response.data['payment_id'])
        self.assertEqual(payment.provider_payment_id, '987')
        self.assertEqual(payment.metadata['payment_transaction_ids'], ['555'])

    @patch('tarodan.payments.providers.iyzico.requests.post')
    def test_iyzico_invalid_signature(self, mock_post):
        mock_post.return_value = provider_response({
            'status': 'success', 'token': 'itok', 'paymentPageUrl': 'https://sandbox.iyzico/pay/itok',
        })
        self.initiate('iyzico')
        response = self.client.post(
            '/api/v1/payments/callback/iyzico/', {'token': 'itok'}, format='json', HTTP_X_IYZ_SIGNATURE='forged',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


@override_settings(**PROVIDER_SETTINGS)
class SettlementTests(MarketplaceTestCase):
    """Test release on completion, refunds and payment timeouts"""

    def setUp(self):
        super().setUp()
        self.admin = TestDataFactory.create_admin()
        self.seller = TestDataFactory.create_user()
        self.buyer = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(seller=self.seller, price=Decimal('500.00'))
        self.order = TestDataFactory.create_order(buyer=self.buyer, product=self.product)
        self.payment = Payment.objects.create(order=self.order, amount=self.order.total_amount, provider='paytr')
        self.payment.provider_conversation_id = services.merchant_oid_for(self.payment)
        self.payment.save()
        self.client = AuthenticatedAPIClient()

    def pay(self):
        services.process_successful_payment(self.payment.id)
        self.order.refresh_from_db()

    def test_complete_order_releases_hold(self):
        """Test buyer completion releases the seller's held funds"""
        self.pay()
        order_services.ship_order(self.order.id, self.seller, 'MNG', 'M1')
        order_services.confirm_delivery(self.order.id, self.buyer)
        order_services.complete_order(self.order.id, self.buyer)

        hold = PaymentHold.objects.get(order=self.order)
        self.assertEqual(hold.status, 'released')
        self.assertIsNotNone(hold.released_at)

        self.client.authenticate_user(self.seller)
        response = self.client.get('/api/v1/payments/holds/', {'status': 'released'})
        self.assertEqual(response.data['count'], 1)

    def test_release_without_hold_is_noop(self):
        self.assertIsNone(services.release_payment(self.order))

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_full_refund(self, mock_post):
        """Test a full refund refunds the order and cancels the hold"""
        mock_post.return_value = provider_response({'status': 'success', 'is_test': 1})
        self.pay()
        self.client.authenticate_user(self.admin)
        response = self.client.post(
            f'/api/v1/payments/orders/{self.order.id}/refund/', {'reason': 'Damaged in transit'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'refunded')
        self.assertEqual(response.data['metadata']['refund']['amount'], '500.00')

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'refunded')
        self.assertEqual(PaymentHold.objects.get(order=self.order).status, 'cancelled')
        self.assertEqual(mock_post.call_args.kwargs['data']['merchant_oid'], self.payment.provider_conversation_id)
        self.assertTrue(NotificationLog.objects.filter(user=self.buyer, type='payment_refunded').exists())

    @patch('tarodan.payments.providers.paytr.requests.post')
    def test_partial_refund_keeps_order_status(self, mock_post):
        mock_post.return_value = provider_response({'status': 'success'})
        self.pay()
        services.refund_payment(self.order.id, self.admin, amount=Decimal('100.00'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, 'paid')

    def test_refund_amount_bounds(self):
        self.pay()
        self.client.authenticate_user(self.admin)
        response = self.client.post(
            f'/api/v1/payments/orders/{self.order.id}/refund/', {'amount': '900.00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_refund_requires_admin(self):
        self.pay()
        self.client.authenticate_user(self.buyer)
        response = self.client.post(f'/api/v1/payments/orders/{self.order.id}/refund/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_refund_without_payment(self):
        with self.assertRaises(ValidationError):
            services.refund_payment(self.order.id, self.admin)

    def test_cancel_expired_payments(self):
        """Test pending payments past the timeout fail"""
        Payment.objects.filter(pk=self.payment.pk).update(created_at=timezone.now() - timedelta(minutes=30))
        fresh = Payment.objects.create(order=self.order, amount=self.order.total_amount, provider='paytr')

        call_command('cancel_expired_payments')

        self.payment.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(self.payment.status, 'failed')
        self.assertEqual(self.payment.failure_reason, 'Payment timed out')
        self.assertEqual(fresh.status, 'pending')

    def test_admin_sees_all_payments(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/payments/')
        self.assertEqual(response.data['count'], 1)
        self.assertIn('metadata', response.data['results'][0])

        self.client.authenticate_user(TestDataFactory.create_user())
        self.assertEqual(self.client.get('/api/v1/payments/').data['count'], 0)
