"""
Test suite for notifications: Expo push sending, in-app notification center
and push token registration
"""
from unittest.mock import patch, MagicMock
import requests
from rest_framework import status
from tarodan.core.test_utils import TestDataFactory, AuthenticatedAPIClient, MarketplaceTestCase
from tarodan.notifications import push
from tarodan.notifications.models import NotificationLog
from tarodan.notifications.services import notify

TOKEN = 'ExponentPushToken[abc123]'


def expo_response(tickets, ok=True, status_code=200):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = {'data': tickets}
    return response


class PushHelpersTests(MarketplaceTestCase):
    """Test message building helpers"""

    def test_chunk_list(self):
        chunks = push.chunk_list(list(range(250)))
        self.assertEqual([len(c) for c in chunks], [100, 100, 50])

    def test_non_expo_tokens_dropped(self):
        """Test only Expo tokens produce messages"""
        messages = push.build_messages([TOKEN, 'fcm:xyz', ''], 'Hi', 'Body', data={'type': 'order_paid'})
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0]['to'], TOKEN)
        self.assertEqual(messages[0]['ttl'], push.DEFAULT_TTL)
        self.assertEqual(messages[0]['data'], {'type': 'order_paid'})

    def test_links_and_icons(self):
        self.assertEqual(push.notification_link({'orderId': '4', 'productId': '9'}), '/orders/4')
        self.assertEqual(push.notification_link({'tradeId': '3'}), '/trades/3')
        self.assertIsNone(push.notification_link({}))
        self.assertEqual(push.notification_icon('unknown_type'), push.DEFAULT_ICON)
        self.assertEqual(push.channel_for_type('payment_failed'), 'orders')

    def test_null_sound_falls_back_to_default(self):
        messages = push.build_messages([TOKEN], 'Hi', 'Body', sound=None)
        self.assertEqual(messages[0]['sound'], 'default')


class SendPushTests(MarketplaceTestCase):
    """Test the Expo HTTP exchange"""

    @patch('tarodan.notifications.push.requests.post')
    def test_send_push_chunks_and_tallies(self, mock_post):
        """Test 150 tokens go out in two requests and tickets are tallied"""
        mock_post.side_effect = [
            expo_response([{'status': 'ok'}] * 99 + [{'status': 'error'}]),
            expo_response([{'status': 'ok'}] * 50),
        ]
        result = push.send_push({
            'user_id': 1,
            'push_tokens': [f'ExponentPushToken[{i}]' for i in range(150)],
            'title': 'Sale',
            'body': 'Sold!',
            'sound': None,
        })
        self.assertEqual(mock_post.call_count, 2)
        self.assertEqual(result['sent'], 149)
        self.assertEqual(result['failed'], 1)
        self.assertEqual(mock_post.call_args.kwargs['json'][0]['sound'], 'default')

    def test_send_push_without_tokens(self):
        result = push.send_push({'user_id': 1, 'push_tokens': [], 'title': 't', 'body': 'b'})
        self.assertEqual(result, {'success': False, 'reason': 'No push tokens'})

    @patch('tarodan.notifications.push.requests.post')
    def test_send_push_raises_on_http_error(self, mock_post):
        """Test a non-2xx Expo answer is raised to the caller"""
        mock_post.return_value = expo_response([], ok=False, status_code=500)
        with self.assertRaises(push.ExpoPushError):
            push.send_push({'user_id': 1, 'push_tokens': [TOKEN], 'title': 't', 'body': 'b'})

    @patch('tarodan.notifications.push.requests.post')
    def test_send_bulk_continues_after_failure(self, mock_post):
        """Test one failing job does not stop the batch"""
        mock_post.side_effect = [
            requests.exceptions.ConnectionError('down'),
            expo_response([{'status': 'ok'}]),
        ]
        result = push.send_bulk([
            {'user_id': 1, 'push_tokens': [TOKEN], 'title': 't', 'body': 'b'},
            {'user_id': 2, 'push_tokens': [TOKEN], 'title': 't', 'body': 'b'},
        ])
        self.assertFalse(result['results'][0]['success'])
        self.assertTrue(result['results'][1]['success'])


class NotifyTests(MarketplaceTestCase):
    """Test notify stores in-app rows and pushes best effort"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()

    @patch('tarodan.notifications.push.requests.post')
    def test_notify_without_token_stores_in_app_only(self, mock_post):
        result = notify(self.user, 'order_paid', 'Paid', 'Order paid', orderId=12)
        mock_post.assert_not_called()
        self.assertTrue(result['in_app_stored'])
        self.assertFalse(result['push_sent'])
        log = NotificationLog.objects.get(user=self.user)
        self.assertEqual(log.type, 'order_paid')
        self.assertEqual(log.data['orderId'], '12')
        self.assertEqual(log.data['link'], '/orders/12')
        self.assertEqual(log.data['icon'], push.NOTIFICATION_ICONS['order_paid'])

    @patch('tarodan.notifications.push.requests.post')
    def test_notify_pushes_to_registered_token(self, mock_post):
        """Test the push uses the orders channel for order events"""
        self.user.push_token = TOKEN
        self.user.save()
        mock_post.return_value = expo_response([{'status': 'ok'}])

        result = notify(self.user, 'order_shipped', 'Shipped', 'On its way', orderId=3)
        self.assertTrue(result['push_sent'])
        sent = mock_post.call_args.kwargs['json']
        self.assertEqual(sent[0]['channelId'], 'orders')
        self.assertEqual(sent[0]['data']['type'], 'order_shipped')

    @patch('tarodan.notifications.push.requests.post')
    def test_push_failure_does_not_raise(self, mock_post):
        """Test push errors are reported, the in-app row survives"""
        self.user.push_token = TOKEN
        self.user.save()
        mock_post.side_effect = requests.exceptions.Timeout('slow')

        result = notify(self.user, 'trade_received', 'Trade', 'New trade', tradeId=1)
        self.assertIn('error', result)
        self.assertTrue(NotificationLog.objects.filter(user=self.user, type='trade_received').exists())

    @patch('tarodan.notifications.push.requests.post')
    def test_push_failure_is_recorded(self, mock_post):
        """Test a failed push leaves a push row with the error, outside the notification center"""
        self.user.push_token = TOKEN
        self.user.save()
        mock_post.side_effect = requests.exceptions.ConnectionError('expo down')

        notify(self.user, 'offer_received', 'Offer', 'New offer', offerId=5)
        failure = NotificationLog.objects.get(user=self.user, channel='push')
        self.assertEqual(failure.status, 'failed')
        self.assertEqual(failure.error, 'expo down')
        self.assertEqual(failure.type, 'offer_received')

        client = AuthenticatedAPIClient()
        client.authenticate_user(self.user)
        self.assertEqual(client.get('/api/v1/notifications/').data['count'], 1)

    def test_notify_none_user(self):
        self.assertIsNone(notify(None, 'order_paid', 't', 'b'))


class NotificationCenterTests(MarketplaceTestCase):
    """Test the notification center endpoints"""

    def setUp(self):
        super().setUp()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        notify(self.user, 'order_paid', 'Paid', 'Order paid', orderId=1)
        notify(self.user, 'offer_received', 'Offer', 'New offer', offerId=2)
        notify(TestDataFactory.create_user(), 'order_paid', 'Other', 'Not yours', orderId=3)

    def test_list_own_notifications(self):
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        self.assertEqual(response.data['unread_count'], 2)
        self.assertEqual(response.data['results'][0]['type'], 'offer_received')
        self.assertEqual(response.data['results'][0]['link'], '/offers/2')

    def test_mark_read(self):
        """Test marking one and then all as read"""
        notification = NotificationLog.objects.filter(user=self.user).first()
        response = self.client.post(f'/api/v1/notifications/{notification.id}/read/')
        self.assertTrue(response.data['is_read'])
        self.assertEqual(self.client.get('/api/v1/notifications/unread-count/').data['count'], 1)

        response = self.client.post('/api/v1/notifications/read-all/')
        self.assertEqual(response.data['updated'], 1)

    def test_cannot_read_others_notification(self):
        other = NotificationLog.objects.exclude(user=self.user).first()
        response = self.client.post(f'/api/v1/notifications/{other.id}/read/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_register_and_clear_push_token(self):
        response = self.client.post('/api/v1/notifications/push-token/', {'token': TOKEN}, format='json')
        self.assertEqual(response.data, {'registered': True})
        self.user.refresh_from_db()
        self.assertEqual(self.user.push_token, TOKEN)

        response = self.client.delete('/api/v1/notifications/push-token/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.user.refresh_from_db()
        self.assertIsNone(self.user.push_token)

    def test_reject_non_expo_token(self):
        response = self.client.post('/api/v1/notifications/push-token/', {'token': 'fcm-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
