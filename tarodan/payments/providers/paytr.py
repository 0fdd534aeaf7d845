"""
PayTR iframe API client.

Payments run in PayTR's embedded iframe: we request a one-time token signed
with the merchant key and salt, render https://www.paytr.com/odeme/guvenli/<token>,
and PayTR later posts the result to our callback URL with its own hash.
"""
import base64
import hashlib
import hmac
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

from .errors import ProviderError

logger = logging.getLogger(__name__)

GET_TOKEN_URL = 'https://www.paytr.com/odeme/api/get-token'
IFRAME_URL = 'https://www.paytr.com/odeme/guvenli/{token}'
REFUND_URL = 'https://www.paytr.com/odeme/iade'
REQUEST_TIMEOUT = 20


class PayTRError(ProviderError):
    pass


def to_kurus(amount) -> int:
    """PayTR expects amounts as integer kuruş (1 TL = 100 kuruş)"""
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


def encode_basket(items: List[Dict[str, Any]]) -> str:
    """Base64 JSON of [name, unit price, quantity] rows"""
    basket = [[item['name'], f"{Decimal(item['price']):.2f}", int(item.get('quantity', 1))] for item in items]
    return base64.b64encode(json.dumps(basket).encode()).decode()


class PayTRClient:
    def __init__(self, merchant_id: Optional[str] = None, merchant_key: Optional[str] = None,
                 merchant_salt: Optional[str] = None, test_mode: Optional[str] = None):
        self.merchant_id = merchant_id if merchant_id is not None else getattr(settings, 'PAYTR_MERCHANT_ID', '')
        self.merchant_key = merchant_key if merchant_key is not None else getattr(settings, 'PAYTR_MERCHANT_KEY', '')
        self.merchant_salt = merchant_salt if merchant_salt is not None else getattr(settings, 'PAYTR_MERCHANT_SALT', '')
        self.test_mode = str(test_mode if test_mode is not None else getattr(settings, 'PAYTR_TEST_MODE', '1'))

    @property
    def is_configured(self) -> bool:
        return bool(self.merchant_id and self.merchant_key and self.merchant_salt)

    def _sign(self, message: str) -> str:
        digest = hmac.new(self.merchant_key.encode(), message.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def token_hash(self, user_ip: str, merchant_oid: str, email: str, payment_amount: int,
                   user_basket: str, no_installment: int, max_installment: int, currency: str) -> str:
        hash_str = (
            f"{self.merchant_id}{user_ip}{merchant_oid}{email}{payment_amount}{user_basket}"
            f"{no_installment}{max_installment}{currency}{self.test_mode}"
        )
        return self._sign(hash_str + self.merchant_salt)

    def callback_hash(self, merchant_oid: str, status: str, total_amount: str) -> str:
        return self._sign(f"{merchant_oid}{self.merchant_salt}{status}{total_amount}")

    def create_iframe_token(self, merchant_oid: str, email: str, amount, user_ip: str,
                            basket_items: List[Dict[str, Any]], user_name: str, user_address: str,
                            user_phone: str, ok_url: str, fail_url: str,
                            no_installment: int = 0, max_installment: int = 0,
                            currency: str = 'TL', timeout_limit: int = 15) -> Dict[str, str]:
        """
        Request an iframe token for one payment attempt.

        Returns dict with token and iframe_url; raises PayTRError when PayTR
        answers with a failure or cannot be reached.
        """
        if not self.is_configured:
            raise PayTRError('PayTR is not configured')

        payment_amount = to_kurus(amount)
        user_basket = encode_basket(basket_items)
        data = {
            'merchant_id': self.merchant_id,
            'user_ip': user_ip,
            'merchant_oid': merchant_oid,
            'email': email,
            'payment_amount': payment_amount,
            'paytr_token': self.token_hash(user_ip, merchant_oid, email, payment_amount, user_basket,
                                           no_installment, max_installment, currency),
            'user_basket': user_basket,
            'debug_on': 1 if self.test_mode == '1' else 0,
            'no_installment': no_installment,
            'max_installment': max_installment,
            'user_name': user_name,
            'user_address': user_address,
            'user_phone': user_phone,
            'merchant_ok_url': ok_url,
            'merchant_fail_url': fail_url,
            'timeout_limit': timeout_limit,
            'currency': currency,
            'test_mode': self.test_mode,
            'lang': 'tr',
        }

        try:
            response = requests.post(GET_TOKEN_URL, data=data, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            result = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"PayTR token request failed: {str(e)}")
            raise PayTRError(f"PayTR connection error: {str(e)}")

        if result.get('status') != 'success':
            reason = result.get('reason') or 'PayTR token request failed'
            logger.error(f"PayTR token error for {merchant_oid}: {reason}")
            raise PayTRError(reason)

        token = result['token']
        return {'token': token, 'iframe_url': IFRAME_URL.format(token=token)}

    def verify_callback(self, merchant_oid: str, status: str, total_amount: str, received_hash: str) -> bool:
        if not received_hash:
            return False
        expected = self.callback_hash(merchant_oid, status, total_amount)
        return hmac.compare_digest(expected, received_hash)

    def refund(self, merchant_oid: str, amount) -> Dict[str, Any]:
        """Refund (part of) a payment; amount in TL"""
        if not self.is_configured:
            raise PayTRError('PayTR is not configured')

        return_amount = f"{Decimal(amount):.2f}"
        data = {
            'merchant_id': self.merchant_id,
            'merchant_oid': merchant_oid,
            'return_amount': return_amount,
            'paytr_token': self._sign(f"{self.merchant_id}{merchant_oid}{return_amount}{self.merchant_salt}"),
        }
        try:
            response = requests.post(REFUND_URL, data=data, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            result = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"PayTR refund request failed: {str(e)}")
            raise PayTRError(f"PayTR connection error: {str(e)}")

        if result.get('status') != 'success':
            raise PayTRError(result.get('err_msg') or 'PayTR refund failed')
        return result
