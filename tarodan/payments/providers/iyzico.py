"""
iyzico REST client for the hosted checkout form.

Requests are signed with the IYZWSv2 scheme: an HMAC-SHA256 over a random
key, the URI path and the exact JSON body, keyed with the secret key.
"""
import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests
from django.conf import settings

from .errors import ProviderError

logger = logging.getLogger(__name__)

INITIALIZE_PATH = '/payment/iyzipos/checkoutform/initialize/auth/ecom'
RETRIEVE_PATH = '/payment/iyzipos/checkoutform/auth/ecom/detail'
REFUND_PATH = '/payment/refund'
REQUEST_TIMEOUT = 20


class IyzicoError(ProviderError):
    pass


class IyzicoClient:
    def __init__(self, api_key: Optional[str] = None, secret_key: Optional[str] = None,
                 base_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else getattr(settings, 'IYZICO_API_KEY', '')
        self.secret_key = secret_key if secret_key is not None else getattr(settings, 'IYZICO_SECRET_KEY', '')
        self.base_url = (base_url or getattr(settings, 'IYZICO_BASE_URL', 'https://sandbox-api.iyzipay.com')).rstrip('/')

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.secret_key)

    def authorization_header(self, uri_path: str, body: str, random_key: str) -> str:
        signature = hmac.new(
            self.secret_key.encode(),
            f"{random_key}{uri_path}{body}".encode(),
            hashlib.sha256,
        ).hexdigest()
        auth_string = f"apiKey:{self.api_key}&randomKey:{random_key}&signature:{signature}"
        return 'IYZWSv2 ' + base64.b64encode(auth_string.encode()).decode()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured:
            raise IyzicoError('iyzico is not configured')

        body = json.dumps(payload)
        random_key = f"{int(time.time() * 1000)}{secrets.token_hex(4)}"
        uri_path = urlparse(self.base_url + path).path
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
            'Authorization': self.authorization_header(uri_path, body, random_key),
            'x-iyzi-rnd': random_key,
        }
        try:
            response = requests.post(self.base_url + path, data=body, headers=headers, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"iyzico request to {path} failed: {str(e)}")
            raise IyzicoError(f"iyzico connection error: {str(e)}")

    def initialize_checkout_form(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Start a hosted checkout; a failure status raises IyzicoError"""
        result = self._post(INITIALIZE_PATH, payload)
        if result.get('status') != 'success':
            raise IyzicoError(result.get('errorMessage') or 'iyzico payment could not be started')
        if not result.get('paymentPageUrl') and not result.get('checkoutFormContent'):
            raise IyzicoError('iyzico payment page could not be created')
        return result

    def retrieve_checkout_form(self, token: str, conversation_id: Optional[str] = None) -> Dict[str, Any]:
        """Result of a checkout; the status field tells success or failure"""
        payload = {'locale': 'tr', 'token': token}
        if conversation_id:
            payload['conversationId'] = conversation_id
        return self._post(RETRIEVE_PATH, payload)

    def refund(self, payment_transaction_id: str, amount, ip: str = '127.0.0.1') -> Dict[str, Any]:
        result = self._post(REFUND_PATH, {
            'locale': 'tr',
            'conversationId': f"REFUND-{int(time.time() * 1000)}",
            'paymentTransactionId': payment_transaction_id,
            'price': f"{amount:.2f}" if not isinstance(amount, str) else amount,
            'currency': 'TRY',
            'ip': ip,
        })
        if result.get('status') != 'success':
            raise IyzicoError(result.get('errorMessage') or 'iyzico refund failed')
        return result

    def webhook_signature(self, raw_body) -> str:
        if isinstance(raw_body, str):
            raw_body = raw_body.encode()
        digest = hmac.new(self.secret_key.encode(), raw_body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def verify_webhook_signature(self, raw_body, signature: str) -> bool:
        if not signature or not self.secret_key:
            return False
        return hmac.compare_digest(self.webhook_signature(raw_body), signature)
