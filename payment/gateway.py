"""
Payment gateway collaborators.

Two seams are configured through ``settings.PAYMENT_GATEWAY``:

* ``CLIENT`` creates checkout orders and returns the redirect URL.
* ``CALLBACK_VERIFIER`` authenticates webhook deliveries before the
  reconciliation engine sees them.

Both are loaded by dotted path when the consuming view is constructed.
"""
import hashlib
import hmac
import json
import logging

import requests
from django.conf import settings
from django.utils.module_loading import import_string

from lending.exceptions import GatewayError

logger = logging.getLogger(__name__)


class CallbackVerificationError(Exception):
    pass


class ImproperlyConfiguredGateway(GatewayError):
    pass


class CallbackVerifier:
    def verify(self, authorization, body):
        """Return the decoded callback body or raise CallbackVerificationError."""
        raise NotImplementedError

    def decode(self, body):
        try:
            return json.loads(body)
        except (TypeError, ValueError) as e:
            raise CallbackVerificationError(f"Callback body is not valid JSON: {e}")


class Sha256CallbackVerifier(CallbackVerifier):
    """
    Checks the Authorization header against SHA256("<username>:<password>"),
    the scheme PhonePe uses for its merchant webhooks.
    """

    def __init__(self, username=None, password=None):
        config = settings.PAYMENT_GATEWAY
        username = config["WEBHOOK_USERNAME"] if username is None else username
        password = config["WEBHOOK_PASSWORD"] if password is None else password
        self.expected = None
        if username and password:
            self.expected = hashlib.sha256(f"{username}:{password}".encode()).hexdigest()

    def verify(self, authorization, body):
        if self.expected is None:
            raise CallbackVerificationError("Webhook credentials are not configured.")
        supplied = (authorization or "").strip()
        if supplied.upper().startswith("SHA256 "):
            supplied = supplied[len("SHA256 "):].strip()
        if not hmac.compare_digest(supplied.lower(), self.expected):
            raise CallbackVerificationError("Callback authorization does not match.")
        return self.decode(body)


class TrustingCallbackVerifier(CallbackVerifier):
    """Accepts every delivery. For tests and local sandboxes only."""

    def verify(self, authorization, body):
        return self.decode(body)


class GatewayClient:
    def create_order(self, gateway_order_ref, amount_minor, redirect_url, meta_info):
        """Create a checkout order and return the URL the payer is sent to."""
        raise NotImplementedError


class CheckoutGatewayClient(GatewayClient):
    def __init__(self):
        config = settings.PAYMENT_GATEWAY
        self.checkout_url = config["CHECKOUT_URL"]
        self.client_id = config["CLIENT_ID"]
        self.client_secret = config["CLIENT_SECRET"]
        self.client_version = config["CLIENT_VERSION"]
        self.timeout = config["TIMEOUT"]

    def create_order(self, gateway_order_ref, amount_minor, redirect_url, meta_info):
        if not self.client_id or not self.client_secret:
            raise ImproperlyConfiguredGateway(
                "Payment gateway client credentials are not configured."
            )
        payload = {
            "merchantOrderId": gateway_order_ref,
            "amount": amount_minor,
            "metaInfo": meta_info,
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "merchantUrls": {"redirectUrl": redirect_url},
            },
        }
        headers = {
            "Content-Type": "application/json",
            "X-Client-Id": self.client_id,
            "X-Client-Secret": self.client_secret,
            "X-Client-Version": str(self.client_version),
        }
        try:
            response = requests.post(
                self.checkout_url, json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Payment initiation failed for %s: %s", gateway_order_ref, e)
            raise GatewayError("Could not initiate payment. Please try again later.")

        redirect = body.get("redirectUrl")
        if not redirect:
            logger.error("Gateway response for %s has no redirectUrl: %s", gateway_order_ref, body)
            raise GatewayError("Could not initiate payment. Please try again later.")
        return redirect


def get_gateway_client():
    return import_string(settings.PAYMENT_GATEWAY["CLIENT"])()


def get_callback_verifier():
    return import_string(settings.PAYMENT_GATEWAY["CALLBACK_VERIFIER"])()
