"""Deposit collection.

The booking flow only needs "charge this amount, give me a reference or
fail". Provider specifics stay behind the configured charge endpoint.
"""
from __future__ import annotations

import logging
from uuid import uuid4

import requests

from .config import settings
from .errors import PaymentFailed

logger = logging.getLogger(__name__)


class PaymentGateway:
    def charge(self, amount: int, currency: str, email: str, reference: str | None = None) -> str:
        """Collect ``amount`` and return the transaction reference.

        Raises PaymentFailed when the deposit could not be collected.
        """
        raise NotImplementedError


class NullPaymentGateway(PaymentGateway):
    """Accepts every charge; used when no payment endpoint is configured"""

    def charge(self, amount, currency, email, reference=None):
        return reference or f"local-{uuid4().hex[:12]}"


class HttpPaymentGateway(PaymentGateway):
    def __init__(self, charge_url: str, api_key: str | None = None, timeout: int = 10):
        self.charge_url = charge_url
        self.api_key = api_key
        self.timeout = timeout

    def charge(self, amount, currency, email, reference=None):
        payload = {
            "amount": amount,
            "currency": currency,
            "email": email,
            "reference": reference or uuid4().hex,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            response = requests.post(self.charge_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Payment request for %s %s failed: %s", amount, currency, e)
            raise PaymentFailed() from e

        if not response.ok:
            logger.warning("Payment declined (%s): %s", response.status_code, response.text[:200])
            raise PaymentFailed()
        try:
            data = response.json()
        except ValueError:
            data = {}
        return str(data.get("reference") or payload["reference"])


def payment_gateway_from_settings() -> PaymentGateway:
    if settings.payment_charge_url:
        return HttpPaymentGateway(
            settings.payment_charge_url,
            api_key=settings.payment_api_key,
            timeout=settings.payment_timeout,
        )
    return NullPaymentGateway()
