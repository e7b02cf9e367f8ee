"""
Клиент внешнего платежного процессора (Stripe-совместимый REST API).

Используются только три вызова: создать payment intent, получить его
текущее состояние и отменить его (компенсация, если локальная запись о
платеже не сохранилась).
"""
import hashlib
import hmac
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from errors import GatewayError, Unauthorized

logger = logging.getLogger("PaymentGateway")

INTENT_SUCCEEDED = "succeeded"

STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com")
WEBHOOK_TOLERANCE_SECONDS = 300


@dataclass
class PaymentIntent:
    id: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == INTENT_SUCCEEDED

    @classmethod
    def from_api(cls, data: dict) -> "PaymentIntent":
        return cls(
            id=data["id"],
            status=data.get("status", ""),
            amount=int(data.get("amount") or 0),
            currency=data.get("currency", ""),
            client_secret=data.get("client_secret"),
            metadata=dict(data.get("metadata") or {}),
        )


class StripeGateway:
    def __init__(self, secret_key: str, api_base: str = STRIPE_API_BASE, timeout: float = 10.0):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {secret_key}"})

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        if not self.secret_key:
            raise GatewayError("Payment processor is not configured")

        url = f"{self.api_base}{path}"
        try:
            resp = self.session.request(method, url, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Payment processor request {method} {path} failed: {e}")
            raise GatewayError("Payment processor is unavailable") from e

        if not resp.ok:
            try:
                message = resp.json().get("error", {}).get("message") or resp.text
            except ValueError:
                message = resp.text
            logger.error(f"Payment processor returned {resp.status_code} for {method} {path}: {message}")
            raise GatewayError(f"Payment processor error: {message}")

        return resp.json()

    def create_intent(self, amount: int, currency: str, metadata: Optional[Dict[str, str]] = None) -> PaymentIntent:
        data = {"amount": amount, "currency": currency.lower()}
        for key, value in (metadata or {}).items():
            data[f"metadata[{key}]"] = "" if value is None else str(value)
        return PaymentIntent.from_api(self._request("POST", "/v1/payment_intents", data))

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        return PaymentIntent.from_api(self._request("GET", f"/v1/payment_intents/{intent_id}"))

    def cancel_intent(self, intent_id: str) -> PaymentIntent:
        return PaymentIntent.from_api(self._request("POST", f"/v1/payment_intents/{intent_id}/cancel"))


def verify_webhook_signature(payload: bytes, signature_header: Optional[str], secret: str,
                             tolerance: int = WEBHOOK_TOLERANCE_SECONDS, now: Optional[float] = None) -> None:
    """Проверка заголовка Stripe-Signature: t=<timestamp>,v1=<hex hmac-sha256 от "t.payload">."""
    if not secret:
        raise GatewayError("Webhook secret is not configured")
    if not signature_header:
        raise Unauthorized("Missing webhook signature")

    timestamp = None
    signatures = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if not timestamp or not signatures:
        raise Unauthorized("Malformed webhook signature")

    try:
        ts = int(timestamp)
    except ValueError:
        raise Unauthorized("Malformed webhook signature")

    if abs((now if now is not None else time.time()) - ts) > tolerance:
        raise Unauthorized("Webhook signature timestamp is outside the tolerance window")

    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise Unauthorized("Invalid webhook signature")


_gateway = None


def get_payment_gateway() -> StripeGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway(
            secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            api_base=os.getenv("STRIPE_API_BASE", STRIPE_API_BASE),
            timeout=float(os.getenv("PAYMENT_GATEWAY_TIMEOUT", "10")),
        )
    return _gateway
