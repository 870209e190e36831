"""Payment processor integration (Stripe REST API over requests)."""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from .errors import UpstreamServiceError, ValidationError

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"

# Intent states that can still be cancelled without a refund
CANCELABLE_INTENT_STATUSES = frozenset(
    {
        "requires_payment_method",
        "requires_confirmation",
        "requires_action",
        "processing",
        "requires_capture",
    }
)


@dataclass
class PaymentIntent:
    id: str
    status: str
    amount: int  # cents
    client_secret: str | None = None


@dataclass
class LineItem:
    name: str
    unit_amount: int  # cents
    quantity: int
    images: list[str] = field(default_factory=list)


@dataclass
class CheckoutSession:
    id: str
    payment_status: str  # "paid" | "unpaid" | "no_payment_required"
    url: str | None = None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    amount_total: int | None = None


class PaymentProcessor(Protocol):
    """Delayed-capture payments and hosted checkout sessions."""

    def create_payment_intent(
        self, amount: int, metadata: dict[str, str], receipt_email: str | None = None
    ) -> PaymentIntent: ...

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    def capture_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    def cancel_payment_intent(self, intent_id: str) -> PaymentIntent: ...

    def refund_payment_intent(self, intent_id: str) -> str: ...

    def create_checkout_session(
        self,
        line_items: list[LineItem],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession: ...

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession: ...


def _form_encode(value: Any, prefix: str = "") -> list[tuple[str, str]]:
    """
    Flatten nested dicts/lists into Stripe's bracketed form encoding.

    Example:
        {"metadata": {"orderId": "a1"}} -> [("metadata[orderId]", "a1")]
    """
    pairs: list[tuple[str, str]] = []
    if isinstance(value, dict):
        for key, inner in value.items():
            pairs.extend(_form_encode(inner, f"{prefix}[{key}]" if prefix else str(key)))
    elif isinstance(value, (list, tuple)):
        for i, inner in enumerate(value):
            pairs.extend(_form_encode(inner, f"{prefix}[{i}]"))
    elif isinstance(value, bool):
        pairs.append((prefix, "true" if value else "false"))
    elif value is not None:
        pairs.append((prefix, str(value)))
    return pairs


def _intent_from_json(data: dict[str, Any]) -> PaymentIntent:
    return PaymentIntent(
        id=data["id"],
        status=data["status"],
        amount=int(data.get("amount", 0)),
        client_secret=data.get("client_secret"),
    )


def _session_from_json(data: dict[str, Any]) -> CheckoutSession:
    return CheckoutSession(
        id=data["id"],
        payment_status=data.get("payment_status", "unpaid"),
        url=data.get("url"),
        payment_intent_id=data.get("payment_intent"),
        metadata=data.get("metadata") or {},
        amount_total=data.get("amount_total"),
    )


class StripeClient:
    """Minimal Stripe client covering the calls the shop makes."""

    def __init__(
        self,
        secret_key: str,
        session: requests.Session | None = None,
        api_base: str = STRIPE_API_BASE,
        timeout: float = 30.0,
    ):
        self.secret_key = secret_key
        self.session = session or requests.Session()
        self.api_base = api_base
        self.timeout = timeout

    def _request(self, method: str, path: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.api_base}{path}"
        try:
            response = self.session.request(
                method,
                url,
                data=_form_encode(data) if data else None,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Stripe request %s %s failed: %s", method, path, e)
            raise UpstreamServiceError("Stripe", "request failed", details=str(e)) from e

        if not response.ok:
            try:
                message = response.json().get("error", {}).get("message", response.reason)
            except ValueError:
                message = response.reason
            logger.error("Stripe %s %s returned %s: %s", method, path, response.status_code, message)
            raise UpstreamServiceError("Stripe", message, details=response.text)

        return response.json()

    def create_payment_intent(
        self, amount: int, metadata: dict[str, str], receipt_email: str | None = None
    ) -> PaymentIntent:
        data: dict[str, Any] = {
            "amount": amount,
            "currency": "usd",
            "capture_method": "manual",
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if receipt_email:
            data["receipt_email"] = receipt_email
        return _intent_from_json(self._request("POST", "/payment_intents", data))

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        return _intent_from_json(self._request("GET", f"/payment_intents/{intent_id}"))

    def capture_payment_intent(self, intent_id: str) -> PaymentIntent:
        return _intent_from_json(self._request("POST", f"/payment_intents/{intent_id}/capture"))

    def cancel_payment_intent(self, intent_id: str) -> PaymentIntent:
        return _intent_from_json(self._request("POST", f"/payment_intents/{intent_id}/cancel"))

    def refund_payment_intent(self, intent_id: str) -> str:
        """Refund a captured intent in full and return the refund id."""
        return self._request("POST", "/refunds", {"payment_intent": intent_id})["id"]

    def create_checkout_session(
        self,
        line_items: list[LineItem],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
    ) -> CheckoutSession:
        data: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "line_items": [
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {"name": li.name, "images": li.images[:1]},
                        "unit_amount": li.unit_amount,
                    },
                    "quantity": li.quantity,
                }
                for li in line_items
            ],
        }
        if customer_email:
            data["customer_email"] = customer_email
        return _session_from_json(self._request("POST", "/checkout/sessions", data))

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        return _session_from_json(self._request("GET", f"/checkout/sessions/{session_id}"))


def verify_webhook_signature(
    payload: bytes, signature_header: str, secret: str, tolerance: int = 300
) -> dict[str, Any]:
    """
    Verify a Stripe-Signature header and return the parsed event.

    Raises:
        ValidationError: If the header is malformed, the signature doesn't
            match, or the timestamp is outside the tolerance window.
    """
    parts: dict[str, list[str]] = {}
    for item in signature_header.split(","):
        key, _, value = item.strip().partition("=")
        parts.setdefault(key, []).append(value)

    try:
        timestamp = int(parts["t"][0])
    except (KeyError, ValueError):
        raise ValidationError("Invalid webhook signature header")

    signed = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in parts.get("v1", [])):
        raise ValidationError("Invalid webhook signature")
    if abs(time.time() - timestamp) > tolerance:
        raise ValidationError("Webhook timestamp outside tolerance")

    return json.loads(payload)
