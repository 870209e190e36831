"""Bearer capabilities that let a customer pay for an order from a mailed link."""

import hmac
import secrets
from datetime import datetime, timedelta, timezone

import jwt

from .auth import parse_bearer
from .errors import InvalidPaymentTokenError
from .models import Order, parse_timestamp

PAYMENT_LINK_TOKEN_TYPE = "payment_link"


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def mint_opaque_token(ttl_hours: int = 24) -> tuple[str, str]:
    """Return (token, expiry) for a random 32-byte hex token."""
    expiry = datetime.now(timezone.utc) + timedelta(hours=ttl_hours)
    return secrets.token_hex(32), _iso(expiry)


def mint_link_jwt(order_id: str, secret: str, ttl_days: int = 7) -> tuple[str, str]:
    """Return (token, expiry) for a signed payment-link JWT."""
    expiry = datetime.now(timezone.utc) + timedelta(days=ttl_days)
    token = jwt.encode(
        {"orderId": order_id, "type": PAYMENT_LINK_TOKEN_TYPE, "exp": expiry},
        secret,
        algorithm="HS256",
    )
    return token, _iso(expiry)


def bearer_from_header(authorization: str | None) -> str:
    """
    Extract the payment token from an Authorization header.

    Raises:
        InvalidPaymentTokenError: If the header is missing or not a Bearer header.
    """
    token = parse_bearer(authorization)
    if token is None:
        raise InvalidPaymentTokenError("Missing or invalid authorization header")
    return token


def check_token(order: Order, presented: str, secret: str) -> None:
    """
    Validate a presented payment token against the order.

    A token is valid only while it is the order's current token and unexpired.
    Signed tokens must also verify and name this order.

    Raises:
        InvalidPaymentTokenError: "Invalid token" or "Token has expired".
    """
    if not order.payment_token or not hmac.compare_digest(
        presented.encode(), order.payment_token.encode()
    ):
        raise InvalidPaymentTokenError("Invalid token")

    if order.payment_token_expiry and (
        datetime.now(timezone.utc) > parse_timestamp(order.payment_token_expiry)
    ):
        raise InvalidPaymentTokenError("Token has expired")

    if presented.count(".") == 2:
        try:
            claims = jwt.decode(presented, secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            raise InvalidPaymentTokenError("Token has expired")
        except jwt.InvalidTokenError:
            raise InvalidPaymentTokenError("Invalid token")
        if claims.get("orderId") != order.id or claims.get("type") != PAYMENT_LINK_TOKEN_TYPE:
            raise InvalidPaymentTokenError("Invalid token")
