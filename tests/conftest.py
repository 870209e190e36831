"""Pytest fixtures for beadshop tests."""

import tempfile
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient

from beadshop.auth import Actor
from beadshop.config import Settings
from beadshop.errors import UpstreamServiceError
from beadshop.models import Address, Order, OrderItem, Product, ProductUnit, Role
from beadshop.payments import CheckoutSession, PaymentIntent
from beadshop.shipping import AddressValidation, LabelPurchase, ShippingRate
from beadshop.shop import build_shop
from beadshop.utils import is_po_box

AUTH_KEY = "test-session-key"
LINK_SECRET = "test-link-secret"
WEBHOOK_SECRET = "whsec_test"


class FakePayments:
    """In-memory payment processor."""

    def __init__(self):
        self.intents: dict[str, PaymentIntent] = {}
        self.sessions: dict[str, CheckoutSession] = {}
        self.captured: list[str] = []
        self.cancelled: list[str] = []
        self.refunded: list[str] = []
        self.last_line_items = []
        self.fail_capture = False
        self.fail_cancel = False
        self.fail_refund = False

    def create_payment_intent(self, amount, metadata, receipt_email=None):
        n = len(self.intents) + 1
        intent = PaymentIntent(
            id=f"pi_{n}", status="requires_capture", amount=amount, client_secret=f"pi_{n}_secret"
        )
        self.intents[intent.id] = intent
        return intent

    def retrieve_payment_intent(self, intent_id):
        return self.intents[intent_id]

    def capture_payment_intent(self, intent_id):
        if self.fail_capture:
            raise UpstreamServiceError("Stripe", "Your card was declined.")
        intent = self.intents[intent_id]
        intent.status = "succeeded"
        self.captured.append(intent_id)
        return intent

    def cancel_payment_intent(self, intent_id):
        if self.fail_cancel:
            raise UpstreamServiceError("Stripe", "cannot cancel")
        intent = self.intents[intent_id]
        intent.status = "canceled"
        self.cancelled.append(intent_id)
        return intent

    def refund_payment_intent(self, intent_id):
        if self.fail_refund:
            raise UpstreamServiceError("Stripe", "refund failed")
        self.refunded.append(intent_id)
        return f"re_{len(self.refunded)}"

    def create_checkout_session(
        self, line_items, metadata, success_url, cancel_url, customer_email=None
    ):
        n = len(self.sessions) + 1
        session = CheckoutSession(
            id=f"cs_{n}",
            payment_status="unpaid",
            url=f"https://checkout.test/cs_{n}",
            payment_intent_id=f"pi_cs_{n}",
            metadata=dict(metadata),
            amount_total=sum(li.unit_amount * li.quantity for li in line_items),
        )
        self.sessions[session.id] = session
        self.last_line_items = line_items
        return session

    def retrieve_checkout_session(self, session_id):
        return self.sessions[session_id]

    def pay(self, session_id: str) -> None:
        self.sessions[session_id].payment_status = "paid"


class FakeShipping:
    """In-memory shipping aggregator with two fixed rates."""

    def __init__(self):
        self.rates = [
            ShippingRate("rate_priority", "USPS", "Priority Mail", 12.75, estimated_days=2),
            ShippingRate("rate_ground", "USPS", "Ground Advantage", 8.50, estimated_days=4),
        ]
        self.parcels = []
        self.fail_rates = False
        self.fail_label = False

    def validate_address(self, address):
        if is_po_box(address.street1):
            return AddressValidation(
                is_valid=False,
                address=address,
                messages=["PO Boxes are not supported for shipping. Please use a street address."],
            )
        return AddressValidation(is_valid=True, address=address, is_residential=True)

    def get_rates(self, origin, destination, parcel):
        if self.fail_rates:
            raise UpstreamServiceError(
                "Shippo", "request failed with status 500", details="carrier timeout"
            )
        self.parcels.append(parcel)
        return sorted(self.rates, key=lambda r: r.amount)

    def purchase_label(self, rate_id, label_format="PDF_4x6"):
        if self.fail_label:
            raise UpstreamServiceError("Shippo", "label purchase failed")
        return LabelPurchase(
            transaction_id=f"txn_{rate_id}",
            tracking_number="9400111899223",
            label_url=f"https://labels.test/{rate_id}.pdf",
            tracking_url="https://track.test/9400111899223",
        )


class FakeMailer:
    """Records messages instead of sending them."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, message):
        if self.fail:
            raise UpstreamServiceError("Resend", "send failed")
        self.sent.append(message)
        return f"msg_{len(self.sent)}"


def make_token(user_id: str, role: str | None = None, email: str | None = None) -> str:
    """Mint a session JWT the test authorizer accepts."""
    claims = {"sub": user_id}
    if role:
        claims["role"] = role
    if email:
        claims["email"] = email
    return jwt.encode(claims, AUTH_KEY, algorithm="HS256")


def auth_header(user_id: str, role: str | None = None, email: str | None = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role, email)}"}


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    return Settings(
        data_dir=temp_dir / "data",
        base_url="https://shop.test",
        stripe_webhook_secret=WEBHOOK_SECRET,
        jwt_secret=LINK_SECRET,
        auth_jwt_key=AUTH_KEY,
        free_shipping_threshold=100.0,
    )


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def shipping():
    return FakeShipping()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def shop(settings, payments, shipping, mailer):
    return build_shop(settings, payments=payments, shipping=shipping, mailer=mailer)


@pytest.fixture
def api_client(shop):
    """Test client wired to the temporary shop."""
    from beadshop.api import app, get_shop

    app.dependency_overrides[get_shop] = lambda: shop
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin():
    return Actor(user_id="user_admin", role=Role.ADMIN, email="admin@butterfliesbeading.com")


@pytest.fixture
def customer():
    return Actor(user_id="user_cust", role=Role.CUSTOMER, email="jane@example.com", name="Jane")


@pytest.fixture
def address():
    return Address(
        name="Jane Doe",
        street1="42 Garden Lane",
        city="Portland",
        state="OR",
        zip="97201",
        country="US",
    )


@pytest.fixture
def necklace(shop):
    """A flat-priced product with five in stock."""
    product = Product.create(
        name="Butterfly Necklace", price=60.0, category="necklaces", stock=5, weight=0.2
    )
    return shop.catalog.add_product(product)


@pytest.fixture
def ring(shop):
    """A product sold in sizes."""
    product = Product.create(
        name="Seed Bead Ring",
        price=20.0,
        category="rings",
        units=[
            ProductUnit(unit_id="size-6", price=20.0, stock=2, size="6"),
            ProductUnit(unit_id="size-8", price=22.0, stock=0, size="8"),
        ],
    )
    return shop.catalog.add_product(product)


@pytest.fixture
def make_order(shop, customer, address):
    """Insert an order directly; keyword overrides apply to the Order."""

    def _make(items=None, **kwargs) -> Order:
        items = items or [OrderItem(product_id="custom-ring-1", name="Custom Ring", price=0.0, quantity=1)]
        kwargs.setdefault("shipping_address", address)
        order = Order.create(
            items=items,
            customer_email=customer.email,
            user_id=customer.user_id,
            **kwargs,
        )
        return shop.orders.insert(order)

    return _make
