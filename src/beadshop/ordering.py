"""Customer-facing ordering: placing orders and paying for them by link."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from .auth import Actor
from .catalog import Catalog
from .config import Settings
from .errors import InsufficientStockError, OrderNotFoundError, ProductNotFoundError, ValidationError
from .lifecycle import decrement_order_stock, log_email, require_status, transition
from .models import Address, Order, OrderItem, PaymentStatus, _utc_now
from .order_store import OrderStore
from .payment_tokens import bearer_from_header, check_token
from .payments import CheckoutSession, LineItem, PaymentProcessor, verify_webhook_signature
from .pricing import effective_price, recalculate
from .utils import format_money, normalize_category, to_cents

logger = logging.getLogger(__name__)

# Fields a payment-link holder may see
REDACTED_FIELDS = (
    "id",
    "orderNumber",
    "items",
    "subtotal",
    "shippingCost",
    "tax",
    "total",
    "status",
    "paymentStatus",
    "shippingAddress",
    "shippoShipment",
    "customerEmail",
    "createdAt",
)


@dataclass
class LineRequest:
    """One requested line of a new order."""

    product_id: str
    quantity: int = 1
    unit_id: str | None = None
    # Only used for custom (``custom-``) items
    name: str | None = None
    price: float | None = None
    size: str | None = None
    color: str | None = None
    image: str | None = None
    custom_details: dict[str, Any] | None = None


def redacted_view(order: Order) -> dict[str, Any]:
    data = order.to_dict()
    return {key: data.get(key) for key in REDACTED_FIELDS}


class CustomerOrders:
    """Order placement and token-based payment for customers."""

    def __init__(
        self,
        orders: OrderStore,
        catalog: Catalog,
        payments: PaymentProcessor,
        settings: Settings,
    ):
        self.orders = orders
        self.catalog = catalog
        self.payments = payments
        self.settings = settings

    def _build_items(self, lines: list[LineRequest]) -> list[OrderItem]:
        """
        Validate requested lines against the catalog and snapshot them.

        Raises:
            ValidationError: On empty orders, bad quantities, or unpriced items.
            ProductNotFoundError: If a product or unit doesn't exist.
            InsufficientStockError: If stock can't cover a line.
        """
        if not lines:
            raise ValidationError("Order must contain at least one item", field="items")

        items = []
        for line in lines:
            if line.quantity < 1:
                raise ValidationError("Quantity must be at least 1", field="quantity")

            if line.product_id.startswith("custom-"):
                if not line.name:
                    raise ValidationError("Custom items require a name", field="name")
                price = line.price or 0.0
                if price < 0:
                    raise ValidationError(f"Invalid price for {line.name}", field="price")
                items.append(
                    OrderItem(
                        product_id=line.product_id,
                        name=line.name,
                        price=price,
                        quantity=line.quantity,
                        unit_id=line.unit_id,
                        size=line.size,
                        color=line.color,
                        image=line.image,
                        custom_details=line.custom_details,
                    )
                )
                continue

            product = self.catalog.get_product(line.product_id)
            if not product.is_active:
                raise ProductNotFoundError(line.product_id)
            unit = product.get_unit(line.unit_id)
            if line.unit_id and unit is None:
                raise ProductNotFoundError(line.product_id, line.unit_id)
            if product.units and unit is None:
                raise ValidationError(f"Please select a size or color for {product.name}", field="unitId")

            available = unit.stock if unit else product.stock
            if available < line.quantity:
                raise InsufficientStockError(product.name, available, line.quantity)

            price = effective_price(product, unit)
            if price <= 0:
                raise ValidationError(f"Invalid price for {product.name}", field="price")

            images = unit.images if unit and unit.images else product.images
            items.append(
                OrderItem(
                    product_id=product.id,
                    name=product.name,
                    price=price,
                    quantity=line.quantity,
                    unit_id=unit.unit_id if unit else None,
                    size=unit.size if unit else None,
                    color=unit.color if unit else None,
                    image=images[0] if images else None,
                    category=product.category,
                )
            )
        return items

    def _new_order(
        self,
        actor: Actor,
        items: list[OrderItem],
        shipping_address: Address | None,
        customer_email: str | None,
        **kwargs: Any,
    ) -> Order:
        email = customer_email or actor.email
        if not email:
            raise ValidationError("Customer email is required", field="customerEmail")
        if shipping_address is None:
            raise ValidationError("Shipping address is required", field="shippingAddress")

        breakdown = recalculate(items, 0.0, 0.0, 0.0)
        return Order.create(
            items=items,
            customer_email=email,
            user_id=actor.user_id,
            shipping_address=shipping_address,
            subtotal=breakdown.subtotal,
            total=breakdown.total,
            **kwargs,
        )

    def create_order(
        self,
        actor: Actor,
        lines: list[LineRequest],
        shipping_address: Address | None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """Place an order for admin review; payment is collected later by link."""
        items = self._build_items(lines)
        order = self._new_order(
            actor, items, shipping_address, customer_email,
            customer_phone=customer_phone, notes=notes,
        )
        log_email(
            order,
            "order_confirmation",
            "Order Received - Under Review",
            f"Thank you for your order! We've received it and will review it shortly. "
            f"Order total so far: {format_money(order.total)} (shipping and tax to follow).",
        )
        return self.orders.insert(order)

    def checkout(
        self,
        actor: Actor,
        lines: list[LineRequest],
        shipping_address: Address | None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
    ) -> tuple[Order, str | None]:
        """
        Place an order backed by a manual-capture payment intent.

        The intent is authorized now and captured when an admin approves.

        Returns:
            (order, client_secret for the browser to confirm the intent)
        """
        items = self._build_items(lines)
        order = self._new_order(
            actor, items, shipping_address, customer_email,
            customer_phone=customer_phone, notes=notes,
        )
        intent = self.payments.create_payment_intent(
            to_cents(order.total),
            metadata={"orderId": order.id},
            receipt_email=order.customer_email,
        )
        order.payment_intent_id = intent.id
        log_email(
            order,
            "order_confirmation",
            "Order Received - Under Review",
            f"Thank you for your order! Your card has been authorized for "
            f"{format_money(order.total)} and will be charged once we approve your order.",
        )
        return self.orders.insert(order), intent.client_secret

    def create_custom_order(
        self,
        actor: Actor,
        category: str,
        title: str,
        sizes: list[str],
        shipping_address: Address | None,
        description: str = "",
        colors: list[str] | None = None,
        budget: str | None = None,
        reference_images: list[str] | None = None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
    ) -> Order:
        """
        Submit a bespoke piece request. It is priced by an admin later.

        Raises:
            ValidationError: On an unknown category, missing title, or no sizes.
        """
        normalized = normalize_category(category or "")
        if normalized is None:
            raise ValidationError(
                "Invalid category. Must be one of: ring, earring, bracelet, necklace",
                field="category",
            )
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")
        if not sizes:
            raise ValidationError("At least one size is required", field="sizes")

        item = OrderItem(
            product_id=f"custom-{normalized}-{uuid.uuid4().hex[:8]}",
            name=title.strip(),
            price=0.0,
            quantity=1,
            category=normalized,
            image=reference_images[0] if reference_images else None,
            custom_details={
                "category": normalized,
                "title": title.strip(),
                "description": description,
                "sizes": sizes,
                "colors": colors or [],
                "budget": budget,
                "referenceImages": reference_images or [],
            },
        )
        order = self._new_order(
            actor, [item], shipping_address, customer_email,
            customer_phone=customer_phone, is_custom_order=True,
        )
        log_email(
            order,
            "order_confirmation",
            "Custom Order Request Received",
            f"Thank you for your custom {normalized} request \"{title.strip()}\". "
            "We'll review it and follow up with pricing.",
        )
        return self.orders.insert(order)

    def list_own(self, actor: Actor) -> list[Order]:
        return self.orders.list_for_user(actor.user_id)

    def get_by_number(self, actor: Actor, order_number: str) -> Order:
        """
        Get one of the actor's orders by number.

        Raises:
            OrderNotFoundError: If it doesn't exist or belongs to someone else.
        """
        order = self.orders.get_by_number(order_number)
        if order.user_id != actor.user_id:
            raise OrderNotFoundError(order_number)
        return order

    # --- Payment by link ---

    def verify(self, order_id: str, authorization: str | None) -> Order:
        """
        Check a payment-link bearer token and return the order.

        Raises:
            InvalidPaymentTokenError: If the header or token is missing, wrong, or expired.
            OrderNotFoundError: If the order doesn't exist.
        """
        token = bearer_from_header(authorization)
        order = self.orders.get(order_id)
        check_token(order, token, self.settings.jwt_secret)
        return order

    def create_checkout_session(self, order_id: str, token: str) -> CheckoutSession:
        """Open a hosted checkout for the order's current total."""
        order = self.orders.get(order_id)
        check_token(order, token, self.settings.jwt_secret)
        require_status(order, "confirm_payment")

        line_items = [
            LineItem(
                name=item.name,
                unit_amount=to_cents(item.price),
                quantity=item.quantity,
                images=[item.image] if item.image else [],
            )
            for item in order.items
        ]
        if order.shipping_cost > 0:
            line_items.append(LineItem("Shipping", to_cents(order.shipping_cost), 1))
        if order.tax > 0:
            line_items.append(LineItem("Tax", to_cents(order.tax), 1))

        base = self.settings.base_url
        session = self.payments.create_checkout_session(
            line_items,
            metadata={"orderId": order.id, "orderNumber": order.order_number or ""},
            success_url=f"{base}/payment/success?session_id={{CHECKOUT_SESSION_ID}}&order_id={order.id}",
            cancel_url=f"{base}/payment/{order.id}?token={token}",
            customer_email=order.customer_email,
        )
        order.checkout_session_id = session.id
        self.orders.save(order)
        logger.info("Checkout session %s opened for order %s", session.id, order.order_number)
        return session

    def confirm_payment(self, order_id: str, session_id: str) -> Order:
        """
        Record a completed checkout session. Repeat calls are no-ops.

        Raises:
            ValidationError: If the session is unpaid, stale, or belongs to another order.
            InvalidTransitionError: If the order isn't awaiting payment.
        """
        order = self.orders.get(order_id)
        if order.payment_status == PaymentStatus.CAPTURED:
            return order

        session = self.payments.retrieve_checkout_session(session_id)
        if session.metadata.get("orderId") != order.id:
            raise ValidationError("Checkout session does not belong to this order")
        # Price edits revoke the open session; its amount must still match
        if session.id != order.checkout_session_id:
            raise ValidationError("Checkout session is no longer valid for this order")
        if session.amount_total is not None and session.amount_total != to_cents(order.total):
            raise ValidationError("Checkout session amount does not match the order total")
        if session.payment_status != "paid":
            raise ValidationError("Payment not completed")

        transition(order, "confirm_payment")
        order.checkout_session_id = session.id
        order.transaction_id = session.payment_intent_id or session.id
        order.payment_token = None
        order.payment_token_expiry = None
        log_email(
            order,
            "payment_success",
            f"Payment Received - Order {order.order_number}",
            f"We've received your payment of {format_money(order.total)}. "
            "Your order is being prepared for shipment.",
        )
        self.orders.save(order)

        failures = decrement_order_stock(self.catalog, order)
        if failures:
            for note in failures:
                order.admin_approval.add_note(f"[{_utc_now()}] {note}")
            self.orders.save(order)
        return order

    def handle_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Process a payment-processor webhook event.

        Only checkout.session.completed is acted on; other events are acknowledged.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValidationError("Webhook secret is not configured")
        if not signature:
            raise ValidationError("Missing webhook signature")

        event = verify_webhook_signature(payload, signature, self.settings.stripe_webhook_secret)
        event_type = event.get("type")
        if event_type != "checkout.session.completed":
            logger.debug("Ignoring webhook event %s", event_type)
            return {"received": True, "handled": False}

        session = event.get("data", {}).get("object", {})
        order_id = (session.get("metadata") or {}).get("orderId")
        if not order_id:
            logger.warning("Checkout session %s has no orderId metadata", session.get("id"))
            return {"received": True, "handled": False}

        self.confirm_payment(order_id, session["id"])
        return {"received": True, "handled": True}
