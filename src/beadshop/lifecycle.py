"""Order lifecycle: the status state machine and every admin order action.

An order's status changes only through ``transition()``, which checks the
action against ``TRANSITIONS`` and sets the payment status implied by the
new status, so the two fields always move together.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

from .auth import Actor
from .catalog import Catalog
from .config import Settings
from .errors import (
    ConfirmationMismatchError,
    InvalidTransitionError,
    PaymentCaptureError,
    ShopError,
    StaleOrderError,
    UpstreamServiceError,
    ValidationError,
)
from .mailer import EmailMessage, EmailRelay, custom_email, payment_link_email
from .models import (
    Address,
    EmailRecord,
    Order,
    OrderStatus,
    PackageDetails,
    PaymentStatus,
    _utc_now,
)
from .order_store import OrderStore
from .payment_tokens import mint_link_jwt, mint_opaque_token
from .payments import CANCELABLE_INTENT_STATUSES, PaymentProcessor
from .pricing import apply_free_shipping, recalculate
from .shipping import ShippingAggregator, ShippingRate
from .utils import convert_parcel, format_money, round_money

logger = logging.getLogger(__name__)

S = OrderStatus

# Statuses where items, shipping, and tax may still change (nothing captured yet)
PRICE_EDITABLE = frozenset(
    {
        S.PENDING_APPROVAL,
        S.ACCEPTED,
        S.APPROVED,
        S.PENDING_PAYMENT,
        S.PENDING_PAYMENT_ADJUSTMENT,
    }
)

PAYABLE = frozenset(
    {S.ACCEPTED, S.APPROVED, S.PENDING_PAYMENT, S.PENDING_PAYMENT_ADJUSTMENT}
)

PAYMENT_STATUS_FOR: dict[OrderStatus, PaymentStatus] = {
    S.PENDING_APPROVAL: PaymentStatus.PENDING_APPROVAL,
    S.ACCEPTED: PaymentStatus.PENDING_PAYMENT,
    S.APPROVED: PaymentStatus.PENDING_PAYMENT,
    S.PENDING_PAYMENT: PaymentStatus.PENDING_PAYMENT,
    S.PENDING_PAYMENT_ADJUSTMENT: PaymentStatus.PENDING_ADJUSTMENT,
    S.PROCESSING: PaymentStatus.CAPTURED,
    S.SHIPPED: PaymentStatus.CAPTURED,
    S.DELIVERED: PaymentStatus.CAPTURED,
    S.REJECTED: PaymentStatus.CANCELLED,
    S.CANCELLED: PaymentStatus.CANCELLED,
}


@dataclass(frozen=True)
class Transition:
    sources: frozenset[OrderStatus]
    target: OrderStatus | None  # None leaves the status unchanged
    conflict: str  # formatted with {status}


TRANSITIONS: dict[str, Transition] = {
    "accept": Transition(
        frozenset({S.PENDING_APPROVAL}),
        S.ACCEPTED,
        "Order is not pending approval. Current status: {status}",
    ),
    "reject": Transition(
        frozenset({S.PENDING_APPROVAL}),
        S.REJECTED,
        "Order is not pending approval. Current status: {status}",
    ),
    "approve": Transition(
        frozenset({S.PENDING_APPROVAL, S.ACCEPTED}),
        S.PROCESSING,
        "Order must be accepted first before approval processing. Current status: {status}",
    ),
    "approve_for_payment": Transition(
        frozenset({S.PENDING_APPROVAL, S.ACCEPTED}),
        S.APPROVED,
        "Order must be accepted first before approval processing. Current status: {status}",
    ),
    "fail_capture": Transition(
        frozenset({S.PENDING_APPROVAL, S.ACCEPTED}),
        S.REJECTED,
        "Order is not awaiting capture. Current status: {status}",
    ),
    "generate_payment_link": Transition(
        PAYABLE,
        S.PENDING_PAYMENT,
        "Order must be accepted before generating a payment link. Current status: {status}",
    ),
    "create_payment_link": Transition(
        frozenset({S.APPROVED, S.PENDING_PAYMENT_ADJUSTMENT}),
        None,
        "Payment links can only be created for approved orders or orders awaiting "
        "a payment adjustment. Current status: {status}",
    ),
    "adjust_price": Transition(
        PRICE_EDITABLE,
        None,
        "Order pricing can no longer be changed. Current status: {status}",
    ),
    "request_adjustment": Transition(
        frozenset({S.ACCEPTED, S.APPROVED, S.PENDING_PAYMENT}),
        S.PENDING_PAYMENT_ADJUSTMENT,
        "Order is not awaiting payment. Current status: {status}",
    ),
    "confirm_payment": Transition(
        PAYABLE,
        S.PROCESSING,
        "Order is not available for payment",
    ),
    "mark_shipped": Transition(
        frozenset({S.PROCESSING}),
        S.SHIPPED,
        "Order must be in 'processing' status to mark as shipped. Current status: {status}",
    ),
    "mark_delivered": Transition(
        frozenset({S.SHIPPED}),
        S.DELIVERED,
        "Order must be shipped before it can be delivered. Current status: {status}",
    ),
    "cancel": Transition(
        PRICE_EDITABLE,
        S.CANCELLED,
        "Order can no longer be cancelled. Current status: {status}",
    ),
}


def require_status(order: Order, action: str) -> Transition:
    """
    Check that ``action`` is legal from the order's current status.

    Raises:
        InvalidTransitionError: With a message naming the current status.
    """
    rule = TRANSITIONS[action]
    if order.status not in rule.sources:
        raise InvalidTransitionError(
            action, order.status.value, rule.conflict.format(status=order.status.value)
        )
    return rule


def transition(order: Order, action: str, payment_status: PaymentStatus | None = None) -> Order:
    """Apply ``action`` to the order, updating status and payment status together."""
    rule = require_status(order, action)
    if rule.target is not None:
        previous = order.status
        order.status = rule.target
        order.payment_status = payment_status or PAYMENT_STATUS_FOR[rule.target]
        logger.info(
            "Order %s: %s -> %s (%s)",
            order.order_number,
            previous.value,
            order.status.value,
            action,
        )
    return order


def log_email(
    order: Order, email_type: str, subject: str, content: str, sent_by: str | None = None
) -> EmailRecord:
    """Append a notification record to the order's email history."""
    record = EmailRecord(type=email_type, subject=subject, content=content, sent_by=sent_by)
    order.email_history.append(record)
    return record


def decrement_order_stock(catalog: Catalog, order: Order) -> list[str]:
    """
    Take each catalog line of the order out of stock, one item at a time.

    Failures don't stop the loop; they are returned as notes for the admin.
    """
    failures = []
    for item in order.items:
        if not item.is_physical:
            continue
        try:
            catalog.decrement_stock(item.product_id, item.unit_id, item.quantity)
        except ShopError as e:
            logger.warning("Stock decrement failed for order %s: %s", order.order_number, e)
            failures.append(f"Stock update failed for {item.name}: {e}")
    return failures


def _actor_label(actor: Actor) -> str:
    return actor.email or actor.user_id


def _to_number(value: Any, message: str, field: str) -> float:
    """Coerce a JSON value to a finite float, rejecting booleans and junk."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(message, field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message, field=field)
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(message, field=field)
    return number


def validate_package(weight: Any, length: Any, width: Any, height: Any) -> PackageDetails:
    """
    Build package details, requiring every measurement to be a positive number.

    Raises:
        ValidationError: Naming the first invalid measurement.
    """
    values = {}
    for name, raw in (("weight", weight), ("length", length), ("width", width), ("height", height)):
        number = _to_number(raw, f"Invalid {name}: must be a number greater than 0", name)
        if number <= 0:
            raise ValidationError(f"Invalid {name}: must be a number greater than 0", field=name)
        values[name] = number
    return PackageDetails(**values)


class OrderService:
    """Admin-driven order actions over the order store and external collaborators."""

    def __init__(
        self,
        orders: OrderStore,
        catalog: Catalog,
        payments: PaymentProcessor,
        shipping: ShippingAggregator,
        mailer: EmailRelay,
        settings: Settings,
    ):
        self.orders = orders
        self.catalog = catalog
        self.payments = payments
        self.shipping = shipping
        self.mailer = mailer
        self.settings = settings

    # --- Helpers ---

    def _send_best_effort(self, message: EmailMessage) -> bool:
        try:
            self.mailer.send(message)
            return True
        except ShopError as e:
            logger.warning("Email to %s failed: %s", message.to, e)
            return False

    def _cancel_intent(self, order: Order, only_if_cancelable: bool = True) -> None:
        """Cancel the order's payment intent, noting failures instead of raising."""
        if not order.payment_intent_id:
            return
        intent_id = order.payment_intent_id
        try:
            if only_if_cancelable:
                intent = self.payments.retrieve_payment_intent(intent_id)
                if intent.status not in CANCELABLE_INTENT_STATUSES:
                    return
            self.payments.cancel_payment_intent(intent_id)
            order.payment_intent_id = None
            logger.info("Cancelled payment intent %s for order %s", intent_id, order.order_number)
        except ShopError as e:
            logger.warning("Could not cancel payment intent %s: %s", intent_id, e)
            order.admin_approval.add_note(f"[{_utc_now()}] Payment intent cancellation failed: {e}")

    def _refund_lost_capture(self, order_id: str, intent_id: str) -> None:
        """
        Refund a capture whose approval lost a race with another update.

        The outcome is written to the stored order's admin notes either way.
        """
        try:
            refund_id = self.payments.refund_payment_intent(intent_id)
            note = (
                f"Payment {intent_id} captured during a conflicting update "
                f"was refunded ({refund_id})"
            )
            logger.warning("Order %s: %s", order_id, note)
        except ShopError as e:
            note = (
                f"Payment {intent_id} captured during a conflicting update "
                f"could not be refunded: {e}"
            )
            logger.error("Order %s: %s", order_id, note)

        current = self.orders.get(order_id)
        current.admin_approval.add_note(f"[{_utc_now()}] {note}")
        self.orders.save(current)

    def _apply_prices(self, order: Order, shipping_cost: float, tax: float) -> bool:
        """
        Recompute totals and enforce the price-change rule.

        When the total moves by more than a cent the order is flagged as
        adjusted. Its payment token and checkout session are revoked, a
        cancelable payment intent is cancelled, and an order awaiting payment
        moves to pending_payment_adjustment.

        Returns:
            True if the total changed.
        """
        breakdown = recalculate(order.items, shipping_cost, tax, order.total)
        order.subtotal = breakdown.subtotal
        order.shipping_cost = breakdown.shipping_cost
        order.tax = breakdown.tax
        order.total = breakdown.total

        if not breakdown.is_price_adjusted:
            return False

        order.is_price_adjusted = True
        order.payment_token = None
        order.payment_token_expiry = None
        order.checkout_session_id = None
        self._cancel_intent(order)
        if order.payment_status == PaymentStatus.PENDING_PAYMENT:
            transition(order, "request_adjustment")
        return True

    # --- Queries ---

    def get_order(self, order_id: str) -> Order:
        return self.orders.get(order_id)

    def list_orders(
        self,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], dict[str, Any]]:
        """
        List orders for the admin dashboard.

        Raises:
            ValidationError: If status isn't a known order status.
        """
        status_filter = None
        if status and status != "all":
            try:
                status_filter = OrderStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}", field="status")
        return self.orders.search(status_filter, search, page, limit)

    # --- Approval ---

    def accept(self, order_id: str, admin: Actor, admin_notes: str | None = None) -> Order:
        order = self.orders.get(order_id)
        transition(order, "accept")

        approval = order.admin_approval
        approval.is_approved = True
        approval.approved_by = _actor_label(admin)
        approval.approved_at = _utc_now()
        if admin_notes:
            approval.add_note(admin_notes)

        log_email(
            order,
            "order_accepted",
            f"Order {order.order_number} Accepted",
            f"Your order {order.order_number} has been accepted. We'll send a payment link "
            "once shipping and tax are finalized.",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def reject(self, order_id: str, admin: Actor, reason: str | None = None) -> Order:
        order = self.orders.get(order_id)
        require_status(order, "reject")
        reason = reason or "Order rejected by admin"

        self._cancel_intent(order, only_if_cancelable=False)
        transition(order, "reject")

        approval = order.admin_approval
        approval.is_approved = False
        approval.rejected_by = _actor_label(admin)
        approval.rejected_at = _utc_now()
        approval.rejection_reason = reason

        log_email(
            order,
            "rejection",
            f"Order {order.order_number} Update",
            f"Your order {order.order_number} has been rejected. Reason: {reason}",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def approve(self, order_id: str, admin: Actor) -> Order:
        """
        Approve an order and take payment.

        With a payment intent on file this captures it. A failed capture
        compensates by rejecting the order (payment failed) before raising.
        Stock is then decremented best-effort; failures land in admin notes
        and leave the capture in place. Without a payment intent the order is
        approved for payment by link instead. If another update lands while
        the capture is in flight, the capture is refunded before raising.

        Raises:
            InvalidTransitionError: If the order isn't pending approval or accepted.
            ValidationError: If a physical order has no shipping label yet.
            PaymentCaptureError: If the capture failed (order is now rejected).
            StaleOrderError: If the order changed before or during the capture.
        """
        order = self.orders.get(order_id)
        require_status(order, "approve")
        label = _actor_label(admin)

        if order.has_physical_items and not order.shipment.label_url:
            raise ValidationError("Shipping label must be generated before processing payment.")

        if not order.payment_intent_id:
            transition(order, "approve_for_payment")
            order.admin_approval.is_approved = True
            order.admin_approval.approved_by = label
            order.admin_approval.approved_at = _utc_now()
            log_email(
                order,
                "order_approved",
                f"Order {order.order_number} Approved",
                f"Your order {order.order_number} has been approved. A payment link is on its way.",
                label,
            )
            return self.orders.save(order)

        # Step 1: capture, compensating with a rejection on failure
        current = self.orders.get(order_id)
        if current.version != order.version or current.status != order.status:
            raise StaleOrderError(order.id, order.version, current.version)

        failure = None
        try:
            intent = self.payments.capture_payment_intent(order.payment_intent_id)
            if intent.status != "succeeded":
                failure = f"Payment capture failed: {intent.status}"
        except ShopError as e:
            failure = f"Payment capture error: {e}"

        if failure is not None:
            transition(order, "fail_capture", payment_status=PaymentStatus.FAILED)
            order.admin_approval.rejected_by = label
            order.admin_approval.rejected_at = _utc_now()
            order.admin_approval.rejection_reason = failure
            log_email(
                order,
                "payment_failed",
                f"Payment Issue - Order {order.order_number}",
                f"We couldn't process payment for order {order.order_number}. Reason: {failure}",
                label,
            )
            self.orders.save(order)
            logger.error("Order %s: %s", order.order_number, failure)
            raise PaymentCaptureError(order.order_number or order.id, failure)

        # Step 2: record the capture before touching other documents
        transition(order, "approve")
        order.transaction_id = order.payment_intent_id
        order.admin_approval.is_approved = True
        order.admin_approval.approved_by = label
        order.admin_approval.approved_at = _utc_now()
        log_email(
            order,
            "payment_processed",
            f"Payment Processed - Order {order.order_number}",
            f"Your payment of {format_money(order.total)} for order {order.order_number} "
            "has been processed. Your order is being prepared for shipment.",
            label,
        )
        try:
            self.orders.save(order)
        except StaleOrderError:
            self._refund_lost_capture(order.id, order.payment_intent_id)
            raise

        # Step 3: inventory, best-effort
        failures = decrement_order_stock(self.catalog, order)
        if failures:
            for note in failures:
                order.admin_approval.add_note(f"[{_utc_now()}] {note}")
            self.orders.save(order)
        return order

    # --- Payment links ---

    def generate_payment_link(
        self, order_id: str, admin: Actor, send_email: bool = False
    ) -> dict[str, Any]:
        """
        Mint an opaque payment token and move the order to pending_payment.

        Re-issuing on an order already in pending_payment only rotates the
        token and its expiry.

        Raises:
            InvalidTransitionError: If the order isn't accepted or awaiting payment.
            ValidationError: If tax isn't set, or a physical order has no label.
        """
        order = self.orders.get(order_id)
        require_status(order, "generate_payment_link")
        if order.has_physical_items and not order.shipment.label_url:
            raise ValidationError(
                "Shipping label must be generated before creating a payment link."
            )
        if not order.is_tax_set:
            raise ValidationError("Tax must be set before creating a payment link.")

        is_regeneration = bool(order.payment_token)
        token, expiry = mint_opaque_token(self.settings.payment_token_ttl_hours)
        order.payment_token = token
        order.payment_token_expiry = expiry
        transition(order, "generate_payment_link")

        link = f"{self.settings.base_url}/payment/{order.id}?token={token}"
        email_sent = False
        if send_email:
            email_sent = self._send_best_effort(payment_link_email(order, link, expiry))

        log_email(
            order,
            "payment_link_regenerated" if is_regeneration else "payment_link_generated",
            f"Payment Link - Order {order.order_number}",
            f"Payment link for {format_money(order.total)} "
            f"{'regenerated' if is_regeneration else 'generated'}, expires {expiry}.",
            _actor_label(admin),
        )
        self.orders.save(order)
        return {
            "order": order,
            "paymentLink": link,
            "expiresAt": expiry,
            "isRegeneration": is_regeneration,
            "emailSent": email_sent,
        }

    def create_payment_link(
        self, order_id: str, admin: Actor, send_email: bool = True
    ) -> dict[str, Any]:
        """Mint a signed 7-day payment link; the order's status is unchanged."""
        order = self.orders.get(order_id)
        require_status(order, "create_payment_link")

        token, expiry = mint_link_jwt(
            order.id, self.settings.jwt_secret, self.settings.payment_link_ttl_days
        )
        order.payment_token = token
        order.payment_token_expiry = expiry
        link = f"{self.settings.base_url}/payment/{order.id}?token={token}"

        content = f"Payment link for {format_money(order.total)} created, expires {expiry}."
        email_sent = False
        if send_email:
            email_sent = self._send_best_effort(payment_link_email(order, link, expiry))
            content += " - Email sent successfully" if email_sent else " - Email delivery failed"

        log_email(
            order,
            "payment_link",
            f"Payment Link - Order {order.order_number}",
            content,
            _actor_label(admin),
        )
        self.orders.save(order)
        return {"order": order, "paymentLink": link, "expiresAt": expiry, "emailSent": email_sent}

    # --- Price adjustments ---

    def edit_custom_item(
        self,
        order_id: str,
        admin: Actor,
        item_index: int,
        name: str | None = None,
        price: Any = None,
        quantity: Any = None,
        custom_details: dict[str, Any] | None = None,
    ) -> Order:
        """
        Edit one line item and recompute totals.

        Raises:
            ValidationError: On a bad index, negative price, or quantity < 1.
            InvalidTransitionError: If the order's pricing is locked.
        """
        order = self.orders.get(order_id)
        require_status(order, "adjust_price")
        if not isinstance(item_index, int) or not 0 <= item_index < len(order.items):
            raise ValidationError("Invalid item index", field="itemIndex")

        item = order.items[item_index]
        old = f"{item.name} x{item.quantity} @ {format_money(item.price)}"
        if name is not None:
            if not name.strip():
                raise ValidationError("Item name cannot be empty", field="name")
            item.name = name.strip()
        if price is not None:
            new_price = _to_number(price, "Invalid price provided", "price")
            if new_price < 0:
                raise ValidationError("Invalid price provided", field="price")
            item.price = round_money(new_price)
        if quantity is not None:
            new_quantity = _to_number(quantity, "Invalid quantity provided", "quantity")
            if new_quantity < 1 or new_quantity != int(new_quantity):
                raise ValidationError("Invalid quantity provided", field="quantity")
            item.quantity = int(new_quantity)
        if custom_details is not None:
            item.custom_details = custom_details

        self._apply_prices(order, order.shipping_cost, order.tax)
        new = f"{item.name} x{item.quantity} @ {format_money(item.price)}"
        order.admin_approval.add_note(
            f"[{_utc_now()}] Item {item_index + 1} updated by {_actor_label(admin)}: {old} -> {new}"
        )
        log_email(
            order,
            "custom_item_updated",
            f"Order {order.order_number} Updated",
            f"Your custom item has been updated: {new}. New order total: {format_money(order.total)}",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def edit_tax(self, order_id: str, admin: Actor, new_tax: Any) -> dict[str, Any]:
        """
        Set the order's tax and recompute totals.

        Returns:
            {"order", "oldTotal", "newTotal"}

        Raises:
            ValidationError: "Invalid tax amount provided" for non-numeric or negative tax.
        """
        tax = _to_number(new_tax, "Invalid tax amount provided", "newTaxAmount")
        if tax < 0:
            raise ValidationError("Invalid tax amount provided", field="newTaxAmount")

        order = self.orders.get(order_id)
        require_status(order, "adjust_price")
        old_total = order.total
        order.is_tax_set = True
        changed = self._apply_prices(order, order.shipping_cost, tax)

        order.admin_approval.add_note(
            f"[{_utc_now()}] Tax set to {format_money(order.tax)} by {_actor_label(admin)}"
        )
        if changed:
            log_email(
                order,
                "tax_updated",
                f"Order {order.order_number} Total Updated",
                f"Tax for your order has been updated to {format_money(order.tax)}. "
                f"New total: {format_money(order.total)} (was {format_money(old_total)}).",
                _actor_label(admin),
            )
        self.orders.save(order)
        return {"order": order, "oldTotal": old_total, "newTotal": order.total}

    # --- Shipping ---

    def shop_rates(
        self,
        order_id: str,
        admin: Actor,
        weight: Any,
        length: Any,
        width: Any,
        height: Any,
        units: str = "imperial",
    ) -> tuple[Order, list[ShippingRate]]:
        """
        Store the parcel and fetch carrier rates, cheapest first.

        Args:
            units: "imperial" (lb/in) or "metric" (kg/cm, converted to lb/in).

        Raises:
            ValidationError: On invalid measurements or a missing address.
            UpstreamServiceError: If the aggregator call fails (noted on the order).
        """
        if units not in ("imperial", "metric"):
            raise ValidationError("Units must be 'imperial' or 'metric'", field="units")
        package = validate_package(weight, length, width, height)
        package = PackageDetails(
            *convert_parcel(package.weight, package.length, package.width, package.height, units)
        )

        order = self.orders.get(order_id)
        require_status(order, "adjust_price")
        if order.shipping_address is None:
            raise ValidationError("Order has no shipping address")

        order.package = package
        try:
            rates = self.shipping.get_rates(
                self.settings.origin_address, order.shipping_address, package
            )
        except UpstreamServiceError as e:
            order.admin_approval.add_note(f"[{_utc_now()}] Rate fetch failed: {e}")
            self.orders.save(order)
            raise
        self.orders.save(order)
        return order, rates

    def select_rate(
        self, order_id: str, admin: Actor, rate: ShippingRate, purchase_label: bool = True
    ) -> Order:
        """
        Apply a chosen carrier rate and (optionally) buy its label.

        At or above the free-shipping threshold the customer pays nothing for
        shipping while the carrier cost is kept on the shipment. Label
        purchase is best-effort: a failure is noted and the rate stays applied.
        """
        order = self.orders.get(order_id)
        require_status(order, "adjust_price")

        customer_cost, free = apply_free_shipping(
            order.subtotal, rate.amount, self.settings.free_shipping_threshold
        )
        shipment = order.shipment
        shipment.rate_id = rate.rate_id
        shipment.carrier = rate.carrier
        shipment.service = rate.service
        shipment.carrier_cost = round_money(rate.amount)
        shipment.estimated_days = rate.estimated_days
        shipment.free_shipping_applied = free
        self._apply_prices(order, customer_cost, order.tax)

        if purchase_label:
            try:
                label = self.shipping.purchase_label(rate.rate_id)
                shipment.transaction_id = label.transaction_id
                shipment.tracking_number = label.tracking_number
                shipment.tracking_url = label.tracking_url
                shipment.label_url = label.label_url
            except ShopError as e:
                logger.warning("Label purchase failed for order %s: %s", order.order_number, e)
                order.admin_approval.add_note(f"[{_utc_now()}] Label purchase failed: {e}")

        content = (
            f"Shipping method selected: {rate.carrier} {rate.service} - "
            f"{format_money(order.shipping_cost)}"
        )
        if free:
            content += " (Free shipping applied)"
        log_email(
            order,
            "shipping_rate_selected",
            f"Shipping Updated - Order {order.order_number}",
            f"{content}. New order total: {format_money(order.total)}",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def update_shipping_details(
        self,
        order_id: str,
        admin: Actor,
        package: dict[str, Any] | None = None,
        selected_rate: ShippingRate | None = None,
        units: str = "imperial",
    ) -> dict[str, Any]:
        """Either rate-shop a new parcel or apply a selected rate (without buying a label)."""
        if selected_rate is not None:
            order = self.select_rate(order_id, admin, selected_rate, purchase_label=False)
            return {"order": order, "rates": None}
        if package is None:
            raise ValidationError("Package details or a selected rate are required")
        order, rates = self.shop_rates(
            order_id,
            admin,
            package.get("weight"),
            package.get("length"),
            package.get("width"),
            package.get("height"),
            units,
        )
        return {"order": order, "rates": rates}

    # --- Fulfilment ---

    def mark_shipped(
        self, order_id: str, admin: Actor, tracking_number: str | None = None
    ) -> Order:
        """
        Mark a paid, labelled order as shipped.

        A tracking number may be supplied for orders fulfilled by hand after
        a failed label purchase.

        Raises:
            InvalidTransitionError: If the order isn't processing.
            ValidationError: If payment isn't captured or no tracking number exists.
        """
        order = self.orders.get(order_id)
        require_status(order, "mark_shipped")
        if order.payment_status != PaymentStatus.CAPTURED:
            raise ValidationError("Payment must be captured before shipping.")
        if tracking_number:
            order.shipment.tracking_number = tracking_number.strip()
        if not order.shipment.tracking_number:
            raise ValidationError("Tracking number is required before marking as shipped.")

        transition(order, "mark_shipped")
        carrier = order.shipment.carrier or "the carrier"
        log_email(
            order,
            "order_shipped",
            f"Your Order {order.order_number} Has Shipped!",
            f"Your order {order.order_number} has shipped via {carrier}. "
            f"Tracking number: {order.shipment.tracking_number}",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def mark_delivered(self, order_id: str, admin: Actor) -> Order:
        order = self.orders.get(order_id)
        transition(order, "mark_delivered")
        log_email(
            order,
            "order_delivered",
            f"Order {order.order_number} Delivered",
            f"Your order {order.order_number} has been delivered. Enjoy your jewelry!",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def cancel(self, order_id: str, admin: Actor, reason: str | None = None) -> Order:
        order = self.orders.get(order_id)
        require_status(order, "cancel")
        reason = reason or "Order cancelled by admin"
        self._cancel_intent(order, only_if_cancelable=False)
        order.payment_token = None
        order.payment_token_expiry = None
        transition(order, "cancel")
        order.admin_approval.add_note(f"[{_utc_now()}] Cancelled by {_actor_label(admin)}: {reason}")
        log_email(
            order,
            "order_cancelled",
            f"Order {order.order_number} Cancelled",
            f"Your order {order.order_number} has been cancelled. Reason: {reason}",
            _actor_label(admin),
        )
        return self.orders.save(order)

    def remove(self, order_id: str, admin: Actor, confirmation: str | None) -> Order:
        """
        Hard-delete an order after an exact "remove" confirmation.

        Raises:
            ConfirmationMismatchError: If confirmation isn't exactly "remove".
        """
        order = self.orders.get(order_id)
        if confirmation != "remove":
            raise ConfirmationMismatchError("remove")
        self._cancel_intent(order, only_if_cancelable=False)
        self.orders.delete(order.id)
        logger.warning("Order %s removed by %s", order.order_number, _actor_label(admin))
        return order

    # --- Communication and details ---

    def send_custom_email(
        self, order_id: str, admin: Actor, subject: str, content: str
    ) -> tuple[Order, bool]:
        if not subject or not subject.strip() or not content or not content.strip():
            raise ValidationError("Subject and content are required")
        order = self.orders.get(order_id)
        sent = self._send_best_effort(custom_email(order, subject.strip(), content.strip()))
        log_email(order, "custom", subject.strip(), content.strip(), _actor_label(admin))
        return self.orders.save(order), sent

    def update_details(
        self,
        order_id: str,
        admin: Actor,
        admin_notes: str | None = None,
        shipping_address: Address | None = None,
        customer_phone: str | None = None,
    ) -> Order:
        """Edit fields that don't affect status or pricing."""
        order = self.orders.get(order_id)
        if admin_notes is not None:
            order.admin_approval.admin_notes = admin_notes
        if shipping_address is not None:
            if order.status in (S.SHIPPED, S.DELIVERED):
                raise InvalidTransitionError(
                    "update",
                    order.status.value,
                    f"Shipping address can't change after shipment. Current status: {order.status.value}",
                )
            order.shipping_address = shipping_address
        if customer_phone is not None:
            order.customer_phone = customer_phone
        return self.orders.save(order)
