"""Order storage for beadshop."""

import logging
import secrets
import string
import time
from pathlib import Path
from typing import Any

from .document_store import DocumentStore
from .errors import OrderNotFoundError, StaleOrderError
from .models import Order, OrderStatus, _utc_now
from .utils import paginate

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = "orders"
_CUSTOM_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


class OrderStore:
    """Persists orders with optimistic concurrency and order-number minting."""

    def __init__(self, data_dir: Path):
        self.docs = DocumentStore(ORDERS_COLLECTION, data_dir)

    def _existing_numbers(self) -> set[str]:
        return {d["orderNumber"] for d in self.docs.list_all() if d.get("orderNumber")}

    def _mint_number(self, custom: bool) -> str:
        """
        Mint a unique order number. Caller must hold the collection lock.

        Regular orders: ORD-<unixMillis>-<NNNN> where NNNN is the order count + 1.
        Custom orders: CO-<last 6 digits of millis>-<6 random chars>.
        """
        existing = self._existing_numbers()
        millis = int(time.time() * 1000)

        if custom:
            while True:
                suffix = "".join(secrets.choice(_CUSTOM_SUFFIX_ALPHABET) for _ in range(6))
                candidate = f"CO-{str(millis)[-6:]}-{suffix}"
                if candidate not in existing:
                    return candidate

        counter = self.docs.count() + 1
        candidate = f"ORD-{millis}-{counter:04d}"
        while candidate in existing:
            counter += 1
            candidate = f"ORD-{millis}-{counter:04d}"
        return candidate

    def insert(self, order: Order) -> Order:
        """
        Insert a new order, minting its order number.

        Returns:
            The stored order (version 1, with order_number set).
        """
        with self.docs.lock():
            if not order.order_number:
                order.order_number = self._mint_number(custom=order.is_custom_order)
            order.version = 1
            order.created_at = order.updated_at = _utc_now()
            self.docs.write(order.id, order.to_dict())
        logger.info("Created order %s (%s)", order.order_number, order.id)
        return order

    def get(self, order_id: str) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        data = self.docs.get(order_id)
        if data is None:
            raise OrderNotFoundError(order_id)
        return Order.from_dict(data)

    def get_by_number(self, order_number: str) -> Order:
        """
        Get an order by its human-readable number.

        Raises:
            OrderNotFoundError: If no order has that number.
        """
        for data in self.docs.list_all():
            if data.get("orderNumber") == order_number:
                return Order.from_dict(data)
        raise OrderNotFoundError(order_number)

    def find_by_session(self, session_id: str) -> Order | None:
        for data in self.docs.list_all():
            if data.get("stripeSessionId") == session_id:
                return Order.from_dict(data)
        return None

    def save(self, order: Order) -> Order:
        """
        Persist changes to an existing order.

        The stored version must match order.version; on success the version
        is incremented.

        Raises:
            OrderNotFoundError: If the order was deleted.
            StaleOrderError: If another writer saved the order first.
        """
        with self.docs.lock():
            stored = self.docs.get(order.id)
            if stored is None:
                raise OrderNotFoundError(order.id)
            stored_version = int(stored.get("version", 0))
            if stored_version != order.version:
                raise StaleOrderError(order.id, order.version, stored_version)
            order.version += 1
            order.updated_at = _utc_now()
            self.docs.write(order.id, order.to_dict())
        return order

    def delete(self, order_id: str) -> None:
        """
        Hard-delete an order.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        with self.docs.lock():
            if not self.docs.delete(order_id):
                raise OrderNotFoundError(order_id)
        logger.info("Deleted order %s", order_id)

    def list_orders(self) -> list[Order]:
        """List all orders, newest first."""
        orders = [Order.from_dict(d) for d in self.docs.list_all()]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def list_for_user(self, user_id: str) -> list[Order]:
        return [o for o in self.list_orders() if o.user_id == user_id]

    def search(
        self,
        status: OrderStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], dict[str, Any]]:
        """
        Filter and paginate orders for the admin dashboard.

        Args:
            status: Only orders in this status.
            search: Case-insensitive match on order number, customer email,
                or shipping name.

        Returns:
            (page of orders, pagination dict with page/limit/total/pages)
        """
        orders = self.list_orders()
        if status is not None:
            orders = [o for o in orders if o.status == status]
        if search:
            needle = search.lower()
            orders = [
                o
                for o in orders
                if needle in (o.order_number or "").lower()
                or needle in o.customer_email.lower()
                or (o.shipping_address is not None and needle in o.shipping_address.name.lower())
            ]
        return paginate(orders, page, limit)
