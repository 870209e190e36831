"""Server-persisted carts and guest-cart reconciliation."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .catalog import Catalog
from .document_store import DocumentStore
from .errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from .models import Cart, CartItem, _utc_now
from .pricing import effective_price, sale_price

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    """How a local (guest) cart and the server cart converge."""

    MERGE_MAX = "merge_max"  # union of lines, larger quantity wins
    SERVER_WINS = "server_wins"
    LOCAL_WINS = "local_wins"


@dataclass
class ReconcileResult:
    cart: Cart
    adjusted: list[str] = field(default_factory=list)  # keys clamped or dropped


class CartManager:
    """Manages one cart document per signed-in user."""

    def __init__(self, data_dir: Path, catalog: Catalog):
        self.docs = DocumentStore("carts", data_dir)
        self.catalog = catalog

    def get_cart(self, clerk_id: str) -> Cart:
        """Get the user's cart; an empty cart if none is stored yet."""
        data = self.docs.get(clerk_id)
        if data is None:
            return Cart(clerk_id=clerk_id)
        return Cart.from_dict(data)

    def _save(self, cart: Cart) -> Cart:
        cart.updated_at = _utc_now()
        self.docs.write(cart.clerk_id, cart.to_dict())
        return cart

    def snapshot(self, product_id: str, unit_id: str | None, quantity: int) -> CartItem:
        """
        Build a cart line from current catalog data.

        Raises:
            ProductNotFoundError: If the product or unit doesn't exist.
        """
        product = self.catalog.get_product(product_id)
        unit = product.get_unit(unit_id)
        if unit_id and unit is None:
            raise ProductNotFoundError(product_id, unit_id)

        return CartItem(
            product_id=product.id,
            unit_id=unit.unit_id if unit else None,
            name=product.name,
            price=unit.price if unit else product.price,
            sale_price=sale_price(product, unit),
            effective_price=effective_price(product, unit),
            quantity=quantity,
            images=(unit.images if unit and unit.images else product.images),
            category=product.category,
            size=unit.size if unit else None,
            color=unit.color if unit else None,
            available_stock=unit.stock if unit else product.stock,
            weight=product.weight,
        )

    def add_item(
        self,
        clerk_id: str,
        product_id: str,
        quantity: int = 1,
        unit_id: str | None = None,
        custom: dict[str, Any] | None = None,
    ) -> Cart:
        """
        Add a line to the cart, or bump the quantity of an existing line.

        Catalog items are snapshotted from the product. Custom items
        (``custom-`` ids) take their name, price, and details from ``custom``.

        Raises:
            ValidationError: If quantity < 1 or a custom item has no name.
            ProductNotFoundError: If a catalog product or unit doesn't exist.
            InsufficientStockError: If the resulting quantity exceeds stock.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")

        if product_id.startswith("custom"):
            custom = custom or {}
            if not custom.get("name"):
                raise ValidationError("Custom items require a name", field="name")
            incoming = CartItem(
                product_id=product_id,
                unit_id=unit_id,
                name=custom["name"],
                price=float(custom.get("price", 0)),
                effective_price=float(custom.get("price", 0)),
                quantity=quantity,
                images=custom.get("images", []),
                category=custom.get("category"),
                size=custom.get("size"),
                color=custom.get("color"),
                custom_details=custom.get("customDetails"),
            )
        else:
            incoming = self.snapshot(product_id, unit_id, quantity)

        with self.docs.lock():
            cart = self.get_cart(clerk_id)
            existing = cart.find(incoming.key)
            if existing is not None:
                new_quantity = existing.quantity + quantity
                if not incoming.is_custom and new_quantity > incoming.available_stock:
                    raise InsufficientStockError(
                        incoming.name, incoming.available_stock, new_quantity
                    )
                existing.quantity = new_quantity
                existing.available_stock = incoming.available_stock or existing.available_stock
            else:
                if not incoming.is_custom and quantity > incoming.available_stock:
                    raise InsufficientStockError(incoming.name, incoming.available_stock, quantity)
                cart.items.append(incoming)
            return self._save(cart)

    def update_item(self, clerk_id: str, cart_item_id: str, quantity: int) -> Cart:
        """
        Set a line's quantity; zero or less removes it.

        Raises:
            CartItemNotFoundError: If the key isn't in the cart.
        """
        if quantity <= 0:
            return self.remove_item(clerk_id, cart_item_id)

        with self.docs.lock():
            cart = self.get_cart(clerk_id)
            item = cart.find(cart_item_id)
            if item is None:
                raise CartItemNotFoundError(cart_item_id)
            item.quantity = quantity
            return self._save(cart)

    def remove_item(self, clerk_id: str, cart_item_id: str) -> Cart:
        """
        Remove a line from the cart.

        Raises:
            CartItemNotFoundError: If the key isn't in the cart.
        """
        with self.docs.lock():
            cart = self.get_cart(clerk_id)
            remaining = [i for i in cart.items if i.key != cart_item_id]
            if len(remaining) == len(cart.items):
                raise CartItemNotFoundError(cart_item_id)
            cart.items = remaining
            return self._save(cart)

    def clear(self, clerk_id: str) -> Cart:
        with self.docs.lock():
            cart = self.get_cart(clerk_id)
            cart.items = []
            return self._save(cart)

    def replace(self, clerk_id: str, items: list[CartItem]) -> Cart:
        """Overwrite the cart with the given lines, collapsing duplicate keys."""
        merged: dict[str, CartItem] = {}
        for item in items:
            if item.key in merged:
                merged[item.key].quantity += item.quantity
            else:
                merged[item.key] = item
        with self.docs.lock():
            cart = Cart(clerk_id=clerk_id, items=[i for i in merged.values() if i.quantity > 0])
            return self._save(cart)

    def reconcile(
        self,
        clerk_id: str,
        local_items: list[CartItem],
        policy: MergePolicy = MergePolicy.MERGE_MAX,
    ) -> ReconcileResult:
        """
        Converge a browser-side cart with the server cart.

        The policy picks which lines survive; afterwards every catalog line is
        re-checked against live stock: missing or sold-out products are
        dropped and quantities are clamped to what is available.

        Returns:
            The stored cart plus the keys that were clamped or dropped.
        """
        with self.docs.lock():
            server = self.get_cart(clerk_id)

            if policy == MergePolicy.SERVER_WINS:
                chosen = list(server.items)
            elif policy == MergePolicy.LOCAL_WINS:
                chosen = list(local_items)
            else:
                by_key = {item.key: item for item in server.items}
                for item in local_items:
                    current = by_key.get(item.key)
                    if current is None:
                        by_key[item.key] = item
                    elif item.quantity > current.quantity:
                        current.quantity = item.quantity
                chosen = list(by_key.values())

            result = ReconcileResult(cart=server)
            final: dict[str, CartItem] = {}
            for item in chosen:
                if item.quantity <= 0:
                    continue
                if item.key in final:
                    final[item.key].quantity = max(final[item.key].quantity, item.quantity)
                    continue
                if item.is_custom:
                    final[item.key] = item
                    continue
                try:
                    fresh = self.snapshot(item.product_id, item.unit_id, item.quantity)
                except ProductNotFoundError:
                    logger.info("Dropping cart line %s: product no longer exists", item.key)
                    result.adjusted.append(item.key)
                    continue
                if fresh.available_stock <= 0:
                    result.adjusted.append(item.key)
                    continue
                if fresh.quantity > fresh.available_stock:
                    fresh.quantity = fresh.available_stock
                    result.adjusted.append(item.key)
                final[item.key] = fresh

            server.items = list(final.values())
            result.cart = self._save(server)
        return result
