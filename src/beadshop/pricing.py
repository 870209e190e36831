"""Price and shipping recalculation.

Everything here is a pure function of its arguments; callers persist results.
"""

from dataclasses import dataclass
from typing import Iterable

from .models import OrderItem, Product, ProductUnit, SaleConfig
from .utils import round_money

# Totals that move by more than this count as a price change
PRICE_TOLERANCE = 0.01


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    shipping_cost: float
    tax: float
    total: float
    is_price_adjusted: bool


def apply_sale(price: float, sale: SaleConfig | None) -> float | None:
    """
    Apply a sale config to a list price.

    Returns:
        The discounted price, or None if the sale isn't active.
    """
    if sale is None or not sale.is_on_sale or sale.sale_value <= 0:
        return None
    if sale.sale_type == "percentage":
        pct = min(max(sale.sale_value, 0.0), 100.0)
        return round_money(max(0.0, price * (1 - pct / 100)))
    return round_money(max(0.0, price - sale.sale_value))


def sale_price(product: Product, unit: ProductUnit | None = None) -> float | None:
    """Resolve the sale price: unit sale first, then product sale."""
    list_price = unit.price if unit is not None else product.price
    if unit is not None:
        unit_sale = apply_sale(list_price, unit.sale)
        if unit_sale is not None:
            return unit_sale
    return apply_sale(list_price, product.sale)


def effective_price(product: Product, unit: ProductUnit | None = None) -> float:
    """Price a customer pays right now for a product or one of its units."""
    discounted = sale_price(product, unit)
    if discounted is not None:
        return discounted
    return round_money(unit.price if unit is not None else product.price)


def compute_subtotal(items: Iterable[OrderItem]) -> float:
    return round_money(sum(item.price * item.quantity for item in items))


def apply_free_shipping(
    subtotal: float, carrier_cost: float, threshold: float
) -> tuple[float, bool]:
    """
    Decide what the customer pays for shipping.

    Returns:
        (customer_shipping_cost, free_shipping_applied)
    """
    if threshold > 0 and subtotal >= threshold:
        return 0.0, True
    return round_money(carrier_cost), False


def recalculate(
    items: Iterable[OrderItem],
    shipping_cost: float,
    tax: float,
    previous_total: float,
) -> PriceBreakdown:
    """
    Recompute order totals after a change to items, shipping, or tax.

    total == subtotal + shipping_cost + tax, rounded to cents. The breakdown
    is flagged as adjusted when the total moved by more than a cent.
    """
    subtotal = compute_subtotal(items)
    shipping_cost = round_money(shipping_cost)
    tax = round_money(tax)
    total = round_money(subtotal + shipping_cost + tax)
    return PriceBreakdown(
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        tax=tax,
        total=total,
        is_price_adjusted=round_money(abs(total - previous_total)) > PRICE_TOLERANCE,
    )
