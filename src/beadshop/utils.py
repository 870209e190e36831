"""Utility functions for beadshop."""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Sequence, TypeVar

T = TypeVar("T")

KG_TO_LB = 2.20462
CM_TO_IN = 0.393701

# Custom-order categories and the spellings customers send for them
_CATEGORY_ALIASES = {
    "ring": "ring",
    "rings": "ring",
    "earring": "earring",
    "earrings": "earring",
    "bracelet": "bracelet",
    "bracelets": "bracelet",
    "necklace": "necklace",
    "necklaces": "necklace",
}

_PO_BOX_RE = re.compile(r"\b(p\.?\s*o\.?\s*box|post\s+office\s+box)\b", re.IGNORECASE)


def round_money(value: float | int | str) -> float:
    """Round to cents, half away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_cents(value: float) -> int:
    """Convert a dollar amount to integer cents."""
    return int(Decimal(str(value)).scaleb(2).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def slugify(name: str) -> str:
    """
    Build a URL slug from a display name.

    Example:
        "Beaded Necklaces & More" -> "beaded-necklaces-more"
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


def normalize_category(value: str) -> str | None:
    """Map a free-form jewelry category to its canonical name, or None."""
    return _CATEGORY_ALIASES.get(value.strip().lower())


def is_po_box(street: str) -> bool:
    return bool(_PO_BOX_RE.search(street or ""))


def convert_parcel(
    weight: float, length: float, width: float, height: float, units: str = "imperial"
) -> tuple[float, float, float, float]:
    """
    Convert parcel measurements to pounds and inches.

    Args:
        units: "metric" for kg/cm input, "imperial" for lb/in input.

    Returns:
        (weight_lb, length_in, width_in, height_in), rounded to 2 decimals.
    """
    if units == "metric":
        weight = weight * KG_TO_LB
        length, width, height = (d * CM_TO_IN for d in (length, width, height))
    return (
        round(weight, 2),
        round(length, 2),
        round(width, 2),
        round(height, 2),
    )


def paginate(items: Sequence[T], page: int, limit: int) -> tuple[list[T], dict[str, Any]]:
    """Slice a sorted sequence and return it with pagination metadata."""
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    total = len(items)
    return list(items[start : start + limit]), {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


def format_money(value: float) -> str:
    return f"${value:.2f}"
