"""Shipping aggregator integration (Shippo REST API over requests)."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

import requests

from .errors import UpstreamServiceError
from .models import Address, CartItem, PackageDetails
from .pricing import apply_free_shipping
from .utils import is_po_box, round_money

logger = logging.getLogger(__name__)

SHIPPO_API_BASE = "https://api.goshippo.com"
LABEL_FORMAT = "PDF_4x6"

# Rates carrying any of these in their messages are unusable
_RATE_ERROR_MARKERS = ("error", "failed", "authentication", "doesn't support")


@dataclass
class ShippingRate:
    rate_id: str
    carrier: str
    service: str
    amount: float
    currency: str = "USD"
    estimated_days: int | None = None
    duration_terms: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rateId": self.rate_id,
            "carrier": self.carrier,
            "service": self.service,
            "amount": self.amount,
            "currency": self.currency,
            "estimatedDays": self.estimated_days,
            "durationTerms": self.duration_terms,
        }


@dataclass
class AddressValidation:
    is_valid: bool
    address: Address
    is_residential: bool | None = None
    messages: list[str] = field(default_factory=list)


@dataclass
class LabelPurchase:
    transaction_id: str
    tracking_number: str | None
    label_url: str | None
    tracking_url: str | None = None


class ShippingAggregator(Protocol):
    """Address validation, rate shopping, and label purchase."""

    def validate_address(self, address: Address) -> AddressValidation: ...

    def get_rates(
        self, origin: Address, destination: Address, parcel: PackageDetails
    ) -> list[ShippingRate]: ...

    def purchase_label(self, rate_id: str, label_format: str = LABEL_FORMAT) -> LabelPurchase: ...


def usable_rates(raw_rates: list[dict[str, Any]]) -> list[ShippingRate]:
    """Drop rates the carrier flagged as failed and sort the rest by price."""
    rates = []
    for raw in raw_rates:
        texts = " ".join(
            (m.get("text") or "") if isinstance(m, dict) else str(m)
            for m in raw.get("messages") or []
        ).lower()
        if any(marker in texts for marker in _RATE_ERROR_MARKERS):
            continue
        rates.append(
            ShippingRate(
                rate_id=raw["object_id"],
                carrier=raw.get("provider", ""),
                service=(raw.get("servicelevel") or {}).get("name", ""),
                amount=float(raw.get("amount", 0)),
                currency=raw.get("currency", "USD"),
                estimated_days=raw.get("estimated_days"),
                duration_terms=raw.get("duration_terms"),
            )
        )
    rates.sort(key=lambda r: r.amount)
    return rates


# Assumed per-item parcel when a cart line has no weight (lb, in)
DEFAULT_ITEM_WEIGHT = 0.25
DEFAULT_ITEM_DIMENSIONS = (6.0, 6.0, 2.0)


def estimate_parcel(items: Iterable[CartItem]) -> PackageDetails:
    """
    Pack cart lines into a single box.

    The box takes the largest item footprint and stacks item heights, with
    a floor of 6x4x1 in and 0.1 lb.
    """
    length, width, item_height = DEFAULT_ITEM_DIMENSIONS
    weight = height = 0.0
    for item in items:
        weight += (item.weight or DEFAULT_ITEM_WEIGHT) * item.quantity
        height += item_height * item.quantity
    return PackageDetails(
        weight=round(max(weight, 0.1), 2),
        length=float(math.ceil(max(length, 6))),
        width=float(math.ceil(max(width, 4))),
        height=float(math.ceil(max(height, 1))),
    )


@dataclass
class RateQuote:
    """A carrier rate as the customer would pay it."""

    rate: ShippingRate
    cost: float
    is_free_shipping: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.rate.to_dict(),
            "cost": self.cost,
            "originalCost": self.rate.amount,
            "isFreeShipping": self.is_free_shipping,
        }


def quote_rates(
    rates: Iterable[ShippingRate], subtotal: float, threshold: float
) -> list[RateQuote]:
    """Apply the free-shipping threshold to each rate, cheapest first."""
    quotes = []
    for rate in rates:
        cost, free = apply_free_shipping(subtotal, rate.amount, threshold)
        quotes.append(RateQuote(rate, cost, free))
    quotes.sort(key=lambda q: (q.cost, q.rate.amount))
    return quotes


def cart_subtotal(items: Iterable[CartItem]) -> float:
    return round_money(
        sum((item.effective_price or item.price) * item.quantity for item in items)
    )


def _address_payload(address: Address) -> dict[str, Any]:
    payload = address.to_dict()
    payload.setdefault("phone", "")
    payload.setdefault("email", "")
    return payload


class ShippoClient:
    """Minimal Shippo client covering the calls the shop makes."""

    def __init__(
        self,
        api_key: str,
        session: requests.Session | None = None,
        api_base: str = SHIPPO_API_BASE,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.api_base = api_base
        self.timeout = timeout

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.api_base}{path}",
                json=payload,
                headers={"Authorization": f"ShippoToken {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Shippo request %s failed: %s", path, e)
            raise UpstreamServiceError("Shippo", "request failed", details=str(e)) from e

        if not response.ok:
            logger.error("Shippo %s returned %s: %s", path, response.status_code, response.text)
            raise UpstreamServiceError(
                "Shippo", f"request failed with status {response.status_code}", details=response.text
            )
        return response.json()

    def validate_address(self, address: Address) -> AddressValidation:
        if address.country.upper() == "US" and (
            is_po_box(address.street1) or is_po_box(address.street2 or "")
        ):
            return AddressValidation(
                is_valid=False,
                address=address,
                messages=["PO Boxes are not supported for shipping. Please use a street address."],
            )

        payload = _address_payload(address)
        payload["validate"] = True
        data = self._post("/addresses/", payload)

        results = data.get("validation_results") or {}
        corrected = Address(
            name=data.get("name") or address.name,
            street1=data.get("street1") or address.street1,
            street2=data.get("street2") or address.street2,
            city=data.get("city") or address.city,
            state=data.get("state") or address.state,
            zip=data.get("zip") or address.zip,
            country=data.get("country") or address.country,
            phone=address.phone,
            email=address.email,
        )
        return AddressValidation(
            is_valid=bool(results.get("is_valid", False)),
            address=corrected,
            is_residential=data.get("is_residential"),
            messages=[m.get("text", "") for m in results.get("messages") or []],
        )

    def get_rates(
        self, origin: Address, destination: Address, parcel: PackageDetails
    ) -> list[ShippingRate]:
        data = self._post(
            "/shipments/",
            {
                "address_from": _address_payload(origin),
                "address_to": _address_payload(destination),
                "parcels": [
                    {
                        "length": str(parcel.length),
                        "width": str(parcel.width),
                        "height": str(parcel.height),
                        "distance_unit": "in",
                        "weight": str(parcel.weight),
                        "mass_unit": "lb",
                    }
                ],
                "async": False,
            },
        )
        rates = usable_rates(data.get("rates") or [])
        logger.info("Shippo returned %d usable rates", len(rates))
        return rates

    def purchase_label(self, rate_id: str, label_format: str = LABEL_FORMAT) -> LabelPurchase:
        data = self._post(
            "/transactions/",
            {"rate": rate_id, "label_file_type": label_format, "async": False},
        )
        if data.get("status") != "SUCCESS":
            messages = "; ".join(m.get("text", "") for m in data.get("messages") or [])
            raise UpstreamServiceError("Shippo", "label purchase failed", details=messages or None)
        return LabelPurchase(
            transaction_id=data["object_id"],
            tracking_number=data.get("tracking_number"),
            label_url=data.get("label_url"),
            tracking_url=data.get("tracking_url_provider"),
        )
