"""Data models for beadshop.

Documents are stored and served with camelCase keys; attributes are snake_case.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new document ID."""
    return uuid.uuid4().hex


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp written by _utc_now()."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class OrderStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    ACCEPTED = "accepted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PENDING_PAYMENT = "pending_payment"
    PENDING_PAYMENT_ADJUSTMENT = "pending_payment_adjustment"


class PaymentStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    PENDING_PAYMENT = "pending_payment"
    CAPTURED = "captured"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING_ADJUSTMENT = "pending_adjustment"


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    OWNER = "owner"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.REJECTED, OrderStatus.CANCELLED}
)

# Item id prefixes for goods that never ship in a parcel
NON_PHYSICAL_PREFIXES = ("custom", "service_", "digital_")


@dataclass
class Address:
    """Postal address used for shipping and rate shopping."""

    name: str
    street1: str
    city: str
    state: str
    zip: str
    country: str = "US"
    street2: str | None = None
    phone: str | None = None
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "street1": self.street1,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "country": self.country,
        }
        if self.street2:
            result["street2"] = self.street2
        if self.phone:
            result["phone"] = self.phone
        if self.email:
            result["email"] = self.email
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(
            name=data.get("name", ""),
            street1=data.get("street1") or data.get("street", ""),
            street2=data.get("street2"),
            city=data.get("city", ""),
            state=data.get("state", ""),
            zip=data.get("zip") or data.get("zipCode", ""),
            country=data.get("country", "US"),
            phone=data.get("phone"),
            email=data.get("email"),
        )


@dataclass
class SaleConfig:
    """Sale settings applied to a product or a single unit."""

    is_on_sale: bool = False
    sale_type: str = "percentage"  # "percentage" | "amount"
    sale_value: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isOnSale": self.is_on_sale,
            "saleType": self.sale_type,
            "saleValue": self.sale_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SaleConfig":
        return cls(
            is_on_sale=data.get("isOnSale", False),
            sale_type=data.get("saleType", "percentage"),
            sale_value=float(data.get("saleValue", 0) or 0),
        )


@dataclass
class ProductUnit:
    """A purchasable size/color variant of a product."""

    unit_id: str
    price: float
    stock: int = 0
    size: str | None = None
    color: str | None = None
    images: list[str] = field(default_factory=list)
    sale: SaleConfig | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "unitId": self.unit_id,
            "price": self.price,
            "stock": self.stock,
            "images": self.images,
        }
        if self.size is not None:
            result["size"] = self.size
        if self.color is not None:
            result["color"] = self.color
        if self.sale is not None:
            result["saleConfig"] = self.sale.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductUnit":
        sale = None
        if data.get("saleConfig"):
            sale = SaleConfig.from_dict(data["saleConfig"])
        return cls(
            unit_id=data.get("unitId") or _generate_id()[:12],
            price=float(data.get("price", 0)),
            stock=int(data.get("stock", 0)),
            size=data.get("size"),
            color=data.get("color"),
            images=data.get("images", []),
            sale=sale,
        )


@dataclass
class Product:
    """Catalog entry with either a flat price/stock or a list of units."""

    id: str
    name: str
    price: float
    category: str
    description: str = ""
    stock: int = 0
    images: list[str] = field(default_factory=list)
    units: list[ProductUnit] = field(default_factory=list)
    sale: SaleConfig | None = None
    featured: bool = False
    is_active: bool = True
    rating: float = 0.0
    review_count: int = 0
    weight: float | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def get_unit(self, unit_id: str | None) -> ProductUnit | None:
        if not unit_id:
            return None
        for unit in self.units:
            if unit.unit_id == unit_id:
                return unit
        return None

    @property
    def total_stock(self) -> int:
        if self.units:
            return sum(u.stock for u in self.units)
        return self.stock

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "stock": self.stock,
            "images": self.images,
            "units": [u.to_dict() for u in self.units],
            "featured": self.featured,
            "isActive": self.is_active,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.sale is not None:
            result["saleConfig"] = self.sale.to_dict()
        if self.weight is not None:
            result["weight"] = self.weight
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        sale = None
        if data.get("saleConfig"):
            sale = SaleConfig.from_dict(data["saleConfig"])
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            category=data.get("category", ""),
            price=float(data.get("price", 0)),
            stock=int(data.get("stock", 0)),
            images=data.get("images", []),
            units=[ProductUnit.from_dict(u) for u in data.get("units", [])],
            sale=sale,
            featured=data.get("featured", False),
            is_active=data.get("isActive", True),
            rating=float(data.get("rating", 0)),
            review_count=int(data.get("reviewCount", 0)),
            weight=data.get("weight"),
            created_at=data.get("createdAt", _utc_now()),
            updated_at=data.get("updatedAt", _utc_now()),
        )

    @classmethod
    def create(cls, name: str, price: float, category: str, **kwargs: Any) -> "Product":
        """Create a new product with a generated ID."""
        return cls(id=_generate_id(), name=name, price=price, category=category, **kwargs)


@dataclass
class OrderItem:
    """Snapshot of a purchased line item, decoupled from live catalog data."""

    product_id: str
    name: str
    price: float
    quantity: int
    unit_id: str | None = None
    size: str | None = None
    color: str | None = None
    image: str | None = None
    category: str | None = None
    custom_details: dict[str, Any] | None = None

    @property
    def is_physical(self) -> bool:
        return not self.product_id.startswith(NON_PHYSICAL_PREFIXES)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "productId": self.product_id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
        }
        for key, value in (
            ("unitId", self.unit_id),
            ("size", self.size),
            ("color", self.color),
            ("image", self.image),
            ("category", self.category),
            ("customDetails", self.custom_details),
        ):
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=str(data["productId"]),
            name=data.get("name", ""),
            price=float(data.get("price", 0)),
            quantity=int(data.get("quantity", 1)),
            unit_id=data.get("unitId"),
            size=data.get("size"),
            color=data.get("color"),
            image=data.get("image"),
            category=data.get("category"),
            custom_details=data.get("customDetails"),
        )


@dataclass
class PackageDetails:
    """Parcel dimensions in pounds and inches."""

    weight: float
    length: float
    width: float
    height: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "weight": self.weight,
            "length": self.length,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PackageDetails":
        return cls(
            weight=float(data["weight"]),
            length=float(data["length"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )


@dataclass
class ShippingShipment:
    """Carrier, rate, label, and tracking data, filled in progressively."""

    rate_id: str | None = None
    carrier: str | None = None
    service: str | None = None
    carrier_cost: float | None = None  # what the carrier charges, kept for records
    estimated_days: int | None = None
    free_shipping_applied: bool = False
    transaction_id: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    label_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rateId": self.rate_id,
            "carrier": self.carrier,
            "service": self.service,
            "carrierCost": self.carrier_cost,
            "estimatedDays": self.estimated_days,
            "freeShippingApplied": self.free_shipping_applied,
            "transactionId": self.transaction_id,
            "trackingNumber": self.tracking_number,
            "trackingUrl": self.tracking_url,
            "labelUrl": self.label_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingShipment":
        return cls(
            rate_id=data.get("rateId"),
            carrier=data.get("carrier"),
            service=data.get("service"),
            carrier_cost=data.get("carrierCost"),
            estimated_days=data.get("estimatedDays"),
            free_shipping_applied=data.get("freeShippingApplied", False),
            transaction_id=data.get("transactionId"),
            tracking_number=data.get("trackingNumber"),
            tracking_url=data.get("trackingUrl"),
            label_url=data.get("labelUrl"),
        )


@dataclass
class AdminApproval:
    """Approval/rejection audit plus free-text admin notes."""

    is_approved: bool = False
    approved_by: str | None = None
    approved_at: str | None = None
    rejected_by: str | None = None
    rejected_at: str | None = None
    rejection_reason: str | None = None
    admin_notes: str = ""

    def add_note(self, note: str) -> None:
        self.admin_notes = f"{self.admin_notes}\n{note}" if self.admin_notes else note

    def to_dict(self) -> dict[str, Any]:
        return {
            "isApproved": self.is_approved,
            "approvedBy": self.approved_by,
            "approvedAt": self.approved_at,
            "rejectedBy": self.rejected_by,
            "rejectedAt": self.rejected_at,
            "rejectionReason": self.rejection_reason,
            "adminNotes": self.admin_notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdminApproval":
        return cls(
            is_approved=data.get("isApproved", False),
            approved_by=data.get("approvedBy"),
            approved_at=data.get("approvedAt"),
            rejected_by=data.get("rejectedBy"),
            rejected_at=data.get("rejectedAt"),
            rejection_reason=data.get("rejectionReason"),
            admin_notes=data.get("adminNotes", ""),
        )


@dataclass
class EmailRecord:
    """One customer-facing notification the shop claims to have generated."""

    type: str
    subject: str
    content: str
    sent_by: str | None = None
    sent_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "subject": self.subject,
            "content": self.content,
            "sentBy": self.sent_by,
            "sentAt": self.sent_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmailRecord":
        return cls(
            type=data["type"],
            subject=data.get("subject", ""),
            content=data.get("content", ""),
            sent_by=data.get("sentBy"),
            sent_at=data.get("sentAt", _utc_now()),
        )


@dataclass
class Order:
    """A customer order and its full lifecycle state."""

    id: str
    items: list[OrderItem]
    customer_email: str
    user_id: str | None = None
    order_number: str | None = None
    subtotal: float = 0.0
    shipping_cost: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    status: OrderStatus = OrderStatus.PENDING_APPROVAL
    payment_status: PaymentStatus = PaymentStatus.PENDING_APPROVAL
    shipping_address: Address | None = None
    customer_phone: str | None = None
    notes: str | None = None
    is_custom_order: bool = False
    package: PackageDetails | None = None
    shipment: ShippingShipment = field(default_factory=ShippingShipment)
    admin_approval: AdminApproval = field(default_factory=AdminApproval)
    email_history: list[EmailRecord] = field(default_factory=list)
    payment_token: str | None = None
    payment_token_expiry: str | None = None
    payment_intent_id: str | None = None
    checkout_session_id: str | None = None
    transaction_id: str | None = None
    is_tax_set: bool = False
    is_price_adjusted: bool = False
    version: int = 0
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    @property
    def has_physical_items(self) -> bool:
        return any(item.is_physical for item in self.items)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "orderNumber": self.order_number,
            "userId": self.user_id,
            "customerEmail": self.customer_email,
            "items": [i.to_dict() for i in self.items],
            "subtotal": self.subtotal,
            "shippingCost": self.shipping_cost,
            "tax": self.tax,
            "total": self.total,
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "isCustomOrder": self.is_custom_order,
            "shippoShipment": self.shipment.to_dict(),
            "adminApproval": self.admin_approval.to_dict(),
            "emailHistory": [e.to_dict() for e in self.email_history],
            "paymentToken": self.payment_token,
            "paymentTokenExpiry": self.payment_token_expiry,
            "stripePaymentIntentId": self.payment_intent_id,
            "stripeSessionId": self.checkout_session_id,
            "transactionId": self.transaction_id,
            "isTaxSet": self.is_tax_set,
            "isPriceAdjusted": self.is_price_adjusted,
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.shipping_address is not None:
            result["shippingAddress"] = self.shipping_address.to_dict()
        if self.customer_phone:
            result["customerPhone"] = self.customer_phone
        if self.notes:
            result["notes"] = self.notes
        if self.package is not None:
            result["packageDetails"] = self.package.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        shipping_address = None
        if data.get("shippingAddress"):
            shipping_address = Address.from_dict(data["shippingAddress"])
        package = None
        if data.get("packageDetails"):
            package = PackageDetails.from_dict(data["packageDetails"])
        return cls(
            id=data["id"],
            order_number=data.get("orderNumber"),
            user_id=data.get("userId"),
            customer_email=data.get("customerEmail", ""),
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            subtotal=float(data.get("subtotal", 0)),
            shipping_cost=float(data.get("shippingCost", 0)),
            tax=float(data.get("tax", 0)),
            total=float(data.get("total", 0)),
            status=OrderStatus(data.get("status", OrderStatus.PENDING_APPROVAL.value)),
            payment_status=PaymentStatus(
                data.get("paymentStatus", PaymentStatus.PENDING_APPROVAL.value)
            ),
            shipping_address=shipping_address,
            customer_phone=data.get("customerPhone"),
            notes=data.get("notes"),
            is_custom_order=data.get("isCustomOrder", False),
            package=package,
            shipment=ShippingShipment.from_dict(data.get("shippoShipment") or {}),
            admin_approval=AdminApproval.from_dict(data.get("adminApproval") or {}),
            email_history=[EmailRecord.from_dict(e) for e in data.get("emailHistory", [])],
            payment_token=data.get("paymentToken"),
            payment_token_expiry=data.get("paymentTokenExpiry"),
            payment_intent_id=data.get("stripePaymentIntentId"),
            checkout_session_id=data.get("stripeSessionId"),
            transaction_id=data.get("transactionId"),
            is_tax_set=data.get("isTaxSet", False),
            is_price_adjusted=data.get("isPriceAdjusted", False),
            version=int(data.get("version", 0)),
            created_at=data.get("createdAt", _utc_now()),
            updated_at=data.get("updatedAt", _utc_now()),
        )

    @classmethod
    def create(
        cls,
        items: list[OrderItem],
        customer_email: str,
        user_id: str | None = None,
        **kwargs: Any,
    ) -> "Order":
        """Create a new unsaved order; the order number is minted on insert."""
        return cls(
            id=_generate_id(),
            items=items,
            customer_email=customer_email,
            user_id=user_id,
            **kwargs,
        )


@dataclass
class CartItem:
    """A line in a user's cart, with price and stock snapshotted at add time."""

    product_id: str
    name: str
    price: float
    quantity: int
    unit_id: str | None = None
    sale_price: float | None = None
    effective_price: float | None = None
    images: list[str] = field(default_factory=list)
    category: str | None = None
    size: str | None = None
    color: str | None = None
    available_stock: int = 0
    weight: float | None = None
    custom_details: dict[str, Any] | None = None

    @property
    def key(self) -> str:
        return cart_item_key(self.product_id, self.unit_id)

    @property
    def is_custom(self) -> bool:
        return self.product_id.startswith("custom")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "cartItemId": self.key,
            "productId": self.product_id,
            "unitId": self.unit_id,
            "name": self.name,
            "price": self.price,
            "salePrice": self.sale_price,
            "effectivePrice": self.effective_price,
            "quantity": self.quantity,
            "images": self.images,
            "category": self.category,
            "size": self.size,
            "color": self.color,
            "availableStock": self.available_stock,
        }
        if self.weight is not None:
            result["weight"] = self.weight
        if self.custom_details is not None:
            result["customDetails"] = self.custom_details
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            product_id=str(data["productId"]),
            unit_id=data.get("unitId"),
            name=data.get("name", ""),
            price=float(data.get("price", 0)),
            sale_price=data.get("salePrice"),
            effective_price=data.get("effectivePrice"),
            quantity=int(data.get("quantity", 1)),
            images=data.get("images", []),
            category=data.get("category"),
            size=data.get("size"),
            color=data.get("color"),
            available_stock=int(data.get("availableStock", data.get("stock", 0)) or 0),
            weight=data.get("weight"),
            custom_details=data.get("customDetails"),
        )


def cart_item_key(product_id: str, unit_id: str | None) -> str:
    """Identity key of a cart line: product plus unit, or 'default'."""
    return f"{product_id}_{unit_id or 'default'}"


@dataclass
class Cart:
    """Server-persisted cart, one per signed-in user."""

    clerk_id: str
    items: list[CartItem] = field(default_factory=list)
    updated_at: str = field(default_factory=_utc_now)

    def find(self, key: str) -> CartItem | None:
        for item in self.items:
            if item.key == key:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "clerkId": self.clerk_id,
            "items": [i.to_dict() for i in self.items],
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cart":
        return cls(
            clerk_id=data["clerkId"],
            items=[CartItem.from_dict(i) for i in data.get("items", [])],
            updated_at=data.get("updatedAt", _utc_now()),
        )


@dataclass
class User:
    """Local profile for an identity-provider account."""

    clerk_id: str
    email: str
    role: Role = Role.CUSTOMER
    first_name: str | None = None
    last_name: str | None = None
    shipping_address: Address | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "clerkId": self.clerk_id,
            "email": self.email,
            "role": self.role.value,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.shipping_address is not None:
            result["shippingAddress"] = self.shipping_address.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        shipping_address = None
        if data.get("shippingAddress"):
            shipping_address = Address.from_dict(data["shippingAddress"])
        return cls(
            clerk_id=data["clerkId"],
            email=data.get("email", ""),
            role=Role(data.get("role", Role.CUSTOMER.value)),
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            shipping_address=shipping_address,
            created_at=data.get("createdAt", _utc_now()),
            updated_at=data.get("updatedAt", _utc_now()),
        )


@dataclass
class Review:
    """A product review; one per (product, user)."""

    id: str
    product_id: str
    user_id: str
    rating: int
    user_name: str = ""
    title: str = ""
    comment: str = ""
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "rating": self.rating,
            "title": self.title,
            "comment": self.comment,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Review":
        return cls(
            id=data["id"],
            product_id=data["productId"],
            user_id=data["userId"],
            rating=int(data["rating"]),
            user_name=data.get("userName", ""),
            title=data.get("title", ""),
            comment=data.get("comment", ""),
            created_at=data.get("createdAt", _utc_now()),
        )


@dataclass
class PendingRoleAssignment:
    """A role granted to an email before (or after) that user signs in."""

    email: str
    assigned_role: Role
    assigned_by: str
    processed: bool = False
    processed_at: str | None = None
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "assignedRole": self.assigned_role.value,
            "assignedBy": self.assigned_by,
            "processed": self.processed,
            "processedAt": self.processed_at,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingRoleAssignment":
        return cls(
            email=data["email"],
            assigned_role=Role(data["assignedRole"]),
            assigned_by=data.get("assignedBy", ""),
            processed=data.get("processed", False),
            processed_at=data.get("processedAt"),
            created_at=data.get("createdAt", _utc_now()),
        )


@dataclass
class Category:
    id: str
    name: str
    slug: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            name=data["name"],
            slug=data["slug"],
            description=data.get("description", ""),
        )
