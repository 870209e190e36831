"""FastAPI REST API for the beadshop storefront and admin back office."""

import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import __version__
from .auth import Actor
from .cart import MergePolicy
from .config import Settings
from .errors import (
    AuthenticationError,
    CartItemNotFoundError,
    ConfirmationMismatchError,
    DuplicateReviewError,
    InsufficientStockError,
    InvalidPaymentTokenError,
    InvalidTransitionError,
    OrderNotFoundError,
    PaymentCaptureError,
    PermissionDeniedError,
    ProductNotFoundError,
    ShopError,
    StaleOrderError,
    UpstreamServiceError,
    ValidationError,
)
from .mailer import contact_auto_reply, contact_business_email
from .models import (
    Address,
    CartItem,
    Order,
    PackageDetails,
    Product,
    ProductUnit,
    Role,
    SaleConfig,
)
from .catalog import product_view
from .ordering import LineRequest, redacted_view
from .lifecycle import validate_package
from .shipping import ShippingRate, cart_subtotal, estimate_parcel, quote_rates
from .shop import Shop, build_shop
from .utils import convert_parcel

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class CamelModel(BaseModel):
    """Request/response model exchanged with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddressSchema(CamelModel):
    name: str
    street1: str
    street2: Optional[str] = None
    city: str
    state: str
    zip: str
    country: str = "US"
    phone: Optional[str] = None
    email: Optional[str] = None

    def to_address(self) -> Address:
        return Address(**self.model_dump())


class OrderLineSchema(CamelModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    unit_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = None
    size: Optional[str] = None
    color: Optional[str] = None
    image: Optional[str] = None
    custom_details: Optional[dict[str, Any]] = None


class OrderCreateRequest(CamelModel):
    """Request body for placing an order."""

    items: list[OrderLineSchema]
    shipping_address: Optional[AddressSchema] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None


class CustomOrderRequest(CamelModel):
    category: str
    title: str
    sizes: list[str] = Field(default_factory=list)
    description: str = ""
    colors: list[str] = Field(default_factory=list)
    budget: Optional[str] = None
    reference_images: list[str] = Field(default_factory=list)
    shipping_address: Optional[AddressSchema] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


class AcceptRequest(CamelModel):
    admin_notes: Optional[str] = None


class RejectRequest(CamelModel):
    reason: Optional[str] = None


class PaymentLinkRequest(CamelModel):
    send_email: Optional[bool] = None


class UpdatedItemSchema(CamelModel):
    name: Optional[str] = None
    price: Any = None
    quantity: Any = None
    custom_details: Optional[dict[str, Any]] = None


class EditCustomItemRequest(CamelModel):
    item_index: int
    updated_item: UpdatedItemSchema


class EditTaxRequest(CamelModel):
    new_tax_amount: Any = Field(default=None, description="Tax in dollars; must be >= 0")


class PackageSchema(CamelModel):
    weight: Any = None
    length: Any = None
    width: Any = None
    height: Any = None


class RateSchema(CamelModel):
    rate_id: str
    carrier: str
    service: str
    amount: float = Field(..., ge=0)
    currency: str = "USD"
    estimated_days: Optional[int] = None
    duration_terms: Optional[str] = None

    def to_rate(self) -> ShippingRate:
        return ShippingRate(**self.model_dump())


class ShippingRatesRequest(PackageSchema):
    units: str = Field(default="imperial", description="'imperial' (lb/in) or 'metric' (kg/cm)")


class ShippingQuoteRequest(CamelModel):
    address: AddressSchema
    package: Optional[PackageSchema] = None
    units: str = Field(default="imperial", description="'imperial' (lb/in) or 'metric' (kg/cm)")


class SelectRateRequest(CamelModel):
    rate: RateSchema
    purchase_label: bool = True


class UpdateShippingDetailsRequest(CamelModel):
    package_details: Optional[PackageSchema] = None
    units: str = "imperial"
    selected_rate: Optional[RateSchema] = None


class MarkShippedRequest(CamelModel):
    tracking_number: Optional[str] = None


class CancelRequest(CamelModel):
    reason: Optional[str] = None


class RemoveRequest(CamelModel):
    confirmation: Optional[str] = None


class SendEmailRequest(CamelModel):
    subject: Optional[str] = None
    content: Optional[str] = None


class OrderUpdateRequest(CamelModel):
    admin_notes: Optional[str] = None
    shipping_address: Optional[AddressSchema] = None
    customer_phone: Optional[str] = None


class CheckoutSessionRequest(CamelModel):
    token: str


class VerifySuccessRequest(CamelModel):
    session_id: str
    order_id: str


class CartItemSchema(CamelModel):
    product_id: str
    unit_id: Optional[str] = None
    name: str = ""
    price: float = 0.0
    sale_price: Optional[float] = None
    effective_price: Optional[float] = None
    quantity: int = 1
    images: list[str] = Field(default_factory=list)
    category: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    available_stock: int = 0
    weight: Optional[float] = None
    custom_details: Optional[dict[str, Any]] = None

    def to_item(self) -> CartItem:
        return CartItem(**self.model_dump())


class CartAddRequest(CamelModel):
    product_id: str
    unit_id: Optional[str] = None
    quantity: int = 1
    # Custom items only
    name: Optional[str] = None
    price: Optional[float] = None
    images: list[str] = Field(default_factory=list)
    category: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    custom_details: Optional[dict[str, Any]] = None


class CartUpdateRequest(CamelModel):
    cart_item_id: str
    quantity: int


class CartRemoveRequest(CamelModel):
    cart_item_id: str


class CartReplaceRequest(CamelModel):
    items: list[CartItemSchema]


class CartSyncRequest(CamelModel):
    items: list[CartItemSchema] = Field(default_factory=list)
    policy: MergePolicy = MergePolicy.MERGE_MAX


class SaleConfigSchema(CamelModel):
    is_on_sale: bool = False
    sale_type: str = "percentage"
    sale_value: float = 0.0

    def to_sale(self) -> SaleConfig:
        return SaleConfig(**self.model_dump())


class ProductUnitSchema(CamelModel):
    unit_id: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(default=0, ge=0)
    size: Optional[str] = None
    color: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    sale_config: Optional[SaleConfigSchema] = None


class ProductCreateRequest(CamelModel):
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    category: str
    description: str = ""
    stock: int = Field(default=0, ge=0)
    images: list[str] = Field(default_factory=list)
    units: list[ProductUnitSchema] = Field(default_factory=list)
    sale_config: Optional[SaleConfigSchema] = None
    featured: bool = False
    is_active: bool = True
    weight: Optional[float] = None


class ProductUpdateRequest(CamelModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    images: Optional[list[str]] = None
    units: Optional[list[ProductUnitSchema]] = None
    sale_config: Optional[SaleConfigSchema] = None
    featured: Optional[bool] = None
    is_active: Optional[bool] = None
    weight: Optional[float] = None


class BulkUpdateRequest(CamelModel):
    product_ids: list[str]
    set_price: float


class BulkSaleRequest(CamelModel):
    product_ids: list[str]
    action: str = Field(..., description="'setSale' or 'removeSale'")
    sale_type: Optional[str] = None
    sale_value: Optional[float] = None


class ReviewCreateRequest(CamelModel):
    rating: int
    title: str = ""
    comment: str = ""


class CategoryCreateRequest(CamelModel):
    name: str
    description: str = ""


class ContactRequest(CamelModel):
    name: str = ""
    email: str = ""
    subject: str = "General Inquiry"
    message: str = ""


class RoleAssignRequest(CamelModel):
    email: str
    role: Role


# --- Helper Functions ---


_shop: Shop | None = None


def get_shop() -> Shop:
    """Get the global Shop, building it from the environment on first use."""
    global _shop
    if _shop is None:
        _shop = build_shop(Settings.from_env())
    return _shop


def current_actor(
    authorization: Optional[str] = Header(default=None),
    shop: Shop = Depends(get_shop),
) -> Actor:
    """Authenticated caller, from the session token."""
    return shop.authorizer.authenticate(authorization)


def admin_actor(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)) -> Actor:
    """Caller allowed to mutate orders and the catalog."""
    return shop.authorizer.require_role(actor, Role.ADMIN)


def staff_actor(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)) -> Actor:
    """Caller allowed to view the back office."""
    return shop.authorizer.require_role(actor, Role.ADMIN, Role.OWNER)


def customer_view(order: Order) -> dict[str, Any]:
    """Order as its owner sees it: no payment token or admin notes."""
    data = order.to_dict()
    data.pop("paymentToken", None)
    data.pop("adminApproval", None)
    return data


def action_response(message: str, order: Order, **extra: Any) -> dict[str, Any]:
    return {"success": True, "message": message, "order": order.to_dict(), **extra}


def cart_response(cart) -> dict[str, Any]:
    return {"success": True, "items": [i.to_dict() for i in cart.items]}


def _sale(schema: Optional[SaleConfigSchema]) -> SaleConfig | None:
    return schema.to_sale() if schema else None


def _unit(schema: ProductUnitSchema) -> ProductUnit:
    data = schema.model_dump(by_alias=True, exclude={"sale_config"})
    unit = ProductUnit.from_dict(data)
    unit.sale = _sale(schema.sale_config)
    return unit


# --- FastAPI App ---


app = FastAPI(
    title="beadshop API",
    description="Storefront and admin REST API for a handmade jewelry shop",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    AuthenticationError: 401,
    InvalidPaymentTokenError: 401,
    PermissionDeniedError: 403,
    OrderNotFoundError: 404,
    ProductNotFoundError: 404,
    CartItemNotFoundError: 404,
    InvalidTransitionError: 400,
    ValidationError: 400,
    ConfirmationMismatchError: 400,
    InsufficientStockError: 400,
    PaymentCaptureError: 400,
    StaleOrderError: 409,
    DuplicateReviewError: 409,
    UpstreamServiceError: 502,
}


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
    """Map ShopError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, UpstreamServiceError) and exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed or incomplete request bodies as 400s."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    # loc is ("body" | "query" | ..., field, ...)
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    if first.get("type") == "json_invalid":
        detail = "Malformed JSON body"
    elif field:
        detail = f"{field}: {first.get('msg', 'Invalid value')}"
    else:
        detail = first.get("msg", "Invalid request")
    content: dict[str, Any] = {"detail": detail, "error_type": "ValidationError"}
    if field:
        content["field"] = field
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_type": "InternalError"},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


# --- Customer Order Endpoints ---


def _lines(request: OrderCreateRequest) -> list[LineRequest]:
    return [LineRequest(**item.model_dump()) for item in request.items]


@app.post("/api/orders", status_code=201)
def create_order(
    request: OrderCreateRequest,
    actor: Actor = Depends(current_actor),
    shop: Shop = Depends(get_shop),
):
    """Place an order for admin review."""
    order = shop.customers.create_order(
        actor,
        _lines(request),
        request.shipping_address.to_address() if request.shipping_address else None,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        notes=request.notes,
    )
    return {"orderId": order.id, "orderNumber": order.order_number}


@app.post("/api/checkout", status_code=201)
def checkout(
    request: OrderCreateRequest,
    actor: Actor = Depends(current_actor),
    shop: Shop = Depends(get_shop),
):
    """Place an order and authorize (but don't capture) the card."""
    order, client_secret = shop.customers.checkout(
        actor,
        _lines(request),
        request.shipping_address.to_address() if request.shipping_address else None,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        notes=request.notes,
    )
    return {"orderId": order.id, "orderNumber": order.order_number, "clientSecret": client_secret}


@app.post("/api/orders/custom", status_code=201)
def create_custom_order(
    request: CustomOrderRequest,
    actor: Actor = Depends(current_actor),
    shop: Shop = Depends(get_shop),
):
    """Submit a custom jewelry request."""
    order = shop.customers.create_custom_order(
        actor,
        category=request.category,
        title=request.title,
        sizes=request.sizes,
        shipping_address=request.shipping_address.to_address() if request.shipping_address else None,
        description=request.description,
        colors=request.colors,
        budget=request.budget,
        reference_images=request.reference_images,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
    )
    return {"orderId": order.id, "orderNumber": order.order_number}


@app.get("/api/orders")
def list_my_orders(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)):
    """List the caller's orders, newest first."""
    orders = shop.customers.list_own(actor)
    return {"orders": [customer_view(o) for o in orders], "count": len(orders)}


@app.get("/api/orders/by-number/{order_number}")
def get_my_order_by_number(
    order_number: str, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    return customer_view(shop.customers.get_by_number(actor, order_number))


@app.get("/api/orders/{order_id}/verify")
def verify_payment_token(
    order_id: str,
    authorization: Optional[str] = Header(default=None),
    shop: Shop = Depends(get_shop),
):
    """
    Confirm a payment-link token and return the redacted order.

    Unauthenticated: the bearer token itself is the capability.
    """
    order = shop.customers.verify(order_id, authorization)
    return {"valid": True, "order": redacted_view(order)}


@app.post("/api/orders/{order_id}/create-stripe-session")
def create_stripe_session(
    order_id: str, request: CheckoutSessionRequest, shop: Shop = Depends(get_shop)
):
    session = shop.customers.create_checkout_session(order_id, request.token)
    return {"sessionId": session.id, "url": session.url}


@app.post("/api/payment/verify-success")
def verify_payment_success(request: VerifySuccessRequest, shop: Shop = Depends(get_shop)):
    order = shop.customers.confirm_payment(request.order_id, request.session_id)
    return {"success": True, "order": redacted_view(order)}


@app.post("/api/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    shop: Shop = Depends(get_shop),
):
    payload = await request.body()
    return shop.customers.handle_webhook(payload, stripe_signature)


# --- Cart Endpoints ---


@app.get("/api/cart")
def get_cart(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)):
    cart = shop.carts.get_cart(actor.user_id)
    return {"items": [i.to_dict() for i in cart.items], "updatedAt": cart.updated_at}


@app.post("/api/cart")
def replace_cart(
    request: CartReplaceRequest, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    """Overwrite the server cart with the client's items."""
    cart = shop.carts.replace(actor.user_id, [i.to_item() for i in request.items])
    return cart_response(cart)


@app.post("/api/cart/add")
def add_to_cart(
    request: CartAddRequest, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    custom = None
    if request.product_id.startswith("custom"):
        custom = request.model_dump(by_alias=True, exclude={"product_id", "unit_id", "quantity"})
    cart = shop.carts.add_item(
        actor.user_id,
        request.product_id,
        quantity=request.quantity,
        unit_id=request.unit_id,
        custom=custom,
    )
    return cart_response(cart)


@app.post("/api/cart/update")
def update_cart_item(
    request: CartUpdateRequest, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    cart = shop.carts.update_item(actor.user_id, request.cart_item_id, request.quantity)
    return cart_response(cart)


@app.post("/api/cart/remove")
def remove_cart_item(
    request: CartRemoveRequest, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    cart = shop.carts.remove_item(actor.user_id, request.cart_item_id)
    return cart_response(cart)


@app.post("/api/cart/clear")
def clear_cart(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)):
    return cart_response(shop.carts.clear(actor.user_id))


@app.post("/api/cart/sync")
def sync_cart(
    request: CartSyncRequest, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    """Reconcile the browser cart with the server cart under an explicit policy."""
    result = shop.carts.reconcile(
        actor.user_id, [i.to_item() for i in request.items], request.policy
    )
    return {**cart_response(result.cart), "adjusted": result.adjusted, "policy": request.policy.value}


# --- Catalog Endpoints ---


@app.get("/api/products")
def list_products(
    category: Optional[str] = Query(default=None),
    featured: Optional[bool] = Query(default=None),
    search: Optional[str] = Query(default=None),
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
    sort_by: str = Query(default="newest", alias="sortBy"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    shop: Shop = Depends(get_shop),
):
    products, pagination = shop.catalog.list_products(
        category=category,
        featured=featured,
        search=search,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        page=page,
        limit=limit,
    )
    return {"products": [product_view(p) for p in products], "pagination": pagination}


@app.get("/api/products/{product_id}")
def get_product(product_id: str, shop: Shop = Depends(get_shop)):
    product = shop.catalog.get_product(product_id)
    if not product.is_active:
        raise ProductNotFoundError(product_id)
    return product_view(product)


@app.get("/api/products/{product_id}/reviews")
def list_reviews(product_id: str, shop: Shop = Depends(get_shop)):
    reviews = shop.catalog.list_reviews(product_id)
    return {"reviews": [r.to_dict() for r in reviews], "count": len(reviews)}


@app.post("/api/products/{product_id}/reviews", status_code=201)
def create_review(
    product_id: str,
    request: ReviewCreateRequest,
    actor: Actor = Depends(current_actor),
    shop: Shop = Depends(get_shop),
):
    review = shop.catalog.add_review(
        product_id,
        actor.user_id,
        request.rating,
        user_name=actor.name or "",
        title=request.title,
        comment=request.comment,
    )
    return review.to_dict()


@app.get("/api/categories")
def list_categories(shop: Shop = Depends(get_shop)):
    return {"categories": [c.to_dict() for c in shop.catalog.list_categories()]}


# --- Shipping, Contact, and Profile Endpoints ---


@app.post("/api/shipping/validate-address")
def validate_address(request: AddressSchema, shop: Shop = Depends(get_shop)):
    result = shop.shipping.validate_address(request.to_address())
    return {
        "isValid": result.is_valid,
        "address": result.address.to_dict(),
        "isResidential": result.is_residential,
        "messages": result.messages,
    }


@app.post("/api/shipping/rates")
def quote_shipping(
    request: ShippingQuoteRequest,
    actor: Actor = Depends(current_actor),
    shop: Shop = Depends(get_shop),
):
    """
    Quote carrier rates for the caller's cart before checkout.

    Without an explicit package the parcel is estimated from the cart lines.
    Rates reflect the free-shipping threshold, cheapest first.
    """
    cart = shop.carts.get_cart(actor.user_id)
    if not cart.items:
        raise ValidationError("Cart is empty", field="items")
    if request.units not in ("imperial", "metric"):
        raise ValidationError("Units must be 'imperial' or 'metric'", field="units")

    if request.package is not None:
        package = validate_package(**request.package.model_dump())
        package = PackageDetails(
            *convert_parcel(
                package.weight, package.length, package.width, package.height, request.units
            )
        )
    else:
        package = estimate_parcel(cart.items)

    subtotal = cart_subtotal(cart.items)
    threshold = shop.settings.free_shipping_threshold
    rates = shop.shipping.get_rates(
        shop.settings.origin_address, request.address.to_address(), package
    )
    quotes = quote_rates(rates, subtotal, threshold)
    return {
        "rates": [q.to_dict() for q in quotes],
        "package": package.to_dict(),
        "cartSubtotal": subtotal,
        "freeShippingThreshold": threshold,
        "qualifiesForFreeShipping": threshold > 0 and subtotal >= threshold,
    }


@app.post("/api/contact")
def contact(request: ContactRequest, shop: Shop = Depends(get_shop)):
    """Forward a contact-form message to the shop and acknowledge the sender."""
    if not request.name.strip() or not request.email.strip() or not request.message.strip():
        raise ValidationError("Name, email, and message are required")
    if "@" not in request.email:
        raise ValidationError("Invalid email address", field="email")

    shop.mailer.send(
        contact_business_email(
            shop.settings.business_email,
            request.name,
            request.email,
            request.subject,
            request.message,
        )
    )
    auto_reply_sent = True
    try:
        shop.mailer.send(contact_auto_reply(request.name, request.email))
    except ShopError as e:
        logger.warning("Contact auto-reply to %s failed: %s", request.email, e)
        auto_reply_sent = False
    return {"success": True, "autoReplySent": auto_reply_sent}


@app.get("/api/me")
def get_me(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)):
    user = shop.accounts.ensure_user(actor)
    return {"isAuthenticated": True, "userId": actor.user_id, "role": actor.role.value, "profile": user.to_dict()}


@app.get("/api/user/shipping-address")
def get_shipping_address(actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)):
    user = shop.accounts.get_user(actor.user_id)
    address = user.shipping_address.to_dict() if user and user.shipping_address else None
    return {"shippingAddress": address}


@app.post("/api/user/shipping-address")
def save_shipping_address(
    request: AddressSchema, actor: Actor = Depends(current_actor), shop: Shop = Depends(get_shop)
):
    user = shop.accounts.save_shipping_address(actor, request.to_address())
    return {"success": True, "shippingAddress": user.shipping_address.to_dict()}


# --- Admin Order Endpoints ---


@app.get("/api/admin/orders")
def admin_list_orders(
    status: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(staff_actor),
    shop: Shop = Depends(get_shop),
):
    orders, pagination = shop.admin.list_orders(status, search, page, limit)
    return {"orders": [o.to_dict() for o in orders], "pagination": pagination}


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(order_id: str, actor: Actor = Depends(staff_actor), shop: Shop = Depends(get_shop)):
    return shop.admin.get_order(order_id).to_dict()


@app.patch("/api/admin/orders/{order_id}")
def admin_update_order(
    order_id: str,
    request: OrderUpdateRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    """Edit notes, address, or phone; status and pricing have dedicated actions."""
    order = shop.admin.update_details(
        order_id,
        actor,
        admin_notes=request.admin_notes,
        shipping_address=request.shipping_address.to_address() if request.shipping_address else None,
        customer_phone=request.customer_phone,
    )
    return action_response("Order updated", order)


@app.post("/api/admin/orders/{order_id}/accept")
def admin_accept_order(
    order_id: str,
    request: AcceptRequest = AcceptRequest(),
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order = shop.admin.accept(order_id, actor, request.admin_notes)
    return action_response(f"Order {order.order_number} accepted", order)


@app.post("/api/admin/orders/{order_id}/reject")
def admin_reject_order(
    order_id: str,
    request: RejectRequest = RejectRequest(),
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order = shop.admin.reject(order_id, actor, request.reason)
    return action_response(f"Order {order.order_number} rejected", order)


@app.post("/api/admin/orders/{order_id}/approve")
def admin_approve_order(
    order_id: str, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    order = shop.admin.approve(order_id, actor)
    if order.status.value == "processing":
        message = f"Payment captured for order {order.order_number}"
    else:
        message = f"Order {order.order_number} approved for payment"
    return action_response(message, order)


@app.post("/api/admin/orders/{order_id}/generate-payment-link")
def admin_generate_payment_link(
    order_id: str,
    request: PaymentLinkRequest = PaymentLinkRequest(),
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    result = shop.admin.generate_payment_link(order_id, actor, send_email=bool(request.send_email))
    return action_response(
        "Payment link regenerated" if result["isRegeneration"] else "Payment link generated",
        result["order"],
        paymentLink=result["paymentLink"],
        expiresAt=result["expiresAt"],
        isRegeneration=result["isRegeneration"],
        emailSent=result["emailSent"],
    )


@app.post("/api/admin/orders/{order_id}/create-payment-link")
def admin_create_payment_link(
    order_id: str,
    request: PaymentLinkRequest = PaymentLinkRequest(),
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    send_email = True if request.send_email is None else request.send_email
    result = shop.admin.create_payment_link(order_id, actor, send_email=send_email)
    return action_response(
        "Payment link created",
        result["order"],
        paymentLink=result["paymentLink"],
        expiresAt=result["expiresAt"],
        emailSent=result["emailSent"],
    )


@app.post("/api/admin/orders/{order_id}/edit-custom-item")
def admin_edit_custom_item(
    order_id: str,
    request: EditCustomItemRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    item = request.updated_item
    order = shop.admin.edit_custom_item(
        order_id,
        actor,
        request.item_index,
        name=item.name,
        price=item.price,
        quantity=item.quantity,
        custom_details=item.custom_details,
    )
    return action_response("Item updated", order)


@app.post("/api/admin/orders/{order_id}/edit-tax")
def admin_edit_tax(
    order_id: str,
    request: EditTaxRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    result = shop.admin.edit_tax(order_id, actor, request.new_tax_amount)
    return action_response(
        "Tax updated", result["order"], oldTotal=result["oldTotal"], newTotal=result["newTotal"]
    )


@app.post("/api/admin/orders/{order_id}/update-shipping-details")
def admin_update_shipping_details(
    order_id: str,
    request: UpdateShippingDetailsRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    result = shop.admin.update_shipping_details(
        order_id,
        actor,
        package=request.package_details.model_dump() if request.package_details else None,
        selected_rate=request.selected_rate.to_rate() if request.selected_rate else None,
        units=request.units,
    )
    rates = result["rates"]
    return action_response(
        "Shipping details updated",
        result["order"],
        rates=[r.to_dict() for r in rates] if rates is not None else None,
    )


@app.post("/api/admin/orders/{order_id}/shipping")
def admin_shipping_rates(
    order_id: str,
    request: ShippingRatesRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    """Rate-shop the order's parcel; rates come back cheapest first."""
    order, rates = shop.admin.shop_rates(
        order_id, actor, request.weight, request.length, request.width, request.height, request.units
    )
    return {
        "success": True,
        "rates": [r.to_dict() for r in rates],
        "packageDetails": order.package.to_dict() if order.package else None,
    }


@app.post("/api/admin/orders/{order_id}/shipping/select-rate")
def admin_select_rate(
    order_id: str,
    request: SelectRateRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order = shop.admin.select_rate(order_id, actor, request.rate.to_rate(), request.purchase_label)
    return action_response(
        "Shipping rate selected",
        order,
        labelPurchased=bool(order.shipment.label_url),
        freeShippingApplied=order.shipment.free_shipping_applied,
    )


@app.post("/api/admin/orders/{order_id}/mark-shipped")
def admin_mark_shipped(
    order_id: str,
    request: MarkShippedRequest = MarkShippedRequest(),
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order = shop.admin.mark_shipped(order_id, actor, request.tracking_number)
    return action_response(f"Order {order.order_number} marked as shipped", order)


@app.post("/api/admin/orders/{order_id}/mark-delivered")
def admin_mark_delivered(
    order_id: str, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    order = shop.admin.mark_delivered(order_id, actor)
    return action_response(f"Order {order.order_number} marked as delivered", order)


@app.post("/api/admin/orders/{order_id}/cancel")
def admin_cancel_order(
    order_id: str,
    request: CancelRequest = CancelRequest(),
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order = shop.admin.cancel(order_id, actor, request.reason)
    return action_response(f"Order {order.order_number} cancelled", order)


@app.post("/api/admin/orders/{order_id}/remove")
def admin_remove_order(
    order_id: str,
    request: RemoveRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order = shop.admin.remove(order_id, actor, request.confirmation)
    return {"success": True, "message": f"Order {order.order_number} removed", "orderId": order.id}


@app.post("/api/admin/orders/{order_id}/send-email")
def admin_send_email(
    order_id: str,
    request: SendEmailRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    order, sent = shop.admin.send_custom_email(order_id, actor, request.subject or "", request.content or "")
    return action_response("Email sent" if sent else "Email logged but delivery failed", order, emailSent=sent)


# --- Admin Catalog Endpoints ---


@app.post("/api/admin/products", status_code=201)
def admin_create_product(
    request: ProductCreateRequest, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    product = Product.create(
        name=request.name,
        price=request.price,
        category=request.category,
        description=request.description,
        stock=request.stock,
        images=request.images,
        units=[_unit(u) for u in request.units],
        sale=_sale(request.sale_config),
        featured=request.featured,
        is_active=request.is_active,
        weight=request.weight,
    )
    return product_view(shop.catalog.add_product(product))


@app.put("/api/admin/products/{product_id}")
def admin_update_product(
    product_id: str,
    request: ProductUpdateRequest,
    actor: Actor = Depends(admin_actor),
    shop: Shop = Depends(get_shop),
):
    product = shop.catalog.get_product(product_id)
    update_data = request.model_dump(exclude_unset=True)

    for field_name in ("name", "price", "category", "description", "stock", "images", "featured", "is_active", "weight"):
        if field_name in update_data:
            setattr(product, field_name, update_data[field_name])
    if "units" in update_data:
        product.units = [_unit(u) for u in request.units or []]
    if "sale_config" in update_data:
        product.sale = _sale(request.sale_config)

    return product_view(shop.catalog.update_product(product))


@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(
    product_id: str, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    shop.catalog.delete_product(product_id)
    return {"success": True, "productId": product_id}


@app.post("/api/admin/products/bulk-update")
def admin_bulk_update(
    request: BulkUpdateRequest, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    updated = shop.catalog.bulk_update_prices(request.product_ids, request.set_price)
    return {"success": True, "updatedCount": updated}


@app.post("/api/admin/products/bulk-sale")
def admin_bulk_sale(
    request: BulkSaleRequest, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    updated = shop.catalog.bulk_sale(
        request.product_ids, request.action, request.sale_type, request.sale_value
    )
    return {"success": True, "updatedCount": updated}


@app.post("/api/admin/categories", status_code=201)
def admin_create_category(
    request: CategoryCreateRequest, actor: Actor = Depends(admin_actor), shop: Shop = Depends(get_shop)
):
    return shop.catalog.add_category(request.name, request.description).to_dict()


# --- Role Assignment Endpoints ---


@app.get("/api/admin/roles")
def admin_list_roles(actor: Actor = Depends(staff_actor), shop: Shop = Depends(get_shop)):
    return {"assignments": [a.to_dict() for a in shop.accounts.list_assignments()]}


@app.post("/api/admin/roles", status_code=201)
def admin_assign_role(
    request: RoleAssignRequest, actor: Actor = Depends(staff_actor), shop: Shop = Depends(get_shop)
):
    assignment = shop.accounts.assign_role(request.email, request.role, actor.email or actor.user_id)
    return assignment.to_dict()
