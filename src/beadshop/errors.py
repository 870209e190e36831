"""Custom exceptions for beadshop."""


class ShopError(Exception):
    """Base exception for all beadshop errors."""

    pass


class AuthenticationError(ShopError):
    """Raised when a request carries no valid session."""

    def __init__(self, reason: str = "Unauthorized"):
        self.reason = reason
        super().__init__(reason)


class PermissionDeniedError(ShopError):
    """Raised when the authenticated actor lacks the required role."""

    def __init__(self, role: str, required: tuple[str, ...]):
        self.role = role
        self.required = required
        if required == ("admin",):
            msg = "Admin access required"
        else:
            msg = f"Role '{role}' is not allowed. Required: {', '.join(required)}"
        super().__init__(msg)


class InvalidPaymentTokenError(ShopError):
    """Raised when a payment-link bearer token is missing, wrong, or expired."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class OrderNotFoundError(ShopError):
    """Raised when an order ID or number doesn't exist."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Order not found: {ref}")


class ProductNotFoundError(ShopError):
    """Raised when a product (or one of its units) doesn't exist."""

    def __init__(self, product_id: str, unit_id: str | None = None):
        self.product_id = product_id
        self.unit_id = unit_id
        msg = f"Product not found: {product_id}"
        if unit_id:
            msg = f"Product unit not found: {product_id} ({unit_id})"
        super().__init__(msg)


class CartItemNotFoundError(ShopError):
    """Raised when a cart item key isn't present in the cart."""

    def __init__(self, cart_item_id: str):
        self.cart_item_id = cart_item_id
        super().__init__("Item not found in cart")


class InvalidTransitionError(ShopError):
    """Raised when an action is attempted from a status that doesn't allow it."""

    def __init__(self, action: str, status: str, message: str | None = None):
        self.action = action
        self.status = status
        msg = message or f"Cannot {action} order. Current status: {status}"
        super().__init__(msg)


class ValidationError(ShopError):
    """Raised when request data fails a domain rule."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class ConfirmationMismatchError(ShopError):
    """Raised when a destructive action isn't confirmed with the exact phrase."""

    def __init__(self, expected: str):
        self.expected = expected
        super().__init__(f'Invalid confirmation. Type "{expected}" to confirm.')


class InsufficientStockError(ShopError):
    """Raised when a product has fewer units in stock than requested."""

    def __init__(self, name: str, available: int, requested: int):
        self.name = name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {name}. Available: {available}, requested: {requested}"
        )


class PaymentCaptureError(ShopError):
    """Raised after a failed capture has moved the order to rejected."""

    def __init__(self, order_number: str, reason: str):
        self.order_number = order_number
        self.reason = reason
        super().__init__(reason)


class StaleOrderError(ShopError):
    """Raised when saving an order whose stored version has moved on."""

    def __init__(self, order_id: str, expected: int, found: int):
        self.order_id = order_id
        self.expected = expected
        self.found = found
        super().__init__(
            f"Order {order_id} was modified concurrently "
            f"(expected version {expected}, found {found}). Reload and retry."
        )


class DuplicateReviewError(ShopError):
    """Raised when a user reviews the same product twice."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("You have already reviewed this product")


class UpstreamServiceError(ShopError):
    """Raised when a payment or shipping provider call fails."""

    def __init__(self, service: str, message: str, details: str | None = None):
        self.service = service
        self.details = details
        super().__init__(f"{service}: {message}")
