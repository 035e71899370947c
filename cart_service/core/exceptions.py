"""Cart service error taxonomy"""

from typing import Optional


class CartServiceError(Exception):
    """Base exception for cart service errors"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


# ==================== Not found ====================


class NotFoundError(CartServiceError):
    """Requested resource does not exist"""

    status_code = 404
    code = "NOT_FOUND"


class CartNotFoundError(NotFoundError):
    """No cart stored for the tenant/user pair"""

    code = "CART_NOT_FOUND"

    def __init__(self, message: str = "Cart not found"):
        super().__init__(message)


class ItemNotFoundError(NotFoundError):
    """No cart item with the given item id"""

    code = "CART_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        super().__init__(f"Cart item not found: {item_id}")
        self.item_id = item_id


class ProductNotFoundError(NotFoundError):
    """Catalog has no product with the given id"""

    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


# ==================== Validation ====================


class ValidationError(CartServiceError):
    """Input validation errors"""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class CurrencyMismatchError(ValidationError):
    """Product currency differs from the cart currency"""

    code = "CURRENCY_MISMATCH"

    def __init__(self, cart_currency: str, product_currency: str):
        super().__init__(
            f"Cart currency is {cart_currency}, product is priced in {product_currency}",
            field="currency",
        )
        self.cart_currency = cart_currency
        self.product_currency = product_currency


# ==================== Unauthorized ====================


class AuthenticationError(CartServiceError):
    """Caller identity missing or invalid"""

    status_code = 401
    code = "UNAUTHORIZED"


class InvalidCouponError(CartServiceError):
    """Coupon rejected by the promotion service"""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, coupon_code: str, reason: Optional[str] = None):
        message = f"Invalid coupon: {coupon_code}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.coupon_code = coupon_code


# ==================== Concurrency ====================


class CartVersionConflictError(CartServiceError):
    """Stored cart version differs from the version the caller read"""

    status_code = 409
    code = "CART_VERSION_CONFLICT"

    def __init__(self, key: str, expected_version: int):
        super().__init__(f"Cart {key} changed since version {expected_version}")
        self.key = key
        self.expected_version = expected_version


class CartConcurrencyError(CartServiceError):
    """Cart kept changing underneath the caller"""

    status_code = 409
    code = "CART_CONFLICT"

    def __init__(self, attempts: int):
        super().__init__(f"Cart was modified concurrently; gave up after {attempts} attempts")
        self.attempts = attempts


# ==================== Infrastructure ====================


class UpstreamUnavailableError(CartServiceError):
    """Catalog, inventory or promotion call failed"""

    status_code = 503
    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} unavailable: {message}")
        self.service = service


class CacheUnavailableError(CartServiceError):
    """Cart cache could not be reached"""

    status_code = 503
    code = "CACHE_UNAVAILABLE"
