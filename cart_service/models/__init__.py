# Cart Service Models

from .cart import (
    Cart,
    CartItem,
    AddItemRequest,
    UpdateItemRequest,
    CouponRequest,
    CartItemView,
    CartView,
    CartResponse,
    ErrorResponse,
)
from .product import ProductInfo

__all__ = [
    "Cart",
    "CartItem",
    "AddItemRequest",
    "UpdateItemRequest",
    "CouponRequest",
    "CartItemView",
    "CartView",
    "CartResponse",
    "ErrorResponse",
    "ProductInfo",
]
