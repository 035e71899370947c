"""Cart models for the cart service"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

ZERO = Decimal("0")


class CartItem(BaseModel):
    """Line item in a shopping cart"""
    item_id: str
    product_id: UUID
    sku: Optional[str] = None
    name: Optional[str] = None
    # Older cart entries stored the camelCase name
    image_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl"),
    )
    quantity: int = Field(ge=1)
    unit_price: Decimal
    total_price: Decimal
    variant_id: Optional[UUID] = None
    currency: Optional[str] = None

    def matches(self, product_id: UUID, variant_id: Optional[UUID]) -> bool:
        """Check if this item holds the given product/variant pair"""
        return self.product_id == product_id and self.variant_id == variant_id


class Cart(BaseModel):
    """
    Shopping cart for one user of one tenant.

    Monetary totals are derived from the items and are only ever written by
    the recalculation step of the cart engine.
    """
    user_id: UUID
    tenant_id: UUID
    items: list[CartItem] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    total: Decimal = ZERO
    currency: str = "USD"
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=0, ge=0)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_item(self, item_id: str) -> Optional[CartItem]:
        """Get an item by its item ID"""
        return next((item for item in self.items if item.item_id == item_id), None)


class AddItemRequest(BaseModel):
    """Request to add an item to the cart"""
    product_id: UUID
    quantity: int = Field(ge=1)
    variant_id: Optional[UUID] = None


class UpdateItemRequest(BaseModel):
    """Request to update cart item quantity"""
    quantity: int = Field(ge=1)


class CouponRequest(BaseModel):
    """Request to apply a coupon"""
    coupon_code: str = Field(min_length=1)


class CartItemView(BaseModel):
    """Cart item as returned to callers"""
    item_id: str
    product_id: UUID
    sku: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    variant_id: Optional[UUID] = None
    currency: Optional[str] = None


class CartView(BaseModel):
    """Cart projection returned by every cart endpoint"""
    user_id: UUID
    tenant_id: UUID
    items: list[CartItemView] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    total: Decimal = ZERO
    currency: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_cart(cls, cart: Cart) -> "CartView":
        return cls(
            user_id=cart.user_id,
            tenant_id=cart.tenant_id,
            items=[CartItemView(**item.model_dump()) for item in cart.items],
            coupon_code=cart.coupon_code,
            subtotal=cart.subtotal,
            discount_amount=cart.discount_amount,
            tax_amount=cart.tax_amount,
            shipping_cost=cart.shipping_cost,
            total=cart.total,
            currency=cart.currency,
            created_at=cart.created_at,
            updated_at=cart.updated_at,
        )

    @classmethod
    def empty(cls, user_id: UUID, tenant_id: UUID, currency: str) -> "CartView":
        """Projection for a user who has no stored cart"""
        now = datetime.utcnow()
        return cls(
            user_id=user_id,
            tenant_id=tenant_id,
            currency=currency,
            created_at=now,
            updated_at=now,
        )


class CartResponse(BaseModel):
    """Cart API response"""
    success: bool = True
    message: Optional[str] = None
    data: CartView


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error payload for every failed cart request"""
    success: bool = False
    error: ErrorDetail
