"""
Cart mutation engine

Pure transformations over Cart values. Every operation works on a copy and
returns a fully recalculated cart, so a failed operation leaves the caller's
cart untouched.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from ..core.exceptions import CurrencyMismatchError, ItemNotFoundError, ValidationError
from ..models.cart import ZERO, Cart, CartItem
from ..models.product import ProductInfo


def _now() -> datetime:
    return datetime.utcnow()


def _require_quantity(quantity: int, field: str = "quantity") -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be at least 1", field=field)


def create_empty(user_id: UUID, tenant_id: UUID, currency: str) -> Cart:
    """Create a new cart with no items and zero totals"""
    now = _now()
    return Cart(
        user_id=user_id,
        tenant_id=tenant_id,
        items=[],
        currency=currency,
        created_at=now,
        updated_at=now,
    )


def add_or_merge_item(
    cart: Cart,
    product_id: UUID,
    variant_id: Optional[UUID],
    product: ProductInfo,
    quantity: int,
    unit_price: Decimal,
) -> Cart:
    """
    Add a product to the cart.

    If the cart already holds the same product/variant pair, its quantity
    grows by quantity and the unit price recorded on the first add is kept.
    Otherwise a new item with a fresh item_id is appended.
    """
    _require_quantity(quantity)
    if product.currency and product.currency != cart.currency:
        raise CurrencyMismatchError(cart.currency, product.currency)

    updated = cart.model_copy(deep=True)

    existing = next(
        (item for item in updated.items if item.matches(product_id, variant_id)),
        None,
    )

    if existing:
        existing.quantity += quantity
        existing.total_price = existing.unit_price * existing.quantity
    else:
        updated.items.append(
            CartItem(
                item_id=str(uuid.uuid4()),
                product_id=product_id,
                sku=product.sku,
                name=product.name,
                image_url=product.primary_image,
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
                variant_id=variant_id,
                currency=product.currency,
            )
        )

    return recalculate_totals(updated)


def update_item_quantity(cart: Cart, item_id: str, new_quantity: int) -> Cart:
    """Replace an item's quantity"""
    _require_quantity(new_quantity)
    if cart.find_item(item_id) is None:
        raise ItemNotFoundError(item_id)

    updated = cart.model_copy(deep=True)
    item = updated.find_item(item_id)
    item.quantity = new_quantity
    item.total_price = item.unit_price * new_quantity
    return recalculate_totals(updated)


def remove_item(cart: Cart, item_id: str) -> Cart:
    """
    Remove an item.

    The result may have no items; deleting the stored record in that case
    is up to the caller.
    """
    if cart.find_item(item_id) is None:
        raise ItemNotFoundError(item_id)

    updated = cart.model_copy(deep=True)
    updated.items = [item for item in updated.items if item.item_id != item_id]
    return recalculate_totals(updated)


def apply_coupon(cart: Cart, code: str) -> Cart:
    """Set the cart's coupon code, replacing any previous one"""
    code = (code or "").strip()
    if not code:
        raise ValidationError("Coupon code is required", field="coupon_code")

    updated = cart.model_copy(deep=True)
    updated.coupon_code = code
    return recalculate_totals(updated)


def remove_coupon(cart: Cart) -> Cart:
    """Clear the cart's coupon code"""
    updated = cart.model_copy(deep=True)
    updated.coupon_code = None
    return recalculate_totals(updated)


def refresh_item(
    cart: Cart,
    item_id: str,
    product: ProductInfo,
    unit_price: Decimal,
) -> Cart:
    """Refresh an item's catalog details and price"""
    if cart.find_item(item_id) is None:
        raise ItemNotFoundError(item_id)

    updated = cart.model_copy(deep=True)
    item = updated.find_item(item_id)
    item.name = product.name
    if product.primary_image:
        item.image_url = product.primary_image
    if product.sku:
        item.sku = product.sku
    if unit_price != item.unit_price:
        item.unit_price = unit_price
        item.total_price = unit_price * item.quantity
    return recalculate_totals(updated)


def recalculate_totals(
    cart: Cart,
    discount_amount: Decimal = ZERO,
    tax_amount: Decimal = ZERO,
    shipping_cost: Decimal = ZERO,
) -> Cart:
    """
    Recompute every derived total from the full item list.

    total = subtotal - discount + tax + shipping. The total is not clamped
    at zero; a discount larger than the subtotal yields a negative total.
    """
    for name, amount in (
        ("discount_amount", discount_amount),
        ("tax_amount", tax_amount),
        ("shipping_cost", shipping_cost),
    ):
        if amount < 0:
            raise ValidationError(f"{name} cannot be negative", field=name)

    updated = cart.model_copy(deep=True)
    for item in updated.items:
        item.total_price = item.unit_price * item.quantity

    subtotal = sum((item.total_price for item in updated.items), ZERO)

    updated.subtotal = subtotal
    updated.discount_amount = discount_amount
    updated.tax_amount = tax_amount
    updated.shipping_cost = shipping_cost
    updated.total = subtotal - discount_amount + tax_amount + shipping_cost
    updated.updated_at = _now()
    return updated
