"""Cart API routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response

from ..core.config import settings
from ..database.cache import CacheClient, InMemoryCache, RedisCache
from ..database.carts import CartStore
from ..models.cart import (
    AddItemRequest,
    CartResponse,
    CouponRequest,
    ErrorResponse,
    UpdateItemRequest,
)
from ..security.auth import CallerIdentity, get_current_identity
from ..services.cart_service import CartService
from ..services.catalog_client import HttpCatalogClient
from ..services.inventory_client import HttpInventoryClient, InventoryClient, NoOpInventoryClient
from ..services.promotion_client import HttpPromotionClient, NoOpPromotionClient, PromotionClient

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Cart"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)

# Initialized on first use (replaced through dependency_overrides in tests)
cart_service: Optional[CartService] = None


def build_cache() -> CacheClient:
    """Create the configured cache backend"""
    if settings.uses_redis:
        logger.info(f"Using Redis cart cache at {settings.redis_url}")
        return RedisCache.from_url(settings.redis_url)
    logger.info("Using in-memory cart cache")
    return InMemoryCache()


def build_cart_service() -> CartService:
    """Wire the cart service from settings"""
    timeout = settings.upstream_timeout_seconds

    inventory: InventoryClient = (
        NoOpInventoryClient()
        if settings.use_stub_inventory
        else HttpInventoryClient(settings.inventory_service_url, timeout=timeout)
    )
    promotion: PromotionClient = (
        NoOpPromotionClient()
        if settings.use_stub_promotion
        else HttpPromotionClient(settings.promo_service_url, timeout=timeout)
    )

    return CartService(
        store=CartStore(build_cache(), default_ttl_seconds=settings.cart_ttl_seconds),
        catalog=HttpCatalogClient(settings.catalog_service_url, timeout=timeout),
        inventory=inventory,
        promotion=promotion,
    )


def get_cart_service() -> CartService:
    """Get or create cart service"""
    global cart_service
    if cart_service is None:
        cart_service = build_cart_service()
    return cart_service


@router.post("/item", response_model=CartResponse)
async def add_item(
    request: AddItemRequest,
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """
    Add an item to the cart.

    If the product/variant is already in the cart, its quantity is
    increased instead.
    """
    logger.info(f"Adding item to cart: productId={request.product_id}, quantity={request.quantity}")
    cart = await service.add_item(caller.user_id, caller.tenant_id, request, caller.token)
    return CartResponse(data=cart, message="Item added to cart successfully")


@router.put("/item/{item_id}", response_model=CartResponse)
async def update_item(
    item_id: str,
    request: UpdateItemRequest,
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """Update item quantity in cart"""
    logger.info(f"Updating cart item: itemId={item_id}, newQuantity={request.quantity}")
    cart = await service.update_item(
        caller.user_id, caller.tenant_id, item_id, request, caller.token
    )
    return CartResponse(data=cart, message="Cart item updated successfully")


@router.delete("/item/{item_id}", response_model=CartResponse)
async def remove_item(
    item_id: str,
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """Remove an item from the cart"""
    logger.info(f"Removing cart item: itemId={item_id}")
    cart = await service.remove_item(caller.user_id, caller.tenant_id, item_id, caller.token)
    return CartResponse(data=cart, message="Item removed from cart successfully")


@router.get("", response_model=CartResponse)
async def get_cart(
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """Get the caller's cart with refreshed product details"""
    cart = await service.get_cart(caller.user_id, caller.tenant_id, caller.token)
    return CartResponse(data=cart, message="Cart retrieved successfully")


@router.delete("", status_code=204)
async def clear_cart(
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """Clear all items from cart"""
    logger.info("Clearing cart for user")
    await service.clear_cart(caller.user_id, caller.tenant_id)
    return Response(status_code=204)


@router.post("/coupon", response_model=CartResponse)
async def apply_coupon(
    request: CouponRequest,
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """Apply a coupon code to the cart"""
    logger.info(f"Applying coupon: couponCode={request.coupon_code}")
    cart = await service.apply_coupon(caller.user_id, caller.tenant_id, request, caller.token)
    return CartResponse(data=cart, message="Coupon applied successfully")


@router.delete("/coupon", response_model=CartResponse)
async def remove_coupon(
    caller: CallerIdentity = Depends(get_current_identity),
    service: CartService = Depends(get_cart_service),
):
    """Remove the applied coupon"""
    logger.info("Removing coupon from cart")
    cart = await service.remove_coupon(caller.user_id, caller.tenant_id, caller.token)
    return CartResponse(data=cart, message="Coupon removed successfully")
