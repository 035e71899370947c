"""
Cart Service

Request-level cart operations. Each operation reads the cart from the store,
consults the catalog, inventory and promotion services, hands the cart to the
mutation engine and writes the result back.

Writes are conditional on the version that was read; when another request
saved the cart in between, the operation re-reads and re-applies its change
a bounded number of times.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Callable, Optional
from uuid import UUID

from ..core.config import settings
from ..core.exceptions import (
    CartConcurrencyError,
    CartNotFoundError,
    CartServiceError,
    CartVersionConflictError,
    InvalidCouponError,
    ItemNotFoundError,
    UpstreamUnavailableError,
)
from ..database.carts import CartStore
from ..models.cart import (
    ZERO,
    AddItemRequest,
    Cart,
    CartItem,
    CartView,
    CouponRequest,
    UpdateItemRequest,
)
from ..models.product import ProductInfo
from . import cart_engine as engine
from .catalog_client import CatalogClient
from .inventory_client import InventoryClient
from .promotion_client import CouponValidation, PromotionClient

logger = logging.getLogger(__name__)

Mutation = Callable[[Optional[Cart]], Awaitable[Cart]]


class CartService:
    """Orchestrates cart storage, upstream services and the cart engine"""

    def __init__(
        self,
        store: CartStore,
        catalog: CatalogClient,
        inventory: InventoryClient,
        promotion: PromotionClient,
        default_currency: Optional[str] = None,
        max_attempts: Optional[int] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.inventory = inventory
        self.promotion = promotion
        self.default_currency = default_currency or settings.default_currency
        self.max_attempts = max_attempts or settings.cart_save_max_attempts

    async def close(self) -> None:
        """Close upstream clients and the cache"""
        await self.catalog.close()
        await self.inventory.close()
        await self.promotion.close()
        await self.store.cache.close()

    # ==================== Operations ====================

    async def add_item(
        self,
        user_id: UUID,
        tenant_id: UUID,
        request: AddItemRequest,
        token: Optional[str] = None,
    ) -> CartView:
        """Add a product to the cart, creating the cart on first use"""
        logger.debug(
            f"Adding item to cart: userId={user_id}, productId={request.product_id}, "
            f"quantity={request.quantity}"
        )

        # Catalog failures are fatal here
        product = await self.catalog.get_product(request.product_id, tenant_id, token)

        await self._check_inventory(product.sku, tenant_id, request.quantity, token)

        unit_price = await self._price_with_promotions(
            product, request.quantity, None, tenant_id, token
        )

        async def mutate(cart: Optional[Cart]) -> Cart:
            if cart is None:
                cart = engine.create_empty(user_id, tenant_id, product.currency)
            return engine.add_or_merge_item(
                cart,
                request.product_id,
                request.variant_id,
                product,
                request.quantity,
                unit_price,
            )

        cart = await self._mutate(user_id, tenant_id, mutate, token)
        return CartView.from_cart(cart)

    async def update_item(
        self,
        user_id: UUID,
        tenant_id: UUID,
        item_id: str,
        request: UpdateItemRequest,
        token: Optional[str] = None,
    ) -> CartView:
        """Set the quantity of a cart item"""
        logger.debug(
            f"Updating cart item: userId={user_id}, itemId={item_id}, newQuantity={request.quantity}"
        )

        async def mutate(cart: Optional[Cart]) -> Cart:
            item = cart.find_item(item_id)
            if item is None:
                raise ItemNotFoundError(item_id)

            # Only an increase needs stock
            if request.quantity > item.quantity:
                await self._check_inventory(
                    item.sku, tenant_id, request.quantity - item.quantity, token
                )
            return engine.update_item_quantity(cart, item_id, request.quantity)

        cart = await self._mutate(user_id, tenant_id, mutate, token, require_existing=True)
        return CartView.from_cart(cart)

    async def remove_item(
        self,
        user_id: UUID,
        tenant_id: UUID,
        item_id: str,
        token: Optional[str] = None,
    ) -> CartView:
        """Remove an item; removing the last item deletes the cart"""
        logger.debug(f"Removing cart item: userId={user_id}, itemId={item_id}")

        async def mutate(cart: Optional[Cart]) -> Cart:
            return engine.remove_item(cart, item_id)

        cart = await self._mutate(user_id, tenant_id, mutate, token, require_existing=True)
        if cart.is_empty:
            return CartView.empty(user_id, tenant_id, cart.currency)
        return CartView.from_cart(cart)

    async def get_cart(
        self,
        user_id: UUID,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> CartView:
        """
        Get the cart with item details refreshed from the catalog.

        A user without a stored cart gets an empty cart. Items whose catalog
        lookup fails keep their last known details.
        """
        logger.debug(f"Getting cart: userId={user_id}, tenantId={tenant_id}")

        cart = await self.store.find(tenant_id, user_id)
        if cart is None:
            return CartView.empty(user_id, tenant_id, self.default_currency)
        if cart.is_empty:
            try:
                await self.store.delete(tenant_id, user_id, expected_version=cart.version)
            except CartVersionConflictError:
                # Items were added since the read; the newer cart stays
                logger.info(f"Cart changed while removing empty record, keeping it: userId={user_id}")
            return CartView.empty(user_id, tenant_id, cart.currency)

        enriched = await self._enrich_items(cart, tenant_id, token)
        enriched = await self._apply_promotions(enriched, tenant_id, token)

        try:
            enriched = await self.store.save(enriched, expected_version=cart.version)
        except CartVersionConflictError:
            # A concurrent write wins; the refreshed view is still returned
            logger.info(f"Cart changed while refreshing, not saving: userId={user_id}")

        return CartView.from_cart(enriched)

    async def clear_cart(self, user_id: UUID, tenant_id: UUID) -> None:
        """Delete the cart; no-op if there is none"""
        logger.debug(f"Clearing cart: userId={user_id}, tenantId={tenant_id}")
        await self.store.delete(tenant_id, user_id)

    async def apply_coupon(
        self,
        user_id: UUID,
        tenant_id: UUID,
        request: CouponRequest,
        token: Optional[str] = None,
    ) -> CartView:
        """Validate a coupon with the promotion service and attach it to the cart"""
        logger.debug(f"Applying coupon: userId={user_id}, couponCode={request.coupon_code}")

        async def mutate(cart: Optional[Cart]) -> Cart:
            updated = engine.apply_coupon(cart, request.coupon_code)
            validation = await self._validate_coupon(updated.coupon_code, tenant_id, cart, token)
            if not validation.valid:
                raise InvalidCouponError(updated.coupon_code, validation.reason)
            return updated

        cart = await self._mutate(user_id, tenant_id, mutate, token, require_existing=True)
        return CartView.from_cart(cart)

    async def remove_coupon(
        self,
        user_id: UUID,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> CartView:
        """Detach the coupon from the cart"""
        logger.debug(f"Removing coupon: userId={user_id}")

        async def mutate(cart: Optional[Cart]) -> Cart:
            return engine.remove_coupon(cart)

        cart = await self._mutate(user_id, tenant_id, mutate, token, require_existing=True)
        return CartView.from_cart(cart)

    # ==================== Helpers ====================

    async def _mutate(
        self,
        user_id: UUID,
        tenant_id: UUID,
        mutate: Mutation,
        token: Optional[str],
        require_existing: bool = False,
    ) -> Cart:
        """
        Read, transform and conditionally save a cart.

        A cart left without items is deleted instead of saved, under the same
        version check.

        Raises:
            CartNotFoundError: require_existing and no cart is stored
            CartConcurrencyError: every attempt lost a version race
        """
        for attempt in range(1, self.max_attempts + 1):
            current = await self.store.find(tenant_id, user_id)
            if current is None and require_existing:
                raise CartNotFoundError()

            updated = await mutate(current)
            expected_version = current.version if current else 0

            try:
                if updated.is_empty:
                    await self.store.delete(tenant_id, user_id, expected_version=expected_version)
                    return updated

                updated = await self._apply_promotions(updated, tenant_id, token)
                return await self.store.save(updated, expected_version=expected_version)
            except CartVersionConflictError:
                logger.warning(
                    f"Cart modified concurrently (attempt {attempt}/{self.max_attempts}): "
                    f"userId={user_id}, tenantId={tenant_id}"
                )

        raise CartConcurrencyError(self.max_attempts)

    async def _check_inventory(
        self,
        sku: Optional[str],
        tenant_id: UUID,
        quantity: int,
        token: Optional[str],
    ) -> None:
        """Advisory stock check; never fails the operation"""
        logger.debug(f"Checking inventory for SKU: {sku}, quantity: {quantity}")
        try:
            available = await self.inventory.check_availability(sku, tenant_id, quantity, token)
        except CartServiceError as e:
            logger.warning(f"Inventory check failed, proceeding anyway: {e}")
            return

        if not available:
            logger.warning(f"Inventory reports SKU {sku} short of {quantity} units, proceeding")

    async def _price_with_promotions(
        self,
        product: ProductInfo,
        quantity: int,
        coupon_code: Optional[str],
        tenant_id: UUID,
        token: Optional[str],
    ) -> Decimal:
        """Unit price after promotions, falling back to the base price"""
        try:
            return await self.promotion.calculate_price(
                product.product_id, product.price, quantity, coupon_code, tenant_id, token
            )
        except UpstreamUnavailableError as e:
            logger.warning(f"Promotion pricing failed for {product.product_id}, using base price: {e}")
            return product.price

    async def _apply_promotions(
        self,
        cart: Cart,
        tenant_id: UUID,
        token: Optional[str],
    ) -> Cart:
        """Recalculate totals with the promotion service's discount"""
        discount = ZERO
        if cart.coupon_code:
            try:
                discount = await self.promotion.calculate_discount(cart, tenant_id, token)
            except UpstreamUnavailableError as e:
                logger.warning(f"Discount calculation failed, applying none: {e}")
        return engine.recalculate_totals(cart, discount_amount=discount)

    async def _validate_coupon(
        self,
        coupon_code: str,
        tenant_id: UUID,
        cart: Cart,
        token: Optional[str],
    ) -> CouponValidation:
        try:
            return await self.promotion.validate_coupon(coupon_code, tenant_id, cart, token)
        except UpstreamUnavailableError as e:
            logger.warning(f"Coupon validation unavailable, accepting {coupon_code}: {e}")
            return CouponValidation(valid=True)

    async def _fetch_item_details(
        self,
        item: CartItem,
        coupon_code: Optional[str],
        tenant_id: UUID,
        token: Optional[str],
    ) -> Optional[tuple[ProductInfo, Decimal]]:
        try:
            product = await self.catalog.get_product(item.product_id, tenant_id, token)
        except CartServiceError as e:
            logger.warning(f"Failed to enrich cart item {item.item_id}: {e}")
            return None

        unit_price = await self._price_with_promotions(
            product, item.quantity, coupon_code, tenant_id, token
        )
        return product, unit_price

    async def _enrich_items(
        self,
        cart: Cart,
        tenant_id: UUID,
        token: Optional[str],
    ) -> Cart:
        """Refresh every item from the catalog concurrently, applied in item order"""
        details = await asyncio.gather(
            *(
                self._fetch_item_details(item, cart.coupon_code, tenant_id, token)
                for item in cart.items
            )
        )

        enriched = cart
        for item, detail in zip(cart.items, details):
            if detail is None:
                continue
            product, unit_price = detail
            enriched = engine.refresh_item(enriched, item.item_id, product, unit_price)
        return enriched
