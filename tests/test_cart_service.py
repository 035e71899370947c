"""Tests for cart service orchestration"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import httpx
import pytest

from cart_service.core.exceptions import (
    CartConcurrencyError,
    CartNotFoundError,
    CurrencyMismatchError,
    InvalidCouponError,
    ItemNotFoundError,
    ProductNotFoundError,
    UpstreamUnavailableError,
)
from cart_service.models.cart import AddItemRequest, Cart, CouponRequest, UpdateItemRequest
from cart_service.services.cart_service import CartService
from cart_service.services.catalog_client import CatalogClient, HttpCatalogClient
from cart_service.services.inventory_client import (
    HttpInventoryClient,
    InventoryClient,
    NoOpInventoryClient,
)
from cart_service.services.promotion_client import (
    CouponValidation,
    HttpPromotionClient,
    NoOpPromotionClient,
)

from .conftest import PRODUCT_EUR, PRODUCT_X, PRODUCT_Y, TENANT_A, TENANT_B, USER_A

UNKNOWN_PRODUCT = UUID("99999999-9999-4999-8999-999999999999")


class FailingInventory(InventoryClient):
    async def check_availability(self, sku, tenant_id, quantity, token=None):
        raise UpstreamUnavailableError("inventory-service", "connection refused")


class OutOfStockInventory(InventoryClient):
    async def check_availability(self, sku, tenant_id, quantity, token=None):
        return False


class RejectingPromotion(NoOpPromotionClient):
    async def validate_coupon(self, coupon_code, tenant_id, cart, token=None):
        return CouponValidation(valid=False, reason="expired")


class UnavailablePromotion(NoOpPromotionClient):
    async def validate_coupon(self, coupon_code, tenant_id, cart, token=None):
        raise UpstreamUnavailableError("promo-service", "timeout")

    async def calculate_price(self, product_id, base_price, quantity, coupon_code, tenant_id, token=None):
        raise UpstreamUnavailableError("promo-service", "timeout")

    async def calculate_discount(self, cart, tenant_id, token=None):
        raise UpstreamUnavailableError("promo-service", "timeout")


class FlatDiscountPromotion(NoOpPromotionClient):
    """Takes 2.00 off any cart carrying a coupon"""

    async def calculate_discount(self, cart, tenant_id, token=None):
        return Decimal("2.00") if cart.coupon_code else Decimal("0")


class FailingCatalog(CatalogClient):
    async def get_product(self, product_id, tenant_id, token=None):
        raise UpstreamUnavailableError("catalog-service", "timeout")


def build_service(store, catalog, inventory=None, promotion=None) -> CartService:
    return CartService(
        store=store,
        catalog=catalog,
        inventory=inventory or NoOpInventoryClient(),
        promotion=promotion or NoOpPromotionClient(),
        default_currency="USD",
        max_attempts=3,
    )


async def add(service, product_id, quantity=1, variant_id: Optional[UUID] = None, user_id=USER_A):
    return await service.add_item(
        user_id, TENANT_A, AddItemRequest(product_id=product_id, quantity=quantity, variant_id=variant_id)
    )


class TestAddItem:
    async def test_creates_cart_on_first_add(self, cart_service, store):
        view = await add(cart_service, PRODUCT_X, quantity=2)

        assert len(view.items) == 1
        assert view.items[0].unit_price == Decimal("10.00")
        assert view.items[0].total_price == Decimal("20.00")
        assert view.subtotal == Decimal("20.00")
        assert view.total == Decimal("20.00")
        assert view.currency == "USD"

        stored = await store.find(TENANT_A, USER_A)
        assert stored.version == 1
        assert stored.items[0].item_id == view.items[0].item_id

    async def test_repeat_add_merges(self, cart_service):
        await add(cart_service, PRODUCT_X, quantity=2)
        view = await add(cart_service, PRODUCT_X, quantity=1)

        assert len(view.items) == 1
        assert view.items[0].quantity == 3
        assert view.total == Decimal("30.00")

    async def test_unknown_product(self, cart_service, store):
        with pytest.raises(ProductNotFoundError):
            await add(cart_service, UNKNOWN_PRODUCT)

        assert await store.find(TENANT_A, USER_A) is None

    async def test_catalog_outage_fails_the_add(self, store):
        service = build_service(store, FailingCatalog())

        with pytest.raises(UpstreamUnavailableError):
            await add(service, PRODUCT_X)

    async def test_currency_mismatch(self, cart_service):
        await add(cart_service, PRODUCT_X)

        with pytest.raises(CurrencyMismatchError):
            await add(cart_service, PRODUCT_EUR)

    async def test_first_item_sets_cart_currency(self, cart_service):
        view = await add(cart_service, PRODUCT_EUR)
        assert view.currency == "EUR"

    @pytest.mark.parametrize("inventory", [FailingInventory(), OutOfStockInventory()])
    async def test_inventory_problems_do_not_block(self, store, catalog, inventory):
        service = build_service(store, catalog, inventory=inventory)

        view = await add(service, PRODUCT_X, quantity=2)

        assert view.items[0].quantity == 2

    async def test_pricing_outage_uses_base_price(self, store, catalog):
        service = build_service(store, catalog, promotion=UnavailablePromotion())

        view = await add(service, PRODUCT_X, quantity=2)

        assert view.items[0].unit_price == Decimal("10.00")


class TestUpdateItem:
    async def test_sets_quantity(self, cart_service):
        view = await add(cart_service, PRODUCT_X, quantity=2)

        view = await cart_service.update_item(
            USER_A, TENANT_A, view.items[0].item_id, UpdateItemRequest(quantity=5)
        )

        assert view.items[0].quantity == 5
        assert view.items[0].total_price == Decimal("50.00")
        assert view.total == Decimal("50.00")

    async def test_unknown_item_leaves_cart_unchanged(self, cart_service, store):
        await add(cart_service, PRODUCT_X, quantity=2)
        before = await store.find(TENANT_A, USER_A)

        with pytest.raises(ItemNotFoundError):
            await cart_service.update_item(USER_A, TENANT_A, "missing", UpdateItemRequest(quantity=5))

        assert await store.find(TENANT_A, USER_A) == before

    async def test_no_cart(self, cart_service):
        with pytest.raises(CartNotFoundError):
            await cart_service.update_item(USER_A, TENANT_A, "any", UpdateItemRequest(quantity=1))


class TestRemoveItem:
    async def test_removes_one_of_two(self, cart_service):
        await add(cart_service, PRODUCT_X, quantity=2)
        view = await add(cart_service, PRODUCT_Y, quantity=1)

        view = await cart_service.remove_item(USER_A, TENANT_A, view.items[0].item_id)

        assert [item.product_id for item in view.items] == [PRODUCT_Y]
        assert view.total == Decimal("7.25")

    async def test_removing_last_item_deletes_cart(self, cart_service, store):
        view = await add(cart_service, PRODUCT_X)

        view = await cart_service.remove_item(USER_A, TENANT_A, view.items[0].item_id)

        assert view.items == []
        assert view.total == Decimal("0")
        assert not await store.exists(TENANT_A, USER_A)

    async def test_unknown_item(self, cart_service):
        await add(cart_service, PRODUCT_X)

        with pytest.raises(ItemNotFoundError):
            await cart_service.remove_item(USER_A, TENANT_A, "missing")

    async def test_no_cart(self, cart_service):
        with pytest.raises(CartNotFoundError):
            await cart_service.remove_item(USER_A, TENANT_A, "any")


class TestGetCart:
    async def test_absent_cart_is_empty(self, cart_service, store):
        view = await cart_service.get_cart(USER_A, TENANT_A)

        assert view.items == []
        assert view.total == Decimal("0")
        assert view.currency == "USD"
        assert view.user_id == USER_A
        assert not await store.exists(TENANT_A, USER_A)

    async def test_refreshes_item_details(self, cart_service, catalog, product_x):
        await add(cart_service, PRODUCT_X, quantity=2)
        catalog.add_product(product_x.model_copy(update={"name": "Espresso Beans (Dark Roast)"}))

        view = await cart_service.get_cart(USER_A, TENANT_A)

        assert view.items[0].name == "Espresso Beans (Dark Roast)"
        assert view.total == Decimal("20.00")

    async def test_catalog_outage_keeps_last_known_details(self, cart_service, store):
        await add(cart_service, PRODUCT_X, quantity=2)
        service = build_service(store, FailingCatalog())

        view = await service.get_cart(USER_A, TENANT_A)

        assert view.items[0].name == "Espresso Beans 1kg"
        assert view.total == Decimal("20.00")

    async def test_stored_empty_cart_is_deleted(self, cart_service, store):
        await store.save(
            Cart(
                user_id=USER_A,
                tenant_id=TENANT_A,
                currency="EUR",
                created_at="2024-05-01T10:00:00",
                updated_at="2024-05-01T10:00:00",
            )
        )

        view = await cart_service.get_cart(USER_A, TENANT_A)

        assert view.items == []
        assert view.currency == "EUR"
        assert not await store.exists(TENANT_A, USER_A)

    async def test_corrupted_entry_reads_as_empty(self, cart_service, cache, store):
        await add(cart_service, PRODUCT_X)
        await cache.set(f"cart:{TENANT_A}:{USER_A}", "{corrupted", 60)

        view = await cart_service.get_cart(USER_A, TENANT_A)

        assert view.items == []
        assert not await store.exists(TENANT_A, USER_A)

    async def test_tenants_do_not_share_carts(self, cart_service):
        await add(cart_service, PRODUCT_X)

        view = await cart_service.get_cart(USER_A, TENANT_B)

        assert view.items == []


class TestClearCart:
    async def test_clear(self, cart_service, store):
        await add(cart_service, PRODUCT_X)

        await cart_service.clear_cart(USER_A, TENANT_A)

        assert not await store.exists(TENANT_A, USER_A)

    async def test_clear_without_cart(self, cart_service):
        await cart_service.clear_cart(USER_A, TENANT_A)


class TestCoupons:
    async def test_apply_then_remove(self, cart_service):
        before = await add(cart_service, PRODUCT_X, quantity=2)

        applied = await cart_service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="SAVE10"))
        assert applied.coupon_code == "SAVE10"

        removed = await cart_service.remove_coupon(USER_A, TENANT_A)
        assert removed.coupon_code is None
        assert removed.subtotal == before.subtotal
        assert removed.discount_amount == before.discount_amount
        assert removed.total == before.total

    async def test_rejected_coupon(self, store, catalog):
        service = build_service(store, catalog, promotion=RejectingPromotion())
        await add(service, PRODUCT_X)

        with pytest.raises(InvalidCouponError) as exc_info:
            await service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="OLD"))

        assert exc_info.value.status_code == 401
        assert (await store.find(TENANT_A, USER_A)).coupon_code is None

    async def test_validation_outage_accepts_coupon(self, store, catalog):
        service = build_service(store, catalog, promotion=UnavailablePromotion())
        await add(service, PRODUCT_X)

        view = await service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="SAVE10"))

        assert view.coupon_code == "SAVE10"
        assert view.discount_amount == Decimal("0")

    async def test_discount_from_promotion_service(self, store, catalog):
        service = build_service(store, catalog, promotion=FlatDiscountPromotion())
        await add(service, PRODUCT_X, quantity=2)

        view = await service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="SAVE2"))

        assert view.subtotal == Decimal("20.00")
        assert view.discount_amount == Decimal("2.00")
        assert view.total == Decimal("18.00")

        view = await service.remove_coupon(USER_A, TENANT_A)
        assert view.discount_amount == Decimal("0")
        assert view.total == Decimal("20.00")

    async def test_coupon_without_cart(self, cart_service):
        with pytest.raises(CartNotFoundError):
            await cart_service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="SAVE10"))


class TestConcurrentWrites:
    async def test_interleaved_write_is_not_lost(self, store, catalog):
        class InterferingInventory(InventoryClient):
            """Adds another item to the cart in the middle of the first request"""

            def __init__(self):
                self.service = None
                self.interfered = False

            async def check_availability(self, sku, tenant_id, quantity, token=None):
                if self.service and not self.interfered:
                    self.interfered = True
                    await add(self.service, PRODUCT_Y)
                return True

        inventory = InterferingInventory()
        service = build_service(store, catalog, inventory=inventory)
        view = await add(service, PRODUCT_X, quantity=1)
        inventory.service = service

        view = await service.update_item(
            USER_A, TENANT_A, view.items[0].item_id, UpdateItemRequest(quantity=4)
        )

        assert {(item.product_id, item.quantity) for item in view.items} == {
            (PRODUCT_X, 4),
            (PRODUCT_Y, 1),
        }
        assert view.total == Decimal("47.25")
        assert (await store.find(TENANT_A, USER_A)).version == 3

    async def test_gives_up_after_max_attempts(self, store, catalog):
        class AlwaysInterfering(InventoryClient):
            """Bumps the stored cart's version on every check"""

            async def check_availability(self, sku, tenant_id, quantity, token=None):
                current = await store.find(TENANT_A, USER_A)
                if current is None:
                    return True
                await store.save(current, expected_version=current.version)
                return True

        service = build_service(store, catalog, inventory=AlwaysInterfering())
        view = await service.add_item(
            USER_A, TENANT_A, AddItemRequest(product_id=PRODUCT_X, quantity=1)
        )

        with pytest.raises(CartConcurrencyError) as exc_info:
            await service.update_item(
                USER_A, TENANT_A, view.items[0].item_id, UpdateItemRequest(quantity=2)
            )

        assert exc_info.value.attempts == 3
        assert exc_info.value.status_code == 409
        assert (await store.find(TENANT_A, USER_A)).items[0].quantity == 1

    async def test_add_during_last_item_removal_is_not_lost(self, store, catalog, monkeypatch):
        service = build_service(store, catalog)
        view = await add(service, PRODUCT_X)
        item_id = view.items[0].item_id

        original_find = store.find
        interfered = False

        async def find_then_interfere(tenant_id, user_id):
            nonlocal interfered
            cart = await original_find(tenant_id, user_id)
            if not interfered:
                interfered = True
                await add(service, PRODUCT_Y)
            return cart

        monkeypatch.setattr(store, "find", find_then_interfere)

        view = await service.remove_item(USER_A, TENANT_A, item_id)

        assert [item.product_id for item in view.items] == [PRODUCT_Y]
        stored = await original_find(TENANT_A, USER_A)
        assert stored is not None
        assert [item.product_id for item in stored.items] == [PRODUCT_Y]
        assert stored.version == 3

    async def test_empty_record_is_kept_when_items_arrive(self, store, catalog, monkeypatch):
        service = build_service(store, catalog)
        await store.save(
            Cart(
                user_id=USER_A,
                tenant_id=TENANT_A,
                created_at="2024-05-01T10:00:00",
                updated_at="2024-05-01T10:00:00",
            ),
            expected_version=0,
        )

        original_find = store.find
        interfered = False

        async def find_then_interfere(tenant_id, user_id):
            nonlocal interfered
            cart = await original_find(tenant_id, user_id)
            if not interfered:
                interfered = True
                await add(service, PRODUCT_X)
            return cart

        monkeypatch.setattr(store, "find", find_then_interfere)

        view = await service.get_cart(USER_A, TENANT_A)

        assert view.items == []
        stored = await original_find(TENANT_A, USER_A)
        assert [item.product_id for item in stored.items] == [PRODUCT_X]


def html_transport(recorded):
    def handler(request: httpx.Request) -> httpx.Response:
        recorded.append(request)
        return httpx.Response(200, text="<html>gateway</html>", headers={"Content-Type": "text/html"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestMalformedUpstreamBodies:
    async def test_inventory_html_page_does_not_block_add(self, store, catalog):
        recorded = []
        inventory = HttpInventoryClient("http://inventory", http_client=html_transport(recorded))
        service = build_service(store, catalog, inventory=inventory)

        view = await add(service, PRODUCT_X, quantity=2)

        assert len(recorded) == 1
        assert view.items[0].quantity == 2
        assert view.total == Decimal("20.00")

    async def test_catalog_html_page_keeps_last_known_details(self, cart_service, store):
        await add(cart_service, PRODUCT_X, quantity=2)
        await add(cart_service, PRODUCT_Y, quantity=1)
        recorded = []
        catalog = HttpCatalogClient("http://catalog", http_client=html_transport(recorded))
        service = build_service(store, catalog)

        view = await service.get_cart(USER_A, TENANT_A)

        assert len(recorded) == 2
        assert [item.name for item in view.items] == ["Espresso Beans 1kg", "Ceramic Mug"]
        assert view.total == Decimal("27.25")

    async def test_coupon_validation_html_page_accepts_coupon(self, store, catalog):
        recorded = []
        promotion = HttpPromotionClient("http://promo", http_client=html_transport(recorded))
        service = build_service(store, catalog, promotion=promotion)
        view = await add(service, PRODUCT_X)
        assert view.items[0].unit_price == Decimal("10.00")

        view = await service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="SAVE10"))

        assert view.coupon_code == "SAVE10"
        assert view.discount_amount == Decimal("0")


class TestPromotionAmounts:
    async def test_negative_discount_falls_back_to_none(self, store, catalog):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/coupon/validate"):
                return httpx.Response(200, json={"data": {"valid": True}})
            if request.url.path.endswith("/cart/discount"):
                return httpx.Response(200, json={"data": {"discount_amount": "-5.00"}})
            return httpx.Response(200, json={"data": {"unit_price": "10.00"}})

        promotion = HttpPromotionClient(
            "http://promo", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        service = build_service(store, catalog, promotion=promotion)
        await add(service, PRODUCT_X, quantity=2)

        view = await service.apply_coupon(USER_A, TENANT_A, CouponRequest(coupon_code="SAVE10"))

        assert view.coupon_code == "SAVE10"
        assert view.discount_amount == Decimal("0")
        assert view.total == Decimal("20.00")

        view = await service.get_cart(USER_A, TENANT_A)
        assert view.total == Decimal("20.00")
