"""
Test configuration and fixtures for the cart service
"""

from decimal import Decimal
from uuid import UUID

import jwt
import pytest

from cart_service.core.config import settings
from cart_service.database.cache import InMemoryCache
from cart_service.database.carts import CartStore
from cart_service.models.product import ProductInfo
from cart_service.services.cart_service import CartService
from cart_service.services.catalog_client import StaticCatalogClient
from cart_service.services.inventory_client import NoOpInventoryClient
from cart_service.services.promotion_client import NoOpPromotionClient

TENANT_A = UUID("0b3a8f0e-4f6c-4d52-9a57-1b2a0f4a6c11")
TENANT_B = UUID("7d1c2e55-91b0-4b6f-8a33-5e4f7c9d2a02")
USER_A = UUID("c3f4e1a1-5b8a-4b0e-8d9b-9d4a6f1e2c3d")
USER_B = UUID("5f0c9b2e-3a7d-4e18-b6c1-2d8e4f9a0b7c")

PRODUCT_X = UUID("11111111-2222-4333-8444-555555555555")
PRODUCT_Y = UUID("66666666-7777-4888-9999-aaaaaaaaaaaa")
PRODUCT_EUR = UUID("bbbbbbbb-cccc-4ddd-8eee-ffffffffffff")


class FakeClock:
    """Manually advanced time source for TTL tests"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def tenant_id() -> UUID:
    return TENANT_A


@pytest.fixture
def user_id() -> UUID:
    return USER_A


@pytest.fixture
def product_x() -> ProductInfo:
    return ProductInfo(
        product_id=PRODUCT_X,
        name="Espresso Beans 1kg",
        sku="BEANS-ESP-1KG",
        price=Decimal("10.00"),
        currency="USD",
        images=["https://cdn.example.com/beans.jpg"],
        status="ACTIVE",
    )


@pytest.fixture
def product_y() -> ProductInfo:
    return ProductInfo(
        product_id=PRODUCT_Y,
        name="Ceramic Mug",
        sku="MUG-CER-WHT",
        price=Decimal("7.25"),
        currency="USD",
        images=[],
        status="ACTIVE",
    )


@pytest.fixture
def product_eur() -> ProductInfo:
    return ProductInfo(
        product_id=PRODUCT_EUR,
        name="Grinder",
        sku="GRIND-01",
        price=Decimal("49.90"),
        currency="EUR",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryCache:
    return InMemoryCache(clock=clock)


@pytest.fixture
def store(cache: InMemoryCache) -> CartStore:
    return CartStore(cache, default_ttl_seconds=604800)


@pytest.fixture
def catalog(product_x, product_y, product_eur) -> StaticCatalogClient:
    return StaticCatalogClient([product_x, product_y, product_eur])


@pytest.fixture
def cart_service(store, catalog) -> CartService:
    return CartService(
        store=store,
        catalog=catalog,
        inventory=NoOpInventoryClient(),
        promotion=NoOpPromotionClient(),
        default_currency="USD",
        max_attempts=3,
    )


@pytest.fixture
def make_token():
    """Build a bearer token the way the identity provider would"""

    def _make(user_id: UUID = USER_A, tenant_id: UUID = TENANT_A, **extra) -> str:
        claims = {"user_id": str(user_id), "tenant_id": str(tenant_id), **extra}
        return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    return _make
