# Cart Service services

from . import cart_engine
from .cart_service import CartService
from .catalog_client import CatalogClient, HttpCatalogClient, StaticCatalogClient
from .inventory_client import InventoryClient, HttpInventoryClient, NoOpInventoryClient
from .promotion_client import (
    CouponValidation,
    PromotionClient,
    HttpPromotionClient,
    NoOpPromotionClient,
)

__all__ = [
    "cart_engine",
    "CartService",
    "CatalogClient",
    "HttpCatalogClient",
    "StaticCatalogClient",
    "InventoryClient",
    "HttpInventoryClient",
    "NoOpInventoryClient",
    "CouponValidation",
    "PromotionClient",
    "HttpPromotionClient",
    "NoOpPromotionClient",
]
