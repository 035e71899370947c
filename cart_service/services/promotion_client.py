"""Promotion service client (coupons and promotional pricing)"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

from ..core.exceptions import UpstreamUnavailableError
from ..models.cart import ZERO, Cart
from .upstream import ServiceClient

logger = logging.getLogger(__name__)


@dataclass
class CouponValidation:
    """Result of a coupon check"""
    valid: bool
    reason: Optional[str] = None


class PromotionClient(ABC):
    """Validates coupons and prices items with promotions applied"""

    @abstractmethod
    async def validate_coupon(
        self,
        coupon_code: str,
        tenant_id: UUID,
        cart: Cart,
        token: Optional[str] = None,
    ) -> CouponValidation:
        """Check a coupon against the cart"""

    @abstractmethod
    async def calculate_price(
        self,
        product_id: UUID,
        base_price: Decimal,
        quantity: int,
        coupon_code: Optional[str],
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> Decimal:
        """Unit price after promotions"""

    @abstractmethod
    async def calculate_discount(
        self,
        cart: Cart,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> Decimal:
        """Cart-level discount amount for the cart's coupon"""

    async def close(self) -> None:
        pass


def _cart_body(cart: Cart) -> dict:
    return {
        "coupon_code": cart.coupon_code,
        "subtotal": str(cart.subtotal),
        "currency": cart.currency,
        "items": [
            {
                "product_id": str(item.product_id),
                "sku": item.sku,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
            }
            for item in cart.items
        ],
    }


class HttpPromotionClient(ServiceClient, PromotionClient):
    """Promotion client over HTTP"""

    service_name = "promo-service"

    def _decimal(self, data: dict, field: str) -> Decimal:
        """Non-negative money amount from a response body"""
        try:
            amount = Decimal(str(data[field]))
        except (KeyError, TypeError, InvalidOperation):
            raise UpstreamUnavailableError(self.service_name, f"response is missing a valid {field}")
        if not amount.is_finite() or amount < 0:
            raise UpstreamUnavailableError(self.service_name, f"response has an invalid {field}: {amount}")
        return amount

    async def validate_coupon(
        self,
        coupon_code: str,
        tenant_id: UUID,
        cart: Cart,
        token: Optional[str] = None,
    ) -> CouponValidation:
        body = _cart_body(cart)
        body["coupon_code"] = coupon_code
        response = await self._request(
            "POST", "/api/v1/promotion/coupon/validate", tenant_id, token, body=body
        )

        if response.status_code in (400, 404, 422):
            try:
                data = response.json() if response.content else {}
            except ValueError:
                data = {}
            reason = data.get("message") if isinstance(data, dict) else None
            return CouponValidation(valid=False, reason=reason or "coupon not recognized")
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                self.service_name, f"coupon validation returned {response.status_code}"
            )

        data = self._payload(response) or {}
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(self.service_name, "malformed coupon validation body")
        return CouponValidation(valid=bool(data.get("valid")), reason=data.get("reason"))

    async def calculate_price(
        self,
        product_id: UUID,
        base_price: Decimal,
        quantity: int,
        coupon_code: Optional[str],
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> Decimal:
        response = await self._request(
            "POST",
            "/api/v1/promotion/calculate",
            tenant_id,
            token,
            body={
                "product_id": str(product_id),
                "base_price": str(base_price),
                "quantity": quantity,
                "coupon_code": coupon_code,
            },
        )
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                self.service_name, f"price calculation returned {response.status_code}"
            )
        return self._decimal(self._payload(response) or {}, "unit_price")

    async def calculate_discount(
        self,
        cart: Cart,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> Decimal:
        if not cart.coupon_code or not cart.items:
            return ZERO

        response = await self._request(
            "POST", "/api/v1/promotion/cart/discount", tenant_id, token, body=_cart_body(cart)
        )
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                self.service_name, f"discount calculation returned {response.status_code}"
            )
        return self._decimal(self._payload(response) or {}, "discount_amount")


class NoOpPromotionClient(PromotionClient):
    """
    Promotion stand-in: every coupon is accepted, prices are the base
    price and no discount is granted.
    """

    async def validate_coupon(
        self,
        coupon_code: str,
        tenant_id: UUID,
        cart: Cart,
        token: Optional[str] = None,
    ) -> CouponValidation:
        logger.debug(f"Coupon validation placeholder for code: {coupon_code}")
        return CouponValidation(valid=True)

    async def calculate_price(
        self,
        product_id: UUID,
        base_price: Decimal,
        quantity: int,
        coupon_code: Optional[str],
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> Decimal:
        return base_price

    async def calculate_discount(
        self,
        cart: Cart,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> Decimal:
        return ZERO
