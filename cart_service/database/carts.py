"""
Cart storage

Carts live only in the cache under "cart:{tenantId}:{userId}". Reads are
self-healing: entries that cannot be turned back into a Cart are dropped and
reported as absent, which loses that cart's contents. Carts are ephemeral
session state, so availability wins over keeping unreadable data.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from ..core import keys
from ..core.config import settings
from ..core.exceptions import (
    CacheUnavailableError,
    CartVersionConflictError,
    ValidationError,
)
from ..models.cart import ZERO, Cart
from .cache import CacheClient

logger = logging.getLogger(__name__)

TYPE_FIELD = "@type"
CART_TYPE = "cart"

MONEY_FIELDS = ("subtotal", "discount_amount", "tax_amount", "shipping_cost", "total")

# camelCase names written by older cart schemas
LEGACY_CART_FIELDS = {
    "userId": "user_id",
    "tenantId": "tenant_id",
    "couponCode": "coupon_code",
    "discountAmount": "discount_amount",
    "taxAmount": "tax_amount",
    "shippingCost": "shipping_cost",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
LEGACY_ITEM_FIELDS = {
    "itemId": "item_id",
    "productId": "product_id",
    "variantId": "variant_id",
    "unitPrice": "unit_price",
    "totalPrice": "total_price",
}


# ==================== Decoding ====================


@dataclass
class Decoded:
    """Entry already has the current cart shape"""
    cart: Cart


@dataclass
class StructurallyConvertible:
    """Entry is a plain field mapping that may convert into a cart"""
    mapping: dict[str, Any]


@dataclass
class Unreadable:
    """Entry is damaged and cannot be interpreted"""
    reason: str


@dataclass
class Unrecognized:
    """Entry is of a type the store does not know how to inspect"""
    type_name: str


DecodeResult = Union[Decoded, StructurallyConvertible, Unreadable, Unrecognized]


def serialize(cart: Cart) -> str:
    """Render a cart as the JSON document stored in the cache"""
    payload = {TYPE_FIELD: CART_TYPE, **cart.model_dump(mode="json")}
    return json.dumps(payload)


def decode(raw: Any) -> DecodeResult:
    """Classify a raw cache value"""
    if isinstance(raw, Cart):
        return Decoded(raw)
    if isinstance(raw, Mapping):
        return StructurallyConvertible(dict(raw))

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            return Unreadable(f"not UTF-8: {e}")
    if not isinstance(raw, str):
        return Unrecognized(type(raw).__name__)

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        return Unreadable(f"invalid JSON: {e}")

    if not isinstance(payload, dict):
        return Unrecognized(f"json {type(payload).__name__}")

    if payload.get(TYPE_FIELD) == CART_TYPE:
        body = {k: v for k, v in payload.items() if k != TYPE_FIELD}
        try:
            return Decoded(Cart.model_validate(body))
        except PydanticValidationError:
            # Tagged but drifted schema; give the lenient conversion a try
            pass

    return StructurallyConvertible(payload)


def _rename(mapping: Mapping, legacy: dict[str, str]) -> dict[str, Any]:
    result = {}
    for name, value in mapping.items():
        if isinstance(name, str) and name.startswith("@"):
            continue
        result.setdefault(legacy.get(name, name), value)
    return result


def _convert_item(raw_item: Any) -> dict[str, Any]:
    if not isinstance(raw_item, Mapping):
        raise ValueError(f"cart item is a {type(raw_item).__name__}, not a mapping")

    item = _rename(raw_item, LEGACY_ITEM_FIELDS)
    if item.get("total_price") is None and item.get("unit_price") is not None:
        try:
            item["total_price"] = Decimal(str(item["unit_price"])) * int(item["quantity"])
        except (InvalidOperation, KeyError) as e:
            raise ValueError(f"cannot derive item total: {e!r}")
    return item


def convert_structural(mapping: Mapping) -> Cart:
    """
    Best-effort conversion of a loosely-typed mapping into a Cart.

    Handles camelCase field names, type metadata keys, null amounts and
    missing timestamps. Item and cart totals are recomputed from the items.
    Raises pydantic's ValidationError, ValueError or TypeError when the
    mapping cannot be made into a cart.
    """
    data = _rename(mapping, LEGACY_CART_FIELDS)

    for name in MONEY_FIELDS:
        if data.get(name) is None:
            data[name] = "0"

    items = data.get("items")
    data["items"] = [_convert_item(item) for item in (items or [])]

    now = datetime.utcnow()
    if data.get("created_at") is None:
        data["created_at"] = now
    if data.get("updated_at") is None:
        data["updated_at"] = data["created_at"]
    if data.get("version") is None:
        data["version"] = 0
    if data.get("currency") is None:
        data.pop("currency", None)

    cart = Cart.model_validate(data)
    for item in cart.items:
        item.total_price = item.unit_price * item.quantity
    cart.subtotal = sum((item.total_price for item in cart.items), ZERO)
    cart.total = cart.subtotal - cart.discount_amount + cart.tax_amount + cart.shipping_cost
    return cart


# ==================== Store ====================


class CartStore:
    """Cache-backed cart repository"""

    def __init__(self, cache: CacheClient, default_ttl_seconds: Optional[int] = None):
        self._cache = cache
        self.default_ttl_seconds = default_ttl_seconds or settings.cart_ttl_seconds

    @property
    def cache(self) -> CacheClient:
        return self._cache

    async def find(self, tenant_id: UUID, user_id: UUID) -> Optional[Cart]:
        """
        Find the cart for a tenant/user pair.

        Never raises for a missing or unreadable entry; both come back as
        None. Unreadable entries are deleted, entries of an unknown type are
        left in place.
        """
        key = keys.encode(tenant_id, user_id)
        raw = await self._cache.get(key)
        if raw is None:
            return None

        result = decode(raw)

        if isinstance(result, Decoded):
            cart = result.cart
        elif isinstance(result, StructurallyConvertible):
            try:
                cart = convert_structural(result.mapping)
            except (PydanticValidationError, ValueError, TypeError) as e:
                logger.error(f"Failed to convert cached mapping to cart (key: {key}): {e}")
                await self._discard(key)
                return None
            # Not rewritten here; the caller's next save stores the current shape
            logger.info(f"Converted legacy cart entry: {key}")
        elif isinstance(result, Unreadable):
            logger.warning(
                f"Failed to deserialize cart (key: {key}), deleting corrupted entry: {result.reason}"
            )
            await self._discard(key)
            return None
        else:
            logger.warning(f"Unexpected type from cache (key: {key}): {result.type_name}")
            return None

        if keys.encode(cart.tenant_id, cart.user_id) != key:
            logger.error(f"Cached cart identity does not match key {key}, deleting entry")
            await self._discard(key)
            return None

        logger.debug(f"Loaded cart from cache: {key} (version {cart.version})")
        return cart

    async def save(
        self,
        cart: Cart,
        ttl_seconds: Optional[int] = None,
        expected_version: Optional[int] = None,
    ) -> Cart:
        """
        Save cart with TTL.

        Without expected_version the write is unconditional (last write
        wins). With it, the write only happens if the stored cart still has
        that version, an absent entry counting as version 0, and the stored
        cart gets version expected_version + 1.

        Returns:
            The cart as stored

        Raises:
            CartVersionConflictError: stored version differs from expected_version
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValidationError("TTL must be positive", field="ttl_seconds")

        key = keys.encode(cart.tenant_id, cart.user_id)

        if expected_version is None:
            await self._cache.set(key, serialize(cart), ttl)
            logger.debug(f"Saved cart to cache: {key}")
            return cart

        stored = cart.model_copy(update={"version": expected_version + 1})
        written = await self._cache.compare_and_set(
            key,
            serialize(stored),
            ttl,
            lambda current: self._version_of(current) == expected_version,
        )
        if not written:
            raise CartVersionConflictError(key, expected_version)

        logger.debug(f"Saved cart to cache: {key} (version {stored.version})")
        return stored

    async def delete(
        self,
        tenant_id: UUID,
        user_id: UUID,
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Delete cart; no-op if absent.

        With expected_version the delete only happens if the stored cart
        still has that version, an absent entry counting as version 0.

        Raises:
            CartVersionConflictError: stored version differs from expected_version
        """
        key = keys.encode(tenant_id, user_id)

        if expected_version is None:
            await self._cache.delete(key)
            logger.debug(f"Deleted cart from cache: {key}")
            return

        deleted = await self._cache.compare_and_delete(
            key, lambda current: self._version_of(current) == expected_version
        )
        if not deleted:
            raise CartVersionConflictError(key, expected_version)
        logger.debug(f"Deleted cart from cache: {key} (version {expected_version})")

    async def exists(self, tenant_id: UUID, user_id: UUID) -> bool:
        """Check if a cart entry exists"""
        return await self._cache.exists(keys.encode(tenant_id, user_id))

    async def _discard(self, key: str) -> None:
        try:
            await self._cache.delete(key)
        except CacheUnavailableError as e:
            logger.error(f"Failed to delete corrupted cart entry {key}: {e}")

    @staticmethod
    def _version_of(raw: Any) -> int:
        """Version of a raw entry as find() would see it; unreadable counts as absent"""
        if raw is None:
            return 0
        result = decode(raw)
        if isinstance(result, Decoded):
            return result.cart.version
        if isinstance(result, StructurallyConvertible):
            try:
                return convert_structural(result.mapping).version
            except (PydanticValidationError, ValueError, TypeError):
                return 0
        return 0
