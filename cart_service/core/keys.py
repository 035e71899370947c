"""Cache key construction for carts"""

import uuid
from typing import Union

from .exceptions import ValidationError

CART_KEY_PREFIX = "cart"

Identifier = Union[uuid.UUID, str]


def _canonical(value: Identifier, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"{field} must be a UUID, got {value!r}", field=field)


def encode(tenant_id: Identifier, user_id: Identifier) -> str:
    """
    Build the cache key for a tenant/user cart.

    Identifiers are rendered as canonical lowercase UUID text, so
    "cart:{tenant}:{user}" is unambiguous for every pair.
    """
    tenant = _canonical(tenant_id, "tenant_id")
    user = _canonical(user_id, "user_id")
    return f"{CART_KEY_PREFIX}:{tenant}:{user}"


def decode(key: str) -> tuple[uuid.UUID, uuid.UUID]:
    """Split a cart cache key back into (tenant_id, user_id)"""
    parts = key.split(":") if isinstance(key, str) else []
    if len(parts) != 3 or parts[0] != CART_KEY_PREFIX:
        raise ValidationError(f"Not a cart key: {key!r}", field="key")

    tenant = _canonical(parts[1], "tenant_id")
    user = _canonical(parts[2], "user_id")
    if encode(tenant, user) != key:
        raise ValidationError(f"Cart key is not canonical: {key!r}", field="key")
    return tenant, user
