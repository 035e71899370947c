# Storage modules

from .cache import CacheClient, InMemoryCache, RedisCache
from .carts import CartStore

__all__ = [
    "CacheClient",
    "InMemoryCache",
    "RedisCache",
    "CartStore",
]
