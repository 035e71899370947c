"""Cart Service Configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file="config/.env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Cart Service"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8087

    # Cache
    cache_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    cart_ttl_seconds: int = 7 * 24 * 60 * 60  # 7 days for abandoned carts
    cart_save_max_attempts: int = 3
    default_currency: str = "USD"

    # Upstream services
    catalog_service_url: str = "http://localhost:8084"
    inventory_service_url: str = "http://localhost:8085"
    promo_service_url: str = "http://localhost:8086"
    upstream_timeout_seconds: float = 5.0
    use_stub_inventory: bool = True
    use_stub_promotion: bool = True

    # Identity
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    @property
    def uses_redis(self) -> bool:
        """Check if the Redis cache backend is selected"""
        return self.cache_backend.lower() == "redis"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
