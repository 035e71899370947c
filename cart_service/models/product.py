"""Product snapshot returned by the catalog service"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductInfo(BaseModel):
    """Product details needed to build a cart item"""

    model_config = ConfigDict(extra="ignore")

    product_id: UUID
    name: str
    sku: str
    price: Decimal = Field(ge=0)
    currency: str = "USD"
    images: list[str] = Field(default_factory=list)
    status: Optional[str] = None
    category_id: Optional[UUID] = None
    seller_id: Optional[UUID] = None

    @property
    def primary_image(self) -> Optional[str]:
        return self.images[0] if self.images else None
