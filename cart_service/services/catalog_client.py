"""Catalog service client"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ProductNotFoundError, UpstreamUnavailableError
from ..models.product import ProductInfo
from .upstream import ServiceClient

logger = logging.getLogger(__name__)


class CatalogClient(ABC):
    """Looks up product snapshots"""

    @abstractmethod
    async def get_product(
        self,
        product_id: UUID,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> ProductInfo:
        """
        Get product details.

        Raises:
            ProductNotFoundError: catalog has no such product
            UpstreamUnavailableError: catalog could not be reached
        """

    async def close(self) -> None:
        pass


class HttpCatalogClient(ServiceClient, CatalogClient):
    """Catalog client over HTTP"""

    service_name = "catalog-service"

    async def get_product(
        self,
        product_id: UUID,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> ProductInfo:
        response = await self._request(
            "GET", f"/api/v1/product/{product_id}", tenant_id, token
        )

        if response.status_code == 404:
            raise ProductNotFoundError(product_id)
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                self.service_name, f"product lookup returned {response.status_code}"
            )

        data = self._payload(response)
        if not data:
            raise ProductNotFoundError(product_id)

        try:
            return ProductInfo.model_validate(data)
        except PydanticValidationError as e:
            raise UpstreamUnavailableError(self.service_name, f"malformed product {product_id}: {e}")


class StaticCatalogClient(CatalogClient):
    """In-memory catalog for development and tests"""

    def __init__(self, products: Optional[list[ProductInfo]] = None):
        self.products: dict[UUID, ProductInfo] = {
            product.product_id: product for product in (products or [])
        }

    def add_product(self, product: ProductInfo) -> None:
        self.products[product.product_id] = product

    async def get_product(
        self,
        product_id: UUID,
        tenant_id: UUID,
        token: Optional[str] = None,
    ) -> ProductInfo:
        product = self.products.get(product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product
