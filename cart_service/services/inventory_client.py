"""Inventory service client (advisory availability checks)"""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from ..core.exceptions import UpstreamUnavailableError
from .upstream import ServiceClient

logger = logging.getLogger(__name__)


class InventoryClient(ABC):
    """Checks stock availability for a SKU"""

    @abstractmethod
    async def check_availability(
        self,
        sku: str,
        tenant_id: UUID,
        quantity: int,
        token: Optional[str] = None,
    ) -> bool:
        """
        Check whether quantity units of sku are available.

        Raises:
            UpstreamUnavailableError: inventory could not be reached
        """

    async def close(self) -> None:
        pass


class HttpInventoryClient(ServiceClient, InventoryClient):
    """Inventory client over HTTP"""

    service_name = "inventory-service"

    async def check_availability(
        self,
        sku: str,
        tenant_id: UUID,
        quantity: int,
        token: Optional[str] = None,
    ) -> bool:
        response = await self._request(
            "GET",
            "/api/v1/inventory/availability",
            tenant_id,
            token,
            params={"sku": sku, "quantity": quantity},
        )

        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                self.service_name, f"availability check returned {response.status_code}"
            )

        data = self._payload(response)
        if isinstance(data, dict):
            return bool(data.get("available", False))
        return bool(data)


class NoOpInventoryClient(InventoryClient):
    """Reports every SKU as available"""

    async def check_availability(
        self,
        sku: str,
        tenant_id: UUID,
        quantity: int,
        token: Optional[str] = None,
    ) -> bool:
        logger.debug(f"Inventory check skipped for SKU: {sku}, quantity: {quantity}")
        return True
