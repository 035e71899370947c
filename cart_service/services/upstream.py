"""
Upstream service client base

Shared HTTP plumbing for the catalog, inventory and promotion clients.
"""

import logging
from typing import Any, Optional
from uuid import UUID

import httpx

from ..core.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class ServiceClient:
    """
    Base client for an upstream HTTP service.

    Every request is bounded by the client timeout. Transport failures,
    timeouts and 5xx responses surface as UpstreamUnavailableError; 4xx
    responses are returned to the subclass to interpret.
    """

    service_name = "upstream"

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Base URL of the service
            timeout: Seconds allowed per request
            http_client: Preconfigured client (tests pass one with a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP client"""
        await self._http_client.aclose()

    def _headers(self, tenant_id: UUID, token: Optional[str]) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "X-Tenant-Id": str(tenant_id),
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        tenant_id: UUID,
        token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request to the service"""
        url = f"{self.base_url}{path}"

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                headers=self._headers(tenant_id, token),
                params=params,
                json=body,
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(self.service_name, f"timeout calling {method} {path}: {e}")
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(self.service_name, f"{method} {path} failed: {e}")

        if response.status_code >= 500:
            logger.error(f"Request failed: {response.status_code} - {response.text}")
            raise UpstreamUnavailableError(
                self.service_name, f"{method} {path} returned {response.status_code}"
            )

        return response

    def _json(self, response: httpx.Response) -> Any:
        """Parsed response body; a body that is not JSON is an upstream fault"""
        try:
            return response.json()
        except ValueError:
            logger.error(
                f"{self.service_name} returned a non-JSON body ({response.status_code}): "
                f"{response.text[:200]}"
            )
            raise UpstreamUnavailableError(self.service_name, "malformed response body")

    def _payload(self, response: httpx.Response) -> Any:
        """Response body, unwrapped from the {"data": ...} envelope if present"""
        body = self._json(response)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body
