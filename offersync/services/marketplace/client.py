import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from offersync.core.config import Settings
from offersync.core.exceptions import (
    MarketplaceAPIError,
    MarketplaceAuthError,
    MarketplaceNotFoundError,
    MarketplaceRateLimitError,
)
from offersync.integrations.base import MarketplaceClient
from offersync.schemas.marketplace import RemoteOffer, RemoteOfferPage, RemoteOrder

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class HttpMarketplaceClient(MarketplaceClient):
    """
    Asynchronous client for the marketplace REST API.

    Functionality: bearer-token authenticated offer and order calls (httpx).
    The token comes from an injected provider, so OAuth refresh stays outside
    this class. Responses are parsed into RemoteOffer / RemoteOrder here.

    Status mapping:
        401/403 -> MarketplaceAuthError (fatal for a sync job)
        404     -> MarketplaceNotFoundError
        429     -> MarketplaceRateLimitError (carries Retry-After)
        other non-2xx, network errors, timeouts -> MarketplaceAPIError
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the marketplace client

        Args:
            settings: Application settings (base URL, timeout, static token)
            token_provider: Coroutine returning a current access token
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = settings.MARKETPLACE_API_URL.rstrip('/')
        self.timeout = settings.MARKETPLACE_TIMEOUT
        self._static_token = settings.MARKETPLACE_ACCESS_TOKEN
        self._token_provider = token_provider
        self._transport = transport
        logger.info(f"Initializing HttpMarketplaceClient for {self.base_url}")

    async def _get_token(self) -> str:
        if self._token_provider is not None:
            return await self._token_provider()
        return self._static_token

    async def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        return {
            "Authorization": f"Bearer {await self._get_token()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        """
        Make a request to the marketplace API

        Args:
            method: HTTP method (GET, POST, PATCH)
            endpoint: API endpoint (without base URL)
            data: Request payload for POST/PATCH requests
            params: Query parameters

        Returns:
            Dict: Response data

        Raises:
            MarketplaceAPIError: If the API request fails
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = await self._get_headers()

        masked_headers = headers.copy()
        masked_headers["Authorization"] = "Bearer [REDACTED]"
        logger.debug(f"Making {method} request to {url}")
        logger.debug(f"Headers: {masked_headers}")
        if params:
            logger.debug(f"Params: {params}")
        if data:
            logger.debug(f"Data: {json.dumps(data, default=str)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=data,
                    params=params
                )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout error: {str(e)}")
            raise MarketplaceAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Network error: {str(e)}")
            raise MarketplaceAPIError(f"Network error: {str(e)}")

        self._raise_for_status(response)

        if response.status_code == 204:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise MarketplaceAPIError(f"Invalid JSON in response: {str(e)}", status_code=response.status_code)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status in (200, 201, 202, 204):
            return

        body = response.text[:500]
        if status in (401, 403):
            logger.error(f"Marketplace rejected credentials ({status}): {body}")
            raise MarketplaceAuthError(f"Authorization failed: {body}", status_code=status)
        if status == 404:
            raise MarketplaceNotFoundError(f"Not found: {body}", status_code=status)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            try:
                retry_after_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_seconds = None
            logger.warning(f"Marketplace rate limit hit, retry after {retry_after_seconds}s")
            raise MarketplaceRateLimitError(f"Rate limited: {body}", retry_after=retry_after_seconds)

        logger.error(f"Marketplace API error ({status}): {body}")
        raise MarketplaceAPIError(f"Request failed ({status}): {body}", status_code=status)

    # Offer operations

    async def get_offer(self, offer_id: str) -> RemoteOffer:
        data = await self._make_request("GET", f"/sale/offers/{offer_id}")
        return RemoteOffer.model_validate(data)

    async def list_offers(self, cursor: Optional[str] = None, limit: int = 100) -> RemoteOfferPage:
        """
        Get one page of offers, oldest first

        Args:
            cursor: Opaque cursor returned by the previous page
            limit: Page size

        Returns:
            RemoteOfferPage with items and the cursor of the next page (None at the end)
        """
        params: Dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        data = await self._make_request("GET", "/sale/offers", params=params)
        items = data.get("offers") or data.get("items") or []
        next_cursor = data.get("nextCursor") or data.get("next_cursor")
        return RemoteOfferPage(items=[RemoteOffer.model_validate(item) for item in items], next_cursor=next_cursor)

    async def create_offer(self, data: Dict[str, Any]) -> RemoteOffer:
        response = await self._make_request("POST", "/sale/offers", data=data)
        return RemoteOffer.model_validate(response)

    async def update_offer(self, offer_id: str, data: Dict[str, Any]) -> RemoteOffer:
        response = await self._make_request("PATCH", f"/sale/offers/{offer_id}", data=data)
        return RemoteOffer.model_validate(response)

    # Order operations

    async def get_order(self, order_id: str) -> RemoteOrder:
        data = await self._make_request("GET", f"/order/checkout-forms/{order_id}")
        return RemoteOrder.model_validate(data)
