#!/usr/bin/env python3
"""HTTP Client for Microsoft Graph.

This module provides a reusable, composable HTTP client that handles the
common concerns of Graph API communication:

    - OAuth2 authentication via TokenManager
    - Automatic token refresh on 401 responses
    - Cursor-based pagination (follows '@odata.nextLink')
    - JSON batching (POST /$batch) with per-item responses
    - Connection pooling via shared aiohttp session
    - Typed exceptions for every failure mode

Design Philosophy:
    This client knows HOW to talk to Graph, but not WHAT to fetch.
    It has no knowledge of Autopilot or Intune resources. That knowledge
    belongs in the resource classes that compose this client.

    Apart from one token refresh on 401, the client does not retry.
    Transport errors and error statuses propagate to the caller, which
    decides whether the condition is fatal for the run.

Usage:
    async with GraphClient(token_manager) as client:
        data = await client.get("/deviceManagement/managedDevices", params={"$top": 10})

        async for page in client.paginate("/deviceManagement/managedDevices"):
            for item in page:
                process(item)

        responses = await client.batch([
            BatchRequest(id="SN1", method="DELETE", url="/deviceManagement/..."),
        ])
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import aiohttp

from .auth import TokenManager
from .exceptions import (
    APIError,
    ConfigurationError,
    ConnectionError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/beta"

# Graph rejects $batch payloads with more than 20 requests
MAX_BATCH_REQUESTS = 20


# ============================================
# Configuration
# ============================================

@dataclass
class PaginationConfig:
    """Configuration for paginated Graph requests.

    Attributes:
        page_size: Value sent as $top (None lets the service choose)
        delay_between_pages: Seconds to wait between requests
        max_pages: Safety limit to prevent infinite loops (None = no limit)
    """
    page_size: Optional[int] = None
    delay_between_pages: float = 0.0
    max_pages: Optional[int] = None


AUTOPILOT_PAGINATION = PaginationConfig(
    page_size=None,  # the Autopilot collection ignores $top beyond 1000
    delay_between_pages=0.0,
)

MANAGED_DEVICES_PAGINATION = PaginationConfig(
    page_size=1000,
    delay_between_pages=0.0,
)


@dataclass
class BatchRequest:
    """One sub-request inside a $batch call.

    Attributes:
        id: Caller-chosen correlation key, unique within the batch
        method: HTTP method of the sub-request
        url: Path relative to the API version root
        body: Optional JSON body
    """
    id: str
    method: str
    url: str
    body: Optional[dict] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "method": self.method, "url": self.url}
        if self.body is not None:
            data["body"] = self.body
            data["headers"] = {"Content-Type": "application/json"}
        return data


@dataclass
class BatchResponse:
    """One sub-response from a $batch call."""
    id: str
    status: int
    body: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def error_message(self) -> Optional[str]:
        """Graph error message carried in the sub-response body, if any."""
        error = self.body.get("error") if isinstance(self.body, dict) else None
        if isinstance(error, dict):
            return error.get("message") or error.get("code")
        return None


# ============================================
# The Client
# ============================================

class GraphClient:
    """Async HTTP client for Microsoft Graph.

    This client is designed to be used as an async context manager to ensure
    proper session lifecycle management:

        async with GraphClient(token_manager) as client:
            data = await client.get("/some/endpoint")

    Attributes:
        token_manager: TokenManager instance for OAuth2 authentication
        base_url: Base URL including the API version
            (e.g., "https://graph.microsoft.com/beta")
        request_timeout: Total timeout per request in seconds
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        request_timeout: float = 60.0,
    ):
        """Initialize the GraphClient.

        Args:
            token_manager: TokenManager instance for authentication
            base_url: API base URL. If not provided, reads GRAPH_BASE_URL
                and falls back to the beta endpoint.
            request_timeout: Total timeout per request in seconds

        Raises:
            ConfigurationError: If the resolved base URL is not an http(s) URL.
        """
        self.token_manager = token_manager
        self.base_url = (
            base_url or os.getenv("GRAPH_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self.request_timeout = request_timeout

        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"GRAPH_BASE_URL must be an http(s) URL, got {self.base_url!r}",
                missing_keys=["GRAPH_BASE_URL"],
            )

        # Session is created in __aenter__, closed in __aexit__
        self._session: Optional[aiohttp.ClientSession] = None

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "GraphClient":
        """Enter async context: create the HTTP session."""
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=10,
                limit_per_host=10,
            ),
            timeout=aiohttp.ClientTimeout(
                total=self.request_timeout,
                connect=10,
            ),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    async def _get_auth_headers(self) -> dict[str, str]:
        """Get authorization headers with current token."""
        token = await self.token_manager.get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    def _build_url(self, endpoint: str) -> str:
        """Resolve an endpoint path, or pass through an absolute nextLink."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}{endpoint}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a single HTTP request (no retry logic).

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint path or absolute URL
            params: Query parameters
            json_body: JSON request body

        Returns:
            Parsed JSON response as dict (empty for 204 / empty bodies)

        Raises:
            APIError: If response status is not 2xx
            RuntimeError: If called outside of async context manager
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        if not self._session:
            raise RuntimeError(
                "GraphClient must be used as async context manager: "
                "async with GraphClient(...) as client:"
            )

        url = self._build_url(endpoint)

        try:
            headers = await self._get_auth_headers()

            async with self._session.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=error_text,
                        retry_after=response.headers.get("Retry-After"),
                    )

                text = await response.text()
                if not text:
                    return {}
                return json.loads(text)

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=self.request_timeout,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            )

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        retry_after: Optional[str] = None,
    ) -> APIError:
        """Create appropriate APIError subclass based on status code."""
        if status == 401:
            return TokenExpiredError(
                "Access token expired or invalid",
                details={"endpoint": endpoint},
            )

        if status == 404:
            return NotFoundError(
                resource_type="Resource",
                resource_id=endpoint,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 429:
            wait_seconds = None
            if retry_after and retry_after.isdigit():
                wait_seconds = int(retry_after)
            return RateLimitError(
                f"Rate limit exceeded for {method} {endpoint}",
                retry_after=wait_seconds,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 400 or status == 422:
            return ValidationError(
                f"Validation failed for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        return APIError(
            f"{method} {endpoint} failed",
            status_code=status,
            endpoint=endpoint,
            method=method,
            response_body=response_body,
        )

    async def _request_with_auth_refresh(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make an HTTP request, refreshing the token once on 401.

        Every other failure propagates unchanged.

        Raises:
            TokenExpiredError: If the refreshed token is rejected as well
            APIError: For any other error status
            NetworkError: For transport failures
        """
        try:
            return await self._request(method, endpoint, params, json_body)
        except TokenExpiredError:
            logger.warning(f"Token rejected for {method} {endpoint}, refreshing")
            self.token_manager.invalidate()
            return await self._request(method, endpoint, params, json_body)

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a GET request.

        Args:
            endpoint: API endpoint path (or absolute nextLink URL)
            params: Query parameters

        Returns:
            Parsed JSON response
        """
        return await self._request_with_auth_refresh("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make a POST request.

        Args:
            endpoint: API endpoint path
            json_body: Request body as dict (None sends no body)
            params: Query parameters

        Returns:
            Parsed JSON response (empty dict for 204)
        """
        return await self._request_with_auth_refresh(
            "POST", endpoint, params=params, json_body=json_body
        )

    async def delete(self, endpoint: str) -> dict[str, Any]:
        """Make a DELETE request.

        Args:
            endpoint: API endpoint path

        Returns:
            Parsed JSON response (usually empty)
        """
        return await self._request_with_auth_refresh("DELETE", endpoint)

    # ----------------------------------------
    # JSON Batching
    # ----------------------------------------

    async def batch(self, requests: list[BatchRequest]) -> list[BatchResponse]:
        """Submit independent sub-requests in one $batch call.

        Sub-request failures come back as BatchResponse objects with their
        own status; only a failure of the envelope itself raises.

        Args:
            requests: Sub-requests, 1 to MAX_BATCH_REQUESTS, unique ids

        Returns:
            One BatchResponse per sub-response returned by the service,
            in the order the service returned them

        Raises:
            ValidationError: If the request list is empty, too large, or
                has duplicate ids
            APIError / NetworkError: If the $batch call itself fails
        """
        if not requests:
            raise ValidationError("A batch needs at least one request", field="requests")
        if len(requests) > MAX_BATCH_REQUESTS:
            raise ValidationError(
                f"A batch holds at most {MAX_BATCH_REQUESTS} requests, got {len(requests)}",
                field="requests",
            )
        ids = [r.id for r in requests]
        if len(set(ids)) != len(ids):
            raise ValidationError("Batch request ids must be unique", field="requests")

        payload = {"requests": [r.to_dict() for r in requests]}
        logger.debug(f"Submitting $batch with {len(requests)} request(s)")

        data = await self.post("/$batch", json_body=payload)

        responses = []
        for item in data.get("responses", []):
            body = item.get("body")
            responses.append(
                BatchResponse(
                    id=str(item.get("id")),
                    status=int(item.get("status", 0)),
                    body=body if isinstance(body, dict) else {},
                )
            )
        return responses

    # ----------------------------------------
    # Pagination Methods (Cursor-based)
    # ----------------------------------------

    async def paginate(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> AsyncIterator[list[dict]]:
        """Iterate through '@odata.nextLink' paginated responses.

        The first request goes to the endpoint with the given params; every
        later request goes to the nextLink URL verbatim, since it already
        carries the query and the skip token.

        Args:
            endpoint: API endpoint path
            config: Pagination configuration
            params: Additional query parameters (e.g., $filter, $select)

        Yields:
            List of items from each page
        """
        config = config or PaginationConfig()
        params = dict(params or {})
        if config.page_size:
            params["$top"] = config.page_size

        pages_fetched = 0
        total_items = 0
        next_link: Optional[str] = None

        while True:
            if next_link:
                data = await self.get(next_link)
            else:
                data = await self.get(endpoint, params=params)

            items = data.get("value", [])
            if items:
                yield items
                total_items += len(items)

            pages_fetched += 1
            logger.debug(f"Fetched page {pages_fetched} of {endpoint} ({total_items:,} items so far)")

            next_link = data.get("@odata.nextLink")
            if not next_link:
                break

            if config.max_pages and pages_fetched >= config.max_pages:
                logger.info(f"Reached max_pages limit ({config.max_pages})")
                break

            if config.delay_between_pages > 0:
                await asyncio.sleep(config.delay_between_pages)

        logger.info(
            f"Pagination of {endpoint} complete: {total_items:,} items in {pages_fetched} pages"
        )

    async def fetch_all(
        self,
        endpoint: str,
        config: Optional[PaginationConfig] = None,
        params: Optional[dict] = None,
    ) -> list[dict]:
        """Fetch all items from a paginated endpoint into one list.

        Args:
            endpoint: API endpoint path
            config: Pagination configuration
            params: Additional query parameters

        Returns:
            List of all items across all pages
        """
        all_items = []
        async for page in self.paginate(endpoint, config, params):
            all_items.extend(page)
        return all_items
