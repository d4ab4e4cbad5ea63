"""Base async HTTP client with retry logic and error handling."""

import httpx
from typing import Optional, Dict
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    wait_none,
    retry_if_exception_type
)

from ..utils.config import get_config
from ..utils.logger import get_api_logger


class BaseClient:
    """Base async HTTP client with retry logic and logging."""

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize base client.

        Args:
            base_url: Base URL for API requests
            headers: Optional default headers
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.config = get_config()
        self.logger = get_api_logger()

        default_headers = {
            "Content-Type": "application/json",
            "User-Agent": "marketsync/1.0"
        }

        if headers:
            default_headers.update(headers)

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=default_headers,
            timeout=self.config.api.timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def request_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make a single HTTP request without transport retries.

        Used where the caller runs its own retry protocol.
        """
        self.logger.debug(f"{method} {url}")
        response = await self.client.request(method, url, **kwargs)
        self.logger.debug(f"Response: {response.status_code}")
        return response

    async def _make_request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make HTTP request, retrying timeouts and network errors.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            **kwargs: Additional request parameters

        Returns:
            HTTP response

        Raises:
            httpx.HTTPError: If all retry attempts fail
        """
        delay = self.config.api.transport_retry_delay

        @retry(
            stop=stop_after_attempt(self.config.api.transport_retries),
            wait=wait_exponential(multiplier=delay) if delay > 0 else wait_none(),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            reraise=True
        )
        async def _request():
            return await self.request_once(method, url, **kwargs)

        return await _request()

    async def get(self, endpoint: str, **kwargs) -> httpx.Response:
        """Make GET request."""
        return await self._make_request_with_retry("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> httpx.Response:
        """Make POST request."""
        return await self._make_request_with_retry("POST", endpoint, **kwargs)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
