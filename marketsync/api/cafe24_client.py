"""Cafe24 Admin API client (REST)."""

from typing import Any, Dict, List, Optional

import httpx

from .base_client import BaseClient
from ..utils.exceptions import PlatformAPIError, TokenRefreshError


class Cafe24Client(BaseClient):
    """Client for the Cafe24 Admin API and its OAuth token endpoint.

    URLs are absolute per mall (``https://{mall_id}.cafe24api.com/...``) so
    one client serves every connected Cafe24 shop.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(transport=transport)
        self.api_base_url = self.config.cafe24.api_base_url
        self.oauth_url = self.config.cafe24.oauth_url
        self.api_version = self.config.cafe24.api_version
        self.products_key = self.config.cafe24.products_key
        self.page_limit = self.config.cafe24.page_limit

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def products_url(self, mall_id: str) -> str:
        return f"{self.api_base_url.format(mall_id=mall_id).rstrip('/')}/products"

    async def list_products(
        self,
        mall_id: str,
        access_token: str,
        shop_no: Any = 1,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Issue one product-listing request.

        The raw response is returned unchecked: status handling belongs to
        the caller's retry protocol.
        """
        query: Dict[str, Any] = {"shop_no": shop_no, "limit": self.page_limit}
        if params:
            query.update(params)

        headers = {
            "Authorization": f"Bearer {access_token}",
            "X-Cafe24-Api-Version": self.api_version,
        }
        return await self.request_once("GET", self.products_url(mall_id), params=query, headers=headers)

    def extract_products(self, response: httpx.Response) -> List[Dict[str, Any]]:
        """
        Pull the product array out of a listing response body.

        Raises:
            PlatformAPIError: If the body is not JSON or has no product array.
        """
        try:
            body = response.json()
        except ValueError as e:
            raise PlatformAPIError(
                "Cafe24 returned a non-JSON body",
                details={"error": str(e), "response": response.text[:500]}
            )

        if not isinstance(body, dict):
            raise PlatformAPIError("Unexpected Cafe24 response shape", details={"response": response.text[:500]})

        items = body.get(self.products_key)
        if items is None:
            items = body.get("items", [])
        if not isinstance(items, list):
            raise PlatformAPIError(
                f"Cafe24 '{self.products_key}' is not a list",
                details={"response": response.text[:500]}
            )
        return items

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def refresh_access_token(
        self,
        mall_id: str,
        refresh_token: str,
        client_id: str,
        client_secret: str,
        redirect_uri: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Exchange a refresh token for a new access token.

        Returns:
            The token payload (``access_token``, ``refresh_token``, expiry fields).

        Raises:
            TokenRefreshError: On transport failure or a non-200 response.
        """
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        if redirect_uri:
            data["redirect_uri"] = redirect_uri

        url = self.oauth_url.format(mall_id=mall_id)
        try:
            response = await self.post(
                url,
                data=data,
                auth=(client_id, client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Network error during token refresh: {str(e)}", details={"error": str(e)})

        if response.status_code != 200:
            raise TokenRefreshError(
                f"Token refresh failed (HTTP {response.status_code})",
                details={"status_code": response.status_code, "response": response.text}
            )

        payload = response.json()
        if not payload.get("access_token"):
            raise TokenRefreshError("Token refresh response has no access_token", details={"response": response.text})

        self.logger.info(f"Refreshed Cafe24 access token for mall {mall_id}")
        return payload
