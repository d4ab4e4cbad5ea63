"""Access token refresh.

Both refreshers are ``async (shop_id) -> None`` callables. A successful
return means the shop store already holds the new token.
"""

from typing import Optional

import httpx

from ..api.base_client import BaseClient
from ..api.cafe24_client import Cafe24Client
from ..stores.shop_store import ShopStore
from ..utils.config import get_config
from ..utils.exceptions import TokenRefreshError
from ..utils.logger import get_api_logger


class RemoteTokenRefresher(BaseClient):
    """Ask the refresh endpoint of a (possibly remote) marketsync server."""

    def __init__(
        self,
        platform: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_config()
        super().__init__(base_url=base_url or config.env.base_url, transport=transport)
        self.platform = platform
        self.path = config.refresh.path.format(platform=platform)

    async def __call__(self, shop_id: str) -> None:
        try:
            response = await self.post(self.path, json={"shopId": shop_id})
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"refresh endpoint unreachable: {str(e)}", details={"shop_id": shop_id})

        if not response.is_success:
            raise TokenRefreshError(
                f"refresh endpoint failed: {response.status_code} {response.text}",
                details={"shop_id": shop_id, "status_code": response.status_code}
            )


class Cafe24TokenRefresher:
    """Run the Cafe24 refresh-token grant and store the new tokens."""

    def __init__(self, shop_store: ShopStore, client: Cafe24Client):
        self.shop_store = shop_store
        self.client = client
        self.config = get_config()
        self.logger = get_api_logger()

    async def __call__(self, shop_id: str) -> None:
        """
        Refresh the shop's access token.

        Raises:
            TokenRefreshError: If the shop has no refresh token, the OAuth app
                is not configured, or Cafe24 rejects the grant.
        """
        shop = self.shop_store.get_shop(shop_id)
        if shop is None:
            raise TokenRefreshError(f"Shop not found: {shop_id}", details={"shop_id": shop_id})

        credentials = shop.credentials
        refresh_token = credentials.get("refresh_token")
        if not refresh_token:
            raise TokenRefreshError("no refresh token", details={"shop_id": shop_id})

        client_id = credentials.get("client_id") or self.config.env.cafe24_client_id
        client_secret = credentials.get("client_secret") or self.config.env.cafe24_client_secret
        redirect_uri = credentials.get("redirect_uri") or self.config.env.cafe24_redirect_uri
        if not client_id or not client_secret:
            raise TokenRefreshError("missing client credentials", details={"shop_id": shop_id})

        payload = await self.client.refresh_access_token(
            mall_id=credentials.get("mall_id", shop_id),
            refresh_token=refresh_token,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )

        patch = {"access_token": payload["access_token"]}
        if payload.get("refresh_token"):
            patch["refresh_token"] = payload["refresh_token"]
        if payload.get("expires_at"):
            patch["expires_at"] = payload["expires_at"]

        self.shop_store.set_shop_credentials(shop_id, patch)
        self.logger.info(f"Stored refreshed access token for shop {shop_id}")
