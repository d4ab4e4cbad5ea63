"""FastAPI server exposing catalog preview, import, token refresh and logs.

The periodic sync scheduler is embedded in this process so a single
service handles both on-demand requests and background syncs.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .api.cafe24_client import Cafe24Client
from .bootstrap import AppContext, build_context
from .scheduler import create_async_scheduler
from .services.sync_service import SyncService
from .services.token_refresh import Cafe24TokenRefresher
from .utils.config import get_config
from .utils.exceptions import (
    AuthenticationError,
    FetchExhaustedError,
    ShopNotFoundError,
    TokenRefreshError,
    UnsupportedPlatformError,
)
from .utils.logger import get_sync_logger

config = get_config()
logger = get_sync_logger()


class RefreshRequest(BaseModel):
    shop_id: str = Field(..., alias="shopId")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup / shutdown of the application."""
    context: Optional[AppContext] = getattr(app.state, "context", None)
    if context is None:
        context = build_context()
    app.state.context = context
    cafe24_client = Cafe24Client()
    app.state.refreshers = {"cafe24": Cafe24TokenRefresher(context.shop_store, cafe24_client)}

    logger.info("=" * 60)
    logger.info("Marketplace Sync Server Starting")
    logger.info("=" * 60)
    logger.info(f"Environment:          {config.env.environment}")
    logger.info(f"Port:                 {config.env.port}")
    logger.info(f"Adapters:             {', '.join(context.registry.platforms())}")
    logger.info("=" * 60)

    scheduler = None
    if getattr(app.state, "enable_scheduler", True):
        scheduler = create_async_scheduler(context)
        scheduler.start()
        logger.info("Sync scheduler started")

    yield

    if scheduler is not None:
        logger.info("Shutting down sync scheduler...")
        scheduler.shutdown(wait=False)
    await cafe24_client.close()
    await context.close()
    logger.info("Server shut down.")


def create_app(context: Optional[AppContext] = None, enable_scheduler: bool = True) -> FastAPI:
    """Build the FastAPI app; tests pass their own context."""
    app = FastAPI(
        title="Marketplace Sync Server",
        description="External marketplace product synchronization",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.context = context
    app.state.enable_scheduler = enable_scheduler

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.env.environment
        }

    @app.get("/shops/{shop_id}/products")
    async def shop_products(shop_id: str, request: Request):
        """Fetch a shop's normalized catalog without reconciling it."""
        service = SyncService(request.app.state.context)
        params: Dict[str, Any] = dict(request.query_params)
        try:
            products = await service.fetch_catalog(shop_id, params or None)
        except ShopNotFoundError as e:
            raise HTTPException(status_code=404, detail=e.message)
        except UnsupportedPlatformError as e:
            raise HTTPException(status_code=400, detail=e.message)
        except AuthenticationError as e:
            raise HTTPException(status_code=401, detail=e.message)
        except FetchExhaustedError as e:
            raise HTTPException(status_code=502, detail=e.message)
        return {"products": [p.to_dict() for p in products]}

    @app.post("/shops/{shop_id}/import")
    async def shop_import(shop_id: str, request: Request, dry: bool = False):
        """Fetch a shop's catalog and reconcile it (``?dry=1`` previews)."""
        context = request.app.state.context
        if context.shop_store.get_shop(shop_id) is None:
            raise HTTPException(status_code=404, detail=f"Shop not found: {shop_id}")

        result = await SyncService(context).sync_shop(shop_id, dry_run=dry)
        status_code = 200 if result.error is None else 502
        body = result.to_dict()
        if dry:
            body["preview"] = [r.to_dict() for r in result.report.results]
        return JSONResponse(status_code=status_code, content=body)

    @app.post("/integrations/{platform}/refresh")
    async def refresh_token(platform: str, payload: RefreshRequest, request: Request):
        """Refresh a shop's access token; the shop store is updated on success."""
        refresher = request.app.state.refreshers.get(platform.lower())
        if refresher is None:
            raise HTTPException(status_code=400, detail=f"Unsupported platform: {platform}")
        try:
            await refresher(payload.shop_id)
        except TokenRefreshError as e:
            logger.error(f"Token refresh failed for {payload.shop_id}: {e.message}")
            raise HTTPException(status_code=500, detail="refresh failed")
        return {"ok": True}

    @app.get("/logs")
    async def list_logs(request: Request, limit: int = 50, offset: int = 0):
        """Integration log, newest first."""
        if limit < 0 or offset < 0:
            raise HTTPException(status_code=400, detail="limit and offset must be non-negative")
        entries = request.app.state.context.log_sink.list(limit=limit, offset=offset)
        return {"logs": [entry.to_dict() for entry in entries]}

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Custom HTTP exception handler."""
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "status_code": exc.status_code
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """General exception handler for unexpected errors."""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if not config.is_production else "An error occurred"
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marketsync.server:app",
        host="0.0.0.0",
        port=config.env.port,
        reload=not config.is_production
    )
