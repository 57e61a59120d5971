"""FastAPI application entrypoint.

Responsibilities kept minimal:
  * Constructing the per-process provider, gateway and channel store (create_app)
  * Router registration (sync, webhooks)
  * Cross-cutting concerns: metrics middleware & exception handlers
"""

from contextlib import asynccontextmanager
import logging
import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from .adapters.google_calendar_provider import GoogleCalendarProvider
from .api.sync import router as sync_router
from .api.webhooks import router as webhooks_router
from .config import Settings, get_settings
from .errors import BaseAppException
from .logging_config import setup_logging
from .metrics import CHANNEL_STORE_SIZE, REQUEST_COUNT, REQUEST_LATENCY
from .ports.calendar_provider import CalendarProvider
from .services.channel_store import ChannelStore, build_channel_store
from .services.notification_service import NotificationService
from .usecases.manage_channels import ManageChannelsUseCase
from .usecases.sync_events import SyncGateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("calendar sync service started (channel store: %s)", app.state.channel_store.backend)
    yield
    app.state.channel_store.close()
    logger.info("calendar sync service stopped")


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[CalendarProvider] = None,
    channel_store: Optional[ChannelStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    provider = provider or GoogleCalendarProvider(timeout_seconds=settings.google_api_timeout_seconds)
    channel_store = channel_store or build_channel_store(
        settings.channel_store_backend, settings.redis_url, settings.channel_store_max_entries
    )

    app = FastAPI(title="Calendar Sync API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.provider = provider
    app.state.channel_store = channel_store
    app.state.gateway = SyncGateway(provider)
    app.state.channels = ManageChannelsUseCase(provider, channel_store)
    app.state.notifications = NotificationService(channel_store)
    CHANNEL_STORE_SIZE.labels(backend=channel_store.backend).set(channel_store.size())

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sync_router)
    app.include_router(webhooks_router)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        method = request.method
        start = time.perf_counter()
        response: Response = await call_next(request)
        # Route template, never the raw URL path
        route = request.scope.get("route")
        path = getattr(route, "path", None) or "unmatched"
        REQUEST_LATENCY.labels(method=method, path=path).observe(time.perf_counter() - start)
        REQUEST_COUNT.labels(method=method, path=path, status=str(response.status_code)).inc()
        return response

    @app.get("/metrics")
    def metrics():  # pragma: no cover - external scrape
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    def health(request: Request):
        store = request.app.state.channel_store
        health = {"status": "ok", "channelStoreBackend": store.backend}
        if store.backend == "redis":
            try:
                health["redis"] = "up" if store.redis.ping() else "down"
            except Exception:
                health["redis"] = "error"
        return health

    @app.exception_handler(BaseAppException)
    async def app_exception_handler(request: Request, exc: BaseAppException):
        return JSONResponse(status_code=exc.http_status, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request body", "message": problems})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):  # pragma: no cover
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})

    return app


def build_default_app() -> FastAPI:  # pragma: no cover - process entry point
    settings = get_settings()
    setup_logging(settings)
    return create_app(settings)
