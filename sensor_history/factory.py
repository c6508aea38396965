from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from sensor_history.api.router import api_router
from sensor_history.core.config import Settings, load_settings
from sensor_history.core.logs import configure_logging
from sensor_history.repositories.sqlite import SqliteReadingRepository
from sensor_history.services.retention import RetentionService, SweepLimiter

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> SqliteReadingRepository:
    return SqliteReadingRepository(
        db_path=settings.db_path, timeout_seconds=settings.db_timeout_seconds
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop_event: threading.Event | None = None
        bg_thread: threading.Thread | None = None

        app.state.settings = settings
        app.state.store = create_store(settings)
        app.state.sweep_limiter = SweepLimiter(
            min_interval_seconds=settings.sweep_min_interval_seconds
        )

        if settings.sweep_background_enabled:
            stop_event = threading.Event()
            retention = RetentionService(
                repo=app.state.store,
                retention_days=settings.retention_days,
                batch_size=settings.sweep_batch_size,
                limiter=app.state.sweep_limiter,
            )

            def _loop() -> None:
                while stop_event is not None and not stop_event.is_set():
                    try:
                        retention.maybe_sweep()
                    except Exception:
                        logger.exception("Background retention sweep failed")
                    stop_event.wait(settings.sweep_background_interval_seconds)

            bg_thread = threading.Thread(
                target=_loop, name="retention-sweep", daemon=True
            )
            bg_thread.start()

        yield
        if stop_event is not None:
            stop_event.set()
        if bg_thread is not None and bg_thread.is_alive():
            bg_thread.join(timeout=2.0)
        app.state.store.close()

    docs_enabled = settings.docs_enabled and not settings.is_production
    app = FastAPI(
        title="Sensor History API",
        version="0.1.0",
        debug=settings.debug,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    if settings.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    @app.middleware("http")
    async def security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if settings.is_production:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response

    @app.get("/", tags=["meta"])
    def root():
        return {"name": "sensor-history", "status": "ok"}

    app.include_router(api_router)
    return app
