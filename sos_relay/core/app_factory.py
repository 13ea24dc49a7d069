"""Application factory for the relay.

Centralizes app construction (settings, storage, middleware, handlers,
routers, background janitor) so tests can build isolated apps with their own
store and clock.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sos_relay.adapters.storage import AbstractKeyValueStore, create_store
from sos_relay.api.routes import health_router, rooms_router
from sos_relay.core.config import Settings, settings as default_settings
from sos_relay.core.exception_handlers import setup_exception_handlers
from sos_relay.core.logging import configure_logging
from sos_relay.core.middleware import request_id_middleware
from sos_relay.services.janitor import ExpiryJanitor
from sos_relay.services.relay_service import RelayService


def create_app(
    cfg: Settings | None = None,
    *,
    store: AbstractKeyValueStore | None = None,
    clock: Callable[[], float] = time.time,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the environment-derived settings.
        store: Backing store; defaults to the backend named in settings.
        clock: Time source shared by every entity.
        configure_logs: Install the root log handler (tests may opt out).

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = cfg or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    if store is None:
        store = create_store(cfg.storage)
    relay = RelayService.from_settings(cfg, store, clock=clock)
    janitor = ExpiryJanitor(relay, cfg.storage.sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await janitor.start()
        yield
        await janitor.stop()
        await relay.close()

    app = FastAPI(
        title="SOS Relay",
        description=(
            "Ephemeral group-chat relay. Rooms are addressed by a 16-character "
            "hash, keep their most recent messages and disappear an hour after "
            "creation. Room creation is throttled per client address."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.relay = relay
    app.state.janitor = janitor

    # Middleware
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.app.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=cfg.app.cors_max_age,
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(rooms_router)

    return app
