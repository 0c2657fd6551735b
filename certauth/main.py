# certauth/main.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from certauth.auth import auth_router
from certauth.auth.events import SecurityEventBus
from certauth.auth.registry import SessionRegistry
from certauth.core.settings import settings
from certauth.db.engine import engine as default_engine
from certauth.models import Base

logger = logging.getLogger(__name__)


async def _sweep_expired_sessions(registry: SessionRegistry, interval: int) -> None:
    """Background task: purge sessions whose tokens have expired."""
    while True:
        await asyncio.sleep(interval)
        try:
            registry.sweep_expired()
        except Exception as e:
            # Don't crash the background task on transient errors
            logger.error(f"Session sweep failed: {e}")


def create_app(
    registry: Optional[SessionRegistry] = None,
    events: Optional[SecurityEventBus] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    registry = registry or SessionRegistry()
    events = events or SecurityEventBus()
    engine = engine or default_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(bind=engine)

        sweep_task = None
        if settings.session_sweep_interval_seconds > 0:
            sweep_task = asyncio.create_task(
                _sweep_expired_sessions(registry, settings.session_sweep_interval_seconds)
            )
        logger.info("certauth started")
        yield
        if sweep_task:
            sweep_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweep_task
        registry.clear()
        logger.info("certauth stopped")

    app = FastAPI(
        title="Certificate Platform Auth API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Process-wide session state, one registry per application instance
    app.state.session_registry = registry
    app.state.event_bus = events

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


# Uvicorn entrypoint: uvicorn certauth.main:app --reload
app = create_app()
