"""FastAPI application factory for the Netwarden dashboard API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI

from netwarden import __version__
from netwarden.capture.base import ConnectionSource, ProcessInspector
from netwarden.config import NetwardenConfig
from netwarden.engine.runtime import open_engine
from netwarden.firewall.base import FirewallController

logger = logging.getLogger(__name__)


def create_app(
    config: NetwardenConfig | None = None,
    *,
    run_scanner: bool = True,
    firewall: FirewallController | None = None,
    inspector: ProcessInspector | None = None,
    connections: ConnectionSource | None = None,
) -> FastAPI:
    """Build the API. The scan loop runs in the same event loop as the server."""
    config = config or NetwardenConfig.load()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = await open_engine(
            config,
            firewall=firewall,
            inspector=inspector,
            connections=connections,
        )
        app.state.engine = engine
        app.state.control = engine.control

        scan_task: asyncio.Task[None] | None = None
        if run_scanner:
            scan_task = asyncio.create_task(engine.scanner.run())
        try:
            yield
        finally:
            engine.scanner.stop()
            if scan_task is not None:
                await scan_task
            await engine.close()

    app = FastAPI(
        title="Netwarden",
        version=__version__,
        docs_url="/api/docs",
        lifespan=lifespan,
    )
    app.state.config = config

    from netwarden.web.api.criteria import router as criteria_router
    from netwarden.web.api.rules import router as rules_router

    app.include_router(rules_router, prefix="/api")
    app.include_router(criteria_router, prefix="/api")

    return app
