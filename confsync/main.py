"""Config sync server entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from confsync.config import Settings, settings
from confsync.hub import Hub
from confsync.poller import ConfigPoller
from confsync.routers.page import router as page_router
from confsync.routers.ws import router as ws_router
from confsync.schemas import get_config_model
from confsync.shared import SharedConfig
from confsync.source import ConfigSource

log = logging.getLogger(__name__)

_POLLER_STOP_TIMEOUT_S = 2.0


def create_app(
    cfg: Settings = settings,
    *,
    source: ConfigSource | None = None,
    start_poller: bool = True,
) -> FastAPI:
    """Build the app. Shared state lives on ``app.state``; the poller runs in the lifespan."""
    model = get_config_model(cfg.config_schema)
    shared = SharedConfig()
    hub = Hub()
    if source is None:
        source = ConfigSource(cfg.config_source_url, model, timeout_s=cfg.fetch_timeout_s)
    poller = ConfigPoller(source, shared, hub, interval_s=cfg.poll_interval_s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop the upstream client and the poll loop."""
        if not start_poller:
            yield
            return

        await source.start()
        task = asyncio.create_task(poller.run(), name="config-poller")
        try:
            yield
        finally:
            poller.stop()
            try:
                await asyncio.wait_for(task, timeout=_POLLER_STOP_TIMEOUT_S)
            except asyncio.TimeoutError:
                log.warning("config poller did not stop within %.1fs", _POLLER_STOP_TIMEOUT_S)
            await source.close()

    app = FastAPI(title="Config Sync Server", version="0.1.0", lifespan=lifespan)
    app.state.settings = cfg
    app.state.config_model = model
    app.state.shared_config = shared
    app.state.hub = hub
    app.state.poller = poller

    app.include_router(ws_router)
    app.include_router(page_router)

    @app.get("/health")
    async def health():
        """Liveness plus a view of the shared config, hub and poller."""
        shared_snapshot = shared.snapshot()
        return JSONResponse(
            {
                "status": "ok" if shared_snapshot["available"] else "waiting",
                "config_schema": cfg.config_schema,
                "config_source_url": cfg.config_source_url,
                "shared": shared_snapshot,
                "hub": hub.snapshot(),
                "poller": poller.snapshot(),
            }
        )

    return app


app = create_app()


def main() -> None:
    logging.basicConfig(
        level=settings.log_level_no,
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    )
    uvicorn.run(
        "confsync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
