"""FastAPI app entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from switchboard.api.deps import get_model_registry, get_settings
from switchboard.api.routes.models import router as models_router
from switchboard.api.routes.servers import router as servers_router
from switchboard.config import configure_logging


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    registry = get_model_registry()
    await registry.refresh()
    if settings.refresh_interval_seconds > 0:
        registry.start_periodic_refresh(settings.refresh_interval_seconds)
    try:
        yield
    finally:
        await registry.stop_periodic_refresh()


def create_app() -> FastAPI:
    app = FastAPI(title="Switchboard API", version="0.1.0", lifespan=lifespan)
    app.include_router(servers_router)
    app.include_router(models_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    configure_logging(get_settings().log_level)
    uvicorn.run("switchboard.api.app:app", host="0.0.0.0", port=8000, reload=False)
