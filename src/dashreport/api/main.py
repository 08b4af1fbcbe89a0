from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from dashreport.api.routes import health, report
from dashreport.config import get_settings
from dashreport.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level, log_file=settings.log_file)
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="dashreport",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(report.router, tags=["report"])
    app.include_router(health.router, tags=["health"])
    return app


app = create_app()
