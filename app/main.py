from __future__ import annotations
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.sensmap import SensmapService, build_default_service
from settings import get_settings

logger = logging.getLogger(__name__)


async def run_compaction(service: SensmapService, interval: float) -> None:
    """Compact the report store every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            service.compact()
        except Exception:
            logger.exception(
                "Scheduled compaction failed; retrying next interval",
                extra={"interval": interval},
            )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    service = build_default_service()
    task = asyncio.create_task(run_compaction(service, get_settings().compaction_interval))
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        build_default_service.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensmap",
        description="Sensory comfort map and comfort-aware walking routes.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
