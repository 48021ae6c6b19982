"""FastAPI server — wires store, registry, scheduler and pruner together."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sitewatch.api.routes import api_router
from sitewatch.config import settings
from sitewatch.endpoints.loader import load_endpoints_file
from sitewatch.endpoints.registry import EndpointRegistry
from sitewatch.health.scheduler import HealthScheduler
from sitewatch.notifications import build_alert_manager
from sitewatch.storage import EndpointStore, HistoryStore, KVStore, RetentionPruner

logger = logging.getLogger(__name__)


class Monitor:
    """All long-lived components of one SiteWatch process."""

    def __init__(self, db_path: str | None = None) -> None:
        self.kv = KVStore(db_path or settings.db_path)
        self.store = EndpointStore(self.kv)
        self.history = HistoryStore(self.kv)
        self.registry = EndpointRegistry(self.store, self.history)
        self.scheduler = HealthScheduler(
            self.registry,
            self.history,
            dispatcher=build_alert_manager(),
            tick_interval=settings.tick_interval,
            max_concurrency=settings.max_concurrency,
        )
        self.pruner = RetentionPruner(self.history, interval=settings.prune_interval)

    async def start(self) -> None:
        if settings.endpoints_file:
            try:
                self.registry.import_definitions(load_endpoints_file(settings.endpoints_file))
            except Exception:
                logger.exception("Failed to import %s", settings.endpoints_file)
        self.registry.load()
        await self.pruner.start()
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.pruner.stop()
        self.kv.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start monitoring on startup, drain in-flight checks on shutdown."""
    monitor = Monitor()
    app.state.monitor = monitor
    app.state.registry = monitor.registry
    app.state.history = monitor.history
    app.state.scheduler = monitor.scheduler

    await monitor.start()
    logger.info("Monitoring %d endpoints", len(monitor.registry))

    yield

    await monitor.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="SiteWatch - Endpoint Health Monitor",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
