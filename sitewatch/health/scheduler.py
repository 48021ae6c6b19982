"""Health check scheduler — a short tick loop that dispatches due checks.

Every tick the scheduler asks the registry which enabled endpoints are due,
starts one task per due endpoint and waits for the whole batch before the
next tick. A full check of every enabled endpoint runs once at start so
status is populated without waiting for the first tick.

Shutdown sets one ``asyncio.Event`` that every in-flight check watches;
pending requests are abandoned (recorded as failures) and ``stop()``
returns once the last batch has drained.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import httpx

from sitewatch.errors import StorageError
from sitewatch.health.engine import execute_check, make_client
from sitewatch.health.state import EndpointRuntimeState, Transition, apply_outcome
from sitewatch.storage.history import HealthCheckRecord, HistoryStore, to_ns

if TYPE_CHECKING:
    from sitewatch.endpoints.registry import EndpointRegistry
    from sitewatch.notifications import AlertDispatcher

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 5.0  # seconds; well below the smallest sensible check interval


class HealthScheduler:
    """Schedules and executes health checks for all registered endpoints.

    Lifecycle:
        scheduler = HealthScheduler(registry, history, dispatcher)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        history: HistoryStore,
        dispatcher: AlertDispatcher | None = None,
        on_transition: Callable[[Transition], Any] | None = None,
        on_result: Callable[[HealthCheckRecord], Any] | None = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        max_concurrency: int = 0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.registry = registry
        self.history = history
        self.dispatcher = dispatcher
        self.on_transition = on_transition  # structured transition observer
        self.on_result = on_result
        self.tick_interval = tick_interval
        self.max_concurrency = max_concurrency
        self._client = client
        self._owns_client = client is None
        self._semaphore: asyncio.Semaphore | None = None
        self._shutdown: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def _ensure_runtime(self) -> None:
        if self._shutdown is None:
            self._shutdown = asyncio.Event()
        if self._client is None:
            self._client = make_client()
        if self.max_concurrency > 0 and self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def start(self) -> None:
        """Run every enabled check once, then start the tick loop."""
        if self._running:
            return
        self._ensure_runtime()
        shutdown = self._shutdown
        self._running = True
        await self.run_all_now()
        if not self._running or shutdown.is_set():
            logger.info("Health scheduler stopped during the initial check pass")
            return
        self._task = asyncio.create_task(self._tick_loop(shutdown), name="health-tick-loop")
        logger.info(
            "Health scheduler started: %d endpoints, tick=%ss", len(self.registry), self.tick_interval,
        )

    async def stop(self) -> None:
        """Signal shutdown, abort in-flight checks and wait for the batch to drain."""
        if self._shutdown is not None:
            self._shutdown.set()
        self._running = False
        if self._task:
            await self._task
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        self._shutdown = None
        logger.info("Health scheduler stopped")

    async def run_all_now(self) -> list[HealthCheckRecord]:
        """Check every enabled endpoint immediately, regardless of next-due."""
        return await self._run_batch(self.registry.enabled_states(), require_due=False)

    async def run_due(self, now: datetime | None = None) -> list[HealthCheckRecord]:
        """One tick: check the endpoints that are due at ``now``."""
        now = now or datetime.now(timezone.utc)
        return await self._run_batch(self.registry.due(now), now=now)

    async def run_endpoint_now(self, endpoint_id: str) -> HealthCheckRecord | None:
        """Manual trigger for one endpoint. None if a check is already running."""
        state = self.registry.get(endpoint_id)
        self._ensure_runtime()
        return await self._check_endpoint(state, require_due=False)

    async def _run_batch(
        self,
        states: list[EndpointRuntimeState],
        require_due: bool = True,
        now: datetime | None = None,
    ) -> list[HealthCheckRecord]:
        if not states:
            return []
        self._ensure_runtime()
        results = await asyncio.gather(
            *(self._check_endpoint(s, require_due=require_due, now=now) for s in states),
            return_exceptions=True,
        )
        records = []
        for state, result in zip(states, results):
            if isinstance(result, BaseException):
                logger.error("Health check error: %s", state.id, exc_info=result)
            elif result is not None:
                records.append(result)
        return records

    async def _check_endpoint(
        self,
        state: EndpointRuntimeState,
        require_due: bool = True,
        now: datetime | None = None,
    ) -> HealthCheckRecord | None:
        """Request, fold into state, record history, dispatch any transition."""
        if not state.try_begin_check(now, require_due=require_due):
            return None
        try:
            definition = state.definition_copy()
            if self._semaphore is not None:
                async with self._semaphore:
                    outcome = await execute_check(definition, self._client, self._shutdown)
            else:
                outcome = await execute_check(definition, self._client, self._shutdown)

            transition, snapshot = apply_outcome(state, outcome)

            if outcome.success:
                logger.debug(
                    "[%s] check passed (status: %s, %.0fms)",
                    definition.name, snapshot.status.value, outcome.response_time * 1000,
                )
            else:
                logger.info(
                    "[%s] check failed (status: %s, error: %s)",
                    definition.name, snapshot.status.value, outcome.error,
                )

            record = HealthCheckRecord(
                endpoint_id=definition.id,
                timestamp_ns=to_ns(snapshot.last_check),
                status=snapshot.status.value,
                response_time=outcome.response_time,
                status_code=outcome.status_code,
                error=outcome.error,
            )
            if definition.id in self.registry:
                loop = asyncio.get_running_loop()
                try:
                    record = await loop.run_in_executor(None, self.history.append, record)
                except StorageError:
                    # state already advanced, so the transition is still dispatched
                    logger.exception("Failed to record history for %s", definition.id)
            else:
                logger.debug("[%s] removed during check; history not written", definition.name)

            if self.on_result:
                try:
                    self.on_result(record)
                except Exception:
                    logger.exception("Result callback error")

            if transition is not None:
                await self._handle_transition(transition)
            return record
        finally:
            state.end_check()

    async def _handle_transition(self, transition: Transition) -> None:
        if self.on_transition:
            try:
                self.on_transition(transition)
            except Exception:
                logger.exception("Transition observer error")

        if transition.state.alerts_suppressed:
            logger.info(
                "[%s] %s alert suppressed", transition.endpoint.name, transition.kind.value,
            )
            return
        if self.dispatcher is None:
            return
        try:
            await self.dispatcher.notify(transition)
        except Exception:
            logger.exception("Alert dispatch failed for %s", transition.endpoint.id)

    async def _tick_loop(self, shutdown: asyncio.Event) -> None:
        """Wake every ``tick_interval`` seconds until shutdown."""
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.tick_interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_due()
            except Exception:
                logger.exception("Scheduler tick failed")
