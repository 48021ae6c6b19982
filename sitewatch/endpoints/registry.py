"""Endpoint registry — bridge between persisted definitions and live state.

The store is the source of truth for definitions; the registry keeps one
``EndpointRuntimeState`` per endpoint for the scheduler and status queries.
Every mutation persists first and only touches memory once the store write
succeeded, so a storage failure leaves both sides unchanged.

Locking: one ``RWLock`` guards the ID → state map (lookups and structural
insert/remove only). Field updates take the per-state lock, so checks on
unrelated endpoints never wait on each other.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sitewatch.endpoints.models import EndpointDefinition, generate_id
from sitewatch.errors import ConflictError, NotFoundError, StorageError, ValidationError
from sitewatch.health.state import EndpointRuntimeState, StateSnapshot
from sitewatch.storage.endpoints import EndpointStore
from sitewatch.storage.history import HistoryStore
from sitewatch.utils.locks import RWLock

logger = logging.getLogger(__name__)


class EndpointRegistry:
    """In-memory mirror of stored endpoints plus their runtime state."""

    def __init__(self, store: EndpointStore, history: HistoryStore | None = None) -> None:
        self.store = store
        self.history = history
        self._states: dict[str, EndpointRuntimeState] = {}
        self._lock = RWLock()

    # -- loading ---------------------------------------------------------------

    def load(self) -> list[EndpointRuntimeState]:
        """Build fresh runtime state for every stored definition.

        Cold-restart semantics: each stored endpoint gets status ``unknown``,
        zeroed counters and ``next_check = now``, discarding whatever counters
        it had. States for IDs no longer in the store are left in place.
        """
        definitions = self.store.all()
        now = datetime.now(timezone.utc)
        fresh = {d.id: EndpointRuntimeState(d, now) for d in definitions}
        with self._lock.write():
            self._states.update(fresh)
        logger.info("Loaded %d endpoints from store", len(fresh))
        return list(fresh.values())

    def reload(self) -> list[EndpointRuntimeState]:
        """Reload definitions; resets runtime counters (see ``load``)."""
        states = self.load()
        logger.info("Reloaded %d endpoints (runtime counters reset)", len(states))
        return states

    # -- mutations ---------------------------------------------------------------

    def add(self, defn: EndpointDefinition) -> EndpointDefinition:
        """Validate, persist and start tracking a new endpoint.

        Raises ``ValidationError`` for a missing name/URL and ``ConflictError``
        if the name or URL is already registered.
        """
        defn.name = (defn.name or "").strip()
        defn.url = (defn.url or "").strip()
        if not defn.name or not defn.url:
            raise ValidationError("name and url are required")

        defn.id = generate_id(defn.name, defn.url)
        if not defn.id:
            raise ValidationError(f"cannot derive an ID from name={defn.name!r} url={defn.url!r}")

        stored = self.store.insert_unique(defn)
        state = EndpointRuntimeState(stored)
        with self._lock.write():
            self._states[stored.id] = state
        logger.info("Added endpoint: %s (%s)", stored.name, stored.id)
        return stored.copy()

    def import_definitions(self, definitions: Iterable[EndpointDefinition]) -> int:
        """Add definitions whose ID is not stored yet; existing ones are kept."""
        imported = 0
        for defn in definitions:
            endpoint_id = generate_id(defn.name, defn.url)
            if self.store.exists(endpoint_id):
                logger.debug("Endpoint %s already stored — keeping existing settings", endpoint_id)
                continue
            try:
                self.add(defn)
            except ConflictError as e:
                logger.warning("Skipping imported endpoint %r: %s", defn.name, e)
                continue
            imported += 1
        if imported:
            logger.info("Imported %d endpoints", imported)
        return imported

    def remove(self, endpoint_id: str) -> None:
        """Delete from the store, then from memory. Errors propagate."""
        self.store.delete(endpoint_id)
        with self._lock.write():
            self._states.pop(endpoint_id, None)
        if self.history is not None:
            try:
                self.history.delete_endpoint_history(endpoint_id)
            except StorageError:
                logger.exception("Failed to purge history for removed endpoint %s", endpoint_id)
        logger.info("Removed endpoint: %s", endpoint_id)

    def set_enabled(self, endpoint_id: str, enabled: bool) -> EndpointDefinition:
        stored = self.store.set_enabled(endpoint_id, enabled)
        state = self._lookup(endpoint_id)
        if state is not None:
            with state.lock:
                state.enabled = enabled
                state.definition.enabled = enabled
        logger.info("%s endpoint: %s", "Enabled" if enabled else "Disabled", endpoint_id)
        return stored

    def set_alerts_suppressed(self, endpoint_id: str, suppressed: bool) -> EndpointDefinition:
        stored = self.store.set_alerts_suppressed(endpoint_id, suppressed)
        state = self._lookup(endpoint_id)
        if state is not None:
            with state.lock:
                state.alerts_suppressed = suppressed
                state.definition.alerts_suppressed = suppressed
        logger.info(
            "%s alerts for endpoint: %s", "Suppressed" if suppressed else "Unsuppressed", endpoint_id,
        )
        return stored

    def update_settings(
        self,
        endpoint_id: str,
        check_interval: float | None = None,
        timeout: float | None = None,
        failure_threshold: int | None = None,
        success_threshold: int | None = None,
    ) -> EndpointDefinition:
        """Change scheduling/threshold settings. ``None`` or non-positive = keep."""

        def mutate(d: EndpointDefinition) -> None:
            if check_interval and check_interval > 0:
                d.check_interval = check_interval
            if timeout and timeout > 0:
                d.timeout = timeout
            if failure_threshold and failure_threshold > 0:
                d.failure_threshold = failure_threshold
            if success_threshold and success_threshold > 0:
                d.success_threshold = success_threshold

        stored = self.store.update(endpoint_id, mutate)
        state = self._lookup(endpoint_id)
        if state is not None:
            with state.lock:
                state.definition.check_interval = stored.check_interval
                state.definition.timeout = stored.timeout
                state.definition.failure_threshold = stored.failure_threshold
                state.definition.success_threshold = stored.success_threshold
        logger.info("Updated endpoint settings: %s", endpoint_id)
        return stored

    # -- queries -----------------------------------------------------------------

    def _lookup(self, endpoint_id: str) -> EndpointRuntimeState | None:
        with self._lock.read():
            return self._states.get(endpoint_id)

    def __contains__(self, endpoint_id: str) -> bool:
        return self._lookup(endpoint_id) is not None

    def get(self, endpoint_id: str) -> EndpointRuntimeState:
        state = self._lookup(endpoint_id)
        if state is None:
            raise NotFoundError(f"endpoint {endpoint_id}")
        return state

    def states(self) -> list[EndpointRuntimeState]:
        with self._lock.read():
            return list(self._states.values())

    def enabled_states(self) -> list[EndpointRuntimeState]:
        result = []
        for state in self.states():
            with state.lock:
                if state.enabled:
                    result.append(state)
        return result

    def due(self, now: datetime | None = None) -> list[EndpointRuntimeState]:
        """Enabled endpoints whose next check time has passed."""
        now = now or datetime.now(timezone.utc)
        return [s for s in self.states() if s.is_due(now)]

    def snapshots(self) -> list[tuple[EndpointDefinition, StateSnapshot]]:
        result = []
        for state in self.states():
            with state.lock:
                result.append((state.definition.copy(), state._snapshot_locked()))
        return result

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._states)
