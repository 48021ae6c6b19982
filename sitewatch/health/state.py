"""Per-endpoint runtime state and the threshold hysteresis state machine.

Each endpoint keeps two counters, consecutive successes and consecutive
failures. Every outcome increments one and zeroes the other. The reported
status only moves once a streak reaches its threshold:

    unknown ──(failures ≥ F)──▶ unhealthy ──(successes ≥ S)──▶ healthy
    unknown ──(successes ≥ S)──▶ healthy  ──(failures ≥ F)──▶ unhealthy

``unknown`` is only the initial value and is never re-entered.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from sitewatch.endpoints.models import EndpointDefinition


class Status(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class TransitionKind(str, Enum):
    FAILURE = "failure"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class CheckOutcome:
    """Raw, classified result of one check."""

    success: bool
    response_time: float  # seconds; 0 when the request never left the process
    status_code: int | None = None
    error: str = ""


@dataclass(frozen=True)
class StateSnapshot:
    """Immutable copy of an endpoint's runtime state."""

    id: str
    status: Status
    last_check: datetime | None
    last_status_change: datetime | None
    consecutive_failures: int
    consecutive_successes: int
    response_time: float
    last_error: str
    next_check: datetime
    enabled: bool
    alerts_suppressed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "last_status_change": (
                self.last_status_change.isoformat() if self.last_status_change else None
            ),
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "response_time_ms": round(self.response_time * 1000, 3),
            "last_error": self.last_error,
            "next_check": self.next_check.isoformat(),
            "enabled": self.enabled,
            "alerts_suppressed": self.alerts_suppressed,
        }


@dataclass(frozen=True)
class Transition:
    """A reported-status change, handed to the alert dispatcher."""

    kind: TransitionKind
    previous: Status
    endpoint: EndpointDefinition
    state: StateSnapshot

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "previous_status": self.previous.value,
            "endpoint": self.endpoint.to_dict(),
            "state": self.state.to_dict(),
        }


class EndpointRuntimeState:
    """Live state of one endpoint. All field access goes through ``lock``."""

    def __init__(self, definition: EndpointDefinition, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        self.lock = threading.Lock()
        self.definition = definition.copy()
        self.status = Status.UNKNOWN
        self.last_check: datetime | None = None
        self.last_status_change: datetime | None = None
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self.response_time = 0.0
        self.last_error = ""
        self.next_check = now
        self.enabled = definition.enabled
        self.alerts_suppressed = definition.alerts_suppressed
        self.in_flight = False

    @property
    def id(self) -> str:
        return self.definition.id

    def snapshot(self) -> StateSnapshot:
        with self.lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> StateSnapshot:
        return StateSnapshot(
            id=self.definition.id,
            status=self.status,
            last_check=self.last_check,
            last_status_change=self.last_status_change,
            consecutive_failures=self.consecutive_failures,
            consecutive_successes=self.consecutive_successes,
            response_time=self.response_time,
            last_error=self.last_error,
            next_check=self.next_check,
            enabled=self.enabled,
            alerts_suppressed=self.alerts_suppressed,
        )

    def is_due(self, now: datetime) -> bool:
        with self.lock:
            return self.enabled and not self.in_flight and self.next_check <= now

    def try_begin_check(self, now: datetime | None = None, require_due: bool = True) -> bool:
        """Mark a check in flight. Returns False if one already is (or not due)."""
        with self.lock:
            if self.in_flight:
                return False
            if require_due and (not self.enabled or (now is not None and self.next_check > now)):
                return False
            self.in_flight = True
            return True

    def end_check(self) -> None:
        with self.lock:
            self.in_flight = False

    def definition_copy(self) -> EndpointDefinition:
        with self.lock:
            return self.definition.copy()


def apply_outcome(
    state: EndpointRuntimeState,
    outcome: CheckOutcome,
    now: datetime | None = None,
) -> tuple[Transition | None, StateSnapshot]:
    """Fold one check outcome into ``state``.

    Returns the transition (if the reported status changed to healthy from
    unhealthy, or to unhealthy from anything else) and a snapshot taken
    under the same lock acquisition.
    """
    now = now or datetime.now(timezone.utc)
    with state.lock:
        previous = state.status
        defn = state.definition

        state.last_check = now
        state.next_check = now + timedelta(seconds=defn.check_interval)
        state.response_time = outcome.response_time

        if outcome.success:
            state.consecutive_failures = 0
            state.consecutive_successes += 1
            state.last_error = ""
            if state.consecutive_successes >= defn.success_threshold:
                state.status = Status.HEALTHY
        else:
            state.consecutive_successes = 0
            state.consecutive_failures += 1
            state.last_error = outcome.error
            if state.consecutive_failures >= defn.failure_threshold:
                state.status = Status.UNHEALTHY

        kind: TransitionKind | None = None
        if state.status != previous:
            state.last_status_change = now
            if state.status == Status.UNHEALTHY:
                kind = TransitionKind.FAILURE
            elif state.status == Status.HEALTHY and previous == Status.UNHEALTHY:
                kind = TransitionKind.RECOVERY

        snapshot = state._snapshot_locked()
        if kind is None:
            return None, snapshot
        return Transition(kind=kind, previous=previous, endpoint=defn.copy(), state=snapshot), snapshot
