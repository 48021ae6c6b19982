"""Health subsystem — check executor, hysteresis state machine, scheduler."""

from .engine import execute_check
from .scheduler import HealthScheduler
from .state import (
    CheckOutcome,
    EndpointRuntimeState,
    StateSnapshot,
    Status,
    Transition,
    TransitionKind,
    apply_outcome,
)
