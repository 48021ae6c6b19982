"""Endpoint definitions — typed model, defaults, IDs and duration parsing.

Single source of truth for what a monitored endpoint looks like. The store
persists these as JSON documents, the registry mirrors them in memory and the
executor consumes read-only copies.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sitewatch.errors import ValidationError

DEFAULT_METHOD = "GET"
DEFAULT_TIMEOUT = 10.0  # seconds
DEFAULT_CHECK_INTERVAL = 30.0  # seconds
DEFAULT_EXPECTED_STATUS = 200
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_SUCCESS_THRESHOLD = 2


# ── Data model ───────────────────────────────────────────────────────────────


@dataclass
class EndpointDefinition:
    """A monitored HTTP endpoint as stored in the ``endpoints`` namespace."""

    name: str
    url: str
    id: str = ""
    method: str = DEFAULT_METHOD
    timeout: float = DEFAULT_TIMEOUT
    check_interval: float = DEFAULT_CHECK_INTERVAL
    expected_status: int = DEFAULT_EXPECTED_STATUS
    headers: dict[str, str] = field(default_factory=dict)
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    success_threshold: int = DEFAULT_SUCCESS_THRESHOLD
    enabled: bool = True
    alerts_suppressed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def apply_defaults(self) -> EndpointDefinition:
        """Resolve unset or non-positive values to their defaults (in place)."""
        if not self.id:
            self.id = generate_id(self.name, self.url)
        self.method = (self.method or DEFAULT_METHOD).upper()
        if not self.timeout or self.timeout <= 0:
            self.timeout = DEFAULT_TIMEOUT
        if not self.check_interval or self.check_interval <= 0:
            self.check_interval = DEFAULT_CHECK_INTERVAL
        if not self.expected_status or self.expected_status <= 0:
            self.expected_status = DEFAULT_EXPECTED_STATUS
        if not self.failure_threshold or self.failure_threshold < 1:
            self.failure_threshold = DEFAULT_FAILURE_THRESHOLD
        if not self.success_threshold or self.success_threshold < 1:
            self.success_threshold = DEFAULT_SUCCESS_THRESHOLD
        if self.headers is None:
            self.headers = {}
        return self

    def copy(self) -> EndpointDefinition:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "method": self.method,
            "timeout": self.timeout,
            "check_interval": self.check_interval,
            "expected_status": self.expected_status,
            "headers": dict(self.headers),
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "enabled": self.enabled,
            "alerts_suppressed": self.alerts_suppressed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> EndpointDefinition:
        """Build a definition from a stored document or API/YAML input.

        Durations may be numbers (seconds) or Go-style strings (``"1m30s"``).
        """
        name = str(raw.get("name") or "").strip()
        url = str(raw.get("url") or "").strip()
        return cls(
            id=raw.get("id") or "",
            name=name,
            url=url,
            method=raw.get("method") or DEFAULT_METHOD,
            timeout=_duration_field(raw, "timeout", DEFAULT_TIMEOUT),
            check_interval=_duration_field(raw, "check_interval", DEFAULT_CHECK_INTERVAL),
            expected_status=_int_field(raw, "expected_status", DEFAULT_EXPECTED_STATUS),
            headers={str(k): str(v) for k, v in (raw.get("headers") or {}).items()},
            failure_threshold=_int_field(raw, "failure_threshold", DEFAULT_FAILURE_THRESHOLD),
            success_threshold=_int_field(raw, "success_threshold", DEFAULT_SUCCESS_THRESHOLD),
            enabled=bool(raw.get("enabled", True)),
            alerts_suppressed=bool(raw.get("alerts_suppressed", False)),
            created_at=_parse_timestamp(raw.get("created_at")),
            updated_at=_parse_timestamp(raw.get("updated_at")),
        )


# ── IDs ──────────────────────────────────────────────────────────────────────

_SEPARATORS = frozenset(" -_/:.")


def generate_id(name: str, url: str) -> str:
    """Deterministic URL-safe ID from name + URL.

    Same name with a different URL yields a different ID, so history for
    the two endpoints never mixes.
    """
    chars: list[str] = []
    for c in f"{name}-{url}":
        if c.isascii() and c.isalnum():
            chars.append(c)
        elif c in _SEPARATORS:
            if chars and chars[-1] != "-":
                chars.append("-")
    return "".join(chars).strip("-")


# ── Durations ────────────────────────────────────────────────────────────────

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str | int | float) -> float:
    """Parse ``"10s"``, ``"1m30s"``, ``"250ms"`` or a bare number into seconds."""
    if isinstance(value, bool):
        raise ValidationError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValidationError(f"negative duration: {value!r}")
        return float(value)

    text = str(value).strip()
    if not text:
        raise ValidationError("empty duration")
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if seconds < 0:
            raise ValidationError(f"negative duration: {value!r}")
        return seconds

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValidationError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return total


def format_duration(seconds: float) -> str:
    """Compact human form used in logs and the CLI (``1m30s``, ``250ms``)."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    minutes, secs = divmod(round(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    if secs or not out:
        out += f"{secs}s"
    return out


# ── Parsers ──────────────────────────────────────────────────────────────────


def _duration_field(raw: dict[str, Any], key: str, default: float) -> float:
    value = raw.get(key)
    if value in (None, ""):
        return default
    return parse_duration(value)


def _int_field(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"invalid {key}: {value!r}") from e


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationError(f"invalid timestamp: {value!r}") from e


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
