"""Alert dispatch — the boundary the health engine calls on state transitions.

The engine only knows ``AlertDispatcher.notify(transition)``. Two plain
dispatchers ship here:

- ``LoggingAlertDispatcher`` writes one structured log line per transition
- ``WebhookAlertDispatcher`` POSTs the transition as JSON to a URL

``AlertManager`` fans a transition out to several dispatchers. Channel
specific formatting (Slack blocks, e-mail bodies) belongs to whatever sits
behind the webhook.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from sitewatch.config import settings
from sitewatch.health.state import Transition, TransitionKind

logger = logging.getLogger(__name__)


class AlertDispatcher(Protocol):
    async def notify(self, transition: Transition) -> None: ...


class LoggingAlertDispatcher:
    """Emit transitions as structured log records."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    async def notify(self, transition: Transition) -> None:
        ep, st = transition.endpoint, transition.state
        level = logging.WARNING if transition.kind == TransitionKind.FAILURE else logging.INFO
        self.log.log(
            level,
            "[%s] %s: %s → %s (failures=%d, error=%s)",
            ep.name, transition.kind.value.upper(), transition.previous.value,
            st.status.value, st.consecutive_failures, st.last_error or "-",
            extra={"event": "transition", "endpoint_id": ep.id, "kind": transition.kind.value},
        )


class WebhookAlertDispatcher:
    """POST ``{"alert_type": ..., "endpoint": ..., "state": ...}`` to a webhook."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        custom_fields: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.custom_fields = custom_fields or {}
        self._transport = transport

    def payload(self, transition: Transition) -> dict[str, Any]:
        ep, st = transition.endpoint, transition.state
        data: dict[str, Any] = {
            "alert_type": transition.kind.value,
            "previous_status": transition.previous.value,
            "endpoint": {"id": ep.id, "name": ep.name, "url": ep.url, "method": ep.method},
            "state": st.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        data.update(self.custom_fields)
        return data

    async def notify(self, transition: Transition) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=self.payload(transition))
            if 200 <= resp.status_code < 300:
                logger.info("Webhook alert sent for endpoint: %s", transition.endpoint.name)
            else:
                logger.warning("Webhook returned %d: %s", resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("Webhook alert failed: %s", exc)


class AlertManager:
    """Fan-out dispatcher; one failing channel never blocks the others."""

    def __init__(self, dispatchers: list[AlertDispatcher] | None = None) -> None:
        self.dispatchers: list[AlertDispatcher] = list(dispatchers or [])

    def add(self, dispatcher: AlertDispatcher) -> None:
        self.dispatchers.append(dispatcher)

    async def notify(self, transition: Transition) -> None:
        if not self.dispatchers:
            return
        results = await asyncio.gather(
            *(d.notify(transition) for d in self.dispatchers), return_exceptions=True,
        )
        for d, result in zip(self.dispatchers, results):
            if isinstance(result, Exception):
                logger.warning("Alert dispatcher %s failed: %s", type(d).__name__, result)


def build_alert_manager() -> AlertManager:
    """Dispatchers configured through ``settings``."""
    manager = AlertManager([LoggingAlertDispatcher()])
    if settings.alert_webhook_url:
        manager.add(
            WebhookAlertDispatcher(settings.alert_webhook_url, timeout=settings.alert_webhook_timeout)
        )
    return manager
