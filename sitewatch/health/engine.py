"""Health check executor — one bounded HTTP request per invocation.

The outcome is classified, never raised:

- request could not be built      → failure "failed to create request: …" (0 ms)
- transport error / timeout / abort → failure "request failed: …"
- status code != expected          → failure "unexpected status code: got X, expected Y"
- status code == expected          → success

There are no retries here; repeated scheduled checks and the thresholds in
``state.py`` decide when an endpoint is really down.
"""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from sitewatch.endpoints.models import EndpointDefinition
from sitewatch.errors import TransportError
from sitewatch.health.state import CheckOutcome

logger = logging.getLogger(__name__)

USER_AGENT = "SiteWatch/0.1"


def make_client() -> httpx.AsyncClient:
    """Shared client for all checks; per-request deadlines come from each endpoint."""
    return httpx.AsyncClient(
        follow_redirects=False,
        headers={"User-Agent": USER_AGENT},
        timeout=None,
    )


async def _send_bounded(
    client: httpx.AsyncClient,
    request: httpx.Request,
    timeout: float,
    shutdown: asyncio.Event | None,
) -> httpx.Response:
    """Send ``request``, giving up after ``timeout`` seconds or on shutdown.

    The response is streamed: only the status line and headers are read, and
    the caller closes it without touching the body.
    """
    send = asyncio.ensure_future(client.send(request, stream=True))
    waiters: set[asyncio.Future] = {send}
    stop: asyncio.Future | None = None
    if shutdown is not None:
        stop = asyncio.ensure_future(shutdown.wait())
        waiters.add(stop)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        send.cancel()
        raise
    finally:
        if stop is not None and not stop.done():
            stop.cancel()

    if send in done:
        return send.result()

    send.cancel()
    try:
        late = await send
    except (asyncio.CancelledError, Exception):
        pass  # the request is being abandoned
    else:
        await late.aclose()
    if stop is not None and stop in done:
        raise TransportError("check cancelled")
    raise TransportError(f"timeout after {timeout:g}s")


async def execute_check(
    definition: EndpointDefinition,
    client: httpx.AsyncClient,
    shutdown: asyncio.Event | None = None,
) -> CheckOutcome:
    """Check one endpoint and classify the result."""
    try:
        request = client.build_request(
            definition.method,
            definition.url,
            headers=definition.headers or None,
        )
    except Exception as e:
        return CheckOutcome(
            success=False, response_time=0.0,
            error=f"failed to create request: {e}",
        )

    t0 = time.perf_counter()
    try:
        response = await _send_bounded(client, request, definition.timeout, shutdown)
    except TransportError as e:
        return CheckOutcome(
            success=False, response_time=time.perf_counter() - t0,
            error=f"request failed: {e}",
        )
    except Exception as e:
        return CheckOutcome(
            success=False, response_time=time.perf_counter() - t0,
            error=f"request failed: {type(e).__name__}: {e}",
        )
    elapsed = time.perf_counter() - t0
    await response.aclose()

    if response.status_code != definition.expected_status:
        return CheckOutcome(
            success=False, response_time=elapsed, status_code=response.status_code,
            error=(
                f"unexpected status code: got {response.status_code}, "
                f"expected {definition.expected_status}"
            ),
        )

    return CheckOutcome(success=True, response_time=elapsed, status_code=response.status_code)
