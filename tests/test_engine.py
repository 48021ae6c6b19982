"""Tests for the health check executor."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import httpx

from sitewatch.endpoints.models import EndpointDefinition
from sitewatch.health.engine import USER_AGENT, execute_check, make_client


def _defn(**kw) -> EndpointDefinition:
    kw.setdefault("name", "API")
    kw.setdefault("url", "https://api.example.com/health")
    return EndpointDefinition(**kw).apply_defaults()


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _run(definition: EndpointDefinition, handler, shutdown: asyncio.Event | None = None):
    async def scenario():
        async with _client(handler) as client:
            return await execute_check(definition, client, shutdown)

    return asyncio.run(scenario())


class TestExecuteCheck:
    def test_success(self) -> None:
        outcome = _run(_defn(), lambda req: httpx.Response(200))
        assert outcome.success is True
        assert outcome.status_code == 200
        assert outcome.error == ""
        assert outcome.response_time >= 0

    def test_custom_expected_status(self) -> None:
        outcome = _run(_defn(expected_status=204), lambda req: httpx.Response(204))
        assert outcome.success is True

    def test_unexpected_status(self) -> None:
        outcome = _run(_defn(), lambda req: httpx.Response(503))
        assert outcome.success is False
        assert outcome.status_code == 503
        assert outcome.error == "unexpected status code: got 503, expected 200"

    def test_redirect_is_not_followed(self) -> None:
        outcome = _run(
            _defn(), lambda req: httpx.Response(301, headers={"Location": "https://elsewhere"}),
        )
        assert outcome.success is False
        assert outcome.status_code == 301

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        outcome = _run(_defn(), handler)
        assert outcome.success is False
        assert outcome.status_code is None
        assert outcome.error.startswith("request failed:")
        assert "connection refused" in outcome.error

    def test_timeout(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        outcome = _run(_defn(timeout=0.05), handler)
        assert outcome.success is False
        assert outcome.error == "request failed: timeout after 0.05s"
        assert outcome.response_time < 5

    def test_shutdown_aborts_request(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        async def scenario():
            shutdown = asyncio.Event()
            async with _client(handler) as client:
                task = asyncio.create_task(execute_check(_defn(), client, shutdown))
                await asyncio.sleep(0.05)
                shutdown.set()
                return await task

        outcome = asyncio.run(scenario())
        assert outcome.success is False
        assert outcome.error == "request failed: check cancelled"

    def test_build_failure(self) -> None:
        async def scenario():
            async with _client(lambda req: httpx.Response(200)) as client:
                with patch.object(client, "build_request", side_effect=ValueError("bad method")):
                    return await execute_check(_defn(), client)

        outcome = asyncio.run(scenario())
        assert outcome.success is False
        assert outcome.response_time == 0.0
        assert outcome.error == "failed to create request: bad method"

    def test_method_and_headers_applied(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        _run(_defn(method="head", headers={"Authorization": "Bearer t"}), handler)
        assert seen[0].method == "HEAD"
        assert seen[0].headers["Authorization"] == "Bearer t"

    def test_response_body_is_not_read(self) -> None:
        class BrokenBody(httpx.AsyncByteStream):
            async def __aiter__(self):
                raise httpx.ReadError("body stalled")
                yield b""

        outcome = _run(_defn(), lambda req: httpx.Response(200, stream=BrokenBody()))
        assert outcome.success is True
        assert outcome.status_code == 200


class TestMakeClient:
    def test_user_agent_and_no_redirects(self) -> None:
        async def scenario():
            client = make_client()
            try:
                return client.headers["User-Agent"], client.follow_redirects
            finally:
                await client.aclose()

        user_agent, follow = asyncio.run(scenario())
        assert user_agent == USER_AGENT
        assert follow is False
