"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from sitewatch.endpoints.models import EndpointDefinition
from sitewatch.endpoints.registry import EndpointRegistry
from sitewatch.health.state import Transition
from sitewatch.storage import EndpointStore, HistoryStore, KVStore


@pytest.fixture
def kv(tmp_path: Path) -> KVStore:
    store = KVStore(db_path=tmp_path / "test_sitewatch.db")
    yield store
    store.close()


@pytest.fixture
def endpoint_store(kv: KVStore) -> EndpointStore:
    return EndpointStore(kv)


@pytest.fixture
def history(kv: KVStore) -> HistoryStore:
    return HistoryStore(kv)


@pytest.fixture
def registry(endpoint_store: EndpointStore, history: HistoryStore) -> EndpointRegistry:
    return EndpointRegistry(endpoint_store, history)


@pytest.fixture
def make_definition() -> Callable[..., EndpointDefinition]:
    def _make(name: str = "API", url: str = "https://api.example.com/health", **kw) -> EndpointDefinition:
        return EndpointDefinition(name=name, url=url, **kw)

    return _make


class RecordingDispatcher:
    """Alert dispatcher that remembers every transition it receives."""

    def __init__(self) -> None:
        self.transitions: list[Transition] = []

    async def notify(self, transition: Transition) -> None:
        self.transitions.append(transition)

    @property
    def kinds(self) -> list[str]:
        return [t.kind.value for t in self.transitions]


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


class StatusRouter:
    """httpx mock handler answering with a per-URL status code (default 200)."""

    def __init__(self) -> None:
        self.codes: dict[str, int] = {}
        self.errors: set[str] = set()
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).rstrip("/")
        if url in {u.rstrip("/") for u in self.errors}:
            raise httpx.ConnectError("connection refused", request=request)
        codes = {u.rstrip("/"): code for u, code in self.codes.items()}
        return httpx.Response(codes.get(url, 200))


@pytest.fixture
def status_router() -> StatusRouter:
    return StatusRouter()
