"""Endpoint definition repository on the ``endpoints`` namespace."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from sitewatch.endpoints.models import EndpointDefinition, utcnow
from sitewatch.errors import ConflictError, NotFoundError, StorageError, ValidationError
from sitewatch.storage.kv import ENDPOINTS, SETTINGS, KVStore, Transaction
from sitewatch.utils.locks import RWLock

logger = logging.getLogger(__name__)


def _encode(defn: EndpointDefinition) -> bytes:
    return json.dumps(defn.to_dict()).encode("utf-8")


def _decode(data: bytes) -> EndpointDefinition:
    try:
        return EndpointDefinition.from_dict(json.loads(data))
    except (ValueError, ValidationError) as e:
        raise StorageError(f"corrupt endpoint record: {e}") from e


class EndpointStore:
    """Persists endpoint definitions as JSON documents keyed by ID.

    The ``RWLock`` serialises multi-step logical operations (read, modify,
    write back) against each other; the KV transactions keep each step
    atomic on disk.
    """

    def __init__(self, kv: KVStore) -> None:
        self.kv = kv
        self._lock = RWLock()

    def _save_tx(self, tx: Transaction, defn: EndpointDefinition) -> EndpointDefinition:
        defn.apply_defaults()
        now = utcnow()
        if defn.created_at is None:
            defn.created_at = now
        defn.updated_at = now
        tx.put(ENDPOINTS, defn.id, _encode(defn))
        return defn

    def save(self, defn: EndpointDefinition) -> EndpointDefinition:
        """Insert or replace a definition (defaults applied, timestamps set)."""
        with self._lock.write(), self.kv.transaction(write=True) as tx:
            return self._save_tx(tx, defn)

    def get(self, endpoint_id: str) -> EndpointDefinition:
        with self._lock.read():
            try:
                return _decode(self.kv.get(ENDPOINTS, endpoint_id))
            except NotFoundError:
                raise NotFoundError(f"endpoint {endpoint_id}") from None

    def exists(self, endpoint_id: str) -> bool:
        try:
            self.get(endpoint_id)
        except NotFoundError:
            return False
        return True

    def all(self) -> list[EndpointDefinition]:
        """All definitions, ordered by ID."""
        with self._lock.read():
            return [_decode(value) for _, value in self.kv.scan(ENDPOINTS)]

    def delete(self, endpoint_id: str) -> None:
        with self._lock.write():
            if not self.kv.delete(ENDPOINTS, endpoint_id):
                raise NotFoundError(f"endpoint {endpoint_id}")

    def insert_unique(self, defn: EndpointDefinition) -> EndpointDefinition:
        """Save ``defn`` unless its ID, name or URL is already taken.

        The duplicate check and the write share one write transaction.
        Distinct names and URLs can still collapse to the same ID, since
        ``generate_id`` drops characters such as ``?`` and ``!``.
        """
        defn.apply_defaults()
        with self._lock.write(), self.kv.transaction(write=True) as tx:
            for _, value in tx.scan(ENDPOINTS):
                existing = _decode(value)
                if existing.name == defn.name:
                    raise ConflictError(f"endpoint with name {defn.name!r} already exists")
                if existing.url == defn.url:
                    raise ConflictError(f"endpoint with URL {defn.url!r} already exists")
            if tx.exists(ENDPOINTS, defn.id):
                raise ConflictError(f"endpoint with ID {defn.id!r} already exists")
            return self._save_tx(tx, defn)

    def update(
        self, endpoint_id: str, mutate: Callable[[EndpointDefinition], None],
    ) -> EndpointDefinition:
        """Read-modify-write one definition inside a single write transaction."""
        with self._lock.write(), self.kv.transaction(write=True) as tx:
            try:
                defn = _decode(tx.get(ENDPOINTS, endpoint_id))
            except NotFoundError:
                raise NotFoundError(f"endpoint {endpoint_id}") from None
            mutate(defn)
            return self._save_tx(tx, defn)

    def set_enabled(self, endpoint_id: str, enabled: bool) -> EndpointDefinition:
        def mutate(d: EndpointDefinition) -> None:
            d.enabled = enabled

        return self.update(endpoint_id, mutate)

    def set_alerts_suppressed(self, endpoint_id: str, suppressed: bool) -> EndpointDefinition:
        def mutate(d: EndpointDefinition) -> None:
            d.alerts_suppressed = suppressed

        return self.update(endpoint_id, mutate)

    # -- settings namespace ----------------------------------------------------

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        try:
            return self.kv.get(SETTINGS, key).decode("utf-8")
        except NotFoundError:
            return default

    def put_setting(self, key: str, value: str) -> None:
        self.kv.put(SETTINGS, key, value.encode("utf-8"))
