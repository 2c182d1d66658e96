from __future__ import annotations

import json
import logging

from cidlens.app.identifiers.service import normalize
from cidlens.app.resolution.contracts import Payload, ResultKind
from cidlens.app.runtime.store import RuntimeStore, runtime_store

LOGGER = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "ipfs"


def cache_key(identifier: str, kind: ResultKind) -> str:
    return f"{CACHE_KEY_PREFIX}-{kind.value}-{normalize(identifier)}"


def _serialize(kind: ResultKind, payload: Payload) -> str:
    if kind == ResultKind.ASSET:
        return json.dumps({"reference": payload})
    return json.dumps(payload)


def _deserialize(kind: ResultKind, raw: str) -> Payload:
    value = json.loads(raw)
    if kind == ResultKind.ASSET:
        if not isinstance(value, dict) or not isinstance(value.get("reference"), str):
            raise ValueError("asset entry is missing a string reference")
        return value["reference"]
    if not isinstance(value, (dict, list)):
        raise ValueError("document entry is not structured")
    return value


class ResolutionCache:
    """Session-scoped mapping from (identifier, kind) to resolved content."""

    def __init__(self, store: RuntimeStore | None = None) -> None:
        self._store = store or runtime_store

    def get(self, identifier: str, kind: ResultKind) -> Payload | None:
        key = cache_key(identifier, kind)
        raw = self._store.session_storage.get(key)
        if raw is None:
            return None
        try:
            return _deserialize(kind, raw)
        except (ValueError, TypeError) as exc:
            LOGGER.warning(
                "Discarding corrupt cache entry",
                extra={"cache_key": key},
                exc_info=exc,
            )
            self._store.session_storage.pop(key, None)
            return None

    def put(self, identifier: str, kind: ResultKind, payload: Payload) -> None:
        key = cache_key(identifier, kind)
        try:
            self._store.session_storage[key] = _serialize(kind, payload)
        except (TypeError, ValueError) as exc:
            LOGGER.warning(
                "Skipping cache write for unserializable payload",
                extra={"cache_key": key},
                exc_info=exc,
            )

    def clear(self) -> None:
        self._store.session_storage.clear()

    def __len__(self) -> int:
        return len(self._store.session_storage)


class RelayPreferenceTable:
    """Learned endpoint -> relay routing, kept next to the cache."""

    def __init__(self, store: RuntimeStore | None = None) -> None:
        self._store = store or runtime_store

    def preferred(self, endpoint: str) -> str | None:
        return self._store.relay_preferences.get(endpoint)

    def remember(self, endpoint: str, relay: str) -> None:
        previous = self._store.relay_preferences.get(endpoint)
        self._store.relay_preferences[endpoint] = relay
        if previous != relay:
            LOGGER.info(
                "Learned relay preference",
                extra={"endpoint": endpoint, "relay": relay},
            )

    def snapshot(self) -> dict[str, str]:
        return dict(self._store.relay_preferences)

    def clear(self) -> None:
        self._store.relay_preferences.clear()
