"""Keyed storage abstraction shared by config, roles and leases."""

import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

InvalidationListener = Callable[[str], None]


class Storage(ABC):
    """Bytes-valued key store with per-key atomic get/put/delete/list."""

    def __init__(self):
        self._listeners: list[InvalidationListener] = []

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the key. Deleting an absent key is not an error."""
        ...

    @abstractmethod
    def list(self, prefix: str) -> list[str]:
        """Sorted keys under `prefix`, with the prefix stripped."""
        ...

    def get_json(self, key: str) -> Any | None:
        raw = self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def put_json(self, key: str, value: Any) -> None:
        self.put(key, json.dumps(value, sort_keys=True).encode("utf-8"))

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register a callback fired with a key changed outside this process."""
        self._listeners.append(listener)

    def refresh(self, key: str) -> None:
        """Re-check `key` against the backing store, notifying listeners if it changed.

        A no-op for stores that nothing else can write to.
        """

    def _notify(self, key: str) -> None:
        for listener in self._listeners:
            listener(key)
