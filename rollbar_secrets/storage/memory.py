"""In-process storage, used for tests and throwaway deployments."""

import threading

from rollbar_secrets.storage.base import Storage


class InMemoryStorage(Storage):

    def __init__(self):
        super().__init__()
        self._entries: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._entries[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(k[len(prefix):] for k in self._entries if k.startswith(prefix))
