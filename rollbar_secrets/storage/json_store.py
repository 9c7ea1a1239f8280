"""JSON file storage. Reloads on mtime change."""

import base64
import json
import os
import tempfile
import threading

from rollbar_secrets.storage.base import Storage


class JSONFileStorage(Storage):
    """Keeps every entry in one JSON document, base64-encoded.

    Another process editing the file is picked up on the next access;
    listeners are notified for each key whose value changed.
    """

    def __init__(self, path: str):
        super().__init__()
        self._path = path
        self._entries: dict[str, bytes] = {}
        self._last_stamp: tuple[int, int] | None = None
        self._lock = threading.Lock()
        with self._lock:
            self._load()

    def _stamp(self) -> tuple[int, int] | None:
        try:
            st = os.stat(self._path)
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    def _load(self) -> list[str]:
        """Reload from disk if the file changed. Returns the changed keys."""
        stamp = self._stamp()
        if stamp == self._last_stamp:
            return []

        if stamp is None:
            entries: dict[str, bytes] = {}
        else:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            entries = {
                key: base64.b64decode(value)
                for key, value in data.get("entries", {}).items()
            }

        changed = [
            key for key in set(self._entries) | set(entries)
            if self._entries.get(key) != entries.get(key)
        ]
        first_load = self._last_stamp is None and not self._entries
        self._entries = entries
        self._last_stamp = stamp
        return [] if first_load else sorted(changed)

    def _flush(self) -> None:
        data = {
            "entries": {
                key: base64.b64encode(value).decode("ascii")
                for key, value in sorted(self._entries.items())
            }
        }
        directory = os.path.dirname(os.path.abspath(self._path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".rollbar-secrets-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self._last_stamp = self._stamp()

    def _sync(self) -> None:
        with self._lock:
            changed = self._load()
        for key in changed:
            self._notify(key)

    def refresh(self, key: str) -> None:
        self._sync()

    def get(self, key: str) -> bytes | None:
        self._sync()
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, value: bytes) -> None:
        self._sync()
        with self._lock:
            self._entries[key] = bytes(value)
            self._flush()

    def delete(self, key: str) -> None:
        self._sync()
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self._flush()

    def list(self, prefix: str) -> list[str]:
        self._sync()
        with self._lock:
            return sorted(k[len(prefix):] for k in self._entries if k.startswith(prefix))
