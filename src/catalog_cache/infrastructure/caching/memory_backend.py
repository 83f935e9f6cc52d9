# Copyright (c)
# SPDX-License-Identifier: MIT
"""In-process key/value backend.

Used when no Redis URL is configured, and in tests as the persistence layer
for restart round-trips (share one instance between two cache stores).
"""

from __future__ import annotations


class InMemoryKeyValueBackend:
    """Dict-backed :class:`KeyValueBackend`."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._data if k.startswith(prefix)]
        for k in doomed:
            del self._data[k]
        return len(doomed)

    def keys(self) -> list[str]:
        """Snapshot of stored keys (test/diagnostic helper)."""
        return list(self._data)
