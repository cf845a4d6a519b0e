"""Thin async key-value access on top of Redis."""

from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis

_GLOB_SPECIAL_CHARS = "\\*?[]"


def _escape_pattern(prefix: str) -> str:
    escaped = prefix
    for char in _GLOB_SPECIAL_CHARS:
        escaped = escaped.replace(char, f"\\{char}")
    return escaped


class KeyValueStore:
    """String-keyed store holding text or JSON values.

    Errors raised by the underlying client propagate to the caller; callers
    that must never fail (the offline cache) wrap these calls themselves.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "KeyValueStore":
        client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client)

    @property
    def client(self) -> Redis:
        return self._client

    async def get(self, key: str) -> str | None:
        return await self._client.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._client.set(key, value)

    async def get_json(self, key: str) -> Any | None:
        """Return the decoded JSON value for ``key``; raises ``ValueError`` if corrupt."""

        raw = await self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_json(self, key: str, value: Any) -> None:
        await self.set(key, json.dumps(value, ensure_ascii=False))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return bool(await self._client.exists(key))

    async def scan_prefix(self, prefix: str) -> list[str]:
        """Return keys starting with ``prefix`` in the order the store yields them."""

        pattern = f"{_escape_pattern(prefix)}*"
        seen: dict[str, None] = {}
        async for key in self._client.scan_iter(match=pattern):
            seen.setdefault(key, None)
        return list(seen)

    async def get_by_prefix_with_keys(self, prefix: str) -> list[tuple[str, str]]:
        """Return ``(key, raw value)`` pairs for every key under ``prefix``."""

        keys = await self.scan_prefix(prefix)
        if not keys:
            return []
        values = await self._client.mget(keys)
        return [(key, value) for key, value in zip(keys, values) if value is not None]

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["KeyValueStore"]
