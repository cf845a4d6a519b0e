"""Offline cache of per-user client data in a string-keyed store."""

from __future__ import annotations

import json
import logging
from threading import Lock
from typing import Any, Iterable, Sequence, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings, get_settings
from ..core.kv import KeyValueStore
from ..models import Project

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

PROFILE_PREFIX = "profile_"
TEAMS_PREFIX = "teams_"
MANAGERS_PREFIX = "managers_"
DELETED_MANAGERS_PREFIX = "deleted_managers_"
ADMIN_USERS_KEY = "admin_users"


class CacheMetrics:
    """In-memory counters for cache behaviour instrumentation."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.reads = 0
        self.hits = 0
        self.misses = 0
        self.writes = 0
        self.failures = 0
        self.skipped = 0

    def _bump(self, attribute: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, attribute, getattr(self, attribute) + amount)

    def record_read(self) -> None:
        self._bump("reads")

    def record_hit(self) -> None:
        self._bump("hits")

    def record_miss(self) -> None:
        self._bump("misses")

    def record_write(self) -> None:
        self._bump("writes")

    def record_failure(self) -> None:
        self._bump("failures")

    def record_skipped(self) -> None:
        self._bump("skipped")

    def reset(self) -> None:
        with self._lock:
            self.reads = 0
            self.hits = 0
            self.misses = 0
            self.writes = 0
            self.failures = 0
            self.skipped = 0

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "reads": self.reads,
                "hits": self.hits,
                "misses": self.misses,
                "writes": self.writes,
                "failures": self.failures,
                "skipped": self.skipped,
            }


class LocalCacheStore:
    """Persist JSON values in a string-keyed store without ever raising.

    Every storage or decoding problem is logged and reported as "no data":
    reads return ``None``, writes become no-ops. A value is always replaced
    wholesale; nothing is merged with what was stored before.

    Besides the per-user project lists, the same store keeps the per-user
    profile (``profile_<email>``), teams (``teams_<email>``), manager overrides
    (``managers_<email>``), hidden manager names (``deleted_managers_<email>``)
    and the shared ``admin_users`` directory.
    """

    def __init__(
        self,
        store: KeyValueStore | None,
        *,
        settings: Settings | None = None,
        metrics: CacheMetrics | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self.metrics = metrics or CacheMetrics()

    @property
    def enabled(self) -> bool:
        return self._store is not None and self._settings.cache_enabled

    @property
    def key_prefix(self) -> str:
        return self._settings.cache_key_prefix

    def namespace_key(self, user_email: str, prefix: str | None = None) -> str:
        """Return the cache key holding ``user_email``'s data under ``prefix``.

        Without a prefix this is the project list key.
        """
        return f"{self.key_prefix if prefix is None else prefix}{user_email}"

    async def _read_json(self, key: str, expected: type) -> Any | None:
        if not self.enabled:
            self.metrics.record_skipped()
            return None
        assert self._store is not None

        self.metrics.record_read()
        try:
            raw = await self._store.get(key)
        except Exception:
            self.metrics.record_failure()
            logger.warning("Failed to read cache key %s; treating as empty.", key, exc_info=True)
            return None

        if raw is None:
            self.metrics.record_miss()
            return None

        try:
            payload = json.loads(raw)
        except ValueError:
            self.metrics.record_failure()
            logger.warning("Cache key %s holds malformed JSON; treating as empty.", key)
            return None
        if not isinstance(payload, expected):
            self.metrics.record_failure()
            logger.warning(
                "Cache key %s holds %s instead of a %s; treating as empty.",
                key,
                type(payload).__name__,
                expected.__name__,
            )
            return None
        return payload

    async def _write_json(self, key: str, payload: Any) -> bool:
        if not self.enabled:
            self.metrics.record_skipped()
            return False
        assert self._store is not None

        try:
            await self._store.set(key, json.dumps(payload, ensure_ascii=False))
        except Exception:
            self.metrics.record_failure()
            logger.warning("Failed to write cache key %s", key, exc_info=True)
            return False
        self.metrics.record_write()
        return True

    async def read_list(self, key: str, model: type[ModelT]) -> list[ModelT] | None:
        """Return the list stored under ``key``, dropping entries ``model`` rejects."""

        payload = await self._read_json(key, list)
        if payload is None:
            return None

        items: list[ModelT] = []
        for index, entry in enumerate(payload):
            try:
                items.append(model.model_validate(entry))
            except PydanticValidationError:
                logger.warning("Dropping malformed cached %s %d under %s", model.__name__, index, key)
        self.metrics.record_hit()
        logger.debug("Loaded %d cached %s entries from %s", len(items), model.__name__, key)
        return items

    async def write_list(self, key: str, items: Sequence[BaseModel]) -> None:
        payload = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]
        if await self._write_json(key, payload):
            logger.debug("Stored %d entries under %s", len(items), key)

    async def read_model(self, key: str, model: type[ModelT]) -> ModelT | None:
        payload = await self._read_json(key, dict)
        if payload is None:
            return None
        try:
            value = model.model_validate(payload)
        except PydanticValidationError:
            self.metrics.record_failure()
            logger.warning("Cache key %s does not hold a valid %s; treating as empty.", key, model.__name__)
            return None
        self.metrics.record_hit()
        return value

    async def write_model(self, key: str, value: BaseModel) -> None:
        await self._write_json(key, value.model_dump(mode="json", by_alias=True, exclude_none=True))

    async def read_names(self, key: str) -> list[str] | None:
        """Return a stored list of strings; non-string entries are skipped."""

        payload = await self._read_json(key, list)
        if payload is None:
            return None
        self.metrics.record_hit()
        return [entry for entry in payload if isinstance(entry, str)]

    async def write_names(self, key: str, names: Iterable[str]) -> None:
        await self._write_json(key, list(dict.fromkeys(names)))

    async def read_projects(self, namespace_key: str) -> list[Project] | None:
        """Return the last list written under ``namespace_key`` or ``None``."""

        return await self.read_list(namespace_key, Project)

    async def write_projects(self, namespace_key: str, projects: Sequence[Project]) -> None:
        """Overwrite the list stored under ``namespace_key``."""

        await self.write_list(namespace_key, projects)

    async def delete(self, namespace_key: str) -> None:
        if not self.enabled:
            return
        assert self._store is not None
        try:
            await self._store.delete(namespace_key)
        except Exception:
            self.metrics.record_failure()
            logger.warning("Failed to delete cache key %s", namespace_key, exc_info=True)

    async def scan_namespaces(self, prefix: str | None = None) -> list[str]:
        """Return cache keys starting with ``prefix`` in store iteration order.

        The order is whatever the backing store yields and may differ between
        environments; callers picking "the first match" get a heuristic, not a
        guarantee.
        """

        if not self.enabled:
            self.metrics.record_skipped()
            return []
        assert self._store is not None

        scan_prefix = self.key_prefix if prefix is None else prefix
        try:
            return await self._store.scan_prefix(scan_prefix)
        except Exception:
            self.metrics.record_failure()
            logger.warning("Failed to scan cache keys with prefix %s", scan_prefix, exc_info=True)
            return []


__all__ = [
    "ADMIN_USERS_KEY",
    "CacheMetrics",
    "DELETED_MANAGERS_PREFIX",
    "LocalCacheStore",
    "MANAGERS_PREFIX",
    "PROFILE_PREFIX",
    "TEAMS_PREFIX",
]
