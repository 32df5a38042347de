"""
Key-value cache over Django's cache framework.

The cache is advisory: a backing-store failure turns a read into a miss and
a write into a no-op, and is only logged.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any, Optional, TypeVar

from django.core.cache import BaseCache, caches

from apps.exchange.domain.exceptions import CacheError
from apps.exchange.domain.interfaces import BaseCacheProvider
from apps.exchange.domain.models import CacheLookup

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


def _timeout_seconds(ttl: Optional[timedelta | float]) -> Optional[float]:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return ttl


class DjangoCacheProvider(BaseCacheProvider):
    """
    Async cache provider backed by a Django cache alias.

    Instance namespacing comes from the alias' KEY_PREFIX, so keys passed
    here are the logical keys only.
    """

    def __init__(self, alias: str = "default", default_ttl: Optional[timedelta | float] = None):
        self.alias = alias
        self.default_ttl = default_ttl

    @property
    def backend(self) -> BaseCache:
        return caches[self.alias]

    async def get(self, key: str) -> CacheLookup[Any]:
        try:
            value = await self._call("get", key, lambda: self.backend.aget(key, _MISSING))
        except CacheError as e:
            logger.warning("%s", e)
            return CacheLookup.miss()

        if value is _MISSING:
            logger.debug("Cache miss for key %s", key)
            return CacheLookup.miss()

        logger.debug("Cache hit for key %s", key)
        return CacheLookup.found(value)

    async def set(self, key: str, value: Any, ttl: Optional[timedelta | float] = None) -> None:
        timeout = _timeout_seconds(ttl if ttl is not None else self.default_ttl)
        try:
            if timeout is None:
                await self._call("set", key, lambda: self.backend.aset(key, value))
            else:
                await self._call("set", key, lambda: self.backend.aset(key, value, timeout))
        except CacheError as e:
            logger.warning("%s", e)

    async def remove(self, key: str) -> None:
        try:
            await self._call("remove", key, lambda: self.backend.adelete(key))
        except CacheError as e:
            logger.warning("%s", e)

    async def exists(self, key: str) -> bool:
        try:
            return await self._call("exists check", key, lambda: self.backend.ahas_key(key))
        except CacheError as e:
            logger.warning("%s", e)
            return False

    async def clear(self) -> None:
        try:
            await self._call("clear", None, lambda: self.backend.aclear())
        except CacheError as e:
            logger.warning("%s", e)

    async def _call(self, action: str, key: Optional[str], operation: Callable[[], Awaitable[T]]) -> T:
        """Run a backend operation, re-raising any backend fault as CacheError."""
        try:
            return await operation()
        except Exception as e:
            target = f" for key {key}" if key is not None else ""
            raise CacheError(f"Cache {action} failed on '{self.alias}'{target}: {e}") from e
