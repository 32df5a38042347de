"""
Per-provider view over a shared cache.

Rate keys carry no provider name, so two providers sharing one store would
read each other's rates. Each registered provider gets its own namespace.
"""

from datetime import timedelta
from typing import Any, Optional

from apps.exchange.domain.interfaces import BaseCacheProvider
from apps.exchange.domain.models import CacheLookup


class NamespacedCacheProvider(BaseCacheProvider):
    """Prefixes every key with `{namespace}:` before delegating to the inner cache."""

    def __init__(self, inner: BaseCacheProvider, namespace: str):
        if not namespace:
            raise ValueError("namespace is required")
        self.inner = inner
        self.namespace = namespace

    def key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> CacheLookup[Any]:
        return await self.inner.get(self.key(key))

    async def set(self, key: str, value: Any, ttl: Optional[timedelta | float] = None) -> None:
        await self.inner.set(self.key(key), value, ttl)

    async def remove(self, key: str) -> None:
        await self.inner.remove(self.key(key))

    async def exists(self, key: str) -> bool:
        return await self.inner.exists(self.key(key))

    async def clear(self) -> None:
        # Namespaces share the backing store; clearing one clears them all.
        await self.inner.clear()
