"""
Provider Registry - maps provider names to rate sources and their cached wrappers.
Lookups always resolve to the cached wrapper; the raw source is kept alongside it.
Each registered provider caches under its own namespace of the shared store.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from core.settings import EXCHANGE_RATE_CACHE_ALIAS, EXCHANGE_RATE_CACHE_TTL_DAYS
from apps.exchange.domain.exceptions import ProviderNotFoundError, ValidationError
from apps.exchange.domain.interfaces import BaseCacheProvider, BaseRateSource
from apps.exchange.infrastructure.cache.django_cache import DjangoCacheProvider
from apps.exchange.infrastructure.cache.namespaced import NamespacedCacheProvider
from apps.exchange.infrastructure.http.resilient_client import (
    ResilientHttpClient,
    build_resilient_client,
)
from apps.exchange.infrastructure.providers.cached import CachedRateProvider
from apps.exchange.infrastructure.providers.frankfurter import FrankfurterRateSource
from apps.exchange.infrastructure.providers.stub import StubRateSource

logger = logging.getLogger(__name__)


# Registry: maps provider names to a factory building the raw source
PROVIDER_REGISTRY: dict[str, Callable[[ResilientHttpClient], BaseRateSource]] = {
    "frankfurter": lambda client: FrankfurterRateSource(client),
    "stub": lambda client: StubRateSource(),
}


@dataclass(frozen=True)
class ProviderRegistration:
    source: BaseRateSource
    cached: CachedRateProvider


class ProviderRegistry:
    """Explicit registrations: raw source and cached wrapper under the same lower-cased name."""

    def __init__(self, cache: BaseCacheProvider, ttl: timedelta = timedelta(days=30)):
        self.cache = cache
        self.ttl = ttl
        self._registrations: dict[str, ProviderRegistration] = {}

    def register(self, source: BaseRateSource) -> CachedRateProvider:
        key = self._normalize(source.name)
        cached = self.create_cached_provider(source)
        self._registrations[key] = ProviderRegistration(source=source, cached=cached)
        logger.info("Registered rate provider %s", source.name)
        return cached

    def create_cached_provider(self, source: BaseRateSource) -> CachedRateProvider:
        namespace = self._normalize(source.name)
        if not namespace:
            raise ValueError("Rate source must have a name")
        return CachedRateProvider(source, NamespacedCacheProvider(self.cache, namespace), self.ttl)

    def get_provider(self, provider_name: Optional[str]) -> CachedRateProvider:
        """
        Get the cached provider registered under a name (case-insensitive).

        Raises:
            ValidationError: empty name
            ProviderNotFoundError: nothing registered under that name
        """
        return self._lookup(provider_name).cached

    def get_raw_provider(self, provider_name: Optional[str]) -> BaseRateSource:
        return self._lookup(provider_name).source

    def names(self) -> list[str]:
        return sorted(self._registrations)

    def _lookup(self, provider_name: Optional[str]) -> ProviderRegistration:
        key = self._normalize(provider_name)
        if not key:
            raise ValidationError("Provider name is required")

        registration = self._registrations.get(key)
        if registration is None:
            logger.warning("Provider '%s' not found in registry", provider_name)
            raise ProviderNotFoundError(provider_name)
        return registration

    @staticmethod
    def _normalize(provider_name: Optional[str]) -> str:
        return (provider_name or "").strip().lower()


def build_provider_registry(
    cache: Optional[BaseCacheProvider] = None,
    client: Optional[ResilientHttpClient] = None,
) -> ProviderRegistry:
    """Wire every source in PROVIDER_REGISTRY with the configured cache and transport."""
    ttl = timedelta(days=EXCHANGE_RATE_CACHE_TTL_DAYS)
    cache = cache or DjangoCacheProvider(alias=EXCHANGE_RATE_CACHE_ALIAS, default_ttl=ttl)
    client = client or build_resilient_client()

    registry = ProviderRegistry(cache, ttl)
    for build_source in PROVIDER_REGISTRY.values():
        registry.register(build_source(client))
    return registry


@lru_cache(maxsize=None)
def get_provider_registry() -> ProviderRegistry:
    return build_provider_registry()
