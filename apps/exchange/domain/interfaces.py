from abc import ABC, abstractmethod
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

from apps.exchange.domain.models import CacheLookup


class BaseRateSource(ABC):
    """Something that can be asked for one day's rate or a contiguous range of days."""

    name: str

    @abstractmethod
    async def get_rate(self, source_currency: str, exchanged_currency: str, on: date) -> Decimal:
        pass

    @abstractmethod
    async def get_rates_for_period(
        self,
        source_currency: str,
        exchanged_currency: str,
        start: date,
        end: date,
    ) -> dict[date, Decimal]:
        pass


class BaseCacheProvider(ABC):
    """
    Advisory key-value store with per-entry expiration.

    Backing-store faults are either absorbed or raised as CacheError.
    """

    @abstractmethod
    async def get(self, key: str) -> CacheLookup[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[timedelta | float] = None) -> None:
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass
