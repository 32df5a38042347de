"""
Cache-aside decorator over a rate source.

Rates are cached per (source, target, UTC day). Range queries only go
upstream for the days the cache cannot answer, one call per run of
consecutive missing days.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from apps.exchange.domain.dates import iter_days, to_utc_date
from apps.exchange.domain.exceptions import CacheError
from apps.exchange.domain.interfaces import BaseCacheProvider, BaseRateSource
from apps.exchange.domain.models import CacheLookup, normalize_currency

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "exchange_rate_"


def cache_key(source_currency: str, exchanged_currency: str, on: date | datetime) -> str:
    """Day-granular key; the time of day is discarded."""
    return (
        f"{CACHE_KEY_PREFIX}{normalize_currency(source_currency)}_"
        f"{normalize_currency(exchanged_currency)}_{to_utc_date(on):%Y-%m-%d}"
    )


def group_into_segments(dates: Iterable[date]) -> list[tuple[date, date]]:
    """
    Group days into maximal runs of consecutive calendar days.

    Example:
        >>> group_into_segments([date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 4)])
        [(datetime.date(2024, 1, 1), datetime.date(2024, 1, 1)),
         (datetime.date(2024, 1, 3), datetime.date(2024, 1, 4))]
    """
    segments: list[tuple[date, date]] = []
    for day in sorted(set(dates)):
        if segments and day - segments[-1][1] == timedelta(days=1):
            segments[-1] = (segments[-1][0], day)
        else:
            segments.append((day, day))
    return segments


class CachedRateProvider(BaseRateSource):
    """
    Rate source decorated with a key-value cache.

    The cache is advisory: any cache failure is logged and treated as a miss
    (reads) or ignored (writes). Source failures propagate unchanged.
    """

    def __init__(
        self,
        source: BaseRateSource,
        cache: BaseCacheProvider,
        ttl: timedelta = timedelta(days=30),
    ):
        self.source = source
        self.cache = cache
        self.ttl = ttl

    @property
    def name(self) -> str:
        return self.source.name

    async def get_rate(self, source_currency: str, exchanged_currency: str, on: date) -> Decimal:
        key = cache_key(source_currency, exchanged_currency, on)

        lookup = await self._cache_get(key)
        if lookup.hit:
            return lookup.value

        rate = await self.source.get_rate(source_currency, exchanged_currency, to_utc_date(on))
        await self._cache_set(key, rate)
        return rate

    async def get_rates_for_period(
        self,
        source_currency: str,
        exchanged_currency: str,
        start: date,
        end: date,
    ) -> dict[date, Decimal]:
        start, end = to_utc_date(start), to_utc_date(end)
        result: dict[date, Decimal] = {}
        missing: list[date] = []

        for day in iter_days(start, end):
            lookup = await self._cache_get(cache_key(source_currency, exchanged_currency, day))
            if lookup.hit:
                result[day] = lookup.value
            else:
                missing.append(day)

        segments = group_into_segments(missing)
        if segments:
            logger.debug(
                "%s/%s %s..%s: %d cached, %d missing in %d segment(s)",
                source_currency, exchanged_currency, start, end,
                len(result), len(missing), len(segments),
            )

        for segment_start, segment_end in segments:
            fetched = await self.source.get_rates_for_period(
                source_currency, exchanged_currency, segment_start, segment_end
            )
            for day, rate in fetched.items():
                day = to_utc_date(day)
                if not segment_start <= day <= segment_end:
                    continue
                await self._cache_set(cache_key(source_currency, exchanged_currency, day), rate)
                result[day] = rate

        return dict(sorted(result.items()))

    async def _cache_get(self, key: str) -> CacheLookup[Any]:
        try:
            return await self.cache.get(key)
        except CacheError as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, e)
            return CacheLookup.miss()

    async def _cache_set(self, key: str, value: Decimal) -> None:
        try:
            await self.cache.set(key, value, self.ttl)
        except CacheError as e:
            logger.warning("Cache write failed for %s: %s", key, e)
