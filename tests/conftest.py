import io
import json
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import pytest
import requests
from django.core.cache import cache

from apps.exchange.domain.dates import iter_days
from apps.exchange.domain.exceptions import CacheError
from apps.exchange.domain.interfaces import BaseCacheProvider, BaseRateSource
from apps.exchange.domain.models import CacheLookup


class InMemoryCacheProvider(BaseCacheProvider):
    """Dict-backed cache that records writes and can be told to fail."""

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.writes: list[tuple[str, Any, Any]] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key):
        if self.fail_reads:
            raise CacheError("cache unavailable")
        if key in self.store:
            return CacheLookup.found(self.store[key])
        return CacheLookup.miss()

    async def set(self, key, value, ttl=None):
        if self.fail_writes:
            raise CacheError("cache unavailable")
        self.writes.append((key, value, ttl))
        self.store[key] = value

    async def remove(self, key):
        self.store.pop(key, None)

    async def exists(self, key):
        return key in self.store

    async def clear(self):
        self.store.clear()


class RecordingRateSource(BaseRateSource):
    """Rate source that answers from a fixed table and records every call."""

    name = "Recording"

    def __init__(self, rates: Optional[dict[date, Decimal]] = None, default: Decimal = Decimal("1.1")):
        self.rates = rates or {}
        self.default = default
        self.rate_calls: list[tuple[str, str, date]] = []
        self.period_calls: list[tuple[date, date]] = []

    async def get_rate(self, source_currency, exchanged_currency, on):
        self.rate_calls.append((source_currency, exchanged_currency, on))
        return self.rates.get(on, self.default)

    async def get_rates_for_period(self, source_currency, exchanged_currency, start, end):
        self.period_calls.append((start, end))
        return {day: self.rates[day] for day in iter_days(start, end) if day in self.rates}


def make_response(status_code: int = 200, payload: Any = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    body = json.dumps(payload if payload is not None else {}).encode()
    response.raw = io.BytesIO(body)
    response._content = body
    response.headers["Content-Type"] = "application/json"
    response.encoding = "utf-8"
    return response


@pytest.fixture(autouse=True)
def clear_django_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def memory_cache():
    return InMemoryCacheProvider()


@pytest.fixture
def recording_source():
    return RecordingRateSource()


@pytest.fixture
def response_factory():
    return make_response
