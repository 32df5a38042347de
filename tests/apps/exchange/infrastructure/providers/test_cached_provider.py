import asyncio
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from apps.exchange.domain.exceptions import UpstreamError
from apps.exchange.infrastructure.providers.cached import (
    CachedRateProvider,
    cache_key,
    group_into_segments,
)


@pytest.fixture
def provider(recording_source, memory_cache):
    return CachedRateProvider(recording_source, memory_cache, ttl=timedelta(days=30))


def january(day):
    return date(2024, 1, day)


class TestCacheKey:

    def test_cache_key_format(self):
        assert cache_key("usd", "eur", date(2024, 1, 2)) == "exchange_rate_USD_EUR_2024-01-02"

    def test_time_of_day_is_discarded(self):
        morning = datetime(2024, 1, 2, 0, 0, 1)
        evening = datetime(2024, 1, 2, 23, 59, 59)

        assert cache_key("USD", "EUR", morning) == cache_key("USD", "EUR", evening)


class TestGroupIntoSegments:

    def test_groups_consecutive_days(self):
        missing = [january(1), january(3), january(4), january(6), january(7)]

        assert group_into_segments(missing) == [
            (january(1), january(1)),
            (january(3), january(4)),
            (january(6), january(7)),
        ]

    def test_unsorted_and_duplicate_days(self):
        assert group_into_segments([january(2), january(1), january(2)]) == [(january(1), january(2))]

    def test_across_month_boundary(self):
        assert group_into_segments([january(31), date(2024, 2, 1)]) == [(january(31), date(2024, 2, 1))]

    def test_empty(self):
        assert group_into_segments([]) == []


class TestGetRate:

    def test_second_call_is_served_from_cache(self, provider, recording_source):
        """
        Test that two calls for the same day reach the source exactly once.
        """
        first = asyncio.run(provider.get_rate("USD", "EUR", january(2)))
        second = asyncio.run(provider.get_rate("USD", "EUR", january(2)))

        assert first == second == Decimal("1.1")
        assert len(recording_source.rate_calls) == 1

    def test_miss_is_cached_with_ttl(self, provider, memory_cache):
        asyncio.run(provider.get_rate("USD", "EUR", january(2)))

        assert memory_cache.writes == [
            ("exchange_rate_USD_EUR_2024-01-02", Decimal("1.1"), timedelta(days=30))
        ]

    def test_cached_zero_is_a_hit(self, provider, recording_source, memory_cache):
        memory_cache.store["exchange_rate_USD_EUR_2024-01-02"] = Decimal("0")

        rate = asyncio.run(provider.get_rate("USD", "EUR", january(2)))

        assert rate == Decimal("0")
        assert recording_source.rate_calls == []

    def test_different_times_same_day_share_an_entry(self, provider, recording_source):
        asyncio.run(provider.get_rate("USD", "EUR", datetime(2024, 1, 2, 8, 0)))
        asyncio.run(provider.get_rate("USD", "EUR", datetime(2024, 1, 2, 20, 0)))

        assert len(recording_source.rate_calls) == 1
        assert recording_source.rate_calls[0][2] == january(2)

    def test_cache_read_failure_falls_back_to_source(self, provider, recording_source, memory_cache):
        memory_cache.fail_reads = True

        rate = asyncio.run(provider.get_rate("USD", "EUR", january(2)))

        assert rate == Decimal("1.1")
        assert len(recording_source.rate_calls) == 1

    def test_cache_write_failure_still_returns_rate(self, provider, memory_cache):
        memory_cache.fail_writes = True

        assert asyncio.run(provider.get_rate("USD", "EUR", january(2))) == Decimal("1.1")

    def test_only_cache_errors_are_absorbed(self, provider, memory_cache, mocker):
        mocker.patch.object(memory_cache, "get", side_effect=TypeError("unhashable key"))

        with pytest.raises(TypeError):
            asyncio.run(provider.get_rate("USD", "EUR", january(2)))

    def test_source_errors_propagate(self, provider, recording_source, mocker):
        mocker.patch.object(recording_source, "get_rate", side_effect=UpstreamError("missing pair"))

        with pytest.raises(UpstreamError):
            asyncio.run(provider.get_rate("USD", "EUR", january(2)))

    def test_name_is_the_source_name(self, provider):
        assert provider.name == "Recording"


class TestGetRatesForPeriod:

    @pytest.fixture
    def week_source(self, recording_source):
        recording_source.rates = {january(day): Decimal("1.0") + Decimal(day) / 10 for day in range(1, 8)}
        return recording_source

    def test_fetches_only_missing_segments(self, provider, week_source, memory_cache):
        """
        Test that with days 2 and 5 cached, the source is asked for {1}, {3,4}, {6,7} only.
        """
        memory_cache.store[cache_key("USD", "EUR", january(2))] = Decimal("9.2")
        memory_cache.store[cache_key("USD", "EUR", january(5))] = Decimal("9.5")

        rates = asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(7)))

        assert week_source.period_calls == [
            (january(1), january(1)),
            (january(3), january(4)),
            (january(6), january(7)),
        ]
        assert list(rates) == [january(day) for day in range(1, 8)]
        assert rates[january(2)] == Decimal("9.2")
        assert rates[january(5)] == Decimal("9.5")
        assert rates[january(3)] == Decimal("1.3")

    def test_fetched_days_are_cached_individually(self, provider, week_source, memory_cache):
        asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(3)))

        assert [key for key, _, _ in memory_cache.writes] == [
            "exchange_rate_USD_EUR_2024-01-01",
            "exchange_rate_USD_EUR_2024-01-02",
            "exchange_rate_USD_EUR_2024-01-03",
        ]

    def test_fully_cached_range_skips_source(self, provider, week_source):
        asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(7)))
        rates = asyncio.run(provider.get_rates_for_period("USD", "EUR", january(2), january(6)))

        assert len(week_source.period_calls) == 1
        assert len(rates) == 5

    def test_days_nobody_can_supply_are_absent(self, provider, recording_source):
        recording_source.rates = {january(1): Decimal("1.1"), january(3): Decimal("1.3")}

        rates = asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(3)))

        assert rates == {january(1): Decimal("1.1"), january(3): Decimal("1.3")}

    def test_days_outside_segment_are_ignored(self, provider, recording_source, memory_cache, mocker):
        memory_cache.store[cache_key("USD", "EUR", january(1))] = Decimal("1.0")
        mocker.patch.object(
            recording_source,
            "get_rates_for_period",
            return_value={january(1): Decimal("7"), january(2): Decimal("1.2")},
        )

        rates = asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(2)))

        assert rates == {january(1): Decimal("1.0"), january(2): Decimal("1.2")}

    def test_cache_read_failure_fetches_whole_range_once(self, provider, week_source, memory_cache):
        memory_cache.fail_reads = True

        rates = asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(7)))

        assert week_source.period_calls == [(january(1), january(7))]
        assert len(rates) == 7

    def test_segment_failure_fails_the_request(self, provider, recording_source, mocker):
        mocker.patch.object(
            recording_source, "get_rates_for_period", side_effect=UpstreamError("bad payload")
        )

        with pytest.raises(UpstreamError):
            asyncio.run(provider.get_rates_for_period("USD", "EUR", january(1), january(3)))
