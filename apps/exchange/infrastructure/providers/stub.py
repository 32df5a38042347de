"""
Stub source for development and tests.
Answers every pair and day with one fixed rate, without network access.
"""

from datetime import date
from decimal import Decimal

from apps.exchange.domain.dates import iter_days, to_utc_date
from apps.exchange.domain.interfaces import BaseRateSource


class StubRateSource(BaseRateSource):

    name = "Stub"

    def __init__(self, rate: Decimal = Decimal("1.5")):
        self.rate = rate

    async def get_rate(self, source_currency: str, exchanged_currency: str, on: date) -> Decimal:
        return self.rate

    async def get_rates_for_period(
        self,
        source_currency: str,
        exchanged_currency: str,
        start: date,
        end: date,
    ) -> dict[date, Decimal]:
        return {day: self.rate for day in iter_days(to_utc_date(start), to_utc_date(end))}
