import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import requests

from core.settings import FRANKFURTER_URL
from apps.exchange.domain.dates import iter_days, to_utc_date, utc_today
from apps.exchange.domain.exceptions import TransportError, UpstreamError
from apps.exchange.domain.interfaces import BaseRateSource
from apps.exchange.domain.models import normalize_currency
from apps.exchange.infrastructure.http.resilient_client import ResilientHttpClient

logger = logging.getLogger(__name__)


class FrankfurterRateSource(BaseRateSource):
    """
    Frankfurter API source.

    Today's rate (UTC) is read from /latest, past days from /{date} and
    ranges from /{start}..{end}.
    """

    name = "Frankfurter"

    def __init__(self, client: ResilientHttpClient, base_url: str = FRANKFURTER_URL):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_rate(self, source_currency: str, exchanged_currency: str, on: date) -> Decimal:
        """
        Fetch one day's rate.

        Raises:
            UpstreamError: the response does not contain the requested pair
            TransportError: upstream unreachable or answered with an error status
        """
        source_currency = normalize_currency(source_currency)
        exchanged_currency = normalize_currency(exchanged_currency)
        on = to_utc_date(on)
        if source_currency == exchanged_currency:
            return Decimal("1")

        # Format: https://api.frankfurter.app/2024-01-15?from=USD&to=EUR
        path = "latest" if on == utc_today() else on.isoformat()
        data = await self._get_json(path, source_currency, exchanged_currency)

        # Response format: {"rates": {"EUR": 0.85}}
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict) or exchanged_currency not in rates:
            raise UpstreamError(
                f"Failed to get exchange rate for {source_currency}/{exchanged_currency}"
            )
        return self._to_rate(rates[exchanged_currency], source_currency, exchanged_currency)

    async def get_rates_for_period(
        self,
        source_currency: str,
        exchanged_currency: str,
        start: date,
        end: date,
    ) -> dict[date, Decimal]:
        """
        Fetch every day in [start, end].

        Days upstream publishes nothing for (weekends, holidays) take the rate of
        the most recent published day at or before them. Days with no earlier
        published rate are left out.
        """
        source_currency = normalize_currency(source_currency)
        exchanged_currency = normalize_currency(exchanged_currency)
        start, end = to_utc_date(start), to_utc_date(end)
        if start > end:
            return {}
        if source_currency == exchanged_currency:
            return {day: Decimal("1") for day in iter_days(start, end)}

        # Format: https://api.frankfurter.app/2024-01-01..2024-01-31?from=USD&to=EUR
        path = f"{start.isoformat()}..{end.isoformat()}"
        data = await self._get_json(path, source_currency, exchanged_currency)

        # Response format: {"rates": {"2024-01-02": {"EUR": 0.91}, ...}}
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise UpstreamError(
                f"Failed to get exchange rates for {source_currency}/{exchanged_currency}"
            )

        observed: list[tuple[date, Decimal]] = []
        for raw_date, day_rates in rates.items():
            try:
                day = date.fromisoformat(raw_date)
            except (TypeError, ValueError) as e:
                raise UpstreamError(f"Invalid date in upstream response: {raw_date!r}") from e
            if not isinstance(day_rates, dict) or exchanged_currency not in day_rates:
                raise UpstreamError(
                    f"Missing {exchanged_currency} rate for {raw_date} in upstream response"
                )
            observed.append(
                (day, self._to_rate(day_rates[exchanged_currency], source_currency, exchanged_currency))
            )
        observed.sort()

        result: dict[date, Decimal] = {}
        last_rate = None
        index = 0
        for day in iter_days(start, end):
            while index < len(observed) and observed[index][0] <= day:
                last_rate = observed[index][1]
                index += 1
            if last_rate is not None:
                result[day] = last_rate

        logger.debug(
            "Frankfurter returned %d of %d days for %s/%s, %d after carry-forward",
            len(observed), (end - start).days + 1, source_currency, exchanged_currency, len(result),
        )
        return result

    async def _get_json(self, path: str, source_currency: str, exchanged_currency: str) -> Any:
        request = requests.Request(
            "GET",
            f"{self.base_url}/{path}",
            params={"from": source_currency, "to": exchanged_currency},
            headers={"Accept": "application/json"},
        )
        response = await self.client.send(request)
        try:
            if not response.ok:
                raise TransportError(
                    f"Frankfurter answered {response.status_code} for {path}",
                    upstream_status=response.status_code,
                )
            try:
                return response.json(parse_float=Decimal, parse_int=Decimal)
            except ValueError as e:
                raise UpstreamError(f"Invalid JSON from Frankfurter for {path}: {e}") from e
        finally:
            response.close()

    @staticmethod
    def _to_rate(raw: Any, source_currency: str, exchanged_currency: str) -> Decimal:
        try:
            rate = raw if isinstance(raw, Decimal) else Decimal(str(raw))
        except (InvalidOperation, ValueError) as e:
            raise UpstreamError(
                f"Invalid rate {raw!r} for {source_currency}/{exchanged_currency}"
            ) from e
        if not rate.is_finite() or rate <= 0:
            raise UpstreamError(f"Invalid rate {raw!r} for {source_currency}/{exchanged_currency}")
        return rate
