"""
Domain services - Core business logic.
Validates conversion requests and orchestrates the provider registry.
"""

import logging
import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from apps.exchange.application.dto import (
    ConversionRequestDTO,
    ConversionResultDTO,
    HistoricalRatesRequestDTO,
    LatestRatesRequestDTO,
    LatestRatesResultDTO,
    PagedRatesResultDTO,
)
from apps.exchange.domain.dates import to_utc_date, to_utc_datetime, utc_now, years_before
from apps.exchange.domain.exceptions import ExclusionError, UpstreamError, ValidationError
from apps.exchange.domain.models import ExchangeRate, normalize_currency
from apps.exchange.domain.rules import CurrencyRules
from apps.exchange.infrastructure.providers.registry import ProviderRegistry, get_provider_registry

logger = logging.getLogger(__name__)

MAX_HISTORICAL_YEARS = 1


class CurrencyConversionService:
    """
    Stateless orchestration over the provider registry and currency rules.

    Validation and exclusion checks always run before a provider is resolved,
    so a bad request never causes cache or network traffic. Upstream and
    transport errors propagate unchanged.
    """

    def __init__(self, registry: ProviderRegistry, rules: CurrencyRules):
        self.registry = registry
        self.rules = rules

    async def convert(self, request: ConversionRequestDTO) -> ConversionResultDTO:
        """
        Convert an amount from one currency to another at the rate of the
        request's UTC day.

        Example:
            >>> result = await service.convert(
            ...     ConversionRequestDTO("USD", "EUR", Decimal("100"), "stub")
            ... )
            >>> result.converted_amount
            Decimal('150.0')
        """
        self._require_provider_name(request.provider_name)
        amount = self._validate_amount(request.amount)
        source = self._require_currency(request.source_currency, "Source currency")
        target = self._require_currency(request.exchanged_currency, "Target currency")
        timestamp = self._validate_timestamp(request.timestamp)
        self._ensure_not_excluded(source)
        self._ensure_not_excluded(target)

        provider = self.registry.get_provider(request.provider_name)
        valuation_date = to_utc_date(timestamp)
        rate = await provider.get_rate(source, target, valuation_date)
        try:
            exchange_rate = ExchangeRate(source, target, valuation_date, rate)
        except ValueError as e:
            raise UpstreamError(f"{provider.name} returned an unusable {source}/{target} rate: {e}") from e

        logger.info("Converted %s %s to %s at %s via %s", amount, source, target, rate, provider.name)
        return ConversionResultDTO(
            source_currency=source,
            exchanged_currency=target,
            amount=amount,
            converted_amount=exchange_rate.convert(amount),
            rate=rate,
            timestamp=timestamp,
            provider_name=request.provider_name,
        )

    async def get_latest_rates(self, request: LatestRatesRequestDTO) -> LatestRatesResultDTO:
        """
        Rates of each target currency against the base, in request order.
        Excluded targets and the base currency itself are skipped silently.
        """
        self._require_provider_name(request.provider_name)
        base = self._require_currency(request.base_currency, "Base currency")
        if not request.target_currencies:
            raise ValidationError("At least one target currency is required")
        targets = [self._require_currency(code, "Target currency") for code in request.target_currencies]
        timestamp = self._validate_timestamp(request.timestamp)

        provider = self.registry.get_provider(request.provider_name)
        on = to_utc_date(timestamp)

        rates: dict[str, Decimal] = {}
        for target in targets:
            if self.rules.is_excluded(target):
                logger.debug("Skipping excluded currency %s", target)
                continue
            if target == base or target in rates:
                continue
            rates[target] = await provider.get_rate(base, target, on)

        return LatestRatesResultDTO(
            base_currency=base,
            timestamp=timestamp,
            provider_name=request.provider_name,
            rates=rates,
        )

    async def get_historical_rates(self, request: HistoricalRatesRequestDTO) -> PagedRatesResultDTO:
        """
        One page of the daily rates between start and end (inclusive).

        Pages past the last one are empty but still report the totals.
        """
        self._require_provider_name(request.provider_name)
        base = self._require_currency(request.base_currency, "Base currency")
        target = self._require_currency(request.target_currency, "Target currency")
        self._ensure_not_excluded(base)
        self._ensure_not_excluded(target)
        start, end = self._validate_period(request.start, request.end)
        if request.page < 1:
            raise ValidationError("Page must be greater than zero")
        if request.page_size < 1:
            raise ValidationError("Page size must be greater than zero")

        provider = self.registry.get_provider(request.provider_name)
        all_rates = await provider.get_rates_for_period(base, target, start, end)

        ordered = sorted(all_rates.items())
        total_count = len(ordered)
        total_pages = math.ceil(total_count / request.page_size)
        offset = (request.page - 1) * request.page_size

        return PagedRatesResultDTO(
            page=request.page,
            page_size=request.page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_next=request.page < total_pages,
            has_previous=request.page > 1,
            rates=dict(ordered[offset:offset + request.page_size]),
        )

    def _ensure_not_excluded(self, currency: str) -> None:
        if self.rules.is_excluded(currency):
            raise ExclusionError(currency)

    @staticmethod
    def _require_provider_name(provider_name: Optional[str]) -> None:
        if not (provider_name or "").strip():
            raise ValidationError("Provider name is required")

    @staticmethod
    def _require_currency(code: Optional[str], label: str) -> str:
        currency = normalize_currency(code)
        if not currency:
            raise ValidationError(f"{label} is required")
        return currency

    @staticmethod
    def _validate_amount(amount: Any) -> Decimal:
        if isinstance(amount, bool):
            raise ValidationError("Amount must be a number")
        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Amount must be a number, got {amount!r}")
        if not value.is_finite() or value <= 0:
            raise ValidationError("Amount must be greater than zero")
        return value

    @staticmethod
    def _validate_timestamp(timestamp: Optional[date | datetime]) -> datetime:
        now = utc_now()
        if timestamp is None:
            return now

        moment = to_utc_datetime(timestamp)
        if moment > now:
            raise ValidationError("Timestamp cannot be in the future")
        if moment < years_before(now, MAX_HISTORICAL_YEARS):
            raise ValidationError(f"Timestamp cannot be older than {MAX_HISTORICAL_YEARS} year")
        return moment

    @staticmethod
    def _validate_period(start: date | datetime, end: date | datetime) -> tuple[date, date]:
        if start is None or end is None:
            raise ValidationError("Start and end dates are required")

        now = utc_now()
        today = now.date()
        min_date = years_before(now, MAX_HISTORICAL_YEARS).date()
        start_day, end_day = to_utc_date(start), to_utc_date(end)

        if not min_date <= start_day <= today:
            raise ValidationError(f"Start date must be between {min_date} and {today}")
        if not min_date <= end_day <= today:
            raise ValidationError(f"End date must be between {min_date} and {today}")
        if start_day > end_day:
            raise ValidationError("Start date cannot be later than end date")
        return start_day, end_day


def get_conversion_service() -> CurrencyConversionService:
    return CurrencyConversionService(get_provider_registry(), CurrencyRules.from_settings())
