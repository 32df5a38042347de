"""
Data Transfer Objects for the application layer.
DTOs decouple internal domain models from external API contracts.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional


@dataclass
class ConversionRequestDTO:
    """Request DTO for currency conversion."""
    source_currency: str
    exchanged_currency: str
    amount: Decimal
    provider_name: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ConversionResultDTO:
    """Result DTO for currency conversion."""
    source_currency: str
    exchanged_currency: str
    amount: Decimal
    converted_amount: Decimal
    rate: Decimal
    timestamp: datetime
    provider_name: str


@dataclass
class LatestRatesRequestDTO:
    """Request DTO for the latest rates of a base currency."""
    base_currency: str
    target_currencies: List[str]
    provider_name: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class LatestRatesResultDTO:
    """Rates keyed by target currency, in request order."""
    base_currency: str
    timestamp: datetime
    provider_name: str
    rates: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class HistoricalRatesRequestDTO:
    """Request DTO for a paginated, inclusive date range of rates."""
    base_currency: str
    target_currency: str
    start: date
    end: date
    provider_name: str
    page: int = 1
    page_size: int = 10


@dataclass(frozen=True)
class PagedRatesResultDTO:
    """One page of historical rates, ordered by date ascending."""
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next: bool
    has_previous: bool
    rates: Dict[date, Decimal] = field(default_factory=dict)
