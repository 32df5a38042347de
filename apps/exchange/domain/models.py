"""
Pure domain entities (POPOs).
No dependency on Django or the cache backend.
"""

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ExchangeRate:

    source_currency: str
    exchanged_currency: str
    valuation_date: date
    rate_value: Decimal

    def __post_init__(self):
        if self.rate_value <= 0:
            raise ValueError(f"rate_value must be positive, got {self.rate_value}")

    def convert(self, amount: Decimal) -> Decimal:
        return amount * self.rate_value


@dataclass(frozen=True)
class CacheLookup(Generic[T]):
    """
    Result of a cache probe.
    `hit` tells a stored value apart from an absent one, so a cached zero
    or None is still a hit.
    """

    hit: bool
    value: Optional[T] = None

    @classmethod
    def miss(cls) -> "CacheLookup[Any]":
        return cls(hit=False)

    @classmethod
    def found(cls, value: T) -> "CacheLookup[T]":
        return cls(hit=True, value=value)


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def normalize_currency(code: Optional[str]) -> str:
    return (code or "").strip().upper()
