from collections.abc import Iterable
from typing import Optional

from core.settings import EXCLUDED_CURRENCIES
from apps.exchange.domain.models import normalize_currency


class CurrencyRules:
    """Currencies the service refuses to convert or quote (case-insensitive)."""

    def __init__(self, excluded: Iterable[str] = ()):
        self.excluded = frozenset(
            normalize_currency(code) for code in excluded if normalize_currency(code)
        )

    @classmethod
    def from_settings(cls) -> "CurrencyRules":
        return cls(EXCLUDED_CURRENCIES)

    def is_excluded(self, currency_code: Optional[str]) -> bool:
        code = normalize_currency(currency_code)
        return bool(code) and code in self.excluded
