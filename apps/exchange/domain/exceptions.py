"""
Error taxonomy for the exchange domain.

Each error carries the HTTP status the outer API layer uses when surfacing it.
"""

from typing import Optional


class ExchangeError(Exception):
    """Base exchange exception."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ExchangeError):
    """Bad request shape or values (amount, dates, paging, missing provider name)."""

    status_code = 400


class ProviderNotFoundError(ExchangeError):
    status_code = 404

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"Provider '{provider_name}' not found")


class ExclusionError(ExchangeError):
    """A currency is forbidden by the configured currency rules."""

    status_code = 403

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Currency {currency} is excluded from conversion")


class UpstreamError(ExchangeError):
    """Upstream answered, but the payload is unusable."""

    status_code = 502


class TransportError(ExchangeError):
    """Upstream could not be reached or answered with an error status."""

    status_code = 503

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class CircuitOpenError(TransportError):
    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(f"Circuit is open, calls blocked for another {retry_after:.1f}s")


class CacheError(ExchangeError):
    """Backing-store failure. Absorbed at the cache boundary, never surfaced."""
