"""Typed exception hierarchy for price provider errors.

Provides structured exceptions so callers can tell "no data exists"
apart from throttling and transient network trouble:

- ``PriceNotFoundError``: expected, not exceptional. ``UnusableSymbolError``
  and ``ProviderDataError`` are NotFound variants.
- ``RateLimitedError``: upstream throttling; stop issuing calls and degrade.
- ``TransientProviderError``: network failure or 5xx; retry once.
"""


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Carries the provider name so callers can identify which provider failed.
    """

    retriable = False

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class PriceNotFoundError(ProviderError):
    """The provider has no price for the requested symbol/date."""

    pass


class UnusableSymbolError(PriceNotFoundError):
    """Symbol is on the provider's known-bad list; no network call was made."""

    def __init__(self, symbol: str, provider_name: str = ""):
        self.symbol = symbol
        super().__init__(
            f"{symbol} is marked unusable for {provider_name or 'this provider'}",
            provider_name,
        )


class ProviderDataError(PriceNotFoundError):
    """Malformed or unparseable response from the provider."""

    pass


class RateLimitedError(ProviderError):
    """Provider throttled the request (HTTP 429)."""

    pass


class TransientProviderError(ProviderError):
    """Network failures and 5xx responses. Retriable once."""

    retriable = True

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)
