"""Utility functions for handling ticker symbols.

Crypto holdings are stored with a leading ``@`` sigil (``@BTC``); every
other symbol is an equity ticker.
"""

from integrations.market_data_protocol import Instrument, InstrumentKind

CRYPTO_SIGIL = "@"


def normalize_symbol(symbol: str) -> str:
    """Strip whitespace and upper-case a symbol, keeping the crypto sigil."""
    return symbol.strip().upper()


def is_crypto_symbol(symbol: str) -> bool:
    """Check if a symbol denotes a cryptocurrency."""
    return symbol.strip().startswith(CRYPTO_SIGIL)


def classify_symbol(symbol: str) -> InstrumentKind:
    """Classify a symbol as equity or crypto.

    Pure and total: every string maps to exactly one kind.
    """
    return InstrumentKind.CRYPTO if is_crypto_symbol(symbol) else InstrumentKind.EQUITY


def to_instrument(symbol: str) -> Instrument:
    normalized = normalize_symbol(symbol)
    return Instrument(symbol=normalized, kind=classify_symbol(normalized))


def strip_crypto_sigil(symbol: str) -> str:
    """Return the bare crypto ticker (``@btc`` -> ``BTC``)."""
    bare = symbol.strip()
    if bare.startswith(CRYPTO_SIGIL):
        bare = bare[len(CRYPTO_SIGIL):]
    return bare.upper()
