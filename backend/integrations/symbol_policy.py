"""Known-bad symbol lists, kept as data rather than inline conditionals."""

from dataclasses import dataclass, field

from integrations.market_data_protocol import InstrumentKind
from utils.ticker import normalize_symbol, strip_crypto_sigil


def _policy_key(kind: InstrumentKind, symbol: str) -> str:
    # Crypto entries may be configured with or without the sigil
    if kind is InstrumentKind.CRYPTO:
        return strip_crypto_sigil(symbol)
    return normalize_symbol(symbol)


@dataclass(frozen=True)
class UnusableSymbols:
    """Per-provider sets of symbols whose price data is unreliable.

    Recently listed or delisted issues often return partial or bogus
    history. Lookups for these resolve to NotFound without a network call.
    """

    equity: frozenset[str] = field(default_factory=frozenset)
    crypto: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_lists(cls, equity: list[str], crypto: list[str]) -> "UnusableSymbols":
        return cls(
            equity=frozenset(_policy_key(InstrumentKind.EQUITY, s) for s in equity if s.strip()),
            crypto=frozenset(_policy_key(InstrumentKind.CRYPTO, s) for s in crypto if s.strip()),
        )

    def for_kind(self, kind: InstrumentKind) -> frozenset[str]:
        return self.crypto if kind is InstrumentKind.CRYPTO else self.equity

    def contains(self, kind: InstrumentKind, symbol: str) -> bool:
        return _policy_key(kind, symbol) in self.for_kind(kind)
