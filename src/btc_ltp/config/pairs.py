"""Static table of supported trading pairs and upstream symbol helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class SupportedPair:
    """A trading pair served by the API.

    ``base`` and ``quote`` are the asset codes used by the upstream ticker
    API, which spells bitcoin ``XBT``; ``display_name`` is what clients see.
    """

    base: str
    quote: str
    display_name: str

    @property
    def upstream_symbol(self) -> str:
        """Symbol used when requesting this pair from the upstream."""

        return f"{self.base}{self.quote}"


SUPPORTED_PAIRS: Tuple[SupportedPair, ...] = (
    SupportedPair(base="XBT", quote="USD", display_name="BTC/USD"),
    SupportedPair(base="XBT", quote="CHF", display_name="BTC/CHF"),
    SupportedPair(base="XBT", quote="EUR", display_name="BTC/EUR"),
)

PAIRS_BY_DISPLAY: Dict[str, SupportedPair] = {p.display_name: p for p in SUPPORTED_PAIRS}


def resolve_upstream_keys(pair: SupportedPair) -> Tuple[str, ...]:
    """Return the result keys the upstream may use for ``pair``, in probe order.

    Responses are keyed either by the plain ``base+quote`` concatenation or
    by the asset-class marked form ``X<base>Z<quote>`` (``XXBTZUSD``).
    """

    return (f"{pair.base}{pair.quote}", f"X{pair.base}Z{pair.quote}")


def is_supported(display_name: str) -> bool:
    return display_name in PAIRS_BY_DISPLAY


__all__ = [
    "PAIRS_BY_DISPLAY",
    "SUPPORTED_PAIRS",
    "SupportedPair",
    "is_supported",
    "resolve_upstream_keys",
]
