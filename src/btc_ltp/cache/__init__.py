"""Price cache package."""

from .store import DEFAULT_STALE_AFTER, PriceCache, PriceEntry

__all__ = ["DEFAULT_STALE_AFTER", "PriceCache", "PriceEntry"]
