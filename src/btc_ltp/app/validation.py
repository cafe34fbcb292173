"""Normalisation of client-supplied ``pair`` query values."""

from __future__ import annotations

from typing import Iterable, List


def normalize_pair(raw: str) -> str:
    return raw.strip().upper()


def normalize_requested_pairs(raw: Iterable[str] | None) -> List[str]:
    """Trim and upper-case requested pairs.

    An absent or empty request yields ``[]``, which the cache reads as
    "every supported pair".  Unknown values are kept and left for the cache
    to drop, so ``?pair=foo`` still answers with an empty list rather than
    every pair.
    """

    if not raw:
        return []
    return [normalize_pair(value) for value in raw]


__all__ = ["normalize_pair", "normalize_requested_pairs"]
