"""In-memory store for the latest traded price of each supported pair.

:class:`PriceCache` owns all mutable price state.  Every method holds the
internal lock only for dictionary work, never across I/O, so readers are
never delayed by an upstream request.  Entries are immutable
:class:`PriceEntry` objects that are swapped in whole, which makes a
half-written price unobservable.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from btc_ltp.config.pairs import PAIRS_BY_DISPLAY, SUPPORTED_PAIRS
from btc_ltp.errors import ValidationError

DEFAULT_STALE_AFTER = 60.0


@dataclass(frozen=True)
class PriceEntry:
    """Last traded price for one pair."""

    pair: str
    amount: float

    def to_dict(self) -> dict[str, object]:
        return {"pair": self.pair, "amount": self.amount}


class PriceCache:
    """Thread-safe price table plus refresh bookkeeping.

    Parameters
    ----------
    clock:
        Monotonic time source in seconds.  Tests inject a fake clock to
        control staleness.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, PriceEntry] = {}
        self._last_refresh: Optional[float] = None
        self._refresh_in_flight = False

    # Read surface -------------------------------------------------------

    def snapshot(self, requested_pairs: Optional[Iterable[str]] = None) -> List[PriceEntry]:
        """Return cached entries for ``requested_pairs``.

        Pairs that are unsupported or have never resolved are omitted and
        duplicates collapse.  An empty or missing request means every
        supported pair.  Results follow the request order.
        """

        wanted = list(requested_pairs or ())
        if not wanted:
            wanted = [pair.display_name for pair in SUPPORTED_PAIRS]
        seen: set[str] = set()
        with self._lock:
            entries = self._entries
            result: List[PriceEntry] = []
            for name in wanted:
                if name in seen or name not in PAIRS_BY_DISPLAY:
                    continue
                seen.add(name)
                entry = entries.get(name)
                if entry is not None:
                    result.append(entry)
        return result

    def is_stale(self, threshold: float = DEFAULT_STALE_AFTER) -> bool:
        """Return ``True`` when no refresh was attempted within ``threshold`` seconds.

        A cache that has never attempted a refresh is stale.
        """

        with self._lock:
            last = self._last_refresh
        if last is None:
            return True
        return self._clock() - last > threshold

    def age(self) -> Optional[float]:
        """Seconds since the last refresh attempt, or ``None`` before the first."""

        with self._lock:
            last = self._last_refresh
        if last is None:
            return None
        return self._clock() - last

    @property
    def last_refresh(self) -> Optional[float]:
        with self._lock:
            return self._last_refresh

    @property
    def refresh_in_flight(self) -> bool:
        with self._lock:
            return self._refresh_in_flight

    # Write surface ------------------------------------------------------

    def try_begin_refresh(self) -> bool:
        """Claim the single refresh slot.

        Returns ``True`` if the caller now owns the refresh and must call
        :meth:`end_refresh` exactly once; ``False`` if one is already running.
        """

        with self._lock:
            if self._refresh_in_flight:
                return False
            self._refresh_in_flight = True
            return True

    def end_refresh(self) -> None:
        with self._lock:
            self._refresh_in_flight = False

    def upsert(self, display_name: str, amount: float) -> PriceEntry:
        """Replace the entry for ``display_name`` with a new price."""

        if display_name not in PAIRS_BY_DISPLAY:
            raise ValidationError(
                "Refusing to cache an unsupported pair",
                context={"pair": display_name},
            )
        entry = PriceEntry(pair=display_name, amount=float(amount))
        with self._lock:
            self._entries[display_name] = entry
        return entry

    def mark_refresh_attempted(self) -> None:
        """Reset the staleness clock.

        Called at the end of every refresh cycle, including cycles that
        resolved nothing, so the clock tracks attempts rather than content.
        """

        now = self._clock()
        with self._lock:
            self._last_refresh = now


__all__ = ["DEFAULT_STALE_AFTER", "PriceCache", "PriceEntry"]
