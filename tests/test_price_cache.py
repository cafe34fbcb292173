"""Behaviour of the in-memory price cache."""

from __future__ import annotations

import itertools
import threading

import pytest

from btc_ltp.cache.store import PriceCache, PriceEntry
from btc_ltp.config.pairs import SUPPORTED_PAIRS
from btc_ltp.errors import ValidationError

ALL_PAIRS = [p.display_name for p in SUPPORTED_PAIRS]


def _filled_cache(**kwargs) -> PriceCache:
    cache = PriceCache(**kwargs)
    cache.upsert("BTC/USD", 52000.12)
    cache.upsert("BTC/EUR", 50000.12)
    return cache


def test_snapshot_returns_only_cached_requested_pairs() -> None:
    cache = _filled_cache()
    for size in range(1, len(ALL_PAIRS) + 1):
        for subset in itertools.combinations(ALL_PAIRS, size):
            result = cache.snapshot(subset)
            names = [entry.pair for entry in result]
            assert len(names) == len(set(names))
            assert set(names) == set(subset) & {"BTC/USD", "BTC/EUR"}


def test_snapshot_empty_request_means_all_pairs() -> None:
    cache = _filled_cache()
    assert cache.snapshot([]) == cache.snapshot(ALL_PAIRS)
    assert cache.snapshot(None) == cache.snapshot(ALL_PAIRS)
    assert [e.pair for e in cache.snapshot()] == ["BTC/USD", "BTC/EUR"]


def test_snapshot_after_upsert_returns_exact_entry() -> None:
    cache = PriceCache()
    cache.upsert("BTC/USD", 52000.12)
    assert cache.snapshot({"BTC/USD"}) == [PriceEntry("BTC/USD", 52000.12)]


def test_snapshot_drops_unknown_and_duplicate_pairs_and_keeps_request_order() -> None:
    cache = _filled_cache()
    result = cache.snapshot(["BTC/EUR", "BTC/JPY", "BTC/EUR", "BTC/USD", "btc/usd"])
    assert [e.pair for e in result] == ["BTC/EUR", "BTC/USD"]


def test_snapshot_of_empty_cache_is_empty() -> None:
    assert PriceCache().snapshot() == []


def test_upsert_replaces_whole_entry() -> None:
    cache = PriceCache()
    first = cache.upsert("BTC/CHF", 1.0)
    second = cache.upsert("BTC/CHF", 2.0)
    assert first is not second
    assert cache.snapshot(["BTC/CHF"]) == [PriceEntry("BTC/CHF", 2.0)]


def test_upsert_rejects_unsupported_pair() -> None:
    cache = PriceCache()
    with pytest.raises(ValidationError):
        cache.upsert("BTC/JPY", 1.0)
    assert cache.snapshot(["BTC/JPY"]) == []


def test_try_begin_refresh_is_single_flight() -> None:
    cache = PriceCache()
    assert cache.try_begin_refresh() is True
    assert cache.refresh_in_flight is True
    assert cache.try_begin_refresh() is False
    cache.end_refresh()
    assert cache.refresh_in_flight is False
    assert cache.try_begin_refresh() is True


def test_try_begin_refresh_admits_one_thread() -> None:
    cache = PriceCache()
    barrier = threading.Barrier(8)
    wins: list[bool] = []
    lock = threading.Lock()

    def contender() -> None:
        barrier.wait()
        won = cache.try_begin_refresh()
        with lock:
            wins.append(won)

    threads = [threading.Thread(target=contender) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert wins.count(True) == 1


def test_is_stale_tracks_last_attempt(clock) -> None:
    cache = PriceCache(clock=clock)
    assert cache.is_stale(60) is True
    assert cache.age() is None

    cache.mark_refresh_attempted()
    assert cache.last_refresh == clock.now
    assert cache.is_stale(60) is False

    clock.advance(60)
    assert cache.is_stale(60) is False
    clock.advance(0.5)
    assert cache.is_stale(60) is True
    assert cache.age() == pytest.approx(60.5)


def test_mark_refresh_attempted_does_not_touch_entries(clock) -> None:
    cache = _filled_cache(clock=clock)
    before = cache.snapshot()
    clock.advance(120)
    cache.mark_refresh_attempted()
    assert cache.snapshot() == before
    assert cache.is_stale(60) is False


def test_concurrent_snapshots_never_see_torn_entry() -> None:
    cache = PriceCache()
    cache.upsert("BTC/USD", 1.0)
    allowed = {1.0, 2.0}
    stop = threading.Event()
    bad: list[PriceEntry] = []

    def writer() -> None:
        for i in range(5000):
            cache.upsert("BTC/USD", 2.0 if i % 2 else 1.0)
        stop.set()

    def reader() -> None:
        while not stop.is_set():
            for entry in cache.snapshot(["BTC/USD"]):
                if entry.pair != "BTC/USD" or entry.amount not in allowed:
                    bad.append(entry)

    threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert bad == []
    assert cache.snapshot(["BTC/USD"])[0].amount in allowed
