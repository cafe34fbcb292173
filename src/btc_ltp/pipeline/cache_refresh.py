"""Refresh the price cache from the upstream ticker API.

A refresh cycle first asks for every supported pair in one batched
request.  When that request cannot produce a usable response after all
retries, each pair is fetched on its own so one bad symbol or a transient
failure cannot starve the others.  Every cycle ends by resetting the
staleness clock and releasing the single-flight slot, whatever happened.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Set, Tuple

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from btc_ltp.cache.store import PriceCache
from btc_ltp.config.pairs import SUPPORTED_PAIRS, SupportedPair
from btc_ltp.datasource.kraken_http_async import (
    KrakenTickerClient,
    TickerResult,
    find_ticker,
    parse_last_trade,
)
from btc_ltp.errors import LTPError, wrap_error
from btc_ltp.logging import get_logger, log_exception


logger = get_logger(__name__, component="refresh_engine")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RefreshReport:
    """Outcome of one call to :meth:`RefreshEngine.run_refresh_cycle`."""

    skipped: bool = False
    used_fallback: bool = False
    resolved: Tuple[str, ...] = ()
    failed: Tuple[str, ...] = ()


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, LTPError) and exc.retryable


class RefreshEngine:
    """Populate a :class:`PriceCache` from a :class:`KrakenTickerClient`.

    Parameters
    ----------
    cache:
        Cache to fill.  The engine only touches it through its public
        methods.
    client:
        Upstream ticker client.
    pairs:
        Pairs to refresh, in request order.
    max_retries:
        Attempts per batched request and per single-pair request.
    backoff_base:
        Delay in seconds after the first failed attempt; doubles on each
        further attempt.
    backoff_jitter:
        Upper bound in seconds of the uniform jitter added to each delay.
    sleep:
        Coroutine used for backoff waits.  Tests inject a recorder.
    """

    def __init__(
        self,
        cache: PriceCache,
        client: KrakenTickerClient,
        *,
        pairs: Sequence[SupportedPair] = SUPPORTED_PAIRS,
        max_retries: int = 3,
        backoff_base: float = 0.1,
        backoff_jitter: float = 0.1,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.client = client
        self.pairs = tuple(pairs)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self._sleep = sleep
        self._background: Set[asyncio.Task[RefreshReport]] = set()

    # Retry policy -------------------------------------------------------

    def _retrying(self, *, scope: str) -> AsyncRetrying:
        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                {
                    "event": f"{scope}_attempt_failed",
                    "attempt": state.attempt_number,
                    "max_attempts": self.max_retries,
                    "error": exc.to_dict() if isinstance(exc, LTPError) else repr(exc),
                }
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_base, exp_base=2)
            + wait_random(0, self.backoff_jitter),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

    async def _fetch_with_retry(self, symbols: List[str], *, scope: str) -> TickerResult:
        async for attempt in self._retrying(scope=scope):
            with attempt:
                result = await self.client.fetch_ticker(symbols)
        return result

    # Cycle --------------------------------------------------------------

    async def _fetch_batch(self) -> Optional[TickerResult]:
        symbols = [pair.upstream_symbol for pair in self.pairs]
        try:
            return await self._fetch_with_retry(symbols, scope="batch")
        except LTPError as error:
            log_exception(
                logger,
                error,
                event="batch_fetch_failed",
                context={"attempts": self.max_retries},
                level=logging.WARNING,
            )
            return None

    async def _fetch_pair(self, pair: SupportedPair) -> Optional[TickerResult]:
        try:
            return await self._fetch_with_retry([pair.upstream_symbol], scope="pair")
        except LTPError as error:
            log_exception(
                logger,
                error,
                event="pair_fetch_failed",
                context={"pair": pair.display_name},
            )
            return None

    def _apply(
        self, result: TickerResult, pairs: Iterable[SupportedPair]
    ) -> Tuple[List[str], List[str]]:
        resolved: List[str] = []
        failed: List[str] = []
        for pair in pairs:
            ticker = find_ticker(result, pair)
            if ticker is None:
                logger.warning(
                    {"event": "pair_missing_from_result", "pair": pair.display_name}
                )
                failed.append(pair.display_name)
                continue
            try:
                price = parse_last_trade(ticker, pair=pair.display_name)
            except LTPError as error:
                log_exception(logger, error, event="pair_decode_failed")
                failed.append(pair.display_name)
                continue
            self.cache.upsert(pair.display_name, price)
            resolved.append(pair.display_name)
        return resolved, failed

    async def _fallback(self) -> Tuple[List[str], List[str]]:
        resolved: List[str] = []
        failed: List[str] = []
        for pair in self.pairs:
            result = await self._fetch_pair(pair)
            if result is None:
                failed.append(pair.display_name)
                continue
            ok, bad = self._apply(result, (pair,))
            resolved.extend(ok)
            failed.extend(bad)
        return resolved, failed

    async def run_refresh_cycle(self) -> RefreshReport:
        """Run one refresh if no other refresh is in flight."""

        if not self.cache.try_begin_refresh():
            logger.info({"event": "refresh_skipped", "reason": "refresh_in_flight"})
            return RefreshReport(skipped=True)

        used_fallback = False
        try:
            result = await self._fetch_batch()
            if result is None:
                used_fallback = True
                logger.info({"event": "fallback_started", "pairs": len(self.pairs)})
                resolved, failed = await self._fallback()
            else:
                resolved, failed = self._apply(result, self.pairs)
        finally:
            self.cache.mark_refresh_attempted()
            self.cache.end_refresh()

        report = RefreshReport(
            used_fallback=used_fallback,
            resolved=tuple(resolved),
            failed=tuple(failed),
        )
        if resolved:
            logger.info(
                {
                    "event": "refresh_completed",
                    "resolved": list(report.resolved),
                    "failed": list(report.failed),
                    "used_fallback": used_fallback,
                }
            )
        else:
            logger.warning(
                {
                    "event": "refresh_resolved_nothing",
                    "failed": list(report.failed),
                    "used_fallback": used_fallback,
                }
            )
        return report

    # Triggers -----------------------------------------------------------

    def trigger_background(self) -> Optional["asyncio.Task[RefreshReport]"]:
        """Start a detached refresh and return immediately.

        Must be called from a running event loop.  Returns ``None`` without
        spawning when a refresh is already in flight.
        """

        if self.cache.refresh_in_flight:
            return None
        task = asyncio.get_running_loop().create_task(self.run_refresh_cycle())
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: "asyncio.Task[RefreshReport]") -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_exception(
                logger,
                wrap_error(exc, message="Background refresh failed"),
                event="background_refresh_failed",
            )

    @property
    def pending_background(self) -> int:
        return len(self._background)

    async def aclose(self) -> None:
        """Cancel detached refreshes and release the HTTP client."""

        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.close()


async def schedule_cache_refresh(engine: RefreshEngine, *, delay: float = 30.0) -> None:
    """Run :meth:`RefreshEngine.run_refresh_cycle` forever, one cycle per ``delay`` seconds.

    The first cycle runs immediately.  Cycle starts keep a fixed cadence: the
    time a cycle spends is taken off the following wait, and a cycle that
    overruns ``delay`` is followed by the next one straight away.  A failing
    iteration is logged and the loop carries on; cancellation propagates.
    """

    loop = asyncio.get_running_loop()
    while True:
        started = loop.time()
        try:
            await engine.run_refresh_cycle()
        except asyncio.CancelledError:
            logger.info({"event": "cache_refresh_cancelled"})
            raise
        except Exception as err:
            log_exception(
                logger,
                wrap_error(
                    err,
                    message="Scheduled cache refresh iteration failed",
                    context={"delay": delay},
                ),
                event="cache_refresh_iteration_failed",
            )
        elapsed = loop.time() - started
        if elapsed > delay:
            logger.warning(
                {"event": "cache_refresh_overran", "elapsed": round(elapsed, 3), "delay": delay}
            )
        try:
            await asyncio.sleep(max(0.0, delay - elapsed))
        except asyncio.CancelledError:
            logger.info({"event": "cache_refresh_cancelled"})
            raise


__all__ = ["RefreshEngine", "RefreshReport", "schedule_cache_refresh"]
