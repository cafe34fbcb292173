"""Asynchronous client for the Kraken public ticker endpoint.

The client performs exactly one HTTP GET per call and maps every failure
onto the service error taxonomy:

* connection problems, timeouts and non-2xx statuses raise
  :class:`~btc_ltp.errors.TransportError`;
* a body whose ``error`` list is non-empty raises
  :class:`~btc_ltp.errors.UpstreamApplicationError`;
* a body that is not JSON or does not have the ticker shape raises
  :class:`~btc_ltp.errors.DecodeError`.

Retrying is the caller's concern.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Mapping, Optional, Sequence

import aiohttp

from btc_ltp.config.pairs import SupportedPair, resolve_upstream_keys
from btc_ltp.errors import DecodeError, TransportError, UpstreamApplicationError

TickerResult = Mapping[str, Any]


class KrakenTickerClient:
    """Fetch last-trade tickers over a shared :class:`aiohttp.ClientSession`."""

    _TICKER_PATH = "/0/public/Ticker"

    def __init__(
        self,
        base_url: str = "https://api.kraken.com",
        *,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=10, limit_per_host=5, keepalive_timeout=30)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": "btc-ltp-service"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_ticker(self, symbols: Sequence[str]) -> TickerResult:
        """Return the ``result`` mapping for ``symbols``."""

        url = f"{self.base_url}{self._TICKER_PATH}"
        params = {"pair": ",".join(symbols)}
        context = {"symbols": list(symbols)}
        session = self._get_session()
        try:
            async with session.get(url, params=params, timeout=self._timeout) as resp:
                resp.raise_for_status()
                data: Any = await resp.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise TransportError("Upstream request timed out", context=context, cause=exc) from exc
        except aiohttp.ClientError as exc:
            raise TransportError("Upstream request failed", context=context, cause=exc) from exc
        except ValueError as exc:
            raise DecodeError("Upstream body is not valid JSON", context=context, cause=exc) from exc
        return decode_ticker_payload(data, symbols=symbols)


def decode_ticker_payload(data: Any, *, symbols: Sequence[str] = ()) -> TickerResult:
    """Validate the envelope of a ticker response and return its ``result``."""

    context = {"symbols": list(symbols)}
    if not isinstance(data, Mapping):
        raise DecodeError("Ticker payload is not an object", context=context)
    errors = data.get("error") or []
    if not isinstance(errors, list):
        raise DecodeError("Ticker payload has a malformed error list", context=context)
    if errors:
        raise UpstreamApplicationError(
            "Upstream reported errors",
            context={**context, "upstream_errors": [str(e) for e in errors]},
        )
    result = data.get("result")
    if not isinstance(result, Mapping):
        raise DecodeError("Ticker payload has no result object", context=context)
    return result


def find_ticker(result: TickerResult, pair: SupportedPair) -> Optional[Any]:
    """Return the ticker for ``pair`` under the first matching key, if any."""

    for key in resolve_upstream_keys(pair):
        if key in result:
            return result[key]
    return None


def parse_last_trade(ticker: Any, *, pair: str) -> float:
    """Extract the last trade price ``c[0]`` from a ticker object."""

    closed = ticker.get("c") if isinstance(ticker, Mapping) else None
    if not isinstance(closed, (list, tuple)) or not closed:
        raise DecodeError("Ticker has no last-trade field", context={"pair": pair})
    raw = closed[0]
    try:
        price = float(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(
            "Last-trade price is not a number",
            context={"pair": pair, "value": raw},
            cause=exc,
        ) from exc
    if not math.isfinite(price):
        raise DecodeError("Last-trade price is not finite", context={"pair": pair, "value": raw})
    return price


__all__ = [
    "KrakenTickerClient",
    "TickerResult",
    "decode_ticker_payload",
    "find_ticker",
    "parse_last_trade",
]
