"""Upstream price sources."""

from .kraken_http_async import (
    KrakenTickerClient,
    decode_ticker_payload,
    find_ticker,
    parse_last_trade,
)

__all__ = [
    "KrakenTickerClient",
    "decode_ticker_payload",
    "find_ticker",
    "parse_last_trade",
]
