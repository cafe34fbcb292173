#!/usr/bin/env python3
"""CLI to run refresh cycles against the live upstream and print the cache."""

from __future__ import annotations

import argparse
import asyncio
import json

from btc_ltp.app.api import build_engine
from btc_ltp.cache.store import PriceCache
from btc_ltp.config.settings import load_settings
from btc_ltp.logging import configure_logging
from btc_ltp.pipeline.cache_refresh import schedule_cache_refresh


async def _run(loop: bool) -> None:
    settings = load_settings()
    cache = PriceCache()
    engine = build_engine(cache, settings)
    try:
        if loop:
            await schedule_cache_refresh(engine, delay=settings.refresh_interval)
        else:
            report = await engine.run_refresh_cycle()
            print(
                json.dumps(
                    {
                        "ltp": [entry.to_dict() for entry in cache.snapshot()],
                        "resolved": list(report.resolved),
                        "failed": list(report.failed),
                        "used_fallback": report.used_fallback,
                    },
                    indent=2,
                )
            )
    finally:
        await engine.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh last traded prices from the upstream")
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep refreshing every LTP_REFRESH_INTERVAL seconds instead of once",
    )
    args = parser.parse_args()
    configure_logging()
    asyncio.run(_run(args.loop))


if __name__ == "__main__":
    main()
