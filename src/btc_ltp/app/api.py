"""FastAPI application serving last traded prices.

Run with:
    uvicorn btc_ltp.app.api:app
or:
    python -m btc_ltp.app.api

Environment variables prefixed with ``LTP_`` (e.g. ``LTP_REFRESH_INTERVAL``)
override the defaults in :class:`btc_ltp.config.settings.Settings`.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from fastapi import FastAPI, Query, Request, status
from starlette.responses import JSONResponse

from btc_ltp.cache.store import PriceCache
from btc_ltp.config.pairs import SUPPORTED_PAIRS
from btc_ltp.config.settings import Settings, load_settings
from btc_ltp.datasource.kraken_http_async import KrakenTickerClient
from btc_ltp.errors import get_error_metrics
from btc_ltp.logging import configure_logging, get_logger
from btc_ltp.pipeline.cache_refresh import RefreshEngine, schedule_cache_refresh
from btc_ltp.app.validation import normalize_requested_pairs


settings: Settings = load_settings()

logger = get_logger(__name__, component="rest_api")

app = FastAPI(title="BTC LTP API")


def build_engine(cache: PriceCache, config: Settings) -> RefreshEngine:
    client = KrakenTickerClient(config.upstream_base_url, timeout=config.request_timeout)
    return RefreshEngine(
        cache,
        client,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base,
        backoff_jitter=config.backoff_jitter,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """Create the cache and engine, then start the periodic refresh task."""

    cache = PriceCache()
    engine = build_engine(cache, settings)
    app.state.cache = cache
    app.state.engine = engine
    app.state.cache_refresh_task = asyncio.create_task(
        schedule_cache_refresh(engine, delay=settings.refresh_interval)
    )
    logger.info(
        {
            "event": "service_started",
            "pairs": [p.display_name for p in SUPPORTED_PAIRS],
            "refresh_interval": settings.refresh_interval,
            "stale_after": settings.stale_after,
        }
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    task = getattr(app.state, "cache_refresh_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:  # pragma: no cover - defensive logging
            logger.warning("Cache refresh task raised during shutdown", exc_info=exc)
    engine: Optional[RefreshEngine] = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.aclose()
    app.state.cache_refresh_task = None


def _check_cache_refresh_task() -> tuple[bool, dict[str, Any]]:
    """Return health information for the periodic refresh task."""

    task = getattr(app.state, "cache_refresh_task", None)
    if task is None:
        return False, {"status": "missing", "detail": "cache_refresh_task_missing"}
    if task.cancelled():
        return False, {"status": "cancelled", "detail": "cache_refresh_task_cancelled"}
    if task.done():
        exc = task.exception()
        if exc is not None:
            return False, {
                "status": "error",
                "detail": f"cache_refresh_task_failed:{exc.__class__.__name__}",
            }
        return False, {"status": "completed", "detail": "cache_refresh_task_exited"}
    return True, {"status": "running", "detail": None}


def _cache_report(cache: PriceCache) -> dict[str, Any]:
    age = cache.age()
    return {
        "cached_pairs": [entry.pair for entry in cache.snapshot()],
        "age_seconds": round(age, 3) if age is not None else None,
        "stale": cache.is_stale(settings.stale_after),
        "refresh_in_flight": cache.refresh_in_flight,
    }


@app.get("/healthz", tags=["operations"], response_class=JSONResponse)
async def healthz() -> JSONResponse:
    """Liveness endpoint reporting the background refresh task."""

    task_ok, task_report = _check_cache_refresh_task()
    body = {
        "status": "ok" if task_ok else "error",
        "cache_refresh_task": task_report,
        "cache": _cache_report(app.state.cache),
        "errors": get_error_metrics(),
    }
    code = status.HTTP_200_OK if task_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)


@app.get("/readyz", tags=["operations"], response_class=JSONResponse)
async def readyz() -> JSONResponse:
    """Readiness endpoint: at least one price cached and the cache not stale."""

    report = _cache_report(app.state.cache)
    ready = bool(report["cached_pairs"]) and not report["stale"]
    code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content={"status": "ok" if ready else "error", "cache": report})


def _spawn_refresh(engine: RefreshEngine) -> None:
    """Kick off a detached refresh; the caller never waits on it."""

    task = engine.trigger_background()
    if task is not None:
        logger.info({"event": "stale_read_refresh_spawned"})


@app.get("/api/v1/ltp")
async def ltp_endpoint(
    request: Request,
    pair: Optional[List[str]] = Query(default=None),
) -> dict[str, Any]:
    """Return cached last traded prices for the requested pairs.

    Repeat ``pair`` to ask for several pairs; omit it for all of them.
    Unsupported or not yet resolved pairs are left out of the response.
    """

    state = request.app.state
    cache: PriceCache = state.cache
    entries = cache.snapshot(normalize_requested_pairs(pair))
    if cache.is_stale(settings.stale_after):
        _spawn_refresh(state.engine)
    return {"ltp": [entry.to_dict() for entry in entries]}


def main() -> None:
    """Run the service with :mod:`uvicorn`."""

    import uvicorn

    configure_logging()
    uvicorn.run("btc_ltp.app.api:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main()
