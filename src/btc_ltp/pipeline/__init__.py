"""Background refresh of the price cache."""

from __future__ import annotations

from .cache_refresh import RefreshEngine, RefreshReport, schedule_cache_refresh

__all__ = ["RefreshEngine", "RefreshReport", "schedule_cache_refresh"]
