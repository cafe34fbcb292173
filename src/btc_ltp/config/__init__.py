"""Configuration: supported pairs and tunable refresh policy."""

from .pairs import (
    PAIRS_BY_DISPLAY,
    SUPPORTED_PAIRS,
    SupportedPair,
    is_supported,
    resolve_upstream_keys,
)
from .settings import Settings, load_settings

__all__ = [
    "PAIRS_BY_DISPLAY",
    "SUPPORTED_PAIRS",
    "Settings",
    "SupportedPair",
    "is_supported",
    "load_settings",
    "resolve_upstream_keys",
]
