"""Last traded prices for a fixed set of BTC pairs, served from a refreshable cache."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
