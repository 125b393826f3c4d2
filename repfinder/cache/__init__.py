"""Tiered in-memory cache and background preloading.

Exports:
    TieredCacheManager -- per-category TTL/LRU cache with fenced writes
    PreloadQueue       -- gated background job queue
    ForegroundGate     -- tracks in-flight foreground resolutions
"""

from repfinder.cache.manager import TieredCacheManager
from repfinder.cache.preload import ForegroundGate, PreloadQueue

__all__ = ["ForegroundGate", "PreloadQueue", "TieredCacheManager"]
