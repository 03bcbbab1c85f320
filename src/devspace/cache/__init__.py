"""Configuration cache with modification-time invalidation."""

from src.devspace.cache.models import CacheEntry
from src.devspace.cache.store import ConfigCache

__all__ = ["CacheEntry", "ConfigCache"]
