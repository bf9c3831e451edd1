"""On-disk compilation cache."""

from .store import CacheHandle, CacheStore, compute_key, resolve_cache_directory

__all__ = [
    "CacheHandle",
    "CacheStore",
    "compute_key",
    "resolve_cache_directory",
]
