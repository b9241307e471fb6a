"""Engine components orchestrating fetch → parse → normalize → dedup."""

from .backoff import BackoffPolicy
from .dedup import DedupIndex, DedupStore, MemoryDedupStore, SQLiteDedupStore, build_dedup_index
from .fetcher import Fetcher
from .normalizer import Normalizer, normalize
from .rate_limit import RateLimiter
from .thread_pool import ThreadPoolManager

__all__ = [
    "BackoffPolicy",
    "DedupIndex",
    "DedupStore",
    "Fetcher",
    "MemoryDedupStore",
    "Normalizer",
    "RateLimiter",
    "SQLiteDedupStore",
    "ThreadPoolManager",
    "build_dedup_index",
    "normalize",
]
