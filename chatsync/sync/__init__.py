"""Sync pipeline: discovery, loading, minimization and the pass scheduler.

This module provides the pieces of one Redis -> MongoDB pass and the worker
that repeats it on a fixed interval.
"""

from .discovery import discover_user_index_keys, index_key_pattern, user_id_from_index_key
from .loader import load_user_sessions
from .minimizer import Minimizer, MinimizerOptions, serialized_size, truncate_content
from .stats import SyncStats
from .worker import SyncWorker

__all__ = [
    "Minimizer",
    "MinimizerOptions",
    "SyncStats",
    "SyncWorker",
    "discover_user_index_keys",
    "index_key_pattern",
    "load_user_sessions",
    "serialized_size",
    "truncate_content",
    "user_id_from_index_key",
]
