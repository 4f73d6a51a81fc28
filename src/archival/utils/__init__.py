"""
Shared utilities for the archival engine.
"""

from .retry import RetryConfig, RetryResult, retry_with_backoff
from .files import file_sha256, prune_empty_dirs, prune_empty_tree, remove_quietly

__all__ = [
    "RetryConfig",
    "RetryResult",
    "retry_with_backoff",
    "file_sha256",
    "prune_empty_dirs",
    "prune_empty_tree",
    "remove_quietly",
]
