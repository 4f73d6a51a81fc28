"""
Run orchestration.
"""

from .archive_runner import (
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_PREREQUISITE_MISSING,
    EXIT_REGISTRY_UNAVAILABLE,
    EXIT_TRANSFER_FAILED,
    ArchiveRunner,
    RunnerConfig,
    make_run_id,
)

__all__ = [
    "ArchiveRunner",
    "RunnerConfig",
    "make_run_id",
    "EXIT_OK",
    "EXIT_ERROR",
    "EXIT_REGISTRY_UNAVAILABLE",
    "EXIT_PREREQUISITE_MISSING",
    "EXIT_TRANSFER_FAILED",
    "EXIT_INTERRUPTED",
]
