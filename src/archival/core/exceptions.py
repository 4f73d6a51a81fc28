"""
Custom exceptions for the archival engine.

Per-object errors (InvalidRegistryRow, SchemaIntrospectionFailed, DumpFailed,
DeleteFailed, RestoreFailed) are recovered by the runner and recorded on the
object's result. Registry, prerequisite, configuration and transfer errors are
fatal to the run.
"""

from typing import Optional


class ArchivalError(Exception):
    """Base exception for all archival errors."""
    pass


class ArchivalConfigError(ArchivalError):
    """
    Error in archival configuration.

    Raised when:
    - Configuration file is missing or invalid
    - Required configuration values are not set
    - Configuration values are out of valid range
    """
    pass


class PrerequisiteMissing(ArchivalError):
    """A required external capability (client binary, credentials) is unavailable."""
    pass


class RegistryUnavailable(ArchivalError):
    """The manager table could not be queried."""
    pass


class ObjectError(ArchivalError):
    """Error scoped to a single archived object."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class InvalidRegistryRow(ObjectError):
    """A manager table row is malformed and was skipped."""
    pass


class SchemaIntrospectionFailed(ObjectError):
    """Object kind or column existence could not be resolved."""
    pass


class DumpFailed(ObjectError):
    """
    Extraction of an object's rows failed.

    Any partially written artifact has already been removed when this is raised.
    """
    pass


class DeleteFailed(ObjectError):
    """
    Deleting archived rows from the source failed.

    The artifact stands; source rows are retained and may be archived again.
    """
    pass


class RestoreFailed(ObjectError):
    """Applying an artifact to the destination failed. The artifact is retained."""
    pass


class TransferFailed(ArchivalError):
    """
    Syncing artifacts to object storage failed after all retries.
    """

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts
