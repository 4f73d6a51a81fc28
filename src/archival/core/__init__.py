"""
Core abstractions and interfaces for the archival engine.
"""

from .models import (
    ArchiveWindow, Checkpoint, CheckpointScope, DumpArtifact, DumpMode,
    ObjectKind, ObjectPlan, ObjectResult, ObjectState, RegistryEntry,
    RunSummary, WindowPredicate,
)
from .database import Database, is_valid_identifier, quote_identifier
from .dump_tool import DumpTool
from .checkpoint_store import CheckpointStore
from .object_store import ObjectStore

__all__ = [
    "ArchiveWindow",
    "Checkpoint",
    "CheckpointScope",
    "DumpArtifact",
    "DumpMode",
    "ObjectKind",
    "ObjectPlan",
    "ObjectResult",
    "ObjectState",
    "RegistryEntry",
    "RunSummary",
    "WindowPredicate",
    "Database",
    "is_valid_identifier",
    "quote_identifier",
    "DumpTool",
    "CheckpointStore",
    "ObjectStore",
]
