"""
Filesystem helpers for the artifact tree.
"""

import hashlib
import logging
from pathlib import Path


logger = logging.getLogger(__name__)


def file_sha256(path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Compute the sha256 hex digest of a file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def remove_quietly(path: Path) -> bool:
    """Delete a file if present. Returns True when a file was removed."""
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return False


def prune_empty_dirs(start: Path, stop: Path) -> int:
    """
    Remove empty directories from `start` upwards, stopping below `stop`.

    Returns:
        Number of directories removed
    """
    start = Path(start).resolve()
    stop = Path(stop).resolve()
    removed = 0
    current = start
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            break
        removed += 1
        current = current.parent
    return removed


def prune_empty_tree(root: Path) -> int:
    """
    Remove every empty directory below root (root itself is kept).

    Returns:
        Number of directories removed
    """
    root = Path(root)
    if not root.is_dir():
        return 0
    removed = 0
    # Deepest first so parents emptied by the pass are removed too
    for path in sorted((p for p in root.rglob("*") if p.is_dir()), key=lambda p: len(p.parts), reverse=True):
        try:
            path.rmdir()
            removed += 1
        except OSError:
            continue
    return removed
