"""
Artifact extraction.
"""

from .dump_engine import DumpEngine, count_row_statements

__all__ = ["DumpEngine", "count_row_statements"]
