"""
Source deletion and destination restore.
"""

from .mutation_engine import MutationEngine

__all__ = ["MutationEngine"]
