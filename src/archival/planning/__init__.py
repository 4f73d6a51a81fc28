"""
Per-object window planning.
"""

from .window_planner import WindowPlanner

__all__ = ["WindowPlanner"]
