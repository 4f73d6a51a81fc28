"""
Configuration for the archival engine.
"""

from .config_loader import ArchivalConfig

__all__ = ["ArchivalConfig"]
