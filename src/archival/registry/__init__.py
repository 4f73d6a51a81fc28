"""
Registry of archivable objects.
"""

from .registry_reader import RegistryReader

__all__ = ["RegistryReader"]
