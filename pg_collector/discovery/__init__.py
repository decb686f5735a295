"""
Discovery module - Reads catalog context for a snapshot.

Components:
- CatalogScanner: version, roles, databases, backends, relations, settings, functions
"""

from .catalog import CatalogScanner

__all__ = ["CatalogScanner"]
