"""
UI module - Rich console output for cycle results.
"""

from .display import ResultDisplay

__all__ = ["ResultDisplay"]
