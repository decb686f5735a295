"""
Runner module - Orchestrates collection cycles.

- CollectionCycle: connect, capture, diff, report and persist for one server
- run_cycles / run_loop: one worker per server, optionally on an interval
"""

from .cycle import CollectionCycle, Server
from .pool import run_cycles, run_loop

__all__ = [
    "CollectionCycle",
    "Server",
    "run_cycles",
    "run_loop",
]
