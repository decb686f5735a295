"""
Entry point for running pg_collector as a module.

Usage:
    python -m pg_collector --config pg_collector.toml
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
