"""
State store - keeps the most recent Snapshot per API key across runs.

The on-disk container is a single JSON document:

    {"format_version": 1, "prev_state_by_api_key": {"<api key>": {...snapshot...}}}

A container with any other format version is ignored as a whole. A single
entry that cannot be decoded is ignored on its own; the other keys are
unaffected.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import CollectionOpts
from .models import Snapshot

logger = logging.getLogger(__name__)

# Increment this when an old state preserved to disk should be ignored
STATE_ON_DISK_FORMAT_VERSION = 1


class StateStore:
    """Interface for baseline persistence."""

    def load(self, api_key: str) -> Optional[Snapshot]:
        raise NotImplementedError

    def save(self, api_key: str, snapshot: Snapshot) -> None:
        raise NotImplementedError


class NullStateStore(StateStore):
    """Persistence disabled: every cycle is a cold start."""

    def load(self, api_key: str) -> Optional[Snapshot]:
        return None

    def save(self, api_key: str, snapshot: Snapshot) -> None:
        pass


class FileStateStore(StateStore):
    """
    JSON file store shared by all targets of one process.

    Saves are read-modify-write under a lock and land via an atomic rename,
    so a crash leaves either the old or the new file.
    """

    def __init__(self, path: Path, format_version: int = STATE_ON_DISK_FORMAT_VERSION):
        self.path = Path(path)
        self.format_version = format_version
        self._lock = threading.Lock()

    def load(self, api_key: str) -> Optional[Snapshot]:
        with self._lock:
            entries = self._read_entries()

        raw = entries.get(api_key)
        if raw is None:
            return None

        try:
            return Snapshot.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring unreadable stored state for one API key: %s", e)
            return None

    def save(self, api_key: str, snapshot: Snapshot) -> None:
        with self._lock:
            entries = self._read_entries()
            entries[api_key] = snapshot.to_dict()
            self._write_atomic({
                "format_version": self.format_version,
                "prev_state_by_api_key": entries,
            })

    def _read_entries(self) -> Dict[str, Any]:
        """Raw per-key entries of a compatible container, or {}."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read state file %s, starting fresh: %s", self.path, e)
            return {}

        if not isinstance(data, dict) or data.get("format_version") != self.format_version:
            logger.info(
                "Discarding state file %s: format version %r, expected %d",
                self.path,
                data.get("format_version") if isinstance(data, dict) else None,
                self.format_version,
            )
            return {}

        entries = data.get("prev_state_by_api_key")
        if not isinstance(entries, dict):
            return {}
        return entries

    def _write_atomic(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise


def build_state_store(opts: CollectionOpts) -> StateStore:
    """Pick the store for the given options (test runs never touch disk)."""
    if opts.test_run:
        return NullStateStore()
    return FileStateStore(Path(opts.state_filename).expanduser())
