# =============================================================================
# PROPOSAL RELAY
# Module: collector/storage.py
# Purpose: Idempotency ledger of already-dispatched proposal ids
# =============================================================================
#
# CONTRACT:
# - get(key) -> value | None
# - put(key, value)
# - No delete, no expiry, no iteration
#
# The stored value is a sentinel, not a dispatch status: once an id is
# marked it is never revisited.
#
# CONCURRENCY:
# No locking. Two overlapping relay processes can both see an id as unseen
# and both dispatch it. JsonFileStore re-reads the file on every call so
# the window stays as small as one tick.
#
# FILE FORMAT (JsonFileStore):
# {"<proposal id>": "notified", ...}
#
# =============================================================================

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from shared.exceptions import StoreError

logger = logging.getLogger(__name__)

SEEN_SENTINEL = "notified"


class IdempotencyStore(ABC):
    """Durable key/value ledger keyed on the raw proposal id."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        ...

    def is_seen(self, proposal_id: str) -> bool:
        return self.get(proposal_id) is not None

    def mark_seen(self, proposal_id: str) -> None:
        self.put(proposal_id, SEEN_SENTINEL)


class MemoryStore(IdempotencyStore):
    """In-process ledger. Lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore(IdempotencyStore):
    """
    Ledger persisted as a single JSON object on disk.

    Writes go through a temporary file and os.replace(), so a crash never
    leaves a half-written ledger behind.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the store.

        Args:
            path: JSON file holding the ledger (created on first put)
        """
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Could not read ledger {self.path}: {e}")

        if not isinstance(data, dict):
            raise StoreError(f"Ledger {self.path} is not a JSON object")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=".ledger_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"Could not write ledger {self.path}: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def put(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)
        logger.debug(f"Ledger: {key} -> {value}")
