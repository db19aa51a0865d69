"""Bounded in-memory record of engine events per operation."""

import json
import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 500


@dataclass(frozen=True, slots=True)
class DebugEntry:
    operation_id: str
    event: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class DebugLog:
    """Ring buffer of structured entries. The oldest entries drop first.

    Example:
        log = DebugLog(capacity=100)
        log.record("op-1", "state", {"state": "await_model"})
        log.export_json(Path("debug.json"), operation_id="op-1")
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: deque[DebugEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, operation_id: str, event: str, data: dict[str, Any] | None = None) -> DebugEntry:
        entry = DebugEntry(operation_id, event, dict(data or {}))
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self, operation_id: str | None = None, *, limit: int | None = None) -> list[DebugEntry]:
        """Entries in order, optionally for one operation and only the last ``limit``."""
        with self._lock:
            items = [e for e in self._entries if operation_id is None or e.operation_id == operation_id]
        return items[-limit:] if limit else items

    def export_json(self, path: Path | None = None, *, operation_id: str | None = None) -> str:
        """Serialize entries to JSON, optionally writing them to ``path``."""
        payload = [asdict(e) for e in self.entries(operation_id)]
        text = json.dumps(payload, indent=2, default=str)
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
            logger.debug("Exported %d debug entries to %s", len(payload), path)
        return text

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
