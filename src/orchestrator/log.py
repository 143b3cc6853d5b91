"""Append-only JSONL event log, split into dated directories and rotated by size."""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping

__all__ = ["DEFAULT_MAX_BYTES", "EventLog", "default_directory"]

DEFAULT_MAX_BYTES = 100 * 1024 * 1024
_DIRECTORY_ENV = "UIRUN_ANALYTICS_DIR"


def default_directory(env: Mapping[str, str] | None = None) -> Path:
    """``$UIRUN_ANALYTICS_DIR`` when set, else ``~/.uirun/analytics``."""

    env = os.environ if env is None else env
    override = env.get(_DIRECTORY_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".uirun" / "analytics"


class EventLog:
    """One JSON object per line; a new ``events_NN.jsonl`` once *max_bytes* is hit."""

    def __init__(self, directory: str | Path, *, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.directory = Path(directory)
        self.max_bytes = max_bytes
        self._lock = threading.Lock()
        self._active: Path | None = None

    @property
    def current_path(self) -> Path | None:
        return self._active

    def _has_room(self, path: Path) -> bool:
        return not path.exists() or path.stat().st_size < self.max_bytes

    def _select_file(self, now: datetime) -> Path:
        day = self.directory / now.strftime("%Y%m%d")
        active = self._active
        if active is not None and active.parent == day and self._has_room(active):
            return active

        day.mkdir(parents=True, exist_ok=True)
        index = 0
        while not self._has_room(day / f"events_{index:02d}.jsonl"):
            index += 1
        self._active = day / f"events_{index:02d}.jsonl"
        return self._active

    def append(self, event: Mapping[str, Any]) -> Path:
        """Write *event* (stamped with ``ts`` unless present) and return its file."""

        now = datetime.now(timezone.utc)
        record: Dict[str, Any] = {"ts": now.isoformat(timespec="milliseconds"), **event}
        line = json.dumps(record, sort_keys=True, ensure_ascii=False)
        with self._lock:
            path = self._select_file(now)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        return path

    def files(self) -> List[Path]:
        return sorted(self.directory.glob("*/events_*.jsonl"))

    def read(self) -> Iterator[Dict[str, Any]]:
        """Yield every recorded event, oldest file first."""

        for path in self.files():
            with path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    if line.strip():
                        yield json.loads(line)
