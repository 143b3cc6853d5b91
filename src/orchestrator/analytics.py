"""Best-effort usage analytics.

Events are recorded from a daemon thread that the caller never joins: a
process that exits first simply loses the event, and a failing write is
only visible at ``DEBUG`` level.
"""

from __future__ import annotations

import logging
import platform
import threading
import uuid
from typing import Any, Dict, Mapping

from feature_flags import is_analytics_enabled

from . import __version__
from .log import EventLog, default_directory


class Analytics:
    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
        event_log: EventLog | None = None,
    ) -> None:
        self._env = dict(env or {})
        self._logger = logger or logging.getLogger(__name__)
        self._event_log = event_log or EventLog(default_directory(self._env))

    @property
    def enabled(self) -> bool:
        return is_analytics_enabled(self._env)

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def _event(self, command: str, extra: Mapping[str, Any] | None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "event": "command",
            "command": command,
            "event_id": uuid.uuid4().hex,
            "tool_version": __version__,
            "os": platform.system().lower(),
            "python": platform.python_version(),
        }
        if extra:
            payload.update(extra)
        return payload

    def _send(self, payload: Dict[str, Any]) -> None:
        try:
            self._event_log.append(payload)
        except OSError as exc:
            self._logger.debug("Failed to record analytics event: %s", exc)

    def send_command(self, command: str, extra: Mapping[str, Any] | None = None) -> threading.Thread | None:
        """Record that *command* ran, without waiting for the write."""

        if not self.enabled:
            return None
        thread = threading.Thread(
            target=self._send,
            args=(self._event(command, extra),),
            name="uirun-analytics",
            daemon=True,
        )
        thread.start()
        return thread


__all__ = ["Analytics"]
