"""Per-session scratch state shared between commands.

Holds things like the last host profile or the last error so a front end
can redisplay them. It is a cache only: disk and the service manager stay
the source of truth.
"""

import threading
from typing import Any, Dict, Optional

LAST_HOST_PROFILE = "last_host_profile"
LAST_INSTALL = "last_install"
LAST_ERROR = "last_error"
LAST_AGENT_PID = "last_agent_pid"


class SessionContext:
    """Thread-safe key/value store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {}

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def pop(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._values.pop(key, default)

    def record_error(self, error: Optional[str]) -> None:
        """Remember the last error, or clear it on success (error=None)."""
        with self._lock:
            if error is None:
                self._values.pop(LAST_ERROR, None)
            else:
                self._values[LAST_ERROR] = error

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
