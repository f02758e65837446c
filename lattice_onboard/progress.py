"""Progress events for multi-step installs."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("lattice-onboard")


@dataclass(frozen=True)
class ProgressEvent:
    """One step of an install run."""
    step: str
    percent: int
    message: str
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "step": self.step,
            "progress": self.percent,
            "message": self.message,
            "success": self.success,
        }


class ProgressTracker:
    """Collects the events of a single run in order.

    Percent values may repeat but never go backwards.
    """

    def __init__(self, listener: Optional[Callable[[ProgressEvent], None]] = None):
        """Initialize tracker.

        Args:
            listener: Optional callback invoked for each event as it is emitted
        """
        self._events: List[ProgressEvent] = []
        self._listener = listener

    @property
    def events(self) -> List[ProgressEvent]:
        return list(self._events)

    @property
    def percent(self) -> int:
        return self._events[-1].percent if self._events else 0

    def emit(self, step: str, percent: int, message: str, success: bool = True) -> ProgressEvent:
        if not 0 <= percent <= 100:
            raise ValueError(f"percent must be within 0-100, got {percent}")
        if percent < self.percent:
            raise ValueError(f"progress went backwards: {self.percent} -> {percent} at {step}")

        event = ProgressEvent(step=step, percent=percent, message=message, success=success)
        self._events.append(event)

        if success:
            logger.info(f"[{percent:3d}%] {message}")
        else:
            logger.error(f"[{percent:3d}%] {message}")

        if self._listener is not None:
            try:
                self._listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed on {step}: {e}")
        return event

    def fail(self, message: str) -> ProgressEvent:
        """Record a failure at the current percent."""
        return self.emit("failed", self.percent, message, success=False)
