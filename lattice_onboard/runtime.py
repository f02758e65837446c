"""Container runtime (Docker) installation.

Runs the platform's install sequence and reports progress:

    preparing (10%) -> [updating (20%)] -> downloading (30%) -> installing (70%) -> completed (100%)

A failing step stops the run. Events emitted before the failure are kept
in the result so the caller can show how far the install got; nothing is
rolled back.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .errors import StepFailed, UnsupportedPlatform
from .platforms import Platform
from .progress import ProgressEvent, ProgressTracker

logger = logging.getLogger("lattice-onboard")


@dataclass
class InstallResult:
    """Result of a runtime install."""
    events: List[ProgressEvent] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "events": [e.to_dict() for e in self.events],
            "error": self.error,
        }


class RuntimeInstaller:
    """Installs Docker using the platform's install sequence.

    Does not check whether Docker is already present: calling it on a host
    that already has Docker downloads and runs the installer again.
    """

    def __init__(self, platform: Platform):
        self.platform = platform

    def install_runtime(self, listener: Optional[Callable[[ProgressEvent], None]] = None) -> InstallResult:
        """Install Docker.

        Args:
            listener: Optional callback receiving each ProgressEvent as it happens

        Returns:
            InstallResult with the emitted events, and an error if a step failed
        """
        if not self.platform.supported:
            error = str(UnsupportedPlatform(self.platform.name))
            logger.error(error)
            return InstallResult(events=[], error=error)

        progress = ProgressTracker(listener=listener)
        progress.emit("preparing", 10, "Preparing Docker installation...")

        try:
            self.platform.install_runtime(progress)
        except StepFailed as e:
            logger.error(f"Docker installation failed at {e.step}: {e.message}")
            progress.fail(f"Docker installation failed: {e.message}")
            return InstallResult(events=progress.events, error=str(e))

        progress.emit("completed", 100, "Docker installation completed successfully")
        return InstallResult(events=progress.events)
