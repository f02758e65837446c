"""Teardown of everything AgentProvisioner and the service manager set up.

Every step is best-effort: a failure is logged, recorded in the report and
the next step runs anyway. Missing processes, files and services count as
already cleaned up, so running cleanup twice is harmless.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import psutil

from .config import AgentConfig
from .descriptors import ServiceDescriptor
from .errors import BestEffortFailure
from .platforms import Platform
from .service import ServiceLifecycleManager
from .status import find_agent_processes

logger = logging.getLogger("lattice-onboard")

CLEANUP_MESSAGE = "Agent cleanup completed"


@dataclass
class CleanupReport:
    """Result of cleanup. Failures are informational, cleanup itself always completes."""
    message: str = CLEANUP_MESSAGE
    failures: List[BestEffortFailure] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True

    @property
    def clean(self) -> bool:
        return not self.failures


class CleanupCoordinator:
    """Reverses agent setup on one platform."""

    def __init__(
        self,
        platform: Platform,
        service_manager: ServiceLifecycleManager = None,
        stop_timeout: float = 10.0,
    ):
        self.platform = platform
        self.settings = platform.settings
        self.service_manager = service_manager or ServiceLifecycleManager(platform)
        self.stop_timeout = stop_timeout

    def cleanup(self) -> CleanupReport:
        """Stop the agent and remove its files, service and schedule.

        The service is disabled before the process is stopped, otherwise
        the service manager would restart it.
        """
        report = CleanupReport()

        self._step(report, "disable_service", self.disable_service)
        self._step(report, "stop_agent", self.stop_agent)
        self._step(report, "compute_hours", self.platform.allow_sleep)
        self._step(report, "remove_files", lambda: self.remove_files(report))

        if not report.clean:
            logger.warning(f"Cleanup finished with {len(report.failures)} ignored failure(s)")
            for failure in report.failures:
                logger.warning(f"  {failure}")
        else:
            logger.info(CLEANUP_MESSAGE)
        return report

    def _step(self, report: CleanupReport, name: str, fn) -> None:
        try:
            report.failures.extend(fn() or [])
        except Exception as e:
            logger.warning(f"Cleanup step {name} failed: {e}")
            report.failures.append(BestEffortFailure(name, str(e)))

    def disable_service(self) -> List[BestEffortFailure]:
        descriptor = ServiceDescriptor.for_agent(
            AgentConfig(backend_url=""), self.settings, windows=self.platform.windows
        )
        return self.service_manager.disable(descriptor)

    def stop_agent(self) -> List[BestEffortFailure]:
        """Terminate agent processes, killing any that ignore SIGTERM."""
        failures: List[BestEffortFailure] = []
        processes = find_agent_processes(self.settings)
        if not processes:
            logger.debug("No running agent process")
            return failures

        for proc in processes:
            try:
                logger.info(f"Stopping agent (pid {proc.pid})")
                proc.terminate()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                failures.append(BestEffortFailure("stop_agent", f"pid {proc.pid}: {e}"))

        _, alive = psutil.wait_procs(processes, timeout=self.stop_timeout)
        for proc in alive:
            try:
                logger.warning(f"Agent pid {proc.pid} did not exit, killing")
                proc.kill()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                failures.append(BestEffortFailure("stop_agent", f"pid {proc.pid}: {e}"))

        return failures

    def remove_files(self, report: CleanupReport) -> List[BestEffortFailure]:
        """Delete the binary, env file, pid record, log and downloaded installers."""
        failures: List[BestEffortFailure] = []
        settings = self.settings
        paths = [
            self.platform.binary_path,
            settings.env_path,
            settings.pid_path,
            settings.log_path,
        ]

        for path in paths:
            try:
                path.unlink()
                report.removed.append(str(path))
                logger.info(f"Removed {path}")
            except FileNotFoundError:
                pass
            except OSError as e:
                failures.append(BestEffortFailure("remove_files", f"{path}: {e}"))

        if settings.downloads_dir.exists():
            try:
                shutil.rmtree(settings.downloads_dir)
                report.removed.append(str(settings.downloads_dir))
            except OSError as e:
                failures.append(BestEffortFailure("remove_files", f"{settings.downloads_dir}: {e}"))

        _remove_if_empty(settings.install_dir)
        return failures


def _remove_if_empty(path: Path) -> None:
    try:
        path.rmdir()
    except OSError:
        # Missing, or still holds files we did not create
        pass
