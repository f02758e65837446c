"""Agent setup: config file, binary download, launch, auto-start.

Steps run in order and each one must succeed before the next starts.
There is no retry and no cleanup on failure: a downloaded binary stays in
place even if launching it fails. Use CleanupCoordinator to remove it.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import AgentConfig
from .descriptors import ServiceDescriptor
from .errors import OnboardError, StepFailed, UnsupportedPlatform
from .platforms import Platform
from .process import LaunchedProcess
from .service import ServiceLifecycleManager

logger = logging.getLogger("lattice-onboard")

SUCCESS_MESSAGE = "Agent setup completed successfully"


@dataclass
class ProvisionResult:
    """Result of agent setup."""
    message: Optional[str] = None
    error: Optional[str] = None
    process: Optional[LaunchedProcess] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AgentProvisioner:
    """Installs and starts the agent on one platform."""

    def __init__(self, platform: Platform, service_manager: Optional[ServiceLifecycleManager] = None):
        self.platform = platform
        self.settings = platform.settings
        self.service_manager = service_manager or ServiceLifecycleManager(platform)

    def provision(self, config: AgentConfig) -> ProvisionResult:
        """Set up the agent.

        Args:
            config: Agent configuration from the user

        Returns:
            ProvisionResult with the success message, or the error of the
            step that failed
        """
        if not self.platform.supported:
            return ProvisionResult(error=str(UnsupportedPlatform(self.platform.name)))

        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            return ProvisionResult(error=f"Invalid agent config: {'; '.join(errors)}")

        logger.info(f"Setting up agent '{config.agent_name}' for {config.backend_url}")

        try:
            self.write_config(config)
            binary = self.download_agent()
            process = self.start_agent(binary)

            if config.auto_start:
                self.setup_auto_start(config)

            if config.compute_hours:
                self.setup_compute_hours(config.compute_hours)

        except OnboardError as e:
            logger.error(f"Agent setup failed: {e}")
            return ProvisionResult(error=str(e))

        logger.info(SUCCESS_MESSAGE)
        return ProvisionResult(message=SUCCESS_MESSAGE, process=process)

    def write_config(self, config: AgentConfig) -> Path:
        """Write the agent env file (owner read/write only on POSIX)."""
        path = self.settings.env_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(config.render(), encoding="utf-8")
            if os.name != "nt":
                path.chmod(0o600)
        except (OSError, UnicodeError) as e:
            raise StepFailed("config", f"Failed to write config: {e}")

        logger.info(f"Wrote agent config {path}")
        return path

    def download_agent(self) -> Path:
        """Fetch the agent binary for this OS/arch and make it executable."""
        binary = self.platform.binary_path
        self.platform.tools.downloader.fetch(self.platform.agent_download_url(), binary, step="download_agent")

        try:
            self.platform.make_executable(binary)
        except OSError as e:
            raise StepFailed("download_agent", f"Failed to set permissions: {e}")

        return binary

    def start_agent(self, binary: Path) -> LaunchedProcess:
        """Launch `<binary> start` in the background and record its pid.

        Spawning is the success criterion; the agent's own exit status is
        never awaited.
        """
        try:
            process = self.platform.runner.spawn_detached(
                [str(binary), "start"],
                cwd=self.settings.install_dir,
                log_path=self.settings.log_path,
            )
        except OSError as e:
            raise StepFailed("start_agent", f"Failed to start agent: {e}")

        logger.info(f"Agent started (pid {process.pid})")
        save_launch_record(self.settings.pid_path, process)
        return process

    def setup_auto_start(self, config: AgentConfig) -> None:
        descriptor = ServiceDescriptor.for_agent(config, self.settings, windows=self.platform.windows)
        result = self.service_manager.enable(descriptor)
        if not result.success:
            raise StepFailed("auto_start", result.error or "Failed to enable service")

    def setup_compute_hours(self, window: str) -> None:
        if self.platform.prevent_sleep(window):
            logger.info(f"Sleep prevented during compute hours '{window}'")


def save_launch_record(path: Path, process: LaunchedProcess) -> None:
    """Persist the launched agent's pid. Failure only costs precise termination later."""
    try:
        path.write_text(json.dumps(process.to_dict()))
    except OSError as e:
        logger.warning(f"Could not record agent pid in {path}: {e}")


def load_launch_record(path: Path) -> Optional[LaunchedProcess]:
    """Read the pid record written by start_agent, if any."""
    try:
        return LaunchedProcess.from_dict(json.loads(path.read_text()))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring unreadable agent pid record {path}: {e}")
        return None
