"""The seven onboarding commands, wired to their collaborators.

This is the adapter a front end (or the CLI in main.py) talks to. It owns
the session context and checks the ordering the components themselves do
not enforce: Docker before agent setup, agent setup before GPU config.
"""

import logging
from typing import Callable, Iterable, Optional, Union

from .backend import ConnectionResult, test_connection as probe_backend
from .cleanup import CleanupCoordinator, CleanupReport
from .cluster import ClusterConfigurator, ClusterResult
from .config import AgentConfig, OnboardSettings
from .download import Downloader
from .errors import PreconditionUnmet
from .metrics import HostInfoProvider
from .platforms import HostTools, Platform, detect_platform
from .process import ProcessRunner
from .progress import ProgressEvent
from .provisioner import AgentProvisioner, ProvisionResult
from .requirements import HostProfile, RequirementChecker
from .runtime import InstallResult, RuntimeInstaller
from .service import ServiceLifecycleManager
from .session import LAST_AGENT_PID, LAST_HOST_PROFILE, LAST_INSTALL, SessionContext
from .status import AgentStatus, AgentStatusReader

logger = logging.getLogger("lattice-onboard")


class Commands:
    """Entry points for check, install, setup, connection test, status, GPU config and cleanup."""

    def __init__(
        self,
        settings: Optional[OnboardSettings] = None,
        runner: Optional[ProcessRunner] = None,
        downloader: Optional[Downloader] = None,
        host_info: Optional[HostInfoProvider] = None,
        platform: Optional[Platform] = None,
        session: Optional[SessionContext] = None,
    ):
        self.settings = settings or OnboardSettings.from_env()
        self.runner = runner or ProcessRunner(timeout=self.settings.command_timeout)
        self.downloader = downloader or Downloader(timeout=self.settings.download_timeout)
        self.host_info = host_info or HostInfoProvider(self.runner, self.settings.probe_timeout)
        self.session = session or SessionContext()

        self.tools = HostTools(runner=self.runner, downloader=self.downloader, settings=self.settings)
        self.platform = platform or detect_platform(
            self.tools,
            self.host_info.operating_system(),
            self.host_info.architecture(),
        )
        self.service_manager = ServiceLifecycleManager(self.platform)
        self.requirements = RequirementChecker(
            self.host_info,
            self.runner,
            disk_path=self.settings.install_dir,
            probe_timeout=self.settings.probe_timeout,
        )

    def check_requirements(self) -> HostProfile:
        profile = self.requirements.check_requirements()
        self.session.set(LAST_HOST_PROFILE, profile)
        return profile

    def install_runtime(
        self,
        listener: Optional[Callable[[ProgressEvent], None]] = None,
        skip_if_installed: bool = False,
    ) -> InstallResult:
        """Install Docker.

        Args:
            listener: Optional per-event progress callback
            skip_if_installed: Return immediately if `docker --version` already works
        """
        if skip_if_installed and self.requirements.runtime_installed():
            logger.info("Docker is already installed, skipping installation")
            event = ProgressEvent("completed", 100, "Docker is already installed")
            if listener is not None:
                listener(event)
            result = InstallResult(events=[event])
        else:
            result = RuntimeInstaller(self.platform).install_runtime(listener=listener)

        self.session.set(LAST_INSTALL, result)
        self.session.record_error(result.error)
        return result

    def setup_agent(self, config: Union[AgentConfig, dict], enforce_preconditions: bool = True) -> ProvisionResult:
        """Download, configure and start the agent.

        Args:
            config: AgentConfig or a front-end payload dict
            enforce_preconditions: Refuse to run while Docker is missing
        """
        if isinstance(config, dict):
            config = AgentConfig.from_dict(config)

        try:
            if enforce_preconditions:
                self._require_runtime()
        except PreconditionUnmet as e:
            logger.error(str(e))
            self.session.record_error(str(e))
            return ProvisionResult(error=str(e))

        result = AgentProvisioner(self.platform, self.service_manager).provision(config)
        if result.process is not None:
            self.session.set(LAST_AGENT_PID, result.process.pid)
        self.session.record_error(result.error)
        return result

    def test_connection(self, backend_url: str) -> ConnectionResult:
        result = probe_backend(backend_url, timeout=self.settings.health_timeout)
        self.session.record_error(result.error)
        return result

    def get_agent_status(self) -> AgentStatus:
        return AgentStatusReader(self.settings, self.host_info, self.runner).get_status()

    def configure_cluster(self, gpu_ids: Iterable[str], enforce_preconditions: bool = True) -> ClusterResult:
        """Select the GPUs the agent may use.

        Args:
            gpu_ids: GPU indexes or UUIDs
            enforce_preconditions: Refuse to run before the agent is set up
        """
        try:
            if enforce_preconditions:
                self._require_agent()
        except PreconditionUnmet as e:
            logger.error(str(e))
            self.session.record_error(str(e))
            return ClusterResult(error=str(e))

        result = ClusterConfigurator(self.settings, self.host_info).configure(gpu_ids)
        self.session.record_error(result.error)
        return result

    def cleanup_agent(self) -> CleanupReport:
        report = CleanupCoordinator(self.platform, self.service_manager).cleanup()
        self.session.pop(LAST_AGENT_PID)
        self.session.record_error(None)
        return report

    def _require_runtime(self) -> None:
        if not self.requirements.runtime_installed():
            raise PreconditionUnmet("Docker is not installed; install the container runtime first")

    def _require_agent(self) -> None:
        if not self.settings.env_path.exists():
            raise PreconditionUnmet(
                f"Agent is not set up (no config at {self.settings.env_path}); run setup first"
            )
