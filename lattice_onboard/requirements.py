"""Host requirement check.

Answers "can this machine run the agent, and is Docker ready?" without
changing anything on the host. The result feeds UI decisions, so every
probe that fails falls back to a conservative default instead of raising.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple, TypeVar

from .metrics import HostInfoProvider
from .process import ProcessRunner

logger = logging.getLogger("lattice-onboard")

T = TypeVar("T")


@dataclass(frozen=True)
class HostProfile:
    """Snapshot of host facts. Produced fresh on every check."""
    operating_system: str
    architecture: str
    runtime_installed: bool
    runtime_running: bool
    cpu_cores: int
    total_memory_bytes: int
    available_memory_bytes: int
    disk_space_bytes: int
    degraded: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "os": self.operating_system,
            "arch": self.architecture,
            "docker_installed": self.runtime_installed,
            "docker_running": self.runtime_running,
            "cpu_cores": self.cpu_cores,
            "total_memory": self.total_memory_bytes,
            "available_memory": self.available_memory_bytes,
            "disk_space": self.disk_space_bytes,
            "degraded": list(self.degraded),
        }


class RequirementChecker:
    """Read-only host probes."""

    def __init__(
        self,
        host_info: HostInfoProvider,
        runner: ProcessRunner,
        disk_path: Path,
        probe_timeout: float = 10.0,
    ):
        self.host_info = host_info
        self.runner = runner
        self.disk_path = disk_path
        self.probe_timeout = probe_timeout

    def check_requirements(self) -> HostProfile:
        """Probe the host.

        Returns:
            HostProfile; facts that could not be read are defaulted and
            listed in HostProfile.degraded
        """
        degraded: List[str] = []

        def probe(name: str, fn: Callable[[], T], default: T) -> T:
            try:
                return fn()
            except Exception as e:
                logger.warning(f"Could not determine {name}: {e}")
                degraded.append(name)
                return default

        os_name = probe("operating_system", self.host_info.operating_system, "unknown")
        arch = probe("architecture", self.host_info.architecture, "unknown")
        cpu_cores = probe("cpu_cores", self.host_info.cpu_cores, 0)
        total_memory, available_memory = probe("memory", self.host_info.memory, (0, 0))
        disk_space = probe("disk_space", lambda: self.host_info.disk_space(self.disk_path), 0)

        runtime_installed = self.runtime_installed()
        runtime_running = self.runtime_running() if runtime_installed else False

        profile = HostProfile(
            operating_system=os_name,
            architecture=arch,
            runtime_installed=runtime_installed,
            runtime_running=runtime_running,
            cpu_cores=cpu_cores,
            total_memory_bytes=total_memory,
            available_memory_bytes=available_memory,
            disk_space_bytes=disk_space,
            degraded=tuple(degraded),
        )
        logger.debug(f"Host profile: {profile}")
        return profile

    def runtime_installed(self) -> bool:
        """True if the docker CLI is on PATH and answers --version."""
        return self.runner.run(["docker", "--version"], timeout=self.probe_timeout).success

    def runtime_running(self) -> bool:
        """True if the Docker daemon answers `docker info`."""
        return self.runner.run(["docker", "info"], timeout=self.probe_timeout).success


def meets_minimum(profile: HostProfile, min_cores: int = 2, min_memory_bytes: Optional[int] = None) -> List[str]:
    """List reasons the host is below the recommended minimum (empty if fine)."""
    if min_memory_bytes is None:
        min_memory_bytes = 4 * 1024 * 1024 * 1024

    problems = []
    if "cpu_cores" not in profile.degraded and profile.cpu_cores < min_cores:
        problems.append(f"at least {min_cores} CPU cores recommended, found {profile.cpu_cores}")
    if "memory" not in profile.degraded and profile.total_memory_bytes < min_memory_bytes:
        problems.append(
            f"at least {min_memory_bytes // (1024 ** 3)}Gi memory recommended, "
            f"found {profile.total_memory_bytes // (1024 ** 3)}Gi"
        )
    return problems
