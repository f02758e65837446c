"""Host facts for onboarding.

Collects what the requirement check and the status view need:
- OS and CPU architecture, normalized to the agent release names
- CPU cores, total/available memory, free disk space
- Current CPU / memory utilization
- NVIDIA GPUs visible to nvidia-smi
"""

import logging
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import psutil

from .process import ProcessRunner

logger = logging.getLogger("lattice-onboard")

# platform.system() -> agent release OS name
_OS_NAMES = {
    "linux": "linux",
    "darwin": "macos",
    "windows": "windows",
}

# platform.machine() -> agent release arch name
_ARCH_NAMES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


@dataclass
class GpuDevice:
    """One GPU as reported by nvidia-smi."""
    index: str
    uuid: str
    name: str


def normalize_os(system: str) -> str:
    return _OS_NAMES.get(system.lower(), system.lower() or "unknown")


def normalize_arch(machine: str) -> str:
    return _ARCH_NAMES.get(machine.lower(), machine.lower() or "unknown")


class HostInfoProvider:
    """Reads host facts from psutil and the platform module.

    Methods raise on failure; callers decide whether a missing fact is
    fatal.
    """

    def __init__(self, runner: Optional[ProcessRunner] = None, probe_timeout: float = 10.0):
        self.runner = runner or ProcessRunner()
        self.probe_timeout = probe_timeout

    def operating_system(self) -> str:
        return normalize_os(platform.system())

    def architecture(self) -> str:
        return normalize_arch(platform.machine())

    def cpu_cores(self) -> int:
        count = psutil.cpu_count()
        if not count:
            raise RuntimeError("cpu count unavailable")
        return count

    def memory(self) -> Tuple[int, int]:
        """Return (total, available) memory in bytes."""
        mem = psutil.virtual_memory()
        return mem.total, mem.available

    def disk_space(self, path: Path) -> int:
        """Free bytes on the volume holding path (or its nearest existing parent)."""
        probe = Path(path)
        while not probe.exists() and probe != probe.parent:
            probe = probe.parent
        return psutil.disk_usage(str(probe)).free

    def resource_usage(self) -> Tuple[float, float]:
        """Return (cpu %, memory %) utilization."""
        cpu_percent = psutil.cpu_percent(interval=0.1)
        mem_percent = psutil.virtual_memory().percent
        return cpu_percent, mem_percent

    def list_gpus(self) -> List[GpuDevice]:
        """List NVIDIA GPUs.

        Returns:
            GPUs reported by nvidia-smi, empty if none or nvidia-smi not available
        """
        result = self.runner.run(
            ["nvidia-smi", "--query-gpu=index,uuid,name", "--format=csv,noheader"],
            timeout=self.probe_timeout,
        )
        if not result.success:
            logger.debug(f"nvidia-smi unavailable: {result.describe()}")
            return []

        gpus = []
        for line in result.stdout.strip().split("\n"):
            parts = [p.strip() for p in line.split(",", 2)]
            if len(parts) == 3 and parts[0]:
                gpus.append(GpuDevice(index=parts[0], uuid=parts[1], name=parts[2]))
        return gpus
