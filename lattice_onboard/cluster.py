"""GPU selection for the agent.

Resolves the requested GPU identifiers (nvidia-smi index or UUID) against
the GPUs present on the host and records the selection in the agent env
file as GPU_DEVICES. The agent picks it up on its next start.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .config import OnboardSettings
from .errors import StepFailed
from .metrics import GpuDevice, HostInfoProvider
from .utils import format_bool, format_env_lines, parse_env_lines, split_ids

logger = logging.getLogger("lattice-onboard")

CLUSTER_MESSAGE = "Cluster configuration completed"


@dataclass
class ClusterResult:
    """Result of GPU configuration."""
    message: Optional[str] = None
    devices: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ClusterConfigurator:
    """Writes the GPU selection into the agent config."""

    def __init__(self, settings: OnboardSettings, host_info: HostInfoProvider):
        self.settings = settings
        self.host_info = host_info

    def configure(self, gpu_ids: Iterable[str]) -> ClusterResult:
        """Enable the given GPUs for the agent.

        An empty selection disables GPU use.

        Args:
            gpu_ids: GPU indexes or UUIDs; comma separated values are split

        Returns:
            ClusterResult with the resolved device UUIDs
        """
        requested = split_ids(gpu_ids)
        try:
            devices = self.resolve(requested)
            self.write_selection(devices)
        except StepFailed as e:
            logger.error(f"GPU configuration failed: {e.message}")
            return ClusterResult(error=e.message)

        uuids = [d.uuid for d in devices]
        if uuids:
            logger.info(f"Configured {len(uuids)} GPU(s); restart the agent to apply")
        else:
            logger.info("GPU use disabled; restart the agent to apply")
        return ClusterResult(message=CLUSTER_MESSAGE, devices=uuids)

    def resolve(self, requested: List[str]) -> List[GpuDevice]:
        """Map identifiers to detected GPUs.

        Raises:
            StepFailed: if any identifier does not match a detected GPU
        """
        if not requested:
            return []

        available = self.host_info.list_gpus()
        if not available:
            raise StepFailed("gpu", "No NVIDIA GPUs detected on this host")

        selected: List[GpuDevice] = []
        unknown = []
        for gpu_id in requested:
            match = next((g for g in available if gpu_id in (g.index, g.uuid)), None)
            if match is None:
                unknown.append(gpu_id)
            elif match not in selected:
                selected.append(match)

        if unknown:
            known = ", ".join(f"{g.index} ({g.name})" for g in available)
            raise StepFailed("gpu", f"Unknown GPU(s): {', '.join(unknown)}. Available: {known}")
        return selected

    def write_selection(self, devices: List[GpuDevice]) -> None:
        path = self.settings.env_path
        try:
            values = parse_env_lines(path.read_text(encoding="utf-8").split("\n"))
        except FileNotFoundError:
            raise StepFailed("gpu", f"Agent config not found at {path}; set up the agent first")
        except (OSError, UnicodeError) as e:
            raise StepFailed("gpu", f"Failed to read {path}: {e}")

        values["GPU_ENABLED"] = format_bool(bool(devices))
        if devices:
            values["GPU_DEVICES"] = ",".join(d.uuid for d in devices)
        else:
            values.pop("GPU_DEVICES", None)

        try:
            path.write_text(format_env_lines(values), encoding="utf-8")
        except (OSError, UnicodeError) as e:
            raise StepFailed("gpu", f"Failed to write {path}: {e}")
