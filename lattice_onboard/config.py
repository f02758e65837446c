"""Configuration for lattice-onboard."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
import os

from .utils import format_bool, format_env_lines, parse_bool, parse_env_lines


DEFAULT_RELEASE_URL = "https://github.com/lattice-console/releases"
DEFAULT_SERVICE_NAME = "lattice-agent"
DEFAULT_SERVICE_LABEL = "com.lattice-console.agent"

AGENT_BINARY_NAME = "lattice-agent"
AGENT_ENV_FILE = ".lattice-agent.env"

# Keys of the agent env file, in the order they are written
ENV_KEYS = ("BACKEND_URL", "AGENT_NAME", "COMPUTE_HOURS", "AUTO_START", "GPU_ENABLED")


@dataclass
class AgentConfig:
    """Agent settings supplied by the user.

    Written to the agent env file as:
    - BACKEND_URL: Lattice backend the agent reports to
    - AGENT_NAME: Display name of this worker
    - COMPUTE_HOURS: Window during which the machine should stay awake (may be empty)
    - AUTO_START: Register the agent with the OS service manager
    - GPU_ENABLED: Expose GPUs to workloads
    """

    backend_url: str
    agent_name: str = ""
    compute_hours: str = ""
    auto_start: bool = False
    gpu_enabled: bool = False

    @classmethod
    def from_dict(cls, data: Dict) -> "AgentConfig":
        """Build a config from a front-end payload (snake_case or camelCase keys)."""
        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            backend_url=str(pick("backend_url", "backendUrl", "") or ""),
            agent_name=str(pick("agent_name", "agentName", "") or ""),
            compute_hours=str(pick("compute_hours", "computeHours", "") or ""),
            auto_start=_coerce_bool(pick("auto_start", "autoStart", False)),
            gpu_enabled=_coerce_bool(pick("gpu_enabled", "gpuEnabled", False)),
        )

    def validate(self) -> List[str]:
        """Validate configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.backend_url.strip():
            errors.append("backend_url is required")

        for name in ("backend_url", "agent_name", "compute_hours"):
            value = getattr(self, name)
            # Any line boundary str.splitlines() knows, not just \n and \r
            if value and value.splitlines() != [value]:
                errors.append(f"{name} must not contain line breaks")

        return errors

    def to_env(self) -> Dict[str, str]:
        return {
            "BACKEND_URL": self.backend_url,
            "AGENT_NAME": self.agent_name,
            "COMPUTE_HOURS": self.compute_hours,
            "AUTO_START": format_bool(self.auto_start),
            "GPU_ENABLED": format_bool(self.gpu_enabled),
        }

    def render(self) -> str:
        """Render the agent env file content."""
        return format_env_lines(self.to_env())

    @classmethod
    def parse(cls, text: str) -> "AgentConfig":
        """Read an agent env file back into a config. Unknown keys are ignored."""
        values = parse_env_lines(text.split("\n"))
        return cls(
            backend_url=values.get("BACKEND_URL", ""),
            agent_name=values.get("AGENT_NAME", ""),
            compute_hours=values.get("COMPUTE_HOURS", ""),
            auto_start=parse_bool(values.get("AUTO_START", "")),
            gpu_enabled=parse_bool(values.get("GPU_ENABLED", "")),
        )


@dataclass
class OnboardSettings:
    """Where things are installed and how long external calls may take."""

    install_dir: Path = field(default_factory=lambda: Path.home() / ".lattice-agent")
    release_url: str = DEFAULT_RELEASE_URL

    # Service manager locations
    service_name: str = DEFAULT_SERVICE_NAME
    service_label: str = DEFAULT_SERVICE_LABEL
    systemd_dir: Path = Path("/etc/systemd/system")
    launchd_dir: Path = Path("/Library/LaunchDaemons")
    service_user: Optional[str] = None

    # Timing
    download_timeout: float = 600.0  # seconds
    command_timeout: float = 900.0  # seconds, package installs are slow
    probe_timeout: float = 10.0
    health_timeout: float = 10.0

    debug: bool = False

    def __post_init__(self):
        self.install_dir = Path(self.install_dir)
        self.systemd_dir = Path(self.systemd_dir)
        self.launchd_dir = Path(self.launchd_dir)

    @property
    def env_path(self) -> Path:
        """Agent env file written on setup."""
        return self.install_dir / AGENT_ENV_FILE

    @property
    def pid_path(self) -> Path:
        """Record of the last launched agent process."""
        return self.install_dir / "agent.pid"

    @property
    def log_path(self) -> Path:
        return self.install_dir / "agent.log"

    @property
    def schedule_path(self) -> Path:
        """Recorded compute-hours window."""
        return self.install_dir / "compute-hours"

    @property
    def downloads_dir(self) -> Path:
        return self.install_dir / "downloads"

    def binary_path(self, windows: bool = False) -> Path:
        name = f"{AGENT_BINARY_NAME}.exe" if windows else AGENT_BINARY_NAME
        return self.install_dir / name

    def agent_download_url(self, os_name: str, arch: str) -> str:
        """Release asset URL for the agent binary on {os, arch}."""
        return f"{self.release_url.rstrip('/')}/latest/download/{AGENT_BINARY_NAME}-{os_name}-{arch}"

    @classmethod
    def from_env(cls) -> "OnboardSettings":
        """Create settings from environment variables.

        Environment variables:
        - LATTICE_INSTALL_DIR: Directory for the agent binary and its files
        - LATTICE_RELEASE_URL: Release channel the agent binary is fetched from
        - LATTICE_SERVICE_NAME: systemd / Windows service name
        - LATTICE_SYSTEMD_DIR: Directory unit files are written to
        - LATTICE_LAUNCHD_DIR: Directory launchd plists are written to
        - LATTICE_SERVICE_USER: User the systemd unit runs as
        - LATTICE_DOWNLOAD_TIMEOUT: Download timeout in seconds
        - LATTICE_COMMAND_TIMEOUT: External command timeout in seconds
        - LATTICE_DEBUG: Enable debug logging
        """
        defaults = cls()
        return cls(
            install_dir=Path(os.environ.get("LATTICE_INSTALL_DIR", str(defaults.install_dir))).expanduser(),
            release_url=os.environ.get("LATTICE_RELEASE_URL", DEFAULT_RELEASE_URL),
            service_name=os.environ.get("LATTICE_SERVICE_NAME", DEFAULT_SERVICE_NAME),
            systemd_dir=Path(os.environ.get("LATTICE_SYSTEMD_DIR", str(defaults.systemd_dir))),
            launchd_dir=Path(os.environ.get("LATTICE_LAUNCHD_DIR", str(defaults.launchd_dir))),
            service_user=os.environ.get("LATTICE_SERVICE_USER") or None,
            download_timeout=float(os.environ.get("LATTICE_DOWNLOAD_TIMEOUT", "600")),
            command_timeout=float(os.environ.get("LATTICE_COMMAND_TIMEOUT", "900")),
            debug=parse_bool(os.environ.get("LATTICE_DEBUG", "")),
        )

    def validate(self) -> List[str]:
        """Validate settings.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.release_url.startswith(("http://", "https://")):
            errors.append(f"release_url must be an http(s) URL, got: {self.release_url}")

        if not self.service_name:
            errors.append("service_name is required")

        for name in ("download_timeout", "command_timeout", "probe_timeout", "health_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        return errors


def _coerce_bool(value) -> bool:
    """Payload booleans may arrive as strings ("false", "0") from a front end."""
    if isinstance(value, str):
        return parse_bool(value)
    return bool(value)
