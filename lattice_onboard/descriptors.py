"""Service definitions for systemd and launchd.

Rendering is a pure function of the descriptor: the same descriptor always
produces the same bytes, so re-enabling a service rewrites an identical file.
"""

import plistlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .config import AgentConfig, OnboardSettings


@dataclass(frozen=True)
class ServiceDescriptor:
    """What the service manager needs to supervise the agent."""
    name: str                       # systemd unit / Windows service name
    label: str                      # launchd label
    description: str
    executable: Path
    arguments: Tuple[str, ...] = ("start",)
    working_directory: Optional[Path] = None
    environment_file: Optional[Path] = None
    restart: str = "always"
    restart_sec: int = 10
    user: Optional[str] = None
    after: Tuple[str, ...] = field(default=("docker.service",))

    @property
    def command_line(self) -> Tuple[str, ...]:
        return (str(self.executable),) + tuple(self.arguments)

    @classmethod
    def for_agent(cls, config: AgentConfig, settings: OnboardSettings, windows: bool = False) -> "ServiceDescriptor":
        """Derive the agent's service definition from its config and install settings."""
        description = "Lattice Console Agent"
        if config.agent_name:
            description = f"{description} ({config.agent_name})"

        return cls(
            name=settings.service_name,
            label=settings.service_label,
            description=description,
            executable=settings.binary_path(windows=windows),
            working_directory=settings.install_dir,
            environment_file=settings.env_path,
            user=settings.service_user,
        )


def render_systemd_unit(descriptor: ServiceDescriptor) -> str:
    """Render a systemd service unit."""
    unit = [
        "[Unit]",
        f"Description={descriptor.description}",
    ]
    if descriptor.after:
        unit.append(f"After={' '.join(descriptor.after)}")
        unit.append(f"Requires={' '.join(descriptor.after)}")

    service = [
        "[Service]",
        "Type=simple",
        f"ExecStart={' '.join(_quote_systemd(arg) for arg in descriptor.command_line)}",
    ]
    if descriptor.working_directory is not None:
        service.append(f"WorkingDirectory={descriptor.working_directory}")
    if descriptor.environment_file is not None:
        service.append(f"EnvironmentFile=-{descriptor.environment_file}")
    service.append(f"Restart={descriptor.restart}")
    service.append(f"RestartSec={descriptor.restart_sec}")
    if descriptor.user:
        service.append(f"User={descriptor.user}")
        service.append("Group=docker")

    install = [
        "[Install]",
        "WantedBy=multi-user.target",
    ]

    return "\n".join(unit) + "\n\n" + "\n".join(service) + "\n\n" + "\n".join(install) + "\n"


def render_launchd_plist(descriptor: ServiceDescriptor) -> bytes:
    """Render a launchd property list (XML)."""
    payload = {
        "Label": descriptor.label,
        "ProgramArguments": list(descriptor.command_line),
        "RunAtLoad": True,
        "KeepAlive": descriptor.restart == "always",
    }
    if descriptor.working_directory is not None:
        payload["WorkingDirectory"] = str(descriptor.working_directory)
    if descriptor.restart_sec:
        payload["ThrottleInterval"] = descriptor.restart_sec

    return plistlib.dumps(payload, fmt=plistlib.FMT_XML, sort_keys=False)


def render_descriptor(platform_name: str, descriptor: ServiceDescriptor) -> bytes:
    """Render the on-disk service definition for a platform.

    Raises:
        ValueError: for platforms whose service manager has no file format
    """
    if platform_name == "linux":
        return render_systemd_unit(descriptor).encode("utf-8")
    if platform_name == "macos":
        return render_launchd_plist(descriptor)
    raise ValueError(f"No service file format for platform: {platform_name}")


def _quote_systemd(arg: str) -> str:
    if not arg or any(c in arg for c in " \t\"'\\"):
        escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return arg
