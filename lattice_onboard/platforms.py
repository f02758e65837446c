"""Per-OS install and service behaviour.

Each supported OS gets one Platform subclass implementing the same
capabilities: install Docker, register/unregister the agent service and
record the compute-hours window. Unsupported stands in for any OS
without an implementation and refuses every mutating operation up front.
"""

import getpass
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Type

from .config import OnboardSettings
from .descriptors import ServiceDescriptor, render_descriptor
from .download import Downloader
from .errors import BestEffortFailure, StepFailed, UnsupportedPlatform
from .process import CommandResult, ProcessRunner
from .progress import ProgressTracker
from .utils import is_root

logger = logging.getLogger("lattice-onboard")

DOCKER_DESKTOP_URLS: Dict[Tuple[str, str], str] = {
    ("windows", "x86_64"): "https://desktop.docker.com/win/main/amd64/Docker%20Desktop%20Installer.exe",
    ("windows", "aarch64"): "https://desktop.docker.com/win/main/arm64/Docker%20Desktop%20Installer.exe",
    ("macos", "x86_64"): "https://desktop.docker.com/mac/main/amd64/Docker.dmg",
    ("macos", "aarch64"): "https://desktop.docker.com/mac/main/arm64/Docker.dmg",
}

LINUX_RUNTIME_PACKAGES = ("docker.io", "docker-compose")
RUNTIME_ADMIN_GROUP = "docker"


@dataclass
class HostTools:
    """Collaborators shared by every platform step."""
    runner: ProcessRunner
    downloader: Downloader
    settings: OnboardSettings


class Platform:
    """Base class for OS-specific behaviour."""

    name = "unknown"
    supported = True
    windows = False

    def __init__(self, tools: HostTools, arch: str):
        self.tools = tools
        self.arch = arch

    @property
    def runner(self) -> ProcessRunner:
        return self.tools.runner

    @property
    def settings(self) -> OnboardSettings:
        return self.tools.settings

    # Agent binary

    @property
    def binary_path(self) -> Path:
        return self.settings.binary_path(windows=self.windows)

    def agent_download_url(self) -> str:
        return self.settings.agent_download_url(self.name, self.arch)

    def make_executable(self, path: Path) -> None:
        """Give owner/group/other execute permission (0755)."""
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IRWXU | stat.S_IRGRP | stat.S_IXGRP | stat.S_IROTH | stat.S_IXOTH)

    # Container runtime

    def runtime_installer_url(self) -> Optional[str]:
        return DOCKER_DESKTOP_URLS.get((self.name, self.arch))

    def install_runtime(self, progress: ProgressTracker) -> None:
        """Install Docker, emitting progress after "preparing".

        Raises:
            StepFailed: when a download or command fails
        """
        raise NotImplementedError

    def _download_runtime_installer(self, progress: ProgressTracker, filename: str, label: str) -> Path:
        progress.emit("downloading", 30, f"Downloading Docker Desktop for {label}...")
        url = self.runtime_installer_url()
        if url is None:
            raise StepFailed("downloading", f"No Docker installer available for {self.name}/{self.arch}")
        return self.tools.downloader.fetch(url, self.settings.downloads_dir / filename)

    # Service registration

    def service_file(self, descriptor: ServiceDescriptor) -> Optional[Path]:
        """Path of the on-disk service definition, if the platform uses one."""
        return None

    def enable_service(self, descriptor: ServiceDescriptor) -> None:
        """Register and start the agent service.

        Raises:
            StepFailed: when the service could not be registered or started
        """
        raise NotImplementedError

    def disable_service(self, descriptor: ServiceDescriptor) -> List[BestEffortFailure]:
        """Stop and unregister the agent service. Never raises."""
        raise NotImplementedError

    def _install_service_file(self, descriptor: ServiceDescriptor) -> Path:
        """Write the rendered service definition, via the privileged runner if needed.

        System service directories are root-owned, so an unprivileged run
        stages the file under downloads_dir and copies it with `install`.
        """
        path = self.service_file(descriptor)
        content = render_descriptor(self.name, descriptor)

        if _writable(path):
            _write_file("enable_service", path, content)
        else:
            staged = self.settings.downloads_dir / path.name
            _write_file("enable_service", staged, content)
            try:
                self.runner.check(
                    "enable_service",
                    self._privileged(["install", "-m", "0644", str(staged), str(path)]),
                )
            finally:
                _remove_file("enable_service", staged)

        logger.info(f"Wrote service definition {path}")
        return path

    def _remove_service_file(self, path: Path, failures: List[BestEffortFailure]) -> None:
        if _writable(path):
            failures.extend(_remove_file("remove_service_file", path))
        else:
            self._best_effort("remove_service_file", self._privileged(["rm", "-f", str(path)]), failures)

    # Compute hours

    def prevent_sleep(self, window: str) -> bool:
        """Keep the machine awake during the compute-hours window.

        The window is always recorded next to the agent. Returns True only
        if a native scheduler was configured.
        """
        path = self.settings.schedule_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(window + "\n", encoding="utf-8")
        except (OSError, UnicodeError) as e:
            raise StepFailed("compute_hours", f"Failed to record compute hours: {e}")

        logger.warning(
            f"No native sleep scheduler on {self.name}; compute hours '{window}' "
            f"recorded in {path} and passed to the agent as COMPUTE_HOURS"
        )
        return False

    def allow_sleep(self) -> List[BestEffortFailure]:
        """Drop the compute-hours schedule. Never raises."""
        return _remove_file("compute_hours", self.settings.schedule_path)

    # Helpers

    def _privileged(self, args: Sequence[str]) -> List[str]:
        """Prefix with sudo unless we already run as root."""
        if is_root():
            return list(args)
        return ["sudo"] + list(args)

    def _best_effort(self, step: str, args: Sequence[str], failures: List[BestEffortFailure]) -> CommandResult:
        result = self.runner.run(args)
        if not result.success:
            logger.warning(f"Ignoring failed {step}: {result.describe()}")
            failures.append(BestEffortFailure(step, result.describe()))
        return result


class LinuxPlatform(Platform):
    """Debian/Ubuntu hosts: Docker from apt, agent under systemd."""

    name = "linux"

    def install_runtime(self, progress: ProgressTracker) -> None:
        timeout = self.settings.command_timeout

        progress.emit("updating", 20, "Updating package repositories...")
        self.runner.check("updating", self._privileged(["apt-get", "update"]), timeout=timeout)

        progress.emit("downloading", 30, "Downloading Docker Engine packages...")
        self.runner.check(
            "downloading",
            self._privileged(["apt-get", "install", "-y", "--download-only"] + list(LINUX_RUNTIME_PACKAGES)),
            timeout=timeout,
        )

        progress.emit("installing", 70, "Installing Docker Engine...")
        self.runner.check(
            "installing",
            self._privileged(["apt-get", "install", "-y"] + list(LINUX_RUNTIME_PACKAGES)),
            timeout=timeout,
        )

        self._add_user_to_group()

    def _add_user_to_group(self) -> None:
        """Let the invoking user talk to the daemon. Failure is not fatal."""
        try:
            username = os.environ.get("SUDO_USER") or getpass.getuser()
        except (KeyError, OSError) as e:
            logger.warning(f"Could not determine user for {RUNTIME_ADMIN_GROUP} group: {e}")
            return

        result = self.runner.run(self._privileged(["usermod", "-aG", RUNTIME_ADMIN_GROUP, username]))
        if result.success:
            logger.info(f"Added {username} to the {RUNTIME_ADMIN_GROUP} group (takes effect on next login)")
        else:
            logger.warning(f"Could not add {username} to the {RUNTIME_ADMIN_GROUP} group: {result.describe()}")

    def service_file(self, descriptor: ServiceDescriptor) -> Path:
        return self.settings.systemd_dir / f"{descriptor.name}.service"

    def enable_service(self, descriptor: ServiceDescriptor) -> None:
        self._install_service_file(descriptor)

        unit = f"{descriptor.name}.service"
        self.runner.check("enable_service", self._privileged(["systemctl", "daemon-reload"]))
        self.runner.check("enable_service", self._privileged(["systemctl", "enable", unit]))
        self.runner.check("enable_service", self._privileged(["systemctl", "start", unit]))

    def disable_service(self, descriptor: ServiceDescriptor) -> List[BestEffortFailure]:
        unit_path = self.service_file(descriptor)
        if not unit_path.exists():
            logger.debug(f"No systemd unit at {unit_path}, nothing to disable")
            return []

        failures: List[BestEffortFailure] = []
        unit = f"{descriptor.name}.service"
        self._best_effort("stop_service", self._privileged(["systemctl", "stop", unit]), failures)
        self._best_effort("disable_service", self._privileged(["systemctl", "disable", unit]), failures)
        self._remove_service_file(unit_path, failures)
        self._best_effort("daemon_reload", self._privileged(["systemctl", "daemon-reload"]), failures)
        return failures


class MacOSPlatform(Platform):
    """macOS hosts: Docker Desktop from the DMG, agent under launchd."""

    name = "macos"

    DMG_MOUNT_POINT = Path("/Volumes/Docker")

    def install_runtime(self, progress: ProgressTracker) -> None:
        dmg = self._download_runtime_installer(progress, "Docker.dmg", "macOS")

        progress.emit("installing", 70, "Installing Docker Desktop...")
        timeout = self.settings.command_timeout
        self.runner.check(
            "installing",
            ["hdiutil", "attach", str(dmg), "-nobrowse", "-quiet", "-mountpoint", str(self.DMG_MOUNT_POINT)],
            timeout=timeout,
        )
        try:
            self.runner.check(
                "installing",
                ["cp", "-R", str(self.DMG_MOUNT_POINT / "Docker.app"), "/Applications/"],
                timeout=timeout,
            )
        finally:
            detach = self.runner.run(["hdiutil", "detach", str(self.DMG_MOUNT_POINT), "-quiet"])
            if not detach.success:
                logger.warning(f"Could not detach Docker image: {detach.describe()}")

    def service_file(self, descriptor: ServiceDescriptor) -> Path:
        return self.settings.launchd_dir / f"{descriptor.label}.plist"

    def enable_service(self, descriptor: ServiceDescriptor) -> None:
        plist_path = self._install_service_file(descriptor)

        self.runner.check("enable_service", self._privileged(["launchctl", "load", "-w", str(plist_path)]))

    def disable_service(self, descriptor: ServiceDescriptor) -> List[BestEffortFailure]:
        plist_path = self.service_file(descriptor)
        if not plist_path.exists():
            logger.debug(f"No launchd plist at {plist_path}, nothing to disable")
            return []

        failures: List[BestEffortFailure] = []
        self._best_effort("unload_service", self._privileged(["launchctl", "unload", "-w", str(plist_path)]), failures)
        self._remove_service_file(plist_path, failures)
        return failures


class WindowsPlatform(Platform):
    """Windows hosts: Docker Desktop installer, agent under the Service Control Manager."""

    name = "windows"
    windows = True

    def make_executable(self, path: Path) -> None:
        pass

    def install_runtime(self, progress: ProgressTracker) -> None:
        installer = self._download_runtime_installer(progress, "DockerDesktopInstaller.exe", "Windows")

        progress.emit("installing", 70, "Installing Docker Desktop...")
        self.runner.check(
            "installing",
            [str(installer), "install", "--quiet"],
            timeout=self.settings.command_timeout,
        )

    def enable_service(self, descriptor: ServiceDescriptor) -> None:
        command = " ".join(f'"{arg}"' if " " in arg else arg for arg in descriptor.command_line)
        self.runner.check(
            "enable_service",
            ["sc.exe", "create", descriptor.name, "binPath=", command,
             "start=", "auto", "DisplayName=", descriptor.description],
        )
        self.runner.check(
            "enable_service",
            ["sc.exe", "failure", descriptor.name, "reset=", "86400",
             "actions=", f"restart/{descriptor.restart_sec * 1000}"],
        )
        self.runner.check("enable_service", ["sc.exe", "start", descriptor.name])

    def disable_service(self, descriptor: ServiceDescriptor) -> List[BestEffortFailure]:
        if not self.runner.run(["sc.exe", "query", descriptor.name]).success:
            logger.debug(f"No Windows service {descriptor.name}, nothing to disable")
            return []

        failures: List[BestEffortFailure] = []
        self._best_effort("stop_service", ["sc.exe", "stop", descriptor.name], failures)
        self._best_effort("delete_service", ["sc.exe", "delete", descriptor.name], failures)
        return failures


class Unsupported(Platform):
    """Any OS without an implementation."""

    supported = False

    def __init__(self, tools: HostTools, arch: str, os_name: str):
        super().__init__(tools, arch)
        self.name = os_name

    def install_runtime(self, progress: ProgressTracker) -> None:
        raise UnsupportedPlatform(self.name)

    def enable_service(self, descriptor: ServiceDescriptor) -> None:
        raise UnsupportedPlatform(self.name)

    def disable_service(self, descriptor: ServiceDescriptor) -> List[BestEffortFailure]:
        return []


PLATFORMS: Dict[str, Type[Platform]] = {
    "linux": LinuxPlatform,
    "macos": MacOSPlatform,
    "windows": WindowsPlatform,
}


def detect_platform(tools: HostTools, os_name: str, arch: str) -> Platform:
    """Pick the Platform implementation for an OS name ("linux", "macos", "windows")."""
    cls = PLATFORMS.get(os_name)
    if cls is None:
        logger.warning(f"No onboarding support for OS '{os_name}'")
        return Unsupported(tools, arch, os_name)
    return cls(tools, arch)


def _writable(path: Path) -> bool:
    """True if path can be created or replaced without privileges."""
    if is_root():
        return True
    probe = path.parent
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return os.access(str(probe), os.W_OK)


def _write_file(step: str, path: Path, content: bytes) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    except OSError as e:
        raise StepFailed(step, f"Failed to write {path}: {e}")


def _remove_file(step: str, path: Path) -> List[BestEffortFailure]:
    try:
        path.unlink()
        logger.info(f"Removed {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return [BestEffortFailure(step, str(e))]
    return []
