import os
import sys
from pathlib import Path

import pytest

from lattice_onboard.config import OnboardSettings
from lattice_onboard.errors import StepFailed
from lattice_onboard.platforms import HostTools, LinuxPlatform, MacOSPlatform, WindowsPlatform
from lattice_onboard.process import CommandResult, LaunchedProcess, ProcessRunner


class FakeRunner(ProcessRunner):
    """Records commands instead of running them.

    failures: substring of the joined command line -> exit code
    outputs: substring of the joined command line -> stdout
    """

    def __init__(self, failures=None, outputs=None, spawn_error=None):
        super().__init__(timeout=5)
        self.failures = dict(failures or {})
        self.outputs = dict(outputs or {})
        self.spawn_error = spawn_error
        self.calls = []
        self.spawned = []

    def run(self, args, timeout=None):
        args = [str(a) for a in args]
        self.calls.append(args)
        line = " ".join(args)
        for pattern, code in self.failures.items():
            if pattern in line:
                return CommandResult(args=args, returncode=code, stderr=f"{pattern} failed")
        for pattern, stdout in self.outputs.items():
            if pattern in line:
                return CommandResult(args=args, returncode=0, stdout=stdout)
        return CommandResult(args=args, returncode=0)

    def spawn_detached(self, args, cwd=None, log_path=None, env=None):
        args = [str(a) for a in args]
        self.spawned.append(args)
        if self.spawn_error is not None:
            raise self.spawn_error
        return LaunchedProcess(pid=4242, started_at=1000.0, args=args)

    def ran(self, *words):
        """True if some recorded command contains all the given words in order."""
        for call in self.calls:
            line = " ".join(call)
            if " ".join(words) in line:
                return True
        return False


class FakeDownloader:
    """Writes placeholder bytes instead of downloading."""

    def __init__(self, fail_urls=None):
        self.fail_urls = set(fail_urls or [])
        self.fetched = []

    def fetch(self, url, dest, step="downloading"):
        self.fetched.append((url, Path(dest)))
        if any(part in url for part in self.fail_urls):
            raise StepFailed(step, f"Failed to download {url}: HTTP 404")
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"\x7fELF fake")
        return dest


def make_settings(root: Path) -> OnboardSettings:
    return OnboardSettings(
        install_dir=root / "agent",
        systemd_dir=root / "systemd",
        launchd_dir=root / "launchd",
        release_url="https://releases.example.test/lattice",
    )


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def tools(runner, downloader, settings):
    return HostTools(runner=runner, downloader=downloader, settings=settings)


@pytest.fixture
def linux(tools):
    return LinuxPlatform(tools, "x86_64")


@pytest.fixture
def macos(tools):
    return MacOSPlatform(tools, "aarch64")


@pytest.fixture
def windows(tools):
    return WindowsPlatform(tools, "x86_64")


posix_only = pytest.mark.skipif(os.name == "nt" or sys.platform == "win32", reason="POSIX permissions")
