import pytest

from lattice_onboard.platforms import HostTools, Unsupported, WindowsPlatform
from lattice_onboard.progress import ProgressTracker
from lattice_onboard.runtime import RuntimeInstaller

from .conftest import FakeDownloader, FakeRunner


def percents(result):
    return [e.percent for e in result.events]


def assert_non_decreasing(values):
    assert all(a <= b for a, b in zip(values, values[1:])), values


def test_linux_install_emits_ordered_progress(linux, runner):
    result = RuntimeInstaller(linux).install_runtime()

    assert result.ok
    assert [e.step for e in result.events] == ["preparing", "updating", "downloading", "installing", "completed"]
    assert percents(result) == [10, 20, 30, 70, 100]
    assert result.events[-1].success is True
    assert runner.ran("apt-get", "update")
    assert runner.ran("apt-get", "install", "-y", "--download-only", "docker.io", "docker-compose")
    assert runner.ran("apt-get", "install", "-y", "docker.io", "docker-compose")
    assert runner.ran("usermod", "-aG", "docker")


def test_linux_install_failure_keeps_partial_progress(linux, runner):
    runner.failures["apt-get install -y docker.io"] = 100

    result = RuntimeInstaller(linux).install_runtime()

    assert not result.ok
    assert "installing" in result.error
    steps = [e.step for e in result.events]
    assert steps == ["preparing", "updating", "downloading", "installing", "failed"]
    assert all(e.success for e in result.events[:-1])
    assert result.events[-1].success is False
    assert_non_decreasing(percents(result))
    assert 100 not in percents(result)
    # No rollback and no group change after a failed install
    assert not runner.ran("usermod")


def test_linux_repository_update_failure_stops_early(linux, runner):
    runner.failures["apt-get update"] = 1

    result = RuntimeInstaller(linux).install_runtime()

    assert not result.ok
    assert [e.step for e in result.events] == ["preparing", "updating", "failed"]
    assert not runner.ran("apt-get", "install")


def test_linux_group_change_failure_is_not_fatal(linux, runner):
    runner.failures["usermod"] = 6

    result = RuntimeInstaller(linux).install_runtime()

    assert result.ok
    assert result.events[-1].percent == 100


def test_macos_install_downloads_arch_specific_dmg(macos, runner, downloader):
    result = RuntimeInstaller(macos).install_runtime()

    assert result.ok
    assert percents(result) == [10, 30, 70, 100]
    url, dest = downloader.fetched[0]
    assert url == "https://desktop.docker.com/mac/main/arm64/Docker.dmg"
    assert dest.name == "Docker.dmg"
    assert runner.ran("hdiutil", "attach")
    assert runner.ran("cp", "-R", "/Volumes/Docker/Docker.app", "/Applications/")
    assert runner.ran("hdiutil", "detach")


def test_macos_copy_failure_still_detaches_image(macos, runner):
    runner.failures["cp -R"] = 1

    result = RuntimeInstaller(macos).install_runtime()

    assert not result.ok
    assert runner.ran("hdiutil", "detach")


def test_download_failure_aborts_before_installing(settings):
    runner = FakeRunner()
    downloader = FakeDownloader(fail_urls=["desktop.docker.com"])
    platform = WindowsPlatform(HostTools(runner, downloader, settings), "x86_64")

    result = RuntimeInstaller(platform).install_runtime()

    assert not result.ok
    assert [e.step for e in result.events] == ["preparing", "downloading", "failed"]
    assert runner.calls == []


def test_windows_install_runs_quiet_installer(windows, runner):
    result = RuntimeInstaller(windows).install_runtime()

    assert result.ok
    installer = runner.calls[0]
    assert installer[0].endswith("DockerDesktopInstaller.exe")
    assert installer[1:] == ["install", "--quiet"]


def test_unknown_arch_fails_at_download(tools):
    platform = WindowsPlatform(tools, "riscv64")
    result = RuntimeInstaller(platform).install_runtime()
    assert not result.ok
    assert "riscv64" in result.error


def test_unsupported_os_returns_error_without_events(tools, runner):
    result = RuntimeInstaller(Unsupported(tools, "x86_64", "freebsd")).install_runtime()

    assert not result.ok
    assert result.events == []
    assert "freebsd" in result.error
    assert runner.calls == []


def test_reinstall_is_not_skipped(linux, runner):
    RuntimeInstaller(linux).install_runtime()
    first = len(runner.calls)
    RuntimeInstaller(linux).install_runtime()
    assert len(runner.calls) == 2 * first


def test_listener_sees_events_as_they_happen(linux):
    seen = []
    result = RuntimeInstaller(linux).install_runtime(listener=seen.append)
    assert seen == result.events


def test_tracker_rejects_progress_going_backwards():
    tracker = ProgressTracker()
    tracker.emit("installing", 70, "Installing...")
    with pytest.raises(ValueError):
        tracker.emit("downloading", 30, "Downloading...")
    with pytest.raises(ValueError):
        tracker.emit("done", 101, "Too far")


def test_listener_errors_do_not_abort_install(linux, caplog):
    def listener(event):
        raise RuntimeError("ui gone")

    result = RuntimeInstaller(linux).install_runtime(listener=listener)

    assert result.ok
    assert result.events[-1].percent == 100
    assert "ui gone" in caplog.text
