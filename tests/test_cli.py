import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from lattice_onboard.backend import ConnectionResult
from lattice_onboard.cleanup import CleanupReport
from lattice_onboard.cluster import CLUSTER_MESSAGE, ClusterResult
from lattice_onboard.errors import BestEffortFailure
from lattice_onboard.main import cli
from lattice_onboard.progress import ProgressEvent
from lattice_onboard.provisioner import SUCCESS_MESSAGE, ProvisionResult
from lattice_onboard.requirements import HostProfile
from lattice_onboard.runtime import InstallResult
from lattice_onboard.status import AgentStatus


@pytest.fixture
def commands():
    with patch("lattice_onboard.main.Commands") as cls:
        yield cls.return_value


def invoke(*args):
    return CliRunner().invoke(cli, list(args), env={"LATTICE_RELEASE_URL": "https://releases.example.test"})


def test_setup_passes_options(commands):
    commands.setup_agent.return_value = ProvisionResult(message=SUCCESS_MESSAGE)

    result = invoke("setup", "--backend-url", "http://h:9000", "--agent-name", "w1", "--auto-start")

    assert result.exit_code == 0, result.output
    assert SUCCESS_MESSAGE in result.output
    config = commands.setup_agent.call_args[0][0]
    assert config.backend_url == "http://h:9000"
    assert config.agent_name == "w1"
    assert config.auto_start
    assert commands.setup_agent.call_args[1] == {"enforce_preconditions": True}


def test_setup_failure_exits_nonzero(commands):
    commands.setup_agent.return_value = ProvisionResult(error="download_agent: HTTP 404")

    result = invoke("setup", "--backend-url", "http://h:9000", "--skip-checks")

    assert result.exit_code == 1
    assert "HTTP 404" in result.output
    assert commands.setup_agent.call_args[1] == {"enforce_preconditions": False}


def test_setup_requires_backend_url(commands):
    result = invoke("setup")

    assert result.exit_code == 2
    commands.setup_agent.assert_not_called()


def test_install_runtime_prints_progress(commands):
    events = [ProgressEvent("preparing", 10, "Preparing"), ProgressEvent("completed", 100, "Done")]

    def install(listener=None, skip_if_installed=False):
        for event in events:
            listener(event)
        return InstallResult(events=events)

    commands.install_runtime.side_effect = install

    result = invoke("install-runtime", "--skip-if-installed")

    assert result.exit_code == 0, result.output
    assert "Preparing" in result.output
    assert "100%" in result.output


def test_install_runtime_failure(commands):
    commands.install_runtime.return_value = InstallResult(events=[], error="Unsupported OS: plan9")

    result = invoke("install-runtime")

    assert result.exit_code == 1
    assert "Unsupported OS: plan9" in result.output


def test_connection_states(commands):
    commands.test_connection.return_value = ConnectionResult(healthy=True, status_code=200)
    assert invoke("test-connection", "http://h:9000").exit_code == 0

    commands.test_connection.return_value = ConnectionResult(healthy=False, status_code=503)
    result = invoke("test-connection", "http://h:9000")
    assert result.exit_code == 1
    assert "503" in result.output

    commands.test_connection.return_value = ConnectionResult(healthy=False, error="Connection failed: refused")
    assert invoke("test-connection", "http://h:9000").exit_code == 1


def test_status_table(commands):
    commands.get_agent_status.return_value = AgentStatus(running=True, cpu_usage=5.0, containers=2, pid=99)

    result = invoke("status")

    assert result.exit_code == 0, result.output
    assert "99" in result.output
    assert "5.0%" in result.output


def test_configure_cluster_collects_ids(commands):
    commands.configure_cluster.return_value = ClusterResult(message=CLUSTER_MESSAGE, devices=["GPU-aaa"])

    result = invoke("configure-cluster", "0", "1")

    assert result.exit_code == 0, result.output
    assert "GPU-aaa" in result.output
    commands.configure_cluster.assert_called_once_with(["0", "1"], enforce_preconditions=True)


def test_cleanup_reports_ignored_failures(commands):
    commands.cleanup_agent.return_value = CleanupReport(
        failures=[BestEffortFailure("disable_service", "systemctl missing")]
    )

    result = invoke("cleanup")

    assert result.exit_code == 0
    assert "systemctl missing" in result.output
    assert "Agent cleanup completed" in result.output


def test_invalid_settings_abort(commands):
    result = CliRunner().invoke(cli, ["status"], env={"LATTICE_RELEASE_URL": "ftp://nope"})

    assert result.exit_code == 1
    commands.get_agent_status.assert_not_called()


def test_check_prints_profile(commands):
    profile = MagicMock(
        operating_system="linux", architecture="x86_64", cpu_cores=1,
        total_memory_bytes=2 * 1024 ** 3, available_memory_bytes=1024 ** 3, disk_space_bytes=10 * 1024 ** 3,
        runtime_installed=True, runtime_running=False, degraded=(),
    )
    commands.check_requirements.return_value = profile

    result = invoke("check")

    assert result.exit_code == 0, result.output
    assert "x86_64" in result.output
    assert "CPU cores recommended" in result.output


def test_json_output(commands):
    commands.get_agent_status.return_value = AgentStatus(running=False)
    result = invoke("status", "--json")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["running"] == "false"

    events = [ProgressEvent("completed", 100, "Docker is already installed")]
    commands.install_runtime.return_value = InstallResult(events=events)
    result = invoke("install-runtime", "--skip-if-installed", "--json")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["events"][0]["progress"] == 100

    commands.check_requirements.return_value = HostProfile(
        operating_system="linux", architecture="x86_64", runtime_installed=True, runtime_running=True,
        cpu_cores=4, total_memory_bytes=8, available_memory_bytes=4, disk_space_bytes=100,
    )
    result = invoke("check", "--json")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["cpu_cores"] == 4
