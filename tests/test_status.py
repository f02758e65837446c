import os
from unittest.mock import MagicMock, patch

import psutil

from lattice_onboard.metrics import HostInfoProvider
from lattice_onboard.process import LaunchedProcess
from lattice_onboard.provisioner import save_launch_record
from lattice_onboard.status import AgentStatus, AgentStatusReader, find_agent_processes

from .conftest import FakeRunner


def host_info(cpu=12.5, memory=40.0, error=None):
    info = MagicMock(spec=HostInfoProvider)
    if error is not None:
        info.resource_usage.side_effect = error
    else:
        info.resource_usage.return_value = (cpu, memory)
    return info


@patch("lattice_onboard.status.find_agent_processes")
def test_status_of_running_agent(find, settings):
    find.return_value = [MagicMock(pid=4242)]
    runner = FakeRunner(outputs={"docker ps": "job-a\njob-b\n\n"})

    status = AgentStatusReader(settings, host_info(), runner).get_status()

    assert status == AgentStatus(running=True, cpu_usage=12.5, memory_usage=40.0, containers=2, pid=4242)
    assert runner.ran("docker", "ps", "--format")


@patch("lattice_onboard.status.find_agent_processes", return_value=[])
def test_status_when_nothing_runs(_, settings):
    runner = FakeRunner(failures={"docker ps": 1})

    status = AgentStatusReader(settings, host_info(), runner).get_status()

    assert not status.running
    assert status.pid is None
    assert status.containers == 0


@patch("lattice_onboard.status.find_agent_processes", return_value=[])
def test_unreadable_usage_reports_zero(_, settings):
    status = AgentStatusReader(settings, host_info(error=RuntimeError("boom")), FakeRunner()).get_status()

    assert status.cpu_usage == 0.0
    assert status.memory_usage == 0.0


@patch("lattice_onboard.status.find_agent_processes", side_effect=psutil.AccessDenied())
def test_process_table_errors_mean_not_running(_, settings):
    status = AgentStatusReader(settings, host_info(), FakeRunner()).get_status()

    assert not status.running


def test_to_dict_uses_strings():
    status = AgentStatus(running=True, cpu_usage=1.5, memory_usage=2.0, containers=3, pid=7)

    assert status.to_dict() == {
        "running": "true",
        "cpu_usage": "1.5",
        "memory_usage": "2.0",
        "containers": "3",
    }


def test_recorded_pid_is_found(settings):
    settings.install_dir.mkdir(parents=True)
    me = psutil.Process()
    save_launch_record(settings.pid_path, LaunchedProcess(pid=me.pid, started_at=me.create_time()))

    found = find_agent_processes(settings)

    assert os.getpid() in [p.pid for p in found]


def test_reused_pid_is_ignored(settings):
    settings.install_dir.mkdir(parents=True)
    save_launch_record(settings.pid_path, LaunchedProcess(pid=os.getpid(), started_at=0.0))

    found = find_agent_processes(settings)

    assert os.getpid() not in [p.pid for p in found]
