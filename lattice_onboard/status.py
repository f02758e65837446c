"""Live agent status: process, resource usage and running containers.

Every figure is best-effort; anything that cannot be read is reported as
zero / not running.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import psutil

from .config import AGENT_BINARY_NAME, OnboardSettings
from .metrics import HostInfoProvider
from .process import LaunchedProcess, ProcessRunner
from .provisioner import load_launch_record

logger = logging.getLogger("lattice-onboard")

# Slack allowed between the recorded start time and the OS process create time
_START_TIME_TOLERANCE = 5.0


@dataclass
class AgentStatus:
    """Snapshot of the running agent."""
    running: bool
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    containers: int = 0
    pid: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "running": str(self.running).lower(),
            "cpu_usage": str(self.cpu_usage),
            "memory_usage": str(self.memory_usage),
            "containers": str(self.containers),
        }


def _matches_record(proc: psutil.Process, record: LaunchedProcess) -> bool:
    """Guard against the recorded pid having been reused by another program."""
    try:
        return abs(proc.create_time() - record.started_at) <= _START_TIME_TOLERANCE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def _is_agent_name(proc: psutil.Process) -> bool:
    try:
        name = proc.info.get("name") if hasattr(proc, "info") else proc.name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False
    return bool(name) and name.split(".")[0] == AGENT_BINARY_NAME


def find_agent_processes(settings: OnboardSettings) -> List[psutil.Process]:
    """Locate running agent processes.

    The pid recorded at launch is preferred. Processes named like the
    agent binary are matched as a fallback, e.g. when the agent was
    restarted by the service manager.
    """
    found: List[psutil.Process] = []

    record = load_launch_record(settings.pid_path)
    if record is not None:
        try:
            proc = psutil.Process(record.pid)
            if proc.is_running() and _matches_record(proc, record):
                found.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            logger.debug(f"Recorded agent pid {record.pid} is gone")

    seen = {p.pid for p in found}
    own_pid = os.getpid()
    for proc in psutil.process_iter(["name"]):
        if proc.pid in seen or proc.pid == own_pid:
            continue
        if _is_agent_name(proc):
            found.append(proc)

    return found


class AgentStatusReader:
    """Reads agent status from the process table and Docker."""

    def __init__(self, settings: OnboardSettings, host_info: HostInfoProvider, runner: ProcessRunner):
        self.settings = settings
        self.host_info = host_info
        self.runner = runner

    def get_status(self) -> AgentStatus:
        try:
            processes = find_agent_processes(self.settings)
        except Exception as e:
            logger.warning(f"Could not inspect process table: {e}")
            processes = []

        try:
            cpu_usage, memory_usage = self.host_info.resource_usage()
        except Exception as e:
            logger.warning(f"Could not read resource usage: {e}")
            cpu_usage, memory_usage = 0.0, 0.0

        return AgentStatus(
            running=bool(processes),
            cpu_usage=cpu_usage,
            memory_usage=memory_usage,
            containers=len(self.running_containers()),
            pid=processes[0].pid if processes else None,
        )

    def running_containers(self) -> List[str]:
        """Names of running Docker containers (empty if Docker is unavailable)."""
        result = self.runner.run(
            ["docker", "ps", "--format", "{{.Names}}"],
            timeout=self.settings.probe_timeout,
        )
        if not result.success:
            logger.debug(f"Could not list containers: {result.describe()}")
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]
