#!/usr/bin/env python3
"""Lattice Onboard - set up a Lattice compute agent on this machine.

Usage:
    lattice-onboard check
    lattice-onboard install-runtime --skip-if-installed
    lattice-onboard setup --backend-url http://backend:9000 --agent-name worker-1 --auto-start
    lattice-onboard test-connection http://backend:9000
    lattice-onboard status
    lattice-onboard configure-cluster 0 1
    lattice-onboard cleanup

Or with environment variables:
    LATTICE_INSTALL_DIR=/opt/lattice lattice-onboard setup --backend-url http://backend:9000
"""

import sys
from typing import Tuple

import click
from rich.console import Console
from rich.table import Table, Column, box

from . import __version__
from .commands import Commands
from .config import AgentConfig, OnboardSettings
from .progress import ProgressEvent
from .requirements import meets_minimum
from .utils import format_memory_gi, setup_logging

console = Console()


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


@click.group()
@click.option("--debug", is_flag=True, envvar="LATTICE_DEBUG", help="Enable debug logging")
@click.version_option(__version__, prog_name="lattice-onboard")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """Lattice Onboard - provision the Lattice compute agent."""
    settings = OnboardSettings.from_env()
    settings.debug = settings.debug or debug

    logger = setup_logging(debug=settings.debug)

    errors = settings.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    ctx.obj = Commands(settings=settings)


@cli.command(name="check", help="Check host requirements and Docker status.")
@click.option("--json", "as_json", is_flag=True, help="Print the host profile as JSON")
@click.pass_obj
def check(commands: Commands, as_json: bool):
    profile = commands.check_requirements()
    if as_json:
        console.print_json(data=profile.to_dict())
        return

    table = Table(Column("Property"), Column("Value"), box=box.SIMPLE)
    table.add_row("OS", profile.operating_system)
    table.add_row("Architecture", profile.architecture)
    table.add_row("CPU cores", str(profile.cpu_cores))
    table.add_row("Total memory", format_memory_gi(profile.total_memory_bytes))
    table.add_row("Available memory", format_memory_gi(profile.available_memory_bytes))
    table.add_row("Free disk", format_memory_gi(profile.disk_space_bytes))
    table.add_row("Docker installed", "✅" if profile.runtime_installed else "❌")
    table.add_row("Docker running", "✅" if profile.runtime_running else "❌")
    console.print(table)

    if profile.degraded:
        console.print(f"[yellow]Could not determine: {', '.join(profile.degraded)}[/yellow]")
    for problem in meets_minimum(profile):
        console.print(f"[yellow]Warning: {problem}[/yellow]")


@cli.command(name="install-runtime", help="Install Docker.")
@click.option("--skip-if-installed", is_flag=True, help="Do nothing if Docker is already installed")
@click.option("--json", "as_json", is_flag=True, help="Print the progress events as JSON when done")
@click.pass_obj
def install_runtime(commands: Commands, skip_if_installed: bool, as_json: bool):
    def show(event: ProgressEvent):
        if as_json:
            return
        colour = "green" if event.success else "red"
        console.print(f"[{colour}]{event.percent:3d}%[/{colour}] {event.message}")

    result = commands.install_runtime(listener=show, skip_if_installed=skip_if_installed)
    if as_json:
        console.print_json(data=result.to_dict())
    if not result.ok:
        _fail(f"Docker installation failed: {result.error}")


@cli.command(name="setup", help="Download, configure and start the agent.")
@click.option("--backend-url", envvar="LATTICE_BACKEND_URL", required=True, help="Lattice backend URL")
@click.option("--agent-name", envvar="LATTICE_AGENT_NAME", default="", help="Display name for this worker")
@click.option("--compute-hours", default="", help="Window to keep the machine awake, e.g. 22:00-06:00")
@click.option("--auto-start", is_flag=True, help="Register the agent with the OS service manager")
@click.option("--gpu", "gpu_enabled", is_flag=True, help="Allow workloads to use GPUs")
@click.option("--skip-checks", is_flag=True, help="Do not require Docker to be installed first")
@click.pass_obj
def setup(
    commands: Commands,
    backend_url: str,
    agent_name: str,
    compute_hours: str,
    auto_start: bool,
    gpu_enabled: bool,
    skip_checks: bool,
):
    config = AgentConfig(
        backend_url=backend_url,
        agent_name=agent_name,
        compute_hours=compute_hours,
        auto_start=auto_start,
        gpu_enabled=gpu_enabled,
    )

    result = commands.setup_agent(config, enforce_preconditions=not skip_checks)
    if not result.ok:
        _fail(f"Agent setup failed: {result.error}")
    console.print(f"[green]{result.message}[/green]")


@cli.command(name="test-connection", help="Check that the backend health endpoint answers.")
@click.argument("backend_url")
@click.pass_obj
def check_connection(commands: Commands, backend_url: str):
    result = commands.test_connection(backend_url)
    if not result.ok:
        _fail(result.error)
    if not result.healthy:
        _fail(f"Backend unhealthy (HTTP {result.status_code})")
    console.print(f"[green]Backend healthy (HTTP {result.status_code})[/green]")


@cli.command(name="status", help="Show agent status.")
@click.option("--json", "as_json", is_flag=True, help="Print the status as JSON")
@click.pass_obj
def status(commands: Commands, as_json: bool):
    agent = commands.get_agent_status()
    if as_json:
        console.print_json(data=agent.to_dict())
        return

    table = Table(Column("Property"), Column("Value"), box=box.SIMPLE)
    table.add_row("Running", "✅" if agent.running else "❌")
    table.add_row("PID", str(agent.pid) if agent.pid else "-")
    table.add_row("CPU usage", f"{agent.cpu_usage:.1f}%")
    table.add_row("Memory usage", f"{agent.memory_usage:.1f}%")
    table.add_row("Containers", str(agent.containers))
    console.print(table)


@cli.command(name="configure-cluster", help="Select the GPUs the agent may use (indexes or UUIDs).")
@click.argument("gpu_ids", nargs=-1)
@click.option("--skip-checks", is_flag=True, help="Do not require the agent to be set up first")
@click.pass_obj
def configure_cluster(commands: Commands, gpu_ids: Tuple[str, ...], skip_checks: bool):
    result = commands.configure_cluster(list(gpu_ids), enforce_preconditions=not skip_checks)
    if not result.ok:
        _fail(f"Cluster configuration failed: {result.error}")
    console.print(f"[green]{result.message}[/green]")
    for device in result.devices:
        console.print(f"  {device}")


@cli.command(name="cleanup", help="Stop the agent and remove everything setup created.")
@click.pass_obj
def cleanup(commands: Commands):
    report = commands.cleanup_agent()
    for failure in report.failures:
        console.print(f"[yellow]Ignored: {failure}[/yellow]")
    console.print(f"[green]{report.message}[/green]")


def main():
    cli(prog_name="lattice-onboard")


if __name__ == "__main__":
    main()
