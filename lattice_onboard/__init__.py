"""Lattice Onboard - provision a Lattice compute agent onto this machine.

Prepares a host to run the Lattice worker agent and can tear it down again.

Key responsibilities:
- Check host requirements (OS, CPU, memory, disk, Docker presence)
- Install Docker when it is missing, reporting step-by-step progress
- Download, configure and launch the agent binary
- Register the agent with the OS service manager (systemd, launchd, Windows SCM)
- Remove everything again on cleanup
"""

__version__ = "0.1.0"
