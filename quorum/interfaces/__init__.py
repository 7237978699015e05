"""
Quorum Interfaces

CLI - Command line interface (typer + rich)
"""

from .cli import QuorumCLI, app, run_cli

__all__ = [
    "QuorumCLI",
    "app",
    "run_cli",
]
