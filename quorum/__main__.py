"""
Quorum - resilient model execution

Entry point for running Quorum from command line:
    python -m quorum

Or after installation:
    quorum
"""

from .interfaces.cli import run_cli

if __name__ == "__main__":
    run_cli()
