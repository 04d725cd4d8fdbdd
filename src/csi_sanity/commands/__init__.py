"""CLI commands."""

from .run import list_command, run_command

__all__ = ["list_command", "run_command"]
