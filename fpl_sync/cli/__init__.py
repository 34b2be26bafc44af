"""CLI package for the FPL sync backend.

Provides serve, init-db and one-shot sync commands.
"""

from fpl_sync.cli.main import cli

__all__ = ["cli"]
