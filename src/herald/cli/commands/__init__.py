"""CLI command modules."""

from herald.cli.commands import config, schedule, serve

__all__ = [
    "config",
    "schedule",
    "serve",
]
