"""Schedule management commands."""

import asyncio
from pathlib import Path
from typing import Annotated

import click
import typer

from herald.cli.console import (
    console,
    create_table,
    dim,
    error,
    format_countdown,
    success,
    warning,
)


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: list, remove, check"),
        ] = None,
        workspace: Annotated[
            str | None,
            typer.Option(
                "--workspace",
                "-w",
                help="Discord server (guild) ID",
            ),
        ] = None,
        item_id: Annotated[
            int | None,
            typer.Option(
                "--id",
                "-i",
                help="Item number for remove",
            ),
        ] = None,
        show_all: Annotated[
            bool,
            typer.Option(
                "--all",
                "-a",
                help="Include items that already fired",
            ),
        ] = False,
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Inspect and clean up scheduled items.

        Items are stored per server in <data_dir>/<guild id>/scheduled.json.

        Examples:
            herald schedule list                        # Active items, every server
            herald schedule list -w 1234 --all          # Include fired items
            herald schedule remove -w 1234 --id 7       # Remove item #7 locally
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        from herald.scheduling import ItemStore

        store = ItemStore(_data_dir(config))

        if action == "list":
            asyncio.run(_schedule_list(store, workspace, show_all))

        elif action == "remove":
            if workspace is None or item_id is None:
                error("--workspace and --id are required for remove")
                raise typer.Exit(1)
            asyncio.run(_schedule_remove(store, workspace, item_id))

        elif action == "check":
            warning("Firing due items needs a live Discord connection.")
            dim("Run /schedule-check in Discord while `herald serve` is running.")

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: list, remove, check")
            raise typer.Exit(1)


def _data_dir(config_path: Path | None) -> Path:
    from herald.config import get_default_config, load_config

    try:
        return load_config(config_path).scheduler.data_dir
    except FileNotFoundError:
        if config_path is not None:
            error(f"Config file not found: {config_path}")
            raise typer.Exit(1) from None
        return get_default_config().scheduler.data_dir


async def _schedule_list(store, workspace: str | None, show_all: bool) -> None:
    """List scheduled items."""
    from herald.scheduling import StoreError, format_recurrence
    from herald.scheduling.commands import type_label

    workspace_ids = [workspace] if workspace else store.workspace_ids()
    if not workspace_ids:
        warning(f"No schedules found in {store.data_dir}")
        return

    table = create_table(
        "Scheduled Items",
        [
            ("Server", "dim"),
            ("ID", "bold"),
            ("Type", ""),
            ("Text", ""),
            ("Repeat", ""),
            ("Next Fire", ""),
        ],
    )

    total = 0
    for workspace_id in workspace_ids:
        try:
            collection = await store.load(workspace_id)
        except StoreError as e:
            error(str(e))
            continue

        for item in collection.items:
            if not item.active and not show_all:
                continue
            text = item.label
            if len(text) > 40:
                text = text[:40] + "..."
            next_fire = (
                format_countdown(item.trigger_at) if item.active else "[dim]done[/dim]"
            )
            table.add_row(
                workspace_id,
                str(item.id),
                type_label(item),
                text,
                format_recurrence(item.recurring),
                next_fire,
            )
            total += 1

    if total == 0:
        warning("No scheduled items found")
        return

    console.print(table)
    dim(f"Total: {total} item(s)")


async def _schedule_remove(store, workspace: str, item_id: int) -> None:
    """Remove an item locally, cascading from events to their reminders.

    The Discord event itself is left alone.
    """
    from herald.scheduling.sync import EventSynchronizer

    result = await EventSynchronizer(store).remove_item(workspace, item_id)
    if result is None:
        error(f"No item #{item_id} in server {workspace}")
        raise typer.Exit(1)

    success(f"Removed #{result.item.id}: {result.item.label}")
    for item in result.cascaded:
        dim(f"Also removed linked reminder #{item.id}")
