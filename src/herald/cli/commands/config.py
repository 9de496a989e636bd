"""Configuration management commands."""

from pathlib import Path
from typing import Annotated

import click
import typer

from herald.cli.console import console, dim, error, success


def register(app: typer.Typer) -> None:
    """Register the config command."""

    @app.command()
    def config(
        action: Annotated[
            str | None,
            typer.Argument(help="Action: show, path, validate"),
        ] = None,
        path: Annotated[
            Path | None,
            typer.Option(
                "--path",
                "-p",
                help="Path to config file (default: search ./, $HERALD_HOME, /etc/herald)",
            ),
        ] = None,
    ) -> None:
        """Manage configuration."""
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        import tomllib

        from pydantic import ValidationError
        from rich.syntax import Syntax

        from herald.cli.console import create_table
        from herald.config import find_config_path, get_config_path, load_config

        config_path = find_config_path(path)

        if action == "path":
            if config_path is None:
                dim(f"No config file found; the default location is {get_config_path()}")
            else:
                console.print(str(config_path))

        elif action == "show":
            if config_path is None or not config_path.exists():
                error(f"Config file not found: {config_path or get_config_path()}")
                raise typer.Exit(1)

            # Display raw TOML with syntax highlighting
            content = config_path.read_text()
            syntax = Syntax(content, "toml", theme="monokai", line_numbers=True)
            console.print(f"[bold]Config file: {config_path}[/bold]\n")
            console.print(syntax)

        elif action == "validate":
            try:
                config_obj = load_config(config_path)
            except FileNotFoundError as e:
                error(f"File not found: {e}")
                raise typer.Exit(1) from None
            except tomllib.TOMLDecodeError as e:
                error(f"Invalid TOML: {e}")
                raise typer.Exit(1) from None
            except ValidationError as e:
                error("Configuration validation failed:")
                console.print()
                for err in e.errors():
                    loc = ".".join(str(x) for x in err["loc"])
                    console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
                raise typer.Exit(1) from None

            table = create_table(
                "Configuration Summary",
                [("Setting", "cyan"), ("Value", "green")],
            )
            table.add_row("Timezone", config_obj.timezone)
            table.add_row(
                "Discord token",
                "configured"
                if config_obj.discord.bot_token
                else "[yellow]missing[/yellow]",
            )
            table.add_row(
                "Command sync",
                (", ".join(config_obj.discord.guild_ids) or "global")
                if config_obj.discord.sync_commands
                else "[dim]disabled[/dim]",
            )
            table.add_row("Data directory", str(config_obj.scheduler.data_dir))
            table.add_row("Poll interval", f"{config_obj.scheduler.poll_interval:g}s")
            table.add_row(
                "Reconcile on start", str(config_obj.scheduler.reconcile_on_start)
            )

            success("Configuration is valid!")
            console.print()
            console.print(table)

        else:
            error(f"Unknown action: {action}")
            console.print("Valid actions: show, path, validate")
            raise typer.Exit(1)
