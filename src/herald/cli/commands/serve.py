"""Server command for running the Herald bot."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Start the Discord bot and the scheduler."""
        try:
            asyncio.run(_run_server(config))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _run_server(config_path: Path | None = None) -> None:
    """Run the bot until interrupted."""
    import signal as signal_module

    from herald.cli.console import error
    from herald.config import ConfigError, load_config
    from herald.logging import configure_logging

    # Rich console output plus JSONL file logging
    configure_logging(use_rich=True, log_to_file=True)

    from herald.providers.discord import DiscordProvider
    from herald.scheduling import SchedulingService

    logger.info("loading_configuration")
    try:
        herald_config = load_config(config_path)
        bot_token = herald_config.require_bot_token()
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    service = SchedulingService(herald_config)
    provider = DiscordProvider(
        bot_token,
        service,
        sync_commands=herald_config.discord.sync_commands,
        guild_ids=herald_config.discord.guild_ids,
    )
    logger.info(
        "server_starting",
        extra={
            "file.path": str(herald_config.scheduler.data_dir),
            "poll.interval": herald_config.scheduler.poll_interval,
        },
    )

    loop = asyncio.get_running_loop()
    bot_task = asyncio.create_task(provider.start())

    def handle_signal() -> None:
        if not bot_task.done():
            loop.create_task(provider.stop())

    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    try:
        await bot_task
    finally:
        await provider.stop()
        logger.info("server_stopped")
