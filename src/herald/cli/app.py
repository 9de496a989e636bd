"""Main CLI application."""

import typer

from herald.cli.commands import config, schedule, serve

app = typer.Typer(
    name="herald",
    help="Herald - Discord reminders and scheduled events",
    no_args_is_help=True,
)

serve.register(app)
schedule.register(app)
config.register(app)


if __name__ == "__main__":
    app()
