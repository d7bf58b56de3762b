"""Start command."""

import click

from . import cli
from .shared import console, load_settings_or_exit


@cli.command()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="TOML config file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(config_file, debug):
    """Start the bot."""
    overrides = {"debug": True} if debug else {}
    settings = load_settings_or_exit(config_file, **overrides)

    console.print(f"[bold blue]Starting geolocbot as {settings.username}...[/bold blue]")
    from geolocbot.main import main
    main(settings)
