"""Config command."""

import click
from rich.table import Table

from . import cli
from .shared import console, load_settings_or_exit

_SECRET_FIELDS = {"password"}


@cli.command()
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="TOML config file")
def config(config_file):
    """Show effective settings (secrets masked)."""
    settings = load_settings_or_exit(config_file)

    table = Table(title="geolocbot settings", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    for key, value in settings.model_dump().items():
        if key in _SECRET_FIELDS:
            value = "********" if value else "[red]not set[/red]"
        table.add_row(key, str(value))

    console.print(table)
