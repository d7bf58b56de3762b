"""geolocbot command line interface."""

import click
from geolocbot import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="geolocbot")
@click.pass_context
def cli(ctx):
    """geolocbot: answers photos with the location in their EXIF data"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands."""
    console.print(f"[bold]geolocbot v{__version__}[/bold]: EXIF location bot for Matrix\n")

    commands = [
        ("start", "Log in and run the bot"),
        ("locate", "Print the EXIF location of local image files"),
        ("config", "Show effective settings"),
    ]
    for name, desc in commands:
        console.print(f"    [bold]geolocbot {name:10s}[/bold] {desc}")
    console.print()
    console.print("[dim]Run 'geolocbot <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_locate  # noqa: E402, F401
from . import cmd_config  # noqa: E402, F401
