"""Locate command: run the EXIF decoder on local files."""

import sys
import click
from rich.table import Table

from . import cli
from .shared import console


@cli.command()
@click.argument("images", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def locate(images):
    """Print the GPS location stored in IMAGES.

    Exits with status 1 when none of the files carries a location.
    """
    from geolocbot.exif import DecodeError, extract_location

    table = Table(title="EXIF locations")
    table.add_column("File", style="bold")
    table.add_column("Latitude", justify="right")
    table.add_column("Longitude", justify="right")
    table.add_column("Geo URI")

    found = 0
    for path in images:
        with open(path, "rb") as f:
            data = f.read()
        try:
            coordinate = extract_location(data)
        except DecodeError as e:
            table.add_row(path, "-", "-", f"[red]{type(e).__name__}: {e}[/red]")
            continue
        found += 1
        table.add_row(
            path,
            f"{coordinate.latitude:.6f}",
            f"{coordinate.longitude:.6f}",
            coordinate.geo_uri,
        )

    console.print(table)
    if not found:
        sys.exit(1)
