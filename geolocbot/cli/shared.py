"""Shared utilities for geolocbot CLI commands."""

import sys
from typing import Optional

from pydantic import ValidationError
from rich.console import Console

console = Console()


def load_settings_or_exit(config_file: Optional[str], **overrides):
    """Load settings, printing missing/invalid keys and exiting on failure."""
    from geolocbot.config import load_settings

    try:
        return load_settings(config_file, **overrides)
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        for err in e.errors():
            key = ".".join(str(part) for part in err["loc"])
            console.print(f"  [bold]{key}[/bold]: {err['msg']}")
        console.print("[dim]Set them in botconfig.toml or as BOT_<KEY> environment variables.[/dim]")
        sys.exit(1)
