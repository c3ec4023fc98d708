"""
gitmirror — CLI Entry Point

Usage:
    gitmirror sync --cachedir /var/cache/gitmirror --repomappingsfile repos.yaml [--mirror]
    gitmirror status --cachedir /var/cache/gitmirror
    gitmirror clean --cachedir /var/cache/gitmirror NAME...
"""

from __future__ import annotations

# Load .env file FIRST, before anything reads GITMIRROR_* env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import click

from .cli.mirror import mirror_clean, mirror_status, mirror_sync
from .config.loader import ConfigError
from .logging_config import setup_logging
from .mirror.config import MirrorSettings

# Initialize logging
setup_logging()


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """gitmirror — Keep bare mirrors of many repositories in sync."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = MirrorSettings.from_env()
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        raise SystemExit(1)


cli.add_command(mirror_sync)
cli.add_command(mirror_status)
cli.add_command(mirror_clean)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
