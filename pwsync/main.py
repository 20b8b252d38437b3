"""
pwsync — CLI Entry Point

Run by the password-change dispatcher once the local password program
has exited successfully.

Usage:
    pwsync sync [USERNAME] [--passwd-file PATH]
    pwsync status [--json]
    pwsync config
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True))

import json
import logging
import os
import pwd
import sys
from typing import Optional

import click
import yaml

from .config.loader import load_settings, settings_to_dict
from .errors import ConfigurationError, LookupFailure, SyncError
from .logging_config import setup_logging
from .persistence.mirror_sync import MirrorSynchronizer, SyncOutcome

logger = logging.getLogger(__name__)


def current_username() -> str:
    """
    Name of the real uid running the program.

    $USER is set by the caller and can't be trusted here.
    """
    uid = os.getuid()
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError as e:
        raise LookupFailure(
            f"Can't look up uid {uid} so can't update local passwd file."
        ) from e


@click.group()
@click.option("--config", "config_file", type=click.Path(path_type=Path), default=None,
              help="YAML settings file (default: $PWSYNC_CONFIG)")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path], log_level: Optional[str]) -> None:
    """Keep the local passwd mirror in step with the system passwd file."""
    setup_logging(level=log_level)
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_settings(config_file)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)


@cli.command()
@click.argument("username", required=False)
@click.option("--passwd-file", type=click.Path(path_type=Path), default=None,
              help="Authoritative passwd file (overrides config)")
@click.pass_context
def sync(ctx: click.Context, username: Optional[str], passwd_file: Optional[Path]) -> None:
    """Copy USERNAME's passwd entry into the local mirror."""
    settings = ctx.obj["settings"]
    if passwd_file is not None:
        settings = settings.model_copy(update={"passwd_path": passwd_file})

    try:
        if not username:
            username = current_username()
        outcome = MirrorSynchronizer(settings).synchronize(username)
    except SyncError as e:
        if not e.silent:
            logger.error(e.message)
        else:
            logger.debug(e.message)
        sys.exit(1)

    if outcome is SyncOutcome.COMMITTED:
        click.echo(f"Updating {settings.mirror_path} with new passwd entry.")
    else:
        logger.debug(f"{username} has no entry in {settings.mirror_path}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the files involved and whether a sync is in flight."""
    settings = ctx.obj["settings"]

    files = {
        "passwd": settings.passwd_path,
        "mirror": settings.mirror_path,
        "staging": settings.staging_path,
    }
    result = {
        name: {"path": str(path), "exists": path.exists()}
        for name, path in files.items()
    }
    result["staging_mode"] = f"{settings.effective_staging_mode:04o}"

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"Passwd file:  {settings.passwd_path}")
    click.echo(f"Mirror file:  {settings.mirror_path}"
               + ("" if result["mirror"]["exists"] else " (missing, sync disabled)"))
    click.echo(f"Staging file: {settings.staging_path}")
    click.echo(f"Staging mode: {result['staging_mode']}")
    if result["staging"]["exists"]:
        click.secho("⚠ Staging file present: a sync is running or one was killed uncleanly",
                    fg="yellow")


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the resolved settings as YAML."""
    click.echo(yaml.safe_dump(settings_to_dict(ctx.obj["settings"]), sort_keys=False), nl=False)


if __name__ == "__main__":
    cli()
