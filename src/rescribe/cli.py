"""CLI entry point for rescribe."""

from __future__ import annotations

import logging
import os
import subprocess

import click

from rescribe.config import Config, ensure_config_file
from rescribe.errors import RetranscribeError, SessionUpdateError

SESSIONS_FILENAME = "sessions.json"


def _context(config: Config):
    from rescribe.retranscribe import RetranscribeContext
    from rescribe.sessions import JsonSessionStore

    data_dir = config.data.resolved_dir
    return RetranscribeContext(
        data_dir=data_dir,
        store=JsonSessionStore(data_dir / SESSIONS_FILENAME),
        config=config,
    )


@click.group()
@click.option("--data-dir", default=None, type=click.Path(file_okay=False), help="Data directory holding sessions and models.")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline stages.")
@click.pass_context
def cli(ctx: click.Context, data_dir: str | None, verbose: bool) -> None:
    """Re-derive transcripts and speaker diarization for recorded sessions."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ctx.ensure_object(dict)
    config = Config.load()

    # Apply CLI overrides
    if data_dir:
        config.data.dir = data_dir

    ctx.obj["config"] = config


@cli.command("retranscribe")
@click.argument("session_id")
@click.option("--local/--cloud", "use_local", default=False, help="Use on-device models instead of the cloud service.")
@click.pass_context
def retranscribe_cmd(ctx: click.Context, session_id: str, use_local: bool) -> None:
    """Transcribe and diarize a session's audio again."""
    from rescribe.retranscribe import retranscribe

    config = ctx.obj["config"]
    backend = "local models" if use_local else config.cloud.host
    click.echo(f"Retranscribing {session_id} with {backend}...")
    try:
        committed = retranscribe(_context(config), session_id, use_local)
    except SessionUpdateError as e:
        click.echo(f"Error: {e.message}", err=True)
        click.echo(f"Artifacts were written. Retry with: rescribe commit {session_id}", err=True)
        raise SystemExit(1) from None
    except RetranscribeError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1) from None

    if not committed:
        click.echo(f"Artifacts written, but a newer request already updated session {session_id}.")
        return
    click.echo(f"Session {session_id} updated.")


@cli.command("commit")
@click.argument("session_id")
@click.pass_context
def commit_cmd(ctx: click.Context, session_id: str) -> None:
    """Point a session at artifacts that are already written."""
    from rescribe.retranscribe import commit_session

    try:
        commit_session(_context(ctx.obj["config"]), session_id)
    except RetranscribeError as e:
        click.echo(f"Error: {e.message}", err=True)
        raise SystemExit(1) from None

    click.echo(f"Session {session_id} updated.")


@cli.command("config")
def config_cmd() -> None:
    """Open the configuration file in your editor."""
    path = ensure_config_file()
    editor = os.environ.get("EDITOR", "nano")
    click.echo(f"Opening {path} with {editor}...")
    subprocess.run([editor, str(path)])
