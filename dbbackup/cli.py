"""
Command line interface.

    dbbackup run                              one scheduled backup pass
    dbbackup credentials set TARGET USERNAME  store an encrypted login
    dbbackup credentials remove TARGET
    dbbackup verify PATH                      pg_restore --list check
"""

import sys

import click
from flask import current_app
from flask.cli import AppGroup, FlaskGroup, pass_script_info, with_appcontext

from dbbackup.backup.executor import ToolNotFoundError, resolve_executable
from dbbackup.backup.integrity import verify_artifact
from dbbackup.config import BackupSettings
from dbbackup.credentials import CredentialCipher, CredentialStore
from dbbackup.orchestrator import notify_startup_failure, run_scheduled_backup


credentials_cli = AppGroup('credentials', help='Manage the stored database login.')


def _store() -> CredentialStore:
    return CredentialStore(CredentialCipher.from_app(current_app))


def _startup_config():
    """Configuration for alerting when the app itself failed to load."""
    from dbbackup import load_config
    try:
        return load_config()
    except Exception as e:
        click.echo(f"Configuration could not be loaded: {e}", err=True)
        return None


@click.command('run')
@pass_script_info
def run_command(script_info):
    """Run one scheduled backup (exit code 0 on success)."""
    try:
        app = script_info.load_app()
    except Exception as e:
        click.echo(f"Startup failed: {type(e).__name__}: {e}", err=True)
        sys.exit(notify_startup_failure(_startup_config(), e))

    with app.app_context():
        sys.exit(run_scheduled_backup(app))


@click.command('verify')
@click.argument('path', type=click.Path(dir_okay=False))
@with_appcontext
def verify_command(path):
    """Check that an archive can be listed by pg_restore."""
    settings = BackupSettings.from_config(current_app.config)
    try:
        pg_restore = resolve_executable(settings.executable('pg_restore'), 'pg_restore')
    except ToolNotFoundError as e:
        raise click.ClickException(str(e))

    if verify_artifact(path, pg_restore):
        click.echo(f"OK: {path}")
    else:
        click.echo(f"FAILED: {path}", err=True)
        sys.exit(1)


@credentials_cli.command('set')
@click.argument('target')
@click.argument('username')
@click.password_option(prompt='Database password')
def set_credential(target, username, password):
    """Store the login used for backups under TARGET."""
    _store().save(target, username, password)
    click.echo(f"Credential stored for {target}")


@credentials_cli.command('remove')
@click.argument('target')
def remove_credential(target):
    """Delete the login stored under TARGET."""
    if not _store().delete(target):
        raise click.ClickException(f"No credential stored for {target}")
    click.echo(f"Credential removed for {target}")


def register_commands(app):
    """Attach the CLI commands to a Flask app."""
    app.cli.add_command(run_command)
    app.cli.add_command(verify_command)
    app.cli.add_command(credentials_cli)


def _create_cli_app():
    from dbbackup import create_app
    return create_app()


cli = FlaskGroup(
    create_app=_create_cli_app,
    add_default_commands=False,
    add_version_option=False,
    help='Scheduled PostgreSQL backups with daily and monthly retention.',
)
# `run` lives on the group itself so it is reachable when the app fails to load
cli.add_command(run_command)


def main():
    cli.main()
