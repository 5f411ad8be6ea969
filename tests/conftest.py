"""
Shared pytest fixtures for dbbackup tests.

This module provides fixtures for:
- Flask app, CLI runner and in-memory credential database
- Immutable BackupSettings pointing at temporary directories
- Credential store with a stored login
- Fake pg_dump / pg_restore executables and a subprocess.run double
"""

import os
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from dbbackup import create_app, db as _db
from dbbackup.config import BackupSettings
from dbbackup.credentials import CredentialCipher, CredentialStore


TEST_SECRET_KEY = 'test-secret-key'
TEST_TARGET = 'dbbackup-test'
TEST_USERNAME = 'backup_user'
TEST_PASSWORD = 'S3cr3t-Pa55w0rd!'


@pytest.fixture(scope='function')
def app(tmp_path):
    """
    Create Flask app with test configuration.

    Uses in-memory SQLite database for fast, isolated tests.
    """
    app = create_app('development', overrides={
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': TEST_SECRET_KEY,
        'BACKUP_ROOT': str(tmp_path / 'backups'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'CREDENTIAL_TARGET': TEST_TARGET,
        'PG_DUMP_PATH': '',
        'PG_RESTORE_PATH': '',
        'SMTP_SERVER': '',
        'MAIL_RECIPIENTS': '',
    })

    yield app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database with all tables.

    Each test gets a fresh database.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def runner(app):
    """Flask CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def cipher():
    return CredentialCipher(TEST_SECRET_KEY)


@pytest.fixture(scope='function')
def credential_store(db, cipher):
    return CredentialStore(cipher)


@pytest.fixture(scope='function')
def stored_credential(credential_store):
    """
    Store the backup login used by the engine.

    Target: dbbackup-test, user: backup_user
    """
    return credential_store.save(TEST_TARGET, TEST_USERNAME, TEST_PASSWORD)


@pytest.fixture
def fake_tools(tmp_path):
    """
    Create placeholder pg_dump / pg_restore files so configured paths resolve.
    """
    bin_dir = tmp_path / 'bin'
    bin_dir.mkdir()
    tools = {}
    for name in ('pg_dump', 'pg_restore'):
        tool = bin_dir / name
        tool.write_text('#!/bin/sh\nexit 0\n')
        tool.chmod(0o755)
        tools[name] = str(tool)
    return tools


@pytest.fixture
def settings(tmp_path, fake_tools):
    """BackupSettings with temporary backup root and log directory."""
    return BackupSettings(
        db_host='db.example.internal',
        db_port=5432,
        db_name='inventory',
        db_user='postgres',
        credential_target=TEST_TARGET,
        backup_root=str(tmp_path / 'backups'),
        backup_prefix='inventory',
        daily_retention_days=7,
        monthly_retention_days=90,
        log_dir=str(tmp_path / 'logs'),
        pg_dump_path=fake_tools['pg_dump'],
        pg_restore_path=fake_tools['pg_restore'],
        smtp_server='smtp.example.internal',
        smtp_port=25,
        mail_sender='backups@example.internal',
        mail_recipients=('dba@example.internal', 'ops@example.internal'),
    )


def make_fake_run(dump_returncode=0, verify_returncode=0, write_artifact=True,
                  dump_stderr='', calls=None):
    """
    Build a subprocess.run replacement for pg_dump / pg_restore.

    pg_dump writes a small file at its --file argument (unless told not to);
    pg_restore --list succeeds or fails as requested. Every call is recorded
    in `calls` as (cmd, env).
    """
    if calls is None:
        calls = []

    def fake_run(cmd, env=None, **kwargs):
        calls.append((list(cmd), dict(env) if env is not None else None))
        if '--list' in cmd:
            return subprocess.CompletedProcess(cmd, verify_returncode, stdout=';\n; Archive\n', stderr='')

        if write_artifact:
            destination = cmd[cmd.index('--file') + 1]
            with open(destination, 'wb') as f:
                f.write(b'PGDMP' + os.urandom(64))
        return subprocess.CompletedProcess(cmd, dump_returncode, stdout='', stderr=dump_stderr)

    fake_run.calls = calls
    return fake_run


@pytest.fixture
def fake_run_factory():
    """Factory for subprocess.run doubles, see make_fake_run()."""
    return make_fake_run


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.notify.return_value = True
    return notifier


@pytest.fixture
def mock_subprocess_run():
    """
    Patch subprocess.run as seen by the executor and integrity modules.
    """
    with patch('dbbackup.backup.executor.subprocess.run') as mock_run:
        yield mock_run
