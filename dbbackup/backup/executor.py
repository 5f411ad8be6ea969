"""
Backup engine - runs one pg_dump and checks the result.

Workflow:
1. Generate the artifact filename in the tier directory
2. Resolve the database credential and locate pg_dump and pg_restore
   (either missing = fail, nothing spawned)
3. Run pg_dump (custom format, max compression) with the password passed
   through the subprocess environment only; a failed dump leaves no file
4. Verify the archive with pg_restore --list
5. Report size and elapsed time
"""

import os
import shutil
import logging
import secrets
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from dbbackup.credentials import CredentialStore, credential_scope
from .integrity import verify_artifact
from .tiers import BackupTier


logger = logging.getLogger(__name__)

ARTIFACT_EXTENSION = '.backup'
ARTIFACT_TIMESTAMP_FORMAT = '%Y_%m_%d_%H%M%S'
PASSWORD_ENV_VAR = 'PGPASSWORD'


class BackupError(Exception):
    """Base class for failures of a backup run."""
    pass


class NoCredentialsError(BackupError):
    """No credential record exists for the configured target."""
    pass


class ToolNotFoundError(BackupError):
    """pg_dump or pg_restore could not be located."""
    pass


class DumpFailedError(BackupError):
    """pg_dump exited with a non-zero status."""

    def __init__(self, exit_code: int, stderr: str = ''):
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"pg_dump failed with exit code {exit_code}"
        if stderr:
            message += f": {stderr}"
        super().__init__(message)


class IntegrityCheckFailedError(BackupError):
    """pg_dump succeeded but the archive could not be listed."""

    def __init__(self, artifact_path: str):
        self.artifact_path = artifact_path
        super().__init__(f"Integrity check failed for {artifact_path} (archive left in place)")


@dataclass
class BackupResult:
    artifact_path: str
    tier: BackupTier
    size_bytes: int
    duration_seconds: float


def generate_artifact_filename(prefix: str, moment: datetime) -> str:
    """
    Build `<prefix>_<YYYY_MM_DD_HHMMSS>_<7-digit random>.backup`.

    Args:
        prefix: Artifact name prefix
        moment: Timestamp to encode

    Returns:
        Filename (no directory)
    """
    timestamp = moment.strftime(ARTIFACT_TIMESTAMP_FORMAT)
    disambiguator = f"{secrets.randbelow(10_000_000):07d}"
    return f"{prefix}_{timestamp}_{disambiguator}{ARTIFACT_EXTENSION}"


def resolve_executable(configured: Optional[str], name: str) -> str:
    """
    Locate an external tool.

    The configured path wins when it points at an existing file; otherwise the
    tool is looked up on PATH.

    Raises:
        ToolNotFoundError: If neither location has the tool
    """
    if configured and os.path.isfile(configured):
        return configured

    if configured:
        logger.warning(f"Configured {name} not found at {configured}, searching PATH")

    found = shutil.which(name)
    if not found:
        raise ToolNotFoundError(f"{name} not found (configured path: {configured or 'none'}, PATH lookup failed)")
    return found


class BackupEngine:
    """
    Runs a single pg_dump for a tier and verifies the produced archive.
    """

    def __init__(self, settings, credential_store: CredentialStore, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize backup engine.

        Args:
            settings: BackupSettings for this run
            credential_store: Store used to resolve the database login
            clock: Time source used for the artifact timestamp
        """
        self.settings = settings
        self.credential_store = credential_store
        self.clock = clock or datetime.now

    def run(self, target_dir: str, tier: BackupTier) -> BackupResult:
        """
        Dump the database into `target_dir`.

        Args:
            target_dir: Tier directory (already checked by the path guard)
            tier: Tier of this run

        Returns:
            BackupResult for the verified archive

        Raises:
            NoCredentialsError: No stored credential, nothing was spawned
            ToolNotFoundError: pg_dump or pg_restore missing
            DumpFailedError: pg_dump exited non-zero
            IntegrityCheckFailedError: Archive failed pg_restore --list
        """
        started = time.monotonic()
        filename = generate_artifact_filename(self.settings.backup_prefix, self.clock())
        artifact_path = os.path.join(target_dir, filename)

        logger.info(
            f"Starting {tier.label.lower()} backup of {self.settings.db_name}@{self.settings.db_host} "
            f"to {artifact_path}"
        )

        with credential_scope(self.credential_store, self.settings.credential_target) as credential:
            if credential is None:
                raise NoCredentialsError(
                    f"No stored credential for target '{self.settings.credential_target}', backup not attempted"
                )
            pg_dump = resolve_executable(self.settings.executable('pg_dump'), 'pg_dump')
            pg_restore = resolve_executable(self.settings.executable('pg_restore'), 'pg_restore')
            self._dump(pg_dump, artifact_path, credential)

        if not verify_artifact(artifact_path, pg_restore):
            raise IntegrityCheckFailedError(artifact_path)

        duration = time.monotonic() - started
        size = os.path.getsize(artifact_path)
        logger.info(
            f"Backup completed: {filename} ({size / 1024 / 1024:.2f} MB) in {duration:.1f}s"
        )

        return BackupResult(
            artifact_path=artifact_path,
            tier=tier,
            size_bytes=size,
            duration_seconds=duration,
        )

    def _build_dump_command(self, pg_dump: str, artifact_path: str, username: str) -> list:
        return [
            pg_dump,
            '--host', self.settings.db_host,
            '--port', str(self.settings.db_port),
            '--username', username,
            '--dbname', self.settings.db_name,
            '--format=custom',
            '--compress=9',
            '--no-password',
            '--file', artifact_path,
        ]

    def _dump(self, pg_dump: str, artifact_path: str, credential):
        """
        Invoke pg_dump with a private copy of the environment.

        Raises:
            DumpFailedError: If pg_dump exits non-zero or cannot be started. A
                partially written archive is removed first.
        """
        # Stored login name wins over the configured default
        username = credential.username or self.settings.db_user
        cmd = self._build_dump_command(pg_dump, artifact_path, username)

        env = os.environ.copy()
        env[PASSWORD_ENV_VAR] = credential.password
        try:
            completed = subprocess.run(cmd, env=env, capture_output=True, text=True)
        except OSError as e:
            self._discard_partial(artifact_path)
            raise DumpFailedError(-1, f"could not start pg_dump: {e}") from e
        finally:
            env.pop(PASSWORD_ENV_VAR, None)
            del env

        if completed.returncode != 0:
            stderr = (completed.stderr or '').strip()
            logger.error(f"pg_dump exited with code {completed.returncode}")
            self._discard_partial(artifact_path)
            raise DumpFailedError(completed.returncode, stderr[-2000:])

        logger.info("pg_dump finished successfully")

    def _discard_partial(self, artifact_path: str):
        if not os.path.exists(artifact_path):
            return
        try:
            os.remove(artifact_path)
            logger.info(f"Removed partial archive {artifact_path}")
        except OSError as e:
            logger.warning(f"Could not remove partial archive {artifact_path}: {e}")
