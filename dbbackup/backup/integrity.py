"""
Structural verification of dump archives.

The archive is considered valid when pg_restore can list its table of
contents. This does not restore anything, so logical corruption that keeps the
archive structure intact goes unnoticed.
"""

import os
import logging
import subprocess


logger = logging.getLogger(__name__)


def verify_artifact(artifact_path: str, restore_executable: str = 'pg_restore') -> bool:
    """
    Run `pg_restore --list` against an archive.

    Args:
        artifact_path: Path to the .backup archive
        restore_executable: pg_restore executable to use

    Returns:
        True if pg_restore exited with status 0, False otherwise
    """
    if not os.path.isfile(artifact_path):
        logger.error(f"Integrity check failed, archive not found: {artifact_path}")
        return False

    cmd = [restore_executable, '--list', artifact_path]

    try:
        completed = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        logger.error(f"Integrity check could not start {restore_executable}: {e}")
        return False

    if completed.returncode != 0:
        logger.error(
            f"Integrity check failed for {os.path.basename(artifact_path)} "
            f"(exit code {completed.returncode}): {(completed.stderr or '').strip()}"
        )
        return False

    logger.info(f"Integrity check passed: {os.path.basename(artifact_path)}")
    return True
