"""
Retention policy enforcement for backups.

Deletes archives in a tier directory once they are older than the tier's
retention period. Only files following the artifact naming scheme are ever
touched.
"""

import os
import re
import logging
from datetime import datetime, timezone
from typing import Callable, List


logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class CleanupError(Exception):
    """Raised after a sweep when listing or any deletion failed."""

    def __init__(self, directory: str, errors: List[str], removed_count: int = 0):
        self.directory = directory
        self.errors = errors
        self.removed_count = removed_count
        super().__init__(
            f"Retention cleanup of {directory} had {len(errors)} error(s): " + '; '.join(errors)
        )


def artifact_pattern(prefix: str) -> re.Pattern:
    """Regex matching `<prefix>_<YYYY_MM_DD_HHMMSS>_<7 digits>.backup`."""
    return re.compile(rf'^{re.escape(prefix)}_\d{{4}}_\d{{2}}_\d{{2}}_\d{{6}}_\d{{7}}\.backup$')


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RetentionSweeper:
    """
    Removes expired backup archives from a directory.
    """

    def __init__(self, prefix: str, clock: Callable[[], datetime] = _utc_now):
        """
        Args:
            prefix: Artifact name prefix
            clock: Time source; ages are measured against it
        """
        self.prefix = prefix
        self.pattern = artifact_pattern(prefix)
        self.clock = clock

    def sweep(self, directory: str, retention_days: int) -> int:
        """
        Delete archives older than `retention_days`.

        An archive exactly `retention_days` old is kept. A failed deletion does
        not stop the sweep; failures are collected and raised once all files
        were processed.

        Args:
            directory: Tier directory to clean
            retention_days: Maximum age in days

        Returns:
            Number of archives deleted

        Raises:
            CleanupError: If the directory could not be listed or a deletion failed
        """
        logger.info(f"Enforcing retention of {retention_days} days in {directory}")
        now_ts = self.clock().timestamp()

        try:
            entries = [entry for entry in os.scandir(directory) if self.pattern.match(entry.name)]
        except OSError as e:
            logger.error(f"Failed to list {directory}: {e}")
            raise CleanupError(directory, [f"listing failed: {e}"]) from e

        removed = 0
        errors = []

        for entry in entries:
            try:
                if not entry.is_file(follow_symlinks=False):
                    continue
                age_days = (now_ts - entry.stat(follow_symlinks=False).st_mtime) / SECONDS_PER_DAY
                if age_days <= retention_days:
                    continue
                os.remove(entry.path)
                removed += 1
                logger.info(f"Deleted expired backup: {entry.name} ({age_days:.1f} days old)")
            except OSError as e:
                message = f"{entry.name}: {e}"
                logger.error(f"Failed to delete expired backup {message}")
                errors.append(message)

        logger.info(f"Retention cleanup of {directory} complete. Deleted: {removed}, errors: {len(errors)}")

        if errors:
            raise CleanupError(directory, errors, removed)

        return removed
