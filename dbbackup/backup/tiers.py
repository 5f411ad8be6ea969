"""
Backup tier classification.

A run is Monthly only during the midnight hour of the 1st and the 15th of a
month; every other invocation is a Daily run.
"""

from datetime import datetime
from enum import Enum


MONTHLY_DAYS = (1, 15)
MONTHLY_HOUR = 0


class BackupTier(Enum):
    """Retention tier of a backup run (value doubles as directory name)."""

    DAILY = 'daily'
    MONTHLY = 'monthly'

    @property
    def label(self) -> str:
        return self.value.capitalize()


def classify_tier(moment: datetime) -> BackupTier:
    """
    Pick the tier for a run started at `moment`.

    Args:
        moment: Invocation time (taken from the injected clock)

    Returns:
        BackupTier.MONTHLY on day 1 or 15 at hour 0, BackupTier.DAILY otherwise
    """
    if moment.day in MONTHLY_DAYS and moment.hour == MONTHLY_HOUR:
        return BackupTier.MONTHLY
    return BackupTier.DAILY
