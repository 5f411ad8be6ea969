"""
Backup module for dbbackup.

This module handles the core backup functionality including:
- Tier classification (daily / monthly)
- Directory checks
- pg_dump execution and archive verification
- Retention policy enforcement
"""

from .tiers import BackupTier, classify_tier
from .paths import PathError, ensure_directory
from .integrity import verify_artifact
from .executor import (
    BackupEngine,
    BackupError,
    BackupResult,
    DumpFailedError,
    IntegrityCheckFailedError,
    NoCredentialsError,
    ToolNotFoundError,
)
from .retention import RetentionSweeper, CleanupError

__all__ = [
    'BackupTier',
    'classify_tier',
    'PathError',
    'ensure_directory',
    'verify_artifact',
    'BackupEngine',
    'BackupError',
    'BackupResult',
    'DumpFailedError',
    'IntegrityCheckFailedError',
    'NoCredentialsError',
    'ToolNotFoundError',
    'RetentionSweeper',
    'CleanupError'
]
