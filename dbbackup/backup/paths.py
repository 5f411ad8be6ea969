"""
Directory checks run before any backup is attempted.
"""

import os
import logging
from pathlib import Path


logger = logging.getLogger(__name__)


class PathError(Exception):
    """Raised when a backup directory cannot be created or written to."""
    pass


def ensure_directory(path) -> Path:
    """
    Make sure `path` exists as a writable directory.

    Missing directories are created together with their parents. Calling this
    on an already valid directory does nothing.

    Args:
        path: Directory path (local or network share)

    Returns:
        The directory as a Path

    Raises:
        PathError: If the directory cannot be created or is not writable
    """
    directory = Path(path)

    if not directory.exists():
        try:
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created directory: {directory}")
        except OSError as e:
            raise PathError(f"Failed to create directory {directory}: {e}") from e

    if not directory.is_dir():
        raise PathError(f"Path exists but is not a directory: {directory}")

    if not os.access(directory, os.W_OK | os.X_OK):
        raise PathError(f"Directory is not writable: {directory}")

    return directory
