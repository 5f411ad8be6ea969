"""
Unit tests for retention policy enforcement (dbbackup/backup/retention.py).

Tests RetentionSweeper for cleaning up old backups.
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from dbbackup.backup.retention import CleanupError, RetentionSweeper, artifact_pattern


NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_file(directory, name, age):
    """Create a file whose modification time is `age` before NOW."""
    path = directory / name
    path.write_bytes(b'PGDMP')
    ts = (NOW - age).timestamp()
    os.utime(path, (ts, ts))
    return path


@pytest.fixture
def sweeper():
    return RetentionSweeper('inventory', clock=lambda: NOW)


class TestArtifactPattern:
    """Test artifact_pattern()."""

    def test_matches_generated_names(self):
        pattern = artifact_pattern('inventory')

        assert pattern.match('inventory_2024_01_15_120000_0012345.backup')

    @pytest.mark.parametrize('name', [
        'inventory_2024_01_15_120000_0012345.backup.tmp',
        'inventory_2024_01_15_120000_123.backup',
        'other_2024_01_15_120000_0012345.backup',
        'inventory_2024-01-15_120000_0012345.backup',
        'notes.txt',
        'inventory.backup',
    ])
    def test_rejects_other_names(self, name):
        assert artifact_pattern('inventory').match(name) is None

    def test_prefix_is_escaped(self):
        pattern = artifact_pattern('db.prod')

        assert pattern.match('db.prod_2024_01_15_120000_0012345.backup')
        assert pattern.match('dbXprod_2024_01_15_120000_0012345.backup') is None


class TestRetentionSweeper:
    """Test RetentionSweeper.sweep()."""

    def test_empty_directory(self, sweeper, tmp_path):
        assert sweeper.sweep(str(tmp_path), 7) == 0

    def test_deletes_only_expired_archives(self, sweeper, tmp_path):
        old = make_file(tmp_path, 'inventory_2024_01_01_000000_0000001.backup', timedelta(days=14))
        recent = make_file(tmp_path, 'inventory_2024_01_12_000000_0000002.backup', timedelta(days=3))

        removed = sweeper.sweep(str(tmp_path), 7)

        assert removed == 1
        assert not old.exists()
        assert recent.exists()

    def test_age_equal_to_retention_is_kept(self, sweeper, tmp_path):
        boundary = make_file(tmp_path, 'inventory_2024_01_08_120000_0000003.backup', timedelta(days=7))
        just_over = make_file(tmp_path, 'inventory_2024_01_08_115959_0000004.backup',
                              timedelta(days=7, seconds=1))

        removed = sweeper.sweep(str(tmp_path), 7)

        assert removed == 1
        assert boundary.exists()
        assert not just_over.exists()

    def test_non_matching_files_never_touched(self, sweeper, tmp_path):
        ancient = timedelta(days=3650)
        others = [
            make_file(tmp_path, 'readme.txt', ancient),
            make_file(tmp_path, 'inventory_manual_copy.backup', ancient),
            make_file(tmp_path, 'other_2010_01_01_000000_0000001.backup', ancient),
            make_file(tmp_path, 'inventory_2010_01_01_000000_0000001.backup.partial', ancient),
        ]

        assert sweeper.sweep(str(tmp_path), 1) == 0
        assert all(path.exists() for path in others)

    def test_directories_are_skipped(self, sweeper, tmp_path):
        subdir = tmp_path / 'inventory_2010_01_01_000000_0000001.backup'
        subdir.mkdir()

        assert sweeper.sweep(str(tmp_path), 1) == 0
        assert subdir.is_dir()

    def test_listing_failure_raises_cleanup_error(self, sweeper, tmp_path):
        with pytest.raises(CleanupError) as exc_info:
            sweeper.sweep(str(tmp_path / 'does-not-exist'), 7)

        assert exc_info.value.removed_count == 0
        assert 'listing failed' in exc_info.value.errors[0]

    def test_single_deletion_failure_does_not_stop_sweep(self, sweeper, tmp_path):
        locked = make_file(tmp_path, 'inventory_2024_01_01_000000_0000001.backup', timedelta(days=14))
        other = make_file(tmp_path, 'inventory_2024_01_02_000000_0000002.backup', timedelta(days=13))
        real_remove = os.remove

        def flaky_remove(path):
            if os.path.basename(path) == locked.name:
                raise PermissionError('file in use')
            real_remove(path)

        with patch('dbbackup.backup.retention.os.remove', side_effect=flaky_remove):
            with pytest.raises(CleanupError) as exc_info:
                sweeper.sweep(str(tmp_path), 7)

        assert exc_info.value.removed_count == 1
        assert len(exc_info.value.errors) == 1
        assert locked.name in exc_info.value.errors[0]
        assert locked.exists()
        assert not other.exists()

    def test_default_clock_uses_current_time(self, tmp_path):
        fresh = tmp_path / 'inventory_2024_01_15_120000_0000001.backup'
        fresh.write_bytes(b'PGDMP')

        assert RetentionSweeper('inventory').sweep(str(tmp_path), 1) == 0
        assert fresh.exists()
