"""
Scheduled backup run - top-level control flow.

Workflow:
1. Classify the run as daily or monthly from the invocation time
2. Check both tier directories
3. Dump and verify into the selected tier directory
4. Enforce retention for the selected tier (only after a successful backup)
5. Alert operators on failure and return the process exit code
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from dbbackup.alerts import EmailNotifier, generate_failure_content
from dbbackup.backup import (
    BackupEngine,
    BackupError,
    BackupTier,
    CleanupError,
    PathError,
    RetentionSweeper,
    classify_tier,
    ensure_directory,
)
from dbbackup.config import BackupSettings
from dbbackup.credentials import CredentialCipher, CredentialError, CredentialStore


logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class OrchestrationError(Exception):
    """Base class for failures outside the backup engine."""
    pass


class PathsUnavailableError(OrchestrationError):
    """A tier directory is missing and could not be created, or is read-only."""
    pass


def _failure_class(error: Exception) -> str:
    """Alert name for an exception class: `DumpFailedError` -> `DumpFailed`."""
    name = type(error).__name__
    return name[:-len('Error')] if name.endswith('Error') and name != 'Error' else name


class BackupOrchestrator:
    """
    Sequences one scheduled backup and converts failures into alerts and
    exit codes.
    """

    def __init__(self, settings, engine: BackupEngine, sweeper: RetentionSweeper,
                 notifier: EmailNotifier, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            settings: BackupSettings for this run
            engine: Backup engine performing the dump
            sweeper: Retention sweeper for the tier directory
            notifier: Failure alert sender
            clock: Time source used for tier classification
        """
        self.settings = settings
        self.engine = engine
        self.sweeper = sweeper
        self.notifier = notifier
        self.clock = clock or datetime.now

    def run(self) -> int:
        """
        Execute one scheduled backup.

        Returns:
            0 on success (cleanup problems included), 1 on any fatal failure
        """
        started_at = self.clock()
        tier = classify_tier(started_at)
        logger.info(f"Backup run started at {started_at:%Y-%m-%d %H:%M:%S} (tier: {tier.label})")

        try:
            self._validate_paths()
            result = self.engine.run(self.settings.directory_for(tier), tier)
        except (OrchestrationError, BackupError, CredentialError) as e:
            logger.error(f"{tier.label} backup failed: {e}")
            self._alert(tier, _failure_class(e), str(e), started_at)
            return EXIT_FAILURE
        except Exception as e:
            logger.exception(f"{tier.label} backup failed with an unexpected error")
            self._alert(tier, 'Unexpected', f"{type(e).__name__}: {e}", started_at)
            return EXIT_FAILURE

        try:
            self._cleanup(tier, started_at)
        except Exception as e:
            logger.exception(f"{tier.label} retention cleanup failed with an unexpected error")
            self._alert(tier, 'Unexpected', f"{type(e).__name__}: {e}", started_at)
            return EXIT_FAILURE

        logger.info(f"{tier.label} backup run finished: {result.artifact_path}")
        return EXIT_SUCCESS

    def _validate_paths(self):
        """
        Both tier directories must be usable, even though only one is written.

        Raises:
            PathsUnavailableError: If any tier directory fails the path guard
        """
        for tier, directory in self.settings.tier_directories.items():
            try:
                ensure_directory(directory)
            except PathError as e:
                raise PathsUnavailableError(f"{tier.label} backup directory unavailable: {e}") from e

    def _cleanup(self, tier: BackupTier, started_at: datetime):
        directory = self.settings.directory_for(tier)
        try:
            removed = self.sweeper.sweep(directory, self.settings.retention_for(tier))
            logger.info(f"Removed {removed} expired {tier.label.lower()} backup(s)")
        except CleanupError as e:
            logger.error(f"{tier.label} retention cleanup failed: {e}")
            self._alert(tier, _failure_class(e), str(e), started_at, headline='Backup Cleanup Failed')

    def _alert(self, tier: BackupTier, failure_class: str, details: str, moment: datetime,
               headline: str = 'Database Backup Failed'):
        subject, body = generate_failure_content(
            self.settings, tier.label, failure_class, details, moment=moment, headline=headline
        )
        self.notifier.notify(subject, body)


def build_orchestrator(app, clock: Optional[Callable[[], datetime]] = None) -> BackupOrchestrator:
    """
    Wire an orchestrator from a Flask app's configuration.

    Args:
        app: Flask application (its config is frozen into BackupSettings)
        clock: Time source for the run

    Returns:
        BackupOrchestrator ready to run
    """
    settings = BackupSettings.from_config(app.config)
    store = CredentialStore(CredentialCipher.from_app(app))

    return BackupOrchestrator(
        settings=settings,
        engine=BackupEngine(settings, store, clock=clock),
        sweeper=RetentionSweeper(settings.backup_prefix),
        notifier=EmailNotifier(settings),
        clock=clock,
    )


def notify_startup_failure(cfg, error: Exception, clock: Optional[Callable[[], datetime]] = None) -> int:
    """
    Alert about a run that died before the orchestrator could take over.

    Args:
        cfg: Configuration mapping to read SMTP settings from, or None when
             even the configuration could not be loaded
        error: Exception raised during startup or wiring
        clock: Time source for the alert timestamp

    Returns:
        EXIT_FAILURE, always
    """
    moment = (clock or datetime.now)()
    tier = classify_tier(moment)
    logger.error(f"{tier.label} backup could not start: {type(error).__name__}: {error}")

    if cfg is None:
        return EXIT_FAILURE

    try:
        settings = BackupSettings.from_config(cfg)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Startup failure alert not sent, configuration unusable: {e}")
        return EXIT_FAILURE

    subject, body = generate_failure_content(
        settings, tier.label, 'Startup', f"{type(error).__name__}: {error}", moment=moment
    )
    EmailNotifier(settings).notify(subject, body)
    return EXIT_FAILURE


def run_scheduled_backup(app) -> int:
    """
    Run one backup pass for `app` and return the exit code.

    Must be called inside an application context.
    """
    try:
        orchestrator = build_orchestrator(app)
    except Exception as e:
        logger.exception("Backup run could not be wired")
        return notify_startup_failure(app.config, e)

    return orchestrator.run()
