import os
import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from dbbackup.backup.tiers import BackupTier


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration"""

    # Credential store
    SECRET_KEY = os.environ.get('SECRET_KEY')
    SECRET_KEY_FILE = os.environ.get('SECRET_KEY_FILE') or '/data/.secret_key'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/dbbackup.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Target database
    DB_HOST = os.environ.get('DB_HOST') or 'localhost'
    DB_PORT = _env_int('DB_PORT', 5432)
    DB_NAME = os.environ.get('DB_NAME') or 'postgres'
    DB_USER = os.environ.get('DB_USER') or 'postgres'
    CREDENTIAL_TARGET = os.environ.get('CREDENTIAL_TARGET') or 'dbbackup'

    # Backup storage
    BACKUP_ROOT = os.environ.get('BACKUP_ROOT') or '/data/backups'
    BACKUP_PREFIX = os.environ.get('BACKUP_PREFIX') or 'backup'
    DAILY_RETENTION_DAYS = _env_int('DAILY_RETENTION_DAYS', 14)
    MONTHLY_RETENTION_DAYS = _env_int('MONTHLY_RETENTION_DAYS', 365)

    # External tools (empty = resolve from PATH)
    PG_DUMP_PATH = os.environ.get('PG_DUMP_PATH') or ''
    PG_RESTORE_PATH = os.environ.get('PG_RESTORE_PATH') or ''

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'
    LOG_PREFIX = os.environ.get('LOG_PREFIX') or 'dbbackup'
    LOG_MAX_BYTES = _env_int('LOG_MAX_BYTES', 104857600)  # 100MB

    # Failure alerts
    SMTP_SERVER = os.environ.get('SMTP_SERVER') or ''
    SMTP_PORT = _env_int('SMTP_PORT', 25)
    SMTP_USE_TLS = _env_bool('SMTP_USE_TLS')
    MAIL_SENDER = os.environ.get('MAIL_SENDER') or 'dbbackup@localhost'
    MAIL_RECIPIENTS = os.environ.get('MAIL_RECIPIENTS') or ''


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "dbbackup.db")}'
    SECRET_KEY_FILE = os.path.join(DATA_DIR, '.secret_key')
    BACKUP_ROOT = os.path.join(DATA_DIR, 'backups')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'default': ProductionConfig
}


def load_secret_key(key_file: str) -> str:
    """Return the SECRET_KEY persisted in `key_file`, creating it (mode 0600) on first start."""
    if os.path.exists(key_file):
        with open(key_file, 'r') as f:
            return f.read().strip()

    os.makedirs(os.path.dirname(key_file) or '.', exist_ok=True)
    secret_key = secrets.token_hex(32)
    fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, 'w') as f:
        f.write(secret_key)
    return secret_key


def _split_addresses(raw) -> Tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, (list, tuple)):
        return tuple(raw)
    return tuple(addr.strip() for addr in raw.split(',') if addr.strip())


@dataclass(frozen=True)
class BackupSettings:
    """
    Immutable run configuration.

    Built once from the Flask config at startup and handed to every component,
    so nothing below the orchestrator reads configuration from globals.
    """

    db_host: str
    db_name: str
    db_user: str
    backup_root: str
    daily_retention_days: int
    monthly_retention_days: int
    log_dir: str
    db_port: int = 5432
    credential_target: str = 'dbbackup'
    backup_prefix: str = 'backup'
    pg_dump_path: str = ''
    pg_restore_path: str = ''
    smtp_server: str = ''
    smtp_port: int = 25
    smtp_use_tls: bool = False
    mail_sender: str = 'dbbackup@localhost'
    mail_recipients: Tuple[str, ...] = ()

    @classmethod
    def from_config(cls, cfg) -> 'BackupSettings':
        """
        Build settings from a Flask config mapping.

        Args:
            cfg: app.config (or any mapping with the same keys)

        Returns:
            BackupSettings instance
        """
        return cls(
            db_host=cfg['DB_HOST'],
            db_port=int(cfg.get('DB_PORT', 5432)),
            db_name=cfg['DB_NAME'],
            db_user=cfg['DB_USER'],
            credential_target=cfg.get('CREDENTIAL_TARGET', 'dbbackup'),
            backup_root=cfg['BACKUP_ROOT'],
            backup_prefix=cfg.get('BACKUP_PREFIX', 'backup'),
            daily_retention_days=int(cfg['DAILY_RETENTION_DAYS']),
            monthly_retention_days=int(cfg['MONTHLY_RETENTION_DAYS']),
            log_dir=cfg['LOG_DIR'],
            pg_dump_path=cfg.get('PG_DUMP_PATH') or '',
            pg_restore_path=cfg.get('PG_RESTORE_PATH') or '',
            smtp_server=cfg.get('SMTP_SERVER') or '',
            smtp_port=int(cfg.get('SMTP_PORT', 25)),
            smtp_use_tls=bool(cfg.get('SMTP_USE_TLS', False)),
            mail_sender=cfg.get('MAIL_SENDER') or 'dbbackup@localhost',
            mail_recipients=_split_addresses(cfg.get('MAIL_RECIPIENTS')),
        )

    def directory_for(self, tier: BackupTier) -> str:
        """Storage directory of a tier."""
        return os.path.join(self.backup_root, tier.value)

    def retention_for(self, tier: BackupTier) -> int:
        """Retention period (days) of a tier."""
        return self.retention_policy[tier]

    @property
    def retention_policy(self) -> dict:
        return {
            BackupTier.DAILY: self.daily_retention_days,
            BackupTier.MONTHLY: self.monthly_retention_days,
        }

    @property
    def tier_directories(self) -> dict:
        return {tier: self.directory_for(tier) for tier in BackupTier}

    def executable(self, name: str) -> Optional[str]:
        """Configured path for pg_dump / pg_restore, if any."""
        return {'pg_dump': self.pg_dump_path, 'pg_restore': self.pg_restore_path}.get(name) or None
