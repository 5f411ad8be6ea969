import os
import logging
from flask import Config, Flask
from flask_sqlalchemy import SQLAlchemy

from dbbackup.logs import DailySizeRotatingFileHandler


# Initialize extensions
db = SQLAlchemy()

LOGGER_NAME = 'dbbackup'


def configure_logging(app):
    """Configure console and daily file logging for the dbbackup logger tree"""

    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s: %(message)s'
    ))

    # File handler (one file per day, rotated at LOG_MAX_BYTES)
    file_handler = DailySizeRotatingFileHandler(
        app.config['LOG_DIR'],
        prefix=app.config.get('LOG_PREFIX', 'dbbackup'),
        max_bytes=app.config.get('LOG_MAX_BYTES', 104857600),
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s] %(message)s'
    ))

    # Replace handlers from an earlier create_app() in this process
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(log_level)
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)
    logger.propagate = False

    app.logger.setLevel(log_level)

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")


def load_config(config_name=None, overrides=None):
    """Resolve the configuration mapping that create_app() applies"""

    if config_name is None:
        config_name = os.environ.get('DBBACKUP_ENV', 'production')

    from dbbackup.config import config
    cfg = Config(os.path.dirname(os.path.abspath(__file__)))
    cfg.from_object(config[config_name])
    if overrides:
        cfg.update(overrides)
    return cfg


def create_app(config_name=None, overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    app.config.update(load_config(config_name, overrides))

    # Persisted SECRET_KEY protects the stored credentials
    if not app.config.get('SECRET_KEY'):
        from dbbackup.config import load_secret_key
        app.config['SECRET_KEY'] = load_secret_key(app.config['SECRET_KEY_FILE'])

    # Configure logging
    configure_logging(app)

    # Ensure the credential database directory exists
    db_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if db_uri.startswith('sqlite:///') and ':memory:' not in db_uri:
        os.makedirs(os.path.dirname(db_uri.replace('sqlite:///', '')) or '.', exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    from dbbackup import models
    with app.app_context():
        db.create_all()

    # Register CLI commands
    from dbbackup.cli import register_commands
    register_commands(app)

    return app
