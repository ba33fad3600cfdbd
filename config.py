# Lab Presence Tracker Configuration

import logging
import os
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'lab-tracker-secret-key-2026'

    # Database Configuration
    DATABASE_PATH = BASE_DIR / 'database' / 'labtrack.db'
    BACKEND_TIMEOUT_SECONDS = float(os.environ.get('BACKEND_TIMEOUT_SECONDS') or 5)

    # Export Configuration
    QR_CODES_FOLDER = BASE_DIR / 'exports' / 'qr_codes'
    REPORTS_FOLDER = BASE_DIR / 'exports' / 'reports'

    # QR Code Configuration
    QR_PAYLOAD_PREFIX = os.environ.get('QR_PAYLOAD_PREFIX') or 'IBACMI_LAB'
    QR_CODE_SIZE = 10
    QR_CODE_BORDER = 2
    QR_CODE_FILL_COLOR = '#1e40af'
    QR_CODE_BACK_COLOR = 'white'
    STRICT_MEMBER_CHECK = _env_flag('STRICT_MEMBER_CHECK')

    # Scan Configuration
    SCAN_COOLDOWN_MS = int(os.environ.get('SCAN_COOLDOWN_MS') or 3000)
    DEFAULT_STATION = 'system'
    MAX_STATIONS = int(os.environ.get('MAX_STATIONS') or 64)

    # Dashboard Configuration
    RECENT_LOGS_LIMIT = 50
    MEMBER_HISTORY_LIMIT = 20
    SEED_DEMO_MEMBERS = False

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'labtrack.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = _env_flag('DEBUG')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        app.config.from_object(cls)
        logging.getLogger('labtrack').setLevel(cls.LOG_LEVEL)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    DATABASE_PATH = BASE_DIR / 'database' / 'labtrack_dev.db'
    SEED_DEMO_MEMBERS = True
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Scratch files per test process; connections are per thread, so the
    # database has to be a file rather than ':memory:'
    TEST_DIR = Path(tempfile.gettempdir()) / f'labtrack_test_{os.getpid()}'
    DATABASE_PATH = TEST_DIR / 'labtrack_test.db'
    QR_CODES_FOLDER = TEST_DIR / 'qr_codes'
    REPORTS_FOLDER = TEST_DIR / 'reports'
    BACKEND_TIMEOUT_SECONDS = 2.0
    SEED_DEMO_MEMBERS = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    DATABASE_PATH = BASE_DIR / 'database' / 'labtrack_prod.db'
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        # Setup file logging
        if not app.debug:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
            logging.getLogger('labtrack').addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Lab tracker startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration based on environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(settings):
    """Validate configuration settings (a Flask config or any mapping)"""
    errors = []

    if settings['SCAN_COOLDOWN_MS'] < 0:
        errors.append(f"SCAN_COOLDOWN_MS must not be negative: {settings['SCAN_COOLDOWN_MS']}")

    if settings['BACKEND_TIMEOUT_SECONDS'] <= 0:
        errors.append(f"BACKEND_TIMEOUT_SECONDS must be positive: {settings['BACKEND_TIMEOUT_SECONDS']}")

    if not settings['QR_PAYLOAD_PREFIX'] or not settings['QR_PAYLOAD_PREFIX'].strip():
        errors.append("QR_PAYLOAD_PREFIX must not be empty")

    if settings['RECENT_LOGS_LIMIT'] <= 0:
        errors.append("RECENT_LOGS_LIMIT must be positive")

    if settings['MAX_STATIONS'] <= 0:
        errors.append("MAX_STATIONS must be positive")

    if str(settings['DATABASE_PATH']) == ':memory:':
        errors.append("DATABASE_PATH must be a file; ':memory:' is not shared between threads")

    return errors


# Initialize configuration
def init_config(app, config_name=None, overrides=None):
    """Initialize application with configuration, then apply and check overrides"""
    config_class = get_config(config_name)
    config_class.init_app(app)
    if overrides:
        app.config.update(overrides)

    errors = validate_config(app.config)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    return config_class
