# config/settings.py
"""
Environment configuration classes loaded by the application factory
"""

import os

from config.security import SecurityConfig, ProductionSecurityConfig


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


class Config(SecurityConfig):
    """Base configuration"""

    VERSION = os.environ.get('APP_VERSION', '1.0.0')
    ENV_NAME = 'production'

    # Database
    DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///outreach.db')
    DB_POOL_SIZE = _env_int('DB_POOL_SIZE', 10)
    DB_MAX_OVERFLOW = _env_int('DB_MAX_OVERFLOW', 20)
    SLOW_QUERY_THRESHOLD = _env_float('SLOW_QUERY_THRESHOLD', 1.0)

    # Recruiter persistence backend: 'sql' or 'csv'
    RECRUITER_BACKEND = os.environ.get('RECRUITER_BACKEND', 'sql')
    RECRUITER_CSV_PATH = os.environ.get('RECRUITER_CSV_PATH', 'recruiters.csv')

    # Text generation backend (OpenAI-compatible chat completions)
    AI_API_URL = os.environ.get('AI_API_URL', 'http://localhost:1234/v1/chat/completions')
    AI_MODEL = os.environ.get('AI_MODEL', 'mistral-nemo-instruct-2407')
    AI_TEMPERATURE = _env_float('AI_TEMPERATURE', 0.7)
    AI_TIMEOUT = _env_float('AI_TIMEOUT', 30.0)

    # Outbound mail
    SMTP_TIMEOUT = _env_float('SMTP_TIMEOUT', 60.0)
    OUTREACH_TEMPLATE_DIR = os.environ.get('OUTREACH_TEMPLATE_DIR')

    # HTTP surface
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(',') if o.strip()]
    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', True)

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')
    SLOW_REQUEST_THRESHOLD = _env_int('SLOW_REQUEST_THRESHOLD', 1000)


class DevelopmentConfig(Config):
    """Local development"""

    ENV_NAME = 'development'
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    PASSWORD_HASH_ITERATIONS = _env_int('PASSWORD_HASH_ITERATIONS', 100000)


class TestingConfig(Config):
    """Test runs: throw-away database, no request throttling"""

    ENV_NAME = 'testing'
    TESTING = True
    DATABASE_URL = 'sqlite:///:memory:'
    RATELIMIT_ENABLED = False
    PASSWORD_HASH_ITERATIONS = 1000
    ENCRYPTION_KEY = 'testing-encryption-key'
    JWT_SECRET = 'testing-access-secret'
    JWT_REFRESH_SECRET = 'testing-refresh-secret'
    LOG_LEVEL = 'WARNING'


class ProductionConfig(ProductionSecurityConfig, Config):
    """Production deployment"""

    ENV_NAME = 'production'
    DEBUG = False


CONFIG_BY_NAME = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
