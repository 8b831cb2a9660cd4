import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _int_pair(name, default):
    value = os.environ.get(name)
    if not value:
        return default
    count, seconds = value.split('/', 1)
    return int(count), int(seconds)


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(BASE_DIR, 'foodshare.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for any single persistence wait (sqlite busy timeout / pool checkout)
    DB_TIMEOUT_SECONDS = int(os.environ.get('DB_TIMEOUT_SECONDS') or 10)

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # Bearer tokens
    TOKEN_MAX_AGE = int(os.environ.get('TOKEN_MAX_AGE') or 7 * 24 * 3600)

    # Chat
    MESSAGE_MAX_LENGTH = 1000
    NOTIFICATION_PREVIEW_LENGTH = 50

    # Shared fixed-window limits, "count/seconds" in the environment
    RATE_LIMIT_REQUESTS = _int_pair('RATE_LIMIT_REQUESTS', (5, 15 * 60))
    RATE_LIMIT_MESSAGES = _int_pair('RATE_LIMIT_MESSAGES', (60, 60))

    # Nearby search
    DEFAULT_SEARCH_RADIUS_KM = 10
    MAX_PAGE_SIZE = 50

    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS') or '*'

    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'localhost'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 1025)
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS') == '1'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or 'noreply@foodshare.local'


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    MAIL_SUPPRESS_SEND = True
    RATE_LIMIT_REQUESTS = (20, 60)
    RATE_LIMIT_MESSAGES = (100, 60)
    DB_TIMEOUT_SECONDS = 30
