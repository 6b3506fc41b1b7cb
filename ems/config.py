# ems/config.py

import os
from datetime import timedelta

# Default time API; the election window is checked against this service
# rather than the client clock.
DEFAULT_TIME_API_URL = "https://worldtimeapi.org/api/timezone/Etc/UTC"

DEFAULT_NTP_SERVERS = "pool.ntp.org,time.google.com,time.windows.com,time.apple.com"


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'change-me-in-production')

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///ems.sqlite')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', 'change-me-in-production-jwt')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=30)
    JWT_TOKEN_LOCATION = ['headers', 'cookies']
    JWT_COOKIE_CSRF_PROTECT = False

    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '10000/hour')
    VOTE_RATE_LIMIT = os.environ.get('VOTE_RATE_LIMIT', '10/minute')

    # system | ntp | http
    CLOCK_SOURCE = os.environ.get('CLOCK_SOURCE', 'ntp')
    TIME_API_URL = os.environ.get('TIME_API_URL', DEFAULT_TIME_API_URL)
    NTP_SERVERS = [s.strip() for s in os.environ.get('NTP_SERVERS', DEFAULT_NTP_SERVERS).split(',') if s.strip()]
    TIME_SOURCE_TIMEOUT = float(os.environ.get('TIME_SOURCE_TIMEOUT', '3'))
    MAX_TIME_OFFSET_S = float(os.environ.get('MAX_TIME_OFFSET_S', '0.5'))

    AUDIT_LOG_DIR = os.environ.get('AUDIT_LOG_DIR', 'logs')
    MIN_FREE_DISK_GB = float(os.environ.get('MIN_FREE_DISK_GB', '1'))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET_KEY = 'test-secret-key-that-is-long-enough-for-hs256'
    CLOCK_SOURCE = 'system'
    RATELIMIT_ENABLED = False
    AUDIT_LOG_DIR = 'logs-test'
