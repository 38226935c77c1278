import os
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-prod'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///studio_booking.db'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Business Rules Defaults
    BUSINESS_HOURS_START = 9   # 9 AM
    BUSINESS_HOURS_END = 24    # midnight
    MIN_BOOKING_HOURS = 1
    MAX_BOOKING_HOURS = 12
    EVENING_START_HOUR = 17
    STUDIO_TIMEZONE = os.environ.get('STUDIO_TIMEZONE', 'Europe/London')
    REJECT_PAST_BOOKINGS = True
    INVALIDATE_ACCESS_CODE_ON_CANCEL = True
    ACCESS_CODE_LENGTH = 4

    # Smart lock
    TTLOCK_BASE_URL = os.environ.get('TTLOCK_BASE_URL', 'https://euapi.ttlock.com')
    TTLOCK_CLIENT_ID = os.environ.get('TTLOCK_CLIENT_ID')
    TTLOCK_CLIENT_SECRET = os.environ.get('TTLOCK_CLIENT_SECRET')
    TTLOCK_USERNAME = os.environ.get('TTLOCK_USERNAME')
    TTLOCK_PASSWORD = os.environ.get('TTLOCK_PASSWORD')
    LOCK_GATEWAY_TIMEOUT = 10  # seconds, applies to every lock cloud call
    LOCK_GRACE_PERIOD_MINUTES = 15
    PASSCODE_LENGTH = 6
    LOCK_REVOKE_RETRIES = 2
    LOCK_RETRY_BACKOFF_SECONDS = 0.5

class DevelopmentConfig(Config):
    DEBUG = True

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    REJECT_PAST_BOOKINGS = False
    LOCK_RETRY_BACKOFF_SECONDS = 0

class ProductionConfig(Config):
    DEBUG = False
    # In prod, rely on env vars strictly
