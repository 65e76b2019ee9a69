import os
from dotenv import load_dotenv

load_dotenv()


def _env_list(name, default=""):
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///consult.db")

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ROLE_CLAIM = "role"

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    CURRENCY = os.getenv("CURRENCY", "INR")

    # Billing
    PLATFORM_COMMISSION_FRACTION = float(os.getenv("PLATFORM_COMMISSION_FRACTION", 0.20))
    MINIMUM_BILLABLE_MINUTES = int(os.getenv("MINIMUM_BILLABLE_MINUTES", 5))
    DEFAULT_RATES = {
        "chat": 5.0,
        "voice_call": 8.0,
        "video_call": 10.0,
    }

    # Session expiry
    SESSION_PENDING_TIMEOUT_SECONDS = int(os.getenv("SESSION_PENDING_TIMEOUT_SECONDS", 300))
    SESSION_RINGING_TIMEOUT_SECONDS = int(os.getenv("SESSION_RINGING_TIMEOUT_SECONDS", 60))

    # Rate limits
    SESSION_CREATE_LIMIT = int(os.getenv("SESSION_CREATE_LIMIT", 3))
    SESSION_CREATE_WINDOW_SECONDS = int(os.getenv("SESSION_CREATE_WINDOW_SECONDS", 3600))
    PAYOUT_REQUEST_LIMITS = [
        (3, 60 * 60),
        (2, 2 * 60 * 60),
        (1, 4 * 60 * 60),
    ]
    RATE_LIMIT_VIOLATION_WINDOW_SECONDS = 24 * 60 * 60
    RATE_LIMIT_FAIL_OPEN_ACTIONS = _env_list("RATE_LIMIT_FAIL_OPEN_ACTIONS")

    # Payouts
    PAYOUT_MIN_AMOUNT = float(os.getenv("PAYOUT_MIN_AMOUNT", 100))
    PAYOUT_MAX_AMOUNT = float(os.getenv("PAYOUT_MAX_AMOUNT", 50000))


class DevelopmentConfig(Config):
    DEBUG = True
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    RATE_LIMIT_FAIL_OPEN_ACTIONS = []
