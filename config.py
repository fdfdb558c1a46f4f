# config.py
import os

# Load .env in local/dev; harmless in containers where env is injected
from dotenv import load_dotenv

load_dotenv()


def _to_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}

def _to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


STRIPE_PLACEHOLDER_KEY = "sk_test_placeholder"


def payment_simulation_enabled(stripe_key: str | None) -> bool:
    """No usable provider credential means payments run in simulation mode."""
    return not stripe_key or stripe_key == STRIPE_PLACEHOLDER_KEY


class Config:
    # ── Core ─────────────────────────────────────────────────────────────────
    ENV_NAME = os.environ.get("APP_ENV", "development")
    DEBUG = _to_bool(os.environ.get("DEBUG") or os.environ.get("FLASK_DEBUG"), False)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret")  # ← override in prod!
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///thrift.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    MAX_CONTENT_LENGTH = _to_int(os.environ.get("MAX_CONTENT_LENGTH"), 10 * 1024)
    CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:5173")

    # ── Cookies ─────────────────────────────────────────────────────────────
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Strict"
    SESSION_COOKIE_SECURE = _to_bool(os.environ.get("COOKIE_SECURE"), False)

    # ── Auth / JWT ──────────────────────────────────────────────────────────
    JWT_TTL_HOURS = _to_int(os.environ.get("JWT_TTL_HOURS"), 24)
    SESSION_COOKIE_NAME_JWT = os.environ.get("SESSION_COOKIE_NAME_JWT", "token")

    LOGIN_MAX_ATTEMPTS = _to_int(os.environ.get("LOGIN_MAX_ATTEMPTS"), 5)
    LOGIN_LOCK_MINUTES = _to_int(os.environ.get("LOGIN_LOCK_MINUTES"), 15)

    CAPTCHA_TTL_SECONDS = _to_int(os.environ.get("CAPTCHA_TTL_SECONDS"), 300)
    CAPTCHA_LENGTH = _to_int(os.environ.get("CAPTCHA_LENGTH"), 5)

    MFA_ISSUER = os.environ.get("MFA_ISSUER", "ThriftMarket")
    MFA_CHALLENGE_TTL_SECONDS = _to_int(os.environ.get("MFA_CHALLENGE_TTL_SECONDS"), 300)
    MFA_CHALLENGE_MAX_ATTEMPTS = _to_int(os.environ.get("MFA_CHALLENGE_MAX_ATTEMPTS"), 5)

    # ── CSRF (Flask-WTF) ────────────────────────────────────────────────────
    CSRF_COOKIE_NAME = os.environ.get("CSRF_COOKIE_NAME", "XSRF-TOKEN-V2")
    CSRF_HEADER_NAME = os.environ.get("CSRF_HEADER_NAME", "X-XSRF-TOKEN")
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None  # session scoped, not per request
    WTF_CSRF_SSL_STRICT = False  # JSON API; Origin is handled by CORS

    # ── Rate limiting (Flask-Limiter) ───────────────────────────────────────
    RATELIMIT_ENABLED = _to_bool(os.environ.get("RATELIMIT_ENABLED"), True)
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.environ.get("RATELIMIT_DEFAULT", "500 per 10 minutes")
    LOGIN_RATE_LIMIT = os.environ.get("LOGIN_RATE_LIMIT", "10 per minute")

    # ── Payments (Stripe) ───────────────────────────────────────────────────
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "usd")
    PAYMENT_PROVIDER_TIMEOUT = _to_int(os.environ.get("PAYMENT_PROVIDER_TIMEOUT"), 10)


class ProductionConfig(Config):
    ENV_NAME = "production"
    DEBUG = False
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SESSION_COOKIE_SECURE = True

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 180,
        "pool_size": _to_int(os.environ.get("DB_POOL_SIZE"), 5),
        "max_overflow": _to_int(os.environ.get("DB_MAX_OVERFLOW"), 10),
        "pool_timeout": _to_int(os.environ.get("DB_POOL_TIMEOUT"), 30),
    }


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    ENV_NAME = "testing"
    DEBUG = True
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    STRIPE_SECRET_KEY = ""
