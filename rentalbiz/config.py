import os


def _split_origins(raw):
    return [o.strip() for o in raw.split(",") if o.strip()]


class Config:
    # Secret key for sessions / JWT
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-me")

    # Database connection
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///rentalbiz.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)

    # Logging / CORS
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    CORS_ALLOWED_ORIGINS = _split_origins(
        os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )

    API_PREFIX = "/api"

    # Payment scheduling
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "MXN")
    SCHEDULE_MIN_YEAR = int(os.environ.get("SCHEDULE_MIN_YEAR", 2020))
    SCHEDULE_MAX_YEAR = int(os.environ.get("SCHEDULE_MAX_YEAR", 2030))


class ProductionConfig(Config):
    """Refuses to boot with development fallbacks."""

    def __init__(self):
        if not os.environ.get("SECRET_KEY"):
            raise ValueError("SECRET_KEY environment variable must be set")
        if not os.environ.get("DATABASE_URL"):
            raise ValueError("DATABASE_URL environment variable must be set")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing-secret"
    JWT_SECRET_KEY = "testing-jwt-secret-key-with-enough-length"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
