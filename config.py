import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # "production" hides dev OTPs and tokens from responses
    APP_ENV = os.getenv("APP_ENV", "development")

    # SQLite database file stored next to the app as progress.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "progress.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session tokens
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-only-jwt-secret-change-me")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_SECONDS = _env_int("JWT_EXPIRES_SECONDS", 8 * 60 * 60)  # 0 = no expiry

    # Password hashing
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # One-time tokens
    REGISTER_OTP_EXPIRY_MINUTES = _env_int("REGISTER_OTP_EXPIRY_MINUTES", 10)
    PASSWORD_RESET_TTL_MINUTES = _env_int("PASSWORD_RESET_TTL_MINUTES", 30)
    INVITE_TTL_DAYS = _env_int("INVITE_TTL_DAYS", 7)

    # CORS for the dashboard
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = _env_int("SMTP_PORT", 587)
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Voice note storage (S3); uploads answer 503 while S3_BUCKET is unset
    S3_BUCKET = os.getenv("S3_BUCKET")
    AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
    AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
    PRESIGN_EXPIRES_SECONDS = _env_int("PRESIGN_EXPIRES_SECONDS", 300)
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10MB request bodies

    # Basic app settings
    DEBUG = False
