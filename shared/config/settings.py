import os

from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "lod400")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# --- DATABASE ---
DATABASE_URL = _database_url()
SQL_ECHO = _flag("SQL_ECHO", "false")

# --- SESSIONS ---
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "lod400_session")
WEB_SESSION_TTL_DAYS = int(os.getenv("WEB_SESSION_TTL_DAYS", "7"))
ADDIN_SESSION_TTL_DAYS = int(os.getenv("ADDIN_SESSION_TTL_DAYS", "30"))

# --- PRICING ---
PRICE_PER_SHEET_SAR = 150
MIN_SHEET_COUNT = 1
MAX_SHEET_COUNT = 1000

# --- PAYMENTS (Stripe) ---
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_CURRENCY = "sar"
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")

# --- OBJECT STORAGE (S3 compatible) ---
S3_BUCKET = os.getenv("S3_BUCKET", "lod400-deliveries")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
S3_REGION = os.getenv("S3_REGION", "us-east-1")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
SIGNED_URL_TTL_SECONDS = int(os.getenv("SIGNED_URL_TTL_SECONDS", "900"))

# --- OBSERVABILITY ---
APP_ENV = os.getenv("APP_ENV", "development")
OTEL_ENABLED = _flag("OTEL_ENABLED", "true")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- RATE LIMITS ---
UPLOAD_URL_RATE_LIMIT = os.getenv("UPLOAD_URL_RATE_LIMIT", "30/minute")
