import logging
import os
from typing import Optional

from dotenv import load_dotenv
from google.cloud import secretmanager
from google.oauth2 import service_account
from google.auth import default as google_auth_default
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from healthsyntra.entities import Base
from healthsyntra.errors import ConfigurationError

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("healthsyntra_backend")

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")
REGION = os.getenv("GOOGLE_CLOUD_REGION", "us-central1")

LLM_MODEL_NAME = os.getenv("LLM_MODEL_NAME", "gemini-2.5-flash-lite")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "15"))

FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY", "")
USERS_COLLECTION = os.getenv("USERS_COLLECTION", "users")
RECENT_LOGIN_MAX_AGE_SECONDS = int(os.getenv("RECENT_LOGIN_MAX_AGE_SECONDS", "300"))

CHECKOUT_CURRENCY = os.getenv("CHECKOUT_CURRENCY", "usd")

DB_HOST             = os.environ.get("DB_HOST", "localhost")
DB_PORT             = int(os.environ.get("DB_PORT", "5432"))
DB_NAME             = os.environ.get("DB_NAME", "healthsyntra")
DB_USER             = os.environ.get("DB_USER", "")
DB_PASSWORD         = os.environ.get("DB_PASSWORD")
DB_SECRET_ID        = os.environ.get("DB_SECRET_ID")

IS_LOCAL_DB = (DB_HOST == "localhost")

_stripe_secret_from_manager: Optional[str] = None


def _build_creds():
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def _access_secret(secret_id: str) -> str:
    creds = _build_creds()
    client = secretmanager.SecretManagerServiceClient(credentials=creds)
    name = client.secret_version_path(PROJECT_ID, secret_id, "latest")
    resp = client.access_secret_version(request={"name": name})
    return resp.payload.data.decode("utf-8")


def get_db_password() -> str:
    global DB_PASSWORD

    if DB_PASSWORD:
        return DB_PASSWORD

    if DB_SECRET_ID:
        DB_PASSWORD = _access_secret(DB_SECRET_ID)
        return DB_PASSWORD

    raise ConfigurationError("No DB_PASSWORD and no Secret Manager configured")


def get_stripe_secret_key() -> str:
    """
    Server-side Stripe key. Read on every call so a missing key fails the
    request (HTTP 500) instead of the process start.
    """
    global _stripe_secret_from_manager

    key = os.environ.get("STRIPE_SECRET_KEY")
    if key:
        return key

    secret_id = os.environ.get("STRIPE_SECRET_ID")
    if secret_id:
        if not _stripe_secret_from_manager:
            _stripe_secret_from_manager = _access_secret(secret_id)
        return _stripe_secret_from_manager

    logger.error("Stripe secret key is not set. Please add STRIPE_SECRET_KEY to your .env file.")
    raise ConfigurationError("Server configuration error: Stripe secret key is not set.")


def get_stripe_publishable_key() -> Optional[str]:
    return os.environ.get("STRIPE_PUBLISHABLE_KEY") or None


def get_app_base_url() -> Optional[str]:
    url = os.environ.get("APP_BASE_URL")
    return url.rstrip("/") if url else None


def get_db_engine():
    if IS_LOCAL_DB:
        url = os.environ.get("DATABASE_URL", "sqlite:///healthsyntra.db")
        logger.info(f"[DB] Using local database URL: {url}")
        return create_engine(url)

    password = get_db_password()
    url = f"postgresql+pg8000://{DB_USER}:{password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    logger.info(f"[DB] Connecting to Postgres at {DB_HOST}:{DB_PORT}/{DB_NAME}")

    # pg8000 supports 'timeout' in seconds
    return create_engine(
        url,
        connect_args={"timeout": 10},
    )


def create_session_factory(engine=None) -> sessionmaker:
    engine = engine or get_db_engine()
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
