import logging
import os
import secrets
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("DB_USER", "app")
    password = os.getenv("DB_PASSWORD", "app")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "rewear")
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"


DATABASE_URL = _database_url()
DB_ECHO = _env_bool("DB_ECHO")

SECRET_KEY = os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET") or ""
if not SECRET_KEY:
    # Tokens signed with this key stop validating once the process restarts.
    SECRET_KEY = secrets.token_hex(32)
    logger.warning("SECRET_KEY is not set; using a random per-process secret")

TOKEN_MAX_AGE_SECONDS = int(os.getenv("TOKEN_MAX_AGE_SECONDS", str(60 * 60 * 24 * 7)))

STARTING_POINTS = int(os.getenv("STARTING_POINTS", "100"))

MAX_IMAGES = int(os.getenv("MAX_IMAGES", "5"))
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
PLACEHOLDER_IMAGE_URL = os.getenv(
    "PLACEHOLDER_IMAGE_URL",
    "https://via.placeholder.com/800x800/cccccc/666666?text={name}",
)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
AI_TEXT_MODEL = os.getenv("AI_TEXT_MODEL", "gpt-3.5-turbo")
AI_VISION_MODEL = os.getenv("AI_VISION_MODEL", "gpt-4o-mini")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "60"))
AI_ASSIST_ON_CREATE = _env_bool("AI_ASSIST_ON_CREATE")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
