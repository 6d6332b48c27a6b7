import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

APP_ENV = os.getenv("APP_ENV", "development")

# Optional: signature recovery is done offline, the node URL is only reported by /api/health
ETH_NODE_URL = os.getenv("ETH_NODE_URL")

# CORS origins, comma separated
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# JWT Settings
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
DEFAULT_JWT_EXPIRY = "1h"


def get_jwt_expiry() -> str:
    """Returns the raw access token TTL expression. Read on every call so a changed env applies without restart."""
    return os.getenv("JWT_EXPIRY", DEFAULT_JWT_EXPIRY)


def _int_setting(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name} in .env file. Defaulting to {default}.")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive. Defaulting to {default}.")
        return default
    return value


# --- Refresh token policy ---
REFRESH_TOKEN_LIFETIME_DAYS = _int_setting("REFRESH_TOKEN_LIFETIME_DAYS", 30)
MAX_ACTIVE_REFRESH_TOKENS = _int_setting("MAX_ACTIVE_REFRESH_TOKENS", 5)

# --- Timeouts (seconds) ---
LOCK_TIMEOUT_SECONDS = _int_setting("LOCK_TIMEOUT_SECONDS", 5)
CRYPTO_TIMEOUT_SECONDS = _int_setting("CRYPTO_TIMEOUT_SECONDS", 5)
# Signature recovery threads, sized like the request threadpool
CRYPTO_WORKERS = _int_setting("CRYPTO_WORKERS", 40)


def is_production() -> bool:
    return APP_ENV.lower() == "production"


# Basic validation
if not JWT_SECRET_KEY:
    logger.warning("JWT_SECRET_KEY not found in .env file. Authentication will fail.")
if not ETH_NODE_URL:
    logger.info("ETH_NODE_URL not set. Signature recovery does not need a node.")
