from pathlib import Path
from config.loader import get_config_loader

# Settings resolve from DASHSTREAM_<NAME>, then <NAME>, then .env, then the default
config = get_config_loader()

# Logging
LOG_LEVEL = config.get("LOG_LEVEL", "info")

# API configuration
API_BASE_URL = config.get("API_BASE_URL", "https://dash-stream-apk-backend.vercel.app/api")

# Client identification headers
CLIENT_VERSION = config.get("CLIENT_VERSION", "1.0.0")
CLIENT_PLATFORM = config.get("CLIENT_PLATFORM", "mobile")

# Timeout configuration
# Connection timeout: Time to establish TCP connection
CONNECT_TIMEOUT = config.get("CONNECT_TIMEOUT", 10.0, minimum=0.1)
# Request timeout: Total timeout for a single request, reported as 408 when exceeded
REQUEST_TIMEOUT = config.get("REQUEST_TIMEOUT", 30.0, minimum=0.1)

# Auth endpoints (hardcoded - not user configurable)
REFRESH_TOKEN_PATH = "/auth/refresh-token"
LOGOUT_PATH = "/auth/logout"
VERIFY_TOKEN_PATH = "/auth/verify-token"

# Error code the backend returns when the account behind a token was deleted
ACCOUNT_DELETED_ERROR_CODE = "APP-401-051"

# Client-side rate limit window used when a 429 carries no usable headers (seconds)
RATE_LIMIT_DEFAULT_WAIT = config.get("RATE_LIMIT_DEFAULT_WAIT", 60.0, minimum=0.0)

# Upload retry policy
UPLOAD_MAX_RETRIES = config.get("UPLOAD_MAX_RETRIES", 3, minimum=0)
UPLOAD_MAX_BACKOFF = config.get("UPLOAD_MAX_BACKOFF", 10.0, minimum=0.0)

# Data hooks
# Cache TTL in seconds (0 disables caching)
DEFAULT_CACHE_TTL = config.get("DEFAULT_CACHE_TTL", 300.0, minimum=0.0)
MAX_PAGE_LIMIT = 100
DEFAULT_PAGE_LIMIT = config.get("DEFAULT_PAGE_LIMIT", 10, minimum=1, maximum=MAX_PAGE_LIMIT)
DEFAULT_RETRY_DELAY = config.get("DEFAULT_RETRY_DELAY", 1.0, minimum=0.0)
POLL_INTERVAL = config.get("POLL_INTERVAL", 30.0, minimum=0.1)

# Token storage
TOKEN_FILE = config.get("TOKEN_FILE", str(Path.home() / ".dashstream" / "tokens.json"))
