"""
Application configuration and constants for BusTrack API Server.

This module centralizes environment-based configuration, token and cookie
settings, resource limits, regular expressions and lock timings.

Configuration values can be overridden via environment variables.
"""

from os import environ


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "BusTrack API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")

# Full SQLAlchemy URL, takes precedence over the PSQL_DB_* parts when set
DB_URL = environ.get(
    "DB_URL",
    f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}",
)


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_ENABLED = environ.get("OPENOBSERVE_ENABLED", "true").lower() == "true"
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@bustrack.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "bustrack")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "bustrack-core-server")
OPENOBSERVE_TIMEOUT = 5  # HTTP timeout for event ingestion (in seconds)


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# JWT & cookie configuration
# ---------------------------------------------------------------------------
JWT_SECRET = environ.get("JWT_SECRET", "secret")
JWT_ALGORITHM = environ.get("JWT_ALGORITHM", "HS256")
TOKEN_VALIDITY = int(environ.get("TOKEN_VALIDITY", 60 * 60))  # 1 hour (in seconds)
COOKIE_NAME = environ.get("COOKIE_NAME", "state_token")
COOKIE_SECURE = environ.get("COOKIE_SECURE", "false").lower() == "true"


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_USERNAME = r"^[a-zA-Z0-9]*$"
REGEX_PASSWORD = r"^[a-zA-Z0-9+,.@_$%&*#!^=/?-]*$"


# ---------------------------------------------------------------------------
# Geographic bounds (WGS 84)
# ---------------------------------------------------------------------------
MIN_LATITUDE = -90
MAX_LATITUDE = 90
MIN_LONGITUDE = -180
MAX_LONGITUDE = 180


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)
