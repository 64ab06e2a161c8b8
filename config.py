import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Application environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = ENVIRONMENT == "development"
TESTING = os.getenv("TESTING", "false").lower() == "true"

# Database settings
DATABASE_URL = os.getenv("DATABASE_URL")
SLOW_DB_QUERY_THRESHOLD_MS = int(os.getenv("SLOW_DB_QUERY_THRESHOLD_MS", "500"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Application settings
APP_NAME = "Mabar Queue API"
APP_VERSION = "1.0.0"
APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")

# Operator auth (HS256 bearer tokens, sub = streamer id)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Shared secret for the external cron calling /internal endpoints
INTERNAL_CRON_SECRET = os.getenv("INTERNAL_CRON_SECRET", "")

# Midtrans settings
MIDTRANS_SERVER_KEY = os.getenv("MIDTRANS_SERVER_KEY", "")
MIDTRANS_CLIENT_KEY = os.getenv("MIDTRANS_CLIENT_KEY", "")
MIDTRANS_IS_PRODUCTION = os.getenv("MIDTRANS_IS_PRODUCTION", "false").lower() == "true"
MIDTRANS_TIMEOUT_SECONDS = float(os.getenv("MIDTRANS_TIMEOUT_SECONDS", "30"))

# Order ids look like MABAR-<epoch ms>-<6 chars>
ORDER_ID_PREFIX = os.getenv("ORDER_ID_PREFIX", "MABAR")
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "IDR")

# Gateway-side expiry per payment family
QR_EXPIRY_MINUTES = int(os.getenv("QR_EXPIRY_MINUTES", "15"))
BANK_EXPIRY_HOURS = int(os.getenv("BANK_EXPIRY_HOURS", "24"))

# Queue / session settings
PARTY_SIZE = int(os.getenv("PARTY_SIZE", "4"))
ALLOCATION_MAX_ATTEMPTS = int(os.getenv("ALLOCATION_MAX_ATTEMPTS", "5"))
STATUS_APPLY_MAX_ATTEMPTS = int(os.getenv("STATUS_APPLY_MAX_ATTEMPTS", "3"))

# Redis settings
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CHANGE_FEED_ENABLED = os.getenv("CHANGE_FEED_ENABLED", "true").lower() == "true"
CHANGE_FEED_CHANNEL_PREFIX = os.getenv("CHANGE_FEED_CHANNEL_PREFIX", "mabar")

# Status poller (fallback when webhooks are late or missing)
STATUS_POLLER_ENABLED = os.getenv("STATUS_POLLER_ENABLED", "true").lower() == "true"
STATUS_POLL_INTERVAL_SECONDS = int(os.getenv("STATUS_POLL_INTERVAL_SECONDS", "120"))
STATUS_POLL_MIN_AGE_SECONDS = int(os.getenv("STATUS_POLL_MIN_AGE_SECONDS", "60"))
STATUS_POLL_BATCH_SIZE = int(os.getenv("STATUS_POLL_BATCH_SIZE", "100"))
STATUS_POLL_GRACE_HOURS = int(os.getenv("STATUS_POLL_GRACE_HOURS", "2"))
CAPTURE_ALERT_AFTER_MINUTES = int(os.getenv("CAPTURE_ALERT_AFTER_MINUTES", "30"))
