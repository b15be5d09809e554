import os

# --- Infrastructure ---
DATABASE_URL = os.getenv("DATABASE_URL")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/0")

LOG_FILE = os.getenv("BLUELENA_LOG_FILE", "bluelena_connect.log")
LOG_LEVEL = os.getenv("BLUELENA_LOG_LEVEL", "INFO")

# --- WooCommerce REST API (order store) ---
WC_API_URL = os.getenv("WC_API_URL")  # e.g. https://shop.example.com/wp-json/wc/v3
WC_CONSUMER_KEY = os.getenv("WC_CONSUMER_KEY")
WC_CONSUMER_SECRET = os.getenv("WC_CONSUMER_SECRET")
WC_HTTP_TIMEOUT = 15.0

# --- Option defaults, used when the settings store has no value ---
DEFAULT_WEBHOOK_URL = os.getenv("BLUELENA_WEBHOOK_URL", "")
DEFAULT_SECRET_TOKEN = os.getenv("BLUELENA_SECRET_TOKEN", "")
DEFAULT_ENABLED = os.getenv("BLUELENA_ENABLED", "1")

# --- Webhook delivery ---
WEBHOOK_TIMEOUT = 40.0
WEBHOOK_MAX_REDIRECTS = 5

# --- Queue pacing (seconds) ---
SYNC_BASE_DELAY = float(os.getenv("BLUELENA_SYNC_BASE_DELAY", "0"))
SYNC_STAGGER_INTERVAL = float(os.getenv("BLUELENA_SYNC_STAGGER_INTERVAL", "10"))
SYNC_MAX_DELAY = float(os.getenv("BLUELENA_SYNC_MAX_DELAY", "300"))
# A scheduled drain this far in the past is considered lost
SYNC_STALE_AFTER = float(os.getenv("BLUELENA_SYNC_STALE_AFTER", "600"))
