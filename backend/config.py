# config.py

import os

# -- STORAGE --

# 'memory' or 'sqlite'
STORE_BACKEND = os.environ.get("STORE_BACKEND", "memory").lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "data/alerts.db")
KV_PREFIX = "sf:v1:"

# -- LOGGING --

APP_LOGGER_NAME = "AlertEngine"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# -- EVALUATOR --

EVALUATOR_MAX_WORKERS = int(os.environ.get("EVALUATOR_MAX_WORKERS", "8"))
PROVIDER_TIMEOUT_SECONDS = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "5"))

# Poll cadence hint returned to the caller
POLL_ACTIVE_SECONDS = int(os.environ.get("POLL_ACTIVE_SECONDS", "30"))
POLL_IDLE_SECONDS = int(os.environ.get("POLL_IDLE_SECONDS", "60"))

# Seed for the deterministic stand-in providers
PROVIDER_SEED = os.environ.get("PROVIDER_SEED", "test-seed-v1")

# -- RETENTION (seconds) --

DEDUP_TTL_SECONDS = 24 * 60 * 60
EVENT_TTL_SECONDS = 30 * 24 * 60 * 60
EVENT_INDEX_RETENTION_DAYS = 30
EVENTS_DEFAULT_LOOKBACK_HOURS = 24

# -- API --

API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
