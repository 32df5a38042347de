"""
Django settings for the fx-rates project.
Values are read from the environment, with development defaults.
"""

import os

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

INSTALLED_APPS: list[str] = []

USE_TZ = True
TIME_ZONE = "UTC"

# Cache
REDIS_URL = os.getenv("REDIS_URL", "")
REDIS_INSTANCE_NAME = os.getenv("REDIS_INSTANCE_NAME", "fxrates_")

if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
            "KEY_PREFIX": REDIS_INSTANCE_NAME,
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "fx-rates",
            "KEY_PREFIX": REDIS_INSTANCE_NAME,
        }
    }

EXCHANGE_RATE_CACHE_ALIAS = os.getenv("EXCHANGE_RATE_CACHE_ALIAS", "default")
EXCHANGE_RATE_CACHE_TTL_DAYS = int(os.getenv("EXCHANGE_RATE_CACHE_TTL_DAYS", "30"))

# Upstream
FRANKFURTER_URL = os.getenv("FRANKFURTER_URL", "https://api.frankfurter.app")

# Resilient transport
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
HTTP_RETRY_COUNT = int(os.getenv("HTTP_RETRY_COUNT", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "2"))
CIRCUIT_BREAKER_FAILURE_THRESHOLD = int(os.getenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "3"))
CIRCUIT_BREAKER_BREAK_SECONDS = float(os.getenv("CIRCUIT_BREAKER_BREAK_SECONDS", "30"))

# Currency rules
EXCLUDED_CURRENCIES = [
    code.strip().upper()
    for code in os.getenv("EXCLUDED_CURRENCIES", "TRY,PLN,THB,MXN").split(",")
    if code.strip()
]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "apps": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": True,
        },
    },
}
