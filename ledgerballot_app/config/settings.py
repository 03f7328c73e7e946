import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


DEBUG = _env_bool("DEBUG", default=False)

# Nothing signs cookies or sessions; the key only has to exist.
SECRET_KEY = os.environ.get("SECRET_KEY", "ledgerballot-insecure-local-key")

ALLOWED_HOSTS = _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1")

INSTALLED_APPS = [
    "election",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# All durable state lives on the ledger.
DATABASES: dict[str, dict[str, str]] = {}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "ledgerballot",
    }
}

USE_TZ = True
TIME_ZONE = "UTC"

# Ledger
LEDGER_RPC_URL = os.environ.get("LEDGER_RPC_URL", "")
LEDGER_CONTRACT_ADDRESS = os.environ.get(
    "LEDGER_CONTRACT_ADDRESS",
    "0x8FA17Fd564a9DdcaB311f61A800e4E34FC6CbeEA",
)
LEDGER_CHAIN_ID = int(os.environ.get("LEDGER_CHAIN_ID", "11155111"))
LEDGER_NETWORK_NAME = os.environ.get("LEDGER_NETWORK_NAME", "Sepolia")
LEDGER_PRIVATE_KEYS = os.environ.get("LEDGER_PRIVATE_KEYS", "")
LEDGER_REQUEST_TIMEOUT_SECONDS = float(os.environ.get("LEDGER_REQUEST_TIMEOUT_SECONDS", "10"))
LEDGER_RECEIPT_TIMEOUT_SECONDS = float(os.environ.get("LEDGER_RECEIPT_TIMEOUT_SECONDS", "180"))
LEDGER_EVENT_POLL_INTERVAL_SECONDS = float(os.environ.get("LEDGER_EVENT_POLL_INTERVAL_SECONDS", "4"))
LEDGER_CIRCUIT_BREAKER_CONSECUTIVE_FAILURES = int(
    os.environ.get("LEDGER_CIRCUIT_BREAKER_CONSECUTIVE_FAILURES", "3")
)
LEDGER_CIRCUIT_BREAKER_COOLDOWN_SECONDS = int(os.environ.get("LEDGER_CIRCUIT_BREAKER_COOLDOWN_SECONDS", "30"))

ELECTION_SYNC_INTERVAL_SECONDS = float(os.environ.get("ELECTION_SYNC_INTERVAL_SECONDS", "10"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
        "web3_request_noise": {
            "()": "config.logging_filters.Web3RequestNoiseFilter",
        },
    },
    "formatters": {
        "default": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "filters": ["health_endpoint", "web3_request_noise"],
        },
    },
    "loggers": {
        "election": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "web3": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "django.server": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
}

SENTRY_DSN = os.environ.get("SENTRY_DSN", "").strip()
if SENTRY_DSN:
    import logging

    import sentry_sdk
    from sentry_sdk.integrations.django import DjangoIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[
            DjangoIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
        traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0")),
        send_default_pii=False,
        send_client_reports=False,
        auto_session_tracking=False,
    )
