"""
config.py

Runtime settings, read from the environment.  A `.env` file in the working
directory is loaded first; real environment variables take precedence.
"""

import os

from dotenv import load_dotenv

load_dotenv(override=False)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# Server
APP_HOST = os.getenv("APP_HOST", "127.0.0.1")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
APP_RELOAD = _as_bool(os.getenv("APP_RELOAD", "false"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Login throttle
LOGIN_MAX_ATTEMPTS = int(os.getenv("LOGIN_MAX_ATTEMPTS", "5"))
LOGIN_WINDOW_SECONDS = int(os.getenv("LOGIN_WINDOW_SECONDS", "60"))

# How many times the API re-runs a use case that lost an optimistic-lock race.
CONFLICT_RETRY_ATTEMPTS = int(os.getenv("CONFLICT_RETRY_ATTEMPTS", "3"))

# Seeded on startup so there is always someone who can log in.
SYSTEM_ADMIN_EMAIL = os.getenv("SYSTEM_ADMIN_EMAIL", "admin@example.org")
SYSTEM_ADMIN_NAME = os.getenv("SYSTEM_ADMIN_NAME", "System Administrator")

CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
    if origin.strip()
]
