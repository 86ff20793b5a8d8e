"""Centralized configuration for the personal assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/personal-assistant/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/personal-assistant/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /personal-assistant/{name} (AWS)."
    )


# ── LLM ─────────────────────────────────────────────────────────────
# "openai" (default, gpt-4o-mini) or "anthropic"
MODEL_PROVIDER: str = os.getenv("MODEL_PROVIDER", "openai").lower()

if MODEL_PROVIDER == "anthropic":
    ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    _DEFAULT_MODEL = "claude-haiku-4-5"
else:
    OPENAI_API_KEY = _require_env("OPENAI_API_KEY")
    ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
    _DEFAULT_MODEL = "gpt-4o-mini"

MODEL_NAME: str = os.getenv("MODEL_NAME", _DEFAULT_MODEL)
MODEL_TEMPERATURE: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
MODEL_MAX_TOKENS: int = int(os.getenv("MODEL_MAX_TOKENS", "1000"))

# ── Google Calendar ─────────────────────────────────────────────────
GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
CALENDAR_ID: str = os.getenv("CALENDAR_ID", "primary")
CALENDAR_TIMEZONE: str = os.getenv("CALENDAR_TIMEZONE", "America/Mexico_City")

# How conflicts and suggested slots are rendered for people (es-ES style)
DISPLAY_DATETIME_FORMAT: str = os.getenv("DISPLAY_DATETIME_FORMAT", "%d/%m/%Y, %H:%M:%S")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "3001"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
