from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from auth.urls import is_http_url

from .constants import (
    DEFAULT_AUTHORIZE_URL,
    DEFAULT_FHIR_BASE_URL,
    DEFAULT_SESSION_STORE_PATH,
    DEFAULT_TOKEN_URL,
    LOGGER,
)

REQUIRED_ENV = ("KP_CLIENT_ID", "KP_REDIRECT_URI")


@dataclass(frozen=True)
class Settings:
    client_id: str
    redirect_uri: str
    fhir_base_url: str = DEFAULT_FHIR_BASE_URL
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    token_url: str = DEFAULT_TOKEN_URL
    http_timeout: float = 30.0
    session_store_path: str = DEFAULT_SESSION_STORE_PATH
    host: str = "127.0.0.1"
    port: int = 8000


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def _get_env_str(key: str, default: str) -> str:
    return os.getenv(key, "").strip() or default


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    redirect_uri = os.getenv("KP_REDIRECT_URI", "").strip()
    if not is_http_url(redirect_uri):
        raise RuntimeError(
            "KP_REDIRECT_URI must be an http(s) URL (for example: "
            "http://127.0.0.1:8000/callback)."
        )

    for key in ("KP_FHIR_BASE_URL", "KP_AUTHORIZE_URL", "KP_TOKEN_URL"):
        value = os.getenv(key, "").strip()
        if value and not is_http_url(value):
            raise RuntimeError(f"{key} must be an http(s) URL.")


def load_settings() -> Settings:
    return Settings(
        client_id=os.getenv("KP_CLIENT_ID", "").strip(),
        redirect_uri=os.getenv("KP_REDIRECT_URI", "").strip(),
        fhir_base_url=_get_env_str("KP_FHIR_BASE_URL", DEFAULT_FHIR_BASE_URL),
        authorize_url=_get_env_str("KP_AUTHORIZE_URL", DEFAULT_AUTHORIZE_URL),
        token_url=_get_env_str("KP_TOKEN_URL", DEFAULT_TOKEN_URL),
        http_timeout=_get_env_float("KP_HTTP_TIMEOUT", 30.0),
        session_store_path=_get_env_str("KP_SESSION_STORE_PATH", DEFAULT_SESSION_STORE_PATH),
        host=_get_env_str("APP_HOST", "127.0.0.1"),
        port=_get_env_int("APP_PORT", 8000),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("KP_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
