"""
config.py - Runtime Settings
Builds an explicit Settings object from environment variables (.env is loaded by app.py)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

PLACEHOLDER_API_KEY = "YOUR_GROQ_API_KEY_HERE"

DEFAULT_VISION_MODELS = (
    "meta-llama/llama-4-scout-17b-16e-instruct",
    "meta-llama/llama-4-maverick-17b-128e-instruct",
)
DEFAULT_CHAT_MODELS = (
    "llama-3.3-70b-versatile",
    "llama-3.1-8b-instant",
    "meta-llama/llama-4-scout-17b-16e-instruct",
)


@dataclass(frozen=True)
class Settings:
    groq_api_key: Optional[str] = None
    vision_models: Tuple[str, ...] = DEFAULT_VISION_MODELS
    chat_models: Tuple[str, ...] = DEFAULT_CHAT_MODELS
    request_timeout: float = 30.0
    upload_dir: Path = Path("uploads")
    max_upload_mb: int = 10
    frontend_url: str = "http://localhost:3000"
    port: int = 5001
    log_level: str = "INFO"

    @property
    def api_configured(self) -> bool:
        return bool(self.groq_api_key) and self.groq_api_key != PLACEHOLDER_API_KEY

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def _parse_models(raw: Optional[str], default: Tuple[str, ...], name: str) -> Tuple[str, ...]:
    if raw is None:
        return default
    models = tuple(m.strip() for m in raw.split(",") if m.strip())
    if not models:
        raise ValueError(f"{name} must list at least one model")
    return models


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read settings from a mapping of environment variables

    Args:
        environ: Variables to read; defaults to os.environ

    Returns:
        Frozen Settings instance

    Raises:
        ValueError: If a model list is empty or a numeric value is malformed
    """
    env = os.environ if environ is None else environ

    return Settings(
        groq_api_key=env.get("GROQ_API_KEY") or None,
        vision_models=_parse_models(env.get("VISION_MODELS"), DEFAULT_VISION_MODELS, "VISION_MODELS"),
        chat_models=_parse_models(env.get("CHAT_MODELS"), DEFAULT_CHAT_MODELS, "CHAT_MODELS"),
        request_timeout=float(env.get("REQUEST_TIMEOUT", "30")),
        upload_dir=Path(env.get("UPLOAD_DIR", "uploads")),
        max_upload_mb=int(env.get("MAX_UPLOAD_MB", "10")),
        frontend_url=env.get("FRONTEND_URL", "http://localhost:3000"),
        port=int(env.get("PORT", "5001")),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
