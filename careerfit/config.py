"""
Runtime configuration.

Settings are read from environment variables (optionally populated from a
.env file by env.load_env) and cached for the life of the process.
"""

import functools
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    """Process-wide settings."""

    database: str = "data/careerfit.db"
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_to_file: bool = True

    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    recommendation_timeout: float = 20.0

    resend_api_key: Optional[str] = None
    from_email: Optional[str] = None
    support_email: Optional[str] = None
    assessment_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database=_env_str("CAREERFIT_DATABASE", cls.database),
            log_level=_env_str("LOG_LEVEL", cls.log_level).upper(),
            log_dir=Path(_env_str("LOG_DIR", str(cls.log_dir))),
            log_to_file=_env_bool("LOG_TO_FILE", cls.log_to_file),
            groq_api_key=_env_str("GROQ_API_KEY"),
            groq_model=_env_str("GROQ_MODEL", cls.groq_model),
            groq_base_url=_env_str("GROQ_BASE_URL", cls.groq_base_url).rstrip("/"),
            recommendation_timeout=_env_float("RECOMMENDATION_TIMEOUT", cls.recommendation_timeout),
            resend_api_key=_env_str("RESEND_API_KEY"),
            from_email=_env_str("FROM_EMAIL"),
            support_email=_env_str("SUPPORT_EMAIL"),
            assessment_url=_env_str("ASSESSMENT_URL"),
        )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached settings for this process."""
    return Settings.from_env()


def reset_settings() -> None:
    """Drop the cached settings (useful for testing)."""
    get_settings.cache_clear()
