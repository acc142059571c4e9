"""
Environment-driven configuration.

All knobs are read from the process environment (seeded from a .env file
when one exists) into pydantic-settings models. Tests build their own
Settings instead of patching os.environ.
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging import get_logger

logger = get_logger(__name__)

BACKEND_DIR = Path(__file__).resolve().parents[2]
REPO_ROOT = BACKEND_DIR.parent
ENV_FILES = [REPO_ROOT / ".env", BACKEND_DIR / ".env"]

for env_path in ENV_FILES:
    if env_path.exists():
        load_dotenv(env_path, override=False)

DEFAULT_GEMINI_MODEL = "gemini-1.5-flash-latest"
DEFAULT_GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TURNSTILE_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
DEFAULT_SESSION_SECRET = "dev-session-secret"


class PollSettings(BaseSettings):
    """Timing for the scrape job polling loop (seconds), from SCRAPE_POLL_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="SCRAPE_POLL_",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    initial_delay: float = 1.0
    backoff_factor: float = Field(
        default=1.5,
        validation_alias=AliasChoices("backoff_factor", "SCRAPE_POLL_BACKOFF"),
    )
    max_delay: float = 5.0
    deadline: float = 45.0
    submit_timeout: float = 10.0
    poll_timeout: float = 5.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "NODE_ENV"),
    )
    log_level: str = "INFO"
    log_json: bool = True

    redis_url: str = "redis://redis:6379"

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_api_base: str = DEFAULT_GEMINI_API_BASE
    ai_timeout_seconds: float = 30.0

    scraper_base_url: Optional[str] = None
    scraper_api_key: Optional[str] = None
    poll: PollSettings = Field(default_factory=PollSettings)

    session_secret: str = DEFAULT_SESSION_SECRET
    turnstile_secret_key: Optional[str] = None
    turnstile_verify_url: str = DEFAULT_TURNSTILE_URL
    verification_timeout_seconds: float = 5.0
    verification_required: bool = True
    admin_api_key: Optional[str] = None

    daily_request_limit: int = 50
    candidate_profile: str = ""
    candidate_profile_path: Optional[str] = None

    cors_origins_raw: str = Field(
        default="*",
        validation_alias=AliasChoices("cors_origins_raw", "CORS_ORIGINS"),
    )

    @model_validator(mode="after")
    def load_candidate_profile(self) -> "Settings":
        # CANDIDATE_PROFILE wins over CANDIDATE_PROFILE_PATH.
        if self.candidate_profile or not self.candidate_profile_path:
            return self
        try:
            self.candidate_profile = Path(self.candidate_profile_path).read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(
                "settings_candidate_profile_unreadable",
                path=self.candidate_profile_path,
                error=str(e),
                error_type=type(e).__name__,
            )
        return self

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins_raw.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    settings = Settings()
    if settings.is_production and settings.session_secret == DEFAULT_SESSION_SECRET:
        raise RuntimeError("SESSION_SECRET is required in production")
    return settings
