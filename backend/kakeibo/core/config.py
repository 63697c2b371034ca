"""Configuration management.

This module defines a ``Settings`` class that reads configuration
values from environment variables and provides sensible defaults.
``.env`` support is implemented by loading files from the repository
root first and then whatever python-dotenv discovers from the current
working directory. Files never override variables that are already set.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# -----------------------------------------------------------------------------
# .env loading

_THIS_FILE = Path(__file__).resolve()
_REPO_ROOT = _THIS_FILE.parents[3]
_ROOT_ENV = _REPO_ROOT / ".env"

_candidate_envs: list[str] = []
if _ROOT_ENV.exists():
    _candidate_envs.append(str(_ROOT_ENV))

_FOUND_ENV = find_dotenv(usecwd=True)
if _FOUND_ENV and _FOUND_ENV not in _candidate_envs:
    _candidate_envs.append(_FOUND_ENV)

for _env_path in _candidate_envs:
    load_dotenv(dotenv_path=_env_path, override=False)


class Settings(BaseSettings):
    """Application settings.

    Any attribute defined here can be overridden by setting the
    corresponding environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=tuple(_candidate_envs) if _candidate_envs else (".env",),
        case_sensitive=True,
        extra="allow",
    )

    PROJECT_NAME: str = "Kakeibo Receipt Ledger"
    ENVIRONMENT: str = Field(default="development")

    # OpenAI
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    EXTRACTION_MODEL: str = Field(default="gpt-4o")
    EXTRACTION_TIMEOUT_SECONDS: float = Field(default=60.0)
    EXTRACTION_MAX_TOKENS: int = Field(default=800)
    # "low" keeps vision token usage small; receipts are mostly text
    EXTRACTION_IMAGE_DETAIL: str = Field(default="low")
    EXTRACTION_DEBUG: bool = Field(default=False)

    # Image references. Inline data URLs are always accepted; remote
    # URLs only when this is switched on.
    ALLOW_REMOTE_IMAGE_URLS: bool = Field(default=False)

    # Pending image side channel keyed by run id
    RUN_IMAGE_TTL_SECONDS: float = Field(default=600.0)
    RUN_IMAGE_MAX_ENTRIES: int = Field(default=256)

    # Ledger (relative paths resolve against the working directory)
    LEDGER_DIRECTORY: str = Field(default="data")
    LEDGER_FILENAME: str = Field(default="kakeibo.csv")
    DEFAULT_CATEGORY: str = Field(default="uncategorized")
    DEFAULT_PAYMENT_METHOD: str = Field(default="unknown")

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
    )

    # Sentry
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_RELEASE: Optional[str] = Field(default=None)


# Instantiate global settings
settings = Settings()
