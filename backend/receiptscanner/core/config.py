"""Settings for the receipt core.

``Settings`` reads every value from the environment, falling back to the
defaults below.  ``.env`` files are honoured too: the one at the
repository root first, then whichever python-dotenv finds walking up
from the working directory.  Neither overrides a variable that is
already set in the process environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv, find_dotenv

# backend/receiptscanner/core/config.py -> repository root
_REPO_ROOT = Path(__file__).resolve().parents[3]


def _env_files() -> tuple[str, ...]:
    found: list[str] = []
    root_env = _REPO_ROOT / ".env"
    if root_env.exists():
        found.append(str(root_env))
    discovered = find_dotenv(usecwd=True)
    if discovered and discovered not in found:
        found.append(discovered)
    return tuple(found)


ENV_FILES = _env_files()
for _path in ENV_FILES:
    load_dotenv(dotenv_path=_path, override=False)


class Settings(BaseSettings):
    """Receipt core settings; any field can be overridden by an env var of the same name."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILES or (".env",),
        case_sensitive=True,
        extra="allow",
    )

    PROJECT_NAME: str = "Receipt Scanner Core"
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # Database
    DATABASE_URL: Optional[str] = Field(default=None)
    # When no URL is configured a local SQLite file is used instead of
    # failing at startup.  Keep this off outside development.
    DB_DEV_FALLBACK_SQLITE: bool = Field(default=True)
    SQLITE_FALLBACK_PATH: str = Field(default="./receiptscanner.db")
    DB_ECHO: bool = Field(default=False)

    # Receipts
    DEFAULT_CURRENCY: str = Field(default="GBP")
    DEFAULT_CURRENCY_SYMBOL: str = Field(default="£")
    # Calendar week start used for "this week" summaries and weekly grouping.
    WEEK_START: str = Field(default="sunday")
    DEFAULT_PAGE_SIZE: int = Field(default=10)
    MAX_PAGE_SIZE: int = Field(default=100)

    # Sentry
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_RELEASE: Optional[str] = Field(default=None)


# Instantiate global settings
settings = Settings()


def clamp_page_size(page_size: Optional[int]) -> int:
    """Return a page size within ``1..MAX_PAGE_SIZE`` (default when unset)."""
    if not page_size or page_size < 1:
        return settings.DEFAULT_PAGE_SIZE
    return min(page_size, settings.MAX_PAGE_SIZE)
