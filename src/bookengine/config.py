"""Configuration management for bookengine.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

# Hard ceiling on results requested from any single external provider call.
PROVIDER_WINDOW_CAP = 20


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Paging
    default_search_limit: int
    min_search_limit: int
    max_search_limit: int
    prefetch_multiplier: int

    # Timeouts (seconds)
    provider_timeout: float
    similar_books_timeout: float

    # Worker pool for blocking store calls
    store_workers: int

    # External providers
    external_fallback_enabled: bool
    google_books_api_key: Optional[str]

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "BOOKENGINE_DB_PATH",
            str(Path.home() / ".bookengine" / "catalog.db"),
        )

        return cls(
            db_path=Path(db_path_str).expanduser(),
            default_search_limit=int(os.environ.get("BOOKENGINE_DEFAULT_SEARCH_LIMIT", "12")),
            min_search_limit=int(os.environ.get("BOOKENGINE_MIN_SEARCH_LIMIT", "1")),
            max_search_limit=int(os.environ.get("BOOKENGINE_MAX_SEARCH_LIMIT", "100")),
            prefetch_multiplier=int(os.environ.get("BOOKENGINE_PREFETCH_MULTIPLIER", "2")),
            provider_timeout=float(os.environ.get("BOOKENGINE_PROVIDER_TIMEOUT", "3.0")),
            similar_books_timeout=float(os.environ.get("BOOKENGINE_SIMILAR_TIMEOUT", "1.5")),
            store_workers=int(os.environ.get("BOOKENGINE_STORE_WORKERS", "8")),
            external_fallback_enabled=_env_bool("BOOKENGINE_EXTERNAL_FALLBACK", True),
            google_books_api_key=os.environ.get("GOOGLE_BOOKS_API_KEY") or None,
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.min_search_limit < 1:
            errors.append("Minimum search limit must be at least 1")
        if self.max_search_limit < self.min_search_limit:
            errors.append("Maximum search limit must not be below the minimum")
        if not (self.min_search_limit <= self.default_search_limit <= self.max_search_limit):
            errors.append("Default search limit must fall within [min, max]")
        if self.prefetch_multiplier < 1:
            errors.append("Prefetch multiplier must be at least 1")
        if self.provider_timeout <= 0 or self.similar_books_timeout <= 0:
            errors.append("Timeouts must be positive")
        if self.store_workers < 1:
            errors.append("Store worker pool needs at least one worker")

        # Check database directory is writable
        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
