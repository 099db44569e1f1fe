# ABOUTME: Settings for the lendery service, loaded from YAML with environment overrides.
# ABOUTME: Every tunable used by providers, enrichment, caching, and lending lives here.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DB_PATH = Path.home() / ".lendery" / "library.db"
CONFIG_ENV_VAR = "LENDERY_CONFIG"
DB_ENV_VAR = "LENDERY_DB"


@dataclass
class DatabaseConfig:
    """SQLite store location and lock wait."""

    path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    busy_timeout_seconds: float = 10.0


@dataclass
class ProviderConfig:
    """External metadata provider settings."""

    timeout_seconds: float = 9.0
    max_retries: int = 2
    retry_delay_seconds: float = 0.5
    min_request_interval: float = 0.1
    user_agent: str = "lendery/0.1.0"
    google_books_api_key: str | None = None
    google_books_api_key_env: str | None = "GOOGLE_BOOKS_API_KEY"

    def get_google_books_api_key(self) -> str | None:
        """Get the Google Books key from config or environment."""
        if self.google_books_api_key:
            return self.google_books_api_key
        if self.google_books_api_key_env:
            return os.environ.get(self.google_books_api_key_env) or None
        return None


@dataclass
class EnrichmentConfig:
    """Enrichment sweep thresholds and background trigger tuning."""

    background_batch_size: int = 300
    cooldown_seconds: float = 300.0
    early_accept_score: int = 25
    min_accept_score: int = 18
    results_per_query: int = 5


@dataclass
class CacheConfig:
    """Read cache lifetimes and size."""

    books_ttl_seconds: float = 20.0
    recommendations_ttl_seconds: float = 30.0
    max_entries: int = 512


@dataclass
class LendingConfig:
    """Lending and recommendation tuning."""

    due_estimate_wait_seconds: float = 1.2
    fallback_loan_days: int = 30
    recommendation_history: int = 40
    recommendation_pool: int = 200


@dataclass
class Settings:
    """Complete lendery configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    lending: LendingConfig = field(default_factory=LendingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Create settings from a dictionary (e.g., from YAML).

        Unknown keys are ignored; missing keys keep their defaults.
        """
        settings = cls()

        if "database" in data:
            db = data["database"] or {}
            settings.database = DatabaseConfig(
                path=Path(db.get("path", settings.database.path)).expanduser(),
                busy_timeout_seconds=float(db.get("busy_timeout_seconds", 10.0)),
            )

        if "providers" in data:
            prov = data["providers"] or {}
            settings.providers = ProviderConfig(
                timeout_seconds=float(prov.get("timeout_seconds", 9.0)),
                max_retries=int(prov.get("max_retries", 2)),
                retry_delay_seconds=float(prov.get("retry_delay_seconds", 0.5)),
                min_request_interval=float(prov.get("min_request_interval", 0.1)),
                user_agent=prov.get("user_agent", "lendery/0.1.0"),
                google_books_api_key=prov.get("google_books_api_key"),
                google_books_api_key_env=prov.get(
                    "google_books_api_key_env", "GOOGLE_BOOKS_API_KEY"
                ),
            )

        if "enrichment" in data:
            enr = data["enrichment"] or {}
            settings.enrichment = EnrichmentConfig(
                background_batch_size=int(enr.get("background_batch_size", 300)),
                cooldown_seconds=float(enr.get("cooldown_seconds", 300.0)),
                early_accept_score=int(enr.get("early_accept_score", 25)),
                min_accept_score=int(enr.get("min_accept_score", 18)),
                results_per_query=int(enr.get("results_per_query", 5)),
            )

        if "cache" in data:
            cache = data["cache"] or {}
            settings.cache = CacheConfig(
                books_ttl_seconds=float(cache.get("books_ttl_seconds", 20.0)),
                recommendations_ttl_seconds=float(
                    cache.get("recommendations_ttl_seconds", 30.0)
                ),
                max_entries=int(cache.get("max_entries", 512)),
            )

        if "lending" in data:
            lend = data["lending"] or {}
            settings.lending = LendingConfig(
                due_estimate_wait_seconds=float(lend.get("due_estimate_wait_seconds", 1.2)),
                fallback_loan_days=int(lend.get("fallback_loan_days", 30)),
                recommendation_history=int(lend.get("recommendation_history", 40)),
                recommendation_pool=int(lend.get("recommendation_pool", 200)),
            )

        return settings

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from a YAML file. A missing file yields defaults."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)


def load_settings(path: Path | None = None) -> Settings:
    """Resolve settings from an explicit path, $LENDERY_CONFIG, and $LENDERY_DB.

    The database path from the environment wins over the file's value.
    """
    config_path = path
    if config_path is None and os.environ.get(CONFIG_ENV_VAR):
        config_path = Path(os.environ[CONFIG_ENV_VAR])

    settings = Settings.from_yaml(config_path) if config_path else Settings()

    db_override = os.environ.get(DB_ENV_VAR)
    if db_override:
        settings.database.path = Path(db_override).expanduser()

    return settings
