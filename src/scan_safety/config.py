"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from scan_safety.domain.restrictions import SubjectKind

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    openfoodfacts_base_url: str = "https://world.openfoodfacts.org"
    openfoodfacts_enabled: bool = True
    scan_debounce_seconds: float = 0.5
    scan_cooldown_seconds: float = 2.0
    lookup_timeout_seconds: float = 10.0
    history_capacity: int = 10
    product_cache_ttl_seconds: int = 3600
    risk_records_ttl_seconds: int = 3600
    debug: bool = False
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def parse_subject_kind(raw: str | None) -> SubjectKind | None:
    """Parse a subject kind such as ``user`` or ``family-member``."""
    if raw is None:
        return None
    cleaned = raw.strip().lower().replace("-", "_")
    for kind in SubjectKind:
        if kind.value == cleaned:
            return kind
    return None
