"""Application configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


# Built-in demo tenants: slugs plus their UUIDs so id-based lookups match too
DEFAULT_DEMO_TENANT_IDS = (
    "demo-jumbo",
    "demo-hitapes",
    "c1a2b3c4-d5e6-4f7a-8b9c-0d1e2f3a4b5c",
    "d2e3f4a5-b6c7-4d8e-9f0a-1b2c3d4e5f6a",
)


class StoreScope(str, Enum):
    """Live store instances that can be configured."""

    PROD = "prod"
    DEMO = "demo"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase (live store for real tenants)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Supabase (live store for demo tenants)
    demo_supabase_url: str = ""
    demo_supabase_service_role_key: str = ""

    # Demo tenants (added to the built-in ones, never replacing them)
    demo_tenant_ids: str = ""

    # Embedded fixture dataset
    fixture_data_dir: str = "data/fixtures"
    exclude_dev_sessions: bool = True

    # Application
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8080
    log_level: str = "INFO"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:8080"

    # Rate limiting
    rate_limit_per_minute: int = 60

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def demo_tenant_id_set(self) -> frozenset[str]:
        extra = [tid.strip() for tid in self.demo_tenant_ids.split(",") if tid.strip()]
        return frozenset(tid.lower() for tid in (*DEFAULT_DEMO_TENANT_IDS, *extra))

    def live_store_credentials(self, scope: StoreScope) -> tuple[str, str]:
        """Return (url, service key) for a live store scope."""
        if scope == StoreScope.DEMO:
            return self.demo_supabase_url, self.demo_supabase_service_role_key
        return self.supabase_url, self.supabase_service_role_key


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def is_demo_tenant(tenant_id: str | None) -> bool:
    """Check whether a tenant is classified as a demo tenant."""
    return (tenant_id or "").lower() in get_settings().demo_tenant_id_set


def is_live_store_configured(scope: StoreScope = StoreScope.PROD) -> bool:
    """Check whether both URL and service key are set for a live store."""
    url, key = get_settings().live_store_credentials(scope)
    return bool(url and key)
