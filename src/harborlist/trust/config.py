"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HARBORLIST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Service
    service_name: str = "harborlist-trust"
    environment: Literal["local", "development", "staging", "production"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Identity domains
    domains_file: Path = Field(default=Path("config/domains.yaml"))
    jwks_cache_ttl_seconds: int = 3600  # 1 hour

    # Authorizer
    authorizer_cache_enabled: bool = True
    authorizer_cache_maxsize: int = 10000
    authorizer_cache_ttl_seconds: int = 300  # 5 minutes
    authorizer_timeout_ms: int = 250
    edge_secret_required: bool = False
    edge_secret_header: str = "x-auth-secret"
    edge_secret_cache_ttl_seconds: int = 60

    # Edge provider
    edge_ipv4_url: str = "https://www.cloudflare.com/ips-v4"
    edge_ipv6_url: str = "https://www.cloudflare.com/ips-v6"
    edge_source_name: str = "cloudflare"

    # Synchronizer
    scheduler_enabled: bool = False
    sync_interval_seconds: int = 7 * 24 * 3600
    grace_seconds: int = 900  # 15 minutes
    sync_step_timeout_seconds: float = 30.0
    lease_ttl_seconds: int = 3600
    stall_alert_threshold: int = 3

    # Trust store
    store_backend: Literal["memory", "dynamodb"] = "memory"
    store_table_name: str = "harborlist-edge-trust"

    # AWS origins
    aws_region: str = "us-east-1"
    aws_account_id: str = ""
    frontend_bucket_name: str | None = None
    rest_api_id: str | None = None
    rest_api_stage: str | None = None  # redeployed after a policy change

    # Audit
    audit_enabled: bool = True
    audit_log_claims: bool = False  # raw claims may carry PII

    @property
    def authorizer_timeout_seconds(self) -> float:
        return self.authorizer_timeout_ms / 1000.0


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Backward-compatible alias for the module-level settings singleton."""
    return settings
