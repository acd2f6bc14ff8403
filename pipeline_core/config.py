"""
Pipeline Configuration Management

Centralizes all configuration for the tenant site pipeline.
Supports multiple environments (local, dev, prod) with proper secret management.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Environment(str, Enum):
    """Supported deployment environments."""

    LOCAL = "local"
    DEV = "dev"
    PROD = "prod"


class PipelineConfig(BaseSettings):
    """
    Pipeline-wide configuration settings.

    Loads from environment variables with .env file support.
    All provider tokens should be injected via environment in production.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(default=Environment.LOCAL)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Domains
    root_domain: str = Field(default="example.com")
    tenant_root_domain: str = Field(default="", description="Defaults to preview.<root_domain>")
    legacy_tenant_root_domain: str = Field(default="", description="Defaults to <root_domain>")

    # DNS provider (Cloudflare)
    cloudflare_api_token: Optional[str] = Field(default=None)
    cloudflare_zone_id: Optional[str] = Field(default=None)
    cloudflare_api_base: str = Field(default="https://api.cloudflare.com/client/v4")
    cf_target_cname: str = Field(default="cname.vercel-dns.com")
    dns_ttl: int = Field(default=1, description="1 means automatic")

    # Hosting provider (Vercel)
    vercel_token: Optional[str] = Field(default=None)
    vercel_project_id: Optional[str] = Field(default=None)
    vercel_team_slug: Optional[str] = Field(default=None)
    vercel_api_base: str = Field(default="https://api.vercel.com")

    # Record store
    platform_mongo_db_url: str = Field(default="mongodb://localhost:27017")
    platform_mongo_db_name: str = Field(default="tenant_site_pipeline")
    tenant_collection: str = Field(default="tenant_records")
    request_id_prefix: str = Field(default="rwz_")
    lease_ttl_seconds: int = Field(default=900, ge=1)

    # Notifications
    telegram_bot_token: Optional[str] = Field(default=None)
    telegram_chat_id: Optional[str] = Field(default=None)
    telegram_api_base: str = Field(default="https://api.telegram.org")

    # Object storage (S3-compatible, e.g. R2)
    r2_enabled: bool = Field(default=False)
    r2_account_id: Optional[str] = Field(default=None)
    r2_bucket: Optional[str] = Field(default=None)
    r2_access_key_id: Optional[str] = Field(default=None)
    r2_secret_access_key: Optional[str] = Field(default=None)
    r2_endpoint: Optional[str] = Field(default=None)
    r2_key_prefix: str = Field(default="sites")

    # Build marker
    build_marker_name: str = Field(default="rewebz-build-marker")
    build_marker_prefix: str = Field(default="rwz-live-v2")

    # Retry and polling
    http_timeout_seconds: float = Field(default=15.0, gt=0)
    http_max_attempts: int = Field(default=3, ge=1)
    http_retry_wait_seconds: float = Field(default=1.0, ge=0)
    http_retry_max_wait_seconds: float = Field(default=10.0, ge=0)
    http_retry_jitter_seconds: float = Field(default=0.5, ge=0)
    probe_delay_seconds: float = Field(default=2.5, ge=0)
    domain_poll_interval_seconds: float = Field(default=5.0, ge=0)
    promotion_timeout_seconds: float = Field(default=600.0, ge=0)
    source_check_tries: int = Field(default=3, ge=1)
    prod_check_tries: int = Field(default=4, ge=1)
    sitehtml_path: str = Field(default="/api/sitehtml")
    promotion_require_record: bool = Field(default=True)

    # Runners
    dns_max_per_run: int = Field(default=50, ge=1)
    design_max_per_run: int = Field(default=1, ge=1)
    dev_max_per_run: int = Field(default=1, ge=1)
    verify_max_per_run: int = Field(default=50, ge=1)
    audit_error_max_chars: int = Field(default=400, ge=20)

    # Content agent (design / build)
    content_llm_provider: str = Field(default="anthropic")
    anthropic_api_key: Optional[str] = Field(default=None)
    openai_api_key: Optional[str] = Field(default=None)
    anthropic_model: str = Field(default="claude-3-5-sonnet-20241022")
    openai_model: str = Field(default="gpt-4o")
    content_max_tokens: int = Field(default=8000, ge=256)

    @field_validator("root_domain", "tenant_root_domain", "legacy_tenant_root_domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        """Lower-case domains and drop a trailing dot."""
        return v.strip().lower().rstrip(".")

    @field_validator("content_llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Ensure the content provider is supported."""
        v = v.strip().lower()
        if v not in ("anthropic", "openai"):
            raise ValueError("content_llm_provider must be 'anthropic' or 'openai'")
        return v

    @model_validator(mode="after")
    def fill_domain_defaults(self) -> "PipelineConfig":
        """Derive tenant domains from the root domain when unset."""
        if not self.tenant_root_domain:
            self.tenant_root_domain = f"preview.{self.root_domain}"
        if not self.legacy_tenant_root_domain:
            self.legacy_tenant_root_domain = self.root_domain
        if self.environment == Environment.PROD:
            missing = self._missing(
                cloudflare_api_token=self.cloudflare_api_token,
                cloudflare_zone_id=self.cloudflare_zone_id,
                vercel_token=self.vercel_token,
                vercel_project_id=self.vercel_project_id,
            )
            if missing:
                raise ValueError(f"Missing provider settings in prod: {', '.join(missing)}")
        return self

    @staticmethod
    def _missing(**values: Optional[str]) -> list[str]:
        return [name.upper() for name, value in values.items() if not value]

    def tenant_suffixes(self) -> list[str]:
        """Distinct tenant host suffixes, longest first."""
        candidates = {
            self.tenant_root_domain,
            self.legacy_tenant_root_domain,
            self.root_domain,
            f"preview.{self.root_domain}",
        }
        return sorted((s for s in candidates if s), key=len, reverse=True)

    def production_hostname(self, slug: str) -> str:
        """Production hostname for a tenant slug."""
        return f"{slug}.{self.root_domain}"

    def preview_hostname(self, slug: str) -> str:
        """Preview hostname for a tenant slug."""
        return f"{slug}.{self.tenant_root_domain}"

    def r2_endpoint_url(self) -> Optional[str]:
        """Explicit endpoint, or the account endpoint derived from the account id."""
        if self.r2_endpoint:
            return self.r2_endpoint
        if self.r2_account_id:
            return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"
        return None

    @property
    def r2_ready(self) -> bool:
        """Object storage is enabled and fully configured."""
        return self.r2_enabled and bool(
            self.r2_bucket
            and self.r2_access_key_id
            and self.r2_secret_access_key
            and self.r2_endpoint_url()
        )

    def require_dns(self) -> None:
        """Raise if the DNS provider is not configured."""
        missing = self._missing(
            cloudflare_api_token=self.cloudflare_api_token,
            cloudflare_zone_id=self.cloudflare_zone_id,
        )
        if missing:
            raise ConfigurationError(f"Missing Cloudflare envs: {' / '.join(missing)}")

    def require_hosting(self) -> None:
        """Raise if the hosting provider is not configured."""
        missing = self._missing(
            vercel_token=self.vercel_token,
            vercel_project_id=self.vercel_project_id,
        )
        if missing:
            raise ConfigurationError(f"Missing Vercel envs: {' / '.join(missing)}")

    @property
    def telegram_enabled(self) -> bool:
        """Check if Telegram notifications are configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PROD

    @property
    def is_local(self) -> bool:
        """Check if running in local development environment."""
        return self.environment == Environment.LOCAL


@lru_cache()
def get_config() -> PipelineConfig:
    """
    Get cached pipeline configuration.

    Uses lru_cache to ensure config is loaded only once.
    """
    return PipelineConfig()
