"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Disclosure Manager Backend"
    debug: bool = False
    api_version: str = "v1"

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""  # anon key for client operations
    supabase_service_key: str = ""  # service role key for admin operations
    supabase_jwt_secret: str = ""  # JWT secret for local token validation

    # Redis (case locks)
    redis_url: str = "redis://localhost:6379/0"

    # Banking extraction (OpenAI)
    openai_api_key: str = ""
    openai_extraction_model: str = "gpt-4o-mini"
    extraction_max_pages: int = 3           # Statement header pages sent to the model
    extraction_max_chars: int = 12000       # Hard cap on extracted text per request
    extraction_timeout: float = 30.0        # Seconds

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # ==========================================================================
    # Numbering and case locking
    # ==========================================================================
    case_lock_timeout_seconds: int = 30              # Lock auto-expires after this
    case_lock_blocking_timeout_seconds: float = 5.0  # Max wait to acquire the lock
    numbering_max_attempts: int = 4                  # Read-compute-write attempts on conflict
    numbering_retry_base_delay: float = 0.1          # Exponential backoff multiplier (seconds)
    numbering_retry_max_delay: float = 2.0

    # ==========================================================================
    # Disclosure reports
    # ==========================================================================
    disclosure_new_marker: str = "*"
    disclosure_rule_reference: str = "rule 216(2)(a) of the Family Court Rules 2021 (WA)"
    disclosure_download_url_expiry: int = 3600       # Signed URL lifetime (seconds)

    # ==========================================================================
    # Storage and uploads
    # ==========================================================================
    storage_bucket: str = "documents"
    file_size_max_mb: int = 50               # Maximum file size in MB (per file)

    # ==========================================================================
    # Rate limiting (slowapi), requests per minute
    # ==========================================================================
    rate_limit_default: int = 100        # Standard CRUD
    rate_limit_critical: int = 20        # Uploads with extraction, report generation
    rate_limit_readonly: int = 120       # Listings
    rate_limit_health: int = 300
    rate_limit_use_redis: bool = False   # Share limits across instances via redis_url

    # Invitations
    invitation_expiry_days: int = 7

    @property
    def is_configured(self) -> bool:
        """Check if essential configuration is present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def is_openai_configured(self) -> bool:
        """Check if OpenAI API is configured for banking extraction."""
        return bool(self.openai_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
