"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="residencial-access-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for privileged backend operations")
    supabase_publishable_key: str = Field(
        default="",
        description="Supabase publishable key, used with a caller JWT for RLS-scoped queries",
    )
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")
    supabase_jwt_audience: str = Field(default="authenticated", description="Expected 'aud' claim on access tokens")

    # Email (Resend)
    resend_api_key: str = Field(default="", description="Resend API key for sending emails")
    email_from_address: str = Field(
        default="Residencial <noreply@residencial.app>",
        description="From address for transactional emails",
    )

    # Frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Frontend application URL used to build invitation deep links",
    )

    # Localization
    supported_locales: str = Field(default="es,pt,en", description="Comma-separated list of supported locales")
    default_locale: str = Field(default="es", description="Locale used when none can be negotiated")

    # Invitations
    invitation_expiry_days: int = Field(default=7, description="Lifetime of a personal invitation in days")
    invitation_token_bytes: int = Field(default=32, description="Random bytes behind each invitation token")

    # Rate limiting (public token endpoints)
    rate_limit_anonymous_requests: int = Field(default=20, description="Requests per window for anonymous callers")
    rate_limit_authenticated_requests: int = Field(default=60, description="Requests per window for signed-in callers")
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window in seconds")

    # Request hygiene
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    @model_validator(mode="after")
    def check_default_locale(self) -> "Settings":
        """Make sure the default locale is one of the supported locales."""
        if self.default_locale not in self.supported_locales_list:
            raise ValueError(
                f"default_locale '{self.default_locale}' is not in supported_locales ({self.supported_locales})"
            )
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def supported_locales_list(self) -> list[str]:
        """Parse supported locales string into a list."""
        return [locale.strip().lower() for locale in self.supported_locales.split(",") if locale.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
