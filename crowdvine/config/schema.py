"""Pydantic models for CrowdVine configuration.

These models define the structure of config.toml and secrets.env files.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 2
    debug: bool = False
    enforce_https: bool = False
    rate_limit_per_minute: int = 100
    # CORS configuration - empty list means same-origin only
    cors_origins: list[str] = []


class DatabaseConfig(BaseModel):
    """MongoDB database configuration."""

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "crowdvine"
    # Connection pool settings
    min_pool_size: int = 10
    max_pool_size: int = 100


class UploadConfig(BaseModel):
    """Bulk upload configuration."""

    max_upload_mb: int = 10
    allowed_extensions: list[str] = ["csv", "xlsx"]

    @property
    def max_upload_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_mb * 1024 * 1024


class AuthConfig(BaseModel):
    """Authentication configuration."""

    enabled: bool = True
    registration_enabled: bool = False
    email_verification_required: bool = True
    auth_rate_limit_per_minute: int = 30
    access_request_rate_limit: str = "5/15minutes"
    signup_rate_limit: str = "3/hour"


class EmailConfig(BaseModel):
    """Email configuration."""

    backend: Literal["console", "ses"] = "console"
    from_address: str = "hello@pactwines.com"
    from_name: str = "PACT Wines"
    frontend_url: str = "http://localhost:3000"
    aws_region: str = "eu-west-1"


class AnalyticsConfig(BaseModel):
    """Analytics configuration."""

    posthog_enabled: bool = False
    posthog_host: str = "https://eu.posthog.com"
    posthog_debug: bool = False


class PricingConfig(BaseModel):
    """Pricing defaults used when a wine carries no explicit values."""

    currency: str = "SEK"
    vat_rate: float = 0.25
    alcohol_tax_cents: int = 2219
    default_margin_percentage: float = 10.0
    default_b2b_margin_percentage: float = 15.0
    bottles_per_box: int = 6

    @field_validator("default_margin_percentage", "default_b2b_margin_percentage")
    @classmethod
    def validate_margin(cls, v: float) -> float:
        if v < 0 or v >= 100:
            raise ValueError("margin must be between 0 and 100 (exclusive)")
        return v


class PaymentsConfig(BaseModel):
    """Payment provider configuration."""

    provider: Literal["stripe"] = "stripe"
    currency: str = "sek"
    payment_deadline_days: int = 7


class GeocodingConfig(BaseModel):
    """Geocoding (Nominatim) configuration."""

    enabled: bool = True
    base_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "CrowdVine/1.0"
    country_codes: list[str] = ["se", "no", "dk", "fi", "fr", "de", "gb", "es", "it"]
    timeout_seconds: float = 10.0


class MembershipConfig(BaseModel):
    """Membership and invitation configuration."""

    invitation_expiry_days: int = 30
    reward_discount_percentage: int = 5
    reward_discount_valid_days: int = 30


class CrowdvineConfig(BaseModel):
    """Main CrowdVine configuration loaded from config.toml."""

    app_name: str = "CrowdVine"
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    membership: MembershipConfig = Field(default_factory=MembershipConfig)


class SecretsConfig(BaseModel):
    """Secrets loaded from secrets.env file.

    These are sensitive values that should not be stored in config.toml.
    """

    secret_key: str | None = None
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    posthog_api_key: str | None = None
