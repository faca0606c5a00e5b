"""Flat, lazily loaded view over the CrowdVine configuration and secrets.

Callers read ``settings.vat_rate`` or ``settings.stripe_secret_key`` instead of
walking the nested ``CrowdvineConfig`` sections.
"""

import logging
import secrets as secrets_module

from crowdvine.config.loader import load_config, load_secrets
from crowdvine.config.schema import CrowdvineConfig, SecretsConfig

logger = logging.getLogger(__name__)


class Settings:
    """Read-only accessors for config.toml values, secrets and env overrides."""

    def __init__(
        self,
        config: CrowdvineConfig | None = None,
        secrets: SecretsConfig | None = None,
    ):
        self._config = config or load_config()
        self._secrets = secrets or load_secrets()

        if not self._secrets.secret_key:
            self._secrets.secret_key = secrets_module.token_urlsafe(32)
            logger.warning(
                "SECURITY WARNING: No secret key configured. "
                "A random secret key has been generated. JWT tokens will be invalidated "
                "when the server restarts. Set CROWDVINE_SECRET_KEY for production use."
            )

    @property
    def config(self) -> CrowdvineConfig:
        """Get the full configuration object."""
        return self._config

    @property
    def secrets(self) -> SecretsConfig:
        """Get the secrets configuration object."""
        return self._secrets

    # Application
    @property
    def app_name(self) -> str:
        return self._config.app_name

    @property
    def debug(self) -> bool:
        return self._config.server.debug

    # Server
    @property
    def host(self) -> str:
        return self._config.server.host

    @property
    def port(self) -> int:
        return self._config.server.port

    @property
    def workers(self) -> int:
        return self._config.server.workers

    @property
    def enforce_https(self) -> bool:
        return self._config.server.enforce_https

    @property
    def rate_limit_per_minute(self) -> int:
        return self._config.server.rate_limit_per_minute

    @property
    def cors_origins(self) -> list[str]:
        return self._config.server.cors_origins

    # Database
    @property
    def mongodb_url(self) -> str:
        return self._config.database.mongodb_url

    @property
    def mongodb_database(self) -> str:
        return self._config.database.mongodb_database

    @property
    def min_pool_size(self) -> int:
        return self._config.database.min_pool_size

    @property
    def max_pool_size(self) -> int:
        return self._config.database.max_pool_size

    # Upload
    @property
    def max_upload_size_mb(self) -> int:
        return self._config.upload.max_upload_mb

    @property
    def max_upload_size_bytes(self) -> int:
        return self._config.upload.max_upload_bytes

    @property
    def allowed_upload_extensions(self) -> list[str]:
        return self._config.upload.allowed_extensions

    # Auth
    @property
    def auth_enabled(self) -> bool:
        return self._config.auth.enabled

    @property
    def registration_enabled(self) -> bool:
        return self._config.auth.registration_enabled

    @property
    def email_verification_required(self) -> bool:
        return self._config.auth.email_verification_required

    @property
    def auth_rate_limit_per_minute(self) -> int:
        return self._config.auth.auth_rate_limit_per_minute

    @property
    def access_request_rate_limit(self) -> str:
        return self._config.auth.access_request_rate_limit

    @property
    def signup_rate_limit(self) -> str:
        return self._config.auth.signup_rate_limit

    # Email
    @property
    def email_backend(self) -> str:
        return self._config.email.backend

    @property
    def email_sender(self) -> str:
        return self._config.email.from_address

    @property
    def email_sender_name(self) -> str:
        return self._config.email.from_name

    @property
    def frontend_url(self) -> str:
        return self._config.email.frontend_url

    @property
    def aws_region(self) -> str:
        return self._config.email.aws_region

    # Analytics
    @property
    def posthog_enabled(self) -> bool:
        return self._config.analytics.posthog_enabled

    @property
    def posthog_host(self) -> str:
        return self._config.analytics.posthog_host

    @property
    def posthog_debug(self) -> bool:
        return self._config.analytics.posthog_debug

    @property
    def posthog_api_key(self) -> str | None:
        return self._secrets.posthog_api_key

    # Pricing
    @property
    def currency(self) -> str:
        return self._config.pricing.currency

    @property
    def vat_rate(self) -> float:
        return self._config.pricing.vat_rate

    @property
    def alcohol_tax_cents(self) -> int:
        return self._config.pricing.alcohol_tax_cents

    @property
    def default_margin_percentage(self) -> float:
        return self._config.pricing.default_margin_percentage

    @property
    def default_b2b_margin_percentage(self) -> float:
        return self._config.pricing.default_b2b_margin_percentage

    @property
    def bottles_per_box(self) -> int:
        return self._config.pricing.bottles_per_box

    # Payments
    @property
    def payment_currency(self) -> str:
        return self._config.payments.currency

    @property
    def payment_deadline_days(self) -> int:
        return self._config.payments.payment_deadline_days

    # Membership
    @property
    def invitation_expiry_days(self) -> int:
        return self._config.membership.invitation_expiry_days

    @property
    def reward_discount_percentage(self) -> int:
        return self._config.membership.reward_discount_percentage

    @property
    def reward_discount_valid_days(self) -> int:
        return self._config.membership.reward_discount_valid_days

    # Secrets
    @property
    def secret_key(self) -> str:
        return self._secrets.secret_key or ""

    @property
    def stripe_secret_key(self) -> str | None:
        return self._secrets.stripe_secret_key

    @property
    def stripe_webhook_secret(self) -> str | None:
        return self._secrets.stripe_webhook_secret

    @property
    def aws_access_key_id(self) -> str | None:
        return self._secrets.aws_access_key_id

    @property
    def aws_secret_access_key(self) -> str | None:
        return self._secrets.aws_secret_access_key


# Global settings instance - lazily initialized
_settings: Settings | None = None


def get_settings() -> Settings:
    """Load settings on first use and return the cached instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access reloads them."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Proxy object that lazily loads settings on first access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)

    def __repr__(self) -> str:
        return repr(get_settings())


settings = _SettingsProxy()
