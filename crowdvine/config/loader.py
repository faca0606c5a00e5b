"""Configuration loader for CrowdVine.

Loads configuration from TOML files and secrets from .env files.
Environment variables can override any configuration value.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from crowdvine.config.schema import CrowdvineConfig, SecretsConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "CROWDVINE"

_INT_KEYS = (
    "port",
    "workers",
    "max_upload_mb",
    "auth_rate_limit_per_minute",
    "rate_limit_per_minute",
    "alcohol_tax_cents",
    "payment_deadline_days",
    "invitation_expiry_days",
)
_FLOAT_KEYS = ("vat_rate", "default_margin_percentage", "timeout_seconds")
_BOOL_KEYS = (
    "debug",
    "enforce_https",
    "enabled",
    "registration_enabled",
    "email_verification_required",
    "posthog_enabled",
    "posthog_debug",
)

_SECRET_KEYS = {
    f"{ENV_PREFIX}_SECRET_KEY": "secret_key",
    "STRIPE_SECRET_KEY": "stripe_secret_key",
    "STRIPE_WEBHOOK_SECRET": "stripe_webhook_secret",
    "AWS_ACCESS_KEY_ID": "aws_access_key_id",
    "AWS_SECRET_ACCESS_KEY": "aws_secret_access_key",
    f"{ENV_PREFIX}_POSTHOG_API_KEY": "posthog_api_key",
}


def _search_dirs() -> list[Path]:
    """Directories searched for config.toml and secrets.env, first match wins.

    The working directory comes first for development, then the user config
    directory, the production install under /opt and finally /etc.
    """
    return [
        Path.cwd(),
        Path.home() / ".config" / "crowdvine",
        Path("/opt/crowdvine"),
        Path("/etc/crowdvine"),
    ]


def get_config_search_paths() -> list[Path]:
    return [d / "config.toml" for d in _search_dirs()]


def get_secrets_search_paths() -> list[Path]:
    return [d / "secrets.env" for d in _search_dirs()]


def _first_existing(paths: list[Path]) -> Path | None:
    found = next((p for p in paths if p.is_file()), None)
    if found:
        logger.debug("Using %s", found)
    return found


def find_config_file() -> Path | None:
    return _first_existing(get_config_search_paths())


def find_secrets_file() -> Path | None:
    return _first_existing(get_secrets_search_paths())


def load_toml_file(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def parse_env_file(path: Path) -> dict[str, str]:
    """Read KEY=value pairs, skipping blanks and # comments and unquoting values."""
    env_vars: dict[str, str] = {}
    with open(path) as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = (part.strip() for part in line.split("=", 1))
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]
            env_vars[key] = value
    return env_vars


def apply_env_overrides(config_dict: dict[str, Any], prefix: str = ENV_PREFIX) -> None:
    """Apply environment variable overrides to configuration dictionary.

    Environment variables are mapped as follows:
    - CROWDVINE_SERVER_HOST -> config_dict["server"]["host"]
    - CROWDVINE_MONGODB_URL -> config_dict["database"]["mongodb_url"]
    - etc.

    Note: This modifies config_dict in place.
    """
    env_mappings = {
        # Server
        f"{prefix}_SERVER_HOST": ("server", "host"),
        f"{prefix}_SERVER_PORT": ("server", "port"),
        f"{prefix}_SERVER_WORKERS": ("server", "workers"),
        f"{prefix}_DEBUG": ("server", "debug"),
        f"{prefix}_HOST": ("server", "host"),
        f"{prefix}_PORT": ("server", "port"),
        f"{prefix}_RATE_LIMIT_PER_MINUTE": ("server", "rate_limit_per_minute"),
        # Database
        f"{prefix}_DATABASE_MONGODB_URL": ("database", "mongodb_url"),
        f"{prefix}_DATABASE_MONGODB_DATABASE": ("database", "mongodb_database"),
        f"{prefix}_MONGODB_URL": ("database", "mongodb_url"),
        f"{prefix}_MONGODB_DATABASE": ("database", "mongodb_database"),
        # Upload
        f"{prefix}_UPLOAD_MAX_UPLOAD_MB": ("upload", "max_upload_mb"),
        # Auth
        f"{prefix}_AUTH_ENABLED": ("auth", "enabled"),
        f"{prefix}_REGISTRATION_ENABLED": ("auth", "registration_enabled"),
        f"{prefix}_AUTH_EMAIL_VERIFICATION_REQUIRED": (
            "auth",
            "email_verification_required",
        ),
        # Email
        f"{prefix}_EMAIL_BACKEND": ("email", "backend"),
        f"{prefix}_EMAIL_FROM_ADDRESS": ("email", "from_address"),
        f"{prefix}_EMAIL_AWS_REGION": ("email", "aws_region"),
        f"{prefix}_FRONTEND_URL": ("email", "frontend_url"),
        # Analytics
        f"{prefix}_POSTHOG_ENABLED": ("analytics", "posthog_enabled"),
        f"{prefix}_POSTHOG_HOST": ("analytics", "posthog_host"),
        # Pricing
        f"{prefix}_PRICING_CURRENCY": ("pricing", "currency"),
        f"{prefix}_PRICING_VAT_RATE": ("pricing", "vat_rate"),
        f"{prefix}_PRICING_ALCOHOL_TAX_CENTS": ("pricing", "alcohol_tax_cents"),
        f"{prefix}_PRICING_DEFAULT_MARGIN": ("pricing", "default_margin_percentage"),
        # Payments
        f"{prefix}_PAYMENT_DEADLINE_DAYS": ("payments", "payment_deadline_days"),
        # Geocoding
        f"{prefix}_GEOCODING_ENABLED": ("geocoding", "enabled"),
        f"{prefix}_GEOCODING_BASE_URL": ("geocoding", "base_url"),
    }

    for env_var, path in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            section, key = path
            config_dict.setdefault(section, {})

            if key in _INT_KEYS:
                config_dict[section][key] = int(value)
            elif key in _FLOAT_KEYS:
                config_dict[section][key] = float(value)
            elif key in _BOOL_KEYS:
                config_dict[section][key] = value.lower() in ("true", "1", "yes")
            else:
                config_dict[section][key] = value


def load_secrets(secrets_file: Path | None = None) -> SecretsConfig:
    """Load secrets from environment variables and optional secrets.env file.

    Environment variables take precedence over file values.
    """
    secrets_dict: dict[str, str | None] = {}

    if secrets_file is None:
        secrets_file = find_secrets_file()

    if secrets_file and secrets_file.exists():
        logger.info("Loading secrets from: %s", secrets_file)
        file_secrets = parse_env_file(secrets_file)
        for file_key, config_key in _SECRET_KEYS.items():
            if file_key in file_secrets:
                secrets_dict[config_key] = file_secrets[file_key]

    for env_var, config_key in _SECRET_KEYS.items():
        value = os.environ.get(env_var)
        if value:
            secrets_dict[config_key] = value

    return SecretsConfig(**secrets_dict)


def load_config(config_file: Path | None = None) -> CrowdvineConfig:
    """Load configuration from TOML file with environment variable overrides.

    Args:
        config_file: Optional path to config file. If not provided,
                     searches default locations.

    Returns:
        CrowdvineConfig instance with all settings loaded.
    """
    config_dict: dict[str, Any] = {}

    if config_file is None:
        config_file = find_config_file()

    if config_file and config_file.exists():
        logger.info("Loading config from: %s", config_file)
        config_dict = load_toml_file(config_file)
    else:
        logger.info("No config file found, using defaults with env overrides")

    apply_env_overrides(config_dict)

    return CrowdvineConfig(**config_dict)
