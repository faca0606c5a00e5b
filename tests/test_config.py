"""Tests for the CrowdVine configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from crowdvine.config.loader import (
    apply_env_overrides,
    find_config_file,
    find_secrets_file,
    get_config_search_paths,
    get_secrets_search_paths,
    load_config,
    load_secrets,
    parse_env_file,
)
from crowdvine.config.schema import (
    CrowdvineConfig,
    GeocodingConfig,
    MembershipConfig,
    PaymentsConfig,
    PricingConfig,
    SecretsConfig,
    ServerConfig,
    UploadConfig,
)
from crowdvine.config.settings import Settings, get_settings, reset_settings


class TestSchemaDefaults:
    def test_storage_and_serving_defaults(self):
        config = CrowdvineConfig()
        assert config.database.mongodb_database == "crowdvine"
        assert config.server.cors_origins == []
        assert config.upload.allowed_extensions == ["csv", "xlsx"]

    def test_membership_defaults(self):
        config = MembershipConfig()
        assert config.invitation_expiry_days == 30
        assert config.reward_discount_percentage == 5

    def test_payments_default_to_stripe_in_sek(self):
        config = PaymentsConfig()
        assert (config.provider, config.currency, config.payment_deadline_days) == ("stripe", "sek", 7)

    def test_upload_config_bytes(self):
        assert UploadConfig(max_upload_mb=3).max_upload_bytes == 3 * 1024 * 1024

    def test_pricing_config_defaults(self):
        """Swedish VAT and alcohol tax are the defaults."""
        config = PricingConfig()
        assert config.currency == "SEK"
        assert config.vat_rate == 0.25
        assert config.alcohol_tax_cents == 2219
        assert config.bottles_per_box == 6

    @pytest.mark.parametrize("margin", [-5, 100, 120])
    def test_pricing_margin_validated(self, margin):
        with pytest.raises(ValidationError):
            PricingConfig(default_margin_percentage=margin)

    def test_geocoding_defaults_to_nominatim(self):
        config = GeocodingConfig()
        assert config.base_url.startswith("https://nominatim")
        assert "se" in config.country_codes

    def test_secrets_config_defaults(self):
        config = SecretsConfig()
        assert config.secret_key is None
        assert config.stripe_secret_key is None
        assert config.stripe_webhook_secret is None


class TestConfigSearchPaths:
    def test_config_search_paths_order(self):
        paths = get_config_search_paths()
        assert paths[0] == Path.cwd() / "config.toml"
        assert paths[1] == Path.home() / ".config" / "crowdvine" / "config.toml"
        assert paths[-1] == Path("/etc/crowdvine/config.toml")

    def test_secrets_search_paths_order(self):
        paths = get_secrets_search_paths()
        assert paths[0] == Path.cwd() / "secrets.env"
        assert paths[-1] == Path("/etc/crowdvine/secrets.env")


class TestLoadConfig:
    def test_load_config_from_file(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            """
app_name = "PACT"

[server]
port = 5000

[pricing]
vat_rate = 0.12

[geocoding]
enabled = false
"""
        )

        config = load_config(config_file)
        assert config.app_name == "PACT"
        assert config.server.port == 5000
        assert config.pricing.vat_rate == 0.12
        assert config.geocoding.enabled is False
        assert config.payments.payment_deadline_days == 7

    def test_env_beats_file(self, tmp_path):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[server]\nport = 5000\n")

        with patch.dict(os.environ, {"CROWDVINE_PORT": "6000"}):
            config = load_config(config_file)

        assert config.server.port == 6000


class TestEnvFileParsing:
    def test_parse_env_file_with_quotes_and_comments(self, tmp_path):
        env_file = tmp_path / "secrets.env"
        env_file.write_text(
            """
# Stripe
STRIPE_SECRET_KEY="sk_test_123"
STRIPE_WEBHOOK_SECRET='whsec_abc'

CROWDVINE_SECRET_KEY=plain value
not a pair
"""
        )

        result = parse_env_file(env_file)
        assert result == {
            "STRIPE_SECRET_KEY": "sk_test_123",
            "STRIPE_WEBHOOK_SECRET": "whsec_abc",
            "CROWDVINE_SECRET_KEY": "plain value",
        }


class TestEnvOverrides:
    def test_mongodb_shorthand_override(self):
        config_dict = {"database": {"mongodb_database": "from-file"}}

        with patch.dict(os.environ, {"CROWDVINE_MONGODB_URL": "mongodb://db.internal:27017"}):
            apply_env_overrides(config_dict)

        assert config_dict["database"] == {
            "mongodb_database": "from-file",
            "mongodb_url": "mongodb://db.internal:27017",
        }

    def test_apply_typed_overrides(self):
        config_dict = {"geocoding": {"enabled": True}}

        with patch.dict(
            os.environ,
            {
                "CROWDVINE_PRICING_VAT_RATE": "0.12",
                "CROWDVINE_PAYMENT_DEADLINE_DAYS": "3",
                "CROWDVINE_GEOCODING_ENABLED": "no",
            },
        ):
            apply_env_overrides(config_dict)

        assert config_dict["pricing"]["vat_rate"] == 0.12
        assert config_dict["payments"]["payment_deadline_days"] == 3
        assert config_dict["geocoding"]["enabled"] is False


class TestSecretsLoading:
    def test_load_secrets_from_file(self, tmp_path):
        secrets_file = tmp_path / "secrets.env"
        secrets_file.write_text(
            "CROWDVINE_SECRET_KEY=file-secret-key\nSTRIPE_SECRET_KEY=sk_test_file\n"
        )

        secrets = load_secrets(secrets_file)
        assert secrets.secret_key == "file-secret-key"
        assert secrets.stripe_secret_key == "sk_test_file"

    def test_load_secrets_env_override(self, tmp_path):
        """Environment variables override file secrets."""
        secrets_file = tmp_path / "secrets.env"
        secrets_file.write_text("STRIPE_WEBHOOK_SECRET=whsec_file\n")

        with patch.dict(os.environ, {"STRIPE_WEBHOOK_SECRET": "whsec_env"}):
            secrets = load_secrets(secrets_file)

        assert secrets.stripe_webhook_secret == "whsec_env"


class TestSettings:
    def setup_method(self):
        reset_settings()

    def test_settings_generates_secret_key(self):
        settings = Settings(config=CrowdvineConfig(), secrets=SecretsConfig())
        assert len(settings.secret_key) > 20

    def test_settings_property_accessors(self):
        config = CrowdvineConfig(
            app_name="PACT",
            server=ServerConfig(port=9000),
            pricing=PricingConfig(vat_rate=0.12, alcohol_tax_cents=2500),
            membership=MembershipConfig(reward_discount_percentage=10),
        )
        secrets = SecretsConfig(secret_key="k" * 32, stripe_webhook_secret="whsec_x")
        settings = Settings(config=config, secrets=secrets)

        assert settings.app_name == "PACT"
        assert settings.port == 9000
        assert (settings.vat_rate, settings.alcohol_tax_cents) == (0.12, 2500)
        assert settings.reward_discount_percentage == 10
        assert settings.payment_deadline_days == 7
        assert settings.stripe_webhook_secret == "whsec_x"
        assert settings.stripe_secret_key is None
        assert settings.max_upload_size_bytes == 10 * 1024 * 1024

    def test_get_settings_singleton(self):
        assert get_settings() is get_settings()

    def test_reset_settings_clears_cache(self):
        s1 = get_settings()
        reset_settings()
        assert get_settings() is not s1


class TestFindFiles:
    def test_find_config_file_in_cwd(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.toml"
        config_file.write_text("[server]\nport = 8000\n")

        monkeypatch.chdir(tmp_path)
        assert find_config_file() == config_file

    def test_find_secrets_file_in_cwd(self, tmp_path, monkeypatch):
        secrets_file = tmp_path / "secrets.env"
        secrets_file.write_text("CROWDVINE_SECRET_KEY=x\n")

        monkeypatch.chdir(tmp_path)
        assert find_secrets_file() == secrets_file
