"""TOML configuration, secrets.env secrets and CROWDVINE_* environment overrides.

Application code reads values through the lazy ``settings`` proxy; tests call
``reset_settings()`` to force a reload.
"""

from crowdvine.config.schema import CrowdvineConfig, SecretsConfig
from crowdvine.config.settings import get_settings, reset_settings, settings

__all__ = ["CrowdvineConfig", "SecretsConfig", "get_settings", "reset_settings", "settings"]
