"""Configuration loading for shipit."""

from shipit.config.loader import DEFAULT_CONFIG_FILE, ConfigLoader

__all__ = ["DEFAULT_CONFIG_FILE", "ConfigLoader"]
