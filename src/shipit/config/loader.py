"""Configuration loader for shipit.

Reads ``shipit.yaml``, substitutes environment variables and validates the
result against :class:`~shipit.models.config.ShipitConfig`.
"""

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from shipit.config.validator import format_config_errors
from shipit.lib.errors import ConfigError
from shipit.models.config import ShipitConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "shipit.yaml"

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str, env: Mapping[str, str] | None = None) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references in text.

    Args:
        text: Raw configuration text
        env: Environment mapping (defaults to ``os.environ``)

    Returns:
        Text with all references substituted

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """
    environ = os.environ if env is None else env

    def replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        if name in environ:
            return environ[name]
        if default is not None:
            return default
        raise ConfigError(
            field=name,
            message=f"Environment variable '{name}' is not set",
        )

    return ENV_VAR_PATTERN.sub(replace, text)


class ConfigLoader:
    """Loads and validates ``shipit.yaml``.

    This class handles:
    - Parsing YAML with environment variable substitution
    - Validating against the ShipitConfig schema
    - Converting validation errors into human-readable messages
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        """Initialize the loader with an optional environment override."""
        self._env = env

    def parse_yaml(self, file_path: str | Path) -> dict[str, Any]:
        """Parse a YAML file and return its contents as a dictionary.

        Raises:
            ConfigError: If the file is missing, unreadable or not valid YAML
        """
        path = Path(file_path)
        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                "config_file",
                f"Configuration file not found at {path}. "
                "Run from the project root or pass --config.",
            ) from e

        substituted = substitute_env_vars(raw_text, self._env)
        try:
            content = yaml.safe_load(substituted)
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {path}: {e}",
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "yaml_parse",
                f"Top level of {path} must be a mapping",
            )
        return content

    def load(self, file_path: str | Path = DEFAULT_CONFIG_FILE) -> ShipitConfig:
        """Load and validate the configuration file.

        Raises:
            ConfigError: If parsing or validation fails
        """
        data = self.parse_yaml(file_path)
        try:
            config = ShipitConfig.model_validate(data)
        except PydanticValidationError as e:
            messages = format_config_errors(e)
            raise ConfigError("schema", "\n".join(messages)) from e

        logger.debug(
            f"Loaded config for app '{config.app.name}' "
            f"with stages: {', '.join(sorted(config.stages)) or 'none'}"
        )
        return config
