"""Secrets collaborator: hash, decrypt and materialize the stage's secrets.

Encrypted secrets live in ``.shipit/secrets/<stage>.age`` in the project.
Decryption shells out to the ``age`` CLI with the identity from
``SHIPIT_AGE_KEY`` or ``~/.config/shipit/keys/<app>.key``.
"""

from __future__ import annotations

import hashlib
import io
import os
import subprocess  # nosec B404
import tempfile
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values

from shipit.lib.errors import SecretsError
from shipit.lib.logging_config import get_logger
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)

AGE_KEY_ENV = "SHIPIT_AGE_KEY"
ENV_FILE_MODE = 0o600


def secrets_dir(project_root: Path) -> Path:
    """Directory holding encrypted secrets: ``.shipit/secrets/``."""
    return project_root / ".shipit" / "secrets"


def secrets_path(project_root: Path, stage: str) -> Path:
    """Path of the encrypted secrets bundle of a stage."""
    return secrets_dir(project_root) / f"{stage}.age"


def key_path(app_name: str) -> Path:
    """Default location of the private age identity for an app."""
    return Path.home() / ".config" / "shipit" / "keys" / f"{app_name}.key"


def parse_dotenv(content: str) -> dict[str, str]:
    """Parse dotenv text into a mapping, dropping keys without values."""
    values = dotenv_values(stream=io.StringIO(content))
    return {key: value for key, value in values.items() if value is not None}


def serialize_dotenv(values: Mapping[str, str]) -> str:
    """Serialize a mapping as sorted ``KEY=VALUE`` lines."""
    return "\n".join(f"{key}={values[key]}" for key in sorted(values)) + "\n"


class SecretsStore:
    """Encrypted secrets of one stage."""

    def __init__(
        self,
        project_root: Path,
        stage: str,
        app_name: str,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.project_root = project_root
        self.stage = stage
        self.app_name = app_name
        self._env = os.environ if env is None else env

    @property
    def path(self) -> Path:
        return secrets_path(self.project_root, self.stage)

    @property
    def configured(self) -> bool:
        """Whether the stage has an encrypted secrets bundle."""
        return self.path.is_file()

    def current_hash(self) -> str | None:
        """SHA-256 hex digest of the encrypted bundle, or None if absent.

        Raises:
            SecretsError: If the bundle exists but cannot be read
        """
        if not self.configured:
            return None
        try:
            content = self.path.read_bytes()
        except OSError as exc:
            raise SecretsError(f"Failed to read secrets file {self.path}: {exc}") from exc
        return hashlib.sha256(content).hexdigest()

    def decrypt(self) -> dict[str, str]:
        """Decrypt the bundle and return the secret values.

        Raises:
            SecretsError: If no identity is available or decryption fails
        """
        key_from_env = self._env.get(AGE_KEY_ENV)
        if key_from_env:
            with tempfile.NamedTemporaryFile("w", suffix=".key") as identity:
                os.chmod(identity.name, 0o600)
                identity.write(key_from_env.strip() + "\n")
                identity.flush()
                plaintext = self._run_age(Path(identity.name))
        else:
            identity_path = key_path(self.app_name)
            if not identity_path.is_file():
                raise SecretsError(
                    f"No age identity found. Set {AGE_KEY_ENV} or create {identity_path}"
                )
            plaintext = self._run_age(identity_path)
        return parse_dotenv(plaintext)

    def _run_age(self, identity: Path) -> str:
        try:
            result = subprocess.run(  # noqa: S603  # nosec B603 B607
                ["age", "--decrypt", "-i", str(identity), str(self.path)],  # noqa: S607
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise SecretsError("The 'age' command is not installed") from exc
        if result.returncode != 0:
            raise SecretsError(
                f"Failed to decrypt {self.path}: {result.stderr.strip()}"
            )
        return result.stdout

    def decrypt_to_env_file(self, executor: RemoteExecutor, remote_path: str) -> None:
        """Decrypt the bundle and write it to a dotenv file on the host."""
        values = self.decrypt()
        executor.write_file(remote_path, serialize_dotenv(values), mode=ENV_FILE_MODE)
        logger.info(f"[{executor.host}] Secrets decrypted and written to {remote_path}")
