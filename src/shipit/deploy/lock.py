"""Lock Store: the per-host ``shipit.lock`` record."""

from __future__ import annotations

import json

from pydantic import ValidationError

from shipit.lib.errors import LockCorruptionError
from shipit.lib.logging_config import get_logger
from shipit.models.release import LockRecord
from shipit.remote.executor import RemoteExecutor

logger = get_logger(__name__)


class LockStore:
    """Reads and writes the lock record of one application on one host."""

    def __init__(self, executor: RemoteExecutor, lock_path: str) -> None:
        self.executor = executor
        self.lock_path = lock_path

    def read(self) -> LockRecord | None:
        """Return the lock record, or None before the first deploy.

        Raises:
            LockCorruptionError: If the file exists but cannot be parsed
        """
        if not self.executor.exists(self.lock_path):
            return None

        try:
            content = self.executor.read_file(self.lock_path)
        except (OSError, UnicodeDecodeError) as exc:
            raise LockCorruptionError(
                self.lock_path, f"Failed to read lock record: {exc}"
            ) from exc

        if not content.strip():
            raise LockCorruptionError(self.lock_path, "Lock record is empty")

        try:
            return LockRecord.model_validate_json(content.strip())
        except ValidationError as exc:
            raise LockCorruptionError(
                self.lock_path, f"Invalid lock record format: {exc}"
            ) from exc

    def read_lenient(self) -> LockRecord | None:
        """Like :meth:`read`, but treat a corrupt record as absent."""
        try:
            return self.read()
        except LockCorruptionError as exc:
            logger.warning(f"[{self.executor.host}] Ignoring lock record: {exc.message}")
            return None

    def write(self, record: LockRecord) -> None:
        """Persist the lock record, replacing the old one atomically."""
        payload = json.dumps(record.model_dump(mode="json"), indent=2)
        tmp_path = f"{self.lock_path}.tmp"
        self.executor.write_file(tmp_path, payload + "\n")
        self.executor.rename(tmp_path, self.lock_path)
        logger.debug(
            f"[{self.executor.host}] Lock record: current={record.current_release} "
            f"previous={record.previous_release}"
        )
