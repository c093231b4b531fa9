"""JSON file persistence backend.

Writes the collection to a single file. Each save goes to a temporary file
in the same directory which then replaces the target, so a crash mid-write
leaves the previous version in place.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from ..errors import StorageUnavailable
from ..gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class JsonFileGateway(PersistenceGateway):
    """Gateway backed by one JSON file on disk."""

    name = "file"

    def __init__(self, path: Path):
        self.path = Path(path)

    async def load(self) -> str | None:
        return await asyncio.to_thread(self._read)

    async def save(self, blob: str) -> None:
        await asyncio.to_thread(self._write, blob)

    # ── Private helpers ──────────────────────────────────────────────

    def _read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Failed to read %s: %s", self.path, e)
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e

    def _write(self, blob: str) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error("Failed to write %s: %s", self.path, e)
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
