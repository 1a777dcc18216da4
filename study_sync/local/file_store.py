"""
File-backed durable local store.

Stores each key as one file under a base directory:
- Atomic writes using temp file + rename
- Missing files read as None
- All OS failures wrapped in LocalStoreError
"""

import os
import re
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import LocalStoreError
from .store import LocalStore

_VALID_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")

DEFAULT_LOCAL_PATH = Path.home() / ".study-sync"


class FileLocalStore(LocalStore):
    """Local store keeping one file per key.

    Directory structure:
    {base_path}/
      study_snapshot.json
      ...
    """

    def __init__(self, base_path: Path | str | None = None, suffix: str = ".json"):
        """Initialize the file store.

        Args:
            base_path: Directory for stored keys. Defaults to ~/.study-sync
            suffix: File suffix appended to each key
        """
        self.base_path = Path(base_path) if base_path else DEFAULT_LOCAL_PATH
        self.suffix = suffix

    def _path_for(self, key: str) -> Path:
        if not _VALID_KEY.match(key) or key in (".", ".."):
            raise LocalStoreError("validate_key", key, ValueError("invalid key"))
        return self.base_path / f"{key}{self.suffix}"

    async def read(self, key: str) -> bytes | None:
        path = self._path_for(key)
        try:
            if not await aiofiles.os.path.exists(path):
                return None
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise LocalStoreError("read", key, e) from e

    async def write(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
        except OSError as e:
            raise LocalStoreError("create_directory", key, e) from e

        fd, temp_path = tempfile.mkstemp(dir=self.base_path, prefix=".tmp_", suffix=self.suffix)
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
                await f.flush()
                os.fsync(f.fileno())

            # Atomic rename
            await aiofiles.os.replace(temp_path, path)
        except Exception as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise LocalStoreError("write", key, e) from e

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
                return True
            return False
        except OSError as e:
            raise LocalStoreError("delete", key, e) from e
