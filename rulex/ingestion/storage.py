# uploaded file bytes live outside the database; documents.file_path holds the key
# keys look like "<owner_id>/<timestamp>-<filename>"

from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path
from typing import Protocol

from rulex.errors import NotFoundError, ValidationError

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


class DocumentStorage(Protocol):
    async def save(self, owner_id: str, filename: str, data: bytes) -> str: ...

    async def fetch(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...


def safe_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(" .")
    return name or "document"


class LocalDocumentStorage:
    """Filesystem-backed storage rooted at DOCUMENT_STORAGE_DIR."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        # keys are caller-influenced; never escape the storage root
        if self._root not in path.parents:
            raise ValidationError("Invalid storage key", "VALIDATION_ERROR")
        return path

    async def save(self, owner_id: str, filename: str, data: bytes) -> str:
        key = f"{safe_filename(owner_id)}/{int(time.time() * 1000)}-{safe_filename(filename)}"
        path = self._resolve(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return key

    async def fetch(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.is_file():
            raise NotFoundError("Failed to download file", "DOC_NOT_FOUND")
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        path = self._resolve(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
