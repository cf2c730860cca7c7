"""File storage collaborator for complaint attachments.

The Attachment Store only talks to the ``FileStorage`` protocol
(store / delete / exists); ``LocalFileStorage`` keeps files under a single
upload folder and hands out locators relative to it.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from werkzeug.datastructures import FileStorage as UploadedFile
from werkzeug.utils import secure_filename

from complaint_desk.config.limits import MAX_ATTACHMENT_BYTES
from complaint_desk.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    filename: str
    original_name: str
    locator: str
    mimetype: str
    size: int


class FileStorage(Protocol):
    def store(self, upload: UploadedFile) -> StoredFile: ...

    def delete(self, locator: str) -> None: ...

    def exists(self, locator: str) -> bool: ...


def _stored_name(original: str) -> str:
    safe = secure_filename(original) or 'file'
    stem, ext = os.path.splitext(safe)
    return f"complaint-{stem[:50]}-{datetime.now():%Y%m%d%H%M%S}-{uuid4().hex[:8]}{ext.lower()}"


def upload_size(upload: UploadedFile) -> int:
    """Measured size of an incoming upload without consuming its stream.

    The part's Content-Length header is client supplied and is not trusted.
    """
    stream = upload.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


class LocalFileStorage:
    def __init__(self, root: os.PathLike[str] | str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, locator: str) -> Path:
        path = (self.root / locator).resolve()
        if self.root not in path.parents:
            raise StorageError(f'locator escapes upload folder: {locator}')
        return path

    def store(self, upload: UploadedFile) -> StoredFile:
        original = upload.filename or 'file'
        name = _stored_name(original)
        destination = self._path(name)
        try:
            upload.save(destination)
        except OSError as exc:
            raise StorageError(f'could not store {original}: {exc}') from exc
        size = destination.stat().st_size
        if size > MAX_ATTACHMENT_BYTES:
            destination.unlink(missing_ok=True)
            logger.warning('Rejected upload %s after write (%d bytes)', original, size)
            raise ValidationError.single(
                'attachments', f'{original}: file exceeds {MAX_ATTACHMENT_BYTES // (1024 * 1024)}MB'
            )
        stored = StoredFile(
            filename=name,
            original_name=original,
            locator=name,
            mimetype=upload.mimetype or 'application/octet-stream',
            size=size,
        )
        logger.info('Stored upload %s as %s (%d bytes)', original, name, stored.size)
        return stored

    def delete(self, locator: str) -> None:
        try:
            self._path(locator).unlink()
        except OSError as exc:
            raise StorageError(f'could not delete {locator}: {exc}') from exc

    def exists(self, locator: str) -> bool:
        try:
            return self._path(locator).is_file()
        except StorageError:
            return False

__all__ = ['StoredFile', 'FileStorage', 'LocalFileStorage', 'upload_size']
