from __future__ import annotations
"""Attachment Store: files bound to a complaint.

Files reach the store already written through the ``FileStorage`` collaborator.
``staged_uploads`` is the scoped acquisition used by callers: it stores the
incoming uploads, yields their metadata, and deletes them again if the block
exits with an exception (the metadata was never committed). That compensating
delete may itself fail; failures are logged and the original error propagates.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Sequence

from werkzeug.datastructures import FileStorage as UploadedFile

from complaint_desk.config.limits import MAX_ATTACHMENTS, MAX_ATTACHMENT_BYTES, ALLOWED_MIME_TYPES
from complaint_desk.errors import LimitExceededError, NotFoundError, StorageError
from complaint_desk.models.base import new_id, utcnow
from complaint_desk.models.complaint import Attachment, Complaint
from complaint_desk.services.storage import FileStorage, StoredFile, upload_size
from complaint_desk.utils.validation import raise_if_errors

logger = logging.getLogger(__name__)


@dataclass
class PurgeReport:
    deleted: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def validate_uploads(uploads: Sequence[UploadedFile], field_name: str = 'attachments'):
    errors = []
    for upload in uploads:
        name = upload.filename or ''
        if not name:
            errors.append({'field': field_name, 'message': 'Uploaded file has no name'})
            continue
        if upload.mimetype not in ALLOWED_MIME_TYPES:
            errors.append({'field': field_name, 'message': f"{name}: file type '{upload.mimetype}' is not allowed"})
        size = upload_size(upload)
        if size == 0:
            errors.append({'field': field_name, 'message': f'{name}: file is empty'})
        elif size > MAX_ATTACHMENT_BYTES:
            errors.append({'field': field_name, 'message': f'{name}: file exceeds {MAX_ATTACHMENT_BYTES // (1024 * 1024)}MB'})
    raise_if_errors(errors)


def discard(storage: FileStorage, stored: Iterable[StoredFile]) -> List[str]:
    """Best-effort delete of stored files; returns locators that could not be removed."""
    failed = []
    for f in stored:
        try:
            storage.delete(f.locator)
        except StorageError as exc:
            logger.error('Cleanup of uploaded file %s failed: %s', f.locator, exc.internal_detail)
            failed.append(f.locator)
    return failed


@contextmanager
def staged_uploads(storage: FileStorage, uploads: Sequence[UploadedFile]) -> Iterator[List[StoredFile]]:
    validate_uploads(uploads)
    stored: List[StoredFile] = []
    try:
        for upload in uploads:
            stored.append(storage.store(upload))
        yield stored
    except BaseException:
        if stored:
            logger.info('Discarding %d staged upload(s) after failed operation', len(stored))
            discard(storage, stored)
        raise


def ensure_capacity(complaint: Complaint, incoming: int):
    if len(complaint.attachments) + incoming > MAX_ATTACHMENTS:
        raise LimitExceededError(f'Maximum {MAX_ATTACHMENTS} attachments allowed per complaint')


def add(complaint: Complaint, files: Sequence[StoredFile]) -> List[Attachment]:
    """Append attachment records for already-stored files; all or nothing."""
    ensure_capacity(complaint, len(files))
    added = []
    for f in files:
        att = Attachment(
            id=new_id(),
            filename=f.filename,
            original_name=f.original_name,
            locator=f.locator,
            mimetype=f.mimetype,
            size=f.size,
            uploaded_at=utcnow(),
        )
        complaint.attachments[att.id] = att
        added.append(att)
    logger.info('Attachment(s) added to complaint %s: %s', complaint.id, ', '.join(f.original_name for f in files))
    return added


def remove(storage: FileStorage, complaint: Complaint, attachment_id: str) -> Attachment:
    att = complaint.attachments.get(attachment_id)
    if att is None:
        raise NotFoundError('Attachment not found')
    try:
        storage.delete(att.locator)
        logger.info('File deleted: %s', att.locator)
    except StorageError as exc:
        # metadata removal still goes ahead; the file is an orphan now
        logger.error('Error deleting file %s: %s', att.locator, exc.internal_detail)
    del complaint.attachments[attachment_id]
    logger.info('Attachment %s removed from complaint %s', attachment_id, complaint.id)
    return att


def purge_all(storage: FileStorage, complaint: Complaint) -> PurgeReport:
    """Delete every underlying file. Never raises for file failures."""
    report = PurgeReport()
    for att in complaint.attachments.values():
        if not storage.exists(att.locator):
            logger.warning('Attachment file already missing during purge: %s', att.locator)
            report.missing.append(att.locator)
            continue
        try:
            storage.delete(att.locator)
            report.deleted.append(att.locator)
        except StorageError as exc:
            logger.error('Error deleting file %s: %s', att.locator, exc.internal_detail)
            report.failed.append(att.locator)
    if report.missing or report.failed:
        logger.warning('Purge of complaint %s left %d missing and %d undeleted file(s)',
                       complaint.id, len(report.missing), len(report.failed))
    return report

__all__ = ['PurgeReport', 'validate_uploads', 'staged_uploads', 'discard', 'ensure_capacity', 'add', 'remove', 'purge_all']
