"""Shared test helpers: auth headers, upload fixtures, service wiring and a recording transport.

Everything here expects to run inside an application context.
"""
from __future__ import annotations
import json
from io import BytesIO
from typing import Any, Dict, List, Optional
from uuid import uuid4
from flask import current_app
from flask_jwt_extended import create_access_token
from werkzeug.datastructures import FileStorage as UploadedFile
from complaint_desk import get_db
from complaint_desk.constants.complaints import ROLE_ADMIN, ROLE_STAFF, ROLE_USER
from complaint_desk.errors import StorageError
from complaint_desk.realtime.broadcaster import TransportClosed
from complaint_desk.services.complaints import ComplaintService
from complaint_desk.services.policy import Actor

PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64


# ---------- Actors & auth ---------- #

def unique_id(prefix: str = 'u') -> str:
    return f'{prefix}-{uuid4().hex[:10]}'


def user(actor_id: Optional[str] = None) -> Actor:
    return Actor(id=actor_id or unique_id('user'), role=ROLE_USER)


def staff(actor_id: Optional[str] = None) -> Actor:
    return Actor(id=actor_id or unique_id('staff'), role=ROLE_STAFF)


def admin(actor_id: Optional[str] = None) -> Actor:
    return Actor(id=actor_id or unique_id('admin'), role=ROLE_ADMIN)


def jwt_headers(actor: Actor) -> Dict[str, str]:
    token = create_access_token(identity=actor.id, additional_claims={'role': actor.role})
    return {'Authorization': f'Bearer {token}'}


# ---------- Payloads ---------- #

def complaint_payload(**overrides) -> Dict[str, Any]:
    body = {
        'title': 'Broken streetlight',
        'description': 'The streetlight outside block C has been off for a week.',
        'category': 'service',
        'contact_info': {'name': 'Asha Rao', 'email': 'Asha.Rao@Example.com', 'phone': '9876543210'},
    }
    body.update(overrides)
    return body


def make_upload(name: str = 'photo.png', content: bytes = PNG_BYTES, mimetype: str = 'image/png') -> UploadedFile:
    return UploadedFile(stream=BytesIO(content), filename=name, content_type=mimetype)


# ---------- Service wiring ---------- #

def make_service(broadcaster=None, storage=None, strict: bool = True) -> ComplaintService:
    return ComplaintService(
        get_db(),
        storage or current_app.extensions['complaint_storage'],
        broadcaster=broadcaster,
        strict_transitions=strict,
    )


class RecordingTransport:
    """In-memory transport; ``fail`` makes every send raise like a dropped socket."""

    def __init__(self, fail: bool = False):
        self.sent: List[str] = []
        self.closed = False
        self.fail = fail

    def send(self, message: str) -> None:
        if self.fail or self.closed:
            raise TransportClosed('socket gone')
        self.sent.append(message)

    def close(self) -> None:
        self.closed = True

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [json.loads(m) for m in self.sent]

    def types(self) -> List[str]:
        return [e['type'] for e in self.events]


class FlakyStorage:
    """Wraps a real storage and fails deletes (or stores) on demand."""

    def __init__(self, inner, fail_delete: bool = False, fail_store_after: Optional[int] = None):
        self.inner = inner
        self.fail_delete = fail_delete
        self.fail_store_after = fail_store_after
        self.stored = []
        self.deleted = []

    def store(self, upload):
        if self.fail_store_after is not None and len(self.stored) >= self.fail_store_after:
            raise StorageError('disk full')
        f = self.inner.store(upload)
        self.stored.append(f.locator)
        return f

    def delete(self, locator):
        if self.fail_delete:
            raise StorageError('permission denied')
        self.inner.delete(locator)
        self.deleted.append(locator)

    def exists(self, locator):
        return self.inner.exists(locator)
