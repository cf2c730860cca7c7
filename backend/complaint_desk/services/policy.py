from __future__ import annotations
"""Access Guard: who may read or mutate a complaint.

Capabilities by actor:
  owner       read always; edit content / attachments and delete only while pending
  staff/admin read and manage (status, assignment, notes) any complaint; delete any
  admin       additionally purge (hard delete) and moderate other people's comments
  anyone else nothing

Plain users get ForbiddenError both for complaints they do not own and for
complaints that do not exist, so the response never reveals existence.
"""
from dataclasses import dataclass
from typing import Optional

from flask_jwt_extended import get_jwt, get_jwt_identity

from complaint_desk.constants import complaints as C
from complaint_desk.errors import ForbiddenError, NotFoundError
from complaint_desk.models.complaint import Complaint

READ = 'read'
EDIT_CONTENT = 'edit_content'
MANAGE = 'manage'
DELETE = 'delete'
PURGE = 'purge'
COMMENT = 'comment'
ATTACH = 'attach'


@dataclass(frozen=True)
class Actor:
    id: str
    role: str = C.ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == C.ROLE_ADMIN

    @property
    def is_privileged(self) -> bool:
        return self.role in C.PRIVILEGED_ROLES

    def owns(self, complaint: Complaint) -> bool:
        return complaint.owner_id == self.id


def current_actor() -> Actor:
    """Build the Actor from the verified JWT (identity + ``role`` claim)."""
    claims = get_jwt()
    role = claims.get('role', C.ROLE_USER)
    if role not in C.ALL_ROLES:
        role = C.ROLE_USER
    return Actor(id=str(get_jwt_identity()), role=role)


def can(actor: Actor, capability: str, complaint: Complaint) -> bool:
    if capability == PURGE:
        return actor.is_admin
    if actor.is_privileged:
        return True
    if not actor.owns(complaint):
        return False
    if capability in (READ, COMMENT):
        return True
    if capability in (EDIT_CONTENT, ATTACH, DELETE):
        return complaint.status == C.STATUS_PENDING
    return False


_DENIED = {
    READ: 'You are not authorized to view this complaint',
    EDIT_CONTENT: 'Complaint can only be edited by its owner while pending',
    ATTACH: 'Attachments can only be changed by the owner while pending',
    MANAGE: 'Only staff or admin can manage complaints',
    DELETE: 'Complaint can only be deleted by its owner while pending',
    PURGE: 'Only admin can permanently delete complaints',
    COMMENT: 'You are not authorized to comment on this complaint',
}


def assert_can(actor: Actor, capability: str, complaint: Optional[Complaint], include_deleted: bool = False) -> Complaint:
    """Resolve existence and authorization together.

    Missing (or soft-deleted, unless include_deleted) complaints surface as
    NotFoundError only for privileged actors.
    """
    if complaint is None or (complaint.is_deleted and not include_deleted):
        if actor.is_privileged:
            raise NotFoundError('Complaint not found')
        raise ForbiddenError(_DENIED[READ])
    if not can(actor, capability, complaint):
        if not actor.is_privileged and not actor.owns(complaint):
            raise ForbiddenError(_DENIED[READ])
        raise ForbiddenError(_DENIED.get(capability))
    return complaint
