from __future__ import annotations
"""Complaint Aggregate.

``ComplaintService`` is the single entry point for mutations. Every operation
follows the same sequence: resolve existence and authorization through the
Access Guard, apply the change to the aggregate (status, history, attachments,
comments together), commit once, then publish to the Fan-out. Publishing happens
only after the commit and never raises, so a dead subscriber cannot undo a write.

Concurrent writers to the same complaint are serialized by the row's version
counter; the loser gets ConflictError and nothing it staged is persisted.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, selectinload
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.datastructures import FileStorage as UploadedFile

from complaint_desk.config import limits as L
from complaint_desk.constants import complaints as C
from complaint_desk.errors import ConflictError, ForbiddenError, ValidationError
from complaint_desk.models.base import new_id, utcnow
from complaint_desk.models.complaint import Attachment, Comment, Complaint, StatusHistoryEntry
from complaint_desk.services import attachments, comments, history
from complaint_desk.services import policy
from complaint_desk.services.audit import add_audit
from complaint_desk.services.policy import Actor
from complaint_desk.services.storage import FileStorage
from complaint_desk.utils.codes import generate_ticket_code
from complaint_desk.utils.fsm import TransitionValidator
from complaint_desk.utils.serialize import comment_json, complaint_json
from complaint_desk.utils.validation import (
    check_choice, check_email, check_length, check_phone, clean_text, parse_timestamp, raise_if_errors,
    validate_status,
)

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ('title', 'description', 'category', 'priority', 'department', 'notes', 'contact_info')


@dataclass
class TransitionResult:
    complaint: Complaint
    changed: bool
    entry: Optional[StatusHistoryEntry] = None


def _validate_content(data: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Field-level validation of complaint content; returns cleaned column values."""
    errors: List[Dict[str, str]] = []
    out: Dict[str, Any] = {}

    def present(key):
        return not partial or key in data

    if present('title'):
        out['title'] = check_length(errors, 'title', data.get('title'), L.TITLE_MIN, L.TITLE_MAX)
    if present('description'):
        out['description'] = check_length(errors, 'description', data.get('description'), L.DESCRIPTION_MIN, L.DESCRIPTION_MAX)
    if present('category'):
        out['category'] = check_choice(errors, 'category', data.get('category'), C.CATEGORIES, C.DEFAULT_CATEGORY)
    if present('priority'):
        out['priority'] = check_choice(errors, 'priority', data.get('priority'), C.PRIORITIES, C.DEFAULT_PRIORITY)
    if present('department'):
        out['department'] = check_length(errors, 'department', data.get('department'), max_len=L.DEPARTMENT_MAX,
                                         required=False) or C.DEFAULT_DEPARTMENT
    if present('notes'):
        out['notes'] = check_length(errors, 'notes', data.get('notes'), max_len=L.NOTES_MAX, required=False)
    if present('contact_info'):
        contact = data.get('contact_info')
        if not isinstance(contact, Mapping):
            errors.append({'field': 'contact_info', 'message': 'Contact information (name and email) is required'})
        else:
            if not partial or 'name' in contact:
                out['contact_name'] = check_length(errors, 'contact_info.name', contact.get('name'),
                                                   L.CONTACT_NAME_MIN, L.CONTACT_NAME_MAX, label='Contact name')
            if not partial or 'email' in contact:
                out['contact_email'] = check_email(errors, 'contact_info.email', contact.get('email'))
            if not partial or 'phone' in contact:
                out['contact_phone'] = check_phone(errors, 'contact_info.phone', contact.get('phone'))
    raise_if_errors(errors)
    return out


class ComplaintService:
    def __init__(self, session: Session, storage: FileStorage, broadcaster=None, strict_transitions: bool = True):
        self.session = session
        self.storage = storage
        self.broadcaster = broadcaster
        self.fsm = TransitionValidator(C.STATUS_TRANSITIONS, strict=strict_transitions)

    # ---------- plumbing ---------- #

    def _load_for(self, actor: Actor, capability: str, complaint_id: str) -> Complaint:
        return policy.assert_can(actor, capability, self.session.get(Complaint, complaint_id))

    def _commit(self):
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            raise ConflictError()
        except Exception:
            self.session.rollback()
            raise

    def _publish(self, event_type: str, owner_id: str, payload: Any, **extra) -> int:
        if self.broadcaster is None:
            return 0
        return self.broadcaster.publish(event_type, payload, owner_id=owner_id, **extra)

    def _publish_update(self, complaint: Complaint, status_changed: bool = False):
        self._publish(C.EVENT_UPDATED_COMPLAINT, complaint.owner_id, complaint_json(complaint), status_changed=status_changed)

    # ---------- aggregate root ---------- #

    def create(self, owner: Actor, data: Mapping[str, Any], uploads: Sequence[UploadedFile] = ()) -> Complaint:
        values = _validate_content(data)
        complaint = Complaint(
            id=new_id(),
            ticket_code=generate_ticket_code(),
            owner_id=owner.id,
            status=C.STATUS_PENDING,
            is_active=True,
            is_deleted=False,
            created_at=utcnow(),
            updated_at=utcnow(),
            **values,
        )
        attachments.ensure_capacity(complaint, len(uploads))
        with attachments.staged_uploads(self.storage, uploads) as stored:
            attachments.add(complaint, stored)
            self.session.add(complaint)
            self._commit()
        logger.info('New complaint created: %s (%s) by user %s', complaint.id, complaint.ticket_code, owner.id)
        self._publish(C.EVENT_NEW_COMPLAINT, complaint.owner_id, complaint_json(complaint))
        return complaint

    def get(self, actor: Actor, complaint_id: str) -> Complaint:
        return self._load_for(actor, policy.READ, complaint_id)

    def update_content(self, actor: Actor, complaint_id: str, data: Mapping[str, Any]) -> Complaint:
        complaint = self._load_for(actor, policy.EDIT_CONTENT, complaint_id)
        if 'status' in data:
            raise ValidationError.single('status', 'Status changes go through the status transition endpoint')
        if 'priority' in data and not actor.is_privileged:
            raise ForbiddenError('Only staff or admin can change priority')
        values = _validate_content({k: v for k, v in data.items() if k in CONTENT_FIELDS}, partial=True)
        if not values:
            raise ValidationError.single('body', 'No updatable fields supplied')
        for key, value in values.items():
            setattr(complaint, key, value)
        complaint.touch()
        self._commit()
        logger.info('Complaint %s content updated by %s (%s)', complaint.id, actor.id, ', '.join(sorted(values)))
        self._publish_update(complaint)
        return complaint

    def transition(self, actor: Actor, complaint_id: str, new_status: str, note: Optional[str] = '') -> TransitionResult:
        complaint = self._load_for(actor, policy.MANAGE, complaint_id)
        new_status = clean_text(new_status) or ''
        previous = complaint.status
        if new_status == previous:
            return TransitionResult(complaint=complaint, changed=False)
        self.fsm.assert_can_transition(previous, new_status)
        entry = history.record(complaint, previous, new_status, actor.id, note)
        note = entry.note
        now = entry.changed_at
        complaint.status = new_status
        if new_status == C.STATUS_RESOLVED:
            complaint.resolved_at = now
            complaint.resolved_by = actor.id
            if note:
                complaint.resolution_note = note
        elif new_status == C.STATUS_REJECTED:
            complaint.rejected_at = now
            complaint.rejected_by = actor.id
            if note:
                complaint.rejection_reason = note
        elif new_status == C.STATUS_IN_PROGRESS and not complaint.assigned_to:
            complaint.assigned_to = actor.id
            complaint.assigned_at = now
        complaint.touch()
        self._commit()
        logger.info('Complaint %s status changed: %s -> %s by %s', complaint.id, previous, new_status, actor.id)
        self._publish_update(complaint, status_changed=True)
        return TransitionResult(complaint=complaint, changed=True, entry=entry)

    def assign(self, actor: Actor, complaint_id: str, assignee_id: Any) -> Complaint:
        complaint = self._load_for(actor, policy.MANAGE, complaint_id)
        assignee_id = clean_text(assignee_id)
        if not assignee_id:
            raise ValidationError.single('assignee_id', 'User ID is required for assignment')
        previous_assignee = complaint.assigned_to
        complaint.assigned_to = assignee_id
        complaint.assigned_at = utcnow()
        status_changed = False
        if complaint.status == C.STATUS_PENDING:
            history.record(complaint, C.STATUS_PENDING, C.STATUS_IN_PROGRESS, actor.id, 'assignment')
            complaint.status = C.STATUS_IN_PROGRESS
            status_changed = True
        add_audit(self.session, actor, C.AUDIT_ASSIGN, 'Complaint', complaint.id,
                  {'from': previous_assignee, 'to': assignee_id})
        complaint.touch()
        self._commit()
        logger.info('Complaint %s assigned to %s by %s', complaint.id, assignee_id, actor.id)
        self._publish_update(complaint, status_changed=status_changed)
        return complaint

    def soft_delete(self, actor: Actor, complaint_id: str) -> Complaint:
        complaint = self._load_for(actor, policy.DELETE, complaint_id)
        complaint.is_deleted = True
        complaint.is_active = False
        complaint.deleted_at = utcnow()
        complaint.deleted_by = actor.id
        add_audit(self.session, actor, C.AUDIT_SOFT_DELETE, 'Complaint', complaint.id, {'ticket_code': complaint.ticket_code})
        complaint.touch()
        self._commit()
        logger.info('Complaint %s soft deleted by %s', complaint.id, actor.id)
        self._publish(C.EVENT_DELETED_COMPLAINT, complaint.owner_id, {'id': complaint.id, 'ticket_code': complaint.ticket_code})
        return complaint

    def purge(self, actor: Actor, complaint_id: str) -> attachments.PurgeReport:
        """Admin hard delete: files first (partial failure tolerated), then the rows."""
        complaint = policy.assert_can(actor, policy.PURGE, self.session.get(Complaint, complaint_id), include_deleted=True)
        report = attachments.purge_all(self.storage, complaint)
        ticket_code, owner_id = complaint.ticket_code, complaint.owner_id
        add_audit(self.session, actor, C.AUDIT_PURGE, 'Complaint', complaint.id, {
            'ticket_code': ticket_code,
            'files_deleted': len(report.deleted),
            'files_missing': report.missing,
            'files_failed': report.failed,
        })
        self.session.delete(complaint)
        self._commit()
        logger.info('Complaint %s and %d attachment file(s) deleted by %s', complaint_id, len(report.deleted), actor.id)
        self._publish(C.EVENT_DELETED_COMPLAINT, owner_id, {'id': complaint_id, 'ticket_code': ticket_code, 'purged': True})
        return report

    def get_history(self, actor: Actor, complaint_id: str) -> List[StatusHistoryEntry]:
        self._load_for(actor, policy.READ, complaint_id)
        return history.get_history(self.session, complaint_id)

    def list_query(self, actor: Actor, filters: Mapping[str, Any]) -> Query:
        # list rows carry child counts
        q = (
            self.session.query(Complaint)
            .options(selectinload(Complaint.attachments), selectinload(Complaint.comments))
            .filter(Complaint.is_deleted.is_(False))
        )
        owner_id = clean_text(filters.get('owner_id'))
        if not actor.is_privileged:
            if owner_id and owner_id != actor.id:
                raise ForbiddenError('You can only view your own complaints')
            q = q.filter(Complaint.owner_id == actor.id)
        elif owner_id:
            q = q.filter(Complaint.owner_id == owner_id)
        status = filters.get('status')
        if status:
            q = q.filter(Complaint.status == validate_status(status, C.ALL_STATUSES))
        category = filters.get('category')
        if category:
            q = q.filter(Complaint.category == validate_status(category, C.CATEGORIES, 'category'))
        priority = filters.get('priority')
        if priority:
            q = q.filter(Complaint.priority == validate_status(priority, C.PRIORITIES, 'priority'))
        assigned_to = filters.get('assigned_to')
        if assigned_to:
            q = q.filter(Complaint.assigned_to == assigned_to)
        date_from = parse_timestamp(filters.get('date_from'), 'date_from')
        date_to = parse_timestamp(filters.get('date_to'), 'date_to', end_of_day=True)
        if date_from and date_to and date_from > date_to:
            raise ValidationError.single('date_to', 'date_to must not be before date_from')
        if date_from:
            q = q.filter(Complaint.created_at >= date_from)
        if date_to:
            q = q.filter(Complaint.created_at <= date_to)
        search = clean_text(filters.get('search'))
        if search:
            like = f'%{search}%'
            q = q.filter(or_(
                Complaint.title.ilike(like),
                Complaint.description.ilike(like),
                Complaint.ticket_code.ilike(like),
                Complaint.contact_name.ilike(like),
                Complaint.contact_email.ilike(like),
            ))
        return q

    # ---------- comment thread ---------- #

    def add_comment(self, actor: Actor, complaint_id: str, text: Any) -> Comment:
        complaint = self._load_for(actor, policy.COMMENT, complaint_id)
        comment = comments.add(complaint, actor.id, text, actor.is_privileged)
        complaint.touch()
        self._commit()
        self._publish(C.EVENT_NEW_COMMENT, complaint.owner_id, {
            'complaint_id': complaint.id,
            'ticket_code': complaint.ticket_code,
            'comment': comment_json(comment),
        })
        return comment

    def edit_comment(self, actor: Actor, complaint_id: str, comment_id: str, text: Any) -> Comment:
        complaint = self._load_for(actor, policy.COMMENT, complaint_id)
        comment = comments.edit(complaint, comment_id, text, actor.id)
        complaint.touch()
        self._commit()
        self._publish_update(complaint)
        return comment

    def delete_comment(self, actor: Actor, complaint_id: str, comment_id: str) -> Comment:
        complaint = self._load_for(actor, policy.COMMENT, complaint_id)
        comment = comments.delete(complaint, comment_id, actor.id, actor.role)
        if comment.author_id != actor.id:
            add_audit(self.session, actor, C.AUDIT_COMMENT_MODERATE, 'Comment', comment.id,
                      {'complaint_id': complaint.id, 'author_id': comment.author_id})
        complaint.touch()
        self._commit()
        self._publish_update(complaint)
        return comment

    # ---------- attachment store ---------- #

    def add_attachments(self, actor: Actor, complaint_id: str, uploads: Sequence[UploadedFile]) -> List[Attachment]:
        complaint = self._load_for(actor, policy.ATTACH, complaint_id)
        if not uploads:
            raise ValidationError.single('attachments', 'Please upload at least one file')
        # checked before anything touches storage
        attachments.ensure_capacity(complaint, len(uploads))
        with attachments.staged_uploads(self.storage, uploads) as stored:
            added = attachments.add(complaint, stored)
            complaint.touch()
            self._commit()
        self._publish_update(complaint)
        return added

    def remove_attachment(self, actor: Actor, complaint_id: str, attachment_id: str) -> Attachment:
        complaint = self._load_for(actor, policy.ATTACH, complaint_id)
        removed = attachments.remove(self.storage, complaint, attachment_id)
        complaint.touch()
        self._commit()
        self._publish_update(complaint)
        return removed


__all__ = ['ComplaintService', 'TransitionResult']
