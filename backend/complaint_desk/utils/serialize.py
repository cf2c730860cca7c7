from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional

from complaint_desk.models.base import as_utc
from complaint_desk.models.complaint import Complaint, Attachment, Comment, StatusHistoryEntry


def iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return as_utc(dt).isoformat().replace('+00:00', 'Z')


def attachment_json(a: Attachment) -> Dict[str, Any]:
    return {
        'id': a.id,
        'filename': a.filename,
        'original_name': a.original_name,
        'mimetype': a.mimetype,
        'size': a.size,
        'uploaded_at': iso(a.uploaded_at),
    }


def comment_json(c: Comment) -> Dict[str, Any]:
    return {
        'id': c.id,
        'author_id': c.author_id,
        'text': c.text,
        'is_staff_comment': c.is_staff_comment,
        'is_edited': c.is_edited,
        'edited_at': iso(c.edited_at),
        'created_at': iso(c.created_at),
    }


def history_json(h: StatusHistoryEntry) -> Dict[str, Any]:
    return {
        'id': h.id,
        'previous_status': h.previous_status,
        'new_status': h.new_status,
        'changed_by': h.changed_by,
        'note': h.note,
        'changed_at': iso(h.changed_at),
    }


def complaint_json(c: Complaint, include_children: bool = True) -> Dict[str, Any]:
    body = {
        'id': c.id,
        'ticket_code': c.ticket_code,
        'title': c.title,
        'description': c.description,
        'category': c.category,
        'priority': c.priority,
        'department': c.department,
        'notes': c.notes,
        'status': c.status,
        'owner_id': c.owner_id,
        'contact_info': {
            'name': c.contact_name,
            'email': c.contact_email,
            'phone': c.contact_phone,
        },
        'assigned_to': c.assigned_to,
        'assigned_at': iso(c.assigned_at),
        'resolved_at': iso(c.resolved_at),
        'resolved_by': c.resolved_by,
        'resolution_note': c.resolution_note,
        'rejected_at': iso(c.rejected_at),
        'rejected_by': c.rejected_by,
        'rejection_reason': c.rejection_reason,
        'is_active': c.is_active,
        'is_open': c.is_open,
        'is_overdue': c.is_overdue,
        'attachment_count': len(c.attachments),
        'comment_count': len(c.comments),
        'staff_comment_count': sum(1 for cm in c.comments.values() if cm.is_staff_comment),
        'created_at': iso(c.created_at),
        'updated_at': iso(c.updated_at),
    }
    if include_children:
        body['attachments'] = [attachment_json(a) for a in c.attachments.values()]
        body['comments'] = [comment_json(cm) for cm in c.comments.values()]
        body['status_history'] = [history_json(h) for h in c.status_history]
    return body

__all__ = ['iso', 'attachment_json', 'comment_json', 'history_json', 'complaint_json']
