from __future__ import annotations
import json
from flask import Blueprint, current_app, g, request
from complaint_desk import get_db
from complaint_desk.constants.complaints import ROLE_ADMIN
from complaint_desk.decorators.auth import require_actor
from complaint_desk.errors import ValidationError
from complaint_desk.models.base import as_utc
from complaint_desk.models.complaint import Complaint
from complaint_desk.services.complaints import ComplaintService
from complaint_desk.utils.listing import apply_pagination, handle_conditional, make_cached_list_response
from complaint_desk.utils.serialize import attachment_json, comment_json, complaint_json, history_json
from complaint_desk.utils.sorting import apply_multi_sort

complaints_bp = Blueprint('complaints', __name__)

SORTABLE = {
    'created_at': Complaint.created_at,
    'updated_at': Complaint.updated_at,
    'status': Complaint.status,
    'priority': Complaint.priority,
    'category': Complaint.category,
    'ticket_code': Complaint.ticket_code,
    'title': Complaint.title,
}
LIST_FILTERS = ('status', 'category', 'priority', 'assigned_to', 'owner_id', 'date_from', 'date_to', 'search')


def _service() -> ComplaintService:
    return ComplaintService(
        get_db(),
        current_app.extensions['complaint_storage'],
        broadcaster=current_app.extensions.get('broadcaster'),
        strict_transitions=current_app.config.get('STRICT_STATUS_TRANSITIONS', True),
    )


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError.single('body', 'JSON object expected')
    return data


def _form_body() -> dict:
    """Flatten a multipart form into the JSON shape.

    contact_info may arrive as a JSON string or as contact_info.<key> fields.
    """
    data = {k: v for k, v in request.form.items() if not k.startswith('contact_info')}
    raw_contact = request.form.get('contact_info')
    if raw_contact:
        try:
            data['contact_info'] = json.loads(raw_contact)
        except ValueError:
            raise ValidationError.single('contact_info', 'contact_info must be a JSON object')
    else:
        contact = {k.split('.', 1)[1]: v for k, v in request.form.items() if k.startswith('contact_info.')}
        if contact:
            data['contact_info'] = contact
    return data


def _uploads():
    return [f for f in request.files.getlist('attachments') if f and f.filename]


@complaints_bp.post('/')
@require_actor()
def create_complaint():
    if request.mimetype == 'multipart/form-data':
        data, uploads = _form_body(), _uploads()
    else:
        data, uploads = _json_body(), []
    complaint = _service().create(g.actor, data, uploads)
    return complaint_json(complaint), 201


@complaints_bp.get('/')
@require_actor()
def list_complaints():
    svc = _service()
    filters = {k: request.args.get(k) for k in LIST_FILTERS}
    q = svc.list_query(g.actor, filters)
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, Complaint.id, default=[Complaint.created_at.desc()])
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    rows_json = [complaint_json(c, include_children=False) for c in rows]
    latest_ts = max((as_utc(c.updated_at) for c in rows), default=None)
    resp, etag = make_cached_list_response(rows_json, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    return resp


@complaints_bp.get('/<complaint_id>')
@require_actor()
def get_complaint(complaint_id: str):
    return complaint_json(_service().get(g.actor, complaint_id))


@complaints_bp.patch('/<complaint_id>')
@require_actor()
def update_complaint(complaint_id: str):
    return complaint_json(_service().update_content(g.actor, complaint_id, _json_body()))


@complaints_bp.delete('/<complaint_id>')
@require_actor()
def delete_complaint(complaint_id: str):
    complaint = _service().soft_delete(g.actor, complaint_id)
    return {'id': complaint.id, 'ticket_code': complaint.ticket_code, 'deleted': True}


@complaints_bp.post('/<complaint_id>/purge')
@require_actor(ROLE_ADMIN)
def purge_complaint(complaint_id: str):
    report = _service().purge(g.actor, complaint_id)
    return {
        'id': complaint_id,
        'purged': True,
        'files_deleted': len(report.deleted),
        'files_missing': report.missing,
        'files_failed': report.failed,
    }


@complaints_bp.post('/<complaint_id>/status')
@require_actor()
def change_status(complaint_id: str):
    data = _json_body()
    if not data.get('status'):
        raise ValidationError.single('status', 'Status is required')
    result = _service().transition(g.actor, complaint_id, data.get('status'), data.get('note'))
    body = complaint_json(result.complaint)
    body['changed'] = result.changed
    return body


@complaints_bp.post('/<complaint_id>/assign')
@require_actor()
def assign_complaint(complaint_id: str):
    data = _json_body()
    return complaint_json(_service().assign(g.actor, complaint_id, data.get('assignee_id')))


@complaints_bp.get('/<complaint_id>/history')
@require_actor()
def complaint_history(complaint_id: str):
    entries = _service().get_history(g.actor, complaint_id)
    return {'data': [history_json(h) for h in entries]}


@complaints_bp.post('/<complaint_id>/comments')
@require_actor()
def add_comment(complaint_id: str):
    comment = _service().add_comment(g.actor, complaint_id, _json_body().get('text'))
    return comment_json(comment), 201


@complaints_bp.patch('/<complaint_id>/comments/<comment_id>')
@require_actor()
def edit_comment(complaint_id: str, comment_id: str):
    comment = _service().edit_comment(g.actor, complaint_id, comment_id, _json_body().get('text'))
    return comment_json(comment)


@complaints_bp.delete('/<complaint_id>/comments/<comment_id>')
@require_actor()
def delete_comment(complaint_id: str, comment_id: str):
    comment = _service().delete_comment(g.actor, complaint_id, comment_id)
    return {'id': comment.id, 'deleted': True}


@complaints_bp.post('/<complaint_id>/attachments')
@require_actor()
def add_attachments(complaint_id: str):
    added = _service().add_attachments(g.actor, complaint_id, _uploads())
    return {'data': [attachment_json(a) for a in added]}, 201


@complaints_bp.delete('/<complaint_id>/attachments/<attachment_id>')
@require_actor()
def remove_attachment(complaint_id: str, attachment_id: str):
    removed = _service().remove_attachment(g.actor, complaint_id, attachment_id)
    return {'id': removed.id, 'deleted': True}
