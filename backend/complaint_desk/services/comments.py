from __future__ import annotations
import logging

from complaint_desk.config.limits import COMMENT_MAX
from complaint_desk.constants.complaints import ROLE_ADMIN
from complaint_desk.errors import ForbiddenError, NotFoundError
from complaint_desk.models.base import new_id, utcnow
from complaint_desk.models.complaint import Comment, Complaint
from complaint_desk.utils.validation import check_length, raise_if_errors

logger = logging.getLogger(__name__)


def _clean(text) -> str:
    errors = []
    text = check_length(errors, 'text', text, min_len=1, max_len=COMMENT_MAX, label='Comment')
    raise_if_errors(errors)
    return text


def _get(complaint: Complaint, comment_id: str) -> Comment:
    comment = complaint.comments.get(comment_id)
    if comment is None:
        raise NotFoundError('Comment not found')
    return comment


def add(complaint: Complaint, author_id: str, text, is_staff_actor: bool) -> Comment:
    comment = Comment(
        id=new_id(),
        author_id=author_id,
        text=_clean(text),
        is_staff_comment=bool(is_staff_actor),
        created_at=utcnow(),
    )
    complaint.comments[comment.id] = comment
    logger.info('Comment added to complaint %s by %s%s', complaint.id, author_id, ' (staff)' if is_staff_actor else '')
    return comment


def edit(complaint: Complaint, comment_id: str, new_text, actor_id: str) -> Comment:
    comment = _get(complaint, comment_id)
    if comment.author_id != actor_id:
        raise ForbiddenError('You can only edit your own comments')
    comment.text = _clean(new_text)
    comment.is_edited = True
    comment.edited_at = utcnow()
    logger.info('Comment %s on complaint %s edited by %s', comment_id, complaint.id, actor_id)
    return comment


def delete(complaint: Complaint, comment_id: str, actor_id: str, actor_role: str) -> Comment:
    """Author or admin only."""
    comment = _get(complaint, comment_id)
    if comment.author_id != actor_id and actor_role != ROLE_ADMIN:
        raise ForbiddenError('You do not have permission to delete this comment')
    del complaint.comments[comment_id]
    logger.info('Comment %s deleted from complaint %s', comment_id, complaint.id)
    return comment

__all__ = ['add', 'edit', 'delete']
