"""Numeric limits shared by validation, services and listing."""
TITLE_MIN = 5
TITLE_MAX = 200
DESCRIPTION_MIN = 10
DESCRIPTION_MAX = 2000
DEPARTMENT_MAX = 100
NOTES_MAX = 1000
CONTACT_NAME_MIN = 2
CONTACT_NAME_MAX = 100
COMMENT_MAX = 500
HISTORY_NOTE_MAX = 500
RESOLUTION_NOTE_MAX = 1000

MAX_ATTACHMENTS = 10
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024

ALLOWED_MIME_TYPES = frozenset({
    'image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp',
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'text/plain',
})

OVERDUE_AFTER_DAYS = 7

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw):
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)
