"""Central enum-like definitions for the complaint lifecycle.
Values are persisted and sent to dashboards verbatim; add new ones, never rename.
"""
from __future__ import annotations
from typing import Dict, Set

STATUS_PENDING = 'pending'
STATUS_IN_PROGRESS = 'in_progress'
STATUS_RESOLVED = 'resolved'
STATUS_REJECTED = 'rejected'
STATUS_CLOSED = 'closed'
ALL_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_RESOLVED, STATUS_REJECTED, STATUS_CLOSED)
OPEN_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS)

# pending is the sole initial state; closed is terminal
STATUS_TRANSITIONS: Dict[str, Set[str]] = {
    STATUS_PENDING: {STATUS_IN_PROGRESS, STATUS_REJECTED},
    STATUS_IN_PROGRESS: {STATUS_RESOLVED, STATUS_REJECTED, STATUS_CLOSED},
    STATUS_RESOLVED: {STATUS_CLOSED},
    STATUS_REJECTED: {STATUS_CLOSED},
    STATUS_CLOSED: set(),
}

CATEGORIES = ('technical', 'billing', 'service', 'product', 'harassment', 'safety', 'other')
DEFAULT_CATEGORY = 'other'

PRIORITIES = ('low', 'medium', 'high', 'urgent')
DEFAULT_PRIORITY = 'medium'

DEFAULT_DEPARTMENT = 'General'

ROLE_USER = 'user'
ROLE_STAFF = 'staff'
ROLE_ADMIN = 'admin'
ALL_ROLES = (ROLE_USER, ROLE_STAFF, ROLE_ADMIN)
PRIVILEGED_ROLES = (ROLE_STAFF, ROLE_ADMIN)

# Realtime event names (dashboards switch on these)
EVENT_NEW_COMPLAINT = 'NEW_COMPLAINT'
EVENT_UPDATED_COMPLAINT = 'UPDATED_COMPLAINT'
EVENT_DELETED_COMPLAINT = 'DELETED_COMPLAINT'
EVENT_NEW_COMMENT = 'NEW_COMMENT'

# Audit action codes
AUDIT_ASSIGN = 'COMPLAINT.ASSIGN'
AUDIT_SOFT_DELETE = 'COMPLAINT.DELETE'
AUDIT_PURGE = 'COMPLAINT.PURGE'
AUDIT_COMMENT_MODERATE = 'COMPLAINT.COMMENT.MODERATE'
