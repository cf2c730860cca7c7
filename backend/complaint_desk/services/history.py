from __future__ import annotations
"""Status History Log.

Pure append: entries are created through ``record`` and never updated or deleted
(except together with their complaint on purge). The ``seq`` column gives each
complaint's entries a gap-free append order; its unique index rejects two writers
appending the same position.
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from complaint_desk.config.limits import HISTORY_NOTE_MAX
from complaint_desk.models.base import new_id, utcnow
from complaint_desk.models.complaint import Complaint, StatusHistoryEntry
from complaint_desk.utils.validation import check_length, raise_if_errors


def record(complaint: Complaint, previous: str, new: str, actor_id: str, note: Optional[str] = None) -> StatusHistoryEntry:
    """Append one entry to the complaint's ledger (flushed with the aggregate)."""
    errors = []
    note = check_length(errors, 'note', note, max_len=HISTORY_NOTE_MAX, required=False)
    raise_if_errors(errors)
    entry = StatusHistoryEntry(
        id=new_id(),
        seq=len(complaint.status_history) + 1,
        previous_status=previous,
        new_status=new,
        changed_by=actor_id,
        note=note,
        changed_at=utcnow(),
    )
    complaint.status_history.append(entry)
    return entry


def get_history(session: Session, complaint_id: str) -> List[StatusHistoryEntry]:
    """Entries newest-first."""
    q = select(StatusHistoryEntry).where(StatusHistoryEntry.complaint_id == complaint_id).order_by(StatusHistoryEntry.seq.desc())
    return list(session.execute(q).scalars())

__all__ = ['record', 'get_history']
