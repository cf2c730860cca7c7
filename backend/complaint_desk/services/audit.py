from __future__ import annotations
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from complaint_desk.models.audit import AuditLog
from complaint_desk.services.policy import Actor


def add_audit(session: Session, actor: Actor, action: str, entity: Optional[str] = None,
              entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Stage an audit log entry in the caller's session.

    Parameters:
      action: short action code e.g. COMPLAINT.ASSIGN, COMPLAINT.PURGE
      entity: optional entity name (Complaint, Comment)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (shallow copied)
    """
    log = AuditLog(
        actor_id=actor.id,
        actor_role=actor.role,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; the caller's transaction boundary controls durability.
    return log
