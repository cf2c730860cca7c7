from __future__ import annotations
import secrets
from datetime import datetime
from typing import Optional

from complaint_desk.models.base import utcnow

TICKET_PREFIX = 'CMP'


def generate_ticket_code(now: Optional[datetime] = None) -> str:
    """Human-readable ticket code: CMP-<yymmddHHMMSS>-<6 hex>.

    Uniqueness is guaranteed by the unique index; the random suffix makes a clash
    within the same second unlikely.
    """
    now = now or utcnow()
    return f"{TICKET_PREFIX}-{now:%y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"
