from __future__ import annotations
from typing import Iterable, Optional, Tuple
from flask import request, make_response
from sqlalchemy.orm import Query
from complaint_desk.config.limits import normalize_pagination
from complaint_desk.errors import ValidationError
from complaint_desk.models.base import as_utc
import hashlib
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    return as_utc(dt).replace(microsecond=0)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        raise ValidationError.single('limit', str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[str], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    ids = [r.get('id') for r in rows]
    latest_c = canonicalize_timestamp(latest_ts) if latest_ts else None
    latest_iso = latest_c.isoformat().replace('+00:00', 'Z') if latest_c else ''
    etag = compute_etag(ids, total, limit, offset, latest_iso)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    if latest_c:
        resp.headers['Last-Modified'] = format_datetime(latest_c, usegmt=True)
    return resp, etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        return as_utc(datetime.fromisoformat(header_val.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return as_utc(parsedate_to_datetime(header_val))
    except (TypeError, ValueError):
        return None


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Evaluate conditional request headers.

    If-None-Match takes precedence over If-Modified-Since.
    Returns a 304 response if the client copy is current, else None.
    """
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag_value:
        resp = make_response('', 304)
        resp.headers['ETag'] = etag_value
        return resp
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest_ts:
        ims_dt = _parse_if_modified_since(ims_raw)
        if ims_dt:
            latest_c = canonicalize_timestamp(latest_ts)
            if latest_c <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
                resp = make_response('', 304)
                resp.headers['ETag'] = etag_value
                resp.headers['Last-Modified'] = format_datetime(latest_c, usegmt=True)
                return resp
    return None
