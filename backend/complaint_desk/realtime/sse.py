"""Server-Sent Events framing for the realtime stream."""

from __future__ import annotations

import json
from typing import Iterator, Optional

from .transports import QueueTransport

KEEPALIVE = ': keep-alive\n\n'


def format_sse_event(message: str) -> str:
    """Frame one broadcaster message; the envelope ``type`` doubles as the SSE event name."""
    try:
        event_type = json.loads(message).get('type')
    except (ValueError, AttributeError):
        event_type = None
    lines = []
    if event_type:
        lines.append(f'event: {event_type}')
    lines.append(f'data: {message}')
    lines.append('')
    lines.append('')
    return '\n'.join(lines)


def sse_stream(transport: QueueTransport, poll_seconds: float) -> Iterator[str]:
    """Yield framed events until the transport is closed.

    A comment line goes out whenever nothing arrived within ``poll_seconds`` so
    proxies keep the connection open.
    """
    for message in transport.messages(timeout=poll_seconds):
        if message is None:
            yield KEEPALIVE
        else:
            yield format_sse_event(message)


def poll_interval(heartbeat_seconds: Optional[float]) -> float:
    if not heartbeat_seconds or heartbeat_seconds <= 0:
        return 15.0
    return min(float(heartbeat_seconds), 15.0)
