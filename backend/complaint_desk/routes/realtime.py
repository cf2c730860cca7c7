from __future__ import annotations
from flask import Blueprint, Response, current_app, g, request, stream_with_context
from complaint_desk.decorators.auth import require_actor
from complaint_desk.errors import NotFoundError, ValidationError
from complaint_desk.realtime.sse import poll_interval, sse_stream
from complaint_desk.realtime.transports import QueueTransport

realtime_bp = Blueprint('realtime', __name__)


def _broadcaster():
    return current_app.extensions['broadcaster']


@realtime_bp.get('/stream')
@require_actor()
def stream():
    """Subscribe the caller to the fan-out and stream events as SSE.

    EventSource cannot send headers, so the token may be passed as ``?token=``.
    """
    broadcaster = _broadcaster()
    transport = QueueTransport(maxsize=current_app.config.get('REALTIME_QUEUE_SIZE', 100))
    sub = broadcaster.subscribe(
        transport,
        channel=request.args.get('channel') or None,
        user_id=g.actor.id,
        role=g.actor.role,
    )
    transport.on_activity = lambda: broadcaster.mark_alive(sub.id)
    poll = poll_interval(current_app.config.get('REALTIME_HEARTBEAT_SECONDS'))

    def generate():
        try:
            yield from sse_stream(transport, poll)
        finally:
            broadcaster.unsubscribe(sub.id)

    resp = Response(stream_with_context(generate()), mimetype='text/event-stream')
    resp.headers['Cache-Control'] = 'no-cache'
    resp.headers['X-Accel-Buffering'] = 'no'
    resp.headers['X-Subscriber-Id'] = sub.id
    return resp


@realtime_bp.post('/subscribers/<subscriber_id>/messages')
@require_actor()
def post_message(subscriber_id: str):
    """Inbound control messages (ping / subscribe / unsubscribe) for an open stream."""
    broadcaster = _broadcaster()
    sub = broadcaster.get(subscriber_id)
    if sub is None or sub.user_id != g.actor.id:
        raise NotFoundError('Subscriber not found')
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('type'):
        raise ValidationError.single('type', 'Message type is required')
    reply = broadcaster.handle_message(subscriber_id, data)
    return {'subscriber_id': subscriber_id, 'reply': reply}
