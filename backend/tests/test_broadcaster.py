import json
import logging
import pytest
from flask import Flask
from complaint_desk.realtime.broadcaster import Broadcaster, TransportClosed
from complaint_desk.realtime.sse import KEEPALIVE, format_sse_event, poll_interval, sse_stream
from complaint_desk.realtime.transports import QueueTransport
from tests.helpers import RecordingTransport, complaint_payload, make_service, staff, user


@pytest.fixture()
def broadcaster():
    b = Broadcaster(heartbeat_interval=0)
    yield b
    b.stop()


def test_subscribe_sends_connection_welcome(broadcaster):
    t = RecordingTransport()
    sub = broadcaster.subscribe(t, user_id='u1')
    welcome = t.events[0]
    assert welcome['type'] == 'connection'
    assert welcome['subscriber_id'] == sub.id
    assert broadcaster.connected_count == 1


def test_publish_envelope_and_channel_filter(broadcaster):
    everyone = RecordingTransport()
    dashboard = RecordingTransport()
    other = RecordingTransport()
    broadcaster.subscribe(everyone)
    broadcaster.subscribe(dashboard, channel='complaints')
    broadcaster.subscribe(other, channel='billing')

    assert broadcaster.publish('NEW_COMPLAINT', {'id': 'c1'}) == 3
    assert broadcaster.publish('UPDATED_COMPLAINT', {'id': 'c1'}, channel='complaints', status_changed=True) == 1

    event = dashboard.events[-1]
    assert event['type'] == 'UPDATED_COMPLAINT'
    assert event['data'] == {'id': 'c1'}
    assert event['status_changed'] is True
    assert event['timestamp'].endswith('Z')
    assert 'UPDATED_COMPLAINT' not in everyone.types()
    assert other.types() == ['connection', 'NEW_COMPLAINT']


def test_owner_scoped_events_reach_owner_and_staff_only(broadcaster):
    owner = RecordingTransport()
    stranger = RecordingTransport()
    desk = RecordingTransport()
    broadcaster.subscribe(owner, user_id='u1', role='user')
    broadcaster.subscribe(stranger, user_id='u2', role='user')
    broadcaster.subscribe(desk, user_id='s1', role='staff')

    assert broadcaster.publish('NEW_COMPLAINT', {'id': 'c1', 'owner_id': 'u1'}, owner_id='u1') == 2
    assert owner.types() == ['connection', 'NEW_COMPLAINT']
    assert stranger.types() == ['connection']
    assert desk.types() == ['connection', 'NEW_COMPLAINT']


def test_dead_subscriber_is_dropped_without_affecting_others(broadcaster):
    healthy = RecordingTransport()
    broadcaster.subscribe(healthy)
    flaky = RecordingTransport()
    sub = broadcaster.subscribe(flaky)
    flaky.fail = True
    assert broadcaster.publish('NEW_COMMENT', {'id': 'x'}) == 1
    assert broadcaster.get(sub.id) is None
    assert flaky.closed
    assert healthy.types()[-1] == 'NEW_COMMENT'


def test_sweep_pings_then_drops_unresponsive(broadcaster):
    lively, silent = RecordingTransport(), RecordingTransport()
    lively_sub = broadcaster.subscribe(lively)
    silent_sub = broadcaster.subscribe(silent)
    assert broadcaster.sweep() == []
    assert lively.types()[-1] == 'heartbeat'
    broadcaster.handle_message(lively_sub.id, {'type': 'pong'})
    assert broadcaster.sweep() == [silent_sub.id]
    assert broadcaster.get(silent_sub.id) is None
    assert broadcaster.get(lively_sub.id) is not None
    assert silent.closed


def test_control_messages(broadcaster):
    t = RecordingTransport()
    sub = broadcaster.subscribe(t)
    assert broadcaster.handle_message(sub.id, '{"type": "ping"}')['type'] == 'pong'
    reply = broadcaster.handle_message(sub.id, {'type': 'subscribe'})
    assert reply['type'] == 'subscribed' and reply['channel'] == 'complaints'
    assert broadcaster.get(sub.id).channel == 'complaints'
    broadcaster.handle_message(sub.id, {'type': 'subscribe', 'channel': 'billing'})
    assert broadcaster.get(sub.id).channel == 'billing'
    assert broadcaster.handle_message(sub.id, {'type': 'unsubscribe'})['type'] == 'unsubscribed'
    assert broadcaster.get(sub.id).channel is None
    assert broadcaster.handle_message(sub.id, 'not json') is None
    assert broadcaster.handle_message(sub.id, {'type': 'dance'}) is None
    assert broadcaster.handle_message('unknown', {'type': 'ping'}) is None
    assert t.types() == ['connection', 'pong', 'subscribed', 'subscribed', 'unsubscribed']


def test_publish_never_raises_on_unserializable_payload(broadcaster):
    t = RecordingTransport()
    broadcaster.subscribe(t)
    assert broadcaster.publish('NEW_COMPLAINT', {'when': object()}) == 1


def test_stop_closes_all_transports():
    b = Broadcaster(heartbeat_interval=0.05)
    b.start()
    t = RecordingTransport()
    b.subscribe(t)
    b.stop()
    assert t.closed
    assert b.connected_count == 0


def test_stopping_an_idle_broadcaster_is_silent(caplog):
    b = Broadcaster(heartbeat_interval=0)
    b.start()
    with caplog.at_level(logging.DEBUG, logger='complaint_desk.realtime.broadcaster'):
        b.stop()
        b.stop()
    assert caplog.records == []


def test_queue_transport_buffers_and_reports_activity():
    seen = []
    t = QueueTransport(maxsize=2, on_activity=lambda: seen.append(1))
    t.send('a')
    t.send('b')
    with pytest.raises(TransportClosed):
        t.send('c')
    assert t.receive(timeout=0.01) == 'a'
    assert t.receive(timeout=0.01) == 'b'
    assert t.receive(timeout=0.01) is None
    assert len(seen) == 2
    t.close()
    with pytest.raises(TransportClosed):
        t.send('d')
    assert list(t.messages(timeout=0.01)) == []


def test_sse_framing():
    frame = format_sse_event(json.dumps({'type': 'NEW_COMPLAINT', 'data': {}}))
    assert frame.startswith('event: NEW_COMPLAINT\ndata: {')
    assert frame.endswith('\n\n')
    t = QueueTransport()
    t.send(json.dumps({'type': 'pong'}))
    stream = sse_stream(t, 0.01)
    assert next(stream).startswith('event: pong')
    assert next(stream) == KEEPALIVE
    t.close()
    assert list(stream) == []
    assert poll_interval(0) == 15.0
    assert poll_interval(5) == 5.0


def test_service_publishes_after_commit(app_context: Flask):
    b = Broadcaster(heartbeat_interval=0)
    t = RecordingTransport()
    b.subscribe(t)
    svc = make_service(broadcaster=b)
    owner = user()
    c = svc.create(owner, complaint_payload())
    svc.transition(staff(), c.id, 'in_progress')
    svc.transition(staff(), c.id, 'in_progress')  # no-op, no event
    svc.add_comment(owner, c.id, 'Thanks for the quick response')
    svc.soft_delete(staff(), c.id)
    assert t.types() == ['connection', 'NEW_COMPLAINT', 'UPDATED_COMPLAINT', 'NEW_COMMENT', 'DELETED_COMPLAINT']
    created, updated, comment, deleted = t.events[1:]
    assert created['data']['ticket_code'] == c.ticket_code
    assert updated['status_changed'] is True
    assert updated['data']['status'] == 'in_progress'
    assert comment['data']['complaint_id'] == c.id
    assert deleted['data'] == {'id': c.id, 'ticket_code': c.ticket_code}


def test_failing_subscriber_does_not_undo_write(app_context: Flask):
    b = Broadcaster(heartbeat_interval=0)
    t = RecordingTransport()
    b.subscribe(t)
    t.fail = True
    svc = make_service(broadcaster=b)
    c = svc.create(user(), complaint_payload())
    assert c.id is not None
    assert b.connected_count == 0


def test_service_events_are_scoped_to_the_owner(app_context: Flask):
    b = Broadcaster(heartbeat_interval=0)
    owner, stranger = user(), user()
    owner_t, stranger_t = RecordingTransport(), RecordingTransport()
    b.subscribe(owner_t, user_id=owner.id, role=owner.role)
    b.subscribe(stranger_t, user_id=stranger.id, role=stranger.role)
    svc = make_service(broadcaster=b)
    c = svc.create(owner, complaint_payload())
    svc.add_comment(owner, c.id, 'Any update on this?')
    assert owner_t.types() == ['connection', 'NEW_COMPLAINT', 'NEW_COMMENT']
    assert stranger_t.types() == ['connection']
    b.stop()
