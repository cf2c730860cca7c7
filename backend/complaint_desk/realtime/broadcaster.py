"""
Notification Fan-out

In-process broadcaster that delivers ``{type, data, timestamp}`` envelopes to every
connected subscriber. It depends only on the ``Transport`` protocol (send/close);
inbound traffic is fed back through ``handle_message`` and disconnects through
``unsubscribe``.

Delivery is fire-and-forget and at-most-once per connected subscriber: nothing is
queued for later, replayed, or acknowledged. A subscriber whose transport fails
during a publish is dropped. Liveness is tracked by the heartbeat sweep: each
sweep drops subscribers that showed no activity since the previous sweep, then
pings the rest.

The broadcaster is constructed and started by the application factory and passed
to the services that publish; there is no module-level instance.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from complaint_desk.constants.complaints import PRIVILEGED_ROLES

logger = logging.getLogger(__name__)


class TransportClosed(Exception):
    """Raised by a transport that can no longer deliver messages."""


class Transport(Protocol):
    def send(self, message: str) -> None: ...

    def close(self) -> None: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def envelope(event_type: str, data: Any = None, **extra: Any) -> Dict[str, Any]:
    body = {'type': event_type, 'data': data, 'timestamp': _now_iso()}
    body.update(extra)
    return body


@dataclass
class Subscriber:
    transport: Transport
    channel: Optional[str] = None
    user_id: Optional[str] = None
    role: Optional[str] = None
    id: str = field(default_factory=lambda: uuid4().hex)
    alive: bool = True

    def sees_all(self) -> bool:
        return self.role is None or self.role in PRIVILEGED_ROLES

    def wants(self, channel: Optional[str], owner_id: Optional[str] = None) -> bool:
        # untargeted publishes reach everyone
        if channel is not None and self.channel != channel:
            return False
        # plain users only hear about their own complaints
        return owner_id is None or self.sees_all() or self.user_id == owner_id


class Broadcaster:
    def __init__(self, heartbeat_interval: float = 30.0):
        self.heartbeat_interval = heartbeat_interval
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------- lifecycle ---------- #

    def start(self):
        if self._thread is not None or self.heartbeat_interval <= 0:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._heartbeat_loop, name='realtime-heartbeat', daemon=True)
        self._thread.start()
        logger.info('Realtime broadcaster started (heartbeat every %ss)', self.heartbeat_interval)

    def stop(self):
        self._stop.set()
        running = self._thread is not None
        if running:
            self._thread.join(timeout=self.heartbeat_interval + 1)
            self._thread = None
        subs = self._drain()
        for sub in subs:
            self._close(sub)
        # also runs from atexit, after logging may be torn down
        if running or subs:
            logger.info('Realtime broadcaster stopped (%d subscriber(s) closed)', len(subs))

    def _heartbeat_loop(self):
        while not self._stop.wait(self.heartbeat_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception('Heartbeat sweep failed')

    # ---------- subscribers ---------- #

    @property
    def connected_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def get(self, subscriber_id: str) -> Optional[Subscriber]:
        with self._lock:
            return self._subscribers.get(subscriber_id)

    def subscribe(self, transport: Transport, channel: Optional[str] = None,
                  user_id: Optional[str] = None, role: Optional[str] = None) -> Subscriber:
        sub = Subscriber(transport=transport, channel=channel, user_id=user_id, role=role)
        with self._lock:
            self._subscribers[sub.id] = sub
        logger.info('Realtime subscriber %s connected (user=%s, channel=%s)', sub.id, user_id or '-', channel or '*')
        self._deliver(sub, json.dumps(envelope(
            'connection',
            message='Connected to real-time updates',
            subscriber_id=sub.id,
        )))
        return sub

    def unsubscribe(self, subscriber_id: str) -> bool:
        with self._lock:
            sub = self._subscribers.pop(subscriber_id, None)
        if sub is None:
            return False
        self._close(sub)
        logger.info('Realtime subscriber %s disconnected', subscriber_id)
        return True

    def mark_alive(self, subscriber_id: str):
        sub = self.get(subscriber_id)
        if sub is not None:
            sub.alive = True

    def handle_message(self, subscriber_id: str, raw: Any) -> Optional[Dict[str, Any]]:
        """Process one inbound control message; returns the reply that was sent."""
        sub = self.get(subscriber_id)
        if sub is None:
            return None
        sub.alive = True
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.error('Unparseable realtime message from %s', subscriber_id)
                return None
        if not isinstance(raw, dict):
            logger.warning('Ignoring non-object realtime message from %s', subscriber_id)
            return None
        kind = raw.get('type')
        reply: Optional[Dict[str, Any]] = None
        if kind == 'ping':
            reply = envelope('pong')
        elif kind == 'pong':
            return None
        elif kind == 'subscribe':
            sub.channel = raw.get('channel') or 'complaints'
            logger.info('Realtime subscriber %s subscribed to %s', subscriber_id, sub.channel)
            reply = envelope('subscribed', channel=sub.channel, message=f'Subscribed to {sub.channel} updates')
        elif kind == 'unsubscribe':
            logger.info('Realtime subscriber %s unsubscribed from %s', subscriber_id, sub.channel)
            sub.channel = None
            reply = envelope('unsubscribed')
        else:
            logger.warning('Unknown realtime message type from %s: %s', subscriber_id, kind)
            return None
        self._deliver(sub, json.dumps(reply))
        return reply

    # ---------- delivery ---------- #

    def publish(self, event_type: str, payload: Any, channel: Optional[str] = None,
                owner_id: Optional[str] = None, **extra: Any) -> int:
        """Serialize once and deliver to every matching subscriber. Never raises.

        ``owner_id`` scopes the event to one complaint owner: subscribers with a
        plain user role only receive it when they are that owner.
        """
        try:
            message = json.dumps(envelope(event_type, payload, **extra), default=str)
        except (TypeError, ValueError):
            logger.exception('Could not serialize %s event', event_type)
            return 0
        with self._lock:
            targets = [s for s in self._subscribers.values() if s.wants(channel, owner_id)]
        sent = sum(1 for sub in targets if self._deliver(sub, message))
        logger.debug('Broadcast %s to %d subscriber(s)', event_type, sent)
        return sent

    def sweep(self) -> List[str]:
        """One heartbeat round; returns ids of dropped subscribers."""
        with self._lock:
            subs = list(self._subscribers.values())
        dropped = []
        ping = json.dumps(envelope('heartbeat'))
        for sub in subs:
            if not sub.alive:
                logger.warning('Terminating inactive realtime subscriber %s', sub.id)
                self.unsubscribe(sub.id)
                dropped.append(sub.id)
                continue
            sub.alive = False
            if not self._deliver(sub, ping):
                dropped.append(sub.id)
        return dropped

    def _deliver(self, sub: Subscriber, message: str) -> bool:
        try:
            sub.transport.send(message)
            return True
        except Exception as exc:
            logger.warning('Dropping realtime subscriber %s: %s', sub.id, exc)
            self.unsubscribe(sub.id)
            return False

    def _drain(self) -> List[Subscriber]:
        with self._lock:
            subs = list(self._subscribers.values())
            self._subscribers.clear()
        return subs

    @staticmethod
    def _close(sub: Subscriber):
        try:
            sub.transport.close()
        except Exception:
            logger.debug('Transport close failed for %s', sub.id, exc_info=True)

__all__ = ['Broadcaster', 'Subscriber', 'Transport', 'TransportClosed', 'envelope']
