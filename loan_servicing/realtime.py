"""
Realtime Notification Module

Channel-based fan-out of loan status changes to connected sessions. Every
session joins ``user:<id>``; administrators also join ``role:admin``.

Delivery is at-most-once and unordered relative to other events: nothing is
acknowledged, retried or persisted. A session that is disconnected at publish
time, or whose queue is full, misses the event and recovers by re-fetching the
persisted loan, which is always the authoritative state.
"""

import asyncio
import logging
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, List, Optional, Set

from .auth import Session, ROLE_ADMIN
from .events import DomainEvent, EventDispatcher, EventPayload

logger = logging.getLogger("loan_servicing.realtime")

STATUS_CHANGED_EVENT = "loan:statusChanged"
ADMIN_CHANNEL = f"role:{ROLE_ADMIN}"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


def channels_for(session: Session) -> Set[str]:
    """Channels a session joins on connect"""
    channels = {user_channel(session.user_id)}
    if session.is_admin:
        channels.add(ADMIN_CHANNEL)
    return channels


@dataclass(frozen=True)
class StatusChangeEvent:
    """Wire payload of a ``loan:statusChanged`` event"""
    loan_id: str
    user_id: str
    status: str
    admin_note: Optional[str]
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loanId": self.loan_id,
            "userId": self.user_id,
            "status": self.status,
            "adminNote": self.admin_note,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_loan_record(cls, record: Dict[str, Any]) -> 'StatusChangeEvent':
        """Build from a loan's API representation"""
        return cls(
            loan_id=record["id"],
            user_id=record["userId"],
            status=record["status"],
            admin_note=record.get("adminNote"),
            updated_at=record["updatedAt"],
        )


class Subscription:
    """
    One connected session's mailbox.

    Delivery never blocks the publisher: messages are offered with
    ``put_nowait`` and dropped when the queue is full. When the consuming
    event loop runs in another thread the offer is scheduled onto that loop.
    """

    def __init__(self, hub: 'ChannelHub', session: Session, channels: Set[str],
                 max_pending: int = 100,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.hub = hub
        self.session = session
        self.channels = frozenset(channels)
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.dropped = 0
        self._loop = loop

    def deliver(self, message: Dict[str, Any]) -> bool:
        if self._loop is not None and self._loop.is_running():
            try:
                current = asyncio.get_running_loop()
            except RuntimeError:
                current = None
            if current is not self._loop:
                self._loop.call_soon_threadsafe(self._offer, message)
                return True
        return self._offer(message)

    def _offer(self, message: Dict[str, Any]) -> bool:
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Dropping {message.get('event')} for session {self.session.user_id}: queue full"
            )
            return False

    async def next_message(self) -> Dict[str, Any]:
        """Wait for the next message"""
        return await self.queue.get()

    def drain(self) -> List[Dict[str, Any]]:
        """Take every message currently queued without waiting"""
        messages = []
        while True:
            try:
                messages.append(self.queue.get_nowait())
            except asyncio.QueueEmpty:
                return messages

    def close(self) -> None:
        self.hub.disconnect(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChannelHub:
    """Registry of live subscriptions by channel"""

    def __init__(self, max_pending: int = 100):
        self.max_pending = max_pending
        self._channels: Dict[str, Set[Subscription]] = {}
        self._lock = RLock()

    def connect(self, session: Session,
                loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        """Join the session's channels; the returned handle must be closed on disconnect"""
        subscription = Subscription(self, session, channels_for(session),
                                    max_pending=self.max_pending, loop=loop)
        with self._lock:
            for channel in subscription.channels:
                self._channels.setdefault(channel, set()).add(subscription)
        logger.debug(f"Session {session.user_id} joined {sorted(subscription.channels)}")
        return subscription

    def disconnect(self, subscription: Subscription) -> None:
        with self._lock:
            for channel in subscription.channels:
                members = self._channels.get(channel)
                if members is None:
                    continue
                members.discard(subscription)
                if not members:
                    del self._channels[channel]

    def publish(self, channel: str, event: str, payload: Dict[str, Any]) -> int:
        """Offer a message to every current member of a channel; returns how many accepted it"""
        with self._lock:
            members = list(self._channels.get(channel, ()))
        message = {"event": event, "channel": channel, "data": payload}
        return sum(1 for subscription in members if subscription.deliver(message))

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))


class RealtimeNotifier:
    """Publishes loan status changes to the owner's channel and the admin channel"""

    def __init__(self, hub: ChannelHub):
        self.hub = hub

    def attach(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(DomainEvent.LOAN_STATUS_CHANGED, self.on_status_changed)

    def detach(self, dispatcher: EventDispatcher) -> None:
        dispatcher.unsubscribe(DomainEvent.LOAN_STATUS_CHANGED, self.on_status_changed)

    def on_status_changed(self, event: EventPayload) -> None:
        self.notify_status_change(StatusChangeEvent.from_loan_record(event.data))

    def notify_status_change(self, event: StatusChangeEvent) -> int:
        """
        Fire-and-forget fan-out. Failures are logged and swallowed so that a
        broken channel can never fail the status update that triggered it.
        """
        payload = event.to_dict()
        delivered = 0
        for channel in (user_channel(event.user_id), ADMIN_CHANNEL):
            try:
                delivered += self.hub.publish(channel, STATUS_CHANGED_EVENT, payload)
            except Exception:
                logger.exception(f"Failed to publish {STATUS_CHANGED_EVENT} to {channel}")
        logger.debug(f"Loan {event.loan_id} status {event.status} delivered to {delivered} subscriptions")
        return delivered
