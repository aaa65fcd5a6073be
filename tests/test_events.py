"""
Tests for the Event System (Observer Pattern)
"""

import pytest
from datetime import datetime
from unittest.mock import Mock

from loan_servicing.events import (
    DomainEvent, EventPayload, EventDispatcher, EventPublisherMixin
)


def make_event(event_type=DomainEvent.LOAN_STATUS_CHANGED):
    return EventPayload(event_type=event_type, entity_type="loan", entity_id="loan-1",
                        data={"status": "approved"})


class TestEventPayload:

    def test_event_payload_creation(self):
        event = make_event()

        assert event.event_type == DomainEvent.LOAN_STATUS_CHANGED
        assert isinstance(event.timestamp, datetime)
        assert event.timestamp.tzinfo is not None
        assert len(event.event_id) > 0

    def test_to_dict(self):
        data = make_event().to_dict()

        assert data['event_type'] == "loan.status_changed"
        assert data['entity_id'] == "loan-1"
        assert data['data'] == {"status": "approved"}


class TestEventDispatcher:

    def test_subscribe_and_publish(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.LOAN_STATUS_CHANGED, handler)

        event = make_event()
        dispatcher.publish(event)

        handler.assert_called_once_with(event)

    def test_handlers_only_receive_their_event_type(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.LOAN_CREATED, handler)

        dispatcher.publish(make_event(DomainEvent.LOAN_STATUS_CHANGED))

        handler.assert_not_called()

    def test_multiple_handlers_same_event(self):
        dispatcher = EventDispatcher()
        first, second = Mock(), Mock()
        dispatcher.subscribe(DomainEvent.LOAN_CREATED, first)
        dispatcher.subscribe(DomainEvent.LOAN_CREATED, second)

        dispatcher.publish(make_event(DomainEvent.LOAN_CREATED))

        first.assert_called_once()
        second.assert_called_once()

    def test_handler_error_is_isolated(self):
        """A failing handler neither raises nor stops the remaining handlers"""
        dispatcher = EventDispatcher()
        broken = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        dispatcher.subscribe(DomainEvent.LOAN_STATUS_CHANGED, broken)
        dispatcher.subscribe(DomainEvent.LOAN_STATUS_CHANGED, healthy)

        dispatcher.publish(make_event())

        healthy.assert_called_once()

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.LOAN_STATUS_CHANGED, handler)
        dispatcher.unsubscribe(DomainEvent.LOAN_STATUS_CHANGED, handler)

        dispatcher.publish(make_event())

        handler.assert_not_called()

    def test_unsubscribe_unknown_handler_is_harmless(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.LOAN_STATUS_CHANGED, handler)

        dispatcher.unsubscribe(DomainEvent.LOAN_STATUS_CHANGED, Mock())
        dispatcher.publish(make_event())

        handler.assert_called_once()


class TestEventPublisherMixin:

    def test_without_dispatcher_is_noop(self):
        class Publisher(EventPublisherMixin):
            pass

        Publisher().publish_event(DomainEvent.LOAN_CREATED, "loan", "loan-1", {})

    def test_with_dispatcher(self):
        class Publisher(EventPublisherMixin):
            def __init__(self, dispatcher):
                self.event_dispatcher = dispatcher

        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(DomainEvent.LOAN_CREATED, handler)

        Publisher(dispatcher).publish_event(DomainEvent.LOAN_CREATED, "loan", "loan-1", {"a": 1})

        event = handler.call_args[0][0]
        assert event.entity_id == "loan-1"
        assert event.data == {"a": 1}
