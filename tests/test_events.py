"""Tests for the event bus."""

import logging

from finboard.domain.events import (
    EventBus,
    FinanceEvent,
    FinanceEventType,
    entity_event_type,
)


def _event(event_type=FinanceEventType.TRANSACTION_CREATED) -> FinanceEvent:
    return FinanceEvent(type=event_type, entity_kind="transaction", operation="created")


def test_subscribers_receive_matching_events_only():
    bus = EventBus()
    created, deleted = [], []
    bus.subscribe(FinanceEventType.TRANSACTION_CREATED, created.append)
    bus.subscribe(FinanceEventType.TRANSACTION_DELETED, deleted.append)

    event = _event()
    assert bus.publish(event) == 1

    assert created == [event]
    assert deleted == []


def test_catch_all_receives_everything_in_subscription_order():
    bus = EventBus()
    calls = []
    bus.subscribe(FinanceEventType.LOAN_PAYMENT, lambda e: calls.append("typed"))
    bus.subscribe_all(lambda e: calls.append("all"))

    bus.publish(_event(FinanceEventType.LOAN_PAYMENT))
    bus.publish(_event(FinanceEventType.TRANSFER_CREATED))

    assert calls == ["typed", "all", "all"]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(FinanceEventType.TRANSACTION_CREATED, received.append)

    unsubscribe()
    unsubscribe()
    bus.publish(_event())

    assert received == []


def test_failing_subscriber_is_logged_and_skipped(caplog):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe_all(broken)
    bus.subscribe_all(received.append)

    with caplog.at_level(logging.ERROR, logger="finboard.domain.events"):
        delivered = bus.publish(_event())

    assert delivered == 1
    assert len(received) == 1
    assert "failed on transaction.created" in caplog.text


def test_emit_builds_and_publishes():
    bus = EventBus()
    received = []
    bus.subscribe(FinanceEventType.INVESTMENT_LINKED, received.append)

    event = bus.emit("investment.linked", "transaction", "created", id="tx_1")

    assert received == [event]
    assert event.type == FinanceEventType.INVESTMENT_LINKED
    assert event.payload == {"id": "tx_1"}


def test_buses_are_independent():
    first, second = EventBus(), EventBus()
    received = []
    first.subscribe_all(received.append)

    second.publish(_event())

    assert received == []


def test_entity_event_type():
    assert entity_event_type("created") == FinanceEventType.ENTITY_CREATED
    assert entity_event_type("updated") == FinanceEventType.ENTITY_UPDATED
    assert entity_event_type("deleted") == FinanceEventType.ENTITY_DELETED
