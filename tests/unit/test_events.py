from __future__ import annotations

from sqlalchemy import text

from baryabazaar.services.events import BALANCE_CHANGED, TRANSACTION_CREATED, DomainEvent, EventBus


def test_subscribers_receive_matching_events() -> None:
    bus = EventBus()
    named: list[str] = []
    everything: list[str] = []
    bus.subscribe(TRANSACTION_CREATED, lambda event: named.append(event.name))
    bus.subscribe(None, lambda event: everything.append(event.name))

    bus.publish(DomainEvent(TRANSACTION_CREATED, {}))
    bus.publish(DomainEvent(BALANCE_CHANGED, {}))

    assert named == [TRANSACTION_CREATED]
    assert everything == [TRANSACTION_CREATED, BALANCE_CHANGED]


def test_unsubscribe_is_idempotent() -> None:
    bus = EventBus()
    received: list[DomainEvent] = []
    unsubscribe = bus.subscribe(None, received.append)

    unsubscribe()
    unsubscribe()
    bus.publish(DomainEvent(BALANCE_CHANGED, {}))

    assert received == []
    assert bus.subscriber_count == 0


def test_failing_subscriber_does_not_block_others() -> None:
    bus = EventBus()
    received: list[DomainEvent] = []

    def broken(event: DomainEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe(None, broken)
    bus.subscribe(None, received.append)
    bus.publish(DomainEvent(BALANCE_CHANGED, {"amount": "1"}))

    assert len(received) == 1


def test_staged_events_follow_the_session_outcome(db_session) -> None:
    bus = EventBus()
    received: list[str] = []
    bus.subscribe(None, lambda event: received.append(event.payload["step"]))

    db_session.execute(text("SELECT 1"))
    bus.stage(db_session, DomainEvent(BALANCE_CHANGED, {"step": "discarded"}))
    db_session.rollback()
    bus.stage(db_session, DomainEvent(BALANCE_CHANGED, {"step": "first"}))
    bus.stage(db_session, DomainEvent(BALANCE_CHANGED, {"step": "second"}))
    assert received == []

    db_session.commit()
    db_session.commit()

    assert received == ["first", "second"]
