from __future__ import annotations

import sqlite3

import pytest

from noticeboard.database import Database
from noticeboard.models import NotificationStatus, User
from noticeboard.notifications import NotificationService


@pytest.fixture()
def service(database: Database) -> NotificationService:
    return NotificationService(database)


@pytest.fixture()
def sender(database: Database) -> User:
    return database.create_user("sender@x.com", "sender-password")


@pytest.fixture()
def alice(database: Database) -> User:
    return database.create_user("a@x.com", "alice-password")


@pytest.fixture()
def bob(database: Database) -> User:
    return database.create_user("b@x.com", "bob-password")


def test_unknown_recipients_are_dropped_without_error(
    database: Database, service: NotificationService, sender: User, alice: User
) -> None:
    report = service.send(sender.id, "hi", ["a@x.com", "missing@x.com"], False)

    notification = report.notification
    assert notification.recipients == (alice.id,)
    assert notification.status is NotificationStatus.SENT
    assert report.delivered == [alice.id]
    assert report.failed == []
    assert report.unresolved == ["missing@x.com"]
    assert report.complete

    listed = service.list_for_user(alice.id)
    assert [item.id for item in listed] == [notification.id]
    assert database.get_inbox(alice.id) == [notification.id]


def test_listing_round_trips_notification_fields(
    service: NotificationService, sender: User, alice: User, bob: User
) -> None:
    report = service.send(sender.id, "round trip", ["a@x.com", "b@x.com"], True)
    created = report.notification

    for user in (alice, bob):
        (listed,) = service.list_for_user(user.id)
        assert listed.message == created.message
        assert listed.sender.email == "sender@x.com"
        assert listed.is_critical is True
        assert listed.created_at == created.created_at


def test_recipients_are_deduplicated(service: NotificationService, sender: User, alice: User) -> None:
    report = service.send(sender.id, "once", ["A@x.com", "a@x.com", " a@x.com "])

    assert report.notification.recipients == (alice.id,)
    assert report.delivered == [alice.id]


def test_send_with_no_resolved_recipients(service: NotificationService, sender: User) -> None:
    report = service.send(sender.id, "into the void", ["ghost@x.com"])

    assert report.notification.recipients == ()
    assert report.notification.status is NotificationStatus.SENT
    assert report.delivered == []
    assert report.unresolved == ["ghost@x.com"]


def test_listing_excludes_notifications_for_others(
    service: NotificationService, sender: User, alice: User, bob: User
) -> None:
    service.send(sender.id, "for alice", ["a@x.com"])

    assert service.list_for_user(bob.id) == []
    assert service.list_for_user(sender.id) == []


def test_critical_notifications_are_listed_first(
    service: NotificationService, sender: User, alice: User
) -> None:
    first = service.send(sender.id, "first", ["a@x.com"]).notification
    critical = service.send(sender.id, "urgent", ["a@x.com"], True).notification
    third = service.send(sender.id, "third", ["a@x.com"]).notification

    listed = service.list_for_user(alice.id)

    assert [item.id for item in listed] == [critical.id, first.id, third.id]


def test_notification_is_delivered_once_every_recipient_has_read_it(
    service: NotificationService, sender: User, alice: User, bob: User
) -> None:
    notification = service.send(sender.id, "read me", ["a@x.com", "b@x.com"]).notification

    (after_alice,) = service.list_for_user(alice.id)
    assert after_alice.id == notification.id
    assert after_alice.status is NotificationStatus.SENT
    assert after_alice.delivered_at is None

    (after_bob,) = service.list_for_user(bob.id)
    assert after_bob.status is NotificationStatus.DELIVERED
    assert after_bob.delivered_at is not None
    assert after_bob.delivered_at >= notification.created_at


def test_inbox_failure_is_reported_not_raised(
    database: Database,
    service: NotificationService,
    sender: User,
    alice: User,
    bob: User,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = database.append_to_inbox

    def flaky_append(user_id: int, notification_id: int) -> None:
        if user_id == bob.id:
            raise sqlite3.OperationalError("database is locked")
        original(user_id, notification_id)

    monkeypatch.setattr(database, "append_to_inbox", flaky_append)

    report = service.send(sender.id, "partial", ["a@x.com", "b@x.com"])

    assert report.delivered == [alice.id]
    assert report.failed == [bob.id]
    assert not report.complete
    assert report.notification.status is NotificationStatus.SENT
    assert database.get_inbox(alice.id) == [report.notification.id]
    assert database.get_inbox(bob.id) == []

    service.list_for_user(alice.id)
    (seen_by_bob,) = service.list_for_user(bob.id)
    assert seen_by_bob.status is NotificationStatus.SENT
