from datetime import date, datetime, timedelta, timezone

import pytest

from lending_service.errors import ValidationError
from lending_service.models import NotificationKind
from tests.conftest import START


def test_notify_and_list_newest_first(system, clock, student):
    first = system.notifications.notify(student.id, "Welcome to the library")
    clock.advance(minutes=5)
    second = system.notifications.notify(student.id, "Overdue!", NotificationKind.OVERDUE)
    system.notifications.notify("someone-else", "Not for you")

    listed = system.notifications.list_for(student.id)
    assert [n.id for n in listed] == [second.id, first.id]
    assert listed[0].kind is NotificationKind.OVERDUE
    assert listed[1].kind is NotificationKind.GENERAL
    assert listed[1].timestamp == START
    assert not any(n.read for n in listed)


def test_notify_accepts_kind_by_value(system, student):
    note = system.notifications.notify(student.id, "hello", "custom_reminder")
    assert note.kind is NotificationKind.CUSTOM_REMINDER


def test_notify_rejects_empty_message(system, student):
    with pytest.raises(ValidationError):
        system.notifications.notify(student.id, "   ")


def test_mark_read(system, student):
    note = system.notifications.notify(student.id, "hello")
    assert system.notifications.unread_count(student.id) == 1

    system.notifications.mark_read(note.id)
    system.notifications.mark_read(note.id)
    assert system.notifications.mark_read("ntf_missing") is None

    (stored,) = system.notifications.list_for(student.id)
    assert stored.read is True
    assert system.notifications.unread_count(student.id) == 0


@pytest.fixture
def staggered_loans(system, clock, add_book, student):
    """Three loans due at START + 14, 16 and 21 days."""
    books = [add_book(title=t) for t in ("Dune", "Sapiens", "The Alchemist")]
    system.ledger.borrow(books[0].id, student.id)
    clock.advance(days=2)
    system.ledger.borrow(books[1].id, student.id)
    clock.advance(days=5)
    system.ledger.borrow(books[2].id, student.id)
    return books


def test_due_soon_window(system, clock, student, staggered_loans):
    clock.now = START + timedelta(days=13)

    assert system.notifications.send_due_soon_reminders() == 2

    messages = [n.message for n in system.notifications.list_for(student.id)]
    assert len(messages) == 2
    assert any('"Dune" is due on 2026-11-02' in m for m in messages)
    assert any('"Sapiens"' in m for m in messages)
    assert all(n.kind is NotificationKind.DUE_DATE for n in system.notifications.list_for(student.id))


def test_due_soon_skips_overdue_and_returned(system, clock, student, staggered_loans):
    dune, sapiens, _ = staggered_loans
    system.ledger.return_book(sapiens.id, student.id)
    clock.now = START + timedelta(days=15)

    # Dune is overdue, Sapiens is back, The Alchemist is six days out
    assert system.notifications.send_due_soon_reminders() == 0


def test_due_soon_repeats_without_dedup(system, clock, student, staggered_loans):
    clock.now = START + timedelta(days=13)

    assert system.notifications.send_due_soon_reminders() == 2
    assert system.notifications.send_due_soon_reminders() == 2
    assert len(system.notifications.list_for(student.id)) == 4


def test_custom_reminders_compare_calendar_days(system, clock, student, staggered_loans):
    # Dune is due 2026-11-02 09:30; midnight that day still counts
    assert system.notifications.send_custom_date_reminders(datetime(2026, 11, 2, 0, 0)) == 1
    assert system.notifications.send_custom_date_reminders(datetime(2026, 11, 1, 23, 59)) == 0


def test_custom_reminders_boundary_is_inclusive(system, student, staggered_loans):
    assert system.notifications.send_custom_date_reminders(date(2026, 11, 4)) == 2


def test_custom_reminders_message(system, student, staggered_loans):
    system.notifications.send_custom_date_reminders(date(2026, 11, 2), "Bring Dune back")
    system.notifications.send_custom_date_reminders(date(2026, 11, 2))

    notes = system.notifications.list_for(student.id)
    assert {n.kind for n in notes} == {NotificationKind.CUSTOM_REMINDER}
    messages = sorted(n.message for n in notes)
    assert messages[0] == "Bring Dune back"
    assert messages[1] == (
        'Reminder: "Dune" is due on 2026-11-02. Please return it soon to avoid late fees.'
    )


def test_reminders_skip_deleted_books(system, clock, student, staggered_loans):
    system.catalog.delete_book(staggered_loans[0].id)
    clock.now = START + timedelta(days=13)

    assert system.notifications.send_due_soon_reminders() == 1
    assert system.notifications.send_custom_date_reminders(date(2026, 12, 31)) == 2


def test_custom_reminders_reject_non_dates(system):
    with pytest.raises(ValidationError):
        system.notifications.send_custom_date_reminders("2026-11-02")


def test_notify_rejects_unknown_kind(system, student):
    with pytest.raises(ValidationError):
        system.send_notification(student.id, "hi", "urgent")
    assert system.get_user_notifications(student.id) == []


def test_custom_reminders_convert_aware_targets_to_utc(system, student, staggered_loans):
    # 2026-11-02 01:00 at UTC+03:00 is still 2026-11-01 in UTC
    target = datetime(2026, 11, 2, 1, 0, tzinfo=timezone(timedelta(hours=3)))
    assert system.notifications.send_custom_date_reminders(target) == 0
