import logging
import threading
from datetime import date, datetime, timedelta

from sqlalchemy import func, select

from .config import Config
from .db import new_id, session_scope
from .errors import ValidationError
from .models import BorrowRecord, Notification, NotificationKind, as_naive_utc, utcnow

logger = logging.getLogger(__name__)


def _format_date(value):
    return value.strftime("%Y-%m-%d")


def _calendar_day(value):
    if isinstance(value, datetime):
        return as_naive_utc(value).date()
    if isinstance(value, date):
        return value
    raise ValidationError("target date must be a date or datetime")


class NotificationEngine:
    """
    Stores per-user messages and turns the ledger's open loans into
    reminders.

    Reminder sweeps do not remember what they already sent, so calling one
    twice notifies the same borrowers twice.
    """

    def __init__(self, session_factory, catalog, config=Config, clock=utcnow, lock=None):
        self.session_factory = session_factory
        self.catalog = catalog
        self.config = config
        self.clock = clock
        self._lock = lock or threading.RLock()

    def notify(self, user_id, message, kind=NotificationKind.GENERAL, session=None):
        if not message or not message.strip():
            raise ValidationError("message is required")
        try:
            kind = NotificationKind(kind)
        except ValueError as exc:
            raise ValidationError(f"unknown notification kind {kind!r}") from exc

        with self._lock, session_scope(self.session_factory, session) as s:
            notification = Notification(
                id=new_id("ntf"),
                user_id=user_id,
                message=message,
                timestamp=self.clock(),
                read=False,
                kind=kind,
            )
            s.add(notification)

        logger.debug("Queued %s notification for %s", kind.value, user_id)
        return notification

    def mark_read(self, notification_id):
        with self._lock, session_scope(self.session_factory) as session:
            notification = session.get(Notification, notification_id)
            if notification is None:
                logger.debug("Notification %s not found, nothing to mark", notification_id)
                return None
            notification.read = True
            return notification

    def list_for(self, user_id):
        q = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.timestamp.desc())
        )
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(q).scalars().all()

    def unread_count(self, user_id):
        q = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(q).scalar_one()

    # ----------------- reminder sweeps -----------------

    def _remind(self, session, records, kind, build_message):
        books = self.catalog.get_many([r.book_id for r in records], session=session)
        sent = 0
        for record in records:
            book = books.get(record.book_id)
            if book is None:
                logger.debug("No reminder for loan %s, book %s is gone", record.id, record.book_id)
                continue
            self.notify(record.borrower_id, build_message(book, record), kind, session=session)
            sent += 1
        return sent

    def send_due_soon_reminders(self, now=None):
        """Remind every borrower whose loan falls due within the window."""
        now = now or self.clock()
        window_end = now + timedelta(days=self.config.DUE_SOON_DAYS)
        q = select(BorrowRecord).where(
            BorrowRecord.returned.is_(False),
            BorrowRecord.due_date > now,
            BorrowRecord.due_date <= window_end,
        )

        def message(book, record):
            return f'Reminder: "{book.title}" is due on {_format_date(record.due_date)}.'

        with self._lock, session_scope(self.session_factory) as session:
            records = session.execute(q).scalars().all()
            sent = self._remind(session, records, NotificationKind.DUE_DATE, message)

        logger.info("Sent %d due date reminder(s)", sent)
        return sent

    def send_custom_date_reminders(self, target_date, custom_message=None):
        """
        Remind every borrower whose loan is due on or before ``target_date``.
        Only the calendar day of either date counts.
        """
        target_day = _calendar_day(target_date)
        q = select(BorrowRecord).where(BorrowRecord.returned.is_(False))

        def message(book, record):
            if custom_message and custom_message.strip():
                return custom_message
            return (
                f'Reminder: "{book.title}" is due on {_format_date(record.due_date)}. '
                "Please return it soon to avoid late fees."
            )

        with self._lock, session_scope(self.session_factory) as session:
            records = [
                r for r in session.execute(q).scalars().all() if r.due_date.date() <= target_day
            ]
            sent = self._remind(session, records, NotificationKind.CUSTOM_REMINDER, message)

        logger.info("Sent %d custom reminder(s) for loans due by %s", sent, target_day)
        return sent
