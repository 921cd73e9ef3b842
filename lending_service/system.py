"""
Session-aware entry point for the UI.

``LendingSystem`` wires the catalog, ledger, notification engine and
directory around one shared lock and one session factory, tracks who is
logged in, and refuses role-gated operations for the wrong role:

* adding, editing and removing books and sending reminder sweeps need a
  librarian;
* borrowing and returning need a student, acting for themselves.
"""

import logging
import threading
from functools import wraps

from .catalog import Catalog
from .config import Config
from .db import create_session_factory
from .directory import Directory
from .errors import Forbidden
from .ledger import FeeSweeper, Ledger
from .models import NotificationKind, Role, utcnow
from .notifications import NotificationEngine

logger = logging.getLogger(__name__)


def require_role(role):
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            user = self.current_user
            if user is None or user.role != role:
                who = user.email if user else "anonymous"
                logger.warning("%s denied %s, needs %s", who, func.__name__, role.value)
                raise Forbidden(f"{func.__name__} requires a {role.value} session")
            return func(self, *args, **kwargs)

        return wrapper

    return decorator


class LendingSystem:
    def __init__(self, config=Config, session_factory=None, clock=utcnow):
        self.config = config
        self.clock = clock
        if session_factory is None:
            session_factory = create_session_factory(
                config.DATABASE_URL, echo=config.SQLALCHEMY_ECHO
            )
        self.session_factory = session_factory

        # one lock for every store keeps cross-store check-then-act atomic
        self._lock = threading.RLock()
        self.catalog = Catalog(session_factory, lock=self._lock)
        self.ledger = Ledger(session_factory, self.catalog, config=config, clock=clock, lock=self._lock)
        self.notifications = NotificationEngine(
            session_factory, self.catalog, config=config, clock=clock, lock=self._lock
        )
        self.directory = Directory(session_factory, lock=self._lock)
        self.sweeper = FeeSweeper(self.ledger, config.FEE_REFRESH_INTERVAL_SECONDS)

        self._current_user = None

        if config.SEED_DEMO_DATA and self.directory.is_empty():
            from .seed import seed_demo_data

            seed_demo_data(self)

    # ----------------- session -----------------

    @property
    def current_user(self):
        return self._current_user

    def login(self, email, password):
        identity = self.directory.authenticate(email, password)
        self._current_user = identity
        logger.info("%s logged in as %s", identity.email, identity.role.value)
        return identity

    def logout(self):
        if self._current_user is not None:
            logger.info("%s logged out", self._current_user.email)
        self._current_user = None

    # ----------------- catalog -----------------

    @require_role(Role.LIBRARIAN)
    def add_book(self, **fields):
        return self.catalog.add_book(**fields)

    @require_role(Role.LIBRARIAN)
    def update_book(self, book):
        return self.catalog.update_book(book)

    @require_role(Role.LIBRARIAN)
    def delete_book(self, book_id):
        return self.catalog.delete_book(book_id)

    def get_book_by_id(self, book_id):
        return self.catalog.get_by_id(book_id)

    def list_books(self):
        return self.catalog.list_books()

    # ----------------- lending -----------------

    def _acting_student(self, student_id):
        user = self.current_user
        if student_id is not None and student_id != user.id:
            logger.warning("%s tried to act for %s", user.email, student_id)
            raise Forbidden("students may only borrow and return for themselves")
        return user.id

    @require_role(Role.STUDENT)
    def borrow_book(self, book_id, student_id=None):
        return self.ledger.borrow(book_id, self._acting_student(student_id))

    @require_role(Role.STUDENT)
    def return_book(self, book_id, student_id=None):
        return self.ledger.return_book(book_id, self._acting_student(student_id))

    def get_borrowed_books(self, student_id):
        return self.ledger.get_borrowed_books(student_id)

    def get_borrow_history(self, student_id):
        return self.ledger.get_records_for(student_id)

    def get_all_borrowed_books(self):
        return self.ledger.get_all_open_loans()

    def calculate_late_fee(self, due_date, as_of=None):
        return self.ledger.calculate_late_fee(due_date, as_of)

    def refresh_late_fees(self):
        return self.ledger.refresh_late_fees()

    def start_fee_sweeper(self):
        self.sweeper.start()

    def stop_fee_sweeper(self):
        self.sweeper.stop()

    # ----------------- counts -----------------

    def get_student_count(self):
        return self.directory.count_by_role(Role.STUDENT)

    def get_active_loans_count(self):
        return self.ledger.count_open_loans()

    # ----------------- notifications -----------------

    def send_notification(self, user_id, message, kind=NotificationKind.GENERAL):
        return self.notifications.notify(user_id, message, kind)

    def mark_notification_as_read(self, notification_id):
        return self.notifications.mark_read(notification_id)

    def get_user_notifications(self, user_id):
        return self.notifications.list_for(user_id)

    def get_unread_count(self, user_id):
        return self.notifications.unread_count(user_id)

    @require_role(Role.LIBRARIAN)
    def send_due_date_reminders(self):
        return self.notifications.send_due_soon_reminders()

    @require_role(Role.LIBRARIAN)
    def send_custom_date_reminders(self, target_date, custom_message=None):
        return self.notifications.send_custom_date_reminders(target_date, custom_message)

    def close(self):
        self.sweeper.stop()
        self.session_factory.kw["bind"].dispose()
