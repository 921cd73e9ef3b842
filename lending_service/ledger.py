"""
Borrow/return transitions and late fees.

The ledger owns borrow records and reaches book state only through the
catalog. A record refers to its book by id, so a record whose book was
deleted is an orphan: reads drop it, return still closes it.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select

from .config import Config
from .db import new_id, session_scope
from .errors import AlreadyBorrowed, NoActiveLoan, Unavailable
from .models import CENT, Book, BorrowRecord, as_naive_utc, utcnow

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def calculate_late_fee(due_date, as_of, fee_per_day=Config.LATE_FEE_PER_DAY):
    """
    Fee owed for a loan due at ``due_date`` as of ``as_of``.

    Nothing is owed until the due date has passed; after that every started
    24-hour block costs ``fee_per_day``, so one minute late is a full day.
    """
    if due_date >= as_of:
        return Decimal("0.00")

    days, remainder = divmod(as_of - due_date, ONE_DAY)
    if remainder:
        days += 1
    return (Decimal(fee_per_day) * days).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class OpenLoan:
    book: Book
    record: BorrowRecord
    late_fee: Decimal


class Ledger:
    def __init__(self, session_factory, catalog, config=Config, clock=utcnow, lock=None):
        self.session_factory = session_factory
        self.catalog = catalog
        self.config = config
        self.clock = clock
        self._lock = lock or threading.RLock()
        self._last_refresh = None

    @property
    def loan_period(self):
        return timedelta(days=self.config.LOAN_PERIOD_DAYS)

    def calculate_late_fee(self, due_date, as_of=None):
        as_of = as_naive_utc(as_of or self.clock())
        due_date = as_naive_utc(due_date)
        return calculate_late_fee(due_date, as_of, self.config.LATE_FEE_PER_DAY)

    def _open_record(self, session, book_id, borrower_id):
        q = select(BorrowRecord).where(
            BorrowRecord.book_id == book_id,
            BorrowRecord.borrower_id == borrower_id,
            BorrowRecord.returned.is_(False),
        )
        return session.execute(q).scalars().first()

    def _open_records(self, session):
        q = select(BorrowRecord).where(BorrowRecord.returned.is_(False)).order_by(
            BorrowRecord.due_date, BorrowRecord.borrow_date
        )
        return session.execute(q).scalars().all()

    # ----------------- transitions -----------------

    def borrow(self, book_id, borrower_id):
        now = self.clock()
        with self._lock, session_scope(self.session_factory) as session:
            book = self.catalog.get_by_id(book_id, session=session)
            if book.available_copies <= 0:
                logger.warning("Borrow of %s by %s refused: no free copies", book_id, borrower_id)
                raise Unavailable(f"No copies of {book_id} available")

            if self._open_record(session, book_id, borrower_id) is not None:
                logger.warning("Borrow of %s by %s refused: already on loan", book_id, borrower_id)
                raise AlreadyBorrowed(f"{borrower_id} already has {book_id} on loan")

            self.catalog.decrement_free_copies(book_id, borrower_id, session=session)

            record = BorrowRecord(
                id=new_id("loan"),
                book_id=book_id,
                borrower_id=borrower_id,
                borrow_date=now,
                due_date=now + self.loan_period,
                returned=False,
                late_fee_cents=0,
            )
            session.add(record)

        logger.info(
            "Lent %s to %s, due %s", book_id, borrower_id, record.due_date.isoformat()
        )
        return record

    def return_book(self, book_id, borrower_id):
        now = self.clock()
        with self._lock, session_scope(self.session_factory) as session:
            record = self._open_record(session, book_id, borrower_id)
            if record is None:
                logger.warning("Return of %s by %s refused: no open loan", book_id, borrower_id)
                raise NoActiveLoan(f"{borrower_id} has no open loan for {book_id}")

            record.return_date = now
            record.returned = True
            record.late_fee = self.calculate_late_fee(record.due_date, now)

            if self.catalog.find_book(book_id, session=session) is not None:
                self.catalog.increment_free_copies(book_id, borrower_id, session=session)
            else:
                logger.warning("Closed loan %s for deleted book %s", record.id, book_id)

        logger.info(
            "%s returned %s, late fee %s", borrower_id, book_id, record.late_fee
        )
        return record

    # ----------------- fee refresh -----------------

    def refresh_late_fees(self, now=None):
        """
        Recompute the stored fee of every open loan. Returns how many changed.
        """
        now = as_naive_utc(now or self.clock())
        changed = 0
        with self._lock, session_scope(self.session_factory) as session:
            for record in self._open_records(session):
                fee = self.calculate_late_fee(record.due_date, now)
                if fee != record.late_fee:
                    record.late_fee = fee
                    changed += 1
        self._last_refresh = now

        logger.info("Late fee sweep updated %d open loan(s)", changed)
        return changed

    def refresh_if_stale(self, now=None):
        now = as_naive_utc(now or self.clock())
        interval = timedelta(seconds=self.config.FEE_REFRESH_INTERVAL_SECONDS)
        if self._last_refresh is not None and now - self._last_refresh < interval:
            logger.debug("Late fees refreshed at %s, skipping", self._last_refresh)
            return 0
        return self.refresh_late_fees(now)

    # ----------------- reads -----------------

    def find_open_record(self, book_id, borrower_id):
        with self._lock, session_scope(self.session_factory) as session:
            return self._open_record(session, book_id, borrower_id)

    def get_open_records(self):
        with self._lock, session_scope(self.session_factory) as session:
            return self._open_records(session)

    def get_records_for(self, borrower_id):
        q = (
            select(BorrowRecord)
            .where(BorrowRecord.borrower_id == borrower_id)
            .order_by(BorrowRecord.borrow_date.desc())
        )
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(q).scalars().all()

    def get_borrowed_books(self, borrower_id):
        q = select(BorrowRecord.book_id).where(
            BorrowRecord.borrower_id == borrower_id,
            BorrowRecord.returned.is_(False),
        )
        with self._lock, session_scope(self.session_factory) as session:
            book_ids = list(dict.fromkeys(session.execute(q).scalars().all()))
            books = self.catalog.get_many(book_ids, session=session)
        return [books[book_id] for book_id in book_ids if book_id in books]

    def get_all_open_loans(self, now=None):
        now = now or self.clock()
        self.refresh_if_stale(now)

        with self._lock, session_scope(self.session_factory) as session:
            records = self._open_records(session)
            books = self.catalog.get_many([r.book_id for r in records], session=session)

        loans = []
        for record in records:
            book = books.get(record.book_id)
            if book is None:
                logger.debug("Skipping loan %s, book %s is gone", record.id, record.book_id)
                continue
            loans.append(OpenLoan(book, record, self.calculate_late_fee(record.due_date, now)))
        return loans

    def count_open_loans(self):
        q = select(func.count()).select_from(BorrowRecord).where(BorrowRecord.returned.is_(False))
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(q).scalar_one()


class FeeSweeper:
    """
    Background thread that refreshes late fees every ``interval_seconds``.
    """

    def __init__(self, ledger, interval_seconds=Config.FEE_REFRESH_INTERVAL_SECONDS):
        self.ledger = ledger
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="late-fee-sweeper", daemon=True)
        self._thread.start()
        logger.info("Late fee sweeper started, every %ss", self.interval_seconds)

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Late fee sweeper stopped")

    def _run(self):
        while not self._stop.wait(self.interval_seconds):
            try:
                self.ledger.refresh_late_fees()
            except Exception:
                # keep sweeping; the next run retries every open loan
                logger.exception("Late fee sweep failed")
