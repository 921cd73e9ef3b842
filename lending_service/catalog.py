import logging
import threading

from sqlalchemy import select

from .db import new_id, session_scope
from .errors import NotFound, Unavailable, ValidationError
from .models import Book

logger = logging.getLogger(__name__)

# Columns a caller may supply on update; id and the availability flag are ours
EDITABLE_FIELDS = (
    "title",
    "author",
    "isbn",
    "category",
    "description",
    "cover_image",
    "publication_year",
    "total_copies",
    "available_copies",
)


def _require_text(value, field):
    if not value or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def _optional_text(value, field):
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be text")
    return value


def _validate_counts(total_copies, available_copies):
    for field, value in (("total_copies", total_copies), ("available_copies", available_copies)):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{field} must be a non-negative integer")


def _validate_year(year):
    if year is None:
        return None
    if not isinstance(year, int) or isinstance(year, bool) or year < 0:
        raise ValidationError("publication_year must be a non-negative integer")
    return year


class Catalog:
    """
    Owns the book records and their free-copy counters.

    Every change re-derives ``available`` from ``available_copies``.
    """

    def __init__(self, session_factory, lock=None):
        self.session_factory = session_factory
        self._lock = lock or threading.RLock()

    def add_book(
        self,
        title,
        author,
        quantity=1,
        isbn="",
        category="",
        description="",
        cover_image="",
        publication_year=None,
    ):
        title = _require_text(title, "title")
        author = _require_text(author, "author")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        publication_year = _validate_year(publication_year)

        with self._lock, session_scope(self.session_factory) as session:
            book_id = new_id("book")
            while session.get(Book, book_id) is not None:
                book_id = new_id("book")

            book = Book(
                id=book_id,
                title=title,
                author=author,
                isbn=(isbn or "").strip(),
                category=(category or "").strip(),
                description=description or "",
                cover_image=cover_image or "",
                publication_year=publication_year,
                total_copies=quantity,
                available_copies=quantity,
                available=True,
                borrowed_by=[],
            )
            session.add(book)

        logger.info("Added book %s (%r, %d copies)", book.id, book.title, quantity)
        return book

    def update_book(self, book):
        """Replace the stored record that has ``book.id``. No field merging."""
        title = _require_text(book.title, "title")
        author = _require_text(book.author, "author")
        _validate_counts(book.total_copies, book.available_copies)
        _validate_year(book.publication_year)
        text_fields = {
            field: _optional_text(getattr(book, field), field)
            for field in ("isbn", "category", "description", "cover_image")
        }

        with self._lock, session_scope(self.session_factory) as session:
            stored = session.get(Book, book.id)
            if stored is None:
                raise NotFound(f"Book {book.id} not found")

            for field in EDITABLE_FIELDS:
                setattr(stored, field, getattr(book, field))
            stored.title = title
            stored.author = author
            for field, value in text_fields.items():
                setattr(stored, field, value)
            stored.borrowed_by = list(book.borrowed_by or [])
            stored.available = stored.available_copies > 0

        logger.info("Updated book %s", stored.id)
        return stored

    def delete_book(self, book_id):
        with self._lock, session_scope(self.session_factory) as session:
            book = session.get(Book, book_id)
            if book is None:
                raise NotFound(f"Book {book_id} not found")
            session.delete(book)

        logger.info("Removed book %s (%r)", book_id, book.title)
        return book

    def find_book(self, book_id, session=None):
        with self._lock, session_scope(self.session_factory, session) as s:
            return s.get(Book, book_id)

    def get_by_id(self, book_id, session=None):
        book = self.find_book(book_id, session=session)
        if book is None:
            raise NotFound(f"Book {book_id} not found")
        return book

    def get_many(self, book_ids, session=None):
        """Books for the given ids keyed by id; missing ids are left out."""
        ids = set(book_ids)
        if not ids:
            return {}
        with self._lock, session_scope(self.session_factory, session) as s:
            books = s.execute(select(Book).where(Book.id.in_(ids))).scalars().all()
            return {b.id: b for b in books}

    def list_books(self):
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(select(Book).order_by(Book.title)).scalars().all()

    # ----------------- counters used by the ledger -----------------

    def decrement_free_copies(self, book_id, borrower_id=None, session=None):
        """
        Take one free copy, optionally recording who holds it.

        Pass ``session`` to join the caller's transaction.
        """
        with self._lock, session_scope(self.session_factory, session) as s:
            book = s.get(Book, book_id)
            if book is None:
                raise NotFound(f"Book {book_id} not found")
            if book.available_copies <= 0:
                raise Unavailable(f"No copies of {book_id} available")

            book.available_copies -= 1
            book.available = book.available_copies > 0
            if borrower_id is not None:
                book.borrowed_by = list(book.borrowed_by or []) + [borrower_id]
            s.flush()
            return book

    def increment_free_copies(self, book_id, borrower_id=None, session=None):
        """
        Put one copy back. Every occurrence of ``borrower_id`` leaves the
        borrower list.
        """
        with self._lock, session_scope(self.session_factory, session) as s:
            book = s.get(Book, book_id)
            if book is None:
                raise NotFound(f"Book {book_id} not found")

            book.available_copies += 1
            book.available = book.available_copies > 0
            if borrower_id is not None:
                book.borrowed_by = [b for b in (book.borrowed_by or []) if b != borrower_id]
            s.flush()
            return book
