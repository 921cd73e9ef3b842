# lending_service/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
)

Base = declarative_base()

CENT = Decimal("0.01")


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value):
    """Convert an aware datetime to the naive UTC form; naive values pass through."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Role(str, enum.Enum):
    LIBRARIAN = "librarian"
    STUDENT = "student"


class NotificationKind(str, enum.Enum):
    DUE_DATE = "due_date"
    OVERDUE = "overdue"
    CUSTOM_REMINDER = "custom_reminder"
    GENERAL = "general"


class Book(Base):
    __tablename__ = "book"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    isbn = Column(String(20), nullable=False, default="")
    category = Column(String(100), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    cover_image = Column(String(1024), nullable=False, default="")
    publication_year = Column(Integer)
    total_copies = Column(Integer, nullable=False, default=1)
    # free copies, i.e. not currently lent out
    available_copies = Column(Integer, nullable=False, default=1)
    available = Column(Boolean, nullable=False, default=True)
    # borrower ids in borrow order; reassign, never mutate in place
    borrowed_by = Column(JSON, nullable=False, default=list)

    def __repr__(self):
        return f"<Book {self.id} {self.title!r} free={self.available_copies}>"


class BorrowRecord(Base):
    """
    One lending transaction. ``book_id`` is a plain reference so a record
    outlives the deletion of its book.
    """
    __tablename__ = "borrow_record"

    id = Column(String(64), primary_key=True)
    book_id = Column(String(64), nullable=False, index=True)
    borrower_id = Column(String(64), nullable=False, index=True)
    borrow_date = Column(DateTime, nullable=False, default=utcnow)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime)
    returned = Column(Boolean, nullable=False, default=False)
    late_fee_cents = Column(Integer, nullable=False, default=0)

    @property
    def late_fee(self):
        return (Decimal(self.late_fee_cents or 0) / 100).quantize(CENT)

    @late_fee.setter
    def late_fee(self, amount):
        self.late_fee_cents = int((Decimal(amount) * 100).to_integral_value())

    @property
    def is_open(self):
        return not self.returned

    def __repr__(self):
        state = "returned" if self.returned else "open"
        return f"<BorrowRecord {self.id} book={self.book_id} borrower={self.borrower_id} {state}>"


class DirectoryUser(Base):
    __tablename__ = "directory_user"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(
        Enum(Role, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=Role.STUDENT,
    )


class Notification(Base):
    __tablename__ = "notification"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    read = Column(Boolean, nullable=False, default=False)
    kind = Column(
        Enum(NotificationKind, name="notification_kind", values_callable=_enum_values),
        nullable=False,
        default=NotificationKind.GENERAL,
    )
