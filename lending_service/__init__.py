from .errors import (
    AlreadyBorrowed,
    Forbidden,
    InvalidCredentials,
    LendingError,
    NoActiveLoan,
    NotFound,
    Unavailable,
    ValidationError,
)
from .ledger import OpenLoan, calculate_late_fee
from .models import NotificationKind, Role
from .system import LendingSystem

__all__ = [
    "LendingSystem",
    "OpenLoan",
    "calculate_late_fee",
    "Role",
    "NotificationKind",
    "LendingError",
    "NotFound",
    "Unavailable",
    "AlreadyBorrowed",
    "NoActiveLoan",
    "InvalidCredentials",
    "Forbidden",
    "ValidationError",
]
