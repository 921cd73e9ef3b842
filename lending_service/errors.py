"""
Error kinds raised by the lending core.

Every operation either returns its result or raises one of these. They are
all recoverable: the UI catches ``LendingError`` and maps ``code`` to a
message of its own.
"""


class LendingError(Exception):
    code = "lending_error"

    def __init__(self, description=None):
        super().__init__(description or self.code)
        self.description = description or self.code


class NotFound(LendingError):
    code = "not_found"


class Unavailable(LendingError):
    code = "unavailable"


class AlreadyBorrowed(LendingError):
    code = "already_borrowed"


class NoActiveLoan(LendingError):
    code = "no_active_loan"


class InvalidCredentials(LendingError):
    code = "invalid_credentials"


class Forbidden(LendingError):
    code = "forbidden"


class ValidationError(LendingError):
    code = "validation_error"
