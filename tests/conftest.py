from datetime import datetime, timedelta

import pytest

from lending_service.config import Config
from lending_service.db import create_session_factory
from lending_service.models import Role
from lending_service.system import LendingSystem

START = datetime(2026, 10, 19, 9, 30, 15, 123456)


class MemoryConfig(Config):
    DATABASE_URL = "sqlite://"
    SQLALCHEMY_ECHO = False
    SEED_DEMO_DATA = False


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def system(clock):
    lending = LendingSystem(
        config=MemoryConfig,
        session_factory=create_session_factory("sqlite://"),
        clock=clock,
    )
    yield lending
    lending.close()


@pytest.fixture
def librarian(system):
    return system.directory.register(
        "Admin Librarian", "admin@library.com", "admin", Role.LIBRARIAN, user_id="admin-001"
    )


@pytest.fixture
def student(system):
    return system.directory.register(
        "John Student", "student@library.com", "student", Role.STUDENT, user_id="student-001"
    )


@pytest.fixture
def other_student(system):
    return system.directory.register(
        "Jane Student", "jane@library.com", "jane", Role.STUDENT, user_id="student-002"
    )


@pytest.fixture
def add_book(system):
    def _add(title="Atomic Habits", author="James Clear", quantity=1, **fields):
        return system.catalog.add_book(title=title, author=author, quantity=quantity, **fields)

    return _add
