import logging
import threading
from dataclasses import dataclass

from sqlalchemy import func, select

from .db import new_id, session_scope
from .errors import InvalidCredentials, NotFound, ValidationError
from .models import DirectoryUser, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A logged-in user as the rest of the system sees it, without credentials."""
    id: str
    name: str
    email: str
    role: Role

    @classmethod
    def from_record(cls, user):
        return cls(id=user.id, name=user.name, email=user.email, role=Role(user.role))

    @property
    def is_librarian(self):
        return self.role == Role.LIBRARIAN

    @property
    def is_student(self):
        return self.role == Role.STUDENT


class Directory:
    def __init__(self, session_factory, lock=None):
        self.session_factory = session_factory
        self._lock = lock or threading.RLock()

    def register(self, name, email, password, role=Role.STUDENT, user_id=None):
        if not name or not email or not password:
            raise ValidationError("name, email and password are required")
        try:
            role = Role(role)
        except ValueError as exc:
            raise ValidationError(f"unknown role {role!r}") from exc

        with self._lock, session_scope(self.session_factory) as session:
            q = select(DirectoryUser).where(DirectoryUser.email == email)
            if session.execute(q).scalar_one_or_none() is not None:
                raise ValidationError(f"{email} is already registered")

            user = DirectoryUser(
                id=user_id or new_id("usr"),
                name=name,
                email=email,
                password=password,
                role=role,
            )
            session.add(user)

        logger.info("Registered %s %s", role.value, email)
        return Identity.from_record(user)

    def authenticate(self, email, password):
        """Exact email and password match, or ``InvalidCredentials``."""
        q = select(DirectoryUser).where(
            DirectoryUser.email == email,
            DirectoryUser.password == password,
        )
        with self._lock, session_scope(self.session_factory) as session:
            user = session.execute(q).scalar_one_or_none()

        if user is None:
            logger.warning("Failed login for %s", email)
            raise InvalidCredentials()
        return Identity.from_record(user)

    def get(self, user_id):
        with self._lock, session_scope(self.session_factory) as session:
            user = session.get(DirectoryUser, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return Identity.from_record(user)

    def count_by_role(self, role):
        q = select(func.count()).select_from(DirectoryUser).where(DirectoryUser.role == Role(role))
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(q).scalar_one()

    def is_empty(self):
        with self._lock, session_scope(self.session_factory) as session:
            return session.execute(select(func.count()).select_from(DirectoryUser)).scalar_one() == 0
