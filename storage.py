"""Storage backends for users and tasks.

The auth and task components only talk to :class:`Storage`. Two backends
ship with the service:

- :class:`MemoryStorage` keeps everything in process dictionaries.
- :class:`SqlStorage` persists to a SQLAlchemy database using the tables
  declared in ``models``.

Every task method takes the owner's user id and filters on it, so a task
owned by someone else looks exactly like a task that does not exist.
Ids are never reused after a delete.
"""

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

import models
from errors import ConflictError

# SQLite INTEGER is a signed 64-bit value
MAX_ROW_ID = 2**63 - 1


@dataclass(frozen=True)
class User:
    id: int
    username: str
    password_hash: str


@dataclass(frozen=True)
class Task:
    id: int
    title: str
    completed: bool
    owner_id: int


class Storage(ABC):
    @abstractmethod
    def add_user(self, username: str, password_hash: str) -> User:
        """Insert a user; raise ConflictError if the username is taken."""

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]:
        ...

    @abstractmethod
    def add_task(self, owner_id: int, title: str) -> Task:
        ...

    @abstractmethod
    def list_tasks(self, owner_id: int) -> List[Task]:
        """Return the owner's tasks ordered by id."""

    @abstractmethod
    def get_task(self, owner_id: int, task_id: int) -> Optional[Task]:
        ...

    @abstractmethod
    def update_task(self, owner_id: int, task_id: int, **fields) -> Optional[Task]:
        """Apply ``title``/``completed`` to an owned task, or return None."""

    @abstractmethod
    def delete_task(self, owner_id: int, task_id: int) -> bool:
        """Remove an owned task; False if there was nothing to remove."""


class MemoryStorage(Storage):
    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}
        self._tasks: Dict[int, Task] = {}
        self._user_ids = itertools.count(1)
        self._task_ids = itertools.count(1)

    def add_user(self, username, password_hash):
        with self._lock:
            if username in self._users:
                raise ConflictError("Username already registered")
            user = User(id=next(self._user_ids), username=username, password_hash=password_hash)
            self._users[username] = user
            return user

    def get_user_by_username(self, username):
        with self._lock:
            return self._users.get(username)

    def add_task(self, owner_id, title):
        with self._lock:
            task = Task(id=next(self._task_ids), title=title, completed=False, owner_id=owner_id)
            self._tasks[task.id] = task
            return task

    def list_tasks(self, owner_id):
        with self._lock:
            return sorted(
                (t for t in self._tasks.values() if t.owner_id == owner_id),
                key=lambda t: t.id,
            )

    def get_task(self, owner_id, task_id):
        with self._lock:
            return self._owned(owner_id, task_id)

    def update_task(self, owner_id, task_id, **fields):
        with self._lock:
            task = self._owned(owner_id, task_id)
            if task is None:
                return None
            task = replace(task, **_task_fields(fields))
            self._tasks[task_id] = task
            return task

    def delete_task(self, owner_id, task_id):
        with self._lock:
            if self._owned(owner_id, task_id) is None:
                return False
            del self._tasks[task_id]
            return True

    def _owned(self, owner_id: int, task_id: int) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None or task.owner_id != owner_id:
            return None
        return task


class SqlStorage(Storage):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add_user(self, username, password_hash):
        with self._session_factory() as db:
            existing = db.query(models.User).filter(models.User.username == username).first()
            if existing:
                raise ConflictError("Username already registered")
            db_user = models.User(username=username, password_hash=password_hash)
            db.add(db_user)
            try:
                db.commit()
            except IntegrityError:
                # Lost a race with a concurrent registration.
                db.rollback()
                raise ConflictError("Username already registered")
            return _user(db_user)

    def get_user_by_username(self, username):
        with self._session_factory() as db:
            db_user = db.query(models.User).filter(models.User.username == username).first()
            return _user(db_user) if db_user else None

    def add_task(self, owner_id, title):
        with self._session_factory() as db:
            db_task = models.Task(title=title, completed=False, owner_id=owner_id)
            db.add(db_task)
            db.commit()
            return _task(db_task)

    def list_tasks(self, owner_id):
        with self._session_factory() as db:
            rows = (
                db.query(models.Task)
                .filter(models.Task.owner_id == owner_id)
                .order_by(models.Task.id)
                .all()
            )
            return [_task(row) for row in rows]

    def get_task(self, owner_id, task_id):
        with self._session_factory() as db:
            row = self._owned(db, owner_id, task_id)
            return _task(row) if row else None

    def update_task(self, owner_id, task_id, **fields):
        with self._session_factory() as db:
            row = self._owned(db, owner_id, task_id)
            if row is None:
                return None
            for name, value in _task_fields(fields).items():
                setattr(row, name, value)
            db.commit()
            return _task(row)

    def delete_task(self, owner_id, task_id):
        if not _storable_id(task_id):
            return False
        with self._session_factory() as db:
            deleted = (
                db.query(models.Task)
                .filter(models.Task.id == task_id, models.Task.owner_id == owner_id)
                .delete()
            )
            db.commit()
            return deleted > 0

    @staticmethod
    def _owned(db, owner_id, task_id):
        if not _storable_id(task_id):
            return None
        return (
            db.query(models.Task)
            .filter(models.Task.id == task_id, models.Task.owner_id == owner_id)
            .first()
        )


def _task_fields(fields: dict) -> dict:
    unknown = set(fields) - {"title", "completed"}
    if unknown:
        raise TypeError(f"Unknown task fields: {sorted(unknown)}")
    return fields


def _user(row: models.User) -> User:
    return User(id=row.id, username=row.username, password_hash=row.password_hash)


def _task(row: models.Task) -> Task:
    return Task(id=row.id, title=row.title, completed=bool(row.completed), owner_id=row.owner_id)


def _storable_id(task_id: int) -> bool:
    return -MAX_ROW_ID - 1 <= task_id <= MAX_ROW_ID
