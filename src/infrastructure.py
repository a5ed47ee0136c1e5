"""
infrastructure.py

In-memory implementation of all repository interfaces, the Unit of Work,
and the login throttle.

This is a self-contained backend that stores everything in plain Python
dicts keyed by UUID.  It is suitable for local development, demos, and
integration testing without needing a real database, but it still behaves
like one where it matters:

  - Reads hand out copies.  Each repository keeps an identity map, so one
    unit of work always sees the same instance for an id (and its own
    staged writes), while the shared store is never mutated in place.
  - Writes are buffered.  save() / delete() only stage a change; commit()
    applies everything under a process-wide lock, tasks first, then
    projects, then persons.
  - Optimistic concurrency.  Every staged entity's version is checked
    against the store before anything is written.  One stale version raises
    ConflictError and none of the unit's writes are applied.

To swap in a real database (e.g. SQLAlchemy + PostgreSQL) later, implement
the same Abstract* interfaces from application.py and override get_uow() in
api.py:

    app.dependency_overrides[get_uow] = lambda: SqlAlchemyUnitOfWork(session)

Nothing in service.py, application.py, or api.py needs to change.
"""

from __future__ import annotations

import copy
import logging
import math
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from application import (
    AbstractLoginThrottle,
    AbstractPersonRepository,
    AbstractProjectRepository,
    AbstractTaskRepository,
    AbstractUnitOfWork,
)
from errors import ConflictError
from model import Person, Project, ProjectStatus, Role, Task

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save/delete helpers."""

    def fetch(self, key: uuid.UUID):
        return self.get(key)

    def put(self, obj) -> None:
        self[obj.id] = obj

    def remove(self, key: uuid.UUID) -> None:
        self.pop(key, None)

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Persists for the lifetime of the process: restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.persons:  _Store = _Store()
        self.projects: _Store = _Store()
        self.tasks:    _Store = _Store()
        # Guards every read of and write to the stores above.
        self.lock = threading.RLock()


# Module-level singleton: shared across all requests
_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class _InMemoryRepository:
    """
    Identity map plus a buffer of staged saves and deletes over one _Store.

    Staged deletes remember the version that was loaded (None when the
    entity was never read in this unit of work, in which case the delete is
    not version-checked).
    """

    kind = "entity"

    def __init__(self, store: _Store, lock: threading.RLock):
        self._s = store
        self._lock = lock
        self._identity: Dict[uuid.UUID, object] = {}
        self._pending: Dict[uuid.UUID, object] = {}
        self._deleted: Dict[uuid.UUID, Optional[int]] = {}

    # --- reads --------------------------------------------------------------

    def get(self, entity_id):
        if entity_id in self._deleted:
            return None
        if entity_id in self._identity:
            return self._identity[entity_id]
        with self._lock:
            stored = self._s.fetch(entity_id)
            if stored is None:
                return None
            loaded = copy.deepcopy(stored)
        self._identity[entity_id] = loaded
        return loaded

    def _all(self) -> list:
        with self._lock:
            ids = list(self._s.keys())
        ids += [i for i in self._identity if i not in ids]
        return [e for e in (self.get(i) for i in ids) if e is not None]

    # --- writes (staged) ----------------------------------------------------

    def save(self, entity) -> None:
        self._identity[entity.id] = entity
        self._pending[entity.id] = entity
        self._deleted.pop(entity.id, None)

    def delete(self, entity_id) -> None:
        loaded = self._identity.pop(entity_id, None)
        self._pending.pop(entity_id, None)
        self._deleted[entity_id] = loaded.version if loaded is not None else None

    # --- commit protocol (called by the unit of work under the lock) --------

    @property
    def has_changes(self) -> bool:
        return bool(self._pending or self._deleted)

    def _check_versions(self) -> None:
        for entity_id, entity in self._pending.items():
            stored = self._s.fetch(entity_id)
            stored_version = stored.version if stored is not None else 0
            if stored_version != entity.version:
                raise ConflictError(
                    f"{self.kind.capitalize()} {entity_id} was modified concurrently "
                    f"(loaded version {entity.version}, stored version {stored_version})."
                )
        for entity_id, expected in self._deleted.items():
            stored = self._s.fetch(entity_id)
            if expected is not None and stored is not None and stored.version != expected:
                raise ConflictError(
                    f"{self.kind.capitalize()} {entity_id} was modified concurrently "
                    "and cannot be deleted."
                )

    def _apply(self) -> Tuple[int, int]:
        for entity in self._pending.values():
            entity.version += 1
            self._s.put(copy.deepcopy(entity))
        for entity_id in self._deleted:
            self._s.remove(entity_id)
        return len(self._pending), len(self._deleted)

    def _reset(self) -> None:
        self._identity.clear()
        self._pending.clear()
        self._deleted.clear()


class InMemoryPersonRepository(_InMemoryRepository, AbstractPersonRepository):
    kind = "person"

    def get_by_email(self, email: str) -> Optional[Person]:
        return next((p for p in self._all() if p.email == email), None)

    def list_all(self) -> List[Person]:
        return self._all()

    def list_by_role(self, role: Role) -> List[Person]:
        return [p for p in self._all() if p.role == role]


class InMemoryProjectRepository(_InMemoryRepository, AbstractProjectRepository):
    kind = "project"

    def list_all(self) -> List[Project]:
        return self._all()

    def list_by_status(self, status: ProjectStatus) -> List[Project]:
        return [p for p in self._all() if p.status == status]

    def list_for_leader(self, person_id: uuid.UUID) -> List[Project]:
        return [p for p in self._all() if p.is_leader(person_id)]

    def list_for_member(self, person_id: uuid.UUID) -> List[Project]:
        return [p for p in self._all() if p.has_member(person_id)]


class InMemoryTaskRepository(_InMemoryRepository, AbstractTaskRepository):
    kind = "task"

    def list_for_project(self, project_id: uuid.UUID) -> List[Task]:
        return [t for t in self._all() if t.project_id == project_id]

    def list_for_assignee(self, person_id: uuid.UUID) -> List[Task]:
        return [t for t in self._all() if t.is_assigned_to(person_id)]


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Wraps all in-memory repositories.

    commit() validates every staged entity, then writes tasks, projects and
    persons in that order, all under the database lock.  rollback() discards
    everything staged.  Both also clear the identity maps, so the same
    instance can be reused for a later use case and will read fresh state.
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self._db = db
        self.tasks    = InMemoryTaskRepository(db.tasks, db.lock)
        self.projects = InMemoryProjectRepository(db.projects, db.lock)
        self.persons  = InMemoryPersonRepository(db.persons, db.lock)

    def _repositories(self) -> List[_InMemoryRepository]:
        # Commit order.
        return [self.tasks, self.projects, self.persons]

    def commit(self) -> None:
        repos = self._repositories()
        if not any(r.has_changes for r in repos):
            self._reset()
            return
        try:
            with self._db.lock:
                for repo in repos:
                    repo._check_versions()
                for repo in repos:
                    saved, deleted = repo._apply()
                    if saved or deleted:
                        logger.debug("Committed %d %s save(s), %d delete(s)", saved, repo.kind, deleted)
        except ConflictError as exc:
            logger.warning("Commit rejected: %s", exc)
            self._reset()
            raise
        self._reset()

    def rollback(self) -> None:
        self._reset()

    def _reset(self) -> None:
        for repo in self._repositories():
            repo._reset()


# ---------------------------------------------------------------------------
# Login throttle
# ---------------------------------------------------------------------------

class InMemoryLoginThrottle(AbstractLoginThrottle):
    """
    Fixed-window attempt counter per client key.

    The first attempt opens a window of `window_seconds`; up to
    `max_attempts` attempts are allowed inside it.  `clock` returns seconds
    and defaults to time.monotonic.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1 or window_seconds < 1:
            raise ValueError("max_attempts and window_seconds must be positive.")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # client_key -> [window_start, attempts]
        self._windows: Dict[str, List[float]] = {}

    def _live_window(self, client_key: str, now: float) -> Optional[List[float]]:
        window = self._windows.get(client_key)
        if window is None or now - window[0] >= self.window_seconds:
            return None
        return window

    def allow_request(self, client_key: str) -> bool:
        with self._lock:
            now = self._clock()
            window = self._live_window(client_key, now)
            if window is None:
                self._windows[client_key] = [now, 1]
                return True
            if window[1] >= self.max_attempts:
                logger.warning("Login throttled for %s", client_key)
                return False
            window[1] += 1
            return True

    def remaining_attempts(self, client_key: str) -> int:
        with self._lock:
            window = self._live_window(client_key, self._clock())
            if window is None:
                return self.max_attempts
            return max(0, self.max_attempts - int(window[1]))

    def seconds_until_reset(self, client_key: str) -> int:
        with self._lock:
            now = self._clock()
            window = self._live_window(client_key, now)
            if window is None:
                return 0
            return int(math.ceil(self.window_seconds - (now - window[0])))

    def reset(self, client_key: str) -> None:
        with self._lock:
            self._windows.pop(client_key, None)

    def cleanup(self) -> int:
        """Forget clients whose window ended more than one window ago."""
        with self._lock:
            now = self._clock()
            stale = [
                key for key, (start, _) in self._windows.items()
                if now - start > 2 * self.window_seconds
            ]
            for key in stale:
                del self._windows[key]
        if stale:
            logger.debug("Login throttle dropped %d stale client(s)", len(stale))
        return len(stale)
