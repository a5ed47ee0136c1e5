import uuid
from types import SimpleNamespace

import pytest

from application import (
    CreateProjectCommand,
    CreateProjectUseCase,
    RegisterPersonCommand,
    RegisterPersonUseCase,
)
from infrastructure import InMemoryDatabase, InMemoryUnitOfWork
from model import Role


def uid(value) -> uuid.UUID:
    """DTO ids are strings; commands take UUIDs."""
    return value if isinstance(value, uuid.UUID) else uuid.UUID(value)


def register(uow, full_name, email, role=Role.COLLABORATOR):
    return RegisterPersonUseCase().execute(
        RegisterPersonCommand(full_name=full_name, email=email, role=role), uow
    )


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def uow(db):
    return InMemoryUnitOfWork(db)


@pytest.fixture
def people(uow):
    return SimpleNamespace(
        admin=register(uow, "Ada Admin", "ada@example.com", Role.ADMIN),
        leader=register(uow, "Lee Leader", "lee@example.com", Role.LEADER),
        other_leader=register(uow, "Olga Leader", "olga@example.com", Role.LEADER),
        alice=register(uow, "Alice Worker", "alice@example.com"),
        bob=register(uow, "Bob Worker", "bob@example.com"),
        carol=register(uow, "Carol Outsider", "carol@example.com"),
    )


@pytest.fixture
def project(uow, people):
    return CreateProjectUseCase().execute(
        CreateProjectCommand(
            name="Website relaunch",
            description="Rebuild the public site",
            leader_id=uid(people.leader.id),
            tags=["Web", " web ", "Design"],
        ),
        uow,
    )


def stored(db, kind, entity_id):
    """The committed copy of an entity, bypassing any unit of work."""
    return getattr(db, kind).fetch(uid(entity_id))
