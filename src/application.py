"""
application.py

Application layer for the Project Collaboration & Task Lifecycle
Management System.

Overview
--------
The application layer sits between the presentation layer (API) and the
domain / service layer.  It is responsible for:

  1. Defining clean output DTOs (dataclasses) that carry only the data the
     presentation layer needs — no raw domain objects are leaked upward.
  2. Declaring abstract Repository interfaces so that the application layer
     remains fully persistence-agnostic (implementations live in
     infrastructure.py).
  3. Declaring the UnitOfWork abstraction so that every write made by one use
     case is committed together or not at all.
  4. Implementing Use Case handlers — one class per user-facing operation —
     that load entities, call the services, and save what changed in a fixed
     order (Project first, then the Person records it references).

Structure
---------
DTOs
    PersonDTO, ProjectDTO, TaskDTO, CommentDTO,
    ProjectDetailsDTO, MembershipChangeDTO

Interfaces
    AbstractPersonRepository, AbstractProjectRepository,
    AbstractTaskRepository, AbstractUnitOfWork, AbstractLoginThrottle

Use Cases
    --- People ---
    RegisterPersonUseCase, GetPersonUseCase, SearchPersonsUseCase,
    ChangePersonRoleUseCase, ActivatePersonUseCase, DeactivatePersonUseCase,
    DeletePersonUseCase

    --- Projects ---
    CreateProjectUseCase, UpdateProjectUseCase, GetProjectUseCase,
    GetProjectDetailsUseCase, SearchProjectsUseCase,
    ListProjectsForPersonUseCase, CountProjectsByStatusUseCase,
    ToggleArchiveProjectUseCase, DeleteProjectUseCase

    --- Membership ---
    AddCollaboratorUseCase, RemoveCollaboratorUseCase,
    ListProjectCollaboratorsUseCase, SyncCollaboratorsUseCase,
    SyncAllCollaboratorsUseCase

    --- Tasks ---
    CreateTaskUseCase, UpdateTaskStatusUseCase, AddCommentUseCase,
    ListTaskCommentsUseCase, GetTaskUseCase, SearchTasksUseCase,
    ListTasksForPersonUseCase, DeleteTaskUseCase

Design notes
------------
- Use cases receive commands and return DTOs; no domain objects cross the
  application boundary.
- Each use case accepts a UnitOfWork as its sole dependency.
- Project progress is recomputed inside the same unit of work as any task
  creation, status change or deletion.
- Errors bubble up as the ApplicationError subclasses from errors.py.
  No use case retries; a ConflictError is for the caller to handle.
"""

from __future__ import annotations

import abc
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from errors import (
    ApplicationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from model import (
    Comment,
    Person,
    Project,
    ProjectStatus,
    Role,
    Task,
    TaskPriority,
    TaskStatus,
)
from service import (
    MembershipService,
    PersonService,
    ProjectService,
    TaskService,
    can_manage_project,
    can_update_task_status,
)
from workflow import valid_next_project_statuses, valid_next_task_statuses

logger = logging.getLogger(__name__)

__all__ = [
    "ApplicationError",
    "AuthorizationError",
    "ConflictError",
    "NotFoundError",
    "TransitionError",
    "ValidationError",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO-8601 UTC string, or None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _fmt_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None


def _ids(values: Iterable[uuid.UUID]) -> List[str]:
    return sorted(str(v) for v in values)


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class PersonDTO:
    id: str
    full_name: str
    email: str
    role: str
    active: bool
    lead_project_ids: List[str]
    collaborator_project_ids: List[str]
    created_at: str
    updated_at: str


@dataclass
class ProjectDTO:
    id: str
    name: str
    description: str
    leader_id: str
    collaborator_ids: List[str]
    status: str
    allowed_next_statuses: List[str]
    progress: int
    archived: bool
    start_date: Optional[str]
    end_date: Optional[str]
    tags: List[str]
    created_at: str
    updated_at: str
    version: int


@dataclass
class CommentDTO:
    author_id: str
    author_name: str
    text: str
    created_at: str


@dataclass
class TaskDTO:
    id: str
    title: str
    description: str
    project_id: str
    assigned_to_id: Optional[str]
    created_by_id: str
    status: str
    allowed_next_statuses: List[str]
    priority: str
    due_date: Optional[str]
    is_overdue: bool
    tags: List[str]
    comment_count: int
    completed_at: Optional[str]
    created_at: str
    updated_at: str
    version: int


@dataclass
class ProjectDetailsDTO:
    """A project with its leader's name and all of its tasks."""
    project: ProjectDTO
    leader_name: str
    tasks: List[TaskDTO] = field(default_factory=list)


@dataclass
class MembershipChangeDTO:
    """Result of an add/remove collaborator call; `changed` is False for a no-op."""
    project: ProjectDTO
    person_id: str
    changed: bool


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def person(p: Person) -> PersonDTO:
        return PersonDTO(
            id=str(p.id),
            full_name=p.full_name,
            email=p.email,
            role=p.role.value,
            active=p.active,
            lead_project_ids=_ids(p.lead_project_ids),
            collaborator_project_ids=_ids(p.collaborator_project_ids),
            created_at=_fmt(p.created_at),
            updated_at=_fmt(p.updated_at),
        )

    @staticmethod
    def project(p: Project) -> ProjectDTO:
        return ProjectDTO(
            id=str(p.id),
            name=p.name,
            description=p.description,
            leader_id=str(p.leader_id),
            collaborator_ids=_ids(p.collaborator_ids),
            status=p.status.value,
            allowed_next_statuses=[s.value for s in valid_next_project_statuses(p.status)],
            progress=p.progress,
            archived=p.archived,
            start_date=_fmt_date(p.start_date),
            end_date=_fmt_date(p.end_date),
            tags=sorted(p.tags),
            created_at=_fmt(p.created_at),
            updated_at=_fmt(p.updated_at),
            version=p.version,
        )

    @staticmethod
    def task(t: Task) -> TaskDTO:
        return TaskDTO(
            id=str(t.id),
            title=t.title,
            description=t.description,
            project_id=str(t.project_id),
            assigned_to_id=str(t.assigned_to_id) if t.assigned_to_id else None,
            created_by_id=str(t.created_by_id),
            status=t.status.value,
            allowed_next_statuses=[s.value for s in valid_next_task_statuses(t.status)],
            priority=t.priority.value,
            due_date=_fmt_date(t.due_date),
            is_overdue=t.is_overdue(),
            tags=list(t.tags),
            comment_count=len(t.comments),
            completed_at=_fmt(t.completed_at),
            created_at=_fmt(t.created_at),
            updated_at=_fmt(t.updated_at),
            version=t.version,
        )

    @staticmethod
    def comment(c: Comment, author: Optional[Person]) -> CommentDTO:
        return CommentDTO(
            author_id=str(c.author_id),
            author_name=author.full_name if author else "Unknown user",
            text=c.text,
            created_at=_fmt(c.created_at),
        )


# ===========================================================================
# REPOSITORY INTERFACES
# ===========================================================================

class AbstractPersonRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, person_id: uuid.UUID) -> Optional[Person]: ...
    @abc.abstractmethod
    def get_by_email(self, email: str) -> Optional[Person]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Person]: ...
    @abc.abstractmethod
    def list_by_role(self, role: Role) -> List[Person]: ...
    @abc.abstractmethod
    def save(self, person: Person) -> None: ...
    @abc.abstractmethod
    def delete(self, person_id: uuid.UUID) -> None: ...


class AbstractProjectRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, project_id: uuid.UUID) -> Optional[Project]: ...
    @abc.abstractmethod
    def list_all(self) -> List[Project]: ...
    @abc.abstractmethod
    def list_by_status(self, status: ProjectStatus) -> List[Project]: ...
    @abc.abstractmethod
    def list_for_leader(self, person_id: uuid.UUID) -> List[Project]: ...
    @abc.abstractmethod
    def list_for_member(self, person_id: uuid.UUID) -> List[Project]: ...
    @abc.abstractmethod
    def save(self, project: Project) -> None: ...
    @abc.abstractmethod
    def delete(self, project_id: uuid.UUID) -> None: ...


class AbstractTaskRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, task_id: uuid.UUID) -> Optional[Task]: ...
    @abc.abstractmethod
    def list_for_project(self, project_id: uuid.UUID) -> List[Task]: ...
    @abc.abstractmethod
    def list_for_assignee(self, person_id: uuid.UUID) -> List[Task]: ...
    @abc.abstractmethod
    def save(self, task: Task) -> None: ...
    @abc.abstractmethod
    def delete(self, task_id: uuid.UUID) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single transactional boundary.
    Use as a context manager:

        with uow:
            uow.projects.save(project)
            uow.commit()

    Implementations apply saved writes in a fixed order on commit — tasks,
    then projects, then persons — and raise ConflictError (writing nothing)
    if any entity changed in the store since it was loaded.
    """
    persons: AbstractPersonRepository
    projects: AbstractProjectRepository
    tasks: AbstractTaskRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# LOGIN THROTTLE
# ===========================================================================

class AbstractLoginThrottle(abc.ABC):
    """
    Gate for login attempts, keyed by client (e.g. remote address).
    Only the API's login endpoint consults it.
    """

    @abc.abstractmethod
    def allow_request(self, client_key: str) -> bool:
        """Record an attempt and return False once the client is over its limit."""

    @abc.abstractmethod
    def remaining_attempts(self, client_key: str) -> int: ...

    @abc.abstractmethod
    def seconds_until_reset(self, client_key: str) -> int: ...

    @abc.abstractmethod
    def reset(self, client_key: str) -> None: ...

    @abc.abstractmethod
    def cleanup(self) -> int:
        """Drop expired client entries; returns how many were removed."""


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_membership_svc = MembershipService()
_project_svc = ProjectService()
_task_svc = TaskService()
_person_svc = PersonService()


# ===========================================================================
# USE CASE HELPERS
# ===========================================================================

def _get_person_or_raise(uow: AbstractUnitOfWork, person_id: uuid.UUID) -> Person:
    person = uow.persons.get(person_id)
    if person is None:
        raise NotFoundError(f"Person {person_id} not found.")
    return person


def _get_project_or_raise(uow: AbstractUnitOfWork, project_id: uuid.UUID) -> Project:
    project = uow.projects.get(project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found.")
    return project


def _get_task_or_raise(uow: AbstractUnitOfWork, task_id: uuid.UUID) -> Task:
    task = uow.tasks.get(task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found.")
    return task


def _require_project_manager(actor: Person, project: Project) -> None:
    if not can_manage_project(actor, project):
        raise AuthorizationError(
            f"Person {actor.id} is neither an admin nor the leader of project {project.id}."
        )


def _save_membership(
    uow: AbstractUnitOfWork, project: Project, people: Iterable[Person]
) -> None:
    """Persist a membership change: the project first, then each person."""
    uow.projects.save(project)
    for person in people:
        uow.persons.save(person)


def _refresh_project_progress(uow: AbstractUnitOfWork, project: Project) -> Project:
    """Recompute and persist the project's progress from its current tasks."""
    tasks = uow.tasks.list_for_project(project.id)
    project = _project_svc.recalculate_progress(project, tasks)
    uow.projects.save(project)
    return project


def _active_admin_count(uow: AbstractUnitOfWork) -> int:
    return sum(1 for p in uow.persons.list_by_role(Role.ADMIN) if p.active)


# ===========================================================================
# USE CASES: PEOPLE
# ===========================================================================

@dataclass
class RegisterPersonCommand:
    full_name: str
    email: str
    role: Role = Role.COLLABORATOR


class RegisterPersonUseCase:
    def execute(self, cmd: RegisterPersonCommand, uow: AbstractUnitOfWork) -> PersonDTO:
        with uow:
            person = _person_svc.create_person(cmd.full_name, cmd.email, cmd.role)
            if uow.persons.get_by_email(person.email) is not None:
                logger.warning("Registration with duplicate email %s refused", person.email)
                raise ValidationError(f"Email '{person.email}' is already registered.")
            uow.persons.save(person)
            uow.commit()
            logger.info("Person %s registered with role %s", person.id, person.role.value)
            return _Assembler.person(person)


class GetPersonUseCase:
    def execute(self, person_id: uuid.UUID, uow: AbstractUnitOfWork) -> PersonDTO:
        with uow:
            return _Assembler.person(_get_person_or_raise(uow, person_id))


class GetPersonByEmailUseCase:
    def execute(self, email: str, uow: AbstractUnitOfWork) -> PersonDTO:
        with uow:
            person = uow.persons.get_by_email((email or "").strip().lower())
            if person is None:
                raise NotFoundError(f"No person registered with email '{email}'.")
            return _Assembler.person(person)


@dataclass
class SearchPersonsQuery:
    text: Optional[str] = None
    role: Optional[Role] = None
    active_only: bool = False


class SearchPersonsUseCase:
    def execute(self, query: SearchPersonsQuery, uow: AbstractUnitOfWork) -> List[PersonDTO]:
        with uow:
            people = [
                p for p in uow.persons.list_all()
                if _person_svc.matches(p, query.text, query.role, query.active_only)
            ]
            people.sort(key=lambda p: p.full_name.lower())
            return [_Assembler.person(p) for p in people]


@dataclass
class ChangePersonRoleCommand:
    person_id: uuid.UUID
    full_name: str
    role: Role


class ChangePersonRoleUseCase:
    def execute(self, cmd: ChangePersonRoleCommand, uow: AbstractUnitOfWork) -> PersonDTO:
        with uow:
            person = _get_person_or_raise(uow, cmd.person_id)
            if person.is_admin and cmd.role != Role.ADMIN and _active_admin_count(uow) <= 1:
                raise ValidationError("Cannot change the role of the only active administrator.")
            _person_svc.update_person(person, cmd.full_name, cmd.role)
            uow.persons.save(person)
            uow.commit()
            return _Assembler.person(person)


class ActivatePersonUseCase:
    def execute(self, person_id: uuid.UUID, uow: AbstractUnitOfWork) -> PersonDTO:
        with uow:
            person = _get_person_or_raise(uow, person_id)
            if not person.active:
                _person_svc.activate(person)
                uow.persons.save(person)
                uow.commit()
                logger.info("Person %s activated", person.id)
            return _Assembler.person(person)


class DeactivatePersonUseCase:
    def execute(self, person_id: uuid.UUID, uow: AbstractUnitOfWork) -> PersonDTO:
        with uow:
            person = _get_person_or_raise(uow, person_id)
            if person.active:
                _person_svc.deactivate(person, _active_admin_count(uow))
                uow.persons.save(person)
                uow.commit()
                logger.info("Person %s deactivated", person.id)
            return _Assembler.person(person)


class DeletePersonUseCase:
    """
    Hard-delete a person once nothing depends on them.  Remaining
    collaborator links are detached (each project first, then the person).
    """

    def execute(self, person_id: uuid.UUID, uow: AbstractUnitOfWork) -> None:
        with uow:
            person = _get_person_or_raise(uow, person_id)
            assigned = len(uow.tasks.list_for_assignee(person_id))
            _person_svc.ensure_deletable(person, _active_admin_count(uow), assigned)
            for project_id in sorted(person.collaborator_project_ids, key=str):
                project = uow.projects.get(project_id)
                if project is not None and _membership_svc.remove_collaborator(project, person):
                    uow.projects.save(project)
            uow.persons.delete(person_id)
            uow.commit()
            logger.warning("Person %s (%s) permanently deleted", person_id, person.email)


# ===========================================================================
# USE CASES: PROJECTS
# ===========================================================================

@dataclass
class CreateProjectCommand:
    name: str
    description: str
    leader_id: uuid.UUID
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    tags: List[str] = field(default_factory=list)


class CreateProjectUseCase:
    """
    Create a project in PLANNING led by `leader_id`, then record the leader
    link on the person.
    """

    def execute(self, cmd: CreateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            leader = _get_person_or_raise(uow, cmd.leader_id)
            project = _project_svc.create_project(
                name=cmd.name,
                description=cmd.description,
                leader=leader,
                start_date=cmd.start_date,
                end_date=cmd.end_date,
                tags=cmd.tags,
            )
            uow.projects.save(project)
            _membership_svc.register_leader(project, leader)
            uow.persons.save(leader)
            uow.commit()
            logger.info("Project %s '%s' created, leader %s", project.id, project.name, leader.id)
            return _Assembler.project(project)


@dataclass
class UpdateProjectCommand:
    project_id: uuid.UUID
    acting_person_id: uuid.UUID
    name: str
    description: str
    leader_id: uuid.UUID
    status: ProjectStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class UpdateProjectUseCase:
    """
    Replace name/description, reassign the leader if it changed, and apply a
    status transition if the status changed.  Admins and the current leader
    may do this.
    """

    def execute(self, cmd: UpdateProjectCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            actor = _get_person_or_raise(uow, cmd.acting_person_id)
            _require_project_manager(actor, project)

            changed_people: List[Person] = []
            if cmd.leader_id != project.leader_id:
                new_leader = _get_person_or_raise(uow, cmd.leader_id)
                old_leader = uow.persons.get(project.leader_id)
                changed_people = _membership_svc.assign_leader(project, new_leader, old_leader)

            _project_svc.change_status(project, cmd.status)
            _project_svc.update_details(
                project,
                name=cmd.name,
                description=cmd.description,
                start_date=cmd.start_date,
                end_date=cmd.end_date,
            )
            _save_membership(uow, project, changed_people)
            uow.commit()
            logger.info("Project %s updated by %s", project.id, actor.id)
            return _Assembler.project(project)


class GetProjectUseCase:
    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            return _Assembler.project(_get_project_or_raise(uow, project_id))


class GetProjectDetailsUseCase:
    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> ProjectDetailsDTO:
        with uow:
            project = _get_project_or_raise(uow, project_id)
            leader = uow.persons.get(project.leader_id)
            tasks = _task_svc.search(uow.tasks.list_for_project(project_id))
            return ProjectDetailsDTO(
                project=_Assembler.project(project),
                leader_name=leader.full_name if leader else "No leader",
                tasks=[_Assembler.task(t) for t in tasks],
            )


@dataclass
class SearchProjectsQuery:
    text: Optional[str] = None
    status: Optional[ProjectStatus] = None
    include_archived: bool = False


class SearchProjectsUseCase:
    def execute(self, query: SearchProjectsQuery, uow: AbstractUnitOfWork) -> List[ProjectDTO]:
        with uow:
            candidates = (
                uow.projects.list_by_status(query.status)
                if query.status is not None
                else uow.projects.list_all()
            )
            hits = _project_svc.search(
                candidates,
                text=query.text,
                status=query.status,
                include_archived=query.include_archived,
            )
            logger.debug(
                "Project search text=%r status=%s archived=%s -> %d hit(s)",
                query.text, query.status, query.include_archived, len(hits),
            )
            return [_Assembler.project(p) for p in hits]


class ListProjectsForPersonUseCase:
    """Projects the person leads or collaborates on (only led ones with `led_only`)."""

    def execute(
        self, person_id: uuid.UUID, uow: AbstractUnitOfWork, led_only: bool = False
    ) -> List[ProjectDTO]:
        with uow:
            _get_person_or_raise(uow, person_id)
            found = (
                uow.projects.list_for_leader(person_id)
                if led_only
                else uow.projects.list_for_member(person_id)
            )
            projects = sorted(found, key=lambda p: p.name.lower())
            return [_Assembler.project(p) for p in projects]


class CountProjectsByStatusUseCase:
    def execute(self, uow: AbstractUnitOfWork, include_archived: bool = False) -> Dict[str, int]:
        with uow:
            counts = {s.value: 0 for s in ProjectStatus}
            for project in uow.projects.list_all():
                if project.archived and not include_archived:
                    continue
                counts[project.status.value] += 1
            return counts


@dataclass
class ProjectActionCommand:
    project_id: uuid.UUID
    acting_person_id: uuid.UUID


class ToggleArchiveProjectUseCase:
    def execute(self, cmd: ProjectActionCommand, uow: AbstractUnitOfWork) -> ProjectDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            _require_project_manager(_get_person_or_raise(uow, cmd.acting_person_id), project)
            _project_svc.toggle_archive(project)
            uow.projects.save(project)
            uow.commit()
            logger.info("Project %s archived=%s", project.id, project.archived)
            return _Assembler.project(project)


class DeleteProjectUseCase:
    """
    Delete a project together with all of its tasks, and drop every
    leader/collaborator back-reference to it.  Admin only.
    """

    def execute(self, cmd: ProjectActionCommand, uow: AbstractUnitOfWork) -> None:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            actor = _get_person_or_raise(uow, cmd.acting_person_id)
            if not actor.is_admin or not actor.active:
                raise AuthorizationError("Only an active admin may delete a project.")
            tasks = uow.tasks.list_for_project(project.id)
            member_ids = sorted({project.leader_id, *project.collaborator_ids}, key=str)
            people = [p for p in (uow.persons.get(pid) for pid in member_ids) if p is not None]
            changed = _membership_svc.detach_project(project, people)
            for task in tasks:
                uow.tasks.delete(task.id)
            uow.projects.delete(project.id)
            for person in changed:
                uow.persons.save(person)
            uow.commit()
            logger.warning(
                "Project %s deleted by %s with %d task(s)", project.id, actor.id, len(tasks)
            )


# ===========================================================================
# USE CASES: MEMBERSHIP
# ===========================================================================

@dataclass
class CollaboratorCommand:
    project_id: uuid.UUID
    person_id: uuid.UUID
    acting_person_id: uuid.UUID


class AddCollaboratorUseCase:
    def execute(self, cmd: CollaboratorCommand, uow: AbstractUnitOfWork) -> MembershipChangeDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            _require_project_manager(_get_person_or_raise(uow, cmd.acting_person_id), project)
            person = _get_person_or_raise(uow, cmd.person_id)
            changed = _membership_svc.add_collaborator(project, person)
            if changed:
                _save_membership(uow, project, [person])
                uow.commit()
            return MembershipChangeDTO(
                project=_Assembler.project(project),
                person_id=str(person.id),
                changed=changed,
            )


class RemoveCollaboratorUseCase:
    def execute(self, cmd: CollaboratorCommand, uow: AbstractUnitOfWork) -> MembershipChangeDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            _require_project_manager(_get_person_or_raise(uow, cmd.acting_person_id), project)
            person = _get_person_or_raise(uow, cmd.person_id)
            changed = _membership_svc.remove_collaborator(project, person)
            if changed:
                _save_membership(uow, project, [person])
                uow.commit()
            return MembershipChangeDTO(
                project=_Assembler.project(project),
                person_id=str(person.id),
                changed=changed,
            )


class ListProjectCollaboratorsUseCase:
    def execute(self, project_id: uuid.UUID, uow: AbstractUnitOfWork) -> List[PersonDTO]:
        with uow:
            project = _get_project_or_raise(uow, project_id)
            people = [uow.persons.get(pid) for pid in project.collaborator_ids]
            people = sorted((p for p in people if p is not None), key=lambda p: p.full_name.lower())
            return [_Assembler.person(p) for p in people]


class SyncCollaboratorsUseCase:
    """
    Make every task assignee of the project a collaborator.  Returns the
    number added; nothing is written when that number is 0.  When
    `acting_person_id` is given, that person must manage the project.
    """

    def execute(
        self,
        project_id: uuid.UUID,
        uow: AbstractUnitOfWork,
        acting_person_id: Optional[uuid.UUID] = None,
    ) -> int:
        with uow:
            project = _get_project_or_raise(uow, project_id)
            if acting_person_id is not None:
                _require_project_manager(_get_person_or_raise(uow, acting_person_id), project)
            tasks = uow.tasks.list_for_project(project_id)
            if not tasks:
                logger.info("Project %s has no tasks to sync collaborators from", project_id)
                return 0
            assignee_ids = {t.assigned_to_id for t in tasks if t.assigned_to_id is not None}
            people = {}
            for person_id in assignee_ids:
                person = uow.persons.get(person_id)
                if person is not None:
                    people[person_id] = person
            added = _membership_svc.reconcile_from_tasks(project, tasks, people)
            if added:
                _save_membership(uow, project, added)
                uow.commit()
                logger.info("Project %s gained %d collaborator(s) from tasks", project_id, len(added))
            return len(added)


class SyncAllCollaboratorsUseCase:
    """
    Run SyncCollaboratorsUseCase over every project.  A failure on one
    project is logged and the remaining projects are still processed.
    """

    def execute(self, uow: AbstractUnitOfWork) -> int:
        with uow:
            project_ids = [p.id for p in uow.projects.list_all()]
        total = 0
        sync = SyncCollaboratorsUseCase()
        for project_id in project_ids:
            try:
                total += sync.execute(project_id, uow)
            except ApplicationError as exc:
                logger.error("Collaborator sync failed for project %s: %s", project_id, exc)
        logger.info("Collaborator sync over %d project(s) added %d", len(project_ids), total)
        return total


# ===========================================================================
# USE CASES: TASKS
# ===========================================================================

@dataclass
class CreateTaskCommand:
    title: str
    description: str
    project_id: uuid.UUID
    created_by_id: uuid.UUID
    assigned_to_id: Optional[uuid.UUID] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    tags: List[str] = field(default_factory=list)


class CreateTaskUseCase:
    """
    Create a PENDING task.  Only an admin or the project leader may create
    one.  A non-leader assignee becomes a project collaborator, and project
    progress is recomputed.
    """

    def execute(self, cmd: CreateTaskCommand, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            project = _get_project_or_raise(uow, cmd.project_id)
            creator = _get_person_or_raise(uow, cmd.created_by_id)
            _require_project_manager(creator, project)
            assignee = None
            if cmd.assigned_to_id is not None:
                assignee = _get_person_or_raise(uow, cmd.assigned_to_id)

            task = _task_svc.create_task(
                title=cmd.title,
                description=cmd.description,
                project=project,
                creator=creator,
                assignee=assignee,
                priority=cmd.priority,
                due_date=cmd.due_date,
                tags=cmd.tags,
            )
            uow.tasks.save(task)

            if assignee is not None and not project.is_leader(assignee.id):
                if _membership_svc.add_collaborator(project, assignee):
                    _save_membership(uow, project, [assignee])

            _refresh_project_progress(uow, project)
            uow.commit()
            logger.info("Task %s '%s' created in project %s", task.id, task.title, project.id)
            return _Assembler.task(task)


@dataclass
class UpdateTaskStatusCommand:
    task_id: uuid.UUID
    new_status: TaskStatus
    acting_person_id: uuid.UUID


class UpdateTaskStatusUseCase:
    """
    Move a task through its status machine.  The acting person must be the
    assignee, the project leader, or an admin; authorization is checked
    before transition legality.
    """

    def execute(self, cmd: UpdateTaskStatusCommand, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            task = _get_task_or_raise(uow, cmd.task_id)
            project = _get_project_or_raise(uow, task.project_id)
            actor = _get_person_or_raise(uow, cmd.acting_person_id)
            if not can_update_task_status(actor, task, project):
                logger.warning("Person %s refused status change on task %s", actor.id, task.id)
                raise AuthorizationError(
                    f"Person {actor.id} may not change the status of task {task.id}; "
                    "only the assignee, the project leader or an admin can."
                )
            task, previous = _task_svc.change_status(task, cmd.new_status)
            uow.tasks.save(task)
            _refresh_project_progress(uow, project)
            uow.commit()
            logger.info(
                "Task %s status %s -> %s by %s",
                task.id, previous.value, task.status.value, actor.id,
            )
            return _Assembler.task(task)


@dataclass
class AddCommentCommand:
    task_id: uuid.UUID
    author_id: uuid.UUID
    text: str


class AddCommentUseCase:
    def execute(self, cmd: AddCommentCommand, uow: AbstractUnitOfWork) -> CommentDTO:
        with uow:
            task = _get_task_or_raise(uow, cmd.task_id)
            author = _get_person_or_raise(uow, cmd.author_id)
            comment = _task_svc.add_comment(task, author, cmd.text)
            uow.tasks.save(task)
            uow.commit()
            logger.info("Comment added to task %s by %s", task.id, author.id)
            return _Assembler.comment(comment, author)


class ListTaskCommentsUseCase:
    def execute(self, task_id: uuid.UUID, uow: AbstractUnitOfWork) -> List[CommentDTO]:
        with uow:
            task = _get_task_or_raise(uow, task_id)
            authors: Dict[uuid.UUID, Optional[Person]] = {}
            result = []
            for comment in task.comments:
                if comment.author_id not in authors:
                    authors[comment.author_id] = uow.persons.get(comment.author_id)
                result.append(_Assembler.comment(comment, authors[comment.author_id]))
            return result


class GetTaskUseCase:
    def execute(self, task_id: uuid.UUID, uow: AbstractUnitOfWork) -> TaskDTO:
        with uow:
            return _Assembler.task(_get_task_or_raise(uow, task_id))


@dataclass
class SearchTasksQuery:
    project_id: Optional[uuid.UUID] = None
    assignee_id: Optional[uuid.UUID] = None
    text: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None


class SearchTasksUseCase:
    """Search within one project or one assignee's tasks (at least one is required)."""

    def execute(self, query: SearchTasksQuery, uow: AbstractUnitOfWork) -> List[TaskDTO]:
        with uow:
            if query.project_id is not None:
                _get_project_or_raise(uow, query.project_id)
                tasks = uow.tasks.list_for_project(query.project_id)
                if query.assignee_id is not None:
                    tasks = [t for t in tasks if t.is_assigned_to(query.assignee_id)]
            elif query.assignee_id is not None:
                tasks = uow.tasks.list_for_assignee(query.assignee_id)
            else:
                raise ValidationError("Task search needs a project_id or an assignee_id.")
            hits = _task_svc.search(tasks, query.text, query.status, query.priority)
            return [_Assembler.task(t) for t in hits]


class ListTasksForPersonUseCase:
    def execute(self, person_id: uuid.UUID, uow: AbstractUnitOfWork) -> List[TaskDTO]:
        with uow:
            _get_person_or_raise(uow, person_id)
            tasks = _task_svc.search(uow.tasks.list_for_assignee(person_id))
            return [_Assembler.task(t) for t in tasks]


@dataclass
class DeleteTaskCommand:
    task_id: uuid.UUID
    acting_person_id: uuid.UUID


class DeleteTaskUseCase:
    """Delete a task (project leader or admin) and recompute project progress."""

    def execute(self, cmd: DeleteTaskCommand, uow: AbstractUnitOfWork) -> None:
        with uow:
            task = _get_task_or_raise(uow, cmd.task_id)
            project = _get_project_or_raise(uow, task.project_id)
            _require_project_manager(_get_person_or_raise(uow, cmd.acting_person_id), project)
            uow.tasks.delete(task.id)
            _refresh_project_progress(uow, project)
            uow.commit()
            logger.info("Task %s deleted from project %s", task.id, project.id)
