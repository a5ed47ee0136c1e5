"""
model.py

Domain models for the Project Collaboration & Task Lifecycle
Management System.

Entities
--------
- Person
- Project
- Task
- Comment

All models use Python dataclasses for clean, framework-agnostic definitions.
UUID primary keys are used throughout for portability.
Timestamps are always stored in UTC.

Cross references between people and projects are plain id sets on both
sides (Project.collaborator_ids / Person.collaborator_project_ids).  They are
never live object pointers; MembershipService in service.py is the only
code that keeps the two sides in step.

Every entity carries a `version` counter.  It is 0 until the entity is first
persisted and is bumped by the store on each accepted save; a save carrying
a stale version is rejected (see infrastructure.py).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Set


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """System-wide role of a person."""
    ADMIN = "admin"
    LEADER = "leader"
    COLLABORATOR = "collaborator"


class ProjectStatus(str, Enum):
    """
    Lifecycle status of a project.

    PLANNING     – Initial state; scope and team are being defined.
    IN_PROGRESS  – Work is actively being executed.
    PAUSED       – Temporarily suspended; progress is kept.
    COMPLETED    – Finished successfully (terminal).
    CANCELLED    – Will not continue (terminal).

    Legal transitions live in workflow.py.
    """
    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStatus(str, Enum):
    """Lifecycle status of an individual task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Ordered task priority.  Compare with `level`, not with the string value."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def level(self) -> int:
        return _PRIORITY_LEVELS[self]

    @classmethod
    def default(cls) -> "TaskPriority":
        return cls.MEDIUM


_PRIORITY_LEVELS = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.CRITICAL: 4,
}


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------


@dataclass
class Person:
    """
    A user of the system.

    `active` is a soft-delete flag.  The two id sets mirror Project.leader_id
    and Project.collaborator_ids; for any one project a person is in at most
    one of them.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    full_name: str = ""
    email: str = ""
    role: Role = Role.COLLABORATOR
    active: bool = True

    lead_project_ids: Set[uuid.UUID] = field(default_factory=set)
    collaborator_project_ids: Set[uuid.UUID] = field(default_factory=set)

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 0

    # --- Role helpers -------------------------------------------------------

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def can_lead(self) -> bool:
        """Only admins and leaders may hold a project's leader slot."""
        return self.role in (Role.ADMIN, Role.LEADER)

    # --- Back-reference mutators -------------------------------------------

    def add_lead_project(self, project_id: uuid.UUID) -> None:
        self.lead_project_ids.add(project_id)
        self.updated_at = _utcnow()

    def remove_lead_project(self, project_id: uuid.UUID) -> None:
        self.lead_project_ids.discard(project_id)
        self.updated_at = _utcnow()

    def add_collaborator_project(self, project_id: uuid.UUID) -> None:
        self.collaborator_project_ids.add(project_id)
        self.updated_at = _utcnow()

    def remove_collaborator_project(self, project_id: uuid.UUID) -> None:
        self.collaborator_project_ids.discard(project_id)
        self.updated_at = _utcnow()

    def is_leader_of(self, project_id: uuid.UUID) -> bool:
        return project_id in self.lead_project_ids

    def is_collaborator_of(self, project_id: uuid.UUID) -> bool:
        return project_id in self.collaborator_project_ids

    def activate(self) -> None:
        self.active = True
        self.updated_at = _utcnow()

    def deactivate(self) -> None:
        self.active = False
        self.updated_at = _utcnow()


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@dataclass
class Project:
    """
    A body of work led by exactly one person and worked on by collaborators.

    `progress` (0 – 100) is derived from task completion and is only ever
    written through update_progress().
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    name: str = ""
    description: str = ""
    leader_id: uuid.UUID = field(default_factory=uuid.uuid4)   # FK → Person.id
    collaborator_ids: Set[uuid.UUID] = field(default_factory=set)

    status: ProjectStatus = ProjectStatus.PLANNING
    progress: int = 0
    archived: bool = False

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    tags: Set[str] = field(default_factory=set)

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 0

    def is_leader(self, person_id: Optional[uuid.UUID]) -> bool:
        return person_id is not None and self.leader_id == person_id

    def has_collaborator(self, person_id: Optional[uuid.UUID]) -> bool:
        return person_id in self.collaborator_ids

    def has_member(self, person_id: Optional[uuid.UUID]) -> bool:
        return self.is_leader(person_id) or self.has_collaborator(person_id)

    @property
    def total_members(self) -> int:
        return 1 + len(self.collaborator_ids)

    def add_collaborator(self, person_id: uuid.UUID) -> None:
        self.collaborator_ids.add(person_id)
        self.updated_at = _utcnow()

    def remove_collaborator(self, person_id: uuid.UUID) -> None:
        self.collaborator_ids.discard(person_id)
        self.updated_at = _utcnow()

    def add_tag(self, tag: str) -> None:
        if tag and tag.strip():
            self.tags.add(tag.strip().lower())

    def update_progress(self, completed_tasks: int, total_tasks: int) -> None:
        """Set progress to the completed/total ratio, rounded half-up; 0 with no tasks."""
        if total_tasks <= 0:
            self.progress = 0
        else:
            # Integer half-up rounding; round() would round half to even.
            self.progress = (completed_tasks * 200 + total_tasks) // (2 * total_tasks)
        self.updated_at = _utcnow()

    def is_overdue(self, today: Optional[date] = None) -> bool:
        if self.end_date is None or self.status == ProjectStatus.COMPLETED:
            return False
        return (today or date.today()) > self.end_date


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Comment:
    """A single, immutable note on a task."""
    author_id: uuid.UUID
    text: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Task:
    """
    A unit of work inside a project.

    `project_id` and `created_by_id` are fixed at creation.  Comments are
    append-only.  `completed_at` is stamped when the task reaches COMPLETED.
    """
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    title: str = ""
    description: str = ""
    project_id: uuid.UUID = field(default_factory=uuid.uuid4)      # FK → Project.id
    assigned_to_id: Optional[uuid.UUID] = None                     # FK → Person.id
    created_by_id: uuid.UUID = field(default_factory=uuid.uuid4)   # FK → Person.id

    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None

    comments: List[Comment] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    version: int = 0

    def is_assigned_to(self, person_id: Optional[uuid.UUID]) -> bool:
        return self.assigned_to_id is not None and self.assigned_to_id == person_id

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def is_overdue(self, today: Optional[date] = None) -> bool:
        if self.due_date is None or self.is_completed:
            return False
        return (today or date.today()) > self.due_date

    def change_status(self, new_status: TaskStatus) -> None:
        """Set the status unconditionally.  Legality is the caller's job."""
        self.status = new_status
        now = _utcnow()
        if new_status == TaskStatus.COMPLETED:
            self.completed_at = now
        self.updated_at = now

    def add_comment(self, author_id: uuid.UUID, text: str) -> Comment:
        comment = Comment(author_id=author_id, text=text)
        self.comments.append(comment)
        self.updated_at = comment.created_at
        return comment

    def add_tag(self, tag: str) -> None:
        if tag and tag.strip():
            normalized = tag.strip().lower()
            if normalized not in self.tags:
                self.tags.append(normalized)
