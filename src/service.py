"""
service.py

Service layer for the Project Collaboration & Task Lifecycle
Management System.

Responsibilities
----------------
Each service class encapsulates the business rules for its domain.
Services receive and return domain model instances (from model.py).
No persistence is handled here — the application layer loads entities,
hands them to a service, and saves whatever the service reports as changed.

Services
--------
- MembershipService   – Leader / collaborator links between Person and Project
- ProjectService      – Project creation, updates, status, progress, search
- TaskService         – Task creation, status transitions, comments, search
- PersonService       – Registration, activation, role changes, deletion guards

Policies
--------
- can_manage_project      – admin, or leader of the project
- can_update_task_status  – assignee, project leader, or admin

Design notes
------------
- Business rule violations raise ValidationError, illegal status changes
  raise TransitionError; both are ValueError subclasses (see errors.py).
- Idempotent membership operations return False instead of raising.
- UTC datetimes are used throughout.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from errors import TransitionError, ValidationError
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
from workflow import (
    can_transition_project,
    can_transition_task,
    is_terminal_project_status,
    valid_next_project_statuses,
    valid_next_task_statuses,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: Optional[str], field_name: str) -> str:
    """Return `value` trimmed, or raise if it is blank."""
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field_name} must not be blank.")
    return cleaned


def _check_dates(start: Optional[date], end: Optional[date]) -> None:
    if start and end and end < start:
        raise ValidationError("end_date must not be before start_date.")


# ---------------------------------------------------------------------------
# Authorization policies
# ---------------------------------------------------------------------------

def can_manage_project(actor: Person, project: Project) -> bool:
    """Admins and the project's own leader may change project-level settings."""
    return actor.active and (actor.is_admin or project.is_leader(actor.id))


def can_update_task_status(actor: Person, task: Task, project: Project) -> bool:
    """Return True if `actor` may move `task` to another status."""
    if not actor.active:
        return False
    return (
        task.is_assigned_to(actor.id)
        or project.is_leader(actor.id)
        or actor.is_admin
    )


# ---------------------------------------------------------------------------
# MembershipService
# ---------------------------------------------------------------------------

class MembershipService:
    """
    Keeps Project.leader_id / Project.collaborator_ids and
    Person.lead_project_ids / Person.collaborator_project_ids in step.

    Every method mutates only the instances it is given and reports what
    changed; the caller persists the Project first, then the Person records.
    """

    def register_leader(self, project: Project, leader: Person) -> Person:
        """Record the initial leader link on the person side of a new project."""
        if leader.id != project.leader_id:
            raise ValidationError("Leader does not match the project's leader_id.")
        leader.add_lead_project(project.id)
        return leader

    def assign_leader(
        self,
        project: Project,
        new_leader: Person,
        old_leader: Optional[Person],
    ) -> List[Person]:
        """
        Move the leader slot of `project` to `new_leader`.

        Returns the Person records that changed (empty if the leader is
        unchanged).  If the new leader was a collaborator, that link is
        dropped so a person never holds both slots on one project.
        """
        if not new_leader.active:
            raise ValidationError(f"Person {new_leader.id} is not active.")
        if not new_leader.can_lead:
            raise ValidationError(
                f"Person {new_leader.id} has role '{new_leader.role.value}'; "
                "only admins and leaders can lead a project."
            )
        if project.leader_id == new_leader.id:
            return []

        changed: List[Person] = []
        if old_leader is not None:
            old_leader.remove_lead_project(project.id)
            changed.append(old_leader)

        if project.has_collaborator(new_leader.id):
            project.remove_collaborator(new_leader.id)
            new_leader.remove_collaborator_project(project.id)
        new_leader.add_lead_project(project.id)
        changed.append(new_leader)

        logger.info(
            "Project %s leader changed from %s to %s",
            project.id, project.leader_id, new_leader.id,
        )
        project.leader_id = new_leader.id
        project.updated_at = _utcnow()
        return changed

    def add_collaborator(self, project: Project, person: Person) -> bool:
        """Link `person` as a collaborator.  Returns False when already linked."""
        if project.is_leader(person.id):
            raise ValidationError(
                f"Person {person.id} is the project leader; leader already assigned."
            )
        if not person.active:
            raise ValidationError(f"Person {person.id} is not active.")
        if project.has_collaborator(person.id):
            logger.warning(
                "Person %s is already a collaborator on project %s", person.id, project.id
            )
            return False
        project.add_collaborator(person.id)
        person.add_collaborator_project(project.id)
        logger.info("Collaborator %s added to project %s", person.id, project.id)
        return True

    def remove_collaborator(self, project: Project, person: Person) -> bool:
        """Unlink `person`.  Returns False when there was nothing to remove."""
        if not project.has_collaborator(person.id) and not person.is_collaborator_of(project.id):
            return False
        project.remove_collaborator(person.id)
        person.remove_collaborator_project(project.id)
        logger.info("Collaborator %s removed from project %s", person.id, project.id)
        return True

    def reconcile_from_tasks(
        self,
        project: Project,
        tasks: Iterable[Task],
        people: Dict[uuid.UUID, Person],
    ) -> List[Person]:
        """
        Add every task assignee that is neither leader nor collaborator.

        `people` maps ids to loaded Person records; assignees missing from it
        (deleted people) and inactive assignees are skipped.  Returns the
        Person records that were added.
        """
        assignee_ids = []
        for task in tasks:
            if task.assigned_to_id is not None and task.assigned_to_id not in assignee_ids:
                assignee_ids.append(task.assigned_to_id)

        added: List[Person] = []
        for person_id in assignee_ids:
            if project.has_member(person_id):
                continue
            person = people.get(person_id)
            if person is None:
                logger.warning(
                    "Assignee %s on project %s not found; skipped", person_id, project.id
                )
                continue
            if not person.active:
                logger.warning(
                    "Assignee %s on project %s is inactive; skipped", person_id, project.id
                )
                continue
            if self.add_collaborator(project, person):
                added.append(person)
        return added

    def detach_project(
        self, project: Project, people: Iterable[Person]
    ) -> List[Person]:
        """Drop every back-reference to `project` from the given people."""
        changed = []
        for person in people:
            if person.is_leader_of(project.id) or person.is_collaborator_of(project.id):
                person.remove_lead_project(project.id)
                person.remove_collaborator_project(project.id)
                changed.append(person)
        project.collaborator_ids.clear()
        return changed


# ---------------------------------------------------------------------------
# ProjectService
# ---------------------------------------------------------------------------

class ProjectService:
    """
    Manages project creation, field updates, status and derived progress.
    """

    def create_project(
        self,
        name: str,
        description: str,
        leader: Person,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        tags: Iterable[str] = (),
    ) -> Project:
        """Create and return a new Project in PLANNING (unsaved)."""
        if not leader.active:
            raise ValidationError(f"Person {leader.id} is not active.")
        if not leader.can_lead:
            raise ValidationError(
                f"Person {leader.id} has role '{leader.role.value}'; "
                "only admins and leaders can lead a project."
            )
        _check_dates(start_date, end_date)
        project = Project(
            name=_require_text(name, "name"),
            description=_require_text(description, "description"),
            leader_id=leader.id,
            status=ProjectStatus.PLANNING,
            progress=0,
            archived=False,
            start_date=start_date,
            end_date=end_date,
            created_at=_utcnow(),
            updated_at=_utcnow(),
        )
        for tag in tags:
            project.add_tag(tag)
        return project

    def update_details(
        self,
        project: Project,
        name: str,
        description: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Project:
        """Replace name and description; dates are only replaced when given."""
        project.name = _require_text(name, "name")
        project.description = _require_text(description, "description")
        if start_date is not None:
            project.start_date = start_date
        if end_date is not None:
            project.end_date = end_date
        _check_dates(project.start_date, project.end_date)
        project.updated_at = _utcnow()
        return project

    def change_status(self, project: Project, new_status: ProjectStatus) -> bool:
        """
        Move the project to `new_status`.  Returns False if it is already there.
        """
        if project.status == new_status:
            return False
        if not can_transition_project(project.status, new_status):
            raise TransitionError(
                f"Project cannot move from '{project.status.value}' to '{new_status.value}'.",
                allowed=[s.value for s in valid_next_project_statuses(project.status)],
            )
        logger.info(
            "Project %s status %s -> %s", project.id, project.status.value, new_status.value
        )
        project.status = new_status
        project.updated_at = _utcnow()
        return True

    def toggle_archive(self, project: Project) -> Project:
        project.archived = not project.archived
        project.updated_at = _utcnow()
        return project

    def recalculate_progress(self, project: Project, tasks: List[Task]) -> Project:
        """
        Recompute `progress` from the project's tasks.  Call this after any
        task is created, changes status, or is deleted.
        """
        completed = sum(1 for t in tasks if t.is_completed)
        project.update_progress(completed, len(tasks))
        logger.debug(
            "Project %s progress %d%% (%d/%d)", project.id, project.progress, completed, len(tasks)
        )
        return project

    def matches(
        self,
        project: Project,
        text: Optional[str] = None,
        status: Optional[ProjectStatus] = None,
        include_archived: bool = False,
    ) -> bool:
        if project.archived and not include_archived:
            return False
        if status is not None and project.status != status:
            return False
        needle = (text or "").strip().lower()
        if needle and needle not in project.name.lower() and needle not in project.description.lower():
            return False
        return True

    def search(
        self,
        projects: Iterable[Project],
        text: Optional[str] = None,
        status: Optional[ProjectStatus] = None,
        include_archived: bool = False,
    ) -> List[Project]:
        """Filter projects; text, status and archived visibility are ANDed."""
        hits = [p for p in projects if self.matches(p, text, status, include_archived)]
        return sorted(hits, key=lambda p: p.name.lower())


# ---------------------------------------------------------------------------
# TaskService
# ---------------------------------------------------------------------------

class TaskService:
    """
    Manages task creation, the task status machine, and comments.
    """

    def create_task(
        self,
        title: str,
        description: str,
        project: Project,
        creator: Person,
        assignee: Optional[Person] = None,
        priority: Optional[TaskPriority] = None,
        due_date: Optional[date] = None,
        tags: Iterable[str] = (),
    ) -> Task:
        """Create and return a new PENDING task (unsaved)."""
        if is_terminal_project_status(project.status):
            raise ValidationError(
                f"Cannot add tasks to a project in status '{project.status.value}'."
            )
        if assignee is not None and not assignee.active:
            raise ValidationError(f"Assignee {assignee.id} is not active.")
        task = Task(
            title=_require_text(title, "title"),
            description=(description or "").strip(),
            project_id=project.id,
            assigned_to_id=assignee.id if assignee is not None else None,
            created_by_id=creator.id,
            status=TaskStatus.PENDING,
            priority=priority or TaskPriority.default(),
            due_date=due_date,
            created_at=_utcnow(),
            updated_at=_utcnow(),
        )
        for tag in tags:
            task.add_tag(tag)
        return task

    def change_status(self, task: Task, new_status: TaskStatus) -> Tuple[Task, TaskStatus]:
        """
        Apply a status transition.  Returns the task and its previous status.

        Raises TransitionError when the table forbids the move, including a
        move to the current status.
        """
        if not can_transition_task(task.status, new_status):
            raise TransitionError(
                f"Task cannot move from '{task.status.value}' to '{new_status.value}'.",
                allowed=[s.value for s in valid_next_task_statuses(task.status)],
            )
        previous = task.status
        task.change_status(new_status)
        return task, previous

    def add_comment(self, task: Task, author: Person, text: str) -> Comment:
        return task.add_comment(author.id, _require_text(text, "Comment text"))

    def matches(
        self,
        task: Task,
        text: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        priority: Optional[TaskPriority] = None,
    ) -> bool:
        if status is not None and task.status != status:
            return False
        if priority is not None and task.priority != priority:
            return False
        needle = (text or "").strip().lower()
        if needle and needle not in task.title.lower() and needle not in task.description.lower():
            return False
        return True

    def search(
        self,
        tasks: Iterable[Task],
        text: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        priority: Optional[TaskPriority] = None,
    ) -> List[Task]:
        """
        Filter tasks, then order by priority (highest first) and due date
        (earliest first, undated last).
        """
        hits = [t for t in tasks if self.matches(t, text, status, priority)]
        return sorted(
            hits,
            key=lambda t: (-t.priority.level, t.due_date is None, t.due_date or date.max),
        )


# ---------------------------------------------------------------------------
# PersonService
# ---------------------------------------------------------------------------

class PersonService:
    """
    Manages person registration, activation and role changes, and guards
    deletion against dangling references.
    """

    def create_person(self, full_name: str, email: str, role: Role) -> Person:
        """Create and return a new active Person (unsaved)."""
        normalized = (email or "").strip().lower()
        try:
            validate_email(normalized, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationError(f"'{email}' is not a valid email address: {exc}") from exc
        return Person(
            full_name=_require_text(full_name, "full_name"),
            email=normalized,
            role=role,
            active=True,
            created_at=_utcnow(),
            updated_at=_utcnow(),
        )

    def deactivate(self, person: Person, active_admin_count: int) -> Person:
        if person.is_admin and person.active and active_admin_count <= 1:
            raise ValidationError("Cannot deactivate the only active administrator.")
        person.deactivate()
        return person

    def activate(self, person: Person) -> Person:
        person.activate()
        return person

    def update_person(self, person: Person, full_name: str, role: Role) -> Person:
        """Rename and/or change role.  Leaders with projects cannot lose leading rights."""
        if role != person.role:
            if person.lead_project_ids and role not in (Role.ADMIN, Role.LEADER):
                raise ValidationError(
                    f"Person {person.id} leads {len(person.lead_project_ids)} project(s); "
                    "reassign them before changing the role."
                )
            logger.info(
                "Person %s role %s -> %s", person.id, person.role.value, role.value
            )
        person.full_name = _require_text(full_name, "full_name")
        person.role = role
        person.updated_at = _utcnow()
        return person

    def ensure_deletable(
        self, person: Person, active_admin_count: int, assigned_task_count: int
    ) -> None:
        """Raise if deleting `person` would leave dangling references."""
        if person.is_admin and person.active and active_admin_count <= 1:
            raise ValidationError("Cannot delete the only active administrator.")
        if person.lead_project_ids:
            raise ValidationError(
                f"Person {person.id} leads {len(person.lead_project_ids)} project(s); "
                "reassign them first."
            )
        if assigned_task_count:
            raise ValidationError(
                f"Person {person.id} has {assigned_task_count} assigned task(s); "
                "reassign or delete them first."
            )

    def matches(
        self,
        person: Person,
        text: Optional[str] = None,
        role: Optional[Role] = None,
        active_only: bool = False,
    ) -> bool:
        if active_only and not person.active:
            return False
        if role is not None and person.role != role:
            return False
        needle = (text or "").strip().lower()
        if needle and needle not in person.full_name.lower() and needle not in person.email:
            return False
        return True
