"""
workflow.py

Status machines for projects and tasks.

The status enums in model.py are plain tagged values; everything about which
status may follow which lives here as fixed tables and pure functions, so the
rules can be checked without touching persistence or presentation.

Project
-------
    PLANNING ──► IN_PROGRESS ──► COMPLETED
       │            │   ▲
       │            ▼   │
       │          PAUSED
       ▼            │
    CANCELLED ◄─────┘  (also reachable from IN_PROGRESS)

Task
----
    PENDING ──► IN_PROGRESS ──► IN_REVIEW ──► COMPLETED
                  ▲  │  ▲          │
                  │  ▼  └──────────┘
                BLOCKED
    (IN_PROGRESS may also fall back to PENDING)

A transition to the same status is never legal.  COMPLETED and CANCELLED
have no outgoing transitions.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List

from model import ProjectStatus, Role, TaskPriority, TaskStatus


# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------

PROJECT_TRANSITIONS: Dict[ProjectStatus, FrozenSet[ProjectStatus]] = {
    ProjectStatus.PLANNING: frozenset({ProjectStatus.IN_PROGRESS, ProjectStatus.CANCELLED}),
    ProjectStatus.IN_PROGRESS: frozenset(
        {ProjectStatus.PAUSED, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED}
    ),
    ProjectStatus.PAUSED: frozenset({ProjectStatus.IN_PROGRESS, ProjectStatus.CANCELLED}),
    ProjectStatus.COMPLETED: frozenset(),
    ProjectStatus.CANCELLED: frozenset(),
}

TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset(
        {TaskStatus.IN_REVIEW, TaskStatus.BLOCKED, TaskStatus.PENDING}
    ),
    TaskStatus.BLOCKED: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_REVIEW: frozenset({TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS}),
    TaskStatus.COMPLETED: frozenset(),
}


def can_transition_project(current: ProjectStatus, target: ProjectStatus) -> bool:
    return target in PROJECT_TRANSITIONS.get(current, frozenset())


def can_transition_task(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TASK_TRANSITIONS.get(current, frozenset())


def valid_next_project_statuses(current: ProjectStatus) -> List[ProjectStatus]:
    """Legal targets from `current`, in declaration order."""
    return [s for s in ProjectStatus if can_transition_project(current, s)]


def valid_next_task_statuses(current: TaskStatus) -> List[TaskStatus]:
    return [s for s in TaskStatus if can_transition_task(current, s)]


def is_terminal_project_status(status: ProjectStatus) -> bool:
    return not PROJECT_TRANSITIONS.get(status)


def is_terminal_task_status(status: TaskStatus) -> bool:
    return not TASK_TRANSITIONS.get(status)


# ---------------------------------------------------------------------------
# Presentation metadata (display only; no rule depends on these)
# ---------------------------------------------------------------------------

ROLE_LABELS: Dict[Role, str] = {
    Role.ADMIN: "Administrator",
    Role.LEADER: "Project Leader",
    Role.COLLABORATOR: "Collaborator",
}

PROJECT_STATUS_LABELS: Dict[ProjectStatus, str] = {
    ProjectStatus.PLANNING: "Planning",
    ProjectStatus.IN_PROGRESS: "In Progress",
    ProjectStatus.PAUSED: "Paused",
    ProjectStatus.COMPLETED: "Completed",
    ProjectStatus.CANCELLED: "Cancelled",
}

TASK_STATUS_LABELS: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "Pending",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.BLOCKED: "Blocked",
    TaskStatus.IN_REVIEW: "In Review",
    TaskStatus.COMPLETED: "Completed",
}

TASK_PRIORITY_LABELS: Dict[TaskPriority, str] = {
    TaskPriority.LOW: "Low",
    TaskPriority.MEDIUM: "Medium",
    TaskPriority.HIGH: "High",
    TaskPriority.CRITICAL: "Critical",
}

# Suggested turnaround per priority, in hours.
TASK_PRIORITY_SLA_HOURS: Dict[TaskPriority, int] = {
    TaskPriority.LOW: 24 * 7,
    TaskPriority.MEDIUM: 24 * 3,
    TaskPriority.HIGH: 24,
    TaskPriority.CRITICAL: 4,
}
