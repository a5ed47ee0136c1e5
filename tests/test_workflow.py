import itertools

import pytest

from model import ProjectStatus, TaskStatus
from workflow import (
    PROJECT_STATUS_LABELS,
    TASK_PRIORITY_SLA_HOURS,
    TASK_STATUS_LABELS,
    can_transition_project,
    can_transition_task,
    is_terminal_project_status,
    is_terminal_task_status,
    valid_next_project_statuses,
    valid_next_task_statuses,
)

P = ProjectStatus
T = TaskStatus

LEGAL_PROJECT_MOVES = {
    (P.PLANNING, P.IN_PROGRESS),
    (P.PLANNING, P.CANCELLED),
    (P.IN_PROGRESS, P.PAUSED),
    (P.IN_PROGRESS, P.COMPLETED),
    (P.IN_PROGRESS, P.CANCELLED),
    (P.PAUSED, P.IN_PROGRESS),
    (P.PAUSED, P.CANCELLED),
}

LEGAL_TASK_MOVES = {
    (T.PENDING, T.IN_PROGRESS),
    (T.IN_PROGRESS, T.IN_REVIEW),
    (T.IN_PROGRESS, T.BLOCKED),
    (T.IN_PROGRESS, T.PENDING),
    (T.BLOCKED, T.IN_PROGRESS),
    (T.IN_REVIEW, T.COMPLETED),
    (T.IN_REVIEW, T.IN_PROGRESS),
}


@pytest.mark.parametrize("current,target", list(itertools.product(ProjectStatus, repeat=2)))
def test_project_matrix(current, target):
    assert can_transition_project(current, target) == ((current, target) in LEGAL_PROJECT_MOVES)


@pytest.mark.parametrize("current,target", list(itertools.product(TaskStatus, repeat=2)))
def test_task_matrix(current, target):
    assert can_transition_task(current, target) == ((current, target) in LEGAL_TASK_MOVES)


def test_no_status_may_move_to_itself():
    assert not any(can_transition_project(s, s) for s in ProjectStatus)
    assert not any(can_transition_task(s, s) for s in TaskStatus)


def test_terminal_statuses_reject_everything():
    for terminal in (P.COMPLETED, P.CANCELLED):
        assert is_terminal_project_status(terminal)
        assert valid_next_project_statuses(terminal) == []
    assert is_terminal_task_status(T.COMPLETED)
    assert valid_next_task_statuses(T.COMPLETED) == []
    assert not is_terminal_project_status(P.PAUSED)
    assert not is_terminal_task_status(T.BLOCKED)


def test_valid_next_statuses_follow_declaration_order():
    assert valid_next_project_statuses(P.IN_PROGRESS) == [P.PAUSED, P.COMPLETED, P.CANCELLED]
    assert valid_next_task_statuses(T.IN_PROGRESS) == [T.PENDING, T.BLOCKED, T.IN_REVIEW]


def test_every_status_has_a_label():
    assert set(PROJECT_STATUS_LABELS) == set(ProjectStatus)
    assert set(TASK_STATUS_LABELS) == set(TaskStatus)


def test_sla_hours_shrink_as_priority_rises():
    ordered = sorted(TASK_PRIORITY_SLA_HOURS, key=lambda p: p.level)
    hours = [TASK_PRIORITY_SLA_HOURS[p] for p in ordered]
    assert hours == sorted(hours, reverse=True)
