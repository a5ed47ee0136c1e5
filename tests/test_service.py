from datetime import date

import pytest

from errors import TransitionError, ValidationError
from model import Person, Project, ProjectStatus, Role, Task, TaskPriority, TaskStatus
from service import (
    MembershipService,
    PersonService,
    ProjectService,
    TaskService,
    can_manage_project,
    can_update_task_status,
)

membership = MembershipService()
projects = ProjectService()
tasks = TaskService()
persons = PersonService()


def _person(name, role=Role.COLLABORATOR, active=True):
    return Person(full_name=name, email=f"{name.lower()}@example.com", role=role, active=active)


def _project_led_by(leader):
    project = projects.create_project("Apollo", "Moon shot", leader)
    membership.register_leader(project, leader)
    return project


def _tasks(project, total, completed):
    result = []
    for i in range(total):
        t = Task(title=f"t{i}", project_id=project.id)
        if i < completed:
            t.status = TaskStatus.COMPLETED
        result.append(t)
    return result


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "total,completed,expected",
    [(10, 3, 30), (0, 0, 0), (9, 7, 78), (3, 1, 33), (3, 2, 67), (8, 1, 13), (4, 4, 100)],
)
def test_recalculate_progress(total, completed, expected):
    project = _project_led_by(_person("Lee", Role.LEADER))
    projects.recalculate_progress(project, _tasks(project, total, completed))
    assert project.progress == expected


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

def test_assign_leader_moves_the_link_and_touches_nobody_else():
    a, b = _person("A", Role.LEADER), _person("B", Role.ADMIN)
    bystander = _person("C")
    project = _project_led_by(a)
    membership.add_collaborator(project, bystander)
    before = (set(bystander.lead_project_ids), set(bystander.collaborator_project_ids))

    changed = membership.assign_leader(project, b, a)

    assert project.leader_id == b.id
    assert project.id not in a.lead_project_ids
    assert project.id in b.lead_project_ids
    assert {p.id for p in changed} == {a.id, b.id}
    assert (bystander.lead_project_ids, bystander.collaborator_project_ids) == before


def test_assign_leader_to_current_leader_changes_nothing():
    a = _person("A", Role.LEADER)
    project = _project_led_by(a)
    assert membership.assign_leader(project, a, a) == []
    assert project.id in a.lead_project_ids


def test_assign_leader_promotes_a_collaborator_out_of_the_collaborator_set():
    a, b = _person("A", Role.LEADER), _person("B", Role.LEADER)
    project = _project_led_by(a)
    membership.add_collaborator(project, b)

    membership.assign_leader(project, b, a)

    assert not project.has_collaborator(b.id)
    assert project.id not in b.collaborator_project_ids
    assert project.id in b.lead_project_ids


@pytest.mark.parametrize("candidate", [_person("X"), _person("Y", Role.LEADER, active=False)])
def test_assign_leader_rejects_unfit_candidates(candidate):
    a = _person("A", Role.LEADER)
    project = _project_led_by(a)
    with pytest.raises(ValidationError):
        membership.assign_leader(project, candidate, a)
    assert project.leader_id == a.id


def test_add_collaborator_rejects_the_leader():
    leader = _person("Lee", Role.LEADER)
    project = _project_led_by(leader)
    with pytest.raises(ValidationError, match="leader already assigned"):
        membership.add_collaborator(project, leader)


def test_add_collaborator_twice_is_a_noop():
    project = _project_led_by(_person("Lee", Role.LEADER))
    alice = _person("Alice")
    assert membership.add_collaborator(project, alice) is True
    assert membership.add_collaborator(project, alice) is False
    assert project.collaborator_ids == {alice.id}
    assert alice.collaborator_project_ids == {project.id}


def test_add_inactive_collaborator_fails():
    project = _project_led_by(_person("Lee", Role.LEADER))
    with pytest.raises(ValidationError):
        membership.add_collaborator(project, _person("Zed", active=False))


def test_remove_absent_collaborator_is_a_noop():
    project = _project_led_by(_person("Lee", Role.LEADER))
    assert membership.remove_collaborator(project, _person("Nobody")) is False


def test_reconcile_adds_each_new_assignee_once():
    leader = _person("Lee", Role.LEADER)
    project = _project_led_by(leader)
    alice, bob, gone, idle = _person("Alice"), _person("Bob"), _person("Gone"), _person("Idle", active=False)
    work = [
        Task(project_id=project.id, assigned_to_id=alice.id),
        Task(project_id=project.id, assigned_to_id=alice.id),
        Task(project_id=project.id, assigned_to_id=bob.id),
        Task(project_id=project.id, assigned_to_id=leader.id),
        Task(project_id=project.id, assigned_to_id=gone.id),
        Task(project_id=project.id, assigned_to_id=idle.id),
        Task(project_id=project.id),
    ]
    people = {p.id: p for p in (leader, alice, bob, idle)}

    added = membership.reconcile_from_tasks(project, work, people)

    assert {p.id for p in added} == {alice.id, bob.id}
    assert project.collaborator_ids == {alice.id, bob.id}
    assert membership.reconcile_from_tasks(project, work, people) == []


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def test_create_project_requires_a_leader_capable_person():
    with pytest.raises(ValidationError):
        projects.create_project("Apollo", "Moon shot", _person("Alice"))


def test_create_project_rejects_reversed_dates():
    with pytest.raises(ValidationError):
        projects.create_project(
            "Apollo", "Moon shot", _person("Lee", Role.LEADER),
            start_date=date(2025, 5, 1), end_date=date(2025, 4, 1),
        )


def test_create_project_normalises_fields():
    project = projects.create_project("  Apollo ", " Moon shot ", _person("Lee", Role.LEADER), tags=["A", "a ", ""])
    assert (project.name, project.description) == ("Apollo", "Moon shot")
    assert project.status == ProjectStatus.PLANNING
    assert project.tags == {"a"}


def test_change_status_reports_allowed_targets():
    project = _project_led_by(_person("Lee", Role.LEADER))
    with pytest.raises(TransitionError) as exc_info:
        projects.change_status(project, ProjectStatus.COMPLETED)
    assert exc_info.value.allowed == ["in_progress", "cancelled"]
    assert projects.change_status(project, ProjectStatus.PLANNING) is False
    assert projects.change_status(project, ProjectStatus.IN_PROGRESS) is True


def test_search_projects_ands_filters_and_hides_archived():
    leader = _person("Lee", Role.LEADER)
    alpha = projects.create_project("Alpha", "billing revamp", leader)
    beta = projects.create_project("Beta", "Billing export", leader)
    gamma = projects.create_project("Gamma", "billing api", leader)
    projects.toggle_archive(gamma)
    beta.status = ProjectStatus.IN_PROGRESS

    assert projects.search([gamma, beta, alpha], text="BILLING") == [alpha, beta]
    assert projects.search([gamma, beta, alpha], text="billing", include_archived=True) == [alpha, beta, gamma]
    assert projects.search([alpha, beta], status=ProjectStatus.IN_PROGRESS) == [beta]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("terminal", [ProjectStatus.CANCELLED, ProjectStatus.COMPLETED])
def test_create_task_rejects_terminal_projects(terminal):
    leader = _person("Lee", Role.LEADER)
    project = _project_led_by(leader)
    project.status = terminal
    with pytest.raises(ValidationError):
        tasks.create_task("Write docs", "", project, leader)


def test_create_task_defaults():
    leader = _person("Lee", Role.LEADER)
    task = tasks.create_task(" Write docs ", None, _project_led_by(leader), leader, tags=["Docs", "docs"])
    assert task.title == "Write docs"
    assert task.status == TaskStatus.PENDING
    assert task.priority == TaskPriority.MEDIUM
    assert task.tags == ["docs"]


def test_completing_a_task_stamps_completed_at():
    task = Task(status=TaskStatus.IN_REVIEW)
    assert task.completed_at is None
    _, previous = tasks.change_status(task, TaskStatus.COMPLETED)
    assert previous == TaskStatus.IN_REVIEW
    assert task.completed_at is not None


def test_pending_cannot_jump_to_completed():
    with pytest.raises(TransitionError) as exc_info:
        tasks.change_status(Task(), TaskStatus.COMPLETED)
    assert exc_info.value.allowed == ["in_progress"]


def test_blank_comment_is_rejected():
    with pytest.raises(ValidationError):
        tasks.add_comment(Task(), _person("Alice"), "   ")


def test_task_search_orders_by_priority_then_due_date():
    low = Task(title="low", priority=TaskPriority.LOW)
    high_late = Task(title="high late", priority=TaskPriority.HIGH, due_date=date(2025, 9, 1))
    high_soon = Task(title="high soon", priority=TaskPriority.HIGH, due_date=date(2025, 8, 1))
    high_undated = Task(title="high undated", priority=TaskPriority.HIGH)
    critical = Task(title="critical", priority=TaskPriority.CRITICAL)

    ordered = tasks.search([low, high_undated, high_late, critical, high_soon])

    assert [t.title for t in ordered] == ["critical", "high soon", "high late", "high undated", "low"]
    assert tasks.search([low, critical], priority=TaskPriority.LOW) == [low]


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def test_task_status_policy():
    leader, admin = _person("Lee", Role.LEADER), _person("Ada", Role.ADMIN)
    assignee, outsider = _person("Alice"), _person("Carol")
    project = _project_led_by(leader)
    task = Task(project_id=project.id, assigned_to_id=assignee.id)

    assert can_update_task_status(assignee, task, project)
    assert can_update_task_status(leader, task, project)
    assert can_update_task_status(admin, task, project)
    assert not can_update_task_status(outsider, task, project)
    assignee.deactivate()
    assert not can_update_task_status(assignee, task, project)


def test_manage_project_policy():
    leader, other = _person("Lee", Role.LEADER), _person("Olga", Role.LEADER)
    project = _project_led_by(leader)
    assert can_manage_project(leader, project)
    assert can_manage_project(_person("Ada", Role.ADMIN), project)
    assert not can_manage_project(other, project)


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

def test_create_person_normalises_email():
    person = persons.create_person("Alice", "  Alice@Example.COM ", Role.COLLABORATOR)
    assert person.email == "alice@example.com"
    assert person.active


@pytest.mark.parametrize(
    "email", ["", "not-an-email", "alice..smith@example.com", "alice@example", "alice@@example.com"]
)
def test_create_person_rejects_bad_email(email):
    with pytest.raises(ValidationError):
        persons.create_person("Alice", email, Role.COLLABORATOR)


def test_last_active_admin_cannot_be_deactivated():
    admin = _person("Ada", Role.ADMIN)
    with pytest.raises(ValidationError):
        persons.deactivate(admin, active_admin_count=1)
    persons.deactivate(admin, active_admin_count=2)
    assert not admin.active


def test_leader_with_projects_cannot_be_demoted():
    leader = _person("Lee", Role.LEADER)
    _project_led_by(leader)
    with pytest.raises(ValidationError):
        persons.update_person(leader, "Lee", Role.COLLABORATOR)
    persons.update_person(leader, "Lee L.", Role.ADMIN)
    assert leader.role == Role.ADMIN


def test_ensure_deletable_guards():
    leader = _person("Lee", Role.LEADER)
    _project_led_by(leader)
    with pytest.raises(ValidationError):
        persons.ensure_deletable(leader, active_admin_count=1, assigned_task_count=0)
    with pytest.raises(ValidationError):
        persons.ensure_deletable(_person("Alice"), active_admin_count=1, assigned_task_count=2)
    with pytest.raises(ValidationError):
        persons.ensure_deletable(_person("Ada", Role.ADMIN), active_admin_count=1, assigned_task_count=0)
    persons.ensure_deletable(_person("Bob"), active_admin_count=1, assigned_task_count=0)
    persons.ensure_deletable(
        _person("Ivy", Role.ADMIN, active=False), active_admin_count=1, assigned_task_count=0
    )
