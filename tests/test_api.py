import uuid

import pytest
from fastapi.testclient import TestClient

import config
from api import _execute, app, get_login_throttle, get_uow
from errors import ConflictError
from infrastructure import InMemoryLoginThrottle, InMemoryUnitOfWork


@pytest.fixture
def client(db):
    throttle = InMemoryLoginThrottle(max_attempts=3, window_seconds=60)
    app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork(db)
    app.dependency_overrides[get_login_throttle] = lambda: throttle
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def _login(client, email):
    response = client.post("/api/v1/auth/login", json={"email": email})
    assert response.status_code == 200, response.text
    return response.json()["data"]["token"]


@pytest.fixture
def admin_token(client):
    return _login(client, config.SYSTEM_ADMIN_EMAIL)


def _register(client, token, name, email, role="collaborator"):
    response = client.post(
        "/api/v1/persons",
        json={"full_name": name, "email": email, "role": role},
        headers=_auth(token),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def team(client, admin_token):
    leader = _register(client, admin_token, "Lee Leader", "lee@example.com", "leader")
    alice = _register(client, admin_token, "Alice Worker", "alice@example.com")
    carol = _register(client, admin_token, "Carol Outsider", "carol@example.com")
    response = client.post(
        "/api/v1/projects",
        json={"name": "Website", "description": "Relaunch", "leader_id": leader["id"]},
        headers=_auth(admin_token),
    )
    assert response.status_code == 201, response.text
    project = response.json()["data"]
    response = client.post(
        f"/api/v1/projects/{project['id']}/tasks",
        json={"title": "Homepage", "assigned_to_id": alice["id"], "priority": "high"},
        headers=_auth(leader["id"]),
    )
    assert response.status_code == 201, response.text
    return {
        "admin": admin_token,
        "leader": leader["id"],
        "alice": alice["id"],
        "carol": carol["id"],
        "project": project["id"],
        "task": response.json()["data"]["id"],
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_startup_seeds_an_admin(client, admin_token):
    me = client.get("/api/v1/me", headers=_auth(admin_token)).json()["data"]
    assert me["email"] == config.SYSTEM_ADMIN_EMAIL
    assert me["role"] == "admin"


def test_requests_without_a_valid_token_are_rejected(client):
    assert client.get("/api/v1/me").status_code == 401
    assert client.get("/api/v1/me", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/api/v1/me", headers=_auth(uuid.uuid4())).status_code == 401


def test_login_is_throttled(client):
    for _ in range(3):
        response = client.post("/api/v1/auth/login", json={"email": "ghost@example.com"})
        assert response.status_code == 401
    response = client.post("/api/v1/auth/login", json={"email": config.SYSTEM_ADMIN_EMAIL})
    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0


def test_only_admins_register_people(client, team):
    response = client.post(
        "/api/v1/persons",
        json={"full_name": "Eve", "email": "eve@example.com"},
        headers=_auth(team["alice"]),
    )
    assert response.status_code == 403


def test_duplicate_email_maps_to_422(client, team):
    response = client.post(
        "/api/v1/persons",
        json={"full_name": "Alice Two", "email": "alice@example.com"},
        headers=_auth(team["admin"]),
    )
    assert response.status_code == 422
    assert "already registered" in response.json()["detail"]


def test_task_creation_makes_assignee_a_collaborator(client, team):
    collaborators = client.get(
        f"/api/v1/projects/{team['project']}/collaborators", headers=_auth(team["leader"])
    ).json()["data"]
    assert [p["id"] for p in collaborators] == [team["alice"]]
    mine = client.get("/api/v1/me/projects", headers=_auth(team["alice"])).json()["data"]
    assert [p["id"] for p in mine] == [team["project"]]


def test_illegal_task_transition_is_409_with_allowed_statuses(client, team):
    response = client.patch(
        f"/api/v1/tasks/{team['task']}/status",
        json={"status": "completed"},
        headers=_auth(team["alice"]),
    )
    assert response.status_code == 409
    assert response.json()["allowed"] == ["in_progress"]


def test_outsider_cannot_move_a_task(client, team):
    response = client.patch(
        f"/api/v1/tasks/{team['task']}/status",
        json={"status": "in_progress"},
        headers=_auth(team["carol"]),
    )
    assert response.status_code == 403


def test_task_workflow_updates_project_progress(client, team):
    for status in ("in_progress", "in_review", "completed"):
        response = client.patch(
            f"/api/v1/tasks/{team['task']}/status",
            json={"status": status},
            headers=_auth(team["alice"]),
        )
        assert response.status_code == 200, response.text
    project = client.get(f"/api/v1/projects/{team['project']}", headers=_auth(team["leader"])).json()["data"]
    assert project["progress"] == 100


def test_comments_round_trip(client, team):
    response = client.post(
        f"/api/v1/tasks/{team['task']}/comments",
        json={"text": "Looks good"},
        headers=_auth(team["leader"]),
    )
    assert response.status_code == 201
    comments = client.get(f"/api/v1/tasks/{team['task']}/comments", headers=_auth(team["alice"])).json()["data"]
    assert [(c["author_name"], c["text"]) for c in comments] == [("Lee Leader", "Looks good")]


def test_adding_the_same_collaborator_twice_reports_no_change(client, team):
    url = f"/api/v1/projects/{team['project']}/collaborators"
    body = {"person_id": team["carol"]}
    first = client.post(url, json=body, headers=_auth(team["leader"])).json()["data"]
    second = client.post(url, json=body, headers=_auth(team["leader"])).json()["data"]
    assert (first["changed"], second["changed"]) == (True, False)


def test_unknown_project_is_404(client, team):
    response = client.get(f"/api/v1/projects/{uuid.uuid4()}", headers=_auth(team["admin"]))
    assert response.status_code == 404


def test_project_status_update_and_archive(client, team):
    project = client.get(f"/api/v1/projects/{team['project']}", headers=_auth(team["leader"])).json()["data"]
    response = client.put(
        f"/api/v1/projects/{team['project']}",
        json={
            "name": project["name"],
            "description": project["description"],
            "leader_id": project["leader_id"],
            "status": "paused",
        },
        headers=_auth(team["leader"]),
    )
    assert response.status_code == 409
    assert response.json()["allowed"] == ["in_progress", "cancelled"]

    response = client.post(f"/api/v1/projects/{team['project']}/archive", headers=_auth(team["leader"]))
    assert response.json()["data"]["archived"] is True
    visible = client.get("/api/v1/projects", headers=_auth(team["leader"])).json()["data"]
    assert visible == []


def test_sync_endpoints_report_counts(client, team):
    response = client.post(
        f"/api/v1/projects/{team['project']}/sync-collaborators", headers=_auth(team["leader"])
    )
    assert response.json()["data"] == {"added": 0}
    response = client.post("/api/v1/projects/sync-collaborators", headers=_auth(team["leader"]))
    assert response.status_code == 403
    response = client.post("/api/v1/projects/sync-collaborators", headers=_auth(team["admin"]))
    assert response.json()["data"] == {"added": 0}


def test_outsider_cannot_create_tasks_or_sync(client, team):
    response = client.post(
        f"/api/v1/projects/{team['project']}/tasks",
        json={"title": "Sneak in", "assigned_to_id": team["carol"]},
        headers=_auth(team["carol"]),
    )
    assert response.status_code == 403
    response = client.post(
        f"/api/v1/projects/{team['project']}/sync-collaborators", headers=_auth(team["carol"])
    )
    assert response.status_code == 403

    collaborators = client.get(
        f"/api/v1/projects/{team['project']}/collaborators", headers=_auth(team["leader"])
    ).json()["data"]
    assert [c["id"] for c in collaborators] == [team["alice"]]


def test_deactivated_person_is_locked_out(client, team):
    response = client.post(f"/api/v1/persons/{team['carol']}/deactivate", headers=_auth(team["admin"]))
    assert response.json()["data"]["active"] is False
    assert client.get("/api/v1/me", headers=_auth(team["carol"])).status_code == 403


class _FlakyUseCase:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def execute(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConflictError("stale")
        return value


def test_conflicting_use_case_is_rerun():
    use_case = _FlakyUseCase(failures=config.CONFLICT_RETRY_ATTEMPTS - 1)
    assert _execute(use_case, "done") == "done"
    assert use_case.calls == config.CONFLICT_RETRY_ATTEMPTS


def test_persistent_conflict_is_reraised():
    use_case = _FlakyUseCase(failures=config.CONFLICT_RETRY_ATTEMPTS)
    with pytest.raises(ConflictError):
        _execute(use_case, "done")
    assert use_case.calls == config.CONFLICT_RETRY_ATTEMPTS
