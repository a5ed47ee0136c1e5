"""
api.py

REST API layer for the Project Collaboration & Task Lifecycle
Management System.

Framework : FastAPI
Auth      : Bearer token — the token is the acting Person's UUID, resolved by
            the get_current_person dependency.  POST /auth/login exchanges an
            email address for that token and is rate limited per client.
            Every mutating endpoint passes the resolved person's id to the
            relevant use case command.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /auth/login                        — exchange an email for a token
  ├── /persons                           — registration, roles, activation
  ├── /projects                          — project CRUD, search, archive
  │   ├── /sync-collaborators            — reconcile every project
  │   ├── /{project_id}/details          — project + leader + tasks
  │   ├── /{project_id}/collaborators    — membership
  │   ├── /{project_id}/sync-collaborators
  │   └── /{project_id}/tasks            — create / search tasks
  ├── /tasks/{task_id}                   — status workflow, comments
  └── /me                                — current person, tasks, projects

Error handling
--------------
  NotFoundError      → 404
  AuthorizationError → 403
  TransitionError    → 409  (body also carries "allowed")
  ConflictError      → 409  (after CONFLICT_RETRY_ATTEMPTS re-runs)
  ApplicationError   → 422
  ValueError         → 422
  Unhandled          → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn api:app --reload
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_mcp import FastApiMCP
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

import config
from infrastructure import InMemoryLoginThrottle, InMemoryUnitOfWork
from application import (
    # Exceptions
    ApplicationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransitionError,
    # Interfaces
    AbstractLoginThrottle,
    AbstractUnitOfWork,
    # DTOs
    PersonDTO,
    # Commands / queries
    AddCommentCommand,
    ChangePersonRoleCommand,
    CollaboratorCommand,
    CreateProjectCommand,
    CreateTaskCommand,
    DeleteTaskCommand,
    ProjectActionCommand,
    RegisterPersonCommand,
    SearchPersonsQuery,
    SearchProjectsQuery,
    SearchTasksQuery,
    UpdateProjectCommand,
    UpdateTaskStatusCommand,
    # Use cases
    ActivatePersonUseCase,
    AddCollaboratorUseCase,
    AddCommentUseCase,
    ChangePersonRoleUseCase,
    CountProjectsByStatusUseCase,
    CreateProjectUseCase,
    CreateTaskUseCase,
    DeactivatePersonUseCase,
    DeletePersonUseCase,
    DeleteProjectUseCase,
    DeleteTaskUseCase,
    GetPersonByEmailUseCase,
    GetPersonUseCase,
    GetProjectDetailsUseCase,
    GetProjectUseCase,
    GetTaskUseCase,
    ListProjectCollaboratorsUseCase,
    ListProjectsForPersonUseCase,
    ListTaskCommentsUseCase,
    ListTasksForPersonUseCase,
    RegisterPersonUseCase,
    RemoveCollaboratorUseCase,
    SearchPersonsUseCase,
    SearchProjectsUseCase,
    SearchTasksUseCase,
    SyncAllCollaboratorsUseCase,
    SyncCollaboratorsUseCase,
    ToggleArchiveProjectUseCase,
    UpdateProjectUseCase,
    UpdateTaskStatusUseCase,
)
from model import ProjectStatus, Role, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Project Collaboration & Task Lifecycle — Management API",
    version="1.0.0",
    description=(
        "REST API for managing people, projects led by one person and worked on "
        "by collaborators, and tasks that move through a review workflow."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_handler(request, exc: AuthorizationError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(TransitionError)
async def transition_handler(request, exc: TransitionError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "allowed": exc.allowed})


@app.exception_handler(ConflictError)
async def conflict_handler(request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


_login_throttle = InMemoryLoginThrottle(
    max_attempts=config.LOGIN_MAX_ATTEMPTS,
    window_seconds=config.LOGIN_WINDOW_SECONDS,
)


def get_login_throttle() -> AbstractLoginThrottle:
    return _login_throttle


def get_current_person(
    authorization: Optional[str] = Header(default=None),
    uow: AbstractUnitOfWork = Depends(get_uow),
) -> PersonDTO:
    """
    Resolve "Authorization: Bearer <person-uuid>" to an active person.
    Replace with real token verification before going to production.
    """
    scheme, _, token = (authorization or "").partition(" ")
    try:
        if scheme.lower() != "bearer":
            raise ValueError(scheme)
        person_id = uuid.UUID(token.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or malformed bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        person = GetPersonUseCase().execute(person_id, uow)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not person.active:
        raise AuthorizationError(f"Person {person.id} is deactivated.")
    return person


def _require_admin(person: PersonDTO) -> None:
    if person.role != Role.ADMIN.value:
        raise AuthorizationError("This operation is restricted to administrators.")


# ---------------------------------------------------------------------------
# Conflict retry
# A ConflictError means another request committed first; the whole use case
# is re-run against fresh state.  Use cases themselves never retry.
# ---------------------------------------------------------------------------

_retry_on_conflict = retry(
    stop=stop_after_attempt(config.CONFLICT_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=0.01, max=0.2),
    retry=retry_if_exception_type(ConflictError),
    reraise=True,
    before_sleep=lambda state: logger.warning(
        "Conflict on attempt %d, retrying: %s",
        state.attempt_number, state.outcome.exception(),
    ),
)


def _execute(use_case, *args):
    """Run `use_case.execute(*args)`, re-running it on ConflictError."""
    return _retry_on_conflict(use_case.execute)(*args)


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

class LoginRequest(BaseModel):
    email: EmailStr


class RegisterPersonRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    role: Role = Role.COLLABORATOR


class ChangePersonRoleRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    role: Role


class CreateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    leader_id: uuid.UUID
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def drop_blank_tags(cls, v: List[str]) -> List[str]:
        return [t for t in v if t and t.strip()]


class UpdateProjectRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    leader_id: uuid.UUID
    status: ProjectStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AddCollaboratorRequest(BaseModel):
    person_id: uuid.UUID


class CreateTaskRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    assigned_to_id: Optional[uuid.UUID] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def drop_blank_tags(cls, v: List[str]) -> List[str]:
        return [t for t in v if t and t.strip()]


class UpdateTaskStatusRequest(BaseModel):
    status: TaskStatus


class AddCommentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=2000)


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@auth_router.post(
    "/login",
    summary="Exchange an email address for a bearer token",
)
def login(
    body: LoginRequest,
    request: Request,
    uow: AbstractUnitOfWork = Depends(get_uow),
    throttle: AbstractLoginThrottle = Depends(get_login_throttle),
):
    """
    Returns the person's id to use as a bearer token.  Each client gets
    LOGIN_MAX_ATTEMPTS attempts per LOGIN_WINDOW_SECONDS; beyond that the
    endpoint answers 429 with a Retry-After header.
    """
    client_key = request.client.host if request.client else "unknown"
    if not throttle.allow_request(client_key):
        wait = throttle.seconds_until_reset(client_key)
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": f"Too many login attempts. Try again in {wait} seconds."},
            headers={"Retry-After": str(wait)},
        )
    try:
        person = GetPersonByEmailUseCase().execute(str(body.email), uow)
    except NotFoundError:
        logger.warning(
            "Failed login from %s (%d attempt(s) left)",
            client_key, throttle.remaining_attempts(client_key),
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")
    if not person.active:
        raise AuthorizationError(f"Person {person.id} is deactivated.")
    throttle.reset(client_key)
    logger.info("Person %s logged in from %s", person.id, client_key)
    return _ok({"token": person.id, "person": dataclasses.asdict(person)})


# ---------------------------------------------------------------------------
# Persons
# ---------------------------------------------------------------------------

person_router = APIRouter(prefix="/persons", tags=["Persons"])


@person_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Register a new person (admin only)",
)
def register_person(
    body: RegisterPersonRequest,
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    _require_admin(current)
    cmd = RegisterPersonCommand(full_name=body.full_name, email=str(body.email), role=body.role)
    return _ok(_execute(RegisterPersonUseCase(), cmd, uow))


@person_router.get(
    "",
    summary="Search people by name/email, role and active flag",
)
def search_persons(
    text: Optional[str] = Query(default=None),
    role: Optional[Role] = Query(default=None),
    active_only: bool = Query(default=False),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    query = SearchPersonsQuery(text=text, role=role, active_only=active_only)
    return _ok(SearchPersonsUseCase().execute(query, uow))


@person_router.get(
    "/{person_id}",
    summary="Get a person by ID",
)
def get_person(
    person_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetPersonUseCase().execute(person_id, uow))


@person_router.put(
    "/{person_id}",
    summary="Rename a person and/or change their role (admin only)",
)
def change_person_role(
    body: ChangePersonRoleRequest,
    person_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    _require_admin(current)
    cmd = ChangePersonRoleCommand(person_id=person_id, full_name=body.full_name, role=body.role)
    return _ok(_execute(ChangePersonRoleUseCase(), cmd, uow))


@person_router.post(
    "/{person_id}/activate",
    summary="Re-activate a person (admin only)",
)
def activate_person(
    person_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    _require_admin(current)
    return _ok(_execute(ActivatePersonUseCase(), person_id, uow))


@person_router.post(
    "/{person_id}/deactivate",
    summary="Deactivate a person (admin only)",
)
def deactivate_person(
    person_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    _require_admin(current)
    return _ok(_execute(DeactivatePersonUseCase(), person_id, uow))


@person_router.delete(
    "/{person_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Permanently delete a person (admin only)",
)
def delete_person(
    person_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    _require_admin(current)
    _execute(DeletePersonUseCase(), person_id, uow)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

project_router = APIRouter(prefix="/projects", tags=["Projects"])


@project_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create a new project (admin only)",
)
def create_project(
    body: CreateProjectRequest,
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Creates the project in PLANNING with `leader_id` as its leader.  The
    leader must be an active admin or leader.
    """
    _require_admin(current)
    cmd = CreateProjectCommand(
        name=body.name,
        description=body.description,
        leader_id=body.leader_id,
        start_date=body.start_date,
        end_date=body.end_date,
        tags=body.tags,
    )
    return _ok(_execute(CreateProjectUseCase(), cmd, uow))


@project_router.get(
    "",
    summary="Search projects by text, status and archived flag",
)
def search_projects(
    text: Optional[str] = Query(default=None),
    status_filter: Optional[ProjectStatus] = Query(default=None, alias="status"),
    include_archived: bool = Query(default=False),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    query = SearchProjectsQuery(text=text, status=status_filter, include_archived=include_archived)
    return _ok(SearchProjectsUseCase().execute(query, uow))


@project_router.get(
    "/counts",
    summary="Number of projects per status",
)
def count_projects_by_status(
    include_archived: bool = Query(default=False),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(CountProjectsByStatusUseCase().execute(uow, include_archived))


@project_router.post(
    "/sync-collaborators",
    summary="Reconcile collaborators from task assignees on every project (admin only)",
)
def sync_all_collaborators(
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    _require_admin(current)
    return _ok({"added": SyncAllCollaboratorsUseCase().execute(uow)})


@project_router.get(
    "/{project_id}",
    summary="Get a project by ID",
)
def get_project(
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetProjectUseCase().execute(project_id, uow))


@project_router.put(
    "/{project_id}",
    summary="Update details, leader and status of a project",
)
def update_project(
    body: UpdateProjectRequest,
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = UpdateProjectCommand(
        project_id=project_id,
        acting_person_id=uuid.UUID(current.id),
        name=body.name,
        description=body.description,
        leader_id=body.leader_id,
        status=body.status,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    return _ok(_execute(UpdateProjectUseCase(), cmd, uow))


@project_router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project and all of its tasks (admin only)",
)
def delete_project(
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = ProjectActionCommand(project_id=project_id, acting_person_id=uuid.UUID(current.id))
    _execute(DeleteProjectUseCase(), cmd, uow)


@project_router.get(
    "/{project_id}/details",
    summary="Project with its leader's name and all tasks",
)
def get_project_details(
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetProjectDetailsUseCase().execute(project_id, uow))


@project_router.post(
    "/{project_id}/archive",
    summary="Toggle the archived flag of a project",
)
def toggle_archive_project(
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = ProjectActionCommand(project_id=project_id, acting_person_id=uuid.UUID(current.id))
    return _ok(_execute(ToggleArchiveProjectUseCase(), cmd, uow))


# ---------------------------------------------------------------------------
# Project membership
# ---------------------------------------------------------------------------

@project_router.get(
    "/{project_id}/collaborators",
    tags=["Membership"],
    summary="List a project's collaborators",
)
def list_collaborators(
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(ListProjectCollaboratorsUseCase().execute(project_id, uow))


@project_router.post(
    "/{project_id}/collaborators",
    tags=["Membership"],
    summary="Add a collaborator (no-op if already present)",
)
def add_collaborator(
    body: AddCollaboratorRequest,
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = CollaboratorCommand(
        project_id=project_id,
        person_id=body.person_id,
        acting_person_id=uuid.UUID(current.id),
    )
    return _ok(_execute(AddCollaboratorUseCase(), cmd, uow))


@project_router.delete(
    "/{project_id}/collaborators/{person_id}",
    tags=["Membership"],
    summary="Remove a collaborator (no-op if absent)",
)
def remove_collaborator(
    project_id: uuid.UUID = Path(...),
    person_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = CollaboratorCommand(
        project_id=project_id,
        person_id=person_id,
        acting_person_id=uuid.UUID(current.id),
    )
    return _ok(_execute(RemoveCollaboratorUseCase(), cmd, uow))


@project_router.post(
    "/{project_id}/sync-collaborators",
    tags=["Membership"],
    summary="Make every task assignee a collaborator",
)
def sync_collaborators(
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok({
        "added": _execute(SyncCollaboratorsUseCase(), project_id, uow, uuid.UUID(current.id))
    })


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

@project_router.post(
    "/{project_id}/tasks",
    status_code=status.HTTP_201_CREATED,
    tags=["Tasks"],
    summary="Create a task in a project",
)
def create_task(
    body: CreateTaskRequest,
    project_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Admin or project leader only.  The task starts PENDING.  A non-leader
    assignee is added to the project's collaborators; project progress is
    recomputed.
    """
    cmd = CreateTaskCommand(
        title=body.title,
        description=body.description,
        project_id=project_id,
        created_by_id=uuid.UUID(current.id),
        assigned_to_id=body.assigned_to_id,
        priority=body.priority,
        due_date=body.due_date,
        tags=body.tags,
    )
    return _ok(_execute(CreateTaskUseCase(), cmd, uow))


@project_router.get(
    "/{project_id}/tasks",
    tags=["Tasks"],
    summary="Search a project's tasks",
)
def search_project_tasks(
    project_id: uuid.UUID = Path(...),
    text: Optional[str] = Query(default=None),
    status_filter: Optional[TaskStatus] = Query(default=None, alias="status"),
    priority: Optional[TaskPriority] = Query(default=None),
    assignee_id: Optional[uuid.UUID] = Query(default=None),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    query = SearchTasksQuery(
        project_id=project_id,
        assignee_id=assignee_id,
        text=text,
        status=status_filter,
        priority=priority,
    )
    return _ok(SearchTasksUseCase().execute(query, uow))


task_router = APIRouter(prefix="/tasks", tags=["Tasks"])


@task_router.get(
    "/{task_id}",
    summary="Get a task by ID",
)
def get_task(
    task_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(GetTaskUseCase().execute(task_id, uow))


@task_router.patch(
    "/{task_id}/status",
    summary="Move a task to another status",
)
def update_task_status(
    body: UpdateTaskStatusRequest,
    task_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Allowed for the assignee, the project leader and admins.  An illegal
    transition answers 409 and lists the statuses that are allowed.
    """
    cmd = UpdateTaskStatusCommand(
        task_id=task_id,
        new_status=body.status,
        acting_person_id=uuid.UUID(current.id),
    )
    return _ok(_execute(UpdateTaskStatusUseCase(), cmd, uow))


@task_router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a task (project leader or admin)",
)
def delete_task(
    task_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = DeleteTaskCommand(task_id=task_id, acting_person_id=uuid.UUID(current.id))
    _execute(DeleteTaskUseCase(), cmd, uow)


@task_router.get(
    "/{task_id}/comments",
    summary="List a task's comments, oldest first",
)
def list_comments(
    task_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(ListTaskCommentsUseCase().execute(task_id, uow))


@task_router.post(
    "/{task_id}/comments",
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a task",
)
def add_comment(
    body: AddCommentRequest,
    task_id: uuid.UUID = Path(...),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = AddCommentCommand(task_id=task_id, author_id=uuid.UUID(current.id), text=body.text)
    return _ok(_execute(AddCommentUseCase(), cmd, uow))


# ---------------------------------------------------------------------------
# Me
# ---------------------------------------------------------------------------

me_router = APIRouter(prefix="/me", tags=["Me"])


@me_router.get("", summary="The authenticated person")
def get_me(current: PersonDTO = Depends(get_current_person)):
    return _ok(current)


@me_router.get("/tasks", summary="Tasks assigned to the authenticated person")
def get_my_tasks(
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(ListTasksForPersonUseCase().execute(uuid.UUID(current.id), uow))


@me_router.get("/projects", summary="Projects the authenticated person leads or works on")
def get_my_projects(
    led_only: bool = Query(default=False),
    current: PersonDTO = Depends(get_current_person),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    return _ok(ListProjectsForPersonUseCase().execute(uuid.UUID(current.id), uow, led_only))


# ===========================================================================
# REGISTER ROUTERS
# ===========================================================================

api_v1.include_router(auth_router)
api_v1.include_router(person_router)
api_v1.include_router(project_router)
api_v1.include_router(task_router)
api_v1.include_router(me_router)

app.include_router(api_v1)


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Startup: make sure an administrator exists so someone can log in.
# ---------------------------------------------------------------------------

@app.on_event("startup")
def seed_system_admin():
    uow = app.dependency_overrides.get(get_uow, get_uow)()
    try:
        admin = GetPersonByEmailUseCase().execute(config.SYSTEM_ADMIN_EMAIL, uow)
    except NotFoundError:
        cmd = RegisterPersonCommand(
            full_name=config.SYSTEM_ADMIN_NAME,
            email=config.SYSTEM_ADMIN_EMAIL,
            role=Role.ADMIN,
        )
        admin = RegisterPersonUseCase().execute(cmd, uow)
        logger.info("System administrator seeded: %s (%s)", admin.id, admin.email)
    else:
        logger.debug("System administrator already present: %s", admin.id)


# ---------------------------------------------------------------------------
# MCP Server: exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()


# ===========================================================================
# OPENAPI CUSTOMISATION: tag order and descriptions
# ===========================================================================

tags_metadata = [
    {"name": "Health", "description": "Liveness probe."},
    {
        "name": "Auth",
        "description": (
            "Exchange an email address for a bearer token.  Attempts are limited "
            "per client; over the limit the endpoint answers 429."
        ),
    },
    {
        "name": "Persons",
        "description": (
            "People and their system-wide role.  Deactivation is a soft delete; "
            "hard deletion is refused while the person leads a project or has tasks."
        ),
    },
    {
        "name": "Projects",
        "description": (
            "Projects are led by exactly one admin or leader and move through "
            "planning → in_progress ⇄ paused → completed, or to cancelled."
        ),
    },
    {
        "name": "Membership",
        "description": (
            "Collaborators of a project.  Adding or removing is idempotent; a "
            "task assignee is made a collaborator automatically."
        ),
    },
    {
        "name": "Tasks",
        "description": (
            "Tasks move pending → in_progress → in_review → completed, with "
            "blocked as a side state.  Project progress follows task completion."
        ),
    },
    {"name": "Me", "description": "The authenticated person's own tasks and projects."},
]

app.openapi_tags = tags_metadata
