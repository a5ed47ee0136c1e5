"""
main.py

Entry point for the Project Collaboration & Task Lifecycle Management API.

Configures logging, wires the in-memory infrastructure into the FastAPI app
and starts uvicorn.  Settings come from the environment or a `.env` file
(see config.py).

Usage
-----
    # Option 1: run directly (APP_HOST / APP_PORT / APP_RELOAD apply)
    python main.py

    # Option 2: run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI  (try every endpoint interactively)
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (use Swagger UI or curl)
-------------------------------------------------
1.  POST  /api/v1/auth/login                 — {"email": SYSTEM_ADMIN_EMAIL}
                                               copy the returned "token"
2.  POST  /api/v1/persons                    — register a leader and collaborators
                                               Authorization: Bearer <token>
3.  POST  /api/v1/projects                   — create a project led by the leader
4.  POST  /api/v1/projects/{id}/tasks        — add tasks; assignees join as collaborators
5.  PATCH /api/v1/tasks/{id}/status          — move tasks along; progress follows
6.  GET   /api/v1/projects/{id}/details      — project, leader and every task

Authentication note
-------------------
The bearer token is the raw person UUID.  This is intentional for easy local
testing — replace get_current_person in api.py with real token verification
before going to production.
"""

import logging

import uvicorn

import config
from api import app, get_uow
from infrastructure import InMemoryUnitOfWork

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work into the FastAPI dependency system.
# To swap databases, replace InMemoryUnitOfWork with your SQL implementation.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.APP_HOST,
        port=config.APP_PORT,
        reload=config.APP_RELOAD,
        log_level=config.LOG_LEVEL.lower(),
    )
