"""
errors.py

Exception hierarchy shared by the service, application and API layers.

  ApplicationError
  ├── NotFoundError        referenced person / project / task does not exist
  ├── ValidationError      bad input or broken business rule  (also a ValueError)
  ├── TransitionError      status change not in the transition table  (also a ValueError)
  ├── AuthorizationError   acting person may not perform the mutation
  └── ConflictError        entity changed in the store since it was loaded

Every error is raised synchronously and propagates to the caller; nothing in
the core retries or recovers.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


class ValidationError(ApplicationError, ValueError):
    """Raised for malformed input or a violated business rule."""


class TransitionError(ApplicationError, ValueError):
    """
    Raised when a requested status change is not permitted.

    `allowed` lists the legal next statuses (string values) so a caller can
    offer only those.
    """

    def __init__(self, message: str, allowed: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.allowed: List[str] = list(allowed or [])


class AuthorizationError(ApplicationError):
    """Raised when the acting person lacks permission for the mutation."""


class ConflictError(ApplicationError):
    """Raised by the store when a save carries a stale entity version."""
