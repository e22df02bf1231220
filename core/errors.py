"""
Exception types shared by the agent and the backend.

Two families live here:

- StoreError and its subclasses are raised by the data store. The tool
  executor catches them and reports them back to the model as failed tool
  results, so they never end a turn.
- TrainerError and its subclasses are fatal to a turn. Each carries the
  HTTP status and error type the API layer answers with.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for data store failures."""

    def __init__(self, message: str, details: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.hint = hint


class NotFoundError(StoreError):
    """The row does not exist, is soft-deleted, or belongs to another user."""


class PermissionDeniedError(StoreError):
    """The caller tried to write beneath a row owned by another user."""


class ConstraintViolationError(StoreError):
    """The write breaks a data integrity rule."""


class TrainerError(Exception):
    status_code = 500
    error_type = "unknown_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(TrainerError):
    status_code = 400
    error_type = "invalid_request"


class UnauthorizedError(TrainerError):
    status_code = 401
    error_type = "unauthorized"


class UpstreamError(TrainerError):
    """The chat completion service answered with an error or garbage."""

    status_code = 502
    error_type = "upstream_error"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UpstreamTimeoutError(UpstreamError):
    status_code = 504
    error_type = "upstream_timeout"


class MaxTurnsExceededError(TrainerError):
    error_type = "max_turns_exceeded"

    def __init__(self, max_turns: int):
        super().__init__(f"Max turns exceeded: the model kept requesting tools after {max_turns} rounds")
        self.max_turns = max_turns
