"""
Domain exceptions for the receiving workflow.

Every service raises one of these instead of an HTTPException, so the same
code paths can be driven from the API, from scripts and from tests. The
exception handlers in ``medistock.main`` turn them into the
``{"success": false, "message": ...}`` envelope using ``status_code``.

Hierarchy
---------

    MedistockError
    +-- ValidationError          400  malformed or inconsistent input
    +-- DuplicateRecord          400  uniqueness rule violated
    +-- InvalidTransition        400  action not legal in the current status
    +-- InventoryPostingError    400  ledger posting failed during approval
    +-- NotFound                 404  referenced record does not exist
    +-- Forbidden                403  caller lacks the required role

Catch the specific class where the caller can react to it; let everything
else reach the handler. Missing or invalid credentials are answered with a
401 HTTPException in ``medistock.api.deps`` before any service runs.
"""
from typing import Any, Optional


class MedistockError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(MedistockError):
    status_code = 400


class DuplicateRecord(MedistockError):
    status_code = 400


class InvalidTransition(MedistockError):
    """Raised when an action is not permitted from the record's status."""

    status_code = 400

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        allowed_actions: Optional[list[str]] = None,
    ):
        super().__init__(
            message,
            {"current_status": current_status, "allowed_actions": allowed_actions or []},
        )
        self.current_status = current_status
        self.allowed_actions = allowed_actions or []


class InventoryPostingError(MedistockError):
    """Raised when stock cannot be posted while approving a warehouse record.

    The approval is rolled back and the record stays submitted.
    """

    status_code = 400


class NotFound(MedistockError):
    status_code = 404


class Forbidden(MedistockError):
    status_code = 403
