"""
Inspection State Machine

This module is the SINGLE SOURCE OF TRUTH for status transitions of
quality control and warehouse approval records. Both stages share the
same lifecycle:

    pending --start--> in_progress --submit--> submitted --approve--> approved
       |                                          |
       +---------------submit---------------------+      --reject--> rejected

update and assign keep the status unchanged and are only legal before
submission. approved and rejected are terminal.

Each transition also names the workflow role the caller must hold. Role
membership is decided by ``resolve_roles`` from the caller's permissions
and the record; the table only says which role is needed.
"""
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from medistock.config import settings
from medistock.core.exceptions import Forbidden, InvalidTransition
from medistock.core.permissions import PermissionChecker


# =============================================================================
# STATUS / ACTION / ROLE DEFINITIONS
# =============================================================================

class InspectionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkflowAction(str, Enum):
    START = "start"
    UPDATE = "update"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ASSIGN = "assign"


class WorkflowRole(str, Enum):
    ASSIGNEE = "assignee"
    EDITOR = "editor"
    APPROVER = "approver"
    MANAGER = "manager"


ACTIVE_STATUSES = (InspectionStatus.PENDING, InspectionStatus.IN_PROGRESS, InspectionStatus.SUBMITTED)
TERMINAL_STATUSES = (InspectionStatus.APPROVED, InspectionStatus.REJECTED)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# (current status, action) -> (target status, required role)
TRANSITIONS: Dict[Tuple[InspectionStatus, WorkflowAction], Tuple[InspectionStatus, WorkflowRole]] = {
    (InspectionStatus.PENDING, WorkflowAction.START): (InspectionStatus.IN_PROGRESS, WorkflowRole.ASSIGNEE),

    (InspectionStatus.PENDING, WorkflowAction.UPDATE): (InspectionStatus.PENDING, WorkflowRole.EDITOR),
    (InspectionStatus.IN_PROGRESS, WorkflowAction.UPDATE): (InspectionStatus.IN_PROGRESS, WorkflowRole.EDITOR),

    (InspectionStatus.PENDING, WorkflowAction.SUBMIT): (InspectionStatus.SUBMITTED, WorkflowRole.ASSIGNEE),
    (InspectionStatus.IN_PROGRESS, WorkflowAction.SUBMIT): (InspectionStatus.SUBMITTED, WorkflowRole.ASSIGNEE),

    (InspectionStatus.SUBMITTED, WorkflowAction.APPROVE): (InspectionStatus.APPROVED, WorkflowRole.APPROVER),
    (InspectionStatus.SUBMITTED, WorkflowAction.REJECT): (InspectionStatus.REJECTED, WorkflowRole.APPROVER),

    (InspectionStatus.PENDING, WorkflowAction.ASSIGN): (InspectionStatus.PENDING, WorkflowRole.MANAGER),
    (InspectionStatus.IN_PROGRESS, WorkflowAction.ASSIGN): (InspectionStatus.IN_PROGRESS, WorkflowRole.MANAGER),
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def allowed_actions(current_status: str) -> List[str]:
    """Actions that are legal from ``current_status``, in table order."""
    status = InspectionStatus(current_status)
    return [action.value for (from_status, action) in TRANSITIONS if from_status == status]


def is_terminal(current_status: str) -> bool:
    return InspectionStatus(current_status) in TERMINAL_STATUSES


def resolve_transition(
    current_status: str,
    action: WorkflowAction,
    roles: Iterable[WorkflowRole],
) -> InspectionStatus:
    """
    Validate an action against the table and return the target status.

    The status check runs before the role check, so a caller asking for an
    impossible action learns that first.

    Raises:
        InvalidTransition: the (status, action) pair is not in the table
        Forbidden: the caller does not hold the role the transition needs
    """
    action = WorkflowAction(action)
    status = InspectionStatus(current_status)

    entry = TRANSITIONS.get((status, action))
    if entry is None:
        allowed = allowed_actions(status.value)
        raise InvalidTransition(
            f"Cannot {action.value} a record in status '{status.value}'. "
            f"Allowed actions: {', '.join(allowed) if allowed else 'none (terminal status)'}",
            current_status=status.value,
            allowed_actions=allowed,
        )

    target, required_role = entry
    if required_role not in set(roles):
        raise Forbidden(f"Only the {required_role.value} may {action.value} this record")

    return target


def resolve_roles(checker: PermissionChecker, record, resource: str) -> Set[WorkflowRole]:
    """
    Work out which workflow roles the caller holds on ``record``.

    - assignee: is the record's assignee, or holds ``<resource>:manage``,
      or is a super admin
    - editor: any assignee, or holds ``<resource>:update``
    - approver: holds ``<resource>:approve``; with approver separation on,
      the record's assignee is excluded
    - manager: holds ``<resource>:manage``
    """
    roles: Set[WorkflowRole] = set()
    is_assignee = record.assigned_to == checker.user_id
    can_manage = checker.has_permission(f"{resource}:manage")

    if is_assignee or can_manage or checker.is_super_admin():
        roles.add(WorkflowRole.ASSIGNEE)
        roles.add(WorkflowRole.EDITOR)
    elif checker.has_permission(f"{resource}:update"):
        roles.add(WorkflowRole.EDITOR)

    if checker.has_permission(f"{resource}:approve"):
        if not (settings.ENFORCE_APPROVER_SEPARATION and is_assignee):
            roles.add(WorkflowRole.APPROVER)

    if can_manage:
        roles.add(WorkflowRole.MANAGER)

    return roles


def authorize(
    checker: PermissionChecker,
    record,
    resource: str,
    action: WorkflowAction,
    current_status: Optional[str] = None,
) -> InspectionStatus:
    """Resolve the caller's roles on ``record`` and validate ``action``."""
    return resolve_transition(
        current_status or record.status,
        action,
        resolve_roles(checker, record, resource),
    )
