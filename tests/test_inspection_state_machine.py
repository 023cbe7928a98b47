import uuid
from types import SimpleNamespace

import pytest

from medistock.config import settings
from medistock.core.exceptions import Forbidden, InvalidTransition
from medistock.services.inspection_state_machine import (
    InspectionStatus, TRANSITIONS, WorkflowAction, WorkflowRole,
    allowed_actions, authorize, is_terminal, resolve_roles, resolve_transition,
)


class StubChecker:
    def __init__(self, permissions=(), super_admin=False):
        self.user_id = uuid.uuid4()
        self.permissions = set(permissions)
        self._super_admin = super_admin

    def is_super_admin(self):
        return self._super_admin

    def has_permission(self, code):
        return self._super_admin or code in self.permissions


def record(status="pending", assigned_to=None):
    return SimpleNamespace(status=status, assigned_to=assigned_to or uuid.uuid4())


ALL_ROLES = set(WorkflowRole)


@pytest.mark.parametrize("status, action, expected", [
    ("pending", "start", "in_progress"),
    ("pending", "update", "pending"),
    ("in_progress", "update", "in_progress"),
    ("pending", "submit", "submitted"),
    ("in_progress", "submit", "submitted"),
    ("submitted", "approve", "approved"),
    ("submitted", "reject", "rejected"),
    ("pending", "assign", "pending"),
    ("in_progress", "assign", "in_progress"),
])
def test_legal_transitions(status, action, expected):
    assert resolve_transition(status, action, ALL_ROLES) == InspectionStatus(expected)


def test_every_pair_missing_from_table_is_rejected():
    for status in InspectionStatus:
        for action in WorkflowAction:
            if (status, action) in TRANSITIONS:
                continue
            with pytest.raises(InvalidTransition) as exc_info:
                resolve_transition(status.value, action, ALL_ROLES)
            assert exc_info.value.current_status == status.value


def test_approve_from_pending_lists_allowed_actions():
    with pytest.raises(InvalidTransition) as exc_info:
        resolve_transition("pending", WorkflowAction.APPROVE, ALL_ROLES)
    assert exc_info.value.allowed_actions == ["start", "update", "submit", "assign"]
    assert "Cannot approve" in exc_info.value.message


def test_terminal_statuses_allow_nothing():
    assert allowed_actions("approved") == []
    assert allowed_actions("rejected") == []
    assert is_terminal("approved") and is_terminal("rejected")
    assert not is_terminal("submitted")


def test_status_is_checked_before_role():
    # No roles at all, but the transition itself is illegal
    with pytest.raises(InvalidTransition):
        resolve_transition("approved", WorkflowAction.SUBMIT, set())


def test_missing_role_is_forbidden():
    with pytest.raises(Forbidden):
        resolve_transition("submitted", WorkflowAction.APPROVE, {WorkflowRole.ASSIGNEE})
    with pytest.raises(Forbidden):
        resolve_transition("pending", WorkflowAction.ASSIGN, {WorkflowRole.ASSIGNEE, WorkflowRole.APPROVER})


def test_assignee_role_for_record_assignee():
    checker = StubChecker(["quality_control:view"])
    roles = resolve_roles(checker, record(assigned_to=checker.user_id), "quality_control")
    assert roles == {WorkflowRole.ASSIGNEE, WorkflowRole.EDITOR}


def test_update_permission_grants_editor_only():
    checker = StubChecker(["quality_control:update", "quality_control:submit"])
    assert resolve_roles(checker, record(), "quality_control") == {WorkflowRole.EDITOR}


def test_update_holder_may_update_but_not_submit_someone_elses_record():
    checker = StubChecker(["quality_control:update", "quality_control:submit"])
    target = authorize(checker, record("in_progress"), "quality_control", WorkflowAction.UPDATE)
    assert target == InspectionStatus.IN_PROGRESS

    with pytest.raises(Forbidden):
        authorize(checker, record("in_progress"), "quality_control", WorkflowAction.SUBMIT)
    with pytest.raises(Forbidden):
        authorize(checker, record("pending"), "quality_control", WorkflowAction.START)


def test_non_assignee_without_update_has_no_roles():
    checker = StubChecker(["quality_control:view", "quality_control:submit"])
    assert resolve_roles(checker, record(), "quality_control") == set()
    with pytest.raises(Forbidden):
        authorize(checker, record(), "quality_control", WorkflowAction.UPDATE)


def test_manager_acts_as_assignee():
    checker = StubChecker(["warehouse_approval:manage"])
    roles = resolve_roles(checker, record(), "warehouse_approval")
    assert roles == {WorkflowRole.ASSIGNEE, WorkflowRole.EDITOR, WorkflowRole.MANAGER}


def test_permissions_are_scoped_to_resource():
    checker = StubChecker(["quality_control:approve", "quality_control:manage"])
    assert resolve_roles(checker, record(), "warehouse_approval") == set()


def test_super_admin_holds_every_role():
    checker = StubChecker(super_admin=True)
    assert resolve_roles(checker, record(), "quality_control") == ALL_ROLES


def test_assignee_may_approve_without_separation():
    checker = StubChecker(["quality_control:approve"])
    target = authorize(checker, record("submitted", checker.user_id), "quality_control", WorkflowAction.APPROVE)
    assert target == InspectionStatus.APPROVED


def test_approver_separation_blocks_own_record(monkeypatch):
    monkeypatch.setattr(settings, "ENFORCE_APPROVER_SEPARATION", True)
    checker = StubChecker(["quality_control:approve"])

    with pytest.raises(Forbidden):
        authorize(checker, record("submitted", checker.user_id), "quality_control", WorkflowAction.APPROVE)

    # Someone else's record is still fine
    assert authorize(checker, record("submitted"), "quality_control", WorkflowAction.REJECT) == InspectionStatus.REJECTED
