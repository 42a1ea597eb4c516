"""
Tests for the authorization policy (auth/permissions.py).

Tests cover:
- The action gate table for every role
- Ownership predicates per resource type
- require_ownership: NotFound outside read scope, Forbidden when visible
"""

import pytest

from auth.identity import CallerIdentity
from auth.permissions import (
    ACTION_GATE,
    Action,
    CommentSnapshot,
    LabelSnapshot,
    ProjectSnapshot,
    ResourceType,
    TaskSnapshot,
    UserSnapshot,
    can_perform,
    owns_or_is_in_scope,
    require_action,
    require_ownership,
    require_parent_project_owner,
)
from models import UserRole
from operations.errors import Forbidden, NotFound

ADMIN = CallerIdentity(user_id=1, role=UserRole.ADMIN)
MANAGER = CallerIdentity(user_id=2, role=UserRole.MANAGER)
OTHER_MANAGER = CallerIdentity(user_id=3, role=UserRole.MANAGER)
MEMBER = CallerIdentity(user_id=4, role=UserRole.MEMBER)
OTHER_MEMBER = CallerIdentity(user_id=5, role=UserRole.MEMBER)

PROJECT = ProjectSnapshot(id=10, owner_id=MANAGER.user_id, assignee_ids=frozenset({MEMBER.user_id}))
TASK = TaskSnapshot(id=20, project_id=PROJECT.id, project_owner_id=MANAGER.user_id, assignee_id=MEMBER.user_id)


# ============== Action gate ==============


def test_gate_covers_every_resource_and_action():
    for resource_type in ResourceType:
        for action in Action:
            assert (resource_type, action) in ACTION_GATE


@pytest.mark.parametrize("action", [Action.CREATE, Action.DELETE])
def test_member_cannot_create_or_delete_tasks(action):
    assert not can_perform(UserRole.MEMBER, action, ResourceType.TASK)
    assert can_perform(UserRole.MANAGER, action, ResourceType.TASK)
    assert can_perform(UserRole.ADMIN, action, ResourceType.TASK)


def test_member_can_update_tasks_and_use_comments():
    assert can_perform(UserRole.MEMBER, Action.UPDATE, ResourceType.TASK)
    for action in Action:
        assert can_perform(UserRole.MEMBER, action, ResourceType.COMMENT)


def test_only_admin_lists_creates_and_deletes_users():
    for action in (Action.LIST, Action.CREATE, Action.DELETE):
        assert can_perform(UserRole.ADMIN, action, ResourceType.USER)
        assert not can_perform(UserRole.MANAGER, action, ResourceType.USER)
        assert not can_perform(UserRole.MEMBER, action, ResourceType.USER)


def test_project_and_label_writes_are_staff_only():
    for resource_type in (ResourceType.PROJECT, ResourceType.LABEL):
        for action in (Action.CREATE, Action.UPDATE, Action.DELETE):
            assert not can_perform(UserRole.MEMBER, action, resource_type)
            assert can_perform(UserRole.MANAGER, action, resource_type)


def test_require_action_raises_forbidden():
    with pytest.raises(Forbidden):
        require_action(MEMBER, Action.CREATE, ResourceType.PROJECT)
    require_action(MANAGER, Action.CREATE, ResourceType.PROJECT)


# ============== Ownership predicates ==============


def test_project_visibility():
    assert owns_or_is_in_scope(ADMIN, PROJECT)
    assert owns_or_is_in_scope(MANAGER, PROJECT)
    assert owns_or_is_in_scope(MEMBER, PROJECT)
    assert not owns_or_is_in_scope(OTHER_MANAGER, PROJECT)
    assert not owns_or_is_in_scope(OTHER_MEMBER, PROJECT)


def test_manager_assigned_in_foreign_project_can_read_but_not_modify():
    project = ProjectSnapshot(id=11, owner_id=OTHER_MANAGER.user_id, assignee_ids=frozenset({MANAGER.user_id}))
    assert owns_or_is_in_scope(MANAGER, project, Action.READ)
    assert not owns_or_is_in_scope(MANAGER, project, Action.UPDATE)
    assert not owns_or_is_in_scope(MANAGER, project, Action.DELETE)


def test_task_scope_by_role():
    assert owns_or_is_in_scope(MEMBER, TASK, Action.UPDATE)
    assert not owns_or_is_in_scope(OTHER_MEMBER, TASK, Action.READ)
    assert owns_or_is_in_scope(MANAGER, TASK, Action.DELETE)
    assert not owns_or_is_in_scope(OTHER_MANAGER, TASK, Action.READ)


def test_manager_assignee_cannot_delete_task_in_foreign_project():
    task = TaskSnapshot(id=21, project_id=11, project_owner_id=OTHER_MANAGER.user_id, assignee_id=MANAGER.user_id)
    assert owns_or_is_in_scope(MANAGER, task, Action.UPDATE)
    assert not owns_or_is_in_scope(MANAGER, task, Action.DELETE)


def test_label_read_follows_project_but_writes_need_ownership():
    label = LabelSnapshot(id=30, project=PROJECT)
    assert owns_or_is_in_scope(MEMBER, label, Action.READ)
    assert not owns_or_is_in_scope(MEMBER, label, Action.UPDATE)
    assert owns_or_is_in_scope(MANAGER, label, Action.DELETE)
    assert not owns_or_is_in_scope(OTHER_MANAGER, label, Action.READ)


def test_comment_mutation_is_author_only_even_for_admin():
    comment = CommentSnapshot(id=40, author_id=MEMBER.user_id, task=TASK)
    assert owns_or_is_in_scope(MEMBER, comment, Action.UPDATE)
    assert owns_or_is_in_scope(MEMBER, comment, Action.DELETE)
    for caller in (ADMIN, MANAGER):
        assert owns_or_is_in_scope(caller, comment, Action.READ)
        assert not owns_or_is_in_scope(caller, comment, Action.UPDATE)
        assert not owns_or_is_in_scope(caller, comment, Action.DELETE)


def test_user_scope():
    me = UserSnapshot(id=MEMBER.user_id, role=UserRole.MEMBER)
    assert owns_or_is_in_scope(MEMBER, me, Action.UPDATE)
    assert not owns_or_is_in_scope(OTHER_MEMBER, me, Action.READ)
    assert owns_or_is_in_scope(ADMIN, me, Action.DELETE)
    admin_self = UserSnapshot(id=ADMIN.user_id, role=UserRole.ADMIN)
    assert not owns_or_is_in_scope(ADMIN, admin_self, Action.DELETE)


def test_unknown_snapshot_type_is_rejected():
    with pytest.raises(TypeError):
        owns_or_is_in_scope(ADMIN, object())


# ============== require_* helpers ==============


def test_require_ownership_hides_invisible_records():
    with pytest.raises(NotFound) as exc_info:
        require_ownership(OTHER_MEMBER, TASK, Action.UPDATE)
    assert exc_info.value.message == "Task not found"


def test_require_ownership_forbids_visible_records():
    comment = CommentSnapshot(id=41, author_id=MEMBER.user_id, task=TASK)
    with pytest.raises(Forbidden) as exc_info:
        require_ownership(MANAGER, comment, Action.DELETE)
    assert "own comments" in exc_info.value.message


def test_require_parent_project_owner():
    require_parent_project_owner(ADMIN, PROJECT, "task")
    require_parent_project_owner(MANAGER, PROJECT, "task")
    with pytest.raises(Forbidden):
        require_parent_project_owner(OTHER_MANAGER, PROJECT, "task")
    with pytest.raises(Forbidden):
        require_parent_project_owner(MEMBER, PROJECT, "label")
