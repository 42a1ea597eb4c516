"""
Tests for the operation dispatch layer (operations/dispatch.py).

Storage failures must surface as InternalError (or Conflict for unique
violations) after a rollback, while typed outcomes pass through untouched.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

import models
from auth.permissions import ResourceType
from operations import dispatch
from operations.errors import Conflict, Forbidden, InternalError, NotFound
from scoping import TaskFilters
from tests.conftest import identity_for


class FailingStore:
    """Store whose reads raise the given exception."""

    def __init__(self, error):
        self.error = error
        self.rolled_back = False

    def get(self, model, record_id):
        raise self.error

    def rollback(self):
        self.rolled_back = True


class Orig(Exception):
    pass


def test_storage_error_becomes_internal_error(admin_user: models.User):
    store = FailingStore(OperationalError("SELECT 1", {}, Orig("database is locked")))

    with pytest.raises(InternalError) as exc_info:
        dispatch.get_resource(ResourceType.TASK, store, identity_for(admin_user), 1)

    assert store.rolled_back
    assert exc_info.value.status_code == 500


def test_unique_violation_becomes_conflict(admin_user: models.User):
    store = FailingStore(IntegrityError("INSERT", {}, Orig("UNIQUE constraint failed: users.email")))

    with pytest.raises(Conflict):
        dispatch.get_resource(ResourceType.USER, store, identity_for(admin_user), 1)

    assert store.rolled_back


def test_other_integrity_error_is_internal(admin_user: models.User):
    store = FailingStore(IntegrityError("INSERT", {}, Orig("FOREIGN KEY constraint failed")))

    with pytest.raises(InternalError):
        dispatch.get_resource(ResourceType.PROJECT, store, identity_for(admin_user), 1)


def test_typed_outcomes_pass_through(store, member_user: models.User, unassigned_task: models.Task):
    identity = identity_for(member_user)

    with pytest.raises(NotFound):
        dispatch.get_resource(ResourceType.TASK, store, identity, unassigned_task.id)
    with pytest.raises(Forbidden):
        dispatch.delete_resource(ResourceType.TASK, store, identity, unassigned_task.id)


def test_list_resources_defaults(store, admin_user: models.User, member_task: models.Task, unassigned_task: models.Task):
    result = dispatch.list_resources(ResourceType.TASK, store, identity_for(admin_user), TaskFilters())

    assert result.total == 2
    assert result.page == 1
    assert result.page_size == 10
    # Newest first, id breaking ties
    assert [task.id for task in result.items] == [unassigned_task.id, member_task.id]
