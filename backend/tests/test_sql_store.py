"""
Tests for the SQLAlchemy store adapter (storage/sql_store.py).
"""

from sqlalchemy.orm import Session

import models
from scoping import MATCH_ALL, MATCH_NONE, Condition, Op, SortDirection, SortField, SortSpec
from storage.sql_store import SqlAlchemyStore
from tests.conftest import make_task


def test_match_all_and_match_none(store: SqlAlchemyStore, member_task: models.Task, unassigned_task: models.Task):
    assert store.count(models.Task, MATCH_ALL) == 2
    assert store.count(models.Task, MATCH_NONE) == 0


def test_empty_in_matches_nothing(store: SqlAlchemyStore, member_task: models.Task):
    assert store.find(models.Task, Condition("project_id", Op.IN, ())) == []


def test_eq_none_means_is_null(store: SqlAlchemyStore, member_task: models.Task, unassigned_task: models.Task):
    rows = store.find(models.Task, Condition("assignee_id", Op.EQ, None))
    assert [task.id for task in rows] == [unassigned_task.id]


def test_contains_treats_wildcards_literally(test_db: Session, store: SqlAlchemyStore, project: models.Project):
    literal = make_task(test_db, project, "100% done")
    make_task(test_db, project, "1000 things")

    rows = store.find(models.Task, Condition("title", Op.CONTAINS, "0%"))
    assert [task.id for task in rows] == [literal.id]

    underscore = store.find(models.Task, Condition("title", Op.CONTAINS, "_"))
    assert underscore == []


def test_offset_and_limit(store: SqlAlchemyStore, test_db: Session, project: models.Project):
    ids = [make_task(test_db, project, f"T{i}").id for i in range(5)]
    order = SortSpec(SortField.createdAt, SortDirection.asc)

    page = store.find(models.Task, MATCH_ALL, order=order, offset=2, limit=2)

    assert [task.id for task in page] == ids[2:4]


def test_transaction_rolls_back_on_error(store: SqlAlchemyStore, test_db: Session, project: models.Project):
    try:
        with store.transaction():
            store.add(models.Task(title="Doomed", project_id=project.id))
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert test_db.query(models.Task).count() == 0


def test_relationship_lookups(
    store: SqlAlchemyStore,
    manager_user: models.User,
    member_user: models.User,
    project: models.Project,
    member_task: models.Task,
    label: models.Label,
):
    assert store.owned_project_ids(manager_user.id) == [project.id]
    assert store.assigned_project_ids(member_user.id) == [project.id]
    assert store.project_assignee_ids(project.id) == [member_user.id]
    assert store.labels_in_project(project.id, [label.id, 999]) == [label]
    assert store.user_by_email(member_user.email).id == member_user.id
