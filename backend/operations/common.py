"""
Helpers shared by the resource operation modules: loading records and
building the snapshots the ownership predicates evaluate.
"""

import logging
from typing import Any, Type

import models
from auth.permissions import CommentSnapshot, LabelSnapshot, ProjectSnapshot, TaskSnapshot, UserSnapshot
from operations.errors import NotFound
from storage.protocols import Store

logger = logging.getLogger(__name__)


def load_or_404(store: Store, model: Type[Any], record_id: int, name: str) -> Any:
    """
    Fetch a record by id without any scoping.

    Raises:
        NotFound: no record with this id
    """
    record = store.get(model, record_id)
    if record is None:
        logger.info(f"{name} {record_id} not found")
        raise NotFound(f"{name} not found")
    return record


def project_snapshot(store: Store, project: models.Project) -> ProjectSnapshot:
    return ProjectSnapshot(
        id=project.id,
        owner_id=project.owner_id,
        assignee_ids=frozenset(store.project_assignee_ids(project.id)),
    )


def task_snapshot(task: models.Task) -> TaskSnapshot:
    return TaskSnapshot(
        id=task.id,
        project_id=task.project_id,
        project_owner_id=task.project.owner_id,
        assignee_id=task.assignee_id,
    )


def label_snapshot(store: Store, label: models.Label) -> LabelSnapshot:
    return LabelSnapshot(id=label.id, project=project_snapshot(store, label.project))


def comment_snapshot(comment: models.Comment) -> CommentSnapshot:
    return CommentSnapshot(id=comment.id, author_id=comment.author_id, task=task_snapshot(comment.task))


def user_snapshot(user: models.User) -> UserSnapshot:
    return UserSnapshot(id=user.id, role=user.role)
