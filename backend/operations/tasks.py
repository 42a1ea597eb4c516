"""
Task operations.

Label associations are written in the same transaction as the task itself:
on create the task and its links are inserted together, and on update a
supplied label list replaces the existing set wholesale.
"""

import logging
from typing import List, Optional

import models
import schemas
from auth.identity import CallerIdentity
from auth.permissions import (
    Action,
    ResourceType,
    require_action,
    require_ownership,
    require_parent_project_owner,
)
from operations.common import load_or_404, project_snapshot, task_snapshot
from operations.errors import NotFound
from scoping import PageRequest, PageResult, SortSpec, TaskFilters, build_scope, fetch_page
from storage.protocols import Store
from time_utils import as_utc

logger = logging.getLogger(__name__)

# Columns that may not be cleared by sending null
_REQUIRED_FIELDS = ("title", "status", "priority")


def _resolve_labels(store: Store, project_id: int, label_ids: Optional[List[int]]) -> List[models.Label]:
    """
    Load the labels for `label_ids`, all of which must belong to the project.

    Raises:
        NotFound: an id is unknown or belongs to another project
    """
    if not label_ids:
        return []
    wanted = set(label_ids)
    labels = store.labels_in_project(project_id, wanted)
    if len(labels) != len(wanted):
        missing = sorted(wanted - {label.id for label in labels})
        logger.info(f"Labels {missing} not found in project {project_id}")
        raise NotFound(f"Label(s) {missing} not found in this project")
    return labels


def _require_assignee(store: Store, assignee_id: Optional[int]) -> None:
    if assignee_id is None:
        return
    if store.get(models.User, assignee_id) is None:
        logger.info(f"Assignee {assignee_id} not found")
        raise NotFound(f"Assignee with ID {assignee_id} not found")


def list_tasks(
    store: Store, identity: CallerIdentity, filters: TaskFilters, page: PageRequest, sort: SortSpec
) -> PageResult:
    """List tasks visible to the caller, filtered, sorted and paged."""
    logger.debug(f"User {identity.user_id} listing tasks: {filters}, sort={sort}, page={page}")
    require_action(identity, Action.LIST, ResourceType.TASK)

    scope = build_scope(identity, ResourceType.TASK, filters, store)
    result = fetch_page(store, models.Task, scope, sort.for_resource(ResourceType.TASK), page)

    logger.info(f"list_tasks completed successfully: returned {len(result.items)} of {result.total} tasks")
    return result


def get_task(store: Store, identity: CallerIdentity, task_id: int) -> models.Task:
    logger.debug(f"User {identity.user_id} requesting task {task_id}")
    require_action(identity, Action.READ, ResourceType.TASK)

    task = load_or_404(store, models.Task, task_id, "Task")
    require_ownership(identity, task_snapshot(task), Action.READ)
    return task


def create_task(store: Store, identity: CallerIdentity, payload: schemas.TaskCreate) -> models.Task:
    """Create a task in a project the caller manages."""
    logger.info(f"User {identity.user_id} creating task: {payload.title} in project {payload.project_id}")
    require_action(identity, Action.CREATE, ResourceType.TASK)

    project = load_or_404(store, models.Project, payload.project_id, "Project")
    require_parent_project_owner(identity, project_snapshot(store, project), "task")

    _require_assignee(store, payload.assignee_id)
    labels = _resolve_labels(store, project.id, payload.label_ids)

    task_data = payload.model_dump(exclude={"label_ids"})
    if task_data["due_date"] is not None:
        task_data["due_date"] = as_utc(task_data["due_date"])

    task = models.Task(**task_data)
    task.labels = labels
    with store.transaction():
        store.add(task)
    store.refresh(task)

    logger.info(f"Task created successfully: id={task.id} with {len(labels)} label(s)")
    return task


def update_task(store: Store, identity: CallerIdentity, task_id: int, payload: schemas.TaskUpdate) -> models.Task:
    """Apply a partial update; only supplied fields change."""
    logger.info(f"User {identity.user_id} updating task {task_id}")
    require_action(identity, Action.UPDATE, ResourceType.TASK)

    task = load_or_404(store, models.Task, task_id, "Task")
    require_ownership(identity, task_snapshot(task), Action.UPDATE)

    update_data = payload.model_dump(exclude_unset=True)
    label_ids = update_data.pop("label_ids", None)
    for name in _REQUIRED_FIELDS:
        if name in update_data and update_data[name] is None:
            update_data.pop(name)

    if "assignee_id" in update_data:
        _require_assignee(store, update_data["assignee_id"])
    if update_data.get("due_date") is not None:
        update_data["due_date"] = as_utc(update_data["due_date"])
    labels = _resolve_labels(store, task.project_id, label_ids) if label_ids is not None else None

    with store.transaction():
        for key, value in update_data.items():
            setattr(task, key, value)
        if labels is not None:
            task.labels = labels
    store.refresh(task)

    logger.info(f"Task {task_id} updated successfully")
    return task


def delete_task(store: Store, identity: CallerIdentity, task_id: int) -> None:
    """Delete a task with its comments, attachments and label links."""
    logger.debug(f"User {identity.user_id} deleting task {task_id}")
    require_action(identity, Action.DELETE, ResourceType.TASK)

    task = load_or_404(store, models.Task, task_id, "Task")
    require_ownership(identity, task_snapshot(task), Action.DELETE)

    with store.transaction():
        store.delete(task)

    logger.info(f"Task {task_id} deleted by user {identity.user_id}")
