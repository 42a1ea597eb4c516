"""Project operations."""

import logging

import models
import schemas
from auth.identity import CallerIdentity
from auth.permissions import Action, ResourceType, require_action, require_ownership
from operations.common import load_or_404, project_snapshot
from scoping import PageRequest, PageResult, ProjectFilters, SortSpec, TaskFilters, build_scope, fetch_page
from storage.protocols import Store

logger = logging.getLogger(__name__)


def _with_visible_tasks(
    store: Store, identity: CallerIdentity, project: models.Project, include_tasks: bool = False
) -> models.Project:
    """
    Attach the caller's view of a project's tasks.

    task_count (and the task list, when requested) go through the same task
    scope as the task list, so a MEMBER seeing a project through one assigned
    task learns nothing about the project's other tasks.
    """
    scope = build_scope(identity, ResourceType.TASK, TaskFilters(project_id=project.id), store)
    project.task_count = store.count(models.Task, scope)
    if include_tasks:
        project.visible_tasks = store.find(models.Task, scope, order=SortSpec())
    return project


def list_projects(
    store: Store, identity: CallerIdentity, filters: ProjectFilters, page: PageRequest, sort: SortSpec
) -> PageResult:
    """List projects visible to the caller."""
    logger.debug(f"User {identity.user_id} listing projects: {filters}")
    require_action(identity, Action.LIST, ResourceType.PROJECT)

    scope = build_scope(identity, ResourceType.PROJECT, filters, store)
    result = fetch_page(store, models.Project, scope, sort.for_resource(ResourceType.PROJECT), page)
    for project in result.items:
        _with_visible_tasks(store, identity, project)

    logger.info(f"User {identity.user_id} retrieved {len(result.items)} of {result.total} projects")
    return result


def get_project(store: Store, identity: CallerIdentity, project_id: int) -> models.Project:
    logger.debug(f"User {identity.user_id} requesting project {project_id}")
    require_action(identity, Action.READ, ResourceType.PROJECT)

    project = load_or_404(store, models.Project, project_id, "Project")
    require_ownership(identity, project_snapshot(store, project), Action.READ)
    return _with_visible_tasks(store, identity, project, include_tasks=True)


def create_project(store: Store, identity: CallerIdentity, payload: schemas.ProjectCreate) -> models.Project:
    """Create a project owned by the caller."""
    logger.debug(f"User {identity.user_id} creating project: {payload.name}")
    require_action(identity, Action.CREATE, ResourceType.PROJECT)

    # Owner is always the authenticated caller
    project = models.Project(**payload.model_dump(), owner_id=identity.user_id)
    with store.transaction():
        store.add(project)
    store.refresh(project)

    logger.info(f"Project created: {project.name} (ID: {project.id}) by user {identity.user_id}")
    return _with_visible_tasks(store, identity, project)


def update_project(
    store: Store, identity: CallerIdentity, project_id: int, payload: schemas.ProjectUpdate
) -> models.Project:
    logger.debug(f"User {identity.user_id} updating project {project_id}")
    require_action(identity, Action.UPDATE, ResourceType.PROJECT)

    project = load_or_404(store, models.Project, project_id, "Project")
    require_ownership(identity, project_snapshot(store, project), Action.UPDATE)

    update_data = payload.model_dump(exclude_unset=True)
    # Name is required and cannot be cleared
    if "name" in update_data and update_data["name"] is None:
        update_data.pop("name")

    with store.transaction():
        for key, value in update_data.items():
            setattr(project, key, value)
    store.refresh(project)

    logger.info(f"Project updated: {project.name} (ID: {project_id})")
    return _with_visible_tasks(store, identity, project)


def delete_project(store: Store, identity: CallerIdentity, project_id: int) -> None:
    """Delete a project together with its tasks and labels."""
    logger.debug(f"User {identity.user_id} deleting project {project_id}")
    require_action(identity, Action.DELETE, ResourceType.PROJECT)

    project = load_or_404(store, models.Project, project_id, "Project")
    require_ownership(identity, project_snapshot(store, project), Action.DELETE)

    with store.transaction():
        store.delete(project)

    logger.info(f"Project {project_id} deleted by user {identity.user_id}")
