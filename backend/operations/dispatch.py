"""
Narrow, transport-independent operation interface.

    list_resources(resource_type, store, identity, filters, page, sort)
    get_resource(resource_type, store, identity, record_id)
    create_resource(resource_type, store, identity, payload)
    update_resource(resource_type, store, identity, record_id, payload)
    delete_resource(resource_type, store, identity, record_id)

Each call is routed to the per-resource module registered below. Typed
OperationError outcomes pass through unchanged; storage failures are turned
into InternalError (or Conflict for unique-constraint violations) after the
session has been rolled back.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.identity import CallerIdentity
from auth.permissions import ResourceType
from operations import comments, dashboard, labels, projects, tasks, users
from operations.errors import Conflict, InternalError
from scoping import PageRequest, PageResult, SortSpec
from storage.protocols import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceHandlers:
    list: Callable[..., PageResult]
    get: Callable[..., Any]
    create: Callable[..., Any]
    update: Callable[..., Any]
    delete: Callable[..., None]


REGISTRY: Dict[ResourceType, ResourceHandlers] = {
    ResourceType.USER: ResourceHandlers(
        users.list_users, users.get_user, users.create_user, users.update_user, users.delete_user
    ),
    ResourceType.PROJECT: ResourceHandlers(
        projects.list_projects,
        projects.get_project,
        projects.create_project,
        projects.update_project,
        projects.delete_project,
    ),
    ResourceType.TASK: ResourceHandlers(
        tasks.list_tasks, tasks.get_task, tasks.create_task, tasks.update_task, tasks.delete_task
    ),
    ResourceType.LABEL: ResourceHandlers(
        labels.list_labels, labels.get_label, labels.create_label, labels.update_label, labels.delete_label
    ),
    ResourceType.COMMENT: ResourceHandlers(
        comments.list_comments,
        comments.get_comment,
        comments.create_comment,
        comments.update_comment,
        comments.delete_comment,
    ),
}


@contextmanager
def _operation_boundary(store: Store, description: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as e:
        store.rollback()
        if "unique" in str(e.orig).lower():
            logger.info(f"{description} violated a unique constraint: {e.orig}")
            raise Conflict("Resource already exists") from e
        logger.exception(f"{description} failed with an integrity error")
        raise InternalError() from e
    except SQLAlchemyError as e:
        store.rollback()
        logger.exception(f"{description} failed with a storage error")
        raise InternalError() from e


def _handlers(resource_type: ResourceType) -> ResourceHandlers:
    try:
        return REGISTRY[resource_type]
    except KeyError:
        raise ValueError(f"No operations registered for {resource_type}")


def list_resources(
    resource_type: ResourceType,
    store: Store,
    identity: CallerIdentity,
    filters,
    page: PageRequest = PageRequest(),
    sort: SortSpec = SortSpec(),
) -> PageResult:
    with _operation_boundary(store, f"list {resource_type.value}"):
        return _handlers(resource_type).list(store, identity, filters, page, sort)


def get_resource(resource_type: ResourceType, store: Store, identity: CallerIdentity, record_id: int) -> Any:
    with _operation_boundary(store, f"get {resource_type.value} {record_id}"):
        return _handlers(resource_type).get(store, identity, record_id)


def create_resource(resource_type: ResourceType, store: Store, identity: CallerIdentity, payload) -> Any:
    with _operation_boundary(store, f"create {resource_type.value}"):
        return _handlers(resource_type).create(store, identity, payload)


def update_resource(resource_type: ResourceType, store: Store, identity: CallerIdentity, record_id: int, payload) -> Any:
    with _operation_boundary(store, f"update {resource_type.value} {record_id}"):
        return _handlers(resource_type).update(store, identity, record_id, payload)


def delete_resource(resource_type: ResourceType, store: Store, identity: CallerIdentity, record_id: int) -> None:
    with _operation_boundary(store, f"delete {resource_type.value} {record_id}"):
        _handlers(resource_type).delete(store, identity, record_id)


def dashboard_stats(store: Store, identity: CallerIdentity) -> Dict[str, Any]:
    with _operation_boundary(store, "dashboard stats"):
        return dashboard.get_dashboard_stats(store, identity)
