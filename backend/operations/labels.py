"""
Label operations.

Reading labels is inherited from the parent project's visibility; writing
them requires owning the project (or being ADMIN).
"""

import logging

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
from operations.common import label_snapshot, load_or_404, project_snapshot
from scoping import LabelFilters, PageRequest, PageResult, SortSpec, build_scope, fetch_page
from storage.protocols import Store

logger = logging.getLogger(__name__)


def list_labels(
    store: Store, identity: CallerIdentity, filters: LabelFilters, page: PageRequest, sort: SortSpec
) -> PageResult:
    """
    List a project's labels, by name unless another sort is requested.

    Raises:
        NotFound: project is absent or not visible to the caller
    """
    logger.debug(f"User {identity.user_id} listing labels for project {filters.project_id}")
    require_action(identity, Action.LIST, ResourceType.LABEL)

    project = load_or_404(store, models.Project, filters.project_id, "Project")
    require_ownership(identity, project_snapshot(store, project), Action.READ)

    scope = build_scope(identity, ResourceType.LABEL, filters, store)
    return fetch_page(store, models.Label, scope, sort.for_resource(ResourceType.LABEL), page)


def get_label(store: Store, identity: CallerIdentity, label_id: int) -> models.Label:
    logger.debug(f"User {identity.user_id} requesting label {label_id}")
    require_action(identity, Action.READ, ResourceType.LABEL)

    label = load_or_404(store, models.Label, label_id, "Label")
    require_ownership(identity, label_snapshot(store, label), Action.READ)
    return label


def create_label(store: Store, identity: CallerIdentity, payload: schemas.LabelCreate) -> models.Label:
    logger.debug(f"User {identity.user_id} creating label {payload.name} in project {payload.project_id}")
    require_action(identity, Action.CREATE, ResourceType.LABEL)

    project = load_or_404(store, models.Project, payload.project_id, "Project")
    require_parent_project_owner(identity, project_snapshot(store, project), "label")

    label = models.Label(**payload.model_dump())
    with store.transaction():
        store.add(label)
    store.refresh(label)

    logger.info(f"Label created: {label.name} (ID: {label.id}) in project {label.project_id}")
    return label


def update_label(store: Store, identity: CallerIdentity, label_id: int, payload: schemas.LabelUpdate) -> models.Label:
    logger.debug(f"User {identity.user_id} updating label {label_id}")
    require_action(identity, Action.UPDATE, ResourceType.LABEL)

    label = load_or_404(store, models.Label, label_id, "Label")
    require_ownership(identity, label_snapshot(store, label), Action.UPDATE)

    update_data = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    with store.transaction():
        for key, value in update_data.items():
            setattr(label, key, value)
    store.refresh(label)

    logger.info(f"Label {label_id} updated")
    return label


def delete_label(store: Store, identity: CallerIdentity, label_id: int) -> None:
    logger.debug(f"User {identity.user_id} deleting label {label_id}")
    require_action(identity, Action.DELETE, ResourceType.LABEL)

    label = load_or_404(store, models.Label, label_id, "Label")
    require_ownership(identity, label_snapshot(store, label), Action.DELETE)

    with store.transaction():
        store.delete(label)

    logger.info(f"Label {label_id} deleted by user {identity.user_id}")
