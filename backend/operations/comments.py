"""
Comment operations.

Any caller who can see a task may comment on it. Editing and deleting are
reserved to the comment's author, whatever their role.
"""

import logging

import models
import schemas
from auth.identity import CallerIdentity
from auth.permissions import Action, ResourceType, require_action, require_ownership
from operations.common import comment_snapshot, load_or_404, task_snapshot
from scoping import CommentFilters, PageRequest, PageResult, SortSpec, build_scope, fetch_page
from storage.protocols import Store

logger = logging.getLogger(__name__)


def list_comments(
    store: Store, identity: CallerIdentity, filters: CommentFilters, page: PageRequest, sort: SortSpec
) -> PageResult:
    """List comments on a task the caller can see, newest first by default."""
    logger.debug(f"User {identity.user_id} listing comments for task {filters.task_id}")
    require_action(identity, Action.LIST, ResourceType.COMMENT)

    task = load_or_404(store, models.Task, filters.task_id, "Task")
    require_ownership(identity, task_snapshot(task), Action.READ)

    scope = build_scope(identity, ResourceType.COMMENT, filters, store)
    return fetch_page(store, models.Comment, scope, sort.for_resource(ResourceType.COMMENT), page)


def get_comment(store: Store, identity: CallerIdentity, comment_id: int) -> models.Comment:
    require_action(identity, Action.READ, ResourceType.COMMENT)

    comment = load_or_404(store, models.Comment, comment_id, "Comment")
    require_ownership(identity, comment_snapshot(comment), Action.READ)
    return comment


def create_comment(store: Store, identity: CallerIdentity, payload: schemas.CommentCreate) -> models.Comment:
    """Post a comment as the caller on a task visible to them."""
    logger.debug(f"User {identity.user_id} creating comment on task {payload.task_id}")
    require_action(identity, Action.CREATE, ResourceType.COMMENT)

    task = load_or_404(store, models.Task, payload.task_id, "Task")
    require_ownership(identity, task_snapshot(task), Action.READ)

    # Author is always the authenticated caller
    comment = models.Comment(content=payload.content, task_id=task.id, author_id=identity.user_id)
    with store.transaction():
        store.add(comment)
    store.refresh(comment)

    logger.info(f"Comment {comment.id} added to task {task.id} by user {identity.user_id}")
    return comment


def update_comment(
    store: Store, identity: CallerIdentity, comment_id: int, payload: schemas.CommentUpdate
) -> models.Comment:
    logger.debug(f"User {identity.user_id} updating comment {comment_id}")
    require_action(identity, Action.UPDATE, ResourceType.COMMENT)

    comment = load_or_404(store, models.Comment, comment_id, "Comment")
    require_ownership(identity, comment_snapshot(comment), Action.UPDATE)

    with store.transaction():
        comment.content = payload.content
    store.refresh(comment)
    return comment


def delete_comment(store: Store, identity: CallerIdentity, comment_id: int) -> None:
    logger.debug(f"User {identity.user_id} deleting comment {comment_id}")
    require_action(identity, Action.DELETE, ResourceType.COMMENT)

    comment = load_or_404(store, models.Comment, comment_id, "Comment")
    require_ownership(identity, comment_snapshot(comment), Action.DELETE)

    with store.transaction():
        store.delete(comment)

    logger.info(f"Comment {comment_id} deleted by user {identity.user_id}")
