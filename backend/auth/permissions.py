"""
Authorization policy: who may do what to which record.

Two layers of checks:
1. Action gate - a static (resource type, action) -> roles table consulted
   before anything is loaded.
2. Ownership predicates - evaluated against a snapshot of an already loaded
   record, because scope for a MANAGER depends on relational facts such as
   project ownership that a plain caller-id filter cannot express.

Comments are the one exception to the role hierarchy: only the author may
update or delete a comment, whatever their role.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from auth.identity import CallerIdentity
from models import UserRole
from operations.errors import Forbidden, NotFound

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    LIST = "list"
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResourceType(str, enum.Enum):
    USER = "user"
    PROJECT = "project"
    TASK = "task"
    LABEL = "label"
    COMMENT = "comment"


ALL_ROLES = frozenset(UserRole)
STAFF = frozenset({UserRole.ADMIN, UserRole.MANAGER})
ADMIN_ONLY = frozenset({UserRole.ADMIN})

ACTION_GATE: Dict[Tuple[ResourceType, Action], FrozenSet[UserRole]] = {
    (ResourceType.USER, Action.LIST): ADMIN_ONLY,
    (ResourceType.USER, Action.READ): ALL_ROLES,
    (ResourceType.USER, Action.CREATE): ADMIN_ONLY,
    (ResourceType.USER, Action.UPDATE): ALL_ROLES,
    (ResourceType.USER, Action.DELETE): ADMIN_ONLY,

    (ResourceType.PROJECT, Action.LIST): ALL_ROLES,
    (ResourceType.PROJECT, Action.READ): ALL_ROLES,
    (ResourceType.PROJECT, Action.CREATE): STAFF,
    (ResourceType.PROJECT, Action.UPDATE): STAFF,
    (ResourceType.PROJECT, Action.DELETE): STAFF,

    (ResourceType.TASK, Action.LIST): ALL_ROLES,
    (ResourceType.TASK, Action.READ): ALL_ROLES,
    (ResourceType.TASK, Action.CREATE): STAFF,
    (ResourceType.TASK, Action.UPDATE): ALL_ROLES,
    (ResourceType.TASK, Action.DELETE): STAFF,

    (ResourceType.LABEL, Action.LIST): ALL_ROLES,
    (ResourceType.LABEL, Action.READ): ALL_ROLES,
    (ResourceType.LABEL, Action.CREATE): STAFF,
    (ResourceType.LABEL, Action.UPDATE): STAFF,
    (ResourceType.LABEL, Action.DELETE): STAFF,

    (ResourceType.COMMENT, Action.LIST): ALL_ROLES,
    (ResourceType.COMMENT, Action.READ): ALL_ROLES,
    (ResourceType.COMMENT, Action.CREATE): ALL_ROLES,
    (ResourceType.COMMENT, Action.UPDATE): ALL_ROLES,
    (ResourceType.COMMENT, Action.DELETE): ALL_ROLES,
}


# ============== Record snapshots ==============


@dataclass(frozen=True)
class UserSnapshot:
    id: int
    role: UserRole


@dataclass(frozen=True)
class ProjectSnapshot:
    id: int
    owner_id: int
    # Distinct assignees of the project's tasks
    assignee_ids: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class TaskSnapshot:
    id: int
    project_id: int
    project_owner_id: int
    assignee_id: Optional[int] = None


@dataclass(frozen=True)
class LabelSnapshot:
    id: int
    project: ProjectSnapshot


@dataclass(frozen=True)
class CommentSnapshot:
    id: int
    author_id: int
    task: TaskSnapshot


# ============== Action gate ==============


def can_perform(role: UserRole, action: Action, resource_type: ResourceType) -> bool:
    """
    Check whether a role may ever perform an action on a resource type.

    Unknown (resource, action) pairs are denied.

    Example:
        >>> can_perform(UserRole.MEMBER, Action.CREATE, ResourceType.TASK)
        False
    """
    return role in ACTION_GATE.get((resource_type, action), frozenset())


def require_action(identity: CallerIdentity, action: Action, resource_type: ResourceType) -> None:
    """
    Raise Forbidden unless the caller's role passes the action gate.

    Raises:
        Forbidden: role may not perform this action on this resource type
    """
    if not can_perform(identity.role, action, resource_type):
        logger.info(
            f"Access denied: user {identity.user_id} has role '{identity.role.value}', "
            f"which cannot {action.value} {resource_type.value} resources"
        )
        raise Forbidden("Insufficient permissions")
    logger.debug(f"Action gate passed: {identity.role.value} may {action.value} {resource_type.value}")


# ============== Ownership predicates ==============


def project_in_scope(identity: CallerIdentity, project: ProjectSnapshot, action: Action = Action.READ) -> bool:
    if identity.is_admin:
        return True
    if action == Action.READ:
        if identity.is_manager and project.owner_id == identity.user_id:
            return True
        return identity.user_id in project.assignee_ids
    # Only the owning manager may change or remove a project
    return identity.is_manager and project.owner_id == identity.user_id


def task_in_scope(identity: CallerIdentity, task: TaskSnapshot, action: Action = Action.READ) -> bool:
    if identity.is_admin:
        return True
    owns_project = identity.is_manager and task.project_owner_id == identity.user_id
    if action == Action.DELETE:
        return owns_project
    return owns_project or task.assignee_id == identity.user_id


def label_in_scope(identity: CallerIdentity, label: LabelSnapshot, action: Action = Action.READ) -> bool:
    if action == Action.READ:
        return project_in_scope(identity, label.project, Action.READ)
    if identity.is_admin:
        return True
    return identity.is_manager and label.project.owner_id == identity.user_id


def comment_in_scope(identity: CallerIdentity, comment: CommentSnapshot, action: Action = Action.READ) -> bool:
    if comment.author_id == identity.user_id:
        return True
    if action == Action.READ:
        return task_in_scope(identity, comment.task, Action.READ)
    # Author only, for every role; ADMIN gets no override here
    return False


def user_in_scope(identity: CallerIdentity, user: UserSnapshot, action: Action = Action.READ) -> bool:
    if action == Action.DELETE:
        return identity.is_admin and user.id != identity.user_id
    return identity.is_admin or user.id == identity.user_id


_PREDICATES: Dict[type, Callable[..., bool]] = {
    ProjectSnapshot: project_in_scope,
    TaskSnapshot: task_in_scope,
    LabelSnapshot: label_in_scope,
    CommentSnapshot: comment_in_scope,
    UserSnapshot: user_in_scope,
}

_NAMES = {
    ProjectSnapshot: "Project",
    TaskSnapshot: "Task",
    LabelSnapshot: "Label",
    CommentSnapshot: "Comment",
    UserSnapshot: "User",
}


def owns_or_is_in_scope(identity: CallerIdentity, snapshot, action: Action = Action.READ) -> bool:
    """
    Evaluate the per-record ownership predicate for a loaded record.

    Args:
        identity: The caller
        snapshot: One of the *Snapshot types above
        action: What the caller is trying to do with the record

    Returns:
        True if the caller may perform `action` on this record
    """
    predicate = _PREDICATES.get(type(snapshot))
    if predicate is None:
        raise TypeError(f"No ownership predicate for {type(snapshot).__name__}")
    return predicate(identity, snapshot, action)


def require_ownership(identity: CallerIdentity, snapshot, action: Action = Action.READ) -> None:
    """
    Require the caller to be allowed `action` on a loaded record.

    A record outside the caller's read scope is reported as missing so its
    existence is not confirmed; a visible record the caller may not change
    is reported as forbidden.

    Raises:
        NotFound: record is not visible to the caller
        Forbidden: record is visible but `action` is not allowed
    """
    name = _NAMES.get(type(snapshot), "Resource")

    if not owns_or_is_in_scope(identity, snapshot, Action.READ):
        logger.info(
            f"User {identity.user_id} has no access to {name.lower()} {snapshot.id}, returning 404"
        )
        raise NotFound(f"{name} not found")

    if action != Action.READ and not owns_or_is_in_scope(identity, snapshot, action):
        logger.info(
            f"User {identity.user_id} ({identity.role.value}) may not {action.value} "
            f"{name.lower()} {snapshot.id}"
        )
        if isinstance(snapshot, CommentSnapshot):
            raise Forbidden(f"You can only {action.value} your own comments")
        raise Forbidden(f"Insufficient permissions to {action.value} this {name.lower()}")

    logger.debug(f"Ownership check passed for user {identity.user_id} on {name.lower()} {snapshot.id}")


def require_parent_project_owner(identity: CallerIdentity, project: ProjectSnapshot, child: str) -> None:
    """
    Require a MANAGER creating a child record to own the parent project.

    The parent's existence has already been established, so the denial is
    reported as Forbidden.

    Raises:
        Forbidden: caller is a MANAGER who does not own the project
    """
    if identity.is_admin:
        return
    if identity.is_manager and project.owner_id == identity.user_id:
        return
    logger.info(
        f"User {identity.user_id} cannot create {child} in project {project.id} "
        f"owned by user {project.owner_id}"
    )
    raise Forbidden(f"You can only create {child}s in your own projects")
