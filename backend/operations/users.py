"""
User operations.

Any caller may read and edit their own profile. Listing, creating and
deleting accounts is ADMIN-only. Role is never changed through an update.
"""

import logging

import models
import schemas
from auth.identity import CallerIdentity
from auth.permissions import Action, ResourceType, require_action, require_ownership
from auth.security import hash_password
from operations.common import load_or_404, user_snapshot
from operations.errors import Conflict, Forbidden
from scoping import Condition, Op, PageRequest, PageResult, SortSpec, UserFilters, build_scope, fetch_page
from storage.protocols import Store

logger = logging.getLogger(__name__)


def list_users(store: Store, identity: CallerIdentity, filters: UserFilters, page: PageRequest, sort: SortSpec) -> PageResult:
    logger.debug(f"User {identity.user_id} listing users: {filters}")
    require_action(identity, Action.LIST, ResourceType.USER)

    scope = build_scope(identity, ResourceType.USER, filters, store)
    return fetch_page(store, models.User, scope, sort.for_resource(ResourceType.USER), page)


def get_user(store: Store, identity: CallerIdentity, user_id: int) -> models.User:
    logger.debug(f"User {identity.user_id} requesting user {user_id}")
    require_action(identity, Action.READ, ResourceType.USER)

    user = load_or_404(store, models.User, user_id, "User")
    require_ownership(identity, user_snapshot(user), Action.READ)
    return user


def _require_unique_email(store: Store, email: str, current_id: int = None) -> None:
    existing = store.user_by_email(email)
    if existing is not None and existing.id != current_id:
        logger.info(f"Email already registered: {email}")
        raise Conflict("Email already registered")


def create_user(store: Store, identity: CallerIdentity, payload: schemas.UserCreate) -> models.User:
    """Create an account with any role. ADMIN only."""
    logger.debug(f"User {identity.user_id} creating user {payload.email} with role {payload.role.value}")
    require_action(identity, Action.CREATE, ResourceType.USER)
    _require_unique_email(store, payload.email)

    user = models.User(
        name=payload.name,
        email=payload.email,
        role=payload.role,
        avatar=payload.avatar,
        password_hash=hash_password(payload.password),
    )
    with store.transaction():
        store.add(user)
    store.refresh(user)

    logger.info(f"User created: {user.email} (ID: {user.id}, role: {user.role.value})")
    return user


def update_user(store: Store, identity: CallerIdentity, user_id: int, payload: schemas.UserUpdate) -> models.User:
    logger.debug(f"User {identity.user_id} updating user {user_id}")
    require_action(identity, Action.UPDATE, ResourceType.USER)

    user = load_or_404(store, models.User, user_id, "User")
    require_ownership(identity, user_snapshot(user), Action.UPDATE)

    update_data = payload.model_dump(exclude_unset=True)
    for name in ("name", "email", "password"):
        if name in update_data and update_data[name] is None:
            update_data.pop(name)

    if "email" in update_data:
        _require_unique_email(store, update_data["email"], current_id=user.id)
    if "password" in update_data:
        update_data["password_hash"] = hash_password(update_data.pop("password"))

    with store.transaction():
        for key, value in update_data.items():
            setattr(user, key, value)
    store.refresh(user)

    logger.info(f"User {user_id} updated")
    return user


def delete_user(store: Store, identity: CallerIdentity, user_id: int) -> None:
    """
    Delete an account. ADMIN only.

    Raises:
        Forbidden: an admin tries to delete themselves
        Conflict: the user is the last ADMIN, or still owns projects
    """
    logger.debug(f"User {identity.user_id} deleting user {user_id}")
    require_action(identity, Action.DELETE, ResourceType.USER)

    user = load_or_404(store, models.User, user_id, "User")
    if user.id == identity.user_id:
        logger.info(f"User {identity.user_id} attempted to delete their own account")
        raise Forbidden("Cannot delete your own account")
    require_ownership(identity, user_snapshot(user), Action.DELETE)

    if user.role == models.UserRole.ADMIN:
        admins = store.count(models.User, Condition("role", Op.EQ, models.UserRole.ADMIN))
        if admins <= 1:
            logger.info(f"Refusing to delete last admin {user_id}")
            raise Conflict("Cannot delete the last admin")

    if store.owned_project_ids(user.id):
        logger.info(f"Refusing to delete user {user_id}: still owns projects")
        raise Conflict("User still owns projects; delete or reassign them first")

    with store.transaction():
        store.delete(user)

    logger.info(f"User {user_id} deleted by admin {identity.user_id}")
