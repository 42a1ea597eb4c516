"""
Identity context for a single operation.

A CallerIdentity is built once per request from an already verified token
payload and passed read-only to the policy, the scoper and the operations.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from models import UserRole
from operations.errors import Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Who is calling: immutable (user id, role) pair."""

    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER

    @property
    def is_member(self) -> bool:
        return self.role == UserRole.MEMBER


def identity_from_payload(
    payload: Optional[Dict[str, Any]],
    lookup_role: Callable[[int], Optional[UserRole]],
) -> CallerIdentity:
    """
    Resolve the caller from a verified JWT payload.

    Args:
        payload: Decoded token claims, or None if verification failed
        lookup_role: Returns the stored role for a user id, or None if the
            user no longer exists. The stored role wins over the token claim.

    Returns:
        CallerIdentity for the duration of one operation

    Raises:
        Unauthenticated: missing/invalid token, wrong token type, malformed
            subject, or unknown user
    """
    if payload is None:
        logger.info("JWT token verification failed")
        raise Unauthenticated("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise Unauthenticated("Invalid token type. Use access token for API requests.")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        logger.info(f"Invalid user_id format in token: {subject}")
        raise Unauthenticated("Invalid token payload")

    role = lookup_role(user_id)
    if role is None:
        logger.info(f"User not found for id: {user_id}")
        raise Unauthenticated("User not found")

    logger.debug(f"Caller resolved: user {user_id} with role {role.value}")
    return CallerIdentity(user_id=user_id, role=UserRole(role))
