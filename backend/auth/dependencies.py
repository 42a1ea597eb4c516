"""
FastAPI dependencies for authentication.

This module provides dependency functions that route handlers use to:
- Open a request-scoped Store over the database session
- Resolve the caller's identity from a JWT bearer token
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from auth.identity import CallerIdentity, identity_from_payload
from auth.security import verify_token
from database import get_db
from models import User
from operations.errors import Unauthenticated
from storage.sql_store import SqlAlchemyStore

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyStore:
    """Wrap the request's session in the Store the operations consume."""
    return SqlAlchemyStore(db)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> CallerIdentity:
    """
    Resolve the CallerIdentity for this request from its bearer token.

    The role is read from the stored user rather than trusted from the token,
    so a demoted user loses access as soon as their record changes.

    Returns:
        CallerIdentity for the authenticated caller

    Raises:
        Unauthenticated: no bearer token, or the token does not resolve to a user

    Example:
        @app.get("/api/protected")
        async def protected_route(identity: CallerIdentity = Depends(get_current_identity)):
            return {"user_id": identity.user_id}
    """
    if credentials is None or not credentials.credentials:
        logger.info("No authentication credentials provided")
        raise Unauthenticated("Not authenticated")

    def lookup_role(user_id: int):
        user = db.get(User, user_id)
        return user.role if user is not None else None

    payload = verify_token(credentials.credentials)
    return identity_from_payload(payload, lookup_role)


async def get_current_user(
    identity: CallerIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> User:
    """The authenticated caller's full user record."""
    user = db.get(User, identity.user_id)
    if user is None:
        raise Unauthenticated("User not found")
    return user
