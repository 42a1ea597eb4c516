"""
Authentication API endpoints.

This module provides REST API endpoints for:
- Self-service registration (always as MEMBER)
- Login with email and password
- Reading the authenticated user's profile
"""

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import schemas
from database import get_db
from models import User, UserRole
from auth.security import hash_password, verify_password, create_access_token
from auth.dependencies import get_current_user
from operations.errors import Conflict, Unauthenticated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request/Response schemas
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: schemas.User


@router.post("/register", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new account.

    Self-registered accounts are always MEMBERs; other roles are assigned by
    an ADMIN through the users API.

    Raises:
        Conflict: email already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    if db.query(User).filter(User.email == request.email).first():
        logger.info(f"Registration failed: email already exists: {request.email}")
        raise Conflict("Email already registered")

    new_user = User(
        name=request.name,
        email=request.email,
        role=UserRole.MEMBER,
        password_hash=hash_password(request.password),
    )
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email
        db.rollback()
        raise Conflict("Email already registered")
    db.refresh(new_user)

    logger.info(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return new_user


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Exchange email and password for an access token.

    Raises:
        Unauthenticated: unknown email or wrong password (same message for both)
    """
    logger.info(f"Login attempt for email: {request.email}")

    user = db.query(User).filter(User.email == request.email).first()
    if user is None or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed for email: {request.email}")
        raise Unauthenticated("Invalid email or password")

    access_token = create_access_token({"sub": str(user.id), "role": user.role.value})

    logger.info(f"User logged in successfully: {user.email}")
    return TokenResponse(access_token=access_token, user=schemas.User.model_validate(user))


@router.get("/me", response_model=schemas.User)
def get_me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's profile."""
    return current_user
