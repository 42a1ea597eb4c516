"""
Test configuration and fixtures for the TaskFlow API tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users of every role, projects and tasks
"""

import os
import sys
import logging
from datetime import timedelta
from typing import Generator, Dict

# Configure the app before it is imported: in-memory database, fixed signing key
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from auth.identity import CallerIdentity
from auth.security import hash_password, create_access_token
from storage.sql_store import SqlAlchemyStore

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_PASSWORD = "password123"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def store(test_db: Session) -> SqlAlchemyStore:
    """Store over the test session, for calling operations directly."""
    return SqlAlchemyStore(test_db)


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_user(db: Session, name: str, email: str, role: models.UserRole) -> models.User:
    user = models.User(
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.debug(f"Created {role.value} user {email} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def admin_user(test_db: Session) -> models.User:
    return make_user(test_db, "Admin User", "admin@test.com", models.UserRole.ADMIN)


@pytest.fixture(scope="function")
def manager_user(test_db: Session) -> models.User:
    return make_user(test_db, "Manager User", "manager@test.com", models.UserRole.MANAGER)


@pytest.fixture(scope="function")
def other_manager(test_db: Session) -> models.User:
    return make_user(test_db, "Other Manager", "manager2@test.com", models.UserRole.MANAGER)


@pytest.fixture(scope="function")
def member_user(test_db: Session) -> models.User:
    return make_user(test_db, "Member User", "member@test.com", models.UserRole.MEMBER)


@pytest.fixture(scope="function")
def other_member(test_db: Session) -> models.User:
    return make_user(test_db, "Other Member", "member2@test.com", models.UserRole.MEMBER)


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    token_data = {
        "sub": str(user.id),
        "role": user.role.value,
    }
    return create_access_token(token_data, expires_delta)


def auth_headers_for(user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(user)}"}


def identity_for(user: models.User) -> CallerIdentity:
    return CallerIdentity(user_id=user.id, role=user.role)


@pytest.fixture(scope="function")
def admin_headers(admin_user: models.User) -> Dict[str, str]:
    return auth_headers_for(admin_user)


@pytest.fixture(scope="function")
def manager_headers(manager_user: models.User) -> Dict[str, str]:
    return auth_headers_for(manager_user)


@pytest.fixture(scope="function")
def other_manager_headers(other_manager: models.User) -> Dict[str, str]:
    return auth_headers_for(other_manager)


@pytest.fixture(scope="function")
def member_headers(member_user: models.User) -> Dict[str, str]:
    return auth_headers_for(member_user)


@pytest.fixture(scope="function")
def other_member_headers(other_member: models.User) -> Dict[str, str]:
    return auth_headers_for(other_member)


@pytest.fixture(scope="function")
def project(test_db: Session, manager_user: models.User) -> models.Project:
    """A project owned by manager_user."""
    project = models.Project(name="Manager Project", description="Owned by the manager", owner_id=manager_user.id)
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    return project


@pytest.fixture(scope="function")
def other_project(test_db: Session, other_manager: models.User) -> models.Project:
    """A project owned by other_manager."""
    project = models.Project(name="Other Project", description="Owned by the other manager", owner_id=other_manager.id)
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    return project


def make_task(db: Session, project: models.Project, title: str, assignee: models.User = None, **fields) -> models.Task:
    task = models.Task(
        title=title,
        project_id=project.id,
        assignee_id=assignee.id if assignee else None,
        **fields,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@pytest.fixture(scope="function")
def member_task(test_db: Session, project: models.Project, member_user: models.User) -> models.Task:
    """A task in manager_user's project, assigned to member_user."""
    return make_task(test_db, project, "Member task", assignee=member_user)


@pytest.fixture(scope="function")
def unassigned_task(test_db: Session, project: models.Project) -> models.Task:
    return make_task(test_db, project, "Unassigned task")


@pytest.fixture(scope="function")
def label(test_db: Session, project: models.Project) -> models.Label:
    label = models.Label(name="bug", color="#FF0000", project_id=project.id)
    test_db.add(label)
    test_db.commit()
    test_db.refresh(label)
    return label
