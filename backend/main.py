from fastapi import FastAPI, Depends, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Any, List, Optional
from datetime import datetime
import logging
import os

from database import engine, Base, SessionLocal
import models
import schemas
from time_utils import as_utc
from auth.routes import router as auth_router
from auth.dependencies import get_current_identity, get_store
from auth.identity import CallerIdentity
from auth.permissions import ResourceType
from auth.security import hash_password, is_production_like
from operations import dispatch
from operations.errors import InternalError, OperationError, Unauthenticated
from scoping import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    CommentFilters,
    LabelFilters,
    PageRequest,
    PageResult,
    ProjectFilters,
    SortDirection,
    SortField,
    SortSpec,
    TaskFilters,
    UserFilters,
)
from storage.sql_store import SqlAlchemyStore

# Configure logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
    if origin.strip()
]

app = FastAPI(
    title="TaskFlow API",
    description="Role-based task management: projects, tasks, labels and comments",
    version="1.0.0"
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register authentication router
app.include_router(auth_router)


# ============== Error mapping ==============

@app.exception_handler(OperationError)
async def operation_error_handler(request: Request, exc: OperationError):
    """Translate typed operation outcomes into JSON error responses."""
    detail = exc.message
    if isinstance(exc, InternalError) and is_production_like():
        detail = InternalError.default_message

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": InternalError.default_message},
    )


# ============== Startup ==============

@app.on_event("startup")
def init_database():
    """
    Create tables and make sure at least one ADMIN exists.

    The bootstrap admin comes from ADMIN_EMAIL / ADMIN_PASSWORD. Without an
    ADMIN_PASSWORD nothing is seeded, since self-registration only creates
    MEMBERs.
    """
    Base.metadata.create_all(bind=engine)

    admin_email = os.environ.get("ADMIN_EMAIL", "admin@example.com")
    admin_password = os.environ.get("ADMIN_PASSWORD")
    if not admin_password:
        logger.info("ADMIN_PASSWORD not set, skipping admin bootstrap")
        return
    if len(admin_password.strip()) < 8:
        logger.error("ADMIN_PASSWORD must be at least 8 characters long, skipping admin bootstrap")
        return

    db = SessionLocal()
    try:
        if db.query(models.User).filter(models.User.role == models.UserRole.ADMIN).first():
            logger.info("Admin user already exists")
            return
        admin = models.User(
            name="Admin",
            email=admin_email,
            role=models.UserRole.ADMIN,
            password_hash=hash_password(admin_password),
        )
        db.add(admin)
        db.commit()
        logger.warning(f"Bootstrap admin created: {admin_email}")
    finally:
        db.close()


# ============== Helpers ==============

def _sort(sort_by: SortField, sort_order: SortDirection) -> SortSpec:
    return SortSpec(field=sort_by, direction=sort_order)


def _page_response(result: PageResult, item_schema) -> dict:
    return {
        "data": [item_schema.model_validate(item) for item in result.items],
        "meta": {
            "page": result.page,
            "limit": result.page_size,
            "total": result.total,
            "total_pages": result.total_pages,
        },
    }


def _deleted() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Users ==============

@app.get("/api/users", response_model=schemas.Page[schemas.User])
def list_users(
    search: Optional[str] = Query(None, description="Case-insensitive match on name or email"),
    role: Optional[models.UserRole] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: SortField = Query(SortField.createdAt),
    sort_order: SortDirection = Query(SortDirection.desc),
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """List users (admin only)."""
    result = dispatch.list_resources(
        ResourceType.USER,
        store,
        identity,
        UserFilters(search=search, role=role),
        PageRequest(page, limit),
        _sort(sort_by, sort_order),
    )
    return _page_response(result, schemas.User)


@app.post("/api/users", response_model=schemas.User, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: schemas.UserCreate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Create a user with any role (admin only)."""
    return dispatch.create_resource(ResourceType.USER, store, identity, user_data)


@app.get("/api/users/{user_id}", response_model=schemas.User)
def get_user(
    user_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Get user by ID (admin or self)."""
    return dispatch.get_resource(ResourceType.USER, store, identity, user_id)


@app.put("/api/users/{user_id}", response_model=schemas.User)
def update_user(
    user_id: int,
    user_update: schemas.UserUpdate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Update profile fields (admin or self). Role cannot be changed here."""
    return dispatch.update_resource(ResourceType.USER, store, identity, user_id, user_update)


@app.delete("/api/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Delete user (admin only)."""
    dispatch.delete_resource(ResourceType.USER, store, identity, user_id)
    return _deleted()


# ============== Projects ==============

@app.get("/api/projects", response_model=schemas.Page[schemas.Project])
def list_projects(
    search: Optional[str] = Query(None, description="Case-insensitive match on name or description"),
    owner_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: SortField = Query(SortField.createdAt),
    sort_order: SortDirection = Query(SortDirection.desc),
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """List projects visible to the caller."""
    result = dispatch.list_resources(
        ResourceType.PROJECT,
        store,
        identity,
        ProjectFilters(search=search, owner_id=owner_id),
        PageRequest(page, limit),
        _sort(sort_by, sort_order),
    )
    return _page_response(result, schemas.Project)


@app.post("/api/projects", response_model=schemas.Project, status_code=status.HTTP_201_CREATED)
def create_project(
    project: schemas.ProjectCreate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.create_resource(ResourceType.PROJECT, store, identity, project)


@app.get("/api/projects/{project_id}", response_model=schemas.ProjectDetail)
def get_project(
    project_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Get a project with its tasks (newest first) and labels."""
    return dispatch.get_resource(ResourceType.PROJECT, store, identity, project_id)


@app.put("/api/projects/{project_id}", response_model=schemas.Project)
def update_project(
    project_id: int,
    project_update: schemas.ProjectUpdate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.update_resource(ResourceType.PROJECT, store, identity, project_id, project_update)


@app.delete("/api/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Delete a project along with its tasks and labels."""
    dispatch.delete_resource(ResourceType.PROJECT, store, identity, project_id)
    return _deleted()


# ============== Tasks ==============

@app.get("/api/tasks", response_model=schemas.Page[schemas.Task])
def list_tasks(
    status_filter: Optional[models.TaskStatus] = Query(None, alias="status"),
    priority: Optional[models.TaskPriority] = Query(None),
    assignee_id: Optional[int] = Query(None),
    project_id: Optional[int] = Query(None),
    label_ids: Optional[List[int]] = Query(None, description="Tasks carrying any of these labels"),
    search: Optional[str] = Query(None, description="Case-insensitive match on title or description"),
    start_date: Optional[datetime] = Query(None, description="Due on or after"),
    end_date: Optional[datetime] = Query(None, description="Due on or before"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: SortField = Query(SortField.createdAt),
    sort_order: SortDirection = Query(SortDirection.desc),
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """List tasks visible to the caller (members see only tasks assigned to them)."""
    filters = TaskFilters(
        status=status_filter,
        priority=priority,
        assignee_id=assignee_id,
        project_id=project_id,
        label_ids=tuple(label_ids or ()),
        search=search,
        start_date=as_utc(start_date) if start_date else None,
        end_date=as_utc(end_date) if end_date else None,
    )
    result = dispatch.list_resources(
        ResourceType.TASK, store, identity, filters, PageRequest(page, limit), _sort(sort_by, sort_order)
    )
    return _page_response(result, schemas.Task)


@app.post("/api/tasks", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
def create_task(
    task: schemas.TaskCreate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.create_resource(ResourceType.TASK, store, identity, task)


@app.get("/api/tasks/{task_id}", response_model=schemas.TaskDetail)
def get_task(
    task_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Get a task with its labels, comments and attachments."""
    return dispatch.get_resource(ResourceType.TASK, store, identity, task_id)


@app.put("/api/tasks/{task_id}", response_model=schemas.Task)
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.update_resource(ResourceType.TASK, store, identity, task_id, task_update)


@app.delete("/api/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    dispatch.delete_resource(ResourceType.TASK, store, identity, task_id)
    return _deleted()


# ============== Labels ==============

@app.post("/api/labels", response_model=schemas.Label, status_code=status.HTTP_201_CREATED)
def create_label(
    label: schemas.LabelCreate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.create_resource(ResourceType.LABEL, store, identity, label)


@app.get("/api/labels/project/{project_id}", response_model=schemas.Page[schemas.Label])
def list_project_labels(
    project_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: SortField = Query(SortField.name_),
    sort_order: SortDirection = Query(SortDirection.asc),
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """List a project's labels, alphabetical by default."""
    result = dispatch.list_resources(
        ResourceType.LABEL,
        store,
        identity,
        LabelFilters(project_id=project_id),
        PageRequest(page, limit),
        _sort(sort_by, sort_order),
    )
    return _page_response(result, schemas.Label)


@app.get("/api/labels/{label_id}", response_model=schemas.Label)
def get_label(
    label_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.get_resource(ResourceType.LABEL, store, identity, label_id)


@app.put("/api/labels/{label_id}", response_model=schemas.Label)
def update_label(
    label_id: int,
    label_update: schemas.LabelUpdate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.update_resource(ResourceType.LABEL, store, identity, label_id, label_update)


@app.delete("/api/labels/{label_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_label(
    label_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    dispatch.delete_resource(ResourceType.LABEL, store, identity, label_id)
    return _deleted()


# ============== Comments ==============

@app.post("/api/comments", response_model=schemas.Comment, status_code=status.HTTP_201_CREATED)
def create_comment(
    comment: schemas.CommentCreate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Comment on a task; the caller is always the author."""
    return dispatch.create_resource(ResourceType.COMMENT, store, identity, comment)


@app.get("/api/comments/task/{task_id}", response_model=schemas.Page[schemas.Comment])
def list_task_comments(
    task_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_order: SortDirection = Query(SortDirection.desc),
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """List comments on a task, newest first by default."""
    result = dispatch.list_resources(
        ResourceType.COMMENT,
        store,
        identity,
        CommentFilters(task_id=task_id),
        PageRequest(page, limit),
        _sort(SortField.createdAt, sort_order),
    )
    return _page_response(result, schemas.Comment)


@app.get("/api/comments/{comment_id}", response_model=schemas.Comment)
def get_comment(
    comment_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    return dispatch.get_resource(ResourceType.COMMENT, store, identity, comment_id)


@app.put("/api/comments/{comment_id}", response_model=schemas.Comment)
def update_comment(
    comment_id: int,
    comment_update: schemas.CommentUpdate,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Edit a comment (author only)."""
    return dispatch.update_resource(ResourceType.COMMENT, store, identity, comment_id, comment_update)


@app.delete("/api/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: int,
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
):
    """Delete a comment (author only)."""
    dispatch.delete_resource(ResourceType.COMMENT, store, identity, comment_id)
    return _deleted()


# ============== Dashboard ==============

@app.get("/api/dashboard/stats", response_model=schemas.DashboardStats)
def get_dashboard_stats(
    identity: CallerIdentity = Depends(get_current_identity),
    store: SqlAlchemyStore = Depends(get_store),
) -> Any:
    """Task and project counts plus a 7-day completion histogram, limited to what the caller can see."""
    stats = dispatch.dashboard_stats(store, identity)
    stats["recent_tasks"] = [schemas.Task.model_validate(task) for task in stats["recent_tasks"]]
    return stats
