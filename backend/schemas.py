from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import date, datetime
from typing import Generic, List, Optional, TypeVar

from models import TaskPriority, TaskStatus, UserRole

T = TypeVar("T")

LABEL_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# User schemas
class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class User(UserSummary):
    role: UserRole
    avatar: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    role: UserRole = UserRole.MEMBER
    avatar: Optional[str] = None


class UserUpdate(BaseModel):
    """Profile changes. Role is not accepted here."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    avatar: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8, max_length=100)


# Label schemas
class LabelBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., pattern=LABEL_COLOR_PATTERN, description="Hex colour, e.g. #1A2B3C")


class LabelCreate(LabelBase):
    project_id: int


class LabelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=LABEL_COLOR_PATTERN)


class Label(LabelBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    created_at: datetime
    updated_at: datetime


# Comment schemas
class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)
    task_id: int


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1)


class Comment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content: str
    task_id: int
    author_id: int
    author: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime


# Attachment schemas
class Attachment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    filename: str
    original_filename: str
    mime_type: str
    file_size: int
    uploaded_by: Optional[int] = None
    uploader: Optional[UserSummary] = None
    created_at: datetime


# Project schemas
class ProjectSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


# Task schemas
class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None
    project_id: int
    label_ids: Optional[List[int]] = None


class TaskUpdate(BaseModel):
    """Partial update; project is fixed at creation and cannot be changed."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[int] = None
    label_ids: Optional[List[int]] = Field(None, description="Replaces the task's full label set")


class Task(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    is_overdue: bool = False
    assignee_id: Optional[int] = None
    assignee: Optional[UserSummary] = None
    project_id: int
    project: Optional[ProjectSummary] = None
    labels: List[Label] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TaskDetail(Task):
    comments: List[Comment] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)


class Project(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    owner_id: int
    owner: Optional[UserSummary] = None
    task_count: int = 0
    created_at: datetime
    updated_at: datetime


class ProjectDetail(Project):
    # Only the tasks the caller may see
    tasks: List[Task] = Field(default_factory=list, validation_alias="visible_tasks")
    labels: List[Label] = Field(default_factory=list)


# Paging
class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    meta: PageMeta


# Dashboard
class DailyCount(BaseModel):
    date: date
    count: int


class DashboardStats(BaseModel):
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    total_projects: int
    recent_tasks: List[Task] = Field(default_factory=list)
    weekly_completed_tasks: List[DailyCount] = Field(default_factory=list)
