"""
Query scoping: turn requested filters plus the caller's visibility into one
storage-independent predicate.

A ScopeExpression is a small tree of Condition / AllOf / AnyOf nodes. The
storage adapter compiles it to its native query form (see storage/sql_store.py).

Composition rule: the requested filters and the role restriction are ANDed.
A disjunction contributed by either side (search across several columns,
"owner OR assignee" role scope) stays its own AnyOf node inside the
conjunction and is never merged with another disjunction, so a search can
never widen what the caller is allowed to see.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, List, Optional, Tuple, TypeVar, Union

from auth.identity import CallerIdentity
from auth.permissions import ResourceType

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class Op(str, enum.Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"  # case-insensitive substring
    HAS_ANY = "has_any"    # many-to-many: any related id in value


@dataclass(frozen=True)
class Condition:
    field: str
    op: Op
    value: Any


@dataclass(frozen=True)
class AllOf:
    clauses: Tuple["ScopeExpression", ...] = ()


@dataclass(frozen=True)
class AnyOf:
    clauses: Tuple["ScopeExpression", ...] = ()


ScopeExpression = Union[Condition, AllOf, AnyOf]

MATCH_ALL = AllOf(())
MATCH_NONE = AnyOf(())


def all_of(*clauses: ScopeExpression) -> ScopeExpression:
    """
    Conjunction of clauses.

    Nested conjunctions are flattened (AND is associative) and MATCH_ALL
    operands are dropped. Disjunctions are kept as separate operands.
    """
    flat: List[ScopeExpression] = []
    for clause in clauses:
        if isinstance(clause, AllOf):
            flat.extend(clause.clauses)
        else:
            flat.append(clause)
    if len(flat) == 1:
        return flat[0]
    return AllOf(tuple(flat))


def any_of(*clauses: ScopeExpression) -> ScopeExpression:
    """Self-contained disjunction; an empty one matches nothing."""
    if len(clauses) == 1:
        return clauses[0]
    return AnyOf(tuple(clauses))


# ============== Requested filters ==============


@dataclass(frozen=True)
class TaskFilters:
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[int] = None
    project_id: Optional[int] = None
    label_ids: Tuple[int, ...] = ()
    search: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectFilters:
    search: Optional[str] = None
    owner_id: Optional[int] = None


@dataclass(frozen=True)
class UserFilters:
    search: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class LabelFilters:
    project_id: Optional[int] = None


@dataclass(frozen=True)
class CommentFilters:
    task_id: Optional[int] = None


def _search(text: Optional[str], *fields: str) -> ScopeExpression:
    if text is None or not text.strip():
        return MATCH_ALL
    needle = text.strip()
    return any_of(*(Condition(name, Op.CONTAINS, needle) for name in fields))


def requested_task_filter(filters: TaskFilters) -> ScopeExpression:
    clauses: List[ScopeExpression] = []
    if filters.status is not None:
        clauses.append(Condition("status", Op.EQ, filters.status))
    if filters.priority is not None:
        clauses.append(Condition("priority", Op.EQ, filters.priority))
    if filters.assignee_id is not None:
        clauses.append(Condition("assignee_id", Op.EQ, filters.assignee_id))
    if filters.project_id is not None:
        clauses.append(Condition("project_id", Op.EQ, filters.project_id))
    if filters.label_ids:
        clauses.append(Condition("labels", Op.HAS_ANY, tuple(filters.label_ids)))
    if filters.start_date is not None:
        clauses.append(Condition("due_date", Op.GTE, filters.start_date))
    if filters.end_date is not None:
        clauses.append(Condition("due_date", Op.LTE, filters.end_date))
    clauses.append(_search(filters.search, "title", "description"))
    return all_of(*clauses)


def requested_project_filter(filters: ProjectFilters) -> ScopeExpression:
    clauses: List[ScopeExpression] = []
    if filters.owner_id is not None:
        clauses.append(Condition("owner_id", Op.EQ, filters.owner_id))
    clauses.append(_search(filters.search, "name", "description"))
    return all_of(*clauses)


def requested_user_filter(filters: UserFilters) -> ScopeExpression:
    clauses: List[ScopeExpression] = []
    if filters.role is not None:
        clauses.append(Condition("role", Op.EQ, filters.role))
    clauses.append(_search(filters.search, "name", "email"))
    return all_of(*clauses)


# ============== Role restrictions ==============


def task_restriction(identity: CallerIdentity, store) -> ScopeExpression:
    """
    Visibility of tasks for a caller.

    MEMBER: assigned to them. MANAGER: in a project they own, or assigned to
    them. ADMIN: everything. The owned-project lookup happens up front since
    the storage layer is not assumed to join transitively.
    """
    if identity.is_admin:
        return MATCH_ALL
    assigned = Condition("assignee_id", Op.EQ, identity.user_id)
    if identity.is_member:
        return assigned
    owned = tuple(store.owned_project_ids(identity.user_id))
    return any_of(Condition("project_id", Op.IN, owned), assigned)


def project_restriction(identity: CallerIdentity, store) -> ScopeExpression:
    """
    Visibility of projects for a caller.

    MEMBER: projects containing a task assigned to them. MANAGER: those plus
    projects they own. ADMIN: everything.
    """
    if identity.is_admin:
        return MATCH_ALL
    via_tasks = Condition("id", Op.IN, tuple(store.assigned_project_ids(identity.user_id)))
    if identity.is_member:
        return via_tasks
    return any_of(Condition("owner_id", Op.EQ, identity.user_id), via_tasks)


def build_scope(identity: CallerIdentity, resource_type: ResourceType, filters, store) -> ScopeExpression:
    """
    Combine requested filters with the caller's role restriction.

    Args:
        identity: The caller
        resource_type: Which collection is being listed
        filters: The matching *Filters dataclass for the resource type
        store: Storage collaborator used for the relational lookups

    Returns:
        A single ScopeExpression for both the page query and the count query

    Note:
        Labels and comments are listed per parent. Their visibility is
        inherited from the parent and checked before this is called, so only
        the parent filter applies here. Users are only listed by ADMIN (the
        action gate enforces that).
    """
    if resource_type == ResourceType.TASK:
        scope = all_of(requested_task_filter(filters), task_restriction(identity, store))
    elif resource_type == ResourceType.PROJECT:
        scope = all_of(requested_project_filter(filters), project_restriction(identity, store))
    elif resource_type == ResourceType.USER:
        scope = requested_user_filter(filters)
    elif resource_type == ResourceType.LABEL:
        scope = Condition("project_id", Op.EQ, filters.project_id)
    elif resource_type == ResourceType.COMMENT:
        scope = Condition("task_id", Op.EQ, filters.task_id)
    else:
        raise ValueError(f"Unsupported resource type: {resource_type}")

    logger.debug(f"Scope for user {identity.user_id} on {resource_type.value}: {scope}")
    return scope


# ============== Sorting and paging ==============


class SortField(str, enum.Enum):
    createdAt = "createdAt"
    updatedAt = "updatedAt"
    dueDate = "dueDate"
    priority = "priority"
    name_ = "name"  # Enum reserves .name


class SortDirection(str, enum.Enum):
    asc = "asc"
    desc = "desc"


SORT_COLUMNS = {
    SortField.createdAt: "created_at",
    SortField.updatedAt: "updated_at",
    SortField.dueDate: "due_date",
    SortField.priority: "priority",
    SortField.name_: "name",
}

# Which sort fields each collection carries; anything else falls back to createdAt
SORTABLE = {
    ResourceType.TASK: frozenset({SortField.createdAt, SortField.updatedAt, SortField.dueDate, SortField.priority}),
    ResourceType.PROJECT: frozenset({SortField.createdAt, SortField.updatedAt, SortField.name_}),
    ResourceType.USER: frozenset({SortField.createdAt, SortField.updatedAt, SortField.name_}),
    ResourceType.LABEL: frozenset({SortField.createdAt, SortField.updatedAt, SortField.name_}),
    ResourceType.COMMENT: frozenset({SortField.createdAt, SortField.updatedAt}),
}


@dataclass(frozen=True)
class SortSpec:
    field: SortField = SortField.createdAt
    direction: SortDirection = SortDirection.desc

    def for_resource(self, resource_type: ResourceType) -> "SortSpec":
        if self.field in SORTABLE[resource_type]:
            return self
        logger.debug(f"Sort field {self.field.value} not available on {resource_type.value}, using createdAt")
        return SortSpec(SortField.createdAt, self.direction)

    @property
    def column(self) -> str:
        return SORT_COLUMNS[self.field]


@dataclass(frozen=True)
class PageRequest:
    """1-based page number and a page size clamped to [1, MAX_PAGE_SIZE]."""

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        object.__setattr__(self, "page", max(1, int(self.page)))
        object.__setattr__(self, "page_size", min(MAX_PAGE_SIZE, max(1, int(self.page_size))))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


T = TypeVar("T")


@dataclass
class PageResult(Generic[T]):
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int = field(init=False)

    def __post_init__(self):
        self.total_pages = math.ceil(self.total / self.page_size) if self.page_size else 0


def fetch_page(store, model, scope: ScopeExpression, sort: SortSpec, page: PageRequest) -> PageResult:
    """
    Run the page query and the count query against the same predicate.

    Using one ScopeExpression for both guarantees the reported total matches
    what paging through the results would yield.
    """
    total = store.count(model, scope)
    items = store.find(model, scope, order=sort, offset=page.offset, limit=page.page_size)
    logger.debug(f"Fetched page {page.page} ({len(items)} of {total}) for {model.__name__}")
    return PageResult(items=items, total=total, page=page.page, page_size=page.page_size)