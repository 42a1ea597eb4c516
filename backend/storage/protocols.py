"""
Storage interface consumed by the resource operations.

Operations receive a Store explicitly instead of reaching for a global
session, so tests can hand in any implementation.
"""

from contextlib import AbstractContextManager
from typing import Any, Iterable, List, Optional, Protocol, Type

from scoping import ScopeExpression, SortSpec


class Store(Protocol):
    """Record CRUD, scoped querying and transactional writes."""

    def get(self, model: Type[Any], record_id: int) -> Optional[Any]:
        """Fetch one record by primary key, unscoped."""
        ...

    def find(
        self,
        model: Type[Any],
        scope: ScopeExpression,
        order: Optional[SortSpec] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Records matching `scope`, ordered deterministically."""
        ...

    def count(self, model: Type[Any], scope: ScopeExpression) -> int:
        """Number of records matching `scope`."""
        ...

    def add(self, record: Any) -> None:
        ...

    def delete(self, record: Any) -> None:
        ...

    def refresh(self, record: Any) -> None:
        ...

    def transaction(self) -> AbstractContextManager:
        """Commit on normal exit, roll back if the block raises."""
        ...

    def rollback(self) -> None:
        ...

    def owned_project_ids(self, user_id: int) -> List[int]:
        """Ids of projects owned by the user."""
        ...

    def assigned_project_ids(self, user_id: int) -> List[int]:
        """Distinct ids of projects containing a task assigned to the user."""
        ...

    def project_assignee_ids(self, project_id: int) -> List[int]:
        """Distinct assignee ids of the project's tasks."""
        ...

    def labels_in_project(self, project_id: int, label_ids: Iterable[int]) -> List[Any]:
        """Labels among `label_ids` that belong to the project."""
        ...

    def user_by_email(self, email: str) -> Optional[Any]:
        ...
