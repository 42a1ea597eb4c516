"""
SQLAlchemy implementation of the Store interface.

Compiles ScopeExpression trees into SQLAlchemy clauses and runs them on a
request-scoped Session.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional, Type

from sqlalchemy import and_, asc, case, desc, false, func, or_, true
from sqlalchemy.orm import Session

import models
from scoping import AllOf, AnyOf, Condition, Op, ScopeExpression, SortDirection, SortSpec

logger = logging.getLogger(__name__)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlAlchemyStore:
    """Store backed by a SQLAlchemy Session (one per request)."""

    def __init__(self, session: Session):
        self.session = session

    # ============== Scope compilation ==============

    def compile(self, model: Type[Any], expr: ScopeExpression):
        """Translate a ScopeExpression into a SQLAlchemy boolean clause for `model`."""
        if isinstance(expr, Condition):
            return self._compile_condition(model, expr)
        if isinstance(expr, AllOf):
            if not expr.clauses:
                return true()
            return and_(*(self.compile(model, clause) for clause in expr.clauses))
        if isinstance(expr, AnyOf):
            if not expr.clauses:
                return false()
            return or_(*(self.compile(model, clause) for clause in expr.clauses))
        raise TypeError(f"Not a scope expression: {expr!r}")

    def _compile_condition(self, model: Type[Any], cond: Condition):
        column = getattr(model, cond.field)

        if cond.op == Op.EQ:
            return column.is_(None) if cond.value is None else column == cond.value
        if cond.op == Op.NE:
            return column.isnot(None) if cond.value is None else column != cond.value
        if cond.op == Op.IN:
            values = list(cond.value)
            if not values:
                return false()
            return column.in_(values)
        if cond.op == Op.LT:
            return column < cond.value
        if cond.op == Op.GTE:
            return column >= cond.value
        if cond.op == Op.LTE:
            return column <= cond.value
        if cond.op == Op.CONTAINS:
            return column.ilike(f"%{_escape_like(str(cond.value))}%", escape="\\")
        if cond.op == Op.HAS_ANY:
            values = list(cond.value)
            if not values:
                return false()
            target = column.property.mapper.class_
            return column.any(target.id.in_(values))
        raise ValueError(f"Unsupported operator: {cond.op}")

    def _order_by(self, model: Type[Any], order: Optional[SortSpec]) -> list:
        # id is always the final key so pages never overlap or skip records
        if order is None:
            return [asc(model.id)]

        direction = desc if order.direction == SortDirection.desc else asc
        if order.column == "priority":
            key = case(
                *[(model.priority == priority, rank) for priority, rank in models.PRIORITY_RANK.items()],
                else_=-1,
            )
        elif order.column == "name":
            key = func.lower(model.name)
        else:
            key = getattr(model, order.column)
        return [direction(key), direction(model.id)]

    # ============== Queries ==============

    def get(self, model: Type[Any], record_id: int) -> Optional[Any]:
        return self.session.get(model, record_id)

    def find(
        self,
        model: Type[Any],
        scope: ScopeExpression,
        order: Optional[SortSpec] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Any]:
        query = (
            self.session.query(model)
            .filter(self.compile(model, scope))
            .order_by(*self._order_by(model, order))
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, model: Type[Any], scope: ScopeExpression) -> int:
        return self.session.query(model).filter(self.compile(model, scope)).count()

    def owned_project_ids(self, user_id: int) -> List[int]:
        rows = self.session.query(models.Project.id).filter(models.Project.owner_id == user_id).all()
        return [row.id for row in rows]

    def assigned_project_ids(self, user_id: int) -> List[int]:
        rows = (
            self.session.query(models.Task.project_id)
            .filter(models.Task.assignee_id == user_id)
            .distinct()
            .all()
        )
        return [row.project_id for row in rows]

    def project_assignee_ids(self, project_id: int) -> List[int]:
        rows = (
            self.session.query(models.Task.assignee_id)
            .filter(models.Task.project_id == project_id, models.Task.assignee_id.isnot(None))
            .distinct()
            .all()
        )
        return [row.assignee_id for row in rows]

    def labels_in_project(self, project_id: int, label_ids: Iterable[int]) -> List[Any]:
        ids = list(label_ids)
        if not ids:
            return []
        return (
            self.session.query(models.Label)
            .filter(models.Label.project_id == project_id, models.Label.id.in_(ids))
            .all()
        )

    def user_by_email(self, email: str) -> Optional[Any]:
        return self.session.query(models.User).filter(models.User.email == email).first()

    # ============== Writes ==============

    def add(self, record: Any) -> None:
        self.session.add(record)

    def delete(self, record: Any) -> None:
        self.session.delete(record)

    def refresh(self, record: Any) -> None:
        self.session.refresh(record)

    def rollback(self) -> None:
        self.session.rollback()

    @contextmanager
    def transaction(self) -> Iterator["SqlAlchemyStore"]:
        try:
            yield self
            self.session.commit()
        except Exception:
            logger.debug("Rolling back transaction")
            self.session.rollback()
            raise
