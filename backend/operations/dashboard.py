"""
Dashboard statistics.

Every figure is computed over the same task scope the task list uses, so a
caller's dashboard never counts a task they could not list.
"""

import logging
from collections import Counter
from typing import Any, Dict

import models
from auth.identity import CallerIdentity
from auth.permissions import Action, ResourceType, require_action
from scoping import (
    Condition,
    Op,
    PageRequest,
    ProjectFilters,
    SortDirection,
    SortField,
    SortSpec,
    TaskFilters,
    all_of,
    build_scope,
)
from storage.protocols import Store
from time_utils import as_utc, last_n_days, start_of_day, utc_now

logger = logging.getLogger(__name__)

RECENT_TASKS_LIMIT = 5
WEEKLY_WINDOW_DAYS = 7


def get_dashboard_stats(store: Store, identity: CallerIdentity) -> Dict[str, Any]:
    """
    Summary counts for the caller's visible tasks and projects.

    Returns:
        Dict with total_tasks, completed_tasks, overdue_tasks, total_projects,
        recent_tasks (most recently updated first) and weekly_completed_tasks
        (one entry per day for the last seven days, oldest first)
    """
    logger.debug(f"Computing dashboard stats for user {identity.user_id} ({identity.role.value})")
    require_action(identity, Action.LIST, ResourceType.TASK)
    require_action(identity, Action.LIST, ResourceType.PROJECT)

    task_scope = build_scope(identity, ResourceType.TASK, TaskFilters(), store)
    done = Condition("status", Op.EQ, models.TaskStatus.DONE)

    total_tasks = store.count(models.Task, task_scope)
    completed_tasks = store.count(models.Task, all_of(task_scope, done))
    overdue_tasks = store.count(
        models.Task,
        all_of(
            task_scope,
            Condition("due_date", Op.NE, None),
            Condition("due_date", Op.LT, utc_now()),
            Condition("status", Op.NE, models.TaskStatus.DONE),
        ),
    )

    project_scope = build_scope(identity, ResourceType.PROJECT, ProjectFilters(), store)
    total_projects = store.count(models.Project, project_scope)

    recent_page = PageRequest(page=1, page_size=RECENT_TASKS_LIMIT)
    recent_tasks = store.find(
        models.Task,
        task_scope,
        order=SortSpec(SortField.updatedAt, SortDirection.desc),
        offset=recent_page.offset,
        limit=recent_page.page_size,
    )

    # Completion time is approximated by the last update of a DONE task
    days = last_n_days(WEEKLY_WINDOW_DAYS)
    completed_recently = store.find(
        models.Task,
        all_of(task_scope, done, Condition("updated_at", Op.GTE, start_of_day(days[0]))),
    )
    per_day = Counter(as_utc(task.updated_at).date() for task in completed_recently)
    weekly_completed_tasks = [{"date": day, "count": per_day.get(day, 0)} for day in days]

    logger.info(
        f"Dashboard for user {identity.user_id}: {total_tasks} tasks, {completed_tasks} done, "
        f"{overdue_tasks} overdue, {total_projects} projects"
    )
    return {
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "overdue_tasks": overdue_tasks,
        "total_projects": total_projects,
        "recent_tasks": recent_tasks,
        "weekly_completed_tasks": weekly_completed_tasks,
    }
