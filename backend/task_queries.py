"""
Task Query Engine: listing, search and single-task reads.

Every read combines the actor's READ visibility predicate with the caller's
filters through the Entity Store, which ANDs the two. Filters can narrow what
an actor sees, never widen it.
"""

import logging
import math
from typing import List, Optional

from sqlalchemy import asc, case, desc
from sqlalchemy.orm import Session

import models
import schemas
from auth.permissions import TaskOperation, build_visibility_predicate
from errors import NotFoundOrDenied
from predicates import Contains, Eq, Predicate, Range, all_of, any_of
from store import TaskStore
from task_filters import SortField, SortOrder, TaskQueryDescriptor

logger = logging.getLogger(__name__)

SEARCH_RESULT_LIMIT = 50

# Enum columns sort by declared order, not alphabetically
PRIORITY_RANK = case(
    {models.TaskPriority.LOW: 0, models.TaskPriority.MEDIUM: 1, models.TaskPriority.HIGH: 2},
    value=models.Task.priority,
)
STATUS_RANK = case(
    {models.TaskStatus.PENDING: 0, models.TaskStatus.IN_PROGRESS: 1, models.TaskStatus.COMPLETED: 2},
    value=models.Task.status,
)

SORT_COLUMNS = {
    SortField.CREATED_AT: models.Task.created_at,
    SortField.UPDATED_AT: models.Task.updated_at,
    SortField.DUE_DATE: models.Task.due_date,
    SortField.TITLE: models.Task.title,
    SortField.PRIORITY: PRIORITY_RANK,
    SortField.STATUS: STATUS_RANK,
}


def search_clause(query: str) -> Predicate:
    """Case-insensitive match against title or description."""
    return any_of(Contains("title", query), Contains("description", query))


def filter_predicate(descriptor: TaskQueryDescriptor) -> Optional[Predicate]:
    """
    Build the caller-controlled part of a listing query.

    The result never includes visibility; the store adds that separately.
    """
    due_range = None
    if descriptor.due_date_from is not None or descriptor.due_date_to is not None:
        due_range = Range("due_date", lower=descriptor.due_date_from, upper=descriptor.due_date_to)

    return all_of(
        Eq("status", descriptor.status) if descriptor.status is not None else None,
        Eq("priority", descriptor.priority) if descriptor.priority is not None else None,
        Eq("assignee_id", descriptor.assignee_id) if descriptor.assignee_id is not None else None,
        Eq("creator_id", descriptor.creator_id) if descriptor.creator_id is not None else None,
        due_range,
        search_clause(descriptor.search) if descriptor.search else None,
    )


def order_clauses(descriptor: TaskQueryDescriptor) -> list:
    column = SORT_COLUMNS[descriptor.sort_by]
    direction = asc if descriptor.sort_order == SortOrder.ASC else desc
    # Task.id as tiebreaker for deterministic pagination
    return [direction(column), asc(models.Task.id)]


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def list_tasks(db: Session, actor_id: str, descriptor: TaskQueryDescriptor) -> schemas.TaskList:
    """
    List the tasks an actor can see, filtered, sorted and paginated.

    The count and the page are two independent reads with no shared
    transaction. Under concurrent writes, `total` and `tasks` may reflect
    slightly different snapshots; callers should treat `total` as approximate.

    Args:
        db: Database session
        actor_id: ID of the authenticated user
        descriptor: normalized query (see task_filters.normalize_task_filters)

    Returns:
        TaskList with tasks, total, page, limit and totalPages
    """
    logger.debug(f"User {actor_id} listing tasks: {descriptor}")

    store = TaskStore(db)
    visibility = build_visibility_predicate(actor_id, TaskOperation.READ)
    where = filter_predicate(descriptor)

    total = store.count(visibility, where)
    tasks = store.find_many(
        visibility,
        where,
        order_by=order_clauses(descriptor),
        offset=descriptor.offset,
        limit=descriptor.limit,
    )

    result = schemas.TaskList(
        tasks=[schemas.Task.model_validate(task) for task in tasks],
        total=total,
        page=descriptor.page,
        limit=descriptor.limit,
        total_pages=total_pages(total, descriptor.limit),
    )
    logger.info(f"list_tasks for user {actor_id}: returned {len(result.tasks)} of {total} tasks")
    return result


def search_tasks(db: Session, actor_id: str, raw_query: str) -> List[schemas.Task]:
    """
    Search an actor's visible tasks by title or description.

    A blank query returns an empty list without touching the database.
    Results are ordered by most recently updated and capped at
    SEARCH_RESULT_LIMIT.
    """
    query = (raw_query or "").strip()
    if not query:
        logger.debug(f"Blank search query from user {actor_id}, skipping lookup")
        return []

    logger.debug(f"User {actor_id} searching tasks for: {query!r}")
    tasks = TaskStore(db).find_many(
        build_visibility_predicate(actor_id, TaskOperation.READ),
        search_clause(query),
        order_by=[desc(models.Task.updated_at), asc(models.Task.id)],
        limit=SEARCH_RESULT_LIMIT,
    )
    logger.info(f"search_tasks for user {actor_id}: {len(tasks)} match(es)")
    return [schemas.Task.model_validate(task) for task in tasks]


def get_task(db: Session, task_id: str, actor_id: str) -> schemas.Task:
    """
    Fetch a single task visible to the actor.

    Raises:
        NotFoundOrDenied: if the task is missing or not visible
    """
    logger.debug(f"User {actor_id} requesting task {task_id}")
    task = TaskStore(db).find_first(task_id, build_visibility_predicate(actor_id, TaskOperation.READ))
    if task is None:
        logger.info(f"Task {task_id} not found or not visible to user {actor_id}")
        raise NotFoundOrDenied()
    return schemas.Task.model_validate(task)
