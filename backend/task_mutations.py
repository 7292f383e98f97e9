"""
Task Mutation Engine: create, update, status change and delete.

Writes to existing tasks always start with a read through the operation's
visibility predicate. A task the actor may not touch is reported exactly like
a task that does not exist (NotFoundOrDenied).

Cross-entity references (the assignee) are validated in a separate phase
before anything is written.
"""

import logging

from sqlalchemy.orm import Session

import models
import schemas
from auth.permissions import TaskOperation, build_visibility_predicate, require_assignee_exists
from errors import NotFoundOrDenied
from store import TaskStore

logger = logging.getLogger(__name__)


def _fetch_for(store: TaskStore, task_id: str, actor_id: str, operation: TaskOperation) -> models.Task:
    task = store.find_first(task_id, build_visibility_predicate(actor_id, operation))
    if task is None:
        logger.info(f"User {actor_id} denied {operation.value} on task {task_id} (not found or not visible)")
        raise NotFoundOrDenied()
    return task


def _reload(store: TaskStore, task_id: str, creator_id: str) -> schemas.Task:
    # Read back through the creator's visibility: an assignee who just
    # reassigned the task must still get the written result.
    task = _fetch_for(store, task_id, creator_id, TaskOperation.READ)
    return schemas.Task.model_validate(task)


def create_task(db: Session, creator_id: str, payload: schemas.TaskCreate) -> schemas.Task:
    """
    Create a task owned by creator_id.

    Args:
        db: Database session
        creator_id: ID of the authenticated user; always becomes the creator
        payload: validated creation data

    Returns:
        The created task with creator/assignee summaries

    Raises:
        ReferenceIntegrityError: if assigneeId names a user that does not exist
    """
    logger.info(f"User {creator_id} creating task: {payload.title}")

    # Phase 1: references
    require_assignee_exists(db, payload.assignee_id)

    # Phase 2: write
    store = TaskStore(db)
    task = models.Task(
        title=payload.title,
        description=payload.description or None,
        status=payload.status,
        priority=payload.priority,
        due_date=payload.due_date,
        creator_id=creator_id,
        assignee_id=payload.assignee_id,
    )
    store.add(task)

    logger.info(f"Task created successfully: id={task.id}")
    return _reload(store, task.id, creator_id)


def update_task(db: Session, task_id: str, actor_id: str, payload: schemas.TaskUpdate) -> schemas.Task:
    """
    Apply a partial update to a task the actor created or is assigned to.

    Only fields present in the payload change. assigneeId=None unassigns;
    dueDate=None clears the due date.

    Raises:
        NotFoundOrDenied: if the task is missing or the actor is not a participant,
            or if it was deleted concurrently and the patch changed nothing
            (no UPDATE is issued, so the loss shows up on the read-back)
        ReferenceIntegrityError: if a new assignee does not exist
        StoreError: if the task was deleted concurrently before the UPDATE
    """
    logger.info(f"User {actor_id} updating task {task_id}")

    store = TaskStore(db)
    task = _fetch_for(store, task_id, actor_id, TaskOperation.UPDATE)
    creator_id = task.creator_id

    update_data = payload.model_dump(exclude_unset=True)

    if update_data.get("assignee_id") is not None:
        require_assignee_exists(db, update_data["assignee_id"])

    for key, value in update_data.items():
        setattr(task, key, value)

    store.save(task)

    logger.info(f"Task {task_id} updated successfully: fields={sorted(update_data)}")
    return _reload(store, task_id, creator_id)


def update_task_status(db: Session, task_id: str, actor_id: str, status: models.TaskStatus) -> schemas.Task:
    """
    Set a task's status. Any status may follow any other.

    Raises:
        NotFoundOrDenied: if the task is missing or the actor is not a participant,
            or if it was deleted concurrently while already in the requested status
        StoreError: if the task was deleted concurrently before the UPDATE
    """
    logger.info(f"User {actor_id} setting status of task {task_id} to {status.value}")

    store = TaskStore(db)
    task = _fetch_for(store, task_id, actor_id, TaskOperation.STATUS_UPDATE)
    creator_id = task.creator_id
    old_status = task.status
    task.status = status
    store.save(task)

    logger.info(f"Task {task_id} status changed: {old_status.value} -> {status.value}")
    return _reload(store, task_id, creator_id)


def delete_task(db: Session, task_id: str, actor_id: str) -> None:
    """
    Hard-delete a task. Only its creator may do this.

    Raises:
        NotFoundOrDenied: if the task is missing or the actor is not the creator
        StoreError: if the task was deleted concurrently
    """
    logger.debug(f"User {actor_id} deleting task {task_id}")

    store = TaskStore(db)
    task = _fetch_for(store, task_id, actor_id, TaskOperation.DELETE)
    store.delete(task)

    logger.info(f"Task {task_id} deleted by user {actor_id}")
