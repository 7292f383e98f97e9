"""
Task-level permission predicates.

This module decides which task rows an actor may touch for a given operation,
expressed as a predicate that the Entity Store ANDs with every task read:

- READ, UPDATE, STATUS_UPDATE: the actor is the creator or the assignee
- DELETE: the actor is the creator (assignees cannot delete)
- CREATE: there is no existing row to check; instead the referenced assignee
  must exist (see require_assignee_exists)

There is no global read access: every predicate is scoped to one actor.
"""

import enum
import logging
from typing import Optional

from sqlalchemy.orm import Session

from errors import ReferenceIntegrityError
from predicates import Eq, Predicate, any_of
from store import UserStore

logger = logging.getLogger(__name__)


class TaskOperation(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    STATUS_UPDATE = "status_update"
    DELETE = "delete"


# Operations whose visibility is "creator or assignee"
PARTICIPANT_OPERATIONS = frozenset({TaskOperation.READ, TaskOperation.UPDATE, TaskOperation.STATUS_UPDATE})


def build_visibility_predicate(actor_id: str, operation: TaskOperation) -> Predicate:
    """
    Build the mandatory row filter for an actor and operation.

    Args:
        actor_id: ID of the authenticated user
        operation: the kind of access being attempted

    Returns:
        Predicate selecting exactly the task rows the actor may access

    Raises:
        ValueError: for CREATE (no row predicate applies) or an empty actor

    Example:
        >>> build_visibility_predicate("u1", TaskOperation.DELETE)
        Eq(field='creator_id', value='u1')
    """
    if not actor_id:
        raise ValueError("A visibility predicate requires an actor")

    if operation in PARTICIPANT_OPERATIONS:
        logger.debug(f"Visibility for user {actor_id} ({operation.value}): creator or assignee")
        return any_of(Eq("creator_id", actor_id), Eq("assignee_id", actor_id))

    if operation == TaskOperation.DELETE:
        logger.debug(f"Visibility for user {actor_id} ({operation.value}): creator only")
        return Eq("creator_id", actor_id)

    raise ValueError(f"No visibility predicate applies to operation '{operation.value}'")


def require_assignee_exists(db: Session, assignee_id: Optional[str]) -> None:
    """
    Check that a user referenced as assignee exists.

    A missing assignee_id means "unassigned" and skips the lookup entirely.

    Args:
        db: Database session
        assignee_id: ID of the user to assign, or None

    Raises:
        ReferenceIntegrityError: if no user with that ID exists
    """
    if assignee_id is None:
        return

    if not UserStore(db).exists(assignee_id):
        logger.info(f"Assignee {assignee_id} does not exist")
        raise ReferenceIntegrityError()

    logger.debug(f"Assignee {assignee_id} exists")
