"""
Entity Store: typed persistence for users and tasks.

The store owns no business rules. It offers CRUD plus predicate-based task
queries, and it is the single place where SQLAlchemy exceptions are turned
into StoreError (see errors.translate_store_error).

Every task read takes a visibility predicate as a separate, required argument
and ANDs it with the optional filter predicate. No task read path exists
without one.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

import models
from errors import StoreError, StoreErrorCode, translate_store_error
from predicates import Predicate, all_of, to_sqlalchemy

logger = logging.getLogger(__name__)


@contextmanager
def translating_store_errors(db: Session) -> Iterator[None]:
    """
    Translate database failures raised inside the block into StoreError.

    The session is rolled back before the translated error propagates.
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        raise translate_store_error(e) from e


class UserStore:
    """Persistence for users."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[models.User]:
        with translating_store_errors(self.db):
            return self.db.query(models.User).filter(models.User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[models.User]:
        with translating_store_errors(self.db):
            return self.db.query(models.User).filter(models.User.email == email).first()

    def exists(self, user_id: str) -> bool:
        with translating_store_errors(self.db):
            return self.db.query(models.User.id).filter(models.User.id == user_id).first() is not None

    def email_taken(self, email: str, exclude_user_id: Optional[str] = None) -> bool:
        with translating_store_errors(self.db):
            query = self.db.query(models.User.id).filter(models.User.email == email)
            if exclude_user_id is not None:
                query = query.filter(models.User.id != exclude_user_id)
            return query.first() is not None

    def list_all(self) -> List[models.User]:
        with translating_store_errors(self.db):
            return self.db.query(models.User).order_by(models.User.name.asc(), models.User.id.asc()).all()

    def add(self, user: models.User) -> models.User:
        with translating_store_errors(self.db):
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        with translating_store_errors(self.db):
            self.db.commit()
            self.db.refresh(user)
        return user

    def delete(self, user: models.User) -> None:
        """Delete a user. Created tasks cascade, assignments are cleared."""
        with translating_store_errors(self.db):
            self.db.delete(user)
            self.db.commit()


class TaskStore:
    """Persistence for tasks, always read through a visibility predicate."""

    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, visibility: Predicate, where: Optional[Predicate]):
        if visibility is None:
            raise ValueError("Task reads require a visibility predicate")
        return to_sqlalchemy(all_of(visibility, where), models.Task)

    def find_first(self, task_id: str, visibility: Predicate) -> Optional[models.Task]:
        """Fetch one task by ID, joined with creator and assignee, if visible."""
        with translating_store_errors(self.db):
            return (
                self.db.query(models.Task)
                .options(joinedload(models.Task.creator), joinedload(models.Task.assignee))
                .filter(models.Task.id == task_id, self._scoped(visibility, None))
                .first()
            )

    def find_many(
        self,
        visibility: Predicate,
        where: Optional[Predicate] = None,
        order_by: Sequence = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[models.Task]:
        with translating_store_errors(self.db):
            query = (
                self.db.query(models.Task)
                .options(joinedload(models.Task.creator), joinedload(models.Task.assignee))
                .filter(self._scoped(visibility, where))
            )
            if order_by:
                query = query.order_by(*order_by)
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def count(self, visibility: Predicate, where: Optional[Predicate] = None) -> int:
        with translating_store_errors(self.db):
            return (
                self.db.query(func.count(models.Task.id))
                .filter(self._scoped(visibility, where))
                .scalar()
            )

    def add(self, task: models.Task) -> models.Task:
        with translating_store_errors(self.db):
            self.db.add(task)
            self.db.commit()
        return task

    def save(self, task: models.Task) -> models.Task:
        """Flush pending changes to a task. Raises StoreError if the row vanished."""
        with translating_store_errors(self.db):
            self.db.commit()
        return task

    def delete(self, task: models.Task) -> None:
        """Hard-delete a task. Raises StoreError if the row is already gone."""
        with translating_store_errors(self.db):
            deleted = (
                self.db.query(models.Task)
                .filter(models.Task.id == task.id)
                .delete(synchronize_session=False)
            )
            if deleted == 0:
                self.db.rollback()
                raise StoreError(StoreErrorCode.RECORD_NOT_FOUND)
            self.db.commit()
            self.db.expunge(task)
