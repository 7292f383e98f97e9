"""
Tests for the task mutation engine.

Tests cover:
- Create: defaults, creator fixed to caller, assignee existence, joined result
- Update: participant-only, partial semantics, assignee clearing vs. absent
- Status change: any transition, participant-only
- Delete: creator-only asymmetry, hard delete
- Existence-leak prevention
- Concurrent deletion surfacing as a store error
"""

import logging
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

import models
import schemas
from errors import NotFoundOrDenied, ReferenceIntegrityError, StoreError, StoreErrorCode, ValidationError
from task_mutations import create_task, delete_task, update_task, update_task_status
from task_queries import get_task
from time_utils import utc_now

logger = logging.getLogger(__name__)


def _create(db, creator, **fields) -> schemas.Task:
    fields.setdefault("title", "Write tests")
    return create_task(db, creator.id, schemas.TaskCreate(**fields))


def _patch(**fields) -> schemas.TaskUpdate:
    return schemas.TaskUpdate.model_validate(fields)


# ============== Create ==============


def test_create_applies_defaults(test_db: Session, alice):
    task = _create(test_db, alice)

    assert task.status == models.TaskStatus.PENDING
    assert task.priority == models.TaskPriority.MEDIUM
    assert task.creator_id == alice.id
    assert task.creator.email == alice.email
    assert task.assignee_id is None
    assert task.assignee is None
    assert task.description is None


def test_create_with_assignee_returns_summary(test_db: Session, alice, bob):
    due = utc_now() + timedelta(days=3)

    task = _create(
        test_db,
        alice,
        title="  Ship release  ",
        description="Tag and publish",
        priority="HIGH",
        dueDate=due.isoformat(),
        assigneeId=bob.id,
    )

    assert task.title == "Ship release"
    assert task.priority == models.TaskPriority.HIGH
    assert task.assignee.id == bob.id
    assert task.assignee.name == bob.name
    assert task.due_date is not None


def test_create_with_unknown_assignee_writes_nothing(test_db: Session, alice):
    with pytest.raises(ReferenceIntegrityError):
        _create(test_db, alice, assigneeId="ghost")

    assert test_db.query(models.Task).count() == 0


def test_created_task_visible_to_assignee_not_third_party(test_db: Session, alice, bob, carol):
    task = _create(test_db, alice, assigneeId=bob.id)

    assert get_task(test_db, task.id, bob.id).id == task.id
    with pytest.raises(NotFoundOrDenied):
        get_task(test_db, task.id, carol.id)


@pytest.mark.parametrize(
    "fields, message",
    [
        ({"title": "   "}, "Task title cannot be empty"),
        ({"title": "x" * 256}, "Task title must be less than 255 characters"),
        ({"title": "ok", "description": "x" * 2001}, "Task description must be less than 2000 characters"),
        ({"title": "ok", "dueDate": "2000-01-01T00:00:00Z"}, "Due date cannot be in the past"),
    ],
)
def test_create_validation(fields, message):
    with pytest.raises(ValidationError) as exc_info:
        schemas.parse_payload(schemas.TaskCreate, fields)

    assert exc_info.value.message == message


# ============== Update ==============


def test_update_only_touches_supplied_fields(test_db: Session, alice, bob):
    task = _create(test_db, alice, description="Original", assigneeId=bob.id, priority="LOW")

    updated = update_task(test_db, task.id, alice.id, _patch(title="Renamed"))

    assert updated.title == "Renamed"
    assert updated.description == "Original"
    assert updated.priority == models.TaskPriority.LOW
    assert updated.assignee_id == bob.id


def test_assignee_absent_vs_explicit_null(test_db: Session, alice, bob):
    task = _create(test_db, alice, assigneeId=bob.id)

    untouched = update_task(test_db, task.id, alice.id, _patch())
    assert untouched.assignee_id == bob.id

    cleared = update_task(test_db, task.id, alice.id, _patch(assigneeId=None))
    assert cleared.assignee_id is None
    assert cleared.assignee is None
    logger.info("✓ Absent assigneeId keeps assignment, null clears it")


def test_due_date_can_be_cleared(test_db: Session, alice):
    task = _create(test_db, alice, dueDate=(utc_now() + timedelta(days=1)).isoformat())

    updated = update_task(test_db, task.id, alice.id, _patch(dueDate=None))

    assert updated.due_date is None


def test_update_rejects_null_title():
    with pytest.raises(ValidationError):
        schemas.parse_payload(schemas.TaskUpdate, {"title": None})


def test_assignee_can_update(test_db: Session, alice, bob):
    task = _create(test_db, alice, assigneeId=bob.id)

    updated = update_task(test_db, task.id, bob.id, _patch(priority="HIGH"))

    assert updated.priority == models.TaskPriority.HIGH


def test_assignee_can_hand_off_task(test_db: Session, alice, bob, carol):
    task = _create(test_db, alice, assigneeId=bob.id)

    updated = update_task(test_db, task.id, bob.id, _patch(assigneeId=carol.id))

    assert updated.assignee_id == carol.id
    with pytest.raises(NotFoundOrDenied):
        get_task(test_db, task.id, bob.id)


def test_update_to_unknown_assignee_rejected(test_db: Session, alice, bob):
    task = _create(test_db, alice, assigneeId=bob.id)

    with pytest.raises(ReferenceIntegrityError):
        update_task(test_db, task.id, alice.id, _patch(assigneeId="ghost"))

    assert get_task(test_db, task.id, alice.id).assignee_id == bob.id


def test_update_existence_leak_prevention(test_db: Session, alice, carol):
    task = _create(test_db, alice)

    with pytest.raises(NotFoundOrDenied) as hidden:
        update_task(test_db, task.id, carol.id, _patch(title="Hijack"))
    with pytest.raises(NotFoundOrDenied) as missing:
        update_task(test_db, "no-such-task", carol.id, _patch(title="Hijack"))

    assert type(hidden.value) is type(missing.value)
    assert str(hidden.value) == str(missing.value)
    assert hidden.value.code == missing.value.code
    assert get_task(test_db, task.id, alice.id).title == "Write tests"


def test_update_bumps_updated_at(test_db: Session, alice):
    task = _create(test_db, alice)

    updated = update_task(test_db, task.id, alice.id, _patch(title="Later"))

    assert updated.updated_at >= task.updated_at
    assert updated.created_at == task.created_at


# ============== Status ==============


@pytest.mark.parametrize(
    "sequence",
    [
        [models.TaskStatus.COMPLETED, models.TaskStatus.PENDING],
        [models.TaskStatus.IN_PROGRESS, models.TaskStatus.COMPLETED, models.TaskStatus.IN_PROGRESS],
    ],
)
def test_any_status_transition_allowed(test_db: Session, alice, sequence):
    task = _create(test_db, alice)

    for status in sequence:
        task = update_task_status(test_db, task.id, alice.id, status)
        assert task.status == status


def test_assignee_can_change_status(test_db: Session, alice, bob):
    task = _create(test_db, alice, assigneeId=bob.id)

    updated = update_task_status(test_db, task.id, bob.id, models.TaskStatus.COMPLETED)

    assert updated.status == models.TaskStatus.COMPLETED


def test_non_participant_cannot_change_status(test_db: Session, alice, carol):
    task = _create(test_db, alice)

    with pytest.raises(NotFoundOrDenied):
        update_task_status(test_db, task.id, carol.id, models.TaskStatus.COMPLETED)


# ============== Delete ==============


def test_assignee_cannot_delete(test_db: Session, alice, bob):
    task = _create(test_db, alice, assigneeId=bob.id)

    with pytest.raises(NotFoundOrDenied):
        delete_task(test_db, task.id, bob.id)

    assert test_db.query(models.Task).filter(models.Task.id == task.id).count() == 1


def test_creator_deletes_row(test_db: Session, alice, bob):
    task = _create(test_db, alice, assigneeId=bob.id)

    delete_task(test_db, task.id, alice.id)

    assert test_db.query(models.Task).filter(models.Task.id == task.id).count() == 0
    with pytest.raises(NotFoundOrDenied):
        get_task(test_db, task.id, alice.id)


def test_delete_missing_task(test_db: Session, alice):
    with pytest.raises(NotFoundOrDenied):
        delete_task(test_db, "no-such-task", alice.id)


# ============== Concurrent deletion ==============


@pytest.fixture
def row_vanishes_after_fetch(monkeypatch):
    """
    Arm a one-shot deletion of the task row right after the next authorization
    read, as a concurrent request would. Call the returned function once the
    task exists.
    """
    import task_mutations

    original_fetch = task_mutations._fetch_for

    def arm():
        def fetch_then_vanish(store, task_id, actor_id, operation):
            row = original_fetch(store, task_id, actor_id, operation)
            monkeypatch.setattr(task_mutations, "_fetch_for", original_fetch)
            store.db.execute(models.Task.__table__.delete().where(models.Task.id == task_id))
            return row

        monkeypatch.setattr(task_mutations, "_fetch_for", fetch_then_vanish)

    return arm


def test_update_after_concurrent_delete_is_store_error(test_db: Session, alice, row_vanishes_after_fetch):
    task = _create(test_db, alice)
    row_vanishes_after_fetch()

    with pytest.raises(StoreError) as exc_info:
        update_task(test_db, task.id, alice.id, _patch(title="Too late"))

    assert exc_info.value.store_code == StoreErrorCode.RECORD_NOT_FOUND
    assert exc_info.value.status_code == 404


def test_status_change_after_concurrent_delete_is_store_error(test_db: Session, alice, row_vanishes_after_fetch):
    task = _create(test_db, alice)
    row_vanishes_after_fetch()

    with pytest.raises(StoreError) as exc_info:
        update_task_status(test_db, task.id, alice.id, models.TaskStatus.COMPLETED)

    assert exc_info.value.store_code == StoreErrorCode.RECORD_NOT_FOUND


def test_delete_after_concurrent_delete_is_store_error(test_db: Session, alice, row_vanishes_after_fetch):
    task = _create(test_db, alice)
    row_vanishes_after_fetch()

    with pytest.raises(StoreError) as exc_info:
        delete_task(test_db, task.id, alice.id)

    assert exc_info.value.store_code == StoreErrorCode.RECORD_NOT_FOUND


def test_unchanged_status_after_concurrent_delete_is_not_found(test_db: Session, alice, row_vanishes_after_fetch):
    task = _create(test_db, alice)
    row_vanishes_after_fetch()

    with pytest.raises(NotFoundOrDenied):
        update_task_status(test_db, task.id, alice.id, models.TaskStatus.PENDING)
