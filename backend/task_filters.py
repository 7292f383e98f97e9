"""
Filter, sort and pagination normalization for task listing.

normalize_task_filters() turns loosely typed input (query-string values,
JSON objects) into a TaskQueryDescriptor: immutable, validated, with every
default applied. Query engines only ever see descriptors.
"""

import enum
import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel, to_snake

from models import TaskPriority, TaskStatus
from schemas import CamelModel, parse_payload
from time_utils import parse_iso_datetime, to_utc

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SEARCH_MIN_LENGTH = 2
SEARCH_MAX_LENGTH = 255


class SortField(str, enum.Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    DUE_DATE = "dueDate"
    TITLE = "title"
    PRIORITY = "priority"
    STATUS = "status"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


FILTER_MESSAGES = {
    "status": "Status must be one of: PENDING, IN_PROGRESS, COMPLETED",
    "priority": "Priority must be one of: LOW, MEDIUM, HIGH",
    "assigneeId": "Assignee ID must be a string",
    "creatorId": "Creator ID must be a string",
    "page": "Page must be an integer greater than or equal to 1",
    "limit": f"Limit must be an integer between 1 and {MAX_PAGE_SIZE}",
    "sortBy": "Sort field must be one of: " + ", ".join(field.value for field in SortField),
    "sortOrder": "Sort order must be one of: asc, desc",
}
# Same messages when callers use snake_case keys
FILTER_MESSAGES.update({to_snake(key): message for key, message in list(FILTER_MESSAGES.items())})


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class TaskQueryDescriptor(CamelModel):
    """Canonical, fully defaulted task listing query."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[str] = None
    creator_id: Optional[str] = None
    due_date_from: Optional[datetime] = None
    due_date_to: Optional[datetime] = None
    search: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC

    @field_validator("status", "priority", "assignee_id", "creator_id", mode="before")
    @classmethod
    def _empty_means_absent(cls, value):
        value = _blank_to_none(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date_from", "due_date_to", mode="before")
    @classmethod
    def _parse_date(cls, value, info):
        value = _blank_to_none(value)
        if value is None:
            return None
        if isinstance(value, datetime):
            return to_utc(value)
        if isinstance(value, str):
            try:
                return parse_iso_datetime(value)
            except ValueError:
                pass
        raise ValueError(f"{to_camel(info.field_name)} must be a valid ISO date")

    @field_validator("search", mode="before")
    @classmethod
    def _validate_search(cls, value):
        # Unlike search_tasks(), a blank search here is an error, not a no-op
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("Search query must be a string")
        value = value.strip()
        if len(value) < SEARCH_MIN_LENGTH:
            raise ValueError(f"Search query must be at least {SEARCH_MIN_LENGTH} characters long")
        if len(value) > SEARCH_MAX_LENGTH:
            raise ValueError(f"Search query must be less than {SEARCH_MAX_LENGTH} characters")
        return value

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def normalize_task_filters(raw: Optional[Mapping[str, Any]] = None) -> TaskQueryDescriptor:
    """
    Validate and normalize raw listing parameters.

    Args:
        raw: filter/sort/page parameters, camelCase or snake_case keys;
             unknown keys are ignored

    Returns:
        Immutable TaskQueryDescriptor with defaults applied

    Raises:
        errors.ValidationError: on the first invalid parameter
    """
    params = dict(raw or {})
    logger.debug(f"Normalizing task filters: {params}")
    descriptor = parse_payload(TaskQueryDescriptor, params, FILTER_MESSAGES)
    logger.debug(f"Normalized task filters: {descriptor}")
    return descriptor
