from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError as PydanticValidationError, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from errors import validation_error_from_pydantic
from models import TaskPriority, TaskStatus
from time_utils import is_in_past, to_utc


TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 2000


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; either accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model_cls: Type[ModelT], raw: Mapping[str, Any], messages: Optional[Dict[str, str]] = None) -> ModelT:
    """
    Validate raw input into a schema, raising the application's ValidationError.

    Args:
        model_cls: schema to validate against
        raw: loosely typed input (JSON body, query parameters)
        messages: optional per-field message overrides

    Raises:
        errors.ValidationError: naming the first failing field
    """
    try:
        return model_cls.model_validate(raw)
    except PydanticValidationError as e:
        raise validation_error_from_pydantic(e.errors(), messages) from e


def _check_title(value: str) -> str:
    if not value:
        raise ValueError("Task title cannot be empty")
    if len(value) > TITLE_MAX_LENGTH:
        raise ValueError(f"Task title must be less than {TITLE_MAX_LENGTH} characters")
    return value


def _check_description(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(f"Task description must be less than {DESCRIPTION_MAX_LENGTH} characters")
    return value


# User schemas
class UserSummary(CamelModel):
    """Minimal user projection joined onto tasks."""

    id: str
    name: str
    email: str


class User(UserSummary):
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _serialize_utc(self, value: datetime) -> datetime:
        return to_utc(value)


class UserNameMixin(CamelModel):
    @field_validator("name", mode="before", check_fields=False)
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class UserRegistration(UserNameMixin):
    email: EmailStr
    name: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-zA-Z\s'-]+$")
    password: str = Field(..., min_length=8, max_length=128)


class UserLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserUpdate(UserNameMixin):
    name: Optional[str] = Field(None, min_length=2, max_length=100, pattern=r"^[a-zA-Z\s'-]+$")
    email: Optional[EmailStr] = None

    @model_validator(mode="after")
    def _reject_null_fields(self):
        for field_name in ("name", "email"):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null")
        return self


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"


# Task schemas
class TaskCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = Field(None, min_length=1)

    @field_validator("title")
    @classmethod
    def _validate_title(cls, value: str) -> str:
        return _check_title(value)

    @field_validator("description")
    @classmethod
    def _validate_description(cls, value: Optional[str]) -> Optional[str]:
        return _check_description(value)

    @field_validator("due_date")
    @classmethod
    def _validate_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if is_in_past(value):
            raise ValueError("Due date cannot be in the past")
        return to_utc(value)


class TaskUpdate(CamelModel):
    """
    Partial task update.

    Only fields present in the request are applied (model_fields_set).
    An explicit null for assigneeId clears the assignment and an explicit null
    for dueDate clears the due date; omitting either leaves it untouched.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assignee_id: Optional[str] = Field(None, min_length=1)

    @field_validator("title")
    @classmethod
    def _validate_title(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_title(value)

    @field_validator("description")
    @classmethod
    def _validate_description(cls, value: Optional[str]) -> Optional[str]:
        return _check_description(value)

    @field_validator("due_date")
    @classmethod
    def _normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)

    @model_validator(mode="after")
    def _reject_null_for_required_fields(self):
        for field_name in ("title", "description", "status", "priority"):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{to_camel(field_name)} cannot be null")
        return self


class TaskStatusUpdate(CamelModel):
    status: TaskStatus


class Task(CamelModel):
    """Joined projection: task fields plus creator/assignee summaries."""

    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    creator_id: str
    assignee_id: Optional[str] = None
    creator: UserSummary
    assignee: Optional[UserSummary] = None

    @field_serializer("due_date", "created_at", "updated_at")
    def _serialize_utc(self, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value)


class TaskList(CamelModel):
    tasks: List[Task] = Field(default_factory=list)
    total: int
    page: int
    limit: int
    total_pages: int


class TaskSearchResults(CamelModel):
    tasks: List[Task] = Field(default_factory=list)
    query: str
    count: int


# Response envelope
DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody
