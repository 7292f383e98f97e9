"""
Immutable predicate trees for task queries.

Filters are built as small frozen objects and combined functionally:

    visibility = any_of(Eq("creator_id", uid), Eq("assignee_id", uid))
    where = all_of(Eq("status", TaskStatus.PENDING), search_clause)

Combining never mutates an existing node, so adding a clause can not drop or
replace another one. to_sqlalchemy() turns a tree into a SQLAlchemy boolean
expression against a mapped model.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Tuple

from sqlalchemy import String, and_, func, or_, true
from sqlalchemy.sql.elements import ColumnElement


class Predicate:
    """Base class for predicate nodes."""

    def __and__(self, other: "Predicate") -> "Predicate":
        return all_of(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return any_of(self, other)


@dataclass(frozen=True)
class Eq(Predicate):
    """field == value (``value=None`` means IS NULL)."""

    field: str
    value: Any


@dataclass(frozen=True)
class Range(Predicate):
    """lower <= field <= upper, either bound optional."""

    field: str
    lower: Optional[datetime] = None
    upper: Optional[datetime] = None


@dataclass(frozen=True)
class Contains(Predicate):
    """Case-insensitive substring match."""

    field: str
    needle: str


@dataclass(frozen=True)
class And(Predicate):
    children: Tuple[Predicate, ...]


@dataclass(frozen=True)
class Or(Predicate):
    children: Tuple[Predicate, ...]


def _flatten(kind, predicates) -> Tuple[Predicate, ...]:
    children = []
    for predicate in predicates:
        if predicate is None:
            continue
        if isinstance(predicate, kind):
            children.extend(predicate.children)
        else:
            children.append(predicate)
    return tuple(children)


def all_of(*predicates: Optional[Predicate]) -> Optional[Predicate]:
    """AND the given predicates together, skipping None. Returns None if empty."""
    children = _flatten(And, predicates)
    if not children:
        return None
    if len(children) == 1:
        return children[0]
    return And(children)


def any_of(*predicates: Optional[Predicate]) -> Optional[Predicate]:
    """OR the given predicates together, skipping None. Returns None if empty."""
    children = _flatten(Or, predicates)
    if not children:
        return None
    if len(children) == 1:
        return children[0]
    return Or(children)


def _column(model, field: str):
    column = getattr(model, field, None)
    if column is None or not hasattr(column, "property"):
        raise ValueError(f"Unknown field '{field}' for {model.__name__}")
    return column


def to_sqlalchemy(predicate: Optional[Predicate], model) -> ColumnElement:
    """
    Compile a predicate tree into a SQLAlchemy expression.

    Args:
        predicate: tree to compile; None compiles to TRUE
        model: mapped class the field names refer to

    Returns:
        SQLAlchemy boolean clause

    Raises:
        ValueError: on an unknown field or node type
    """
    if predicate is None:
        return true()

    if isinstance(predicate, Eq):
        column = _column(model, predicate.field)
        if predicate.value is None:
            return column.is_(None)
        return column == predicate.value

    if isinstance(predicate, Range):
        column = _column(model, predicate.field)
        bounds = []
        if predicate.lower is not None:
            bounds.append(column >= predicate.lower)
        if predicate.upper is not None:
            bounds.append(column <= predicate.upper)
        if not bounds:
            return true()
        return and_(*bounds)

    if isinstance(predicate, Contains):
        # Both sides lowered so the match never relies on backend collation
        column = _column(model, predicate.field)
        return func.lower(column, type_=String).contains(predicate.needle.lower(), autoescape=True)

    if isinstance(predicate, And):
        return and_(*(to_sqlalchemy(child, model) for child in predicate.children))

    if isinstance(predicate, Or):
        return or_(*(to_sqlalchemy(child, model) for child in predicate.children))

    raise ValueError(f"Unsupported predicate node: {type(predicate).__name__}")
