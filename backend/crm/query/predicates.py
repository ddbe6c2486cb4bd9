"""Storage-agnostic predicate tree over contacts.

Filters, free-text search and visibility all reduce to these nodes. The
tree is compiled to SQLAlchemy clauses by ``crm.query.sql`` and evaluated
against in-memory snapshots by ``crm.query.memory``.

Field names on ``Compare`` are Contact attribute names (``postal_code``,
``group_id``, ``created_at``...).
"""

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from crm.core.geo import PostalKey


class CompareOp(str, enum.Enum):
    """Comparison operators understood by every predicate backend."""

    EQ = "eq"
    CONTAINS = "contains"  # case-insensitive substring
    IN = "in"
    GTE = "gte"
    LT = "lt"
    IS_NULL = "is_null"
    IS_BLANK = "is_blank"  # null or empty string
    IS_PRESENT = "is_present"  # not null and not empty string


@dataclass(frozen=True)
class MatchAll:
    pass


@dataclass(frozen=True)
class MatchNone:
    pass


@dataclass(frozen=True)
class And:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True)
class Not:
    term: "Predicate"


@dataclass(frozen=True)
class Compare:
    field: str
    op: CompareOp
    value: Any = None


@dataclass(frozen=True)
class AttributeCompare:
    """Contact has a profile attribute ``key`` whose text value matches."""

    key: str
    op: CompareOp
    value: str


@dataclass(frozen=True)
class EventRoleParticipation:
    """Contact participates in some event holding the given role."""

    event_role_id: UUID


@dataclass(frozen=True)
class PostalKeyIn:
    """Contact's normalized (country_code, postal_code) is one of ``keys``."""

    keys: frozenset[PostalKey]


@dataclass(frozen=True)
class ListMembership:
    """Contact has an explicit membership row in the given list."""

    list_id: UUID


Predicate = (
    MatchAll
    | MatchNone
    | And
    | Or
    | Not
    | Compare
    | AttributeCompare
    | EventRoleParticipation
    | PostalKeyIn
    | ListMembership
)

MATCH_ALL = MatchAll()
MATCH_NONE = MatchNone()


def and_(*terms: Predicate | None) -> Predicate:
    """Conjunction that drops None/MatchAll terms and flattens nested Ands."""
    flat: list[Predicate] = []
    for term in terms:
        if term is None or isinstance(term, MatchAll):
            continue
        if isinstance(term, MatchNone):
            return MATCH_NONE
        if isinstance(term, And):
            flat.extend(term.terms)
        else:
            flat.append(term)

    if not flat:
        return MATCH_ALL
    if len(flat) == 1:
        return flat[0]
    return And(tuple(flat))


def or_(*terms: Predicate | None) -> Predicate:
    """Disjunction that drops None/MatchNone terms and flattens nested Ors."""
    flat: list[Predicate] = []
    for term in terms:
        if term is None or isinstance(term, MatchNone):
            continue
        if isinstance(term, MatchAll):
            return MATCH_ALL
        if isinstance(term, Or):
            flat.extend(term.terms)
        else:
            flat.append(term)

    if not flat:
        return MATCH_NONE
    if len(flat) == 1:
        return flat[0]
    return Or(tuple(flat))


def not_(term: Predicate) -> Predicate:
    match term:
        case MatchAll():
            return MATCH_NONE
        case MatchNone():
            return MATCH_ALL
        case Not(term=inner):
            return inner
        case _:
            return Not(term)


def field_in(field: str, values: Iterable[Any]) -> Predicate:
    """``field IN values``; an empty collection matches nothing."""
    frozen = frozenset(values)
    if not frozen:
        return MATCH_NONE
    return Compare(field, CompareOp.IN, frozen)
