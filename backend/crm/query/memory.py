"""Evaluate predicate trees against in-memory contact snapshots.

Mirrors ``crm.query.sql`` so filter semantics can be checked without a
database, and lets single-contact reads re-check visibility on an already
loaded row.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, assert_never
from uuid import UUID

from crm.query.predicates import (
    And,
    AttributeCompare,
    Compare,
    CompareOp,
    EventRoleParticipation,
    ListMembership,
    MatchAll,
    MatchNone,
    Not,
    Or,
    PostalKeyIn,
    Predicate,
)


@dataclass(frozen=True)
class ContactSnapshot:
    """Plain view of a contact plus the relations predicates can test."""

    fields: Mapping[str, Any]
    attributes: Mapping[str, str] = field(default_factory=dict)
    event_role_ids: frozenset[UUID] = frozenset()
    list_ids: frozenset[UUID] = frozenset()

    @classmethod
    def from_contact(
        cls,
        contact: Any,
        attributes: Mapping[str, str] | None = None,
        event_role_ids: frozenset[UUID] = frozenset(),
        list_ids: frozenset[UUID] = frozenset(),
    ) -> "ContactSnapshot":
        columns = contact.__table__.columns.keys()
        return cls(
            fields={name: getattr(contact, name) for name in columns},
            attributes=dict(attributes or {}),
            event_role_ids=event_role_ids,
            list_ids=list_ids,
        )


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _ordered(value: Any) -> Any:
    return _as_aware(value) if isinstance(value, datetime) else value


def _matches_compare(predicate: Compare, snapshot: ContactSnapshot) -> bool:
    value = snapshot.fields.get(predicate.field)
    match predicate.op:
        case CompareOp.EQ:
            return value is not None and value == predicate.value
        case CompareOp.CONTAINS:
            if value is None:
                return False
            return str(predicate.value).casefold() in str(value).casefold()
        case CompareOp.IN:
            return value is not None and value in predicate.value
        case CompareOp.GTE:
            return value is not None and _ordered(value) >= _ordered(predicate.value)
        case CompareOp.LT:
            return value is not None and _ordered(value) < _ordered(predicate.value)
        case CompareOp.IS_NULL:
            return value is None
        case CompareOp.IS_BLANK:
            return value is None or value == ""
        case CompareOp.IS_PRESENT:
            return value is not None and value != ""
        case _:
            assert_never(predicate.op)


def _matches_attribute(predicate: AttributeCompare, snapshot: ContactSnapshot) -> bool:
    value = snapshot.attributes.get(predicate.key)
    if value is None:
        return False
    if predicate.op == CompareOp.EQ:
        return value.strip() == predicate.value.strip()
    if predicate.op == CompareOp.CONTAINS:
        return predicate.value.casefold() in value.casefold()
    raise ValueError(f"Unsupported attribute operator: {predicate.op}")


def _matches_postal_key(predicate: PostalKeyIn, snapshot: ContactSnapshot) -> bool:
    country_code = snapshot.fields.get("country_code")
    postal = (snapshot.fields.get("postal_code") or "").strip().upper()
    if not country_code or not postal:
        return False
    return any(
        key.country_code == country_code and key.postal_code == postal
        for key in predicate.keys
    )


def matches(predicate: Predicate, snapshot: ContactSnapshot) -> bool:
    """True when ``snapshot`` satisfies ``predicate``."""
    match predicate:
        case MatchAll():
            return True
        case MatchNone():
            return False
        case And(terms=terms):
            return all(matches(t, snapshot) for t in terms)
        case Or(terms=terms):
            return any(matches(t, snapshot) for t in terms)
        case Not(term=term):
            return not matches(term, snapshot)
        case Compare():
            return _matches_compare(predicate, snapshot)
        case AttributeCompare():
            return _matches_attribute(predicate, snapshot)
        case EventRoleParticipation(event_role_id=role_id):
            return role_id in snapshot.event_role_ids
        case PostalKeyIn():
            return _matches_postal_key(predicate, snapshot)
        case ListMembership(list_id=list_id):
            return list_id in snapshot.list_ids
        case _:
            assert_never(predicate)

