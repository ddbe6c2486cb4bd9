"""Compile predicate trees into SQLAlchemy boolean clauses over ``Contact``."""

from collections import defaultdict
from typing import assert_never

from sqlalchemy import (
    ColumnElement,
    and_,
    exists,
    false,
    func,
    not_,
    or_,
    select,
    true,
)

from crm.models.contact import Contact, ContactAttribute
from crm.models.contact_list import ContactListMember
from crm.models.event import EventContact, EventContactRole
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

LIKE_ESCAPE = "\\"


def like_pattern(value: str) -> str:
    """``%value%`` with LIKE wildcards in ``value`` escaped."""
    escaped = (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"


def _contact_column(field: str):
    column = getattr(Contact, field, None)
    if column is None or field not in Contact.__table__.columns:
        raise ValueError(f"Unknown contact field: {field}")
    return column


def _compile_compare(predicate: Compare) -> ColumnElement[bool]:
    column = _contact_column(predicate.field)
    match predicate.op:
        case CompareOp.EQ:
            return column == predicate.value
        case CompareOp.CONTAINS:
            return column.ilike(like_pattern(str(predicate.value)), escape=LIKE_ESCAPE)
        case CompareOp.IN:
            values = list(predicate.value)
            if not values:
                return false()
            return column.in_(values)
        case CompareOp.GTE:
            return column >= predicate.value
        case CompareOp.LT:
            return column < predicate.value
        case CompareOp.IS_NULL:
            return column.is_(None)
        case CompareOp.IS_BLANK:
            return or_(column.is_(None), column == "")
        case CompareOp.IS_PRESENT:
            return and_(column.is_not(None), column != "")
        case _:
            assert_never(predicate.op)


def _compile_attribute(predicate: AttributeCompare) -> ColumnElement[bool]:
    text_value = func.coalesce(ContactAttribute.string_value, ContactAttribute.location_label)
    if predicate.op == CompareOp.EQ:
        value_clause = func.trim(text_value) == predicate.value.strip()
    elif predicate.op == CompareOp.CONTAINS:
        value_clause = text_value.ilike(like_pattern(predicate.value), escape=LIKE_ESCAPE)
    else:
        raise ValueError(f"Unsupported attribute operator: {predicate.op}")

    return exists(
        select(ContactAttribute.id).where(
            ContactAttribute.contact_id == Contact.id,
            ContactAttribute.key == predicate.key,
            value_clause,
        )
    )


def _compile_event_role(predicate: EventRoleParticipation) -> ColumnElement[bool]:
    return exists(
        select(EventContact.id)
        .join(EventContactRole, EventContactRole.event_contact_id == EventContact.id)
        .where(
            EventContact.contact_id == Contact.id,
            EventContactRole.event_role_id == predicate.event_role_id,
        )
    )


def _compile_postal_keys(predicate: PostalKeyIn) -> ColumnElement[bool]:
    if not predicate.keys:
        return false()

    by_country: dict[str, set[str]] = defaultdict(set)
    for key in predicate.keys:
        by_country[key.country_code].add(key.postal_code)

    normalized_postal = func.upper(func.trim(Contact.postal_code))
    return or_(
        *(
            and_(
                Contact.country_code == country,
                normalized_postal.in_(sorted(codes)),
            )
            for country, codes in sorted(by_country.items())
        )
    )


def _compile_list_membership(predicate: ListMembership) -> ColumnElement[bool]:
    return exists(
        select(ContactListMember.id).where(
            ContactListMember.contact_id == Contact.id,
            ContactListMember.list_id == predicate.list_id,
        )
    )


def compile_predicate(predicate: Predicate) -> ColumnElement[bool]:
    """Translate a predicate tree into a WHERE clause on ``Contact``."""
    match predicate:
        case MatchAll():
            return true()
        case MatchNone():
            return false()
        case And(terms=terms):
            return and_(*(compile_predicate(t) for t in terms))
        case Or(terms=terms):
            return or_(*(compile_predicate(t) for t in terms))
        case Not(term=term):
            return not_(compile_predicate(term))
        case Compare():
            return _compile_compare(predicate)
        case AttributeCompare():
            return _compile_attribute(predicate)
        case EventRoleParticipation():
            return _compile_event_role(predicate)
        case PostalKeyIn():
            return _compile_postal_keys(predicate)
        case ListMembership():
            return _compile_list_membership(predicate)
        case _:
            assert_never(predicate)
