"""Contact predicate tree and its SQL / in-memory backends."""

from crm.query.predicates import (
    MATCH_ALL,
    MATCH_NONE,
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

__all__ = [
    "MATCH_ALL",
    "MATCH_NONE",
    "And",
    "AttributeCompare",
    "Compare",
    "CompareOp",
    "EventRoleParticipation",
    "ListMembership",
    "MatchAll",
    "MatchNone",
    "Not",
    "Or",
    "PostalKeyIn",
    "Predicate",
]
