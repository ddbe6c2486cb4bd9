"""SQLAlchemy models."""

from crm.models.contact import (
    CONTACT_FILTER_FIELDS,
    CONTACT_SEARCH_FIELDS,
    ChangeAction,
    Contact,
    ContactAttribute,
    ContactAttributeType,
    ContactChangeLog,
)
from crm.models.contact_list import ContactList, ContactListMember, ContactListType
from crm.models.event import Event, EventContact, EventContactRole, EventRole
from crm.models.geo import PostalCodeCentroid
from crm.models.group import (
    ALL_APP_MODULES,
    CONTACT_SUBMODULE_FIELDS,
    AppModule,
    ContactSubmodule,
    Group,
    UserGroup,
)
from crm.models.team import Team, TeamMember
from crm.models.user import User, UserRole

__all__ = [
    "ALL_APP_MODULES",
    "AppModule",
    "CONTACT_FILTER_FIELDS",
    "CONTACT_SEARCH_FIELDS",
    "CONTACT_SUBMODULE_FIELDS",
    "ChangeAction",
    "Contact",
    "ContactAttribute",
    "ContactAttributeType",
    "ContactChangeLog",
    "ContactList",
    "ContactListMember",
    "ContactListType",
    "ContactSubmodule",
    "Event",
    "EventContact",
    "EventContactRole",
    "EventRole",
    "Group",
    "PostalCodeCentroid",
    "Team",
    "TeamMember",
    "User",
    "UserGroup",
    "UserRole",
]
