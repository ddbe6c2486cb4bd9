"""Business logic services."""

from .centroid_lookup import CentroidLookup, InMemoryCentroidLookup, SqlCentroidLookup
from .change_log_service import ChangeLogService
from .contact_filter_service import ContactFilterService
from .contact_list_service import ContactListService, ContactListView
from .contact_service import ContactService
from .event_service import EventParticipant, EventService
from .group_service import DefaultGroupReconciliation, GroupService
from .team_service import TeamService
from .visibility_service import VisibilityService

__all__ = [
    "CentroidLookup",
    "ChangeLogService",
    "ContactFilterService",
    "ContactListService",
    "ContactListView",
    "ContactService",
    "DefaultGroupReconciliation",
    "EventParticipant",
    "EventService",
    "GroupService",
    "InMemoryCentroidLookup",
    "SqlCentroidLookup",
    "TeamService",
    "VisibilityService",
]
