"""Field-level change log for contacts."""

import json
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.logging import get_logger
from crm.models.contact import ChangeAction, ContactChangeLog
from crm.models.user import User

logger = get_logger(__name__)


def encode_value(value: Any) -> str | None:
    """JSON-encode a field value for storage; None stays None."""
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


class ChangeLogService:
    """Service for recording and reading contact change history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def compute_diff(
        old_data: dict[str, Any],
        new_data: dict[str, Any],
    ) -> dict[str, dict[str, Any]]:
        """Compute differences between old and new data.

        Only keys present in ``new_data`` are compared, so partial updates
        never report untouched fields.

        Returns:
            Dict mapping field names to {"old": value, "new": value}
        """
        changes: dict[str, dict[str, Any]] = {}
        for key, new_val in new_data.items():
            old_val = old_data.get(key)
            if old_val != new_val:
                changes[key] = {"old": old_val, "new": new_val}
        return changes

    async def log_create(self, contact_id: UUID, user: User | None = None) -> ContactChangeLog:
        entry = ContactChangeLog(
            contact_id=contact_id,
            action=ChangeAction.CREATED,
            user_id=user.id if user else None,
            user_name=user.display_name if user else None,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def log_update(
        self,
        contact_id: UUID,
        old_data: dict[str, Any],
        new_data: dict[str, Any],
        user: User | None = None,
    ) -> list[ContactChangeLog]:
        """Write one UPDATED entry per changed field.

        Returns:
            The entries written; empty when nothing changed
        """
        changes = self.compute_diff(old_data, new_data)
        if not changes:
            logger.debug("contact_change_log_skipped", contact_id=contact_id, reason="no_changes")
            return []

        entries = [
            ContactChangeLog(
                contact_id=contact_id,
                action=ChangeAction.UPDATED,
                field_name=field_name,
                old_value=encode_value(change["old"]),
                new_value=encode_value(change["new"]),
                user_id=user.id if user else None,
                user_name=user.display_name if user else None,
            )
            for field_name, change in sorted(changes.items())
        ]
        self.db.add_all(entries)
        await self.db.flush()

        logger.info(
            "contact_changes_logged",
            contact_id=contact_id,
            fields=sorted(changes),
        )
        return entries

    async def get_change_logs(self, contact_id: UUID) -> list[ContactChangeLog]:
        """Change history of a contact, newest first."""
        result = await self.db.execute(
            select(ContactChangeLog)
            .where(ContactChangeLog.contact_id == contact_id)
            .order_by(ContactChangeLog.created_at.desc(), ContactChangeLog.id)
        )
        return list(result.scalars().all())
