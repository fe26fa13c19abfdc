# activity.py
import csv
import io
import logging
from datetime import datetime, timezone
from typing import List, Optional

import databases

from models import ActionKind, ActivityLog
from schemas import ActivityLogEntry

logger = logging.getLogger(__name__)

activity_logs = ActivityLog.__table__

SYSTEM_ACTOR = "system"


def escape_csv_formula(val: str) -> str:
    return "'" + val if val.startswith(("=", "+", "-", "@")) else val


def _entry_from_row(row) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=row["id"],
        user_id=row["user_id"],
        username=row["username"],
        action_type=row["action_type"],
        details=row["details"],
        timestamp=row["timestamp"],
    )


class ActivityRecorder:
    """
    Append-only audit trail.

    `record` is best-effort: it runs after the mutation it describes has
    already been written, and a failure here is logged and dropped so the
    caller's operation still succeeds.
    """

    def __init__(self, database: databases.Database, recent_limit: int = 50):
        self.database = database
        self.recent_limit = recent_limit

    async def record(
        self,
        actor_id: Optional[int],
        actor_username: str,
        action: ActionKind,
        details: str,
    ) -> None:
        try:
            query = activity_logs.insert().values(
                user_id=actor_id,
                username=actor_username,
                action_type=ActionKind(action).value,
                details=details,
                timestamp=datetime.now(timezone.utc),
            )
            await self.database.execute(query)
        except Exception:
            logger.exception(
                "Failed to record activity action=%s user=%s details=%r",
                action, actor_username, details,
            )

    async def list_recent(self, limit: Optional[int] = None) -> List[ActivityLogEntry]:
        query = (
            activity_logs.select()
            .order_by(activity_logs.c.timestamp.desc(), activity_logs.c.id.desc())
            .limit(limit or self.recent_limit)
        )
        return [_entry_from_row(r) for r in await self.database.fetch_all(query)]

    async def list_all(self) -> List[ActivityLogEntry]:
        """Whole trail, oldest first, for the audit report."""
        query = activity_logs.select().order_by(
            activity_logs.c.timestamp.asc(), activity_logs.c.id.asc()
        )
        return [_entry_from_row(r) for r in await self.database.fetch_all(query)]

    async def export_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["Date", "User", "Action", "Details"])
        for entry in await self.list_all():
            writer.writerow([
                entry.timestamp.isoformat(),
                escape_csv_formula(entry.username),
                entry.action_type.value,
                escape_csv_formula(entry.details),
            ])
        return buffer.getvalue()
