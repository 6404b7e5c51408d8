from typing import List

from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLogEntry
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import ActivityStore


class ActivityRepository(SqlRepository, ActivityStore):
    def __init__(self, db: Session):
        super().__init__(db)

    def add(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        return self._add(entry)

    def for_booking_ref(self, booking_ref: str) -> List[ActivityLogEntry]:
        return (
            self.db.query(ActivityLogEntry)
            .filter(ActivityLogEntry.booking_ref == booking_ref)
            .order_by(ActivityLogEntry.created_at.desc())
            .all()
        )
