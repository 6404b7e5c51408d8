import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from app.models.activity_log import ActivityLogEntry
from app.models.booking import Booking
from app.repositories.interfaces import ActivityStore

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Human-readable booking timeline. Writing to it never fails the caller."""

    def __init__(self, store: ActivityStore):
        self.store = store

    def record(
        self,
        booking: Booking,
        activity_type: str,
        title: str,
        description: str = "",
        *,
        actor: Optional[str] = None,
        amount: Optional[Decimal] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Optional[ActivityLogEntry]:
        try:
            entry = ActivityLogEntry(
                id=str(uuid.uuid4()),
                booking_id=booking.id,
                booking_ref=booking.booking_ref,
                activity_type=activity_type,
                title=title,
                description=description,
                actor=actor or booking.user_id,
                amount=amount,
                old_value=old_value,
                new_value=new_value,
                details_json=details or {},
            )
            return self.store.add(entry)
        except Exception:
            logger.exception("could not record %s for booking %s", activity_type, getattr(booking, "id", None))
            return None

    def timeline(self, booking_ref: str) -> List[ActivityLogEntry]:
        return self.store.for_booking_ref(booking_ref)
