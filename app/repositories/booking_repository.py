from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.booking import Booking, BookingStatus
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import BookingStore


class BookingRepository(SqlRepository, BookingStore):
    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, booking_id: str) -> Optional[Booking]:
        return self.db.get(Booking, booking_id)

    def get_by_ref(self, booking_ref: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.booking_ref == booking_ref).first()

    def add(self, booking: Booking) -> Booking:
        return self._add(booking)

    def save(self, booking: Booking) -> Booking:
        self.db.add(booking)
        self._commit()
        return booking

    def find_overlapping(
        self, location: str, start_at: datetime, end_at: datetime, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        # Half-open intervals: touching end/start is not an overlap.
        q = self.db.query(Booking).filter(
            Booking.location == location,
            Booking.status.notin_(BookingStatus.RELEASED),
            Booking.start_at < end_at,
            Booking.end_at > start_at,
        )
        if exclude_booking_id:
            q = q.filter(Booking.id != exclude_booking_id)
        return q.order_by(Booking.start_at.asc()).all()

    def find_unpaid_created_before(self, cutoff: datetime) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.status == BookingStatus.PENDING_PAYMENT,
                Booking.confirmed_payment == False,  # noqa: E712
                Booking.created_at < cutoff,
            )
            .all()
        )
