import logging
from typing import Iterable, List, Optional

from app.core.config import settings
from app.core.errors import SeatConflictError
from app.models.booking import Booking, BookingStatus
from app.repositories.interfaces import BookingStore
from app.services.pricing_service import TimeWindow

logger = logging.getLogger(__name__)


def seat_map() -> List[str]:
    return [s.strip() for s in settings.SEAT_MAP.split(",") if s.strip()]


class ConflictDetector:
    """Read-only seat/time collision checks for a location.

    Pending bookings count as conflicts as well as confirmed ones: an unpaid
    booking still provisionally holds its seats.
    """

    def __init__(self, bookings: BookingStore):
        self.bookings = bookings

    def find_conflicts(
        self, location: str, window: TimeWindow, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        return self.bookings.find_overlapping(location, window.start, window.end, exclude_booking_id)

    def seat_conflicts(
        self,
        location: str,
        window: TimeWindow,
        seats: Iterable[str],
        exclude_booking_id: Optional[str] = None,
    ) -> dict:
        """Return {"conflicting_seats": [...], "confirmed": [...], "pending": [...]}."""
        wanted = set(seats)
        taken = set()
        confirmed, pending = [], []
        for b in self.find_conflicts(location, window, exclude_booking_id):
            clash = wanted & set(b.seat_numbers or [])
            if not clash:
                continue
            taken |= clash
            row = {
                "booking_ref": b.booking_ref,
                "seats": sorted(clash),
                "start_at": b.start_at.isoformat(),
                "end_at": b.end_at.isoformat(),
            }
            (confirmed if b.status == BookingStatus.CONFIRMED else pending).append(row)
        return {"conflicting_seats": sorted(taken), "confirmed": confirmed, "pending": pending}

    def check_seats(
        self,
        location: str,
        window: TimeWindow,
        seats: Iterable[str],
        exclude_booking_id: Optional[str] = None,
        error_cls=SeatConflictError,
    ) -> None:
        report = self.seat_conflicts(location, window, seats, exclude_booking_id)
        if report["conflicting_seats"]:
            logger.info(
                "seat conflict at %s for %s: %s", location, window, ", ".join(report["conflicting_seats"])
            )
            raise error_cls(
                "Seats already booked for this time: " + ", ".join(report["conflicting_seats"]),
                details={
                    **report,
                    "confirmed_count": len(report["confirmed"]),
                    "pending_count": len(report["pending"]),
                },
            )

    def available_seats(
        self, location: str, window: TimeWindow, exclude_booking_id: Optional[str] = None
    ) -> dict:
        occupied = set()
        for b in self.find_conflicts(location, window, exclude_booking_id):
            occupied |= set(b.seat_numbers or [])
        all_seats = seat_map()
        return {
            "location": location,
            "start_at": window.start.isoformat(),
            "end_at": window.end.isoformat(),
            "available_seats": [s for s in all_seats if s not in occupied],
            "occupied_seats": sorted(occupied),
            "total_seats": len(all_seats),
        }
