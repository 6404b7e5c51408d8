from fastapi import APIRouter, Depends

from app.api.deps import get_lifecycle
from app.schemas.discounts import DiscountSummaryOut, LedgerEntryOut, ledger_entry_out, summary_out
from app.services.booking_service import BookingLifecycle

router = APIRouter(prefix="/discounts", tags=["discounts"])


@router.get("/bookings/{booking_id}/history", response_model=list[LedgerEntryOut])
def booking_history(booking_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return [ledger_entry_out(e) for e in lifecycle.get_booking_discount_history(booking_id)]


@router.get("/bookings/{booking_id}/summary", response_model=DiscountSummaryOut)
def booking_summary(booking_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return summary_out(lifecycle.get_booking_discount_summary(booking_id))


@router.get("/users/{user_id}/history", response_model=list[LedgerEntryOut])
def user_history(user_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return [ledger_entry_out(e) for e in lifecycle.ledger.history_for_user(user_id)]
