from fastapi import APIRouter, Depends

from app.api.deps import get_lifecycle
from app.api.v1.routes.bookings import lifecycle_out
from app.schemas.booking import LifecycleOut
from app.schemas.discounts import PassApplyRequest, PassValidateRequest
from app.services.booking_service import BookingLifecycle

router = APIRouter(prefix="/passes", tags=["passes"])


@router.post("/validate")
def validate_pass(body: PassValidateRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return lifecycle.validate_pass_usage(
        body.userId, body.passType, body.startAt, body.endAt, pax=body.pax, member_type=body.memberType
    )


@router.post("/apply", response_model=LifecycleOut)
def apply_pass(body: PassApplyRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return lifecycle_out(lifecycle.apply_pass_to_booking(body.bookingId, body.userId, body.passId))


@router.get("/balance/{user_id}")
def pass_balance(user_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return lifecycle.get_user_pass_balance(user_id)
