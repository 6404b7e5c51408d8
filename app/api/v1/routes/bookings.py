from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_lifecycle
from app.schemas.booking import (
    BookingCreate,
    CancelRequest,
    ConfirmExtensionRequest,
    ConfirmPaymentRequest,
    ConfirmReschedulePaymentRequest,
    ExtendRequest,
    LifecycleOut,
    RescheduleRequest,
    booking_out,
)
from app.schemas.discounts import ActivityOut, activity_out
from app.services.booking_service import BookingLifecycle, BookingResult

router = APIRouter(prefix="/bookings", tags=["bookings"])


def lifecycle_out(result: BookingResult) -> LifecycleOut:
    return LifecycleOut(
        booking=booking_out(result.booking),
        alreadyConfirmed=result.already_confirmed,
        idempotentReplay=result.idempotent_replay,
        amountDue=result.amount_due,
        credit=result.credit.to_dict() if result.credit else None,
        notes=result.notes,
    )


@router.post("", response_model=LifecycleOut, status_code=201)
def create_booking(body: BookingCreate, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    result = lifecycle.create_booking(
        user_id=body.userId,
        location=body.location,
        start_at=body.startAt,
        end_at=body.endAt,
        seat_numbers=body.seatNumbers,
        pax=body.pax,
        members=body.members,
        students=body.students,
        tutors=body.tutors,
        member_type=body.memberType,
        contact_email=body.contactEmail,
        booked_for_emails=body.bookedForEmails,
        special_requests=body.specialRequests,
        promo_code_id=body.promoCodeId,
        pass_ref=body.passId,
        credit_amount=body.creditAmount,
        payment_method=body.paymentMethod,
        payment_id=body.paymentId,
        booking_id=body.id,
        booking_ref=body.bookingRef,
    )
    return lifecycle_out(result)


@router.post("/{booking_id}/confirm-payment", response_model=LifecycleOut)
def confirm_payment(
    booking_id: str, body: ConfirmPaymentRequest | None = None, lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    return lifecycle_out(lifecycle.confirm_booking_payment(booking_id, payment_id=body.paymentId if body else None))


@router.put("/{booking_id}/reschedule", response_model=LifecycleOut)
def reschedule(booking_id: str, body: RescheduleRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    result = lifecycle.reschedule_booking(
        booking_id,
        body.userId,
        body.startAt,
        body.endAt,
        seat_numbers=body.seatNumbers,
        credit_amount=body.creditAmount,
        payment_method=body.paymentMethod,
        reason=body.reason,
    )
    return lifecycle_out(result)


@router.post("/{booking_id}/reschedule/confirm-payment", response_model=LifecycleOut)
def confirm_reschedule_payment(
    booking_id: str, body: ConfirmReschedulePaymentRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    return lifecycle_out(lifecycle.confirm_reschedule_payment(booking_id, body.paymentId))


@router.get("/{booking_id}/reschedule/available-seats")
def available_seats(
    booking_id: str,
    startAt: datetime = Query(...),
    endAt: datetime = Query(...),
    lifecycle: BookingLifecycle = Depends(get_lifecycle),
):
    return lifecycle.available_seats_for_reschedule(booking_id, startAt, endAt)


@router.post("/{booking_id}/extend")
def extend(booking_id: str, body: ExtendRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return lifecycle.extend_booking(
        booking_id,
        body.userId,
        body.newEndAt,
        seat_numbers=body.seatNumbers,
        credit_amount=body.creditAmount,
        payment_method=body.paymentMethod,
    )


@router.post("/{booking_id}/extend/confirm-payment", response_model=LifecycleOut)
def confirm_extension(
    booking_id: str, body: ConfirmExtensionRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    result = lifecycle.confirm_extension_payment(
        booking_id,
        body.userId,
        body.newEndAt,
        payment_id=body.paymentId,
        seat_numbers=body.seatNumbers,
        credit_amount=body.creditAmount,
        payment_method=body.paymentMethod,
    )
    return lifecycle_out(result)


@router.post("/{booking_id}/cancel", response_model=LifecycleOut)
def cancel(booking_id: str, body: CancelRequest, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return lifecycle_out(lifecycle.cancel_booking(booking_id, body.userId, reason=body.reason))


@router.get("/{booking_ref}/activity", response_model=list[ActivityOut])
def activity(booking_ref: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return [activity_out(a) for a in lifecycle.activity.timeline(booking_ref)]
