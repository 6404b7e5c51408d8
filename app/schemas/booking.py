from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional

from app.models.booking import Booking


class BookingCreate(BaseModel):
    id: Optional[str] = None
    bookingRef: Optional[str] = None
    userId: str
    location: str
    startAt: datetime
    endAt: datetime
    seatNumbers: List[str] = Field(default_factory=list)
    pax: int = 1
    members: int = 0
    students: int = 0
    tutors: int = 0
    memberType: str = "MEMBER"
    contactEmail: Optional[str] = None  # plain str to allow .local and other dev domains
    bookedForEmails: List[str] = Field(default_factory=list)
    specialRequests: Optional[str] = None
    promoCodeId: Optional[str] = None
    passId: Optional[str] = None  # entitlement id, purchase id or pass type
    creditAmount: Decimal = Decimal("0")
    paymentMethod: Optional[str] = None
    paymentId: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    paymentId: Optional[str] = None


class RescheduleRequest(BaseModel):
    userId: str
    startAt: datetime
    endAt: datetime
    seatNumbers: Optional[List[str]] = None
    creditAmount: Decimal = Decimal("0")
    paymentMethod: Optional[str] = None
    reason: Optional[str] = None


class ConfirmReschedulePaymentRequest(BaseModel):
    paymentId: str


class ExtendRequest(BaseModel):
    userId: str
    newEndAt: datetime
    seatNumbers: Optional[List[str]] = None
    creditAmount: Decimal = Decimal("0")
    paymentMethod: Optional[str] = None


class ConfirmExtensionRequest(ExtendRequest):
    paymentId: Optional[str] = None


class CancelRequest(BaseModel):
    userId: str
    reason: Optional[str] = None


class BookingOut(BaseModel):
    id: str
    bookingRef: str
    userId: str
    location: str
    startAt: datetime
    endAt: datetime
    seatNumbers: List[str]
    pax: int
    status: str
    confirmedPayment: bool
    totalCost: Decimal
    totalAmount: Decimal
    processingFee: Decimal
    paymentMethod: Optional[str] = None
    paymentId: Optional[str] = None
    promoCodeId: Optional[str] = None
    promoDiscountAmount: Decimal = Decimal("0")
    creditAmount: Decimal = Decimal("0")
    passId: Optional[str] = None
    passPending: bool = False
    passDiscountAmount: Decimal = Decimal("0")
    rescheduleCount: int = 0
    rescheduledAt: Optional[datetime] = None
    rescheduleCost: Decimal = Decimal("0")
    rescheduleCreditAmount: Decimal = Decimal("0")
    rescheduleAmount: Decimal = Decimal("0")
    reschedulePaymentId: Optional[str] = None
    reschedulePaymentConfirmed: bool = True
    extensionAmounts: List[Decimal] = Field(default_factory=list)
    totalActualCost: Optional[Decimal] = None


class LifecycleOut(BaseModel):
    booking: BookingOut
    alreadyConfirmed: bool = False
    idempotentReplay: bool = False
    amountDue: Decimal = Decimal("0")
    credit: Optional[dict] = None
    notes: List[str] = Field(default_factory=list)


def booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        id=b.id,
        bookingRef=b.booking_ref,
        userId=b.user_id,
        location=b.location,
        startAt=b.start_at,
        endAt=b.end_at,
        seatNumbers=list(b.seat_numbers or []),
        pax=b.pax,
        status=b.status,
        confirmedPayment=b.confirmed_payment,
        totalCost=b.total_cost,
        totalAmount=b.total_amount,
        processingFee=b.processing_fee or 0,
        paymentMethod=b.payment_method,
        paymentId=b.payment_id,
        promoCodeId=b.promo_code_id,
        promoDiscountAmount=b.promo_discount_amount or 0,
        creditAmount=b.credit_amount or 0,
        passId=b.pass_id,
        passPending=b.pass_pending,
        passDiscountAmount=b.pass_discount_amount or 0,
        rescheduleCount=b.reschedule_count or 0,
        rescheduledAt=b.rescheduled_at,
        rescheduleCost=b.reschedule_cost or 0,
        rescheduleCreditAmount=b.reschedule_credit_amount or 0,
        rescheduleAmount=b.reschedule_amount or 0,
        reschedulePaymentId=b.reschedule_payment_id,
        reschedulePaymentConfirmed=b.reschedule_payment_confirmed,
        extensionAmounts=[Decimal(str(a)) for a in (b.extension_amounts or [])],
        totalActualCost=b.total_actual_cost,
    )
