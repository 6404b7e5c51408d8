from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Integer, Boolean, Numeric, Text, JSON, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class BookingStatus:
    PENDING_PAYMENT = "PENDING_PAYMENT"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    # Bookings in these states no longer hold seats
    RELEASED = (CANCELLED, REFUNDED)


class MemberType:
    MEMBER = "MEMBER"
    STUDENT = "STUDENT"
    TUTOR = "TUTOR"

    ALL = (MEMBER, STUDENT, TUTOR)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (CheckConstraint("reschedule_count <= 1", name="ck_bookings_reschedule_once"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    location: Mapped[str] = mapped_column(String(120), index=True)

    booked_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)  # inclusive
    end_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)    # exclusive
    seat_numbers: Mapped[list] = mapped_column(JSON, default=list)

    # Party composition
    pax: Mapped[int] = mapped_column(Integer, default=1)
    members: Mapped[int] = mapped_column(Integer, default=0)
    students: Mapped[int] = mapped_column(Integer, default=0)
    tutors: Mapped[int] = mapped_column(Integer, default=0)
    member_type: Mapped[str] = mapped_column(String(12), default=MemberType.MEMBER)  # booker's role
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    booked_for_emails: Mapped[list] = mapped_column(JSON, default=list)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Money. total_cost is the gross price and never changes after creation;
    # total_amount is what is owed after discounts, including processing_fee.
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    processing_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)

    promo_code_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    promo_discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    pass_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    pass_pending: Mapped[bool] = mapped_column(Boolean, default=False)  # applied on payment confirmation
    pass_discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    confirmed_payment: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(30), default=BookingStatus.PENDING_PAYMENT, index=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Reschedule (at most once)
    reschedule_count: Mapped[int] = mapped_column(Integer, default=0)
    rescheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reschedule_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    reschedule_credit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    reschedule_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    reschedule_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    reschedule_payment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reschedule_payment_confirmed: Mapped[bool] = mapped_column(Boolean, default=True)

    # Extensions: gross cost of each confirmed extension, stored as decimal strings
    extension_amounts: Mapped[list] = mapped_column(JSON, default=list)
    extension_credit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_actual_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    @property
    def extension_total(self) -> Decimal:
        return sum((Decimal(str(a)) for a in (self.extension_amounts or [])), Decimal("0"))

    @property
    def amount_before_fees(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.processing_fee or 0)

    @property
    def is_active(self) -> bool:
        return self.status not in BookingStatus.RELEASED
