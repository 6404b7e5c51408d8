from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Text, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class ActivityType:
    BOOKING_CREATED = "BOOKING_CREATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PROMO_APPLIED = "PROMO_APPLIED"
    CREDIT_USED = "CREDIT_USED"
    PASS_USED = "PASS_USED"
    RESCHEDULE_APPROVED = "RESCHEDULE_APPROVED"
    RESCHEDULE_PAYMENT_CONFIRMED = "RESCHEDULE_PAYMENT_CONFIRMED"
    EXTEND_REQUESTED = "EXTEND_REQUESTED"
    EXTEND_APPROVED = "EXTEND_APPROVED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"


class ActivityLogEntry(Base):
    """Human-readable audit trail of a booking; never used for money."""

    __tablename__ = "booking_activity_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    booking_ref: Mapped[str] = mapped_column(String(20), index=True)
    activity_type: Mapped[str] = mapped_column(String(40), index=True)
    title: Mapped[str] = mapped_column(String(120))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor: Mapped[str | None] = mapped_column(String(36), nullable=True)  # user id or "system"
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    old_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    new_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    details_json: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)
