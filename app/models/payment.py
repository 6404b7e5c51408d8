from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class PaymentPurpose:
    BOOKING = "BOOKING"
    RESCHEDULE = "RESCHEDULE"
    EXTENSION = "EXTENSION"


class Payment(Base):
    """External payment record; the gateway itself is out of scope."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    purpose: Mapped[str] = mapped_column(String(20), default=PaymentPurpose.BOOKING)
    method: Mapped[str] = mapped_column(String(30), default="paynow")  # credit_card, paynow, credits
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, completed, failed, refunded
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
