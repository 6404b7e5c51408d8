from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class DiscountType:
    CREDIT = "CREDIT"
    PASS = "PASS"
    PROMO_CODE = "PROMO_CODE"

    ALL = (CREDIT, PASS, PROMO_CODE)


class ActionType:
    ORIGINAL_BOOKING = "ORIGINAL_BOOKING"
    RESCHEDULE = "RESCHEDULE"
    EXTENSION = "EXTENSION"
    MODIFICATION = "MODIFICATION"

    ALL = (ORIGINAL_BOOKING, RESCHEDULE, EXTENSION, MODIFICATION)


class DiscountLedgerEntry(Base):
    """Append-only. A compensated application gets a second, negative entry
    pointing at the first through ``reverses_entry_id``."""

    __tablename__ = "booking_discount_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    discount_type: Mapped[str] = mapped_column(String(12))
    action_type: Mapped[str] = mapped_column(String(20))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    promo_code_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user_pass_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    credit_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reverses_entry_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    applied_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, index=True)

    @property
    def source_id(self) -> str | None:
        return self.credit_id or self.user_pass_id or self.promo_code_id
