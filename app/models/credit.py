from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Integer, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class CreditStatus:
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"


class CreditGrant(Base):
    """Stored credit owned by a user. Never deleted; retired through status."""

    __tablename__ = "user_credits"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_user_credits_amount_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))  # remaining balance of this grant
    original_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(12), default=CreditStatus.ACTIVE, index=True)
    source: Mapped[str] = mapped_column(String(40), default="REFUND")  # REFUND, GOODWILL, PROMOTION
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    # Bumped on every write; updates are conditional on the version read.
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)


class CreditUsageStatus:
    APPLIED = "APPLIED"
    REVERSED = "REVERSED"


class CreditUsage(Base):
    """One row per grant touched by a consumption."""

    __tablename__ = "credit_usages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    credit_id: Mapped[str] = mapped_column(String(36), index=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    action_type: Mapped[str] = mapped_column(String(20))
    amount_used: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(12), default=CreditUsageStatus.APPLIED)
    used_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
