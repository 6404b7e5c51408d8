from datetime import datetime

from sqlalchemy import String, Integer, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class PassStatus:
    ACTIVE = "ACTIVE"
    USED = "USED"
    EXPIRED = "EXPIRED"


class PassEntitlement(Base):
    """A user's instance of a purchased pass.

    Count-based passes track ``remaining_count``; minute-based passes also
    carry ``remaining_minutes``. Both only go down through conditional
    updates in the pass repository.
    """

    __tablename__ = "user_passes"
    __table_args__ = (
        CheckConstraint("remaining_count >= 0", name="ck_user_passes_remaining_non_negative"),
        CheckConstraint(
            "remaining_minutes IS NULL OR remaining_minutes >= 0", name="ck_user_passes_minutes_non_negative"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    purchase_id: Mapped[str] = mapped_column(String(36), index=True)
    pass_type: Mapped[str] = mapped_column(String(30), index=True)  # DAY_PASS, HALF_DAY_PASS
    package_name: Mapped[str] = mapped_column(String(120), default="")
    total_count: Mapped[int] = mapped_column(Integer)
    remaining_count: Mapped[int] = mapped_column(Integer)
    total_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    remaining_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    active_from: Mapped[datetime] = mapped_column(UTCDateTime())
    active_to: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)
    status: Mapped[str] = mapped_column(String(12), default=PassStatus.ACTIVE, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    @property
    def is_minute_based(self) -> bool:
        return self.remaining_minutes is not None


class PassUsage(Base):
    __tablename__ = "pass_usages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    user_pass_id: Mapped[str] = mapped_column(String(36), index=True)
    action_type: Mapped[str] = mapped_column(String(20))
    minutes_applied: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(12), default="APPLIED")  # APPLIED, REVERSED
    used_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
