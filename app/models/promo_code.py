from decimal import Decimal
from datetime import datetime

from sqlalchemy import String, Integer, Boolean, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.db.types import UTCDateTime, utcnow


class PromoDiscountType:
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    discount_type: Mapped[str] = mapped_column(String(12))
    discount_value: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    maximum_discount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    minimum_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    minimum_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    active_from: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    active_to: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    max_usage_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_total_usage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    promo_code_id: Mapped[str] = mapped_column(String(36), index=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True, unique=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    used_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
