import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.core.errors import NotFoundError, ValidationError
from app.db.types import utcnow
from app.models.promo_code import PromoCode, PromoCodeUsage, PromoDiscountType
from app.repositories.interfaces import PromoStore
from app.services.pricing_service import ZERO, TimeWindow, money

logger = logging.getLogger(__name__)


class PromoCodeValidator:
    def __init__(self, store: PromoStore):
        self.store = store

    def lookup(self, promo_ref: str) -> PromoCode:
        promo = self.store.get(promo_ref) or self.store.get_by_code(promo_ref)
        if promo is None:
            raise NotFoundError("Promo code not found", details={"promo_code": promo_ref})
        return promo

    def validate(
        self,
        promo_ref: str,
        window: TimeWindow,
        gross_amount: Optional[Decimal] = None,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PromoCode:
        promo = self.lookup(promo_ref)
        now = now or utcnow()
        if not promo.is_active:
            raise ValidationError("Promo code is not active", details={"promo_code": promo.code, "reason": "inactive"})
        if promo.active_from and now < promo.active_from:
            raise ValidationError(
                "Promo code is not yet valid",
                details={"promo_code": promo.code, "active_from": promo.active_from.isoformat()},
            )
        if promo.active_to and now > promo.active_to:
            raise ValidationError(
                "Promo code has expired",
                details={"promo_code": promo.code, "active_to": promo.active_to.isoformat()},
            )
        if promo.minimum_hours and window.hours < Decimal(promo.minimum_hours):
            raise ValidationError(
                f"Promo code requires a booking of at least {promo.minimum_hours} hours",
                details={
                    "promo_code": promo.code,
                    "minimum_hours": str(promo.minimum_hours),
                    "booking_hours": str(window.hours),
                },
            )
        if gross_amount is not None and promo.minimum_amount and money(gross_amount) < money(promo.minimum_amount):
            raise ValidationError(
                f"Promo code requires a minimum spend of {money(promo.minimum_amount)}",
                details={"promo_code": promo.code, "minimum_amount": str(money(promo.minimum_amount))},
            )
        if promo.max_total_usage is not None and promo.usage_count >= promo.max_total_usage:
            raise ValidationError(
                "Promo code has reached its usage limit",
                details={"promo_code": promo.code, "reason": "global_limit"},
            )
        if user_id and promo.max_usage_per_user is not None:
            used = self.store.count_user_usages(promo.id, user_id)
            if used >= promo.max_usage_per_user:
                raise ValidationError(
                    "You have already used this promo code",
                    details={"promo_code": promo.code, "reason": "user_limit", "used": used},
                )
        return promo

    @staticmethod
    def compute_discount(promo: PromoCode, gross: Decimal) -> Decimal:
        gross = money(gross)
        if promo.discount_type == PromoDiscountType.PERCENTAGE:
            discount = money(gross * Decimal(promo.discount_value) / Decimal(100))
            if promo.maximum_discount is not None:
                discount = min(discount, money(promo.maximum_discount))
        elif promo.discount_type == PromoDiscountType.FIXED:
            discount = money(promo.discount_value)
        else:
            raise ValidationError(f"unknown promo discount type {promo.discount_type!r}")
        # never discount more than the price, never below zero
        return max(min(discount, gross), ZERO)

    def record_usage(self, promo_code_id: str, user_id: str, booking_id: str, amount: Decimal) -> bool:
        recorded = self.store.record_usage(
            PromoCodeUsage(
                id=str(uuid.uuid4()),
                promo_code_id=promo_code_id,
                user_id=user_id,
                booking_id=booking_id,
                discount_amount=money(amount),
            )
        )
        if not recorded:
            logger.info("promo usage for booking %s already recorded", booking_id)
        return recorded
