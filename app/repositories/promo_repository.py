from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.promo_code import PromoCode, PromoCodeUsage
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import PromoStore


class PromoRepository(SqlRepository, PromoStore):
    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, promo_code_id: str) -> Optional[PromoCode]:
        return self.db.get(PromoCode, promo_code_id)

    def get_by_code(self, code: str) -> Optional[PromoCode]:
        return self.db.query(PromoCode).filter(func.upper(PromoCode.code) == code.strip().upper()).first()

    def add(self, promo: PromoCode) -> PromoCode:
        return self._add(promo)

    def count_user_usages(self, promo_code_id: str, user_id: str) -> int:
        return (
            self.db.query(PromoCodeUsage)
            .filter(PromoCodeUsage.promo_code_id == promo_code_id, PromoCodeUsage.user_id == user_id)
            .count()
        )

    def record_usage(self, usage: PromoCodeUsage) -> bool:
        try:
            self.db.add(usage)
            self.db.commit()
        except IntegrityError:
            # booking_id is unique: usage already recorded for this booking
            self.db.rollback()
            return False
        self._execute(
            update(PromoCode)
            .where(PromoCode.id == usage.promo_code_id)
            .values(usage_count=PromoCode.usage_count + 1)
        )
        return True
