from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.credit import CreditGrant, CreditStatus, CreditUsage, CreditUsageStatus
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import CreditStore


class CreditRepository(SqlRepository, CreditStore):
    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, credit_id: str) -> Optional[CreditGrant]:
        return self.db.get(CreditGrant, credit_id)

    def add(self, grant: CreditGrant) -> CreditGrant:
        return self._add(grant)

    def list_available(self, user_id: str, now: datetime) -> List[CreditGrant]:
        return (
            self.db.query(CreditGrant)
            .filter(
                CreditGrant.user_id == user_id,
                CreditGrant.status == CreditStatus.ACTIVE,
                CreditGrant.expires_at > now,
                CreditGrant.amount > 0,
            )
            .order_by(CreditGrant.expires_at.asc(), CreditGrant.created_at.asc(), CreditGrant.id.asc())
            .all()
        )

    def debit(self, credit_id: str, expected_version: int, new_amount: Decimal, new_status: str) -> bool:
        stmt = (
            update(CreditGrant)
            .where(
                CreditGrant.id == credit_id,
                CreditGrant.status == CreditStatus.ACTIVE,
                CreditGrant.version == expected_version,
            )
            .values(amount=new_amount, status=new_status, version=CreditGrant.version + 1)
        )
        return self._execute(stmt) == 1

    def restore(self, credit_id: str, amount: Decimal) -> bool:
        stmt = (
            update(CreditGrant)
            .where(CreditGrant.id == credit_id, CreditGrant.status.in_([CreditStatus.ACTIVE, CreditStatus.USED]))
            .values(
                amount=CreditGrant.amount + amount,
                status=CreditStatus.ACTIVE,
                version=CreditGrant.version + 1,
            )
        )
        return self._execute(stmt) == 1

    def add_usage(self, usage: CreditUsage) -> CreditUsage:
        return self._add(usage)

    def mark_usage_reversed(self, usage_id: str) -> None:
        self._execute(
            update(CreditUsage).where(CreditUsage.id == usage_id).values(status=CreditUsageStatus.REVERSED)
        )

    def usages_for_user(self, user_id: str) -> List[CreditUsage]:
        return (
            self.db.query(CreditUsage)
            .filter(CreditUsage.user_id == user_id)
            .order_by(CreditUsage.used_at.desc())
            .all()
        )

    def usages_for_booking(self, booking_id: str) -> List[CreditUsage]:
        return (
            self.db.query(CreditUsage)
            .filter(CreditUsage.booking_id == booking_id, CreditUsage.status == CreditUsageStatus.APPLIED)
            .order_by(CreditUsage.used_at.asc())
            .all()
        )

    def expire_due(self, now: datetime) -> int:
        stmt = (
            update(CreditGrant)
            .where(CreditGrant.status == CreditStatus.ACTIVE, CreditGrant.expires_at <= now)
            .values(status=CreditStatus.EXPIRED, version=CreditGrant.version + 1)
        )
        return self._execute(stmt)
