from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.models.user_pass import PassEntitlement, PassStatus, PassUsage
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import PassStore


class PassRepository(SqlRepository, PassStore):
    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, pass_id: str) -> Optional[PassEntitlement]:
        return self.db.get(PassEntitlement, pass_id)

    def add(self, entitlement: PassEntitlement) -> PassEntitlement:
        return self._add(entitlement)

    def _active(self, user_id: str, now: datetime):
        return self.db.query(PassEntitlement).filter(
            PassEntitlement.user_id == user_id,
            PassEntitlement.status == PassStatus.ACTIVE,
            PassEntitlement.remaining_count > 0,
            PassEntitlement.active_from <= now,
            PassEntitlement.active_to >= now,
        )

    def list_active(self, user_id: str, now: datetime, pass_type: Optional[str] = None) -> List[PassEntitlement]:
        q = self._active(user_id, now)
        if pass_type:
            q = q.filter(PassEntitlement.pass_type == pass_type)
        return q.order_by(PassEntitlement.active_to.asc(), PassEntitlement.created_at.asc()).all()

    def list_by_purchase(self, user_id: str, purchase_id: str, now: datetime) -> List[PassEntitlement]:
        return (
            self._active(user_id, now)
            .filter(PassEntitlement.purchase_id == purchase_id)
            .order_by(PassEntitlement.active_to.asc())
            .all()
        )

    def decrement(self, pass_id: str) -> bool:
        # SET expressions see the pre-update row, so the status flip tests for the last use.
        stmt = (
            update(PassEntitlement)
            .where(
                PassEntitlement.id == pass_id,
                PassEntitlement.status == PassStatus.ACTIVE,
                PassEntitlement.remaining_count > 0,
            )
            .values(
                remaining_count=PassEntitlement.remaining_count - 1,
                status=case((PassEntitlement.remaining_count <= 1, PassStatus.USED), else_=PassEntitlement.status),
            )
        )
        return self._execute(stmt) == 1

    def decrement_minutes(self, pass_id: str, minutes: int) -> bool:
        stmt = (
            update(PassEntitlement)
            .where(
                PassEntitlement.id == pass_id,
                PassEntitlement.status == PassStatus.ACTIVE,
                PassEntitlement.remaining_minutes >= minutes,
            )
            .values(
                remaining_minutes=PassEntitlement.remaining_minutes - minutes,
                status=case(
                    (PassEntitlement.remaining_minutes - minutes <= 0, PassStatus.USED),
                    else_=PassEntitlement.status,
                ),
            )
        )
        return self._execute(stmt) == 1

    def restore(self, pass_id: str, minutes: Optional[int] = None) -> bool:
        values = {"status": PassStatus.ACTIVE}
        if minutes is None:
            values["remaining_count"] = PassEntitlement.remaining_count + 1
        else:
            values["remaining_minutes"] = PassEntitlement.remaining_minutes + minutes
        stmt = (
            update(PassEntitlement)
            .where(PassEntitlement.id == pass_id, PassEntitlement.status.in_([PassStatus.ACTIVE, PassStatus.USED]))
            .values(**values)
        )
        return self._execute(stmt) == 1

    def add_usage(self, usage: PassUsage) -> PassUsage:
        return self._add(usage)

    def mark_usage_reversed(self, usage_id: str) -> None:
        self._execute(update(PassUsage).where(PassUsage.id == usage_id).values(status="REVERSED"))

    def expire_due(self, now: datetime) -> int:
        stmt = (
            update(PassEntitlement)
            .where(PassEntitlement.status == PassStatus.ACTIVE, PassEntitlement.active_to < now)
            .values(status=PassStatus.EXPIRED)
        )
        return self._execute(stmt)
