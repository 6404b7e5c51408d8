from typing import List

from sqlalchemy.orm import Session

from app.models.discount_ledger import DiscountLedgerEntry
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import LedgerStore


class LedgerRepository(SqlRepository, LedgerStore):
    """Insert and read only."""

    def __init__(self, db: Session):
        super().__init__(db)

    def add(self, entry: DiscountLedgerEntry) -> DiscountLedgerEntry:
        return self._add(entry)

    def for_booking(self, booking_id: str) -> List[DiscountLedgerEntry]:
        return (
            self.db.query(DiscountLedgerEntry)
            .filter(DiscountLedgerEntry.booking_id == booking_id)
            .order_by(DiscountLedgerEntry.applied_at.asc())
            .all()
        )

    def for_user(self, user_id: str) -> List[DiscountLedgerEntry]:
        return (
            self.db.query(DiscountLedgerEntry)
            .filter(DiscountLedgerEntry.user_id == user_id)
            .order_by(DiscountLedgerEntry.applied_at.desc())
            .all()
        )
