from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.payment import Payment
from app.repositories.base_repository import SqlRepository
from app.repositories.interfaces import PaymentStore


class PaymentRepository(SqlRepository, PaymentStore):
    def __init__(self, db: Session):
        super().__init__(db)

    def get(self, payment_id: str) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def add(self, payment: Payment) -> Payment:
        return self._add(payment)

    def mark_completed(self, payment_id: str, amount: Optional[Decimal] = None) -> bool:
        values = {"status": "completed"}
        if amount is not None:
            values["amount"] = amount
        stmt = update(Payment).where(Payment.id == payment_id, Payment.status == "pending").values(**values)
        return self._execute(stmt) == 1
