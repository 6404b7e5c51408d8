"""
Stored credit: FIFO consumption by soonest expiry.

Consumption is best-effort. Grants are debited one row at a time through a
version-keyed conditional update; a grant that changed underneath us is
skipped, and a store failure part way through keeps whatever was already
applied. The caller must always look at ``amount_consumed``.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import InconsistencyError, ValidationError
from app.db.types import utcnow
from app.models.credit import CreditGrant, CreditStatus, CreditUsage
from app.models.discount_ledger import DiscountType
from app.repositories.interfaces import CreditStore
from app.services.compensation import Compensation
from app.services.discount_ledger_service import DiscountLedger, entry_to_dict
from app.services.pricing_service import ZERO, money

logger = logging.getLogger(__name__)


@dataclass
class CreditConsumption:
    amount_requested: Decimal
    amount_consumed: Decimal = ZERO
    usages: List[dict] = field(default_factory=list)
    ledger_entry_id: Optional[str] = None
    compensation: Compensation = field(default_factory=lambda: Compensation("credit"))

    @property
    def remainder(self) -> Decimal:
        """Shortfall still to be paid by other means."""
        return self.amount_requested - self.amount_consumed

    def to_dict(self) -> dict:
        return {
            "amount_requested": self.amount_requested,
            "amount_consumed": self.amount_consumed,
            "remainder": self.remainder,
            "usages": self.usages,
        }


class CreditWallet:
    def __init__(self, store: CreditStore, ledger: DiscountLedger):
        self.store = store
        self.ledger = ledger

    def available_credit(self, user_id: str, now: Optional[datetime] = None) -> List[CreditGrant]:
        return self.store.list_available(user_id, now or utcnow())

    def total_available(self, user_id: str, now: Optional[datetime] = None) -> Decimal:
        return sum((money(g.amount) for g in self.available_credit(user_id, now)), ZERO)

    def quote(self, user_id: str, amount: Decimal, now: Optional[datetime] = None) -> dict:
        amount = money(amount)
        available = self.total_available(user_id, now)
        usable = min(available, amount)
        return {
            "amount": amount,
            "available_credit": available,
            "credit_applicable": usable,
            "payment_required": amount - usable,
        }

    def usage_history(self, user_id: str) -> List[CreditUsage]:
        return self.store.usages_for_user(user_id)

    def consume(
        self,
        user_id: str,
        booking_id: str,
        amount: Decimal,
        action_type: str,
        now: Optional[datetime] = None,
    ) -> CreditConsumption:
        amount = money(amount)
        if amount < 0:
            raise ValidationError("credit amount cannot be negative", details={"amount": str(amount)})
        result = CreditConsumption(amount_requested=amount)
        if amount == 0:
            return result

        applied = []  # (grant_id, taken)
        remaining = amount
        for grant in self.available_credit(user_id, now):
            if remaining <= 0:
                break
            balance = money(grant.amount)
            take = min(remaining, balance)
            new_balance = balance - take
            new_status = CreditStatus.USED if new_balance == 0 else CreditStatus.ACTIVE
            grant_id, version = grant.id, grant.version
            try:
                ok = self.store.debit(grant_id, version, new_balance, new_status)
            except SQLAlchemyError:
                logger.exception("credit walk stopped at grant %s; keeping %s applied", grant_id, amount - remaining)
                break
            if not ok:
                logger.warning("credit grant %s changed concurrently, skipping", grant_id)
                continue
            applied.append((grant_id, take))
            remaining -= take

        consumed = amount - remaining
        if consumed == 0:
            logger.info("no credit available for user %s (requested %s)", user_id, amount)
            return result

        token = result.compensation
        for grant_id, take in applied:
            token.add_checked(f"restore {take} to grant {grant_id}", lambda g=grant_id, t=take: self.store.restore(g, t))

        try:
            for grant_id, take in applied:
                usage = self.store.add_usage(
                    CreditUsage(
                        id=str(uuid.uuid4()),
                        user_id=user_id,
                        credit_id=grant_id,
                        booking_id=booking_id,
                        action_type=action_type,
                        amount_used=take,
                    )
                )
                usage_id = usage.id
                token.add(f"reverse usage {usage_id}", lambda u=usage_id: self.store.mark_usage_reversed(u))
                result.usages.append({"credit_id": grant_id, "amount_used": take, "usage_id": usage_id})

            entry = self.ledger.append(
                booking_id,
                user_id,
                DiscountType.CREDIT,
                action_type,
                consumed,
                credit_id=applied[0][0],
                description=f"Credit applied from {len(applied)} grant(s)",
            )
        except Exception as exc:
            failed = token.run()
            raise InconsistencyError(
                "Credit was deducted but could not be recorded; it has been restored",
                details={
                    "booking_id": booking_id,
                    "amount_consumed": str(consumed),
                    "unrestored_steps": failed,
                    "reason": str(exc),
                },
            ) from exc

        entry_id, snapshot = entry.id, entry_to_dict(entry)
        token.add(
            f"reverse ledger entry {entry_id}",
            lambda: self.ledger.reverse(entry_id, snapshot, "credit consumption compensated"),
        )
        result.amount_consumed = consumed
        result.ledger_entry_id = entry_id
        if remaining > 0:
            logger.info("partial credit for booking %s: %s of %s", booking_id, consumed, amount)
        return result

    def expire_credits(self, now: Optional[datetime] = None) -> int:
        count = self.store.expire_due(now or utcnow())
        if count:
            logger.info("expired %d credit grant(s)", count)
        return count
