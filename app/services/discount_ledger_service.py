"""
Append-only discount ledger.

Every monetary discount applied to a booking has exactly one entry here. A
compensated application is cancelled by a second, negative entry that points
back at the first; nothing is ever updated or deleted. Summaries are folded
from the rows on every call and never stored.
"""

import logging
import uuid
from decimal import Decimal
from typing import Iterable, List, Optional

from app.core.errors import ValidationError
from app.models.booking import Booking
from app.models.discount_ledger import ActionType, DiscountLedgerEntry, DiscountType
from app.repositories.interfaces import LedgerStore
from app.services.pricing_service import ZERO, money

logger = logging.getLogger(__name__)


def entry_to_dict(e: DiscountLedgerEntry) -> dict:
    return {
        "id": e.id,
        "booking_id": e.booking_id,
        "user_id": e.user_id,
        "discount_type": e.discount_type,
        "action_type": e.action_type,
        "discount_amount": money(e.discount_amount),
        "source_id": e.source_id,
        "promo_code_id": e.promo_code_id,
        "user_pass_id": e.user_pass_id,
        "credit_id": e.credit_id,
        "reverses_entry_id": e.reverses_entry_id,
        "description": e.description,
        "applied_at": e.applied_at,
    }


def summarize(entries: Iterable[DiscountLedgerEntry]) -> dict:
    """Pure fold over ledger rows."""
    entries = list(entries)
    by_type = {t: ZERO for t in DiscountType.ALL}
    by_action = {a: ZERO for a in ActionType.ALL}
    total = ZERO
    for e in entries:
        amount = money(e.discount_amount)
        total += amount
        by_type[e.discount_type] = by_type.get(e.discount_type, ZERO) + amount
        by_action[e.action_type] = by_action.get(e.action_type, ZERO) + amount
    return {
        "total_discount": total,
        "by_type": by_type,
        "by_action": by_action,
        "entry_count": len(entries),
        "details": [entry_to_dict(e) for e in entries],
    }


class DiscountLedger:
    def __init__(self, store: LedgerStore):
        self.store = store

    def append(
        self,
        booking_id: str,
        user_id: Optional[str],
        discount_type: str,
        action_type: str,
        amount: Decimal,
        *,
        promo_code_id: Optional[str] = None,
        user_pass_id: Optional[str] = None,
        credit_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> DiscountLedgerEntry:
        if discount_type not in DiscountType.ALL:
            raise ValidationError(f"unknown discount type {discount_type!r}", details={"allowed": list(DiscountType.ALL)})
        if action_type not in ActionType.ALL:
            raise ValidationError(f"unknown action type {action_type!r}", details={"allowed": list(ActionType.ALL)})
        amount = money(amount)
        if amount <= 0:
            raise ValidationError("discount amount must be positive", details={"amount": str(amount)})
        entry = DiscountLedgerEntry(
            id=str(uuid.uuid4()),
            booking_id=booking_id,
            user_id=user_id,
            discount_type=discount_type,
            action_type=action_type,
            discount_amount=amount,
            promo_code_id=promo_code_id,
            user_pass_id=user_pass_id,
            credit_id=credit_id,
            description=description,
        )
        self.store.add(entry)
        logger.info("ledger %s %s %s booking=%s", discount_type, action_type, amount, booking_id)
        return entry

    def reverse(self, entry_id: str, original: dict, reason: str) -> DiscountLedgerEntry:
        """Cancel an earlier entry with a negative twin.

        ``original`` is the dict form of the entry being reversed so this works
        even after the ORM instance has been expired by a failed commit.
        """
        entry = DiscountLedgerEntry(
            id=str(uuid.uuid4()),
            booking_id=original["booking_id"],
            user_id=original["user_id"],
            discount_type=original["discount_type"],
            action_type=original["action_type"],
            discount_amount=-money(original["discount_amount"]),
            promo_code_id=original.get("promo_code_id"),
            user_pass_id=original.get("user_pass_id"),
            credit_id=original.get("credit_id"),
            reverses_entry_id=entry_id,
            description=f"Reversal: {reason}",
        )
        self.store.add(entry)
        logger.warning("ledger entry %s reversed: %s", entry_id, reason)
        return entry

    def history_for(self, booking_id: str) -> List[DiscountLedgerEntry]:
        return self.store.for_booking(booking_id)

    def summary_for(self, booking_id: str) -> dict:
        summary = summarize(self.history_for(booking_id))
        summary["booking_id"] = booking_id
        return summary

    def history_for_user(self, user_id: str) -> List[DiscountLedgerEntry]:
        return self.store.for_user(user_id)

    def reconcile(self, booking: Booking) -> dict:
        """Check the ledger against the booking's cost fields, phase by phase.

        original:   ORIGINAL_BOOKING + MODIFICATION == total_cost - (total_amount - processing_fee)
        reschedule: RESCHEDULE == reschedule_credit_amount
        extension:  EXTENSION == extension_credit_amount
        """
        by_action = summarize(self.history_for(booking.id))["by_action"]
        phases = {
            "original": (
                by_action[ActionType.ORIGINAL_BOOKING] + by_action[ActionType.MODIFICATION],
                money(booking.total_cost) - money(booking.amount_before_fees),
            ),
            "reschedule": (by_action[ActionType.RESCHEDULE], money(booking.reschedule_credit_amount or 0)),
            "extension": (by_action[ActionType.EXTENSION], money(booking.extension_credit_amount or 0)),
        }
        report = {"booking_id": booking.id, "ok": True, "phases": {}}
        for name, (ledger_total, expected) in phases.items():
            ok = ledger_total == expected
            report["phases"][name] = {"ledger": ledger_total, "expected": expected, "ok": ok}
            if not ok:
                report["ok"] = False
                logger.error(
                    "ledger drift on booking %s phase %s: ledger=%s expected=%s",
                    booking.booking_ref, name, ledger_total, expected,
                )
        return report
