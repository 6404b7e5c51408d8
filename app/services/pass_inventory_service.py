"""
Finite-use passes.

Each pass type allows use only inside a local time-of-day window and
covers a fixed number of hours per use. A pass always covers one person's
hours: for a party the caller prices everyone else at the normal rate.

Consumption is a conditional decrement (remaining > 0) followed by a usage
row and a PASS ledger entry. If either write fails the decrement is undone
here; if something later in the caller's operation fails, the caller runs
the returned compensation.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal
from typing import List, Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.errors import InconsistencyError, NotFoundError, ResourceExhaustedError, ValidationError
from app.db.types import utcnow
from app.models.discount_ledger import DiscountType
from app.models.user_pass import PassEntitlement, PassUsage
from app.repositories.interfaces import PassStore
from app.services.compensation import Compensation
from app.services.discount_ledger_service import DiscountLedger, entry_to_dict
from app.services.pricing_service import ZERO, TimeWindow, money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassRule:
    name: str
    opens: time
    closes: time
    allowance_hours: int


PASS_RULES = {
    "DAY_PASS": PassRule("Day Pass", time(8, 0), time(18, 0), 8),
    "HALF_DAY_PASS": PassRule("Half Day Pass", time(8, 0), time(18, 0), 4),
}


def rule_for(pass_type: str) -> PassRule:
    rule = PASS_RULES.get(pass_type)
    if rule is None:
        raise ValidationError(
            f"pass type {pass_type!r} is not supported", details={"allowed": sorted(PASS_RULES)}
        )
    return rule


def check_time_of_day(rule: PassRule, window: TimeWindow) -> None:
    tz = ZoneInfo(settings.TIMEZONE)
    start, end = window.start.astimezone(tz), window.end.astimezone(tz)
    allowed = {"start": rule.opens.strftime("%H:%M"), "end": rule.closes.strftime("%H:%M")}
    if start.date() != end.date():
        raise ValidationError(f"{rule.name} cannot span midnight", details={"allowed_hours": allowed})
    if start.time() < rule.opens or end.time() > rule.closes:
        raise ValidationError(
            f"{rule.name} can only be used from {allowed['start']} to {allowed['end']}",
            details={"allowed_hours": allowed, "reason": "time_restriction"},
        )


def pass_coverage(rule: PassRule, window: TimeWindow, person_rate: Decimal) -> dict:
    """Hours and amount one pass use covers for one person."""
    allowance = Decimal(rule.allowance_hours)
    covered = min(window.hours, allowance)
    return {
        "booking_hours": window.hours,
        "allowance_hours": allowance,
        "covered_hours": covered,
        "excess_hours": max(window.hours - allowance, ZERO),
        "covered_minutes": min(window.minutes, rule.allowance_hours * 60),
        "pass_discount": money(covered * person_rate),
    }


# Resolution results
@dataclass(frozen=True)
class Found:
    entitlement: PassEntitlement
    matched_by: str


@dataclass(frozen=True)
class NotFound:
    reference: str


@dataclass(frozen=True)
class Ambiguous:
    reference: str
    candidate_ids: List[str]


PassResolution = Union[Found, NotFound, Ambiguous]


@dataclass
class PassConsumption:
    pass_id: str
    discount_amount: Decimal
    minutes_applied: int
    usage_id: Optional[str] = None
    ledger_entry_id: Optional[str] = None
    compensation: Compensation = field(default_factory=lambda: Compensation("pass"))


class PassInventory:
    def __init__(self, store: PassStore, ledger: DiscountLedger):
        self.store = store
        self.ledger = ledger

    def resolve(self, user_id: str, pass_ref: str, now: Optional[datetime] = None) -> PassResolution:
        """Turn a caller's pass reference into exactly one entitlement.

        Precedence:
          1. an entitlement id owned by the user
          2. a purchase id: its single usable entitlement (several is ambiguous)
          3. a pass type: the user's usable entitlement of that type expiring soonest
        """
        now = now or utcnow()
        ent = self.store.get(pass_ref)
        if ent is not None and ent.user_id == user_id:
            return Found(ent, "entitlement_id")

        by_purchase = self.store.list_by_purchase(user_id, pass_ref, now)
        if len(by_purchase) == 1:
            return Found(by_purchase[0], "purchase_id")
        if len(by_purchase) > 1:
            return Ambiguous(pass_ref, [e.id for e in by_purchase])

        if pass_ref in PASS_RULES:
            by_type = self.store.list_active(user_id, now, pass_type=pass_ref)
            if by_type:
                return Found(by_type[0], "pass_type")
        return NotFound(pass_ref)

    def resolve_one(self, user_id: str, pass_ref: str, now: Optional[datetime] = None) -> PassEntitlement:
        res = self.resolve(user_id, pass_ref, now)
        if isinstance(res, Found):
            return res.entitlement
        if isinstance(res, Ambiguous):
            raise ValidationError(
                "Pass reference matches more than one pass; choose one",
                details={"pass_ref": pass_ref, "candidates": res.candidate_ids},
            )
        raise NotFoundError("Pass not found", details={"pass_ref": pass_ref})

    def check_usable(self, ent: PassEntitlement, window: TimeWindow, now: Optional[datetime] = None) -> PassRule:
        now = now or utcnow()
        rule = rule_for(ent.pass_type)
        check_time_of_day(rule, window)
        if ent.status != "ACTIVE" or not (ent.active_from <= now <= ent.active_to):
            raise ValidationError(
                "Pass is not active",
                details={"pass_id": ent.id, "status": ent.status, "active_to": ent.active_to.isoformat()},
            )
        if ent.remaining_count <= 0:
            raise ResourceExhaustedError(
                f"No remaining {rule.name} uses", details={"pass_id": ent.id, "remaining_count": 0}
            )
        if ent.is_minute_based and ent.remaining_minutes < min(window.minutes, rule.allowance_hours * 60):
            raise ResourceExhaustedError(
                "Not enough minutes left on this pass",
                details={"pass_id": ent.id, "remaining_minutes": ent.remaining_minutes},
            )
        return rule

    def validate(
        self,
        user_id: str,
        pass_type: str,
        window: TimeWindow,
        party_size: int,
        person_rate: Decimal,
        now: Optional[datetime] = None,
    ) -> dict:
        """Eligibility plus a price breakdown. Writes nothing."""
        rule = rule_for(pass_type)
        check_time_of_day(rule, window)
        if party_size < 1:
            raise ValidationError("party size must be at least 1", details={"pax": party_size})
        candidates = self.store.list_active(user_id, now or utcnow(), pass_type=pass_type)
        if not candidates:
            raise ResourceExhaustedError(
                f"No active {rule.name} passes available",
                details={"pass_type": pass_type, "available_passes": 0},
            )
        ent = candidates[0]
        coverage = pass_coverage(rule, window, person_rate)
        original = money(window.hours * person_rate * party_size)
        return {
            "eligible": True,
            "pass_id": ent.id,
            "pass_type": pass_type,
            "pass_name": rule.name,
            "party_size": party_size,
            "hourly_rate": money(person_rate),
            "original_charge": original,
            "remaining_charge": original - coverage["pass_discount"],
            "remaining_quantity_after_use": ent.remaining_count - 1,
            "allowed_hours": {"start": rule.opens.strftime("%H:%M"), "end": rule.closes.strftime("%H:%M")},
            **coverage,
        }

    def balance(self, user_id: str, now: Optional[datetime] = None) -> dict:
        passes = self.store.list_active(user_id, now or utcnow())
        by_type = {}
        for p in passes:
            row = by_type.setdefault(p.pass_type, {"pass_type": p.pass_type, "remaining": 0, "passes": []})
            row["remaining"] += p.remaining_count
            row["passes"].append(
                {
                    "pass_id": p.id,
                    "purchase_id": p.purchase_id,
                    "remaining_count": p.remaining_count,
                    "remaining_minutes": p.remaining_minutes,
                    "active_to": p.active_to.isoformat(),
                }
            )
        return {
            "user_id": user_id,
            "total_remaining": sum(r["remaining"] for r in by_type.values()),
            "by_type": list(by_type.values()),
        }

    def consume(
        self,
        user_id: str,
        pass_id: str,
        booking_id: str,
        action_type: str,
        discount_amount: Decimal,
        minutes: int,
    ) -> PassConsumption:
        ent = self.store.get(pass_id)
        if ent is None or ent.user_id != user_id:
            raise NotFoundError("Pass not found", details={"pass_id": pass_id})
        minute_based = ent.is_minute_based

        ok = self.store.decrement_minutes(pass_id, minutes) if minute_based else self.store.decrement(pass_id)
        if not ok:
            raise ResourceExhaustedError(
                "This pass has no remaining uses",
                details={"pass_id": pass_id, "requested_minutes": minutes},
            )

        result = PassConsumption(pass_id=pass_id, discount_amount=money(discount_amount), minutes_applied=minutes)
        token = result.compensation
        restore_minutes = minutes if minute_based else None
        token.add_checked(f"restore pass {pass_id}", lambda: self.store.restore(pass_id, restore_minutes))

        try:
            usage = self.store.add_usage(
                PassUsage(
                    id=str(uuid.uuid4()),
                    booking_id=booking_id,
                    user_pass_id=pass_id,
                    action_type=action_type,
                    minutes_applied=minutes,
                )
            )
            usage_id = usage.id
            token.add(f"reverse pass usage {usage_id}", lambda: self.store.mark_usage_reversed(usage_id))
            entry = None
            if result.discount_amount > 0:
                entry = self.ledger.append(
                    booking_id,
                    user_id,
                    DiscountType.PASS,
                    action_type,
                    result.discount_amount,
                    user_pass_id=pass_id,
                    description=f"{ent.pass_type} covering {minutes} minute(s)",
                )
        except Exception as exc:
            failed = token.run()
            raise InconsistencyError(
                "Pass was used but the usage could not be recorded; it has been restored",
                details={"pass_id": pass_id, "booking_id": booking_id, "unrestored_steps": failed, "reason": str(exc)},
            ) from exc

        result.usage_id = usage_id
        if entry is not None:
            entry_id, snapshot = entry.id, entry_to_dict(entry)
            result.ledger_entry_id = entry_id
            token.add(
                f"reverse ledger entry {entry_id}",
                lambda: self.ledger.reverse(entry_id, snapshot, "pass consumption compensated"),
            )
        logger.info("pass %s used for booking %s (%s min, %s)", pass_id, booking_id, minutes, result.discount_amount)
        return result

    def expire_passes(self, now: Optional[datetime] = None) -> int:
        count = self.store.expire_due(now or utcnow())
        if count:
            logger.info("expired %d pass(es)", count)
        return count
