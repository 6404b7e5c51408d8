"""
Booking lifecycle: create, confirm payment, reschedule (once), extend (any
number of times), cancel.

The store gives row-level atomicity only. Every multi-row step here is
check-then-act: resources consumed along the way hand back a
``Compensation`` and any later failure in the same operation runs it before
the error reaches the caller. Activity and notification writes never fail
a transition.
"""

import logging
import random
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    DuplicateBookingError,
    InconsistencyError,
    NotFoundError,
    PaymentAlreadyConfirmedError,
    AlreadyRescheduledError,
    ResourceExhaustedError,
    SeatSelectionRequiredError,
    ValidationError,
)
from app.db.types import utcnow
from app.models.activity_log import ActivityType
from app.models.booking import Booking, BookingStatus, MemberType
from app.models.discount_ledger import ActionType, DiscountType
from app.models.payment import Payment, PaymentPurpose
from app.repositories.factory import Repositories
from app.services import fee_service
from app.services.activity_service import ActivityRecorder
from app.services.compensation import Compensation
from app.services.conflict_service import ConflictDetector
from app.services.credit_wallet_service import CreditConsumption, CreditWallet
from app.services.discount_ledger_service import DiscountLedger, entry_to_dict
from app.services.pass_inventory_service import PassInventory, pass_coverage, rule_for
from app.services.pricing_service import ZERO, TimeWindow, gross_cost, hourly_rate, money
from app.services.promo_code_service import PromoCodeValidator

logger = logging.getLogger(__name__)


def clean_seats(seat_numbers) -> List[str]:
    """Strip seat labels and require a non-empty, duplicate-free list."""
    seats = [s.strip() for s in (seat_numbers or []) if s and s.strip()]
    if not seats:
        raise ValidationError("At least one seat is required", details={"field": "seatNumbers"})
    if len(set(seats)) != len(seats):
        raise ValidationError("Seat numbers must be unique", details={"seatNumbers": seats})
    return seats


def make_booking_ref() -> str:
    return "CWK-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


@dataclass
class BookingResult:
    booking: Booking
    already_confirmed: bool = False
    idempotent_replay: bool = False
    amount_due: Decimal = ZERO
    credit: Optional[CreditConsumption] = None
    notes: List[str] = field(default_factory=list)


class BookingLifecycle:
    def __init__(self, repos: Repositories, payment_settings, notifier=None):
        self.repos = repos
        self.bookings = repos.bookings
        self.payments = repos.payments
        self.conflicts = ConflictDetector(repos.bookings)
        self.ledger = DiscountLedger(repos.ledger)
        self.wallet = CreditWallet(repos.credits, self.ledger)
        self.passes = PassInventory(repos.passes, self.ledger)
        self.promos = PromoCodeValidator(repos.promos)
        self.activity = ActivityRecorder(repos.activity)
        self.payment_settings = payment_settings
        self.notifier = notifier

    # helpers

    def _get(self, booking_id: str, user_id: Optional[str] = None) -> Booking:
        b = self.bookings.get(booking_id) or self.bookings.get_by_ref(booking_id)
        if b is None or (user_id is not None and b.user_id != user_id):
            raise NotFoundError("Booking not found", details={"booking_id": booking_id})
        return b

    def _fee_config(self) -> fee_service.FeeConfig:
        config = self.payment_settings.current()
        if self.payment_settings.is_stale():
            logger.warning("payment settings snapshot is stale (fetched %s)", config.fetched_at.isoformat())
        return config

    def _allocate_ref(self) -> str:
        # booking_ref must be unique
        for _ in range(10):
            ref = make_booking_ref()
            if not self.bookings.get_by_ref(ref):
                return ref
        raise ConflictError("could not allocate booking reference")

    def _window(self, b: Booking) -> TimeWindow:
        return TimeWindow(b.start_at, b.end_at)

    def _party_gross(self, b: Booking, window: TimeWindow) -> Decimal:
        return gross_cost(window, b.members, b.students, b.tutors)

    def _reprice(self, b: Booking, net: Decimal, config: fee_service.FeeConfig) -> None:
        processing_fee = fee_service.fee(net, b.payment_method, config)
        b.processing_fee = processing_fee
        b.total_amount = money(net) + processing_fee

    def _save(self, b: Booking, stack: Compensation, what: str) -> Booking:
        try:
            return self.bookings.save(b)
        except Exception as exc:
            failed = stack.run()
            raise InconsistencyError(
                f"Could not save booking after {what}; applied discounts were reversed",
                details={"booking_id": b.id, "unrestored_steps": failed, "reason": str(exc)},
            ) from exc

    def _notify(self, method: str, *args) -> None:
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, method)(*args)
        except Exception:
            logger.exception("notification %s failed for booking %s", method, getattr(args[0], "booking_ref", "?"))

    def _check_payment_free(self, payment_id: Optional[str], booking_id: Optional[str]) -> Optional[Payment]:
        if not payment_id:
            return None
        p = self.payments.get(payment_id)
        if p is not None and p.status == "completed" and p.booking_id != booking_id:
            raise PaymentAlreadyConfirmedError(
                "This payment has already been used",
                details={"payment_id": payment_id, "booking_id": p.booking_id},
            )
        return p

    def _consume_credit(
        self, b: Booking, amount: Decimal, action_type: str, stack: Compensation
    ) -> Optional[CreditConsumption]:
        if amount <= 0:
            return None
        consumption = self.wallet.consume(b.user_id, b.id, amount, action_type)
        stack.extend(consumption.compensation)
        return consumption

    # create

    def create_booking(
        self,
        *,
        user_id: str,
        location: str,
        start_at: datetime,
        end_at: datetime,
        seat_numbers: List[str],
        pax: int = 1,
        members: int = 0,
        students: int = 0,
        tutors: int = 0,
        member_type: str = MemberType.MEMBER,
        contact_email: Optional[str] = None,
        booked_for_emails: Optional[List[str]] = None,
        special_requests: Optional[str] = None,
        promo_code_id: Optional[str] = None,
        pass_ref: Optional[str] = None,
        credit_amount: Decimal = ZERO,
        payment_method: Optional[str] = None,
        payment_id: Optional[str] = None,
        booking_id: Optional[str] = None,
        booking_ref: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        now = now or utcnow()
        missing = [k for k, v in (("userId", user_id), ("location", location)) if not v]
        if missing:
            raise ValidationError("userId and location are required", details={"missing": missing})
        window = TimeWindow(start_at, end_at)
        if window.start < now:
            raise ValidationError("Cannot book a time in the past", details={"start_at": start_at.isoformat()})
        seats = clean_seats(seat_numbers)
        if pax < 1:
            raise ValidationError("pax must be >= 1", details={"pax": pax})
        hourly_rate(member_type)  # validates the role
        if members == students == tutors == 0:
            members, students, tutors = (
                pax if member_type == MemberType.MEMBER else 0,
                pax if member_type == MemberType.STUDENT else 0,
                pax if member_type == MemberType.TUTOR else 0,
            )
        if members < 0 or students < 0 or tutors < 0 or members + students + tutors != pax:
            raise ValidationError(
                "Party composition must add up to pax",
                details={"pax": pax, "members": members, "students": students, "tutors": tutors},
            )
        config = self._fee_config()
        if payment_method and not fee_service.is_method_enabled(payment_method, config):
            raise ValidationError(
                f"Payment method {payment_method!r} is not available", details={"payment_method": payment_method}
            )
        credit_amount = money(credit_amount or 0)
        if credit_amount < 0:
            raise ValidationError("creditAmount cannot be negative", details={"creditAmount": str(credit_amount)})

        if booking_id and self.bookings.get(booking_id):
            raise DuplicateBookingError("Booking already exists", details={"booking_id": booking_id})
        if booking_ref and self.bookings.get_by_ref(booking_ref):
            raise DuplicateBookingError("Booking reference already exists", details={"booking_ref": booking_ref})
        self._check_payment_free(payment_id, booking_id)

        # Same user, same place, overlapping time
        skew = timedelta(seconds=settings.DUPLICATE_SKEW_SECONDS)
        for existing in self.conflicts.find_conflicts(location, window):
            if existing.user_id != user_id:
                continue
            if (
                existing.status == BookingStatus.PENDING_PAYMENT
                and abs(existing.start_at - window.start) <= skew
                and abs(existing.end_at - window.end) <= skew
                and sorted(existing.seat_numbers or []) == sorted(seats)
            ):
                logger.info("create for %s treated as retry of %s", user_id, existing.booking_ref)
                return BookingResult(existing, idempotent_replay=True, amount_due=money(existing.total_amount))
            raise DuplicateBookingError(
                "You already have a booking at this location for an overlapping time",
                details={
                    "booking_ref": existing.booking_ref,
                    "start_at": existing.start_at.isoformat(),
                    "end_at": existing.end_at.isoformat(),
                },
            )
        self.conflicts.check_seats(location, window, seats)

        gross = gross_cost(window, members, students, tutors)

        promo, promo_discount = None, ZERO
        if promo_code_id:
            promo = self.promos.validate(promo_code_id, window, gross, user_id, now=now)
            promo_discount = self.promos.compute_discount(promo, gross)

        entitlement, expected_pass = None, ZERO
        if pass_ref:
            if {MemberType.MEMBER: members, MemberType.STUDENT: students, MemberType.TUTOR: tutors}[member_type] < 1:
                raise ValidationError(
                    "The booker must be part of the party to use a pass", details={"memberType": member_type}
                )
            entitlement = self.passes.resolve_one(user_id, pass_ref, now)
            rule = self.passes.check_usable(entitlement, window, now)
            coverage = pass_coverage(rule, window, hourly_rate(member_type))
            expected_pass = min(coverage["pass_discount"], gross - promo_discount)

        credit_cap = max(gross - promo_discount - expected_pass, ZERO)
        credit_wanted = min(credit_amount, credit_cap)

        b = Booking(
            id=booking_id or str(uuid.uuid4()),
            booking_ref=booking_ref or self._allocate_ref(),
            user_id=user_id,
            location=location,
            booked_at=now,
            start_at=window.start,
            end_at=window.end,
            seat_numbers=seats,
            pax=pax,
            members=members,
            students=students,
            tutors=tutors,
            member_type=member_type,
            contact_email=contact_email,
            booked_for_emails=list(booked_for_emails or []),
            special_requests=special_requests,
            total_cost=gross,
            payment_method=payment_method,
            promo_code_id=promo.id if promo else None,
            promo_discount_amount=promo_discount,
            credit_amount=ZERO,
            pass_id=entitlement.id if entitlement else None,
            pass_pending=entitlement is not None,
            pass_discount_amount=ZERO,
            status=BookingStatus.PENDING_PAYMENT,
            confirmed_payment=False,
        )
        self._reprice(b, gross - promo_discount, config)
        self.bookings.add(b)
        self.activity.record(
            b,
            ActivityType.BOOKING_CREATED,
            "Booking created",
            f"{location} {window.start.isoformat()} - {window.end.isoformat()}, seats {', '.join(seats)}",
            amount=gross,
        )

        stack = Compensation(f"create {b.booking_ref}")
        stack.add(f"cancel booking {b.booking_ref}", lambda: self._release(b.id, "creation rolled back"))
        result = BookingResult(b)
        try:
            if promo_discount > 0:
                entry = self.ledger.append(
                    b.id, user_id, DiscountType.PROMO_CODE, ActionType.ORIGINAL_BOOKING, promo_discount,
                    promo_code_id=promo.id, description=f"Promo code {promo.code}",
                )
                entry_id, snapshot = entry.id, entry_to_dict(entry)
                stack.add(
                    f"reverse promo entry {entry_id}",
                    lambda: self.ledger.reverse(entry_id, snapshot, "booking creation rolled back"),
                )
            result.credit = self._consume_credit(b, credit_wanted, ActionType.ORIGINAL_BOOKING, stack)
        except InconsistencyError:
            stack.run()
            raise
        except Exception as exc:
            failed = stack.run()
            raise InconsistencyError(
                "Booking could not be completed; it has been cancelled",
                details={"booking_id": b.id, "unrestored_steps": failed, "reason": str(exc)},
            ) from exc

        consumed = result.credit.amount_consumed if result.credit else ZERO
        if consumed > 0:
            b.credit_amount = consumed
            self._reprice(b, gross - promo_discount - consumed, config)
        if b.total_amount > 0:
            existing_payment = self.payments.get(payment_id) if payment_id else None
            if existing_payment is None:
                try:
                    p = self.payments.add(
                        Payment(
                            id=payment_id or str(uuid.uuid4()),
                            booking_id=b.id,
                            purpose=PaymentPurpose.BOOKING,
                            method=payment_method or "paynow",
                            amount=b.total_amount,
                            status="pending",
                        )
                    )
                except Exception as exc:
                    failed = stack.run()
                    raise InconsistencyError(
                        "Could not create the payment record; the booking has been cancelled",
                        details={"booking_id": b.id, "unrestored_steps": failed, "reason": str(exc)},
                    ) from exc
                b.payment_id = p.id
            else:
                b.payment_id = existing_payment.id
        self._save(b, stack, "applying discounts")

        if promo_discount > 0:
            self.activity.record(
                b, ActivityType.PROMO_APPLIED, "Promo code applied", f"Promo {promo.code}", amount=promo_discount
            )
        if consumed > 0:
            self.activity.record(
                b, ActivityType.CREDIT_USED, "Credit applied",
                f"{consumed} of {credit_wanted} requested", amount=consumed,
                details={"shortfall": str(result.credit.remainder)},
            )
            if result.credit.remainder > 0:
                result.notes.append(f"Only {consumed} credit was available; {result.credit.remainder} remains payable")
        if expected_pass > 0:
            result.notes.append(f"Pass discount of {expected_pass} is applied when payment is confirmed")
        result.amount_due = self._amount_after_pending_pass(b, expected_pass, config)
        logger.info("booking %s created for %s: gross=%s due=%s", b.booking_ref, user_id, gross, result.amount_due)
        return result

    def _amount_after_pending_pass(self, b: Booking, expected_pass: Decimal, config) -> Decimal:
        net = max(money(b.amount_before_fees) - expected_pass, ZERO)
        return net + fee_service.fee(net, b.payment_method, config)

    def _release(self, booking_id: str, reason: str) -> None:
        b = self.bookings.get(booking_id)
        if b is None or b.status in BookingStatus.RELEASED:
            return
        b.status = BookingStatus.CANCELLED
        b.cancelled_at = utcnow()
        b.special_requests = ((b.special_requests or "") + f"\n[cancelled: {reason}]").strip()
        self.bookings.save(b)

    # confirm

    def confirm_booking_payment(
        self, booking_id: str, payment_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> BookingResult:
        now = now or utcnow()
        b = self._get(booking_id)
        if b.confirmed_payment:
            return BookingResult(b, already_confirmed=True, amount_due=ZERO)
        if b.status in BookingStatus.RELEASED:
            raise ValidationError("Booking is no longer active", details={"status": b.status})
        payment = self._check_payment_free(payment_id, b.id)

        config = self._fee_config()
        stack = Compensation(f"confirm {b.booking_ref}")
        result = BookingResult(b)

        if b.pass_pending and b.pass_id:
            window = self._window(b)
            ent = self.repos.passes.get(b.pass_id)
            if ent is None:
                b.pass_pending = False
                result.notes.append("Pass no longer exists; charged without it")
            else:
                coverage = pass_coverage(rule_for(ent.pass_type), window, hourly_rate(b.member_type))
                discount = min(coverage["pass_discount"], money(b.amount_before_fees))
                try:
                    consumption = self.passes.consume(
                        b.user_id, ent.id, b.id, ActionType.ORIGINAL_BOOKING, discount, coverage["covered_minutes"]
                    )
                except ResourceExhaustedError:
                    logger.warning("pass %s exhausted before booking %s was confirmed", ent.id, b.booking_ref)
                    b.pass_pending = False
                    result.notes.append("Pass had no uses left at confirmation; charged without it")
                else:
                    stack.extend(consumption.compensation)
                    b.pass_pending = False
                    b.pass_discount_amount = consumption.discount_amount
                    self._reprice(b, money(b.amount_before_fees) - consumption.discount_amount, config)

        if payment_id and payment is None:
            try:
                self.payments.add(
                    Payment(
                        id=payment_id,
                        booking_id=b.id,
                        purpose=PaymentPurpose.BOOKING,
                        method=b.payment_method or "paynow",
                        amount=b.total_amount,
                        status="pending",
                    )
                )
            except Exception as exc:
                failed = stack.run()
                raise InconsistencyError(
                    "Could not record the payment",
                    details={"booking_id": b.id, "unrestored_steps": failed, "reason": str(exc)},
                ) from exc
            b.payment_id = payment_id
        b.confirmed_payment = True
        b.status = BookingStatus.CONFIRMED
        b.confirmed_at = now
        self._save(b, stack, "confirming payment")

        if b.payment_id and not self.payments.mark_completed(b.payment_id, amount=b.total_amount):
            logger.warning("payment %s for booking %s was not pending", b.payment_id, b.booking_ref)

        if b.promo_code_id and money(b.promo_discount_amount or 0) > 0:
            try:
                self.promos.record_usage(b.promo_code_id, b.user_id, b.id, b.promo_discount_amount)
            except Exception:
                logger.exception("promo usage for booking %s not recorded", b.booking_ref)

        self.activity.record(
            b, ActivityType.PAYMENT_CONFIRMED, "Payment confirmed",
            f"Paid via {b.payment_method or 'n/a'}", amount=b.total_amount,
        )
        if money(b.pass_discount_amount or 0) > 0:
            self.activity.record(
                b, ActivityType.PASS_USED, "Pass applied", f"Pass {b.pass_id}", amount=b.pass_discount_amount
            )
        self._notify("booking_confirmed", b)
        logger.info("booking %s confirmed, total=%s", b.booking_ref, b.total_amount)
        return result

    # passes

    def apply_pass_to_booking(
        self, booking_id: str, user_id: str, pass_ref: str, now: Optional[datetime] = None
    ) -> BookingResult:
        now = now or utcnow()
        b = self._get(booking_id, user_id)
        if b.status in BookingStatus.RELEASED:
            raise ValidationError("Booking is no longer active", details={"status": b.status})
        if b.pass_pending or money(b.pass_discount_amount or 0) > 0:
            raise ConflictError("A pass is already applied to this booking", details={"pass_id": b.pass_id})
        window = self._window(b)
        ent = self.passes.resolve_one(user_id, pass_ref, now)
        rule = self.passes.check_usable(ent, window, now)
        coverage = pass_coverage(rule, window, hourly_rate(b.member_type))
        net = money(b.amount_before_fees)
        discount = min(coverage["pass_discount"], net)
        if discount <= 0:
            raise ValidationError("Nothing left to discount on this booking", details={"amount_due": str(net)})

        action = ActionType.MODIFICATION if b.confirmed_payment else ActionType.ORIGINAL_BOOKING
        consumption = self.passes.consume(user_id, ent.id, b.id, action, discount, coverage["covered_minutes"])
        stack = Compensation(f"apply pass {b.booking_ref}").extend(consumption.compensation)
        b.pass_id = ent.id
        b.pass_pending = False
        b.pass_discount_amount = consumption.discount_amount
        self._reprice(b, net - consumption.discount_amount, self._fee_config())
        self._save(b, stack, "applying a pass")

        self.activity.record(
            b, ActivityType.PASS_USED, "Pass applied",
            f"{ent.pass_type} covering {coverage['covered_hours']}h", amount=consumption.discount_amount,
        )
        return BookingResult(b, amount_due=ZERO if b.confirmed_payment else money(b.total_amount))

    def validate_pass_usage(
        self,
        user_id: str,
        pass_type: str,
        start_at: datetime,
        end_at: datetime,
        pax: int = 1,
        member_type: str = MemberType.MEMBER,
        now: Optional[datetime] = None,
    ) -> dict:
        return self.passes.validate(user_id, pass_type, TimeWindow(start_at, end_at), pax, hourly_rate(member_type), now)

    def get_user_pass_balance(self, user_id: str) -> dict:
        return self.passes.balance(user_id)

    # ledger reads

    def get_booking_discount_history(self, booking_id: str) -> list:
        b = self._get(booking_id)
        return self.ledger.history_for(b.id)

    def get_booking_discount_summary(self, booking_id: str) -> dict:
        b = self._get(booking_id)
        summary = self.ledger.summary_for(b.id)
        summary["booking_ref"] = b.booking_ref
        summary["reconciliation"] = self.ledger.reconcile(b)
        return summary

    # reschedule

    def reschedule_booking(
        self,
        booking_id: str,
        user_id: str,
        start_at: datetime,
        end_at: datetime,
        seat_numbers: Optional[List[str]] = None,
        credit_amount: Decimal = ZERO,
        payment_method: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        now = now or utcnow()
        window = TimeWindow(start_at, end_at)
        if window.start <= now:
            raise ValidationError("New time must be in the future", details={"start_at": start_at.isoformat()})
        b = self._get(booking_id, user_id)
        if (b.reschedule_count or 0) >= 1:
            raise AlreadyRescheduledError(
                "This booking has already been rescheduled",
                details={"rescheduled_at": b.rescheduled_at.isoformat() if b.rescheduled_at else None},
            )
        if b.status != BookingStatus.CONFIRMED or not b.confirmed_payment:
            raise ValidationError("Only confirmed bookings can be rescheduled", details={"status": b.status})

        if seat_numbers is not None:
            seats = clean_seats(seat_numbers)
            self.conflicts.check_seats(b.location, window, seats, exclude_booking_id=b.id)
        else:
            seats = list(b.seat_numbers or [])
            self.conflicts.check_seats(
                b.location, window, seats, exclude_booking_id=b.id, error_cls=SeatSelectionRequiredError
            )

        old_window = self._window(b)
        old_value = f"{old_window.start.isoformat()} - {old_window.end.isoformat()} [{', '.join(b.seat_numbers or [])}]"
        cost_delta = max(self._party_gross(b, window) - self._party_gross(b, old_window), ZERO)

        stack = Compensation(f"reschedule {b.booking_ref}")
        result = BookingResult(b)
        if cost_delta > 0:
            method = payment_method or b.payment_method
            config = self._fee_config()
            result.credit = self._consume_credit(
                b, min(money(credit_amount or 0), cost_delta), ActionType.RESCHEDULE, stack
            )
            consumed = result.credit.amount_consumed if result.credit else ZERO
            due = cost_delta - consumed
            reschedule_fee = fee_service.fee(due, method, config)
            b.reschedule_cost = cost_delta
            b.reschedule_credit_amount = consumed
            b.reschedule_fee = reschedule_fee
            b.reschedule_amount = due + reschedule_fee
            b.reschedule_payment_confirmed = b.reschedule_amount == 0
            if b.reschedule_amount > 0:
                pid = str(uuid.uuid4())
                try:
                    self.payments.add(
                        Payment(
                            id=pid, booking_id=b.id, purpose=PaymentPurpose.RESCHEDULE,
                            method=method or "paynow", amount=b.reschedule_amount, status="pending",
                        )
                    )
                except Exception as exc:
                    failed = stack.run()
                    raise InconsistencyError(
                        "Could not create the reschedule payment",
                        details={"booking_id": b.id, "unrestored_steps": failed, "reason": str(exc)},
                    ) from exc
                b.reschedule_payment_id = pid
            result.amount_due = money(b.reschedule_amount)
        else:
            b.reschedule_payment_confirmed = True

        b.start_at, b.end_at = window.start, window.end
        b.seat_numbers = seats
        b.reschedule_count = 1
        b.rescheduled_at = now
        self._save(b, stack, "rescheduling")

        self.activity.record(
            b, ActivityType.RESCHEDULE_APPROVED, "Booking rescheduled", reason or "",
            amount=money(b.reschedule_cost or 0), old_value=old_value,
            new_value=f"{window.start.isoformat()} - {window.end.isoformat()} [{', '.join(seats)}]",
        )
        if result.credit and result.credit.amount_consumed > 0:
            self.activity.record(
                b, ActivityType.CREDIT_USED, "Credit applied to reschedule", amount=result.credit.amount_consumed
            )
        if b.reschedule_payment_confirmed:
            self._notify("reschedule_confirmed", b)
        return result

    def confirm_reschedule_payment(self, booking_id: str, payment_id: str) -> BookingResult:
        b = self._get(booking_id)
        if not b.reschedule_count:
            raise ValidationError("Booking has not been rescheduled", details={"booking_id": b.id})
        if b.reschedule_payment_confirmed:
            return BookingResult(b, already_confirmed=True)
        self._check_payment_free(payment_id, b.id)
        if payment_id != b.reschedule_payment_id:
            raise ValidationError(
                "Payment does not belong to this reschedule",
                details={"payment_id": payment_id, "expected": b.reschedule_payment_id},
            )
        b.reschedule_payment_confirmed = True
        self._save(b, Compensation(), "confirming reschedule payment")
        self.payments.mark_completed(payment_id)
        self.activity.record(
            b, ActivityType.RESCHEDULE_PAYMENT_CONFIRMED, "Reschedule payment confirmed", amount=b.reschedule_amount
        )
        self._notify("reschedule_confirmed", b)
        return BookingResult(b)

    def available_seats_for_reschedule(
        self, booking_id: str, start_at: datetime, end_at: datetime
    ) -> dict:
        b = self._get(booking_id)
        out = self.conflicts.available_seats(b.location, TimeWindow(start_at, end_at), exclude_booking_id=b.id)
        out["current_seats"] = list(b.seat_numbers or [])
        out["current_seats_available"] = all(s in out["available_seats"] for s in out["current_seats"])
        return out

    # extend

    def _extension_window(self, b: Booking, new_end_at: datetime, seat_numbers: Optional[List[str]]):
        if b.status != BookingStatus.CONFIRMED or not b.confirmed_payment:
            raise ValidationError("Only confirmed bookings can be extended", details={"status": b.status})
        if new_end_at <= b.end_at:
            raise ValidationError(
                "New end time must be after the current end time",
                details={"current_end_at": b.end_at.isoformat(), "new_end_at": new_end_at.isoformat()},
            )
        added = TimeWindow(b.end_at, new_end_at)
        current = list(b.seat_numbers or [])
        seats = clean_seats(seat_numbers) if seat_numbers is not None else current
        # Moving seats moves the whole booking, not just the added hours.
        checked = added if set(seats) == set(current) else TimeWindow(b.start_at, new_end_at)
        self.conflicts.check_seats(b.location, checked, seats, exclude_booking_id=b.id)
        return added, seats

    def extend_booking(
        self,
        booking_id: str,
        user_id: str,
        new_end_at: datetime,
        seat_numbers: Optional[List[str]] = None,
        credit_amount: Decimal = ZERO,
        payment_method: Optional[str] = None,
    ) -> dict:
        """Validate an extension and quote it. Nothing changes until the payment is confirmed."""
        b = self._get(booking_id, user_id)
        added, seats = self._extension_window(b, new_end_at, seat_numbers)
        cost = self._party_gross(b, added)
        credit = self.wallet.quote(b.user_id, min(money(credit_amount or 0), cost))
        due = cost - credit["credit_applicable"]
        method = payment_method or b.payment_method
        processing_fee = fee_service.fee(due, method, self._fee_config())
        quote = {
            "booking_id": b.id,
            "booking_ref": b.booking_ref,
            "current_end_at": b.end_at,
            "new_end_at": new_end_at,
            "seat_numbers": seats,
            "extension_hours": added.hours,
            "extension_cost": cost,
            "credit_applicable": credit["credit_applicable"],
            "processing_fee": processing_fee,
            "amount_due": due + processing_fee,
        }
        self.activity.record(
            b, ActivityType.EXTEND_REQUESTED, "Extension requested",
            f"Until {new_end_at.isoformat()}", amount=cost,
            old_value=b.end_at.isoformat(), new_value=new_end_at.isoformat(),
        )
        return quote

    def confirm_extension_payment(
        self,
        booking_id: str,
        user_id: str,
        new_end_at: datetime,
        payment_id: Optional[str] = None,
        seat_numbers: Optional[List[str]] = None,
        credit_amount: Decimal = ZERO,
        payment_method: Optional[str] = None,
    ) -> BookingResult:
        b = self._get(booking_id, user_id)
        if payment_id:
            p = self.payments.get(payment_id)
            if p is not None and p.status == "completed":
                if p.booking_id == b.id and p.purpose == PaymentPurpose.EXTENSION:
                    return BookingResult(b, already_confirmed=True)
                raise PaymentAlreadyConfirmedError(
                    "This payment has already been used", details={"payment_id": payment_id}
                )
        added, seats = self._extension_window(b, new_end_at, seat_numbers)
        cost = self._party_gross(b, added)
        method = payment_method or b.payment_method

        stack = Compensation(f"extend {b.booking_ref}")
        result = BookingResult(b)
        result.credit = self._consume_credit(b, min(money(credit_amount or 0), cost), ActionType.EXTENSION, stack)
        consumed = result.credit.amount_consumed if result.credit else ZERO
        due = cost - consumed
        processing_fee = fee_service.fee(due, method, self._fee_config())

        old_end = b.end_at
        b.extension_amounts = list(b.extension_amounts or []) + [str(cost)]
        b.extension_credit_amount = money(b.extension_credit_amount or 0) + consumed
        b.total_actual_cost = money(b.total_amount) + b.extension_total
        b.end_at = new_end_at
        b.seat_numbers = seats
        self._save(b, stack, "extending")

        try:
            pid = payment_id or str(uuid.uuid4())
            if not self.payments.get(pid):
                self.payments.add(
                    Payment(
                        id=pid, booking_id=b.id, purpose=PaymentPurpose.EXTENSION,
                        method=method or ("credits" if due == 0 else "paynow"),
                        amount=due + processing_fee, status="completed",
                    )
                )
            else:
                self.payments.mark_completed(pid, amount=due + processing_fee)
        except Exception:
            logger.exception("extension of %s saved but payment %s not recorded", b.booking_ref, payment_id)

        self.activity.record(
            b, ActivityType.EXTEND_APPROVED, "Booking extended",
            f"Extended by {added.hours}h", amount=cost,
            old_value=old_end.isoformat(), new_value=new_end_at.isoformat(),
            details={"credit_used": str(consumed), "processing_fee": str(processing_fee)},
        )
        self._notify("extension_confirmed", b, cost)
        result.amount_due = ZERO
        return result

    # cancel / holds

    def _return_unpaid_credit(self, b: Booking) -> Decimal:
        """Give back credit applied to a booking that was never paid."""
        returned = ZERO
        history = self.ledger.history_for(b.id)
        reversed_ids = {e.reverses_entry_id for e in history if e.reverses_entry_id}
        credit_entries = [e for e in history if e.discount_type == DiscountType.CREDIT and e.discount_amount > 0]
        for usage in self.repos.credits.usages_for_booking(b.id):
            if self.repos.credits.restore(usage.credit_id, usage.amount_used):
                self.repos.credits.mark_usage_reversed(usage.id)
                returned += money(usage.amount_used)
        for e in credit_entries:
            if e.id not in reversed_ids:
                self.ledger.reverse(e.id, entry_to_dict(e), "unpaid booking cancelled")
        return returned

    def cancel_booking(
        self, booking_id: str, user_id: Optional[str] = None, reason: Optional[str] = None
    ) -> BookingResult:
        b = self._get(booking_id, user_id)
        if b.status in BookingStatus.RELEASED:
            return BookingResult(b, already_confirmed=b.confirmed_payment)
        returned = ZERO
        if not b.confirmed_payment and money(b.credit_amount or 0) > 0:
            returned = self._return_unpaid_credit(b)
        old_status = b.status
        b.status = BookingStatus.CANCELLED
        b.cancelled_at = utcnow()
        self.bookings.save(b)
        self.activity.record(
            b, ActivityType.BOOKING_CANCELLED, "Booking cancelled", reason or "",
            old_value=old_status, new_value=b.status, amount=returned or None,
        )
        result = BookingResult(b)
        if returned > 0:
            result.notes.append(f"{returned} credit returned")
        return result

    def expire_unpaid_bookings(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or utcnow()) - timedelta(minutes=settings.UNPAID_HOLD_MINUTES)
        expired = 0
        for b in self.bookings.find_unpaid_created_before(cutoff):
            try:
                self.cancel_booking(b.id, reason="payment hold expired")
                expired += 1
            except Exception:
                logger.exception("could not expire unpaid booking %s", b.booking_ref)
        return expired
