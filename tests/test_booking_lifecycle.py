from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    ConflictError,
    DuplicateBookingError,
    InconsistencyError,
    PaymentAlreadyConfirmedError,
    ValidationError,
)
from app.models.activity_log import ActivityLogEntry, ActivityType
from app.models.booking import Booking
from app.models.credit import CreditGrant
from app.models.discount_ledger import ActionType, DiscountType
from app.models.payment import Payment
from app.models.promo_code import PromoCode
from app.models.user_pass import PassEntitlement
from app.services.booking_service import BookingLifecycle
from app.services.fee_service import FeeConfig, PaymentSettingsProvider


def activities(db, booking_id, activity_type=None):
    q = db.query(ActivityLogEntry).filter(ActivityLogEntry.booking_id == booking_id)
    if activity_type:
        q = q.filter(ActivityLogEntry.activity_type == activity_type)
    return q.all()


class TestCreate:
    def test_plain_booking(self, db, book):
        result = book()
        b = result.booking
        assert b.booking_ref.startswith("CWK-")
        assert b.status == "PENDING_PAYMENT"
        assert b.total_cost == Decimal("12.00")
        assert b.total_amount == Decimal("12.00")
        assert result.amount_due == Decimal("12.00")
        payment = db.get(Payment, b.payment_id)
        assert payment.status == "pending"
        assert payment.amount == Decimal("12.00")
        assert len(activities(db, b.id, ActivityType.BOOKING_CREATED)) == 1

    def test_card_fee_added_on_top(self, db, book):
        result = book(start=9, end=13, member_type="STUDENT", payment_method="credit_card")
        b = result.booking
        assert b.total_cost == Decimal("20.00")
        assert b.processing_fee == Decimal("1.00")
        assert b.total_amount == Decimal("21.00")
        assert b.amount_before_fees == Decimal("20.00")

    def test_mixed_party_pricing(self, book):
        b = book(pax=3, members=1, students=1, tutors=1).booking
        # 2h x (6 + 5 + 4)
        assert b.total_cost == Decimal("30.00")

    def test_party_must_add_up(self, book):
        with pytest.raises(ValidationError):
            book(pax=2, members=1)

    def test_past_start_rejected(self, book):
        with pytest.raises(ValidationError):
            book(days=-1)

    def test_seats_required_and_unique(self, book):
        with pytest.raises(ValidationError):
            book(seats=[])
        with pytest.raises(ValidationError):
            book(seats=["S1", "S1"])

    def test_disabled_payment_method(self, repos, at):
        disabled = FeeConfig(
            card_fee_percentage=Decimal("5"),
            transfer_fee=Decimal("0.20"),
            transfer_fee_threshold=Decimal("10"),
            card_enabled=False,
        )
        provider = PaymentSettingsProvider(lambda: disabled)
        provider.refresh()
        lifecycle = BookingLifecycle(repos, provider)
        with pytest.raises(ValidationError) as exc:
            lifecycle.create_booking(
                user_id="u1", location="orchard", start_at=at(10, 10), end_at=at(10, 12),
                seat_numbers=["S1"], payment_method="credit_card",
            )
        assert exc.value.details == {"payment_method": "credit_card"}

    def test_overlapping_booking_by_same_user(self, book):
        book(seats=["S1"])
        with pytest.raises(DuplicateBookingError):
            book(start=11, end=13, seats=["S2"])

    def test_retry_of_in_flight_request_returns_same_booking(self, book):
        first = book(seats=["S1", "S2"])
        again = book(seats=["S2", "S1"])
        assert again.idempotent_replay is True
        assert again.booking.id == first.booking.id

    def test_duplicate_identity(self, book):
        book(booking_id="bk-1", booking_ref="CWK-AAAAAA")
        with pytest.raises(DuplicateBookingError):
            book(days=11, booking_id="bk-1")
        with pytest.raises(DuplicateBookingError):
            book(days=11, booking_ref="CWK-AAAAAA")

    def test_completed_payment_cannot_be_reused(self, book, lifecycle):
        first = book(payment_id="pay-1")
        lifecycle.confirm_booking_payment(first.booking.id)
        with pytest.raises(PaymentAlreadyConfirmedError):
            book(days=11, payment_id="pay-1")

    def test_promo_and_credit_stack(self, db, lifecycle, book, make_promo, make_grant):
        make_promo(code="SAVE10")
        make_grant(amount="10.00")
        result = book(promo_code_id="SAVE10", credit_amount=Decimal("20"))
        b = result.booking

        assert b.promo_discount_amount == Decimal("1.20")
        assert b.credit_amount == Decimal("10.00")
        assert b.total_amount == Decimal("0.80")
        assert result.credit.remainder == Decimal("0.80")
        assert any("remains payable" in n for n in result.notes)

        summary = lifecycle.get_booking_discount_summary(b.id)
        assert summary["by_type"][DiscountType.PROMO_CODE] == Decimal("1.20")
        assert summary["by_type"][DiscountType.CREDIT] == Decimal("10.00")
        assert summary["reconciliation"]["ok"] is True

    def test_credit_covering_everything_needs_no_payment(self, lifecycle, book, make_grant):
        make_grant(amount="20.00")
        result = book(credit_amount=Decimal("12"))
        assert result.booking.total_amount == Decimal("0.00")
        assert result.booking.payment_id is None
        assert result.amount_due == Decimal("0.00")
        confirmed = lifecycle.confirm_booking_payment(result.booking.id)
        assert confirmed.booking.status == "CONFIRMED"

    def test_booker_must_be_in_party_to_use_pass(self, book, make_pass):
        make_pass()
        with pytest.raises(ValidationError):
            book(start=8, end=17, pax=2, students=2, pass_ref="DAY_PASS")

    def test_activity_failure_does_not_fail_create(self, repos, book, monkeypatch):
        def boom(entry):
            raise RuntimeError("activity store down")

        monkeypatch.setattr(repos.activity, "add", boom)
        assert book().booking.status == "PENDING_PAYMENT"

    def test_credit_ledger_failure_cancels_booking_and_restores_credit(
        self, db, lifecycle, book, make_grant, monkeypatch
    ):
        grant = make_grant(amount="10.00")

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(lifecycle.ledger, "append", boom)
        with pytest.raises(InconsistencyError):
            book(booking_id="bk-fail", credit_amount=Decimal("10"))

        assert db.get(CreditGrant, grant).amount == Decimal("10.00")
        assert db.get(Booking, "bk-fail").status == "CANCELLED"


class TestPassBooking:
    def test_day_pass_on_nine_hour_booking(self, db, lifecycle, book, make_pass, notifier):
        """9 hours with an 8 hour day pass for one member: pass covers 8h, 1h remains."""
        pid = make_pass(count=3)
        result = book(start=8, end=17, pass_ref="DAY_PASS")
        b = result.booking
        assert b.total_cost == Decimal("54.00")
        assert b.pass_pending is True
        assert result.amount_due == Decimal("6.00")
        assert lifecycle.get_booking_discount_history(b.id) == []

        confirmed = lifecycle.confirm_booking_payment(b.id).booking
        assert confirmed.status == "CONFIRMED"
        assert confirmed.pass_pending is False
        assert confirmed.pass_discount_amount == Decimal("48.00")
        assert confirmed.total_amount == Decimal("6.00")
        assert db.get(PassEntitlement, pid).remaining_count == 2
        assert db.get(Payment, confirmed.payment_id).status == "completed"
        assert db.get(Payment, confirmed.payment_id).amount == Decimal("6.00")

        history = lifecycle.get_booking_discount_history(b.id)
        assert [(e.discount_type, e.discount_amount) for e in history] == [(DiscountType.PASS, Decimal("48.00"))]
        assert lifecycle.get_booking_discount_summary(b.booking_ref)["reconciliation"]["ok"] is True
        assert notifier.sent == [("booking_confirmed", b.booking_ref)]

    def test_pass_covers_one_person_of_a_party(self, book, make_pass):
        make_pass()
        result = book(start=8, end=17, pax=3, pass_ref="DAY_PASS")
        assert result.booking.total_cost == Decimal("162.00")
        assert result.amount_due == Decimal("114.00")

    def test_pass_exhausted_before_confirmation(self, lifecycle, book, make_pass):
        make_pass(count=1)
        first = book(days=10, start=8, end=17, pass_ref="DAY_PASS")
        second = book(days=11, start=8, end=17, pass_ref="DAY_PASS")
        lifecycle.confirm_booking_payment(first.booking.id)

        result = lifecycle.confirm_booking_payment(second.booking.id)
        assert result.booking.status == "CONFIRMED"
        assert result.booking.pass_pending is False
        assert result.booking.total_amount == Decimal("54.00")
        assert result.notes
        assert lifecycle.get_booking_discount_history(second.booking.id) == []
        assert lifecycle.get_booking_discount_summary(second.booking.id)["reconciliation"]["ok"] is True

    def test_apply_pass_to_confirmed_booking(self, lifecycle, book, make_pass):
        make_pass()
        b = book(start=8, end=17).booking
        lifecycle.confirm_booking_payment(b.id)

        result = lifecycle.apply_pass_to_booking(b.id, "u1", "DAY_PASS")
        assert result.booking.total_amount == Decimal("6.00")
        assert result.amount_due == Decimal("0.00")
        history = lifecycle.get_booking_discount_history(b.id)
        assert [e.action_type for e in history] == [ActionType.MODIFICATION]
        assert lifecycle.get_booking_discount_summary(b.id)["reconciliation"]["ok"] is True

        with pytest.raises(ConflictError):
            lifecycle.apply_pass_to_booking(b.id, "u1", "DAY_PASS")

    def test_save_failure_gives_pass_back(self, db, repos, lifecycle, book, make_pass, monkeypatch):
        pid = make_pass(count=2)
        b = book(start=8, end=17, pass_ref="DAY_PASS").booking

        def failing_save(booking):
            db.rollback()
            raise OperationalError("UPDATE bookings", {}, Exception("disk full"))

        monkeypatch.setattr(repos.bookings, "save", failing_save)
        with pytest.raises(InconsistencyError):
            lifecycle.confirm_booking_payment(b.id)
        monkeypatch.undo()

        assert db.get(PassEntitlement, pid).remaining_count == 2
        assert db.get(Booking, b.id).status == "PENDING_PAYMENT"
        summary = lifecycle.ledger.summary_for(b.id)
        assert summary["entry_count"] == 2
        assert summary["total_discount"] == Decimal("0.00")


class TestConfirm:
    def test_confirm_is_idempotent(self, db, lifecycle, book, make_promo, make_grant, notifier):
        make_promo(code="SAVE10")
        make_grant(amount="5.00")
        b = book(promo_code_id="SAVE10", credit_amount=Decimal("5")).booking

        first = lifecycle.confirm_booking_payment(b.id)
        ledger_before = len(lifecycle.get_booking_discount_history(b.id))
        second = lifecycle.confirm_booking_payment(b.id)

        assert first.already_confirmed is False
        assert second.already_confirmed is True
        assert len(lifecycle.get_booking_discount_history(b.id)) == ledger_before == 2
        assert len(activities(db, b.id, ActivityType.PAYMENT_CONFIRMED)) == 1
        assert len(notifier.sent) == 1
        assert db.query(PromoCode).filter(PromoCode.code == "SAVE10").one().usage_count == 1

    def test_notification_failure_does_not_fail_confirm(self, lifecycle, book, notifier, monkeypatch):
        def boom(booking):
            raise RuntimeError("smtp down")

        monkeypatch.setattr(notifier, "booking_confirmed", boom)
        b = book().booking
        assert lifecycle.confirm_booking_payment(b.id).booking.status == "CONFIRMED"

    def test_cancelled_booking_cannot_be_confirmed(self, lifecycle, book):
        b = book().booking
        lifecycle.cancel_booking(b.id, "u1")
        with pytest.raises(ValidationError):
            lifecycle.confirm_booking_payment(b.id)

    def test_reconciliation_flags_drift(self, db, lifecycle, book):
        b = book().booking
        lifecycle.confirm_booking_payment(b.id)
        row = db.get(Booking, b.id)
        row.total_amount = Decimal("10.00")
        db.commit()

        report = lifecycle.get_booking_discount_summary(b.id)["reconciliation"]
        assert report["ok"] is False
        assert report["phases"]["original"]["expected"] == Decimal("2.00")
        assert report["phases"]["original"]["ledger"] == Decimal("0.00")
