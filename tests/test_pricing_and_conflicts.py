from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.core.errors import SeatConflictError, ValidationError
from app.services.compensation import Compensation
from app.services.pricing_service import TimeWindow, gross_cost, hourly_rate, money


def utc(h, m=0):
    return datetime(2030, 1, 7, h, m, tzinfo=timezone.utc)


class TestTimeWindow:
    def test_rejects_end_before_start(self):
        with pytest.raises(ValidationError):
            TimeWindow(utc(12), utc(10))

    def test_rejects_naive_datetimes(self):
        with pytest.raises(ValidationError):
            TimeWindow(datetime(2030, 1, 7, 10), datetime(2030, 1, 7, 12))

    def test_touching_windows_do_not_overlap(self):
        assert not TimeWindow(utc(10), utc(12)).overlaps(TimeWindow(utc(12), utc(14)))
        assert TimeWindow(utc(10), utc(12)).overlaps(TimeWindow(utc(11, 59), utc(14)))

    def test_hours(self):
        assert TimeWindow(utc(10), utc(11, 30)).hours == Decimal("1.5")


class TestPricing:
    def test_gross_sums_each_role(self):
        window = TimeWindow(utc(10), utc(12))
        # 2h x (2 x 6 + 1 x 5 + 1 x 4)
        assert gross_cost(window, 2, 1, 1) == Decimal("42.00")

    def test_unknown_role(self):
        with pytest.raises(ValidationError):
            hourly_rate("VISITOR")

    def test_money_rounds_half_up(self):
        assert money("2.345") == Decimal("2.35")


class TestConflictDetection:
    def test_overlapping_seat_is_rejected(self, book, at):
        """Two requests for S3, [10,12) then [11,13), by different users."""
        book(user_id="u1", start=10, end=12, seats=["S3"])
        with pytest.raises(SeatConflictError) as exc:
            book(user_id="u2", start=11, end=13, seats=["S3", "S4"])
        assert exc.value.details["conflicting_seats"] == ["S3"]
        assert exc.value.details["pending_count"] == 1
        assert exc.value.details["confirmed_count"] == 0

    def test_confirmed_conflicts_reported_separately(self, book, lifecycle):
        first = book(user_id="u1", seats=["S1"])
        lifecycle.confirm_booking_payment(first.booking.id)
        with pytest.raises(SeatConflictError) as exc:
            book(user_id="u2", seats=["S1"])
        assert exc.value.details["confirmed_count"] == 1

    def test_back_to_back_bookings_share_a_seat(self, book):
        book(user_id="u1", start=10, end=12, seats=["S1"])
        result = book(user_id="u2", start=12, end=14, seats=["S1"])
        assert result.booking.seat_numbers == ["S1"]

    def test_cancelled_booking_releases_seats(self, book, lifecycle):
        first = book(user_id="u1", seats=["S1"])
        lifecycle.cancel_booking(first.booking.id, "u1")
        assert book(user_id="u2", seats=["S1"]).booking.status == "PENDING_PAYMENT"

    def test_other_location_does_not_conflict(self, book):
        book(user_id="u1", seats=["S1"])
        assert book(user_id="u2", seats=["S1"], location="tanjong-pagar").booking

    def test_available_seats_excludes_own_booking(self, book, lifecycle, at):
        mine = book(user_id="u1", seats=["S1"])
        book(user_id="u2", seats=["S2"])
        out = lifecycle.available_seats_for_reschedule(mine.booking.id, at(10, 10), at(10, 12))
        assert "S1" in out["available_seats"]
        assert "S2" not in out["available_seats"]
        assert out["current_seats_available"] is True


class TestCompensation:
    def test_runs_newest_first_once(self):
        order = []
        token = Compensation("t").add("a", lambda: order.append("a")).add("b", lambda: order.append("b"))
        assert token.run() == []
        assert token.run() == []
        assert order == ["b", "a"]

    def test_failed_step_is_reported_and_others_still_run(self):
        order = []

        def boom():
            raise RuntimeError("nope")

        token = Compensation("t").add("a", lambda: order.append("a")).add("boom", boom)
        assert token.run() == ["boom"]
        assert order == ["a"]

    def test_checked_step_reports_a_restore_that_touched_nothing(self):
        token = Compensation("t").add_checked("restore grant g1", lambda: False).add_checked("restore pass p1", lambda: True)
        assert token.run() == ["restore grant g1"]
