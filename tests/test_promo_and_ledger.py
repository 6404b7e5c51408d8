from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.errors import NotFoundError, ValidationError
from app.db.types import utcnow
from app.models.discount_ledger import ActionType, DiscountType
from app.models.promo_code import PromoCode
from app.services.discount_ledger_service import DiscountLedger, entry_to_dict
from app.services.pricing_service import TimeWindow
from app.services.promo_code_service import PromoCodeValidator


@pytest.fixture
def promos(repos):
    return PromoCodeValidator(repos.promos)


@pytest.fixture
def ledger(repos):
    return DiscountLedger(repos.ledger)


@pytest.fixture
def two_hours(at):
    return TimeWindow(at(5, 10), at(5, 12))


class TestPromoValidation:
    def test_lookup_by_id_or_code(self, promos, make_promo, two_hours):
        pid = make_promo(code="SAVE10")
        assert promos.validate(pid, two_hours).id == pid
        assert promos.validate("save10", two_hours).id == pid

    def test_unknown_code(self, promos, two_hours):
        with pytest.raises(NotFoundError):
            promos.validate("NOPE", two_hours)

    def test_inactive_code(self, promos, make_promo, two_hours):
        make_promo(code="OLD", is_active=False)
        with pytest.raises(ValidationError) as exc:
            promos.validate("OLD", two_hours)
        assert exc.value.details["reason"] == "inactive"

    def test_minimum_hours(self, promos, make_promo, two_hours):
        make_promo(code="LONG", minimum_hours=Decimal("3"))
        with pytest.raises(ValidationError) as exc:
            promos.validate("LONG", two_hours)
        assert Decimal(exc.value.details["minimum_hours"]) == Decimal("3")

    def test_expired_code(self, promos, make_promo, two_hours):
        make_promo(code="GONE", active_to=utcnow() - timedelta(days=1))
        with pytest.raises(ValidationError):
            promos.validate("GONE", two_hours)

    def test_global_limit(self, promos, make_promo, two_hours):
        make_promo(code="FIRST100", max_total_usage=100, usage_count=100)
        with pytest.raises(ValidationError) as exc:
            promos.validate("FIRST100", two_hours)
        assert exc.value.details["reason"] == "global_limit"

    def test_per_user_limit_counts_recorded_usage(self, promos, make_promo, two_hours):
        pid = make_promo(code="ONCE", max_usage_per_user=1)
        assert promos.record_usage(pid, "u1", "bk-1", Decimal("1.20"))
        assert not promos.record_usage(pid, "u1", "bk-1", Decimal("1.20"))
        with pytest.raises(ValidationError) as exc:
            promos.validate("ONCE", two_hours, user_id="u1")
        assert exc.value.details["reason"] == "user_limit"
        assert promos.validate("ONCE", two_hours, user_id="u2").id == pid


class TestPromoDiscount:
    def test_percentage_capped(self):
        promo = PromoCode(discount_type="percentage", discount_value=Decimal("50"), maximum_discount=Decimal("10"))
        assert PromoCodeValidator.compute_discount(promo, Decimal("54")) == Decimal("10.00")

    def test_percentage(self):
        promo = PromoCode(discount_type="percentage", discount_value=Decimal("10"))
        assert PromoCodeValidator.compute_discount(promo, Decimal("54")) == Decimal("5.40")

    def test_fixed_never_exceeds_price(self):
        promo = PromoCode(discount_type="fixed", discount_value=Decimal("20"))
        assert PromoCodeValidator.compute_discount(promo, Decimal("12")) == Decimal("12.00")


class TestLedger:
    def test_append_rejects_bad_input(self, ledger):
        with pytest.raises(ValidationError):
            ledger.append("bk-1", "u1", "COUPON", ActionType.ORIGINAL_BOOKING, Decimal("1"))
        with pytest.raises(ValidationError):
            ledger.append("bk-1", "u1", DiscountType.CREDIT, "UPGRADE", Decimal("1"))
        with pytest.raises(ValidationError):
            ledger.append("bk-1", "u1", DiscountType.CREDIT, ActionType.ORIGINAL_BOOKING, Decimal("0"))

    def test_summary_groups_by_type_and_action(self, ledger):
        ledger.append("bk-1", "u1", DiscountType.PROMO_CODE, ActionType.ORIGINAL_BOOKING, Decimal("5.40"))
        ledger.append("bk-1", "u1", DiscountType.CREDIT, ActionType.ORIGINAL_BOOKING, Decimal("10"))
        ledger.append("bk-1", "u1", DiscountType.CREDIT, ActionType.EXTENSION, Decimal("2"))
        ledger.append("bk-2", "u1", DiscountType.PASS, ActionType.ORIGINAL_BOOKING, Decimal("48"))

        summary = ledger.summary_for("bk-1")
        assert summary["total_discount"] == Decimal("17.40")
        assert summary["by_type"][DiscountType.CREDIT] == Decimal("12.00")
        assert summary["by_type"][DiscountType.PASS] == Decimal("0.00")
        assert summary["by_action"][ActionType.EXTENSION] == Decimal("2.00")
        assert summary["entry_count"] == 3
        assert len(ledger.history_for_user("u1")) == 4

    def test_reversal_is_a_negative_twin(self, ledger):
        entry = ledger.append("bk-1", "u1", DiscountType.PASS, ActionType.ORIGINAL_BOOKING, Decimal("48"))
        twin = ledger.reverse(entry.id, entry_to_dict(entry), "test")

        assert twin.discount_amount == Decimal("-48.00")
        assert twin.reverses_entry_id == entry.id
        assert twin.description == "Reversal: test"
        assert ledger.summary_for("bk-1")["total_discount"] == Decimal("0.00")
        assert len(ledger.history_for("bk-1")) == 2
