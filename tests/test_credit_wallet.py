from decimal import Decimal

import pytest

from app.core.errors import InconsistencyError, ValidationError
from app.models.credit import CreditGrant, CreditUsage
from app.models.discount_ledger import ActionType, DiscountType
from app.services.credit_wallet_service import CreditWallet
from app.services.discount_ledger_service import DiscountLedger


@pytest.fixture
def ledger(repos):
    return DiscountLedger(repos.ledger)


@pytest.fixture
def wallet(repos, ledger):
    return CreditWallet(repos.credits, ledger)


class TestConsume:
    def test_fifo_by_expiry(self, db, wallet, ledger, make_grant):
        """$5 expiring sooner and $10 later; consuming $12 drains the first and leaves $3."""
        later = make_grant(amount="10.00", expires_in_days=60)
        sooner = make_grant(amount="5.00", expires_in_days=10)

        result = wallet.consume("u1", "bk-1", Decimal("12"), ActionType.ORIGINAL_BOOKING)

        assert result.amount_consumed == Decimal("12.00")
        assert result.remainder == Decimal("0.00")
        first, second = db.get(CreditGrant, sooner), db.get(CreditGrant, later)
        assert first.amount == Decimal("0.00")
        assert first.status == "USED"
        assert second.amount == Decimal("3.00")
        assert second.status == "ACTIVE"

        entries = ledger.history_for("bk-1")
        assert len(entries) == 1
        assert entries[0].discount_type == DiscountType.CREDIT
        assert entries[0].discount_amount == Decimal("12.00")
        assert entries[0].credit_id == sooner
        assert [u["credit_id"] for u in result.usages] == [sooner, later]

    def test_partial_consumption_reports_shortfall(self, wallet, make_grant):
        make_grant(amount="4.00")
        result = wallet.consume("u1", "bk-1", Decimal("10"), ActionType.ORIGINAL_BOOKING)
        assert result.amount_consumed == Decimal("4.00")
        assert result.remainder == Decimal("6.00")

    def test_nothing_available_writes_nothing(self, wallet, ledger):
        result = wallet.consume("u1", "bk-1", Decimal("10"), ActionType.ORIGINAL_BOOKING)
        assert result.amount_consumed == Decimal("0.00")
        assert ledger.history_for("bk-1") == []

    def test_expired_and_foreign_grants_are_ignored(self, wallet, make_grant):
        make_grant(amount="10.00", expires_in_days=-1)
        make_grant(user_id="u2", amount="10.00")
        assert wallet.total_available("u1") == Decimal("0.00")

    def test_negative_amount_rejected(self, wallet):
        with pytest.raises(ValidationError):
            wallet.consume("u1", "bk-1", Decimal("-1"), ActionType.ORIGINAL_BOOKING)

    def test_stale_version_skips_grant(self, db, repos, wallet, make_grant, monkeypatch):
        """A grant changed between read and write is skipped, not overwritten."""
        contested = make_grant(amount="5.00", expires_in_days=5)
        spare = make_grant(amount="10.00", expires_in_days=50)
        real_debit = repos.credits.debit

        def racing_debit(credit_id, expected_version, new_amount, new_status):
            if credit_id == contested:
                expected_version -= 1
            return real_debit(credit_id, expected_version, new_amount, new_status)

        monkeypatch.setattr(repos.credits, "debit", racing_debit)
        result = wallet.consume("u1", "bk-1", Decimal("8"), ActionType.ORIGINAL_BOOKING)

        assert result.amount_consumed == Decimal("8.00")
        assert db.get(CreditGrant, contested).amount == Decimal("5.00")
        assert db.get(CreditGrant, spare).amount == Decimal("2.00")

    def test_ledger_failure_restores_grants(self, db, wallet, ledger, make_grant, monkeypatch):
        grant = make_grant(amount="10.00")

        def boom(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(ledger, "append", boom)
        with pytest.raises(InconsistencyError) as exc:
            wallet.consume("u1", "bk-1", Decimal("6"), ActionType.ORIGINAL_BOOKING)

        assert exc.value.details["unrestored_steps"] == []
        assert db.get(CreditGrant, grant).amount == Decimal("10.00")
        usages = db.query(CreditUsage).filter(CreditUsage.booking_id == "bk-1").all()
        assert [u.status for u in usages] == ["REVERSED"]

    def test_compensation_token_undoes_everything(self, db, wallet, ledger, make_grant):
        grant = make_grant(amount="10.00")
        result = wallet.consume("u1", "bk-1", Decimal("10"), ActionType.RESCHEDULE)
        assert db.get(CreditGrant, grant).status == "USED"

        assert result.compensation.run() == []

        restored = db.get(CreditGrant, grant)
        assert restored.amount == Decimal("10.00")
        assert restored.status == "ACTIVE"
        summary = ledger.summary_for("bk-1")
        assert summary["total_discount"] == Decimal("0.00")
        assert summary["entry_count"] == 2


    def test_restore_into_expired_grant_is_reported(self, db, wallet, make_grant):
        grant = make_grant(amount="10.00")
        result = wallet.consume("u1", "bk-1", Decimal("4"), ActionType.ORIGINAL_BOOKING)
        row = db.get(CreditGrant, grant)
        row.status = "EXPIRED"
        db.commit()

        failed = result.compensation.run()

        assert failed == [f"restore 4.00 to grant {grant}"]
        assert db.get(CreditGrant, grant).amount == Decimal("6.00")
        usage = db.query(CreditUsage).filter(CreditUsage.booking_id == "bk-1").one()
        assert usage.status == "REVERSED"


class TestQuoteAndExpiry:
    def test_quote(self, wallet, make_grant):
        make_grant(amount="7.50")
        q = wallet.quote("u1", Decimal("10"))
        assert q["credit_applicable"] == Decimal("7.50")
        assert q["payment_required"] == Decimal("2.50")

    def test_expiry_sweep_is_idempotent(self, db, wallet, make_grant):
        old = make_grant(amount="10.00", expires_in_days=-2)
        make_grant(amount="10.00")
        assert wallet.expire_credits() == 1
        assert wallet.expire_credits() == 0
        assert db.get(CreditGrant, old).status == "EXPIRED"
