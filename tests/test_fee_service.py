from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.errors import ValidationError
from app.db.types import utcnow
from app.services import fee_service
from app.services.fee_service import FeeConfig, PaymentSettingsProvider


@pytest.fixture
def config():
    return FeeConfig(
        card_fee_percentage=Decimal("5"),
        transfer_fee=Decimal("0.20"),
        transfer_fee_threshold=Decimal("10.00"),
    )


class TestFee:
    def test_card_fee_is_percentage_of_subtotal(self, config):
        assert fee_service.fee(Decimal("20"), "credit_card", config) == Decimal("1.00")
        assert fee_service.quote(Decimal("20"), "credit_card", config)["total"] == Decimal("21.00")

    def test_transfer_below_threshold_adds_flat_fee(self, config):
        assert fee_service.fee(Decimal("8"), "paynow", config) == Decimal("0.20")

    def test_transfer_at_threshold_is_free(self, config):
        assert fee_service.fee(Decimal("10.00"), "paynow", config) == Decimal("0.00")
        assert fee_service.fee(Decimal("25"), "bank_transfer", config) == Decimal("0.00")

    @pytest.mark.parametrize("method", ["credit_card", "paynow", "credits", None])
    def test_zero_subtotal_never_carries_a_fee(self, config, method):
        assert fee_service.fee(Decimal("0"), method, config) == Decimal("0.00")

    def test_credits_and_unknown_methods_carry_no_fee(self, config):
        assert fee_service.fee(Decimal("12"), "credits", config) == Decimal("0.00")
        assert fee_service.fee(Decimal("12"), "cheque", config) == Decimal("0.00")

    def test_negative_subtotal_rejected(self, config):
        with pytest.raises(ValidationError):
            fee_service.fee(Decimal("-1"), "paynow", config)

    def test_card_fee_rounds_half_up(self, config):
        # 5% of 12.30 is 0.615
        assert fee_service.fee(Decimal("12.30"), "card", config) == Decimal("0.62")


class TestBackOut:
    def test_card_total_divides_back_to_subtotal(self, config):
        assert fee_service.back_out(Decimal("21.00"), "credit_card", config) == Decimal("20.00")

    def test_transfer_below_threshold_subtracts_flat_fee(self, config):
        assert fee_service.back_out(Decimal("8.20"), "paynow", config) == Decimal("8.00")

    def test_no_fee_methods_return_total(self, config):
        assert fee_service.back_out(Decimal("15.00"), "credits", config) == Decimal("15.00")
        assert fee_service.back_out(Decimal("0"), "credit_card", config) == Decimal("0.00")


class TestMethodAvailability:
    def test_disabled_card_family(self):
        config = FeeConfig(
            card_fee_percentage=Decimal("5"),
            transfer_fee=Decimal("0.20"),
            transfer_fee_threshold=Decimal("10"),
            card_enabled=False,
        )
        assert not fee_service.is_method_enabled("credit_card", config)
        assert fee_service.is_method_enabled("paynow", config)
        assert fee_service.is_method_enabled(None, config)
        assert not fee_service.is_method_enabled("cheque", config)


class TestPaymentSettingsProvider:
    def test_refresh_swaps_in_loaded_snapshot(self, config):
        loaded = FeeConfig(
            card_fee_percentage=Decimal("3"),
            transfer_fee=Decimal("0.50"),
            transfer_fee_threshold=Decimal("20"),
            source="store",
        )
        provider = PaymentSettingsProvider(lambda: loaded)
        assert provider.current().source == "defaults"
        provider.refresh()
        assert provider.current() is loaded
        assert not provider.is_stale()

    def test_failed_refresh_keeps_recent_snapshot(self):
        calls = {"n": 0}
        loaded = FeeConfig(
            card_fee_percentage=Decimal("3"),
            transfer_fee=Decimal("0.50"),
            transfer_fee_threshold=Decimal("20"),
            source="store",
        )

        def loader():
            calls["n"] += 1
            if calls["n"] > 1:
                raise RuntimeError("db down")
            return loaded

        provider = PaymentSettingsProvider(loader)
        provider.refresh()
        provider.refresh()
        assert provider.current() is loaded

    def test_failed_refresh_falls_back_to_defaults_when_stale(self):
        old = FeeConfig(
            card_fee_percentage=Decimal("3"),
            transfer_fee=Decimal("0.50"),
            transfer_fee_threshold=Decimal("20"),
            fetched_at=utcnow() - timedelta(hours=2),
            source="store",
        )
        calls = {"n": 0}

        def loader():
            calls["n"] += 1
            if calls["n"] > 1:
                raise RuntimeError("db down")
            return old

        provider = PaymentSettingsProvider(loader, max_staleness_seconds=60)
        provider.refresh()
        assert provider.is_stale()
        config = provider.refresh()
        assert config.source == "defaults"
        assert config.card_fee_percentage == Decimal("5.0")
        assert not provider.is_stale()

    def test_stop_without_start_is_safe(self):
        provider = PaymentSettingsProvider(FeeConfig.defaults)
        provider.stop()
        assert provider.current().source == "defaults"
