"""
Payment processing fees.

Card payments carry a percentage fee on top of the subtotal, so dividing the
charged total by (1 + pct/100) gives the subtotal back. Transfer payments
(PayNow, bank transfer) carry a small flat fee below a threshold and nothing
at or above it. A zero subtotal never carries a fee.

Fee settings reach the engine only as an immutable ``FeeConfig`` snapshot.
``PaymentSettingsProvider`` keeps the current snapshot and refreshes it from
the settings table on a background timer, so requests never wait on it.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from app.core.config import settings
from app.core.errors import ValidationError
from app.db.types import utcnow
from app.services.pricing_service import ZERO, money

logger = logging.getLogger(__name__)

CARD_METHODS = frozenset({"credit_card", "debit_card", "card"})
TRANSFER_METHODS = frozenset({"paynow", "bank_transfer"})
NO_FEE_METHODS = frozenset({"credits"})


@dataclass(frozen=True)
class FeeConfig:
    card_fee_percentage: Decimal
    transfer_fee: Decimal
    transfer_fee_threshold: Decimal
    card_enabled: bool = True
    transfer_enabled: bool = True
    fetched_at: datetime = field(default_factory=utcnow)
    source: str = "defaults"

    @classmethod
    def defaults(cls) -> "FeeConfig":
        return cls(
            card_fee_percentage=Decimal(str(settings.DEFAULT_CARD_FEE_PERCENTAGE)),
            transfer_fee=Decimal(str(settings.DEFAULT_TRANSFER_FEE)),
            transfer_fee_threshold=Decimal(str(settings.DEFAULT_TRANSFER_FEE_THRESHOLD)),
        )

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.fetched_at).total_seconds()


def method_family(payment_method: Optional[str]) -> str:
    m = (payment_method or "").strip().lower()
    if m in CARD_METHODS:
        return "card"
    if m in TRANSFER_METHODS:
        return "transfer"
    if m in NO_FEE_METHODS or not m:
        return "none"
    return "unknown"


def is_method_enabled(payment_method: Optional[str], config: FeeConfig) -> bool:
    family = method_family(payment_method)
    if family == "card":
        return config.card_enabled
    if family == "transfer":
        return config.transfer_enabled
    return family == "none"


def fee(subtotal: Decimal, payment_method: Optional[str], config: FeeConfig) -> Decimal:
    subtotal = money(subtotal)
    if subtotal < 0:
        raise ValidationError("subtotal cannot be negative", details={"subtotal": str(subtotal)})
    if subtotal == 0:
        return ZERO
    family = method_family(payment_method)
    if family == "card":
        return money(subtotal * config.card_fee_percentage / Decimal(100))
    if family == "transfer":
        return money(config.transfer_fee) if subtotal < config.transfer_fee_threshold else ZERO
    if family == "unknown":
        logger.warning("no fee rule for payment method %r, charging none", payment_method)
    return ZERO


def back_out(gross_total: Decimal, payment_method: Optional[str], config: FeeConfig) -> Decimal:
    """Subtotal that ``fee`` would have turned into ``gross_total``."""
    gross_total = money(gross_total)
    if gross_total <= 0:
        return ZERO
    family = method_family(payment_method)
    if family == "card":
        return money(gross_total / (Decimal(1) + config.card_fee_percentage / Decimal(100)))
    if family == "transfer" and gross_total < config.transfer_fee_threshold:
        return max(gross_total - money(config.transfer_fee), ZERO)
    return gross_total


def quote(subtotal: Decimal, payment_method: Optional[str], config: FeeConfig) -> dict:
    subtotal = money(subtotal)
    processing_fee = fee(subtotal, payment_method, config)
    family = method_family(payment_method)
    return {
        "subtotal": subtotal,
        "payment_method": payment_method,
        "method_family": family,
        "method_enabled": is_method_enabled(payment_method, config),
        "processing_fee": processing_fee,
        "total": subtotal + processing_fee,
        "card_fee_percentage": config.card_fee_percentage if family == "card" else None,
        "config_fetched_at": config.fetched_at,
    }


class PaymentSettingsProvider:
    """Holds the current FeeConfig and refreshes it off the request path."""

    def __init__(
        self,
        loader: Callable[[], FeeConfig],
        refresh_seconds: float = settings.PAYMENT_SETTINGS_REFRESH_SECONDS,
        max_staleness_seconds: float = settings.PAYMENT_SETTINGS_MAX_STALENESS_SECONDS,
    ):
        self._loader = loader
        self.refresh_seconds = refresh_seconds
        self.max_staleness = timedelta(seconds=max_staleness_seconds)
        self._config = FeeConfig.defaults()
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()

    def current(self) -> FeeConfig:
        with self._lock:
            return self._config

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) - self.current().fetched_at > self.max_staleness

    def refresh(self) -> FeeConfig:
        try:
            config = self._loader()
        except Exception:
            logger.warning("payment settings refresh failed; keeping %s snapshot", self.current().source, exc_info=True)
            if self.is_stale():
                # Nothing recent to keep; fall back to configured defaults.
                with self._lock:
                    self._config = FeeConfig.defaults()
            return self.current()
        with self._lock:
            self._config = config
        logger.debug("payment settings refreshed from %s", config.source)
        return config

    def _tick(self) -> None:
        if self._stopped.is_set():
            return
        self.refresh()
        self._schedule()

    def _schedule(self) -> None:
        if self._stopped.is_set():
            return
        self._timer = threading.Timer(self.refresh_seconds, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def start(self) -> None:
        self._stopped.clear()
        self.refresh()
        self._schedule()

    def stop(self) -> None:
        self._stopped.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


def load_fee_config_from_db() -> FeeConfig:
    from app.db.session import SessionLocal
    from app.services import settings_service as ss

    db = SessionLocal()
    try:
        values = ss.get_payment_settings(db)
    finally:
        db.close()
    return FeeConfig(
        card_fee_percentage=ss.get_decimal(values, ss.CARD_FEE_KEY),
        transfer_fee=ss.get_decimal(values, ss.TRANSFER_FEE_KEY),
        transfer_fee_threshold=ss.get_decimal(values, ss.TRANSFER_THRESHOLD_KEY),
        card_enabled=ss.get_flag(values, ss.CARD_ENABLED_KEY),
        transfer_enabled=ss.get_flag(values, ss.TRANSFER_ENABLED_KEY),
        source="store",
    )


payment_settings = PaymentSettingsProvider(load_fee_config_from_db)
