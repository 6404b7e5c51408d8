"""
Store interfaces the booking engine depends on.

Services only ever talk to these; the SQLAlchemy implementations live next
to this module and tests are free to hand in fakes. Every mutating method
is a single row-level write: callers must not assume that two calls are
atomic together.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from app.models.booking import Booking
from app.models.credit import CreditGrant, CreditUsage
from app.models.user_pass import PassEntitlement, PassUsage
from app.models.promo_code import PromoCode, PromoCodeUsage
from app.models.discount_ledger import DiscountLedgerEntry
from app.models.activity_log import ActivityLogEntry
from app.models.payment import Payment


class BookingStore(ABC):
    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]: ...

    @abstractmethod
    def get_by_ref(self, booking_ref: str) -> Optional[Booking]: ...

    @abstractmethod
    def add(self, booking: Booking) -> Booking: ...

    @abstractmethod
    def save(self, booking: Booking) -> Booking: ...

    @abstractmethod
    def find_overlapping(
        self, location: str, start_at: datetime, end_at: datetime, exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        """Bookings still holding seats whose [start, end) intersects the window."""

    @abstractmethod
    def find_unpaid_created_before(self, cutoff: datetime) -> List[Booking]: ...


class CreditStore(ABC):
    @abstractmethod
    def get(self, credit_id: str) -> Optional[CreditGrant]: ...

    @abstractmethod
    def add(self, grant: CreditGrant) -> CreditGrant: ...

    @abstractmethod
    def list_available(self, user_id: str, now: datetime) -> List[CreditGrant]:
        """Active, unexpired grants with a positive balance, soonest expiry first."""

    @abstractmethod
    def debit(self, credit_id: str, expected_version: int, new_amount: Decimal, new_status: str) -> bool:
        """Write the new balance only if the grant is still at ``expected_version``."""

    @abstractmethod
    def restore(self, credit_id: str, amount: Decimal) -> bool:
        """Give ``amount`` back to the grant and reactivate it."""

    @abstractmethod
    def add_usage(self, usage: CreditUsage) -> CreditUsage: ...

    @abstractmethod
    def mark_usage_reversed(self, usage_id: str) -> None: ...

    @abstractmethod
    def usages_for_user(self, user_id: str) -> List[CreditUsage]: ...

    @abstractmethod
    def usages_for_booking(self, booking_id: str) -> List[CreditUsage]: ...

    @abstractmethod
    def expire_due(self, now: datetime) -> int: ...


class PassStore(ABC):
    @abstractmethod
    def get(self, pass_id: str) -> Optional[PassEntitlement]: ...

    @abstractmethod
    def add(self, entitlement: PassEntitlement) -> PassEntitlement: ...

    @abstractmethod
    def list_active(self, user_id: str, now: datetime, pass_type: Optional[str] = None) -> List[PassEntitlement]:
        """Active entitlements inside their window with quantity left, soonest expiry first."""

    @abstractmethod
    def list_by_purchase(self, user_id: str, purchase_id: str, now: datetime) -> List[PassEntitlement]: ...

    @abstractmethod
    def decrement(self, pass_id: str) -> bool:
        """remaining_count - 1, only while remaining_count > 0."""

    @abstractmethod
    def decrement_minutes(self, pass_id: str, minutes: int) -> bool:
        """remaining_minutes - minutes, only while remaining_minutes >= minutes."""

    @abstractmethod
    def restore(self, pass_id: str, minutes: Optional[int] = None) -> bool: ...

    @abstractmethod
    def add_usage(self, usage: PassUsage) -> PassUsage: ...

    @abstractmethod
    def mark_usage_reversed(self, usage_id: str) -> None: ...

    @abstractmethod
    def expire_due(self, now: datetime) -> int: ...


class PromoStore(ABC):
    @abstractmethod
    def get(self, promo_code_id: str) -> Optional[PromoCode]: ...

    @abstractmethod
    def get_by_code(self, code: str) -> Optional[PromoCode]: ...

    @abstractmethod
    def add(self, promo: PromoCode) -> PromoCode: ...

    @abstractmethod
    def count_user_usages(self, promo_code_id: str, user_id: str) -> int: ...

    @abstractmethod
    def record_usage(self, usage: PromoCodeUsage) -> bool:
        """Insert the usage row and bump ``usage_count``. False if already recorded for the booking."""


class LedgerStore(ABC):
    @abstractmethod
    def add(self, entry: DiscountLedgerEntry) -> DiscountLedgerEntry: ...

    @abstractmethod
    def for_booking(self, booking_id: str) -> List[DiscountLedgerEntry]: ...

    @abstractmethod
    def for_user(self, user_id: str) -> List[DiscountLedgerEntry]: ...


class ActivityStore(ABC):
    @abstractmethod
    def add(self, entry: ActivityLogEntry) -> ActivityLogEntry: ...

    @abstractmethod
    def for_booking_ref(self, booking_ref: str) -> List[ActivityLogEntry]: ...


class PaymentStore(ABC):
    @abstractmethod
    def get(self, payment_id: str) -> Optional[Payment]: ...

    @abstractmethod
    def add(self, payment: Payment) -> Payment: ...

    @abstractmethod
    def mark_completed(self, payment_id: str, amount: Optional[Decimal] = None) -> bool:
        """Move a pending payment to completed. False if it was not pending."""
