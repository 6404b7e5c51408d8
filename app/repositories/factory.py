from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.repositories.interfaces import (
    ActivityStore,
    BookingStore,
    CreditStore,
    LedgerStore,
    PassStore,
    PaymentStore,
    PromoStore,
)


@dataclass
class Repositories:
    """Every store the booking engine needs, injected as one bundle."""

    bookings: BookingStore
    credits: CreditStore
    passes: PassStore
    promos: PromoStore
    ledger: LedgerStore
    activity: ActivityStore
    payments: PaymentStore


def build_repositories(db: Session) -> Repositories:
    from app.repositories.activity_repository import ActivityRepository
    from app.repositories.booking_repository import BookingRepository
    from app.repositories.credit_repository import CreditRepository
    from app.repositories.ledger_repository import LedgerRepository
    from app.repositories.pass_repository import PassRepository
    from app.repositories.payment_repository import PaymentRepository
    from app.repositories.promo_repository import PromoRepository

    return Repositories(
        bookings=BookingRepository(db),
        credits=CreditRepository(db),
        passes=PassRepository(db),
        promos=PromoRepository(db),
        ledger=LedgerRepository(db),
        activity=ActivityRepository(db),
        payments=PaymentRepository(db),
    )
