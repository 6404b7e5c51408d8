from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.repositories.factory import build_repositories
from app.services.booking_service import BookingLifecycle
from app.services.email_service import BookingNotifier
from app.services.fee_service import PaymentSettingsProvider, payment_settings


def get_payment_settings() -> PaymentSettingsProvider:
    return payment_settings


def get_notifier(db: Session = Depends(get_db)) -> BookingNotifier:
    return BookingNotifier(db)


def get_lifecycle(
    db: Session = Depends(get_db),
    provider: PaymentSettingsProvider = Depends(get_payment_settings),
    notifier: BookingNotifier = Depends(get_notifier),
) -> BookingLifecycle:
    return BookingLifecycle(build_repositories(db), provider, notifier)
