import logging
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, ProgrammingError
from app.db.session import SessionLocal
from app.repositories.factory import build_repositories
from app.services.booking_service import BookingLifecycle
from app.services.credit_wallet_service import CreditWallet
from app.services.discount_ledger_service import DiscountLedger
from app.services.email_service import BookingNotifier, process_pending_emails
from app.services.fee_service import payment_settings
from app.services.pass_inventory_service import PassInventory

logger = logging.getLogger(__name__)

# Missing tables show up as ProgrammingError on Postgres, OperationalError on SQLite
_NOT_MIGRATED = (ProgrammingError, OperationalError)


def expire_credits(session_factory=SessionLocal) -> dict:
    """Move ACTIVE credit grants past their expiry to EXPIRED. Safe to re-run."""
    db: Session = session_factory()
    try:
        repos = build_repositories(db)
        wallet = CreditWallet(repos.credits, DiscountLedger(repos.ledger))
        try:
            count = wallet.expire_credits(datetime.now(timezone.utc))
        except _NOT_MIGRATED:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": count}
    finally:
        db.close()


def expire_passes(session_factory=SessionLocal) -> dict:
    db: Session = session_factory()
    try:
        repos = build_repositories(db)
        inventory = PassInventory(repos.passes, DiscountLedger(repos.ledger))
        try:
            count = inventory.expire_passes(datetime.now(timezone.utc))
        except _NOT_MIGRATED:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": count}
    finally:
        db.close()


def expire_unpaid_holds(session_factory=SessionLocal) -> dict:
    """Cancel bookings left unpaid past the hold window and give their credit back."""
    db: Session = session_factory()
    try:
        lifecycle = BookingLifecycle(build_repositories(db), payment_settings, BookingNotifier(db))
        try:
            count = lifecycle.expire_unpaid_bookings(datetime.now(timezone.utc))
        except _NOT_MIGRATED:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        if count:
            logger.info("expired %d unpaid booking(s)", count)
        return {"expired": count}
    finally:
        db.close()


def process_email_queue(limit: int = 50, session_factory=SessionLocal) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = session_factory()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except _NOT_MIGRATED:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()
