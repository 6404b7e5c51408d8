import uuid
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError, OperationalError

from app.db.session import SessionLocal
from app.db.types import utcnow
from app.core.config import settings
from app.models.credit import CreditGrant
from app.models.promo_code import PromoCode, PromoDiscountType
from app.models.user_pass import PassEntitlement
from app.services.settings_service import seed_payment_settings

DEMO_USER_ID = "demo-user"


def ensure_promo(db: Session, code: str, name: str, discount_type: str, value: str, **extra):
    p = db.query(PromoCode).filter(PromoCode.code == code).first()
    if p:
        return
    db.add(
        PromoCode(
            id=str(uuid.uuid4()),
            code=code,
            name=name,
            is_active=True,
            discount_type=discount_type,
            discount_value=Decimal(value),
            **extra,
        )
    )
    db.commit()


def ensure_demo_wallet(db: Session, user_id: str):
    now = utcnow()
    if not db.query(CreditGrant).filter(CreditGrant.user_id == user_id).first():
        db.add(
            CreditGrant(
                id=str(uuid.uuid4()),
                user_id=user_id,
                amount=Decimal("20.00"),
                original_amount=Decimal("20.00"),
                source="GOODWILL",
                expires_at=now + timedelta(days=90),
            )
        )
    if not db.query(PassEntitlement).filter(PassEntitlement.user_id == user_id).first():
        db.add(
            PassEntitlement(
                id=str(uuid.uuid4()),
                user_id=user_id,
                purchase_id=str(uuid.uuid4()),
                pass_type="DAY_PASS",
                package_name="5 Day Pass Bundle",
                total_count=5,
                remaining_count=5,
                active_from=now,
                active_to=now + timedelta(days=180),
            )
        )
    db.commit()


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM settings LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            print("[seed] settings table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        added = seed_payment_settings(db)
        if added:
            print(f"[seed] added {added} payment settings")

        ensure_promo(db, "WELCOME10", "Welcome 10%", PromoDiscountType.PERCENTAGE, "10", maximum_discount=Decimal("15.00"))
        ensure_promo(
            db, "STUDY5", "Study session $5 off", PromoDiscountType.FIXED, "5",
            minimum_hours=Decimal("2"), max_usage_per_user=3,
        )

        # demo wallet only outside production
        if settings.ENV in ("local", "dev"):
            ensure_demo_wallet(db, DEMO_USER_ID)
    finally:
        db.close()


if __name__ == "__main__":
    run()
