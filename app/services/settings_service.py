from decimal import Decimal, InvalidOperation
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.setting import Setting

logger = logging.getLogger(__name__)

CARD_FEE_KEY = "CREDIT_CARD_TRANSACTION_FEE_PERCENTAGE"
TRANSFER_FEE_KEY = "PAYNOW_TRANSACTION_FEE"
TRANSFER_THRESHOLD_KEY = "PAYNOW_FEE_THRESHOLD"
CARD_ENABLED_KEY = "CREDIT_CARD_ENABLED"
TRANSFER_ENABLED_KEY = "PAYNOW_ENABLED"

DEFAULT_PAYMENT_SETTINGS = {
    CARD_FEE_KEY: str(settings.DEFAULT_CARD_FEE_PERCENTAGE),
    TRANSFER_FEE_KEY: str(settings.DEFAULT_TRANSFER_FEE),
    TRANSFER_THRESHOLD_KEY: str(settings.DEFAULT_TRANSFER_FEE_THRESHOLD),
    CARD_ENABLED_KEY: "true",
    TRANSFER_ENABLED_KEY: "true",
}


def get_payment_settings(db: Session) -> dict:
    """Active payment settings rows as {key: str_value}, defaults filled in."""
    out = dict(DEFAULT_PAYMENT_SETTINGS)
    rows = db.query(Setting).filter(Setting.key.in_(list(DEFAULT_PAYMENT_SETTINGS)), Setting.is_active == True).all()  # noqa: E712
    for s in rows:
        if s.str_value is not None:
            out[s.key] = s.str_value
    return out


def get_decimal(values: dict, key: str) -> Decimal:
    try:
        v = Decimal(values[key])
    except (InvalidOperation, TypeError, KeyError):
        logger.warning("bad value for payment setting %s=%r, using default", key, values.get(key))
        return Decimal(DEFAULT_PAYMENT_SETTINGS[key])
    if v < 0:
        logger.warning("negative payment setting %s=%s, using default", key, v)
        return Decimal(DEFAULT_PAYMENT_SETTINGS[key])
    return v


def get_flag(values: dict, key: str) -> bool:
    return str(values.get(key, "true")).strip().lower() in ("1", "true", "yes", "on")


def set_setting(db: Session, key: str, value: str) -> str:
    if key in (CARD_FEE_KEY, TRANSFER_FEE_KEY, TRANSFER_THRESHOLD_KEY):
        try:
            if Decimal(value) < 0:
                raise ValueError(f"{key} must be >= 0")
        except InvalidOperation:
            raise ValueError(f"{key} must be a number")
    s = db.get(Setting, key)
    if not s:
        s = Setting(key=key, str_value=str(value), is_active=True)
        db.add(s)
    else:
        s.str_value = str(value)
    db.commit()
    return str(value)


def seed_payment_settings(db: Session) -> int:
    """Insert any missing payment settings rows with their defaults."""
    added = 0
    for key, value in DEFAULT_PAYMENT_SETTINGS.items():
        if not db.get(Setting, key):
            db.add(Setting(key=key, str_value=value, is_active=True))
            added += 1
    if added:
        db.commit()
    return added
