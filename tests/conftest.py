import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.db.session import Base, get_db
from app.db.types import utcnow

# Import models so Base.metadata is populated for create_all.
import app.models.activity_log  # noqa: F401
import app.models.booking  # noqa: F401
import app.models.credit  # noqa: F401
import app.models.discount_ledger  # noqa: F401
import app.models.email_log  # noqa: F401
import app.models.payment  # noqa: F401
import app.models.promo_code  # noqa: F401
import app.models.setting  # noqa: F401
import app.models.user_pass  # noqa: F401
from app.models.credit import CreditGrant
from app.models.promo_code import PromoCode
from app.models.user_pass import PassEntitlement
from app.repositories.factory import build_repositories
from app.services.booking_service import BookingLifecycle
from app.services.fee_service import FeeConfig, PaymentSettingsProvider

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def booking_confirmed(self, booking):
        self.sent.append(("booking_confirmed", booking.booking_ref))

    def reschedule_confirmed(self, booking):
        self.sent.append(("reschedule_confirmed", booking.booking_ref))

    def extension_confirmed(self, booking, amount):
        self.sent.append(("extension_confirmed", booking.booking_ref, amount))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repos(db):
    return build_repositories(db)


@pytest.fixture
def provider():
    return PaymentSettingsProvider(lambda: FeeConfig.defaults())


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def lifecycle(repos, provider, notifier):
    return BookingLifecycle(repos, provider, notifier)


@pytest.fixture
def at():
    """Local wall-clock time ``days`` from today in the platform zone."""

    def _at(days: int, hour: int, minute: int = 0) -> datetime:
        d = datetime.now(LOCAL_TZ).date() + timedelta(days=days)
        return datetime(d.year, d.month, d.day, hour, minute, tzinfo=LOCAL_TZ)

    return _at


@pytest.fixture
def make_grant(db):
    def _make(user_id="u1", amount="10.00", expires_in_days=30, **kw):
        grant = CreditGrant(
            id=kw.pop("id", str(uuid.uuid4())),
            user_id=user_id,
            amount=Decimal(amount),
            original_amount=Decimal(amount),
            expires_at=utcnow() + timedelta(days=expires_in_days),
            **kw,
        )
        db.add(grant)
        db.commit()
        return grant.id

    return _make


@pytest.fixture
def make_pass(db):
    def _make(user_id="u1", pass_type="DAY_PASS", count=5, purchase_id=None, expires_in_days=180, minutes=None, **kw):
        ent = PassEntitlement(
            id=kw.pop("id", str(uuid.uuid4())),
            user_id=user_id,
            purchase_id=purchase_id or str(uuid.uuid4()),
            pass_type=pass_type,
            total_count=count,
            remaining_count=count,
            total_minutes=minutes,
            remaining_minutes=minutes,
            active_from=utcnow() - timedelta(days=1),
            active_to=utcnow() + timedelta(days=expires_in_days),
            **kw,
        )
        db.add(ent)
        db.commit()
        return ent.id

    return _make


@pytest.fixture
def make_promo(db):
    def _make(code="SAVE10", discount_type="percentage", value="10", **kw):
        promo = PromoCode(
            id=kw.pop("id", str(uuid.uuid4())),
            code=code,
            name=code,
            discount_type=discount_type,
            discount_value=Decimal(value),
            **kw,
        )
        db.add(promo)
        db.commit()
        return promo.id

    return _make


@pytest.fixture
def book(lifecycle, at):
    """Create a booking with sensible defaults: member, 10:00-12:00 local, seat S1."""

    def _book(user_id="u1", days=10, start=10, end=12, seats=("S1",), **kw):
        return lifecycle.create_booking(
            user_id=user_id,
            location=kw.pop("location", "orchard"),
            start_at=at(days, start),
            end_at=at(days, end),
            seat_numbers=list(seats),
            **kw,
        )

    return _book


@pytest.fixture
def client(session_factory, provider, notifier):
    from app.api.deps import get_notifier, get_payment_settings
    from app.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_settings] = lambda: provider
    app.dependency_overrides[get_notifier] = lambda: notifier
    # Not used as a context manager: the lifespan would start the settings refresh timer.
    yield TestClient(app)
    app.dependency_overrides.clear()
