import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["GATEWAY_VARIANT"] = "mock"

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from matrimony_pay.api.deps import get_current_user, get_db, get_gateway_client
from matrimony_pay.core.db import make_engine
from matrimony_pay.main import app
from matrimony_pay.models import Base, Subscription, SubscriptionStatus, User
from matrimony_pay.services import plans
from matrimony_pay.services.gateway import build_mock_client


@pytest.fixture
def engine(tmp_path):
    # file database so that threads see each other's commits
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db):
    u = User(
        email="asha@example.com",
        password_hash="not-a-real-hash",
        phone="9876543210",
        full_name="Asha Rao",
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def make_pending(db, user):
    def _make(order_id="TXN_1700000000000_abc123xyz", plan_type="Premium", months=1):
        sub = Subscription(
            user_id=user.id,
            plan_type=plan_type,
            duration_months=months,
            price=plans.price_paise(plan_type, months),
            currency="INR",
            order_id=order_id,
            gateway="mock",
            status=SubscriptionStatus.PENDING.value,
            start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
            features=plans.features_for(plan_type),
        )
        db.add(sub)
        db.commit()
        db.refresh(sub)
        return sub

    return _make


@pytest.fixture
def pending(make_pending):
    return make_pending()


@pytest.fixture
def gateway():
    client = build_mock_client()
    yield client
    client.close()


@pytest.fixture
def api(session_factory, user, gateway):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
