import os

os.environ.setdefault("POSTGRES_DSN", "sqlite+pysqlite://")
os.environ["KAFKA_ENABLED"] = "false"
os.environ.setdefault("LOG_JSON", "false")

from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fulfillment.api import deps
from fulfillment.core.config import settings
from fulfillment.core.errors import DownstreamServiceError
from fulfillment.db.models import Order, PlatformSettings, Store
from fulfillment.db.session import Base
from fulfillment.main import app


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_email(self, to, subject, html):
        if self.fail:
            raise DownstreamServiceError(f"Email to {to} failed: smtp down")
        self.sent.append({"to": to, "subject": subject, "html": html})


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, topic, key, value):
        self.events.append((topic, key, value))


class YCloudStub:
    def __init__(self):
        self.requests = []
        self.status = 200
        self.body = {"id": "wamid.HBgM"}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def ycloud():
    return YCloudStub()


@pytest.fixture
def client(session_factory, mailer, events, ycloud):
    def _db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[deps.get_db] = _db
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_publisher] = lambda: events
    app.dependency_overrides[deps.get_whatsapp_transport] = lambda: ycloud.transport
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def internal_headers():
    return {"X-Internal-Key": settings.SVC_INTERNAL_KEY}


@pytest.fixture
def store(db):
    s = Store(name="Boutique Awa", user_id="seller-1", settings={"whatsapp_number": "+225 07 00 00 01"})
    db.add(s)
    db.commit()
    return s


def make_order(db, store, has_digital=True, **kw):
    values = dict(
        store_id=store.id,
        total=Decimal("15000.00"),
        currency="XOF",
        has_digital=has_digital,
        customer={"name": "Kofi Mensah", "email": "Kofi@Example.com", "phone": "+225 01-02-03-04"},
    )
    values.update(kw)
    order = Order(**values)
    db.add(order)
    db.commit()
    return order


@pytest.fixture
def digital_order(db, store):
    return make_order(db, store, has_digital=True)


@pytest.fixture
def physical_order(db, store):
    return make_order(db, store, has_digital=False)


@pytest.fixture
def whatsapp_settings(db, monkeypatch):
    monkeypatch.setattr(settings, "YCLOUD_API_KEY", "test-key")
    row = PlatformSettings(
        id=settings.PLATFORM_SETTINGS_ID,
        whatsapp_sender_number="+22500000000",
        whatsapp_api_url="https://api.ycloud.test/v2",
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def order_factory(db, store):
    return lambda **kw: make_order(db, store, **kw)
