import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.database import build_engine, build_session_factory, init_db
from app.core.locks import KeyedLocks
from app.main import create_app


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'comanda-test.db'}",
        "JWT_SECRET_KEY": "test-secret",
        "RESTAURANT_TIMEZONE": "Europe/Rome",
        "ADMIN_PASSWORD": "",
        "STAFF_PIN": "",
        "PAYMENTS_API_URL": None,
        "PAYMENTS_API_KEY": None,
        "FISCAL_API_URL": None,
        "FISCAL_API_KEY": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def locks():
    return KeyedLocks()


@pytest.fixture
def place_order(client):
    def _place(items=None, **extra):
        payload = {
            "tableCode": "T1",
            "items": items or [{"name": "Margherita", "price": 7.5, "qty": 1}],
        }
        payload.update(extra)
        response = client.post("/api/checkout", json=payload)
        assert response.status_code == 200, response.text
        return response.json()["order_id"]

    return _place
