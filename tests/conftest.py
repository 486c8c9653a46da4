from __future__ import annotations

from datetime import datetime, timedelta

import mongomock
import pytest

from marketplace import create_app


SHOP_PASSWORD = "s3cret-pass"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def app(tmp_path, clock, mongo_client):
    return create_app(
        {
            "TESTING": True,
            "SWEEPER_ENABLED": False,
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "MONGODB_DB_NAME": "marketplace_test",
            "PASSWORD_HASH_METHOD": "pbkdf2:sha256:1000",
            "LOG_LEVEL": "DEBUG",
        },
        mongo_client=mongo_client,
        clock=clock,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return app.extensions["mongo_db"]


@pytest.fixture
def register_shop(client):
    counter = {"n": 0}

    def _register(**overrides):
        counter["n"] += 1
        payload = {
            "name": "Joe's Café #1",
            "owner": "Joe",
            "address": "1 Main St",
            "phone": "555-0100",
            "email": f"shop{counter['n']}@example.com",
            "password": SHOP_PASSWORD,
        }
        payload.update(overrides)
        response = client.post("/api/shops", json=payload)
        assert response.status_code == 201, response.get_json()
        return response.get_json()["shop"]

    return _register
