import fnmatch
import os
import time
from unittest.mock import Mock

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import forms_approval.models  # noqa: F401  registers tables
from forms_approval.config import Settings
from forms_approval.database import Base, FormHostBase, get_db
from forms_approval.dependencies import get_settings, get_store, get_telegram
from forms_approval.main import app
from forms_approval.services.keyed_store import KeyedStore
from forms_approval.services.telegram_service import TelegramService


class FakeRedis:
    """In-memory stand-in for the handful of redis commands KeyedStore issues."""

    def __init__(self):
        self.data = {}
        self.expires_at = {}

    def _alive(self, key):
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    def get(self, key):
        return self.data[key] if self._alive(key) else None

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.expires_at[key] = time.monotonic() + ttl
        return True

    def getdel(self, key):
        value = self.get(key)
        self.data.pop(key, None)
        self.expires_at.pop(key, None)
        return value

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    def ttl(self, key):
        if not self._alive(key):
            return -2
        return int(self.expires_at[key] - time.monotonic())

    def scan_iter(self, match=None):
        return [key for key in list(self.data) if match is None or fnmatch.fnmatch(key, match)]


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    FormHostBase.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def store(redis_client):
    return KeyedStore(redis_client)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        site_url="https://example.com",
        telegram_bot_token="test-token",
        telegram_chat_id="-1001",
        forms=[{"id": 1, "name": "Login"}, {"id": 2, "name": "Card"}],
        buttons=["Approve", "Reject"],
        admin_token="admin-secret",
    )


@pytest.fixture
def telegram():
    """Telegram client whose every call succeeds."""
    mock = Mock(spec=TelegramService)
    mock.send_message.return_value = {"ok": True, "result": {"message_id": 101}}
    mock.edit_message.return_value = {"ok": True, "result": {"message_id": 101}}
    mock.get_chat.return_value = {"ok": True, "result": {"id": -1001}}
    mock.delete_message.return_value = {"ok": True, "result": True}
    mock.answer_callback_query.return_value = {"ok": True, "result": True}
    mock.set_webhook.return_value = {"ok": True, "result": True}
    mock.delete_webhook.return_value = {"ok": True, "result": True}
    return mock


@pytest.fixture
def client(db, store, settings, telegram):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_telegram] = lambda: telegram
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
