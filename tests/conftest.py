"""Pytest configuration shared across the suite."""

import pytest

from config import Config
from brpf import create_app
from brpf.extensions import db

from tests.fakes import FakeStore


class TestConfig(Config):
    __test__ = False

    TESTING = True
    SECRET_KEY = "tests-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOGIN_DISABLED = True
    WTF_CSRF_ENABLED = False


class SecuredTestConfig(TestConfig):
    LOGIN_DISABLED = False


def _make_app(config_class):
    app = create_app(config_class)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app():
    yield from _make_app(TestConfig)


@pytest.fixture
def secured_app():
    yield from _make_app(SecuredTestConfig)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_client(app, store):
    """Client HTTP dont les rapports lisent le store en mémoire."""
    app.extensions["statistiques_store"] = store
    return app.test_client()
