from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import eprojects.models  # noqa: F401
from eprojects.core.config import settings
from eprojects.db.base import Base
from eprojects.db.session import get_db
from eprojects.main import app
from eprojects.services.users import create_user
from tests.testkit import WEBHOOK_SECRET, ApiClient, IdentityFactory, login


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def api(session_factory, monkeypatch) -> ApiClient:
    monkeypatch.setattr(settings, "EXPIRY_SWEEP_ENABLED", False)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    try:
        with TestClient(app) as client:
            yield ApiClient(client)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def identity_factory() -> IdentityFactory:
    return IdentityFactory(seed=uuid4().hex[:8])


@pytest.fixture()
def admin(api, session_factory, identity_factory):
    """An admin account created straight in the database, logged in through the API."""
    email = identity_factory.next_email("admin")
    password = "Admin_123"
    db = session_factory()
    try:
        user = create_user(
            db,
            username=identity_factory.next_username("admin"),
            email=email,
            password=password,
            cpf=identity_factory.next_cpf(),
            role="admin",
        )
        db.commit()
        user_id = user.id
    finally:
        db.close()
    return {"id": user_id, "email": email, "password": password, "token": login(api, email, password)}
