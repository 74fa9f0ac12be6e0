import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.db.db import get_session
from app.main import app
from app.models.item import Item
from app.models.user import User
from app.utils.auth_helper import Actor


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(engine):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


def _add_user(session, public_id, name, role):
    user = User(public_id=public_id, name=name, email=f"{public_id}@campus.edu", role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="users")
def users_fixture(session):
    return {
        "bob": _add_user(session, "bob", "Bob", "student"),
        "alice": _add_user(session, "alice", "Alice", "student"),
        "carol": _add_user(session, "carol", "Carol", "student"),
        "staff": _add_user(session, "staff-1", "Front Desk", "staff"),
        "admin": _add_user(session, "admin-1", "Admin", "admin"),
    }


@pytest.fixture(name="make_listing")
def make_listing_fixture(session):
    def make_listing(owner, title="Blue Backpack", type="found", status="active"):
        item = Item(user_id=owner.id, title=title, type=type, status=status)
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    return make_listing


@pytest.fixture(name="backpack")
def backpack_fixture(users, make_listing):
    return make_listing(users["staff"])


@pytest.fixture(name="actor")
def actor_fixture():
    def actor(user):
        return Actor(id=user.id, role=user.role)

    return actor


@pytest.fixture(name="auth")
def auth_fixture():
    def auth(user):
        token = jwt.encode({"sub": user.public_id}, "test-secret", algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return auth


@pytest.fixture(name="ws_token")
def ws_token_fixture():
    def ws_token(user):
        return jwt.encode({"sub": user.public_id}, "test-secret", algorithm="HS256")

    return ws_token


@pytest.fixture(name="proof")
def proof_fixture():
    return "Navy blue backpack with a broken left zip and my name inside"
