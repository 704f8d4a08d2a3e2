import os

# Settings are read at import time by the app modules.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")

import uuid

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import get_settings
from app.database import get_session
from app.main import app
from app.models.cake import Cake
from app.models.user import User

DEFAULT_SIZES = [
    {"label": "6-inch", "servings": 8, "price": 10.0},
    {"label": "8-inch", "servings": 12, "price": 20.0},
]


def auth_headers(user_id: uuid.UUID, email: str) -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode(
        {"sub": str(user_id), "email": email},
        settings.SUPABASE_JWT_SECRET,
        algorithm=settings.SUPABASE_JWT_ALG,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make(role: str = "user", email: str | None = None):
        user_id = uuid.uuid4()
        email = email or f"{role}-{user_id.hex[:8]}@example.com"
        user = User(id=user_id, email=email, name=email.split("@")[0], role=role)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user, auth_headers(user.id, user.email)

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("user")


@pytest.fixture
def baker(make_user):
    return make_user("baker")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_cake(session):
    def _make(name: str = "Chocolate Dream", **overrides):
        fields = {
            "name": name,
            "slug": f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
            "category": "birthday",
            "description": "Layers of dark chocolate sponge",
            "price": 10.0,
            "images": ["/img/chocolate.jpg"],
            "is_available": True,
            "sizes": list(DEFAULT_SIZES),
        }
        fields.update(overrides)
        cake = Cake(**fields)
        session.add(cake)
        session.commit()
        session.refresh(cake)
        return cake

    return _make


@pytest.fixture
def token_headers():
    """Headers for an account that has no profile row yet."""
    return auth_headers
