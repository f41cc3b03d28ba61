import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SECRET_KEY"] = "test-secret"
os.environ["OPENAI_API_KEY"] = ""
os.environ["AI_ASSIST_ON_CREATE"] = "false"

import json  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from db import get_session  # noqa: E402
from llm import AssistService, get_assist  # noqa: E402
from main import app  # noqa: E402
from models import Item, ItemCondition, Role, User  # noqa: E402
from routers.auth import create_access_token, hash_password  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


class FakeLLM:
    """Queue of canned chat-completion replies served through httpx.MockTransport."""

    def __init__(self):
        self.replies = []
        self.requests = []

    def reply(self, content, status_code=200):
        self.replies.append((status_code, content))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if not self.replies:
            return httpx.Response(503, json={"error": "no reply queued"})
        status_code, content = self.replies.pop(0)
        if status_code != 200:
            return httpx.Response(status_code, json={"error": content})
        return httpx.Response(
            200, json={"choices": [{"message": {"content": content}}]}
        )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def assist(fake_llm):
    client = httpx.Client(
        base_url="https://llm.example.com/v1",
        transport=httpx.MockTransport(fake_llm.handler),
    )
    yield AssistService(client, api_key="test-key")
    client.close()


@pytest.fixture
def client(session, assist):
    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_assist] = lambda: assist
    # No `with` block: the lifespan would create tables on the configured database.
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(name=None, points=100, role=Role.USER, password="secret123"):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        user = User(
            email=f"{name.lower()}@example.com",
            name=name,
            password_hash=hash_password(password),
            points=points,
            role=role,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_item(session):
    def _make(owner, title="Blue denim jacket", points_value=30, approved=True, **fields):
        values = {
            "category": "Tops",
            "type": "Jacket",
            "condition": ItemCondition.GOOD,
            "tags": ["denim"],
        }
        values.update(fields)
        item = Item(
            user_id=owner.id,
            title=title,
            points_value=points_value,
            is_approved=approved,
            **values,
        )
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    return _make


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _header


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def admin(make_user):
    return make_user("Admin", role=Role.ADMIN)
