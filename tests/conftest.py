import importlib
import pathlib
import sys
import uuid
from dataclasses import dataclass, field

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from app.app_logging import init_logging
from app.core.settings import reset_settings_cache
from app.models import Base, Business, User
from app.security import create_access_token, hash_password, reset_jwt_settings_cache
from app.security.auth import Actor, reset_session_factory
from app.security.throttling import limiter

_PROVIDER_ENV = (
    "STRIPE_SECRET_KEY",
    "STRIPE_PUBLISHABLE_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "EMAIL_API_URL",
    "EMAIL_API_KEY",
    "BUSINESS_EMAIL",
    "CORS_ORIGINS",
)


@dataclass
class AuthContext:
    engine: object
    session_factory: sessionmaker[Session]
    business_id: uuid.UUID
    users: dict[str, uuid.UUID]
    tokens: dict[str, str]
    password: str = "Secret123!"
    business_tokens: dict[uuid.UUID, dict[str, str]] = field(default_factory=dict)
    business_users: dict[uuid.UUID, dict[str, uuid.UUID]] = field(default_factory=dict)

    def token(self, role: str, business_id: uuid.UUID | None = None) -> str:
        if business_id is None or business_id == self.business_id:
            return self.tokens[role]
        return self.business_tokens[business_id][role]

    def header(self, role: str, business_id: uuid.UUID | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token(role, business_id)}"}

    def actor(self, role: str, business_id: uuid.UUID | None = None) -> Actor:
        business = business_id or self.business_id
        user_id = self.business_users[business][role]
        return Actor(
            business_id=str(business),
            user_id=str(user_id),
            role=role,
            name=role.title(),
            email=f"{role}@example.com",
        )

    def create_business(self, name: str, slug: str) -> uuid.UUID:
        """Provision another business with one user per role."""

        business_id, users, tokens = _provision(self.session_factory, name, slug, self.password)
        self.business_users[business_id] = users
        self.business_tokens[business_id] = tokens
        return business_id


def _provision(
    session_factory: sessionmaker[Session], name: str, slug: str, password: str
) -> tuple[uuid.UUID, dict[str, uuid.UUID], dict[str, str]]:
    users: dict[str, uuid.UUID] = {}
    tokens: dict[str, str] = {}
    with session_factory.begin() as session:
        business = Business(name=name, slug=slug, contact_email=f"owner@{slug}.example")
        session.add(business)
        session.flush()
        for role in ("viewer", "operator", "admin"):
            user = User(
                business_id=business.id,
                email=f"{role}@{slug}.example",
                name=f"{name} {role.title()}",
                password_hash=hash_password(password),
                role=role,
            )
            session.add(user)
            session.flush()
            users[role] = user.id
            tokens[role], _ = create_access_token(user)
        business_id = business.id
    return business_id, users, tokens


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


@pytest.fixture
def business_auth(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> AuthContext:
    workdir = tmp_path_factory.mktemp("business-auth")
    db_url = f"sqlite+pysqlite:///{workdir / 'auth.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("AUTH_TOKEN_SECRET", "super-secret-key")
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "tire-marketplace-api")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "tire-marketplace")
    monkeypatch.setenv("AUTH_TOKEN_ALGORITHM", "HS256")
    monkeypatch.setenv("LOG_DIR", str(workdir / "logs"))
    monkeypatch.setenv("UPLOAD_DIR", str(workdir / "uploads"))
    monkeypatch.setenv("CONVERSATION_STORE", "memory")
    monkeypatch.setenv("SOCIAL_DRY_RUN", "true")
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    reset_jwt_settings_cache()
    reset_settings_cache()
    reset_session_factory()

    engine = create_engine(db_url, future=True)

    @event.listens_for(engine, "connect")
    def _register_uuid(conn, _record) -> None:  # pragma: no cover - SQLite test helper
        conn.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))

    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    business_id, users, tokens = _provision(session_factory, "Main Street Tires", "main-street", "Secret123!")
    context = AuthContext(
        engine=engine,
        session_factory=session_factory,
        business_id=business_id,
        users=users,
        tokens=tokens,
    )
    context.business_tokens[business_id] = tokens
    context.business_users[business_id] = users

    yield context

    Base.metadata.drop_all(engine)
    engine.dispose()
    reset_settings_cache()
    reset_session_factory()


@pytest.fixture
def client(business_auth) -> TestClient:
    """Test client on a freshly built application and service container."""

    import app.main as main

    importlib.reload(main)
    limiter.reset()
    return TestClient(main.app)
