"""Test configuration."""
import inspect
import os
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# --- Default env config
os.environ.setdefault("DATABASE_URL", "sqlite:///./surebets_test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_URL", "https://painel.test")

from app.main import app  # noqa: E402
from app.config import Settings  # noqa: E402
from app.db import get_db  # noqa: E402
from app.models import User, WebhookSubscriber  # noqa: E402
from app.models.api_key import ApiKey, ApiScope  # noqa: E402
from app.services.psp_pagbank import PagBankClient, get_pagbank_client  # noqa: E402
from app.services.webhook_dispatcher import WebhookDispatcher, get_webhook_dispatcher  # noqa: E402
from app.utils.apikey import hash_key  # noqa: E402

DB_PATH = Path("./surebets_test.db")
PAGBANK_TEST_TOKEN = "test-pagbank-token"
WEBHOOK_TEST_TIMEOUT = 0.5


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh DB file per session
if DB_PATH.exists():
    DB_PATH.unlink()

engine = create_engine(
    os.environ["DATABASE_URL"],
    connect_args={"check_same_thread": False},
    future=True,
)


# pysqlite manages transactions itself unless told not to; SAVEPOINT needs SQLAlchemy in control.
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record) -> None:
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, future=True)

# --- (2) Schema built through Alembic only
_run_migrations()


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Session whose commits become savepoints of a per-test transaction."""

    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


class PagBankStub:
    """In-memory PagBank: checkout creation and transaction lookups by notification code."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.transactions: dict[str, str] = {}
        self.checkout_code = "CHECKOUT-ABC123"
        self.checkout_status = 200
        self.notification_status = 200

    def add_transaction(
        self,
        notification_code: str,
        *,
        reference: str,
        status: int = 3,
        amount: str = "29.90",
        code: str | None = None,
    ) -> None:
        self.transactions[notification_code] = (
            '<?xml version="1.0" encoding="ISO-8859-1" standalone="yes"?>'
            "<transaction>"
            f"<date>2026-03-01T10:00:00.000-03:00</date>"
            f"<code>{code or 'TX-' + notification_code}</code>"
            f"<reference>{reference}</reference>"
            "<type>1</type>"
            f"<status>{status}</status>"
            f"<grossAmount>{amount}</grossAmount>"
            "</transaction>"
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/v2/checkout":
            if self.checkout_status >= 400:
                return httpx.Response(self.checkout_status, text="<errors><error><code>11004</code></error></errors>")
            return httpx.Response(
                200,
                text=f"<checkout><code>{self.checkout_code}</code><date>2026-03-01T10:00:00.000-03:00</date></checkout>",
            )
        if request.method == "GET" and path.startswith("/v3/transactions/notifications/"):
            if self.notification_status >= 400:
                return httpx.Response(self.notification_status, text="<errors/>")
            document = self.transactions.get(path.rsplit("/", 1)[-1])
            if document is None:
                return httpx.Response(404, text="<errors/>")
            return httpx.Response(200, text=document)
        return httpx.Response(404)

    def client(self, token: str | None = PAGBANK_TEST_TOKEN) -> PagBankClient:
        settings = Settings(PAGBANK_TOKEN=token, PAGBANK_ENVIRONMENT="sandbox", APP_URL="https://painel.test")
        return PagBankClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)))


Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class WebhookReceiver:
    """Records outbound webhook requests; URLs without a handler answer 200."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._handlers: dict[str, Handler] = {}

    def route(self, url: str, handler: Handler) -> None:
        self._handlers[url] = handler

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [request for request in self.requests if str(request.url) == url]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._handlers.get(str(request.url))
        if handler is None:
            return httpx.Response(200, json={"ok": True})
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response


@pytest.fixture
def pagbank() -> PagBankStub:
    return PagBankStub()


@pytest.fixture
def webhook_receiver() -> WebhookReceiver:
    return WebhookReceiver()


@pytest.fixture
def webhook_dispatcher(webhook_receiver: WebhookReceiver) -> WebhookDispatcher:
    return WebhookDispatcher(
        timeout=WEBHOOK_TEST_TIMEOUT,
        user_agent="Painel-Surebets-Webhook/test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(webhook_receiver)),
    )


@pytest.fixture(autouse=True)
def override_external_services(pagbank: PagBankStub, webhook_dispatcher: WebhookDispatcher) -> Iterator[None]:
    """No test ever reaches the network."""

    app.dependency_overrides[get_pagbank_client] = lambda: pagbank.client()
    app.dependency_overrides[get_webhook_dispatcher] = lambda: webhook_dispatcher
    yield
    app.dependency_overrides.pop(get_pagbank_client, None)
    app.dependency_overrides.pop(get_webhook_dispatcher, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _factory(
        *,
        name: str = "Assinante",
        subscription_ends_at: datetime | None = None,
        is_active: bool = True,
    ) -> User:
        user = User(
            name=name,
            email=f"user-{uuid4().hex[:8]}@example.com",
            subscription_ends_at=subscription_ends_at,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _factory


@pytest.fixture
def make_api_key(db_session: Session) -> Callable[..., ApiKey]:
    def _factory(
        name: str,
        key: str,
        scope: ApiScope = ApiScope.user,
        is_active: bool = True,
        user: User | None = None,
    ) -> ApiKey:
        api_key = ApiKey(
            name=name,
            prefix="test_" + scope.value,
            key_hash=hash_key(key),
            scope=scope,
            is_active=is_active,
            user_id=user.id if user is not None else None,
        )
        db_session.add(api_key)
        db_session.commit()
        db_session.refresh(api_key)
        return api_key

    return _factory


@pytest.fixture
def admin_headers(make_api_key: Callable[..., ApiKey]) -> dict[str, str]:
    token = f"admin-{uuid4().hex}"
    make_api_key(name=f"admin-{uuid4().hex}", key=token, scope=ApiScope.admin)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def account(
    make_user: Callable[..., User], make_api_key: Callable[..., ApiKey]
) -> tuple[User, dict[str, str]]:
    """A subscriber and the headers of a user-scoped key bound to it."""

    user = make_user()
    token = f"user-{uuid4().hex}"
    make_api_key(name=f"user-{uuid4().hex}", key=token, scope=ApiScope.user, user=user)
    return user, {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_subscriber(db_session: Session) -> Callable[..., WebhookSubscriber]:
    def _factory(
        url: str,
        *,
        name: str | None = None,
        events: list[str] | None = None,
        secret: str | None = None,
        is_active: bool = True,
    ) -> WebhookSubscriber:
        subscriber = WebhookSubscriber(
            name=name or f"hook-{uuid4().hex[:6]}",
            url=url,
            secret=secret,
            events=events if events is not None else ["signal.created"],
            is_active=is_active,
        )
        db_session.add(subscriber)
        db_session.commit()
        db_session.refresh(subscriber)
        return subscriber

    return _factory

