"""Shared pytest fixtures and in-process doubles for Redis, MongoDB and the broker."""

import asyncio
import copy
from collections.abc import AsyncIterator, Awaitable, Callable
from types import SimpleNamespace
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from penwise.config import Config
from penwise.core.modules.analysis.service import AnalysisService
from penwise.core.modules.analytics.service import AnalyticsService
from penwise.core.modules.journal.models import EntrySnapshot
from penwise.core.modules.journal.service import JournalService
from penwise.core.modules.kv.service import KVService
from penwise.core.modules.queue.broker import CloseCallback, DeliveryHandler
from penwise.core.modules.queue.models import Delivery, OutgoingMessage
from penwise.core.modules.session.service import SessionService
from penwise.core.modules.user.models import PreferencesUpdate, User
from penwise.core.modules.user.service import UserService
from penwise.core.modules.worker.service import WorkerService
from penwise.errors import PublishError, QueueDeclareError

# --- Redis ---


class FakeRedis:
    """Dict-backed stand-in for redis.asyncio.Redis with decode_responses=True."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiries: dict[str, int | None] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        self.expiries[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiries.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True

    async def aclose(self) -> None:
        pass


# --- MongoDB ---


def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
    for field, expected in query.items():
        actual = doc.get(field)
        if isinstance(expected, dict) and any(key.startswith("$") for key in expected):
            for op, operand in expected.items():
                if op == "$lte" and not (actual is not None and actual <= operand):
                    return False
                if op == "$gte" and not (actual is not None and actual >= operand):
                    return False
                if op == "$in" and actual not in operand:
                    return False
        elif actual != expected:
            return False
    return True


def _apply_update(doc: dict[str, Any], update: dict[str, Any], inserting: bool) -> None:
    for field, value in update.get("$set", {}).items():
        doc[field] = copy.deepcopy(value)
    for field, value in update.get("$inc", {}).items():
        doc[field] = doc.get(field, 0) + value
    if inserting:
        for field, value in update.get("$setOnInsert", {}).items():
            doc[field] = copy.deepcopy(value)


class FakeCursor:
    """Async-iterable result of FakeCollection.find."""

    def __init__(self, docs: list[dict[str, Any]]) -> None:
        self.docs = docs

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self.docs.sort(key=lambda doc: doc[key], reverse=direction < 0)
        return self

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        for doc in self.docs:
            yield doc


class FakeCollection:
    """The subset of AsyncCollection the services use."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: list[dict[str, Any]] = []

    async def create_index(self, *_args: Any, **_kwargs: Any) -> str:
        return "index"

    async def insert_one(self, doc: dict[str, Any]) -> SimpleNamespace:
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc.get("_id"))

    def find(self, query: dict[str, Any] | None = None) -> FakeCursor:
        return FakeCursor([copy.deepcopy(doc) for doc in self.docs if _matches(doc, query or {})])

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def update_one(self, query: dict[str, Any], update: dict[str, Any], upsert: bool = False) -> SimpleNamespace:
        for doc in self.docs:
            if _matches(doc, query):
                _apply_update(doc, update, inserting=False)
                return SimpleNamespace(modified_count=1, upserted_id=None)
        if upsert:
            doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
            _apply_update(doc, update, inserting=True)
            self.docs.append(doc)
            return SimpleNamespace(modified_count=0, upserted_id=doc.get("_id"))
        return SimpleNamespace(modified_count=0, upserted_id=None)

    async def update_many(self, query: dict[str, Any], update: dict[str, Any]) -> SimpleNamespace:
        matched = [doc for doc in self.docs if _matches(doc, query)]
        for doc in matched:
            _apply_update(doc, update, inserting=False)
        return SimpleNamespace(modified_count=len(matched))

    async def replace_one(
        self, query: dict[str, Any], replacement: dict[str, Any], upsert: bool = False
    ) -> SimpleNamespace:
        for index, doc in enumerate(self.docs):
            if _matches(doc, query):
                new_doc = copy.deepcopy(replacement)
                if "_id" in doc:
                    new_doc["_id"] = doc["_id"]
                self.docs[index] = new_doc
                return SimpleNamespace(modified_count=1)
        if upsert:
            self.docs.append(copy.deepcopy(replacement))
        return SimpleNamespace(modified_count=0)


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}

    def get_collection(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection(name))


# --- Broker ---


class FakeChannel:
    def __init__(self, broker: "FakeBroker", prefetch: int | None = None) -> None:
        self.broker = broker
        self.prefetch = prefetch
        self.close_callbacks: list[CloseCallback] = []
        self.published: list[OutgoingMessage] = []
        self.acked: list[Delivery] = []
        self.rejected: list[tuple[Delivery, bool]] = []
        self.declared: list[str] = []
        self.handlers: dict[str, DeliveryHandler] = {}

    def on_close(self, callback: CloseCallback) -> None:
        self.close_callbacks.append(callback)

    def fire_close(self, exc: BaseException | None) -> None:
        for callback in self.close_callbacks:
            callback(exc)

    async def publish(self, message: OutgoingMessage) -> None:
        if self.broker.publish_failures > 0:
            self.broker.publish_failures -= 1
            raise PublishError("nack")
        self.published.append(message)
        self.broker.published.append(message)

    async def declare_queue(self, name: str, durable: bool = True) -> None:
        if name in self.broker.refused_queues:
            raise QueueDeclareError(f"Cannot declare queue '{name}'")
        self.declared.append(name)

    async def consume(self, queue: str, handler: DeliveryHandler) -> None:
        if self.broker.consume_failures > 0:
            self.broker.consume_failures -= 1
            raise ConnectionResetError("channel closed while subscribing")
        self.handlers[queue] = handler

    async def ack(self, delivery: Delivery) -> None:
        self.acked.append(delivery)

    async def reject(self, delivery: Delivery, requeue: bool) -> None:
        self.rejected.append((delivery, requeue))

    async def deliver(self, queue: str, body: bytes, headers: dict[str, Any] | None = None) -> Delivery:
        delivery = Delivery(body=body, headers=headers or {})
        await self.handlers[queue](delivery)
        return delivery


class FakeConnection:
    def __init__(self, broker: "FakeBroker") -> None:
        self.broker = broker
        self.close_callbacks: list[CloseCallback] = []
        self.channels: list[FakeChannel] = []
        self.closed = False

    async def open_publisher_channel(self) -> FakeChannel:
        channel = FakeChannel(self.broker)
        self.channels.append(channel)
        return channel

    async def open_worker_channel(self, prefetch: int) -> FakeChannel:
        channel = FakeChannel(self.broker, prefetch)
        self.channels.append(channel)
        return channel

    @property
    def publisher(self) -> FakeChannel:
        return self.channels[0]

    @property
    def worker(self) -> FakeChannel:
        return self.channels[1]

    def on_close(self, callback: CloseCallback) -> None:
        self.close_callbacks.append(callback)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for callback in self.close_callbacks:
            callback(None)


class FakeBroker:
    """In-memory broker; connect, consume and publish can be told to fail a number of times."""

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.published: list[OutgoingMessage] = []
        self.connect_failures = 0
        self.publish_failures = 0
        self.consume_failures = 0
        self.refused_queues: set[str] = set()

    async def connect(self, url: str) -> FakeConnection:
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise ConnectionRefusedError(f"cannot reach {url}")
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


class FakeQueueService:
    """Records published snapshots instead of talking to a broker."""

    def __init__(self) -> None:
        self.snapshots: list[EntrySnapshot] = []

    def publish_entry(self, snapshot: EntrySnapshot) -> None:
        self.snapshots.append(snapshot)


# --- Fixtures ---


@pytest.fixture
def config() -> Config:
    return Config(
        _env_file=None,  # type: ignore[call-arg]
        database_url="mongodb://localhost:27017/penwise_test",
        jwt_secret="test-secret",
        account_lock_max_count=3,
        otp_resend_max_count=3,
        queue_reconnect_delay=0.5,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def core(config: Config, fake_redis: FakeRedis, fake_db: FakeDatabase) -> SimpleNamespace:
    """Core-shaped container wiring real services to the in-memory doubles."""
    container = SimpleNamespace(config=config, redis=fake_redis, database=fake_db, services=SimpleNamespace())
    services = {
        "user": UserService(fake_db),  # type: ignore[arg-type]
        "kv": KVService(fake_db),  # type: ignore[arg-type]
        "session": SessionService(fake_db),  # type: ignore[arg-type]
        "journal": JournalService(fake_db),  # type: ignore[arg-type]
        "analysis": AnalysisService(fake_db),  # type: ignore[arg-type]
        "analytics": AnalyticsService(fake_db),  # type: ignore[arg-type]
        "worker": WorkerService(fake_db),  # type: ignore[arg-type]
    }
    for name, service in services.items():
        service.set_core(container)  # type: ignore[arg-type]
        setattr(container.services, name, service)
    container.services.queue = FakeQueueService()
    return container


@pytest.fixture
def create_user(core: SimpleNamespace) -> Callable[..., Awaitable[User]]:
    """Factory registering a user, optionally with two-factor and extra field overrides."""

    async def factory(
        email: str = "ada@example.com",
        password: str = "Secret#123",
        two_factor: bool = False,
        **fields: Any,
    ) -> User:
        users: UserService = core.services.user
        user = await users.create_user("Ada", email, password)
        if two_factor:
            await users.update_preferences(user.id, PreferencesUpdate(two_factor_enabled=True))
        if fields:
            await users.update_user(user.id, fields)
        found = await users.find_user(user.id)
        assert found is not None
        return found

    return factory


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a condition while letting background tasks run."""

    async def waiter(condition: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return waiter
