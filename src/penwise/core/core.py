from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import urlparse

import structlog
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase
from redis.asyncio import Redis

from penwise.config import Config

if TYPE_CHECKING:
    from penwise.core.modules.analysis.service import AnalysisService
    from penwise.core.modules.analytics.service import AnalyticsService
    from penwise.core.modules.journal.service import JournalService
    from penwise.core.modules.kv.service import KVService
    from penwise.core.modules.queue.service import QueueService
    from penwise.core.modules.session.service import SessionService
    from penwise.core.modules.user.service import UserService
    from penwise.core.modules.worker.service import WorkerService

logger = structlog.get_logger(__name__)


class Service:
    """Base class for services with direct database access."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        self.database = database
        self._core: Core | None = None

    async def on_start(self) -> None:
        """Initialize service on application startup."""

    async def on_stop(self) -> None:
        """Cleanup service on application shutdown."""

    @property
    def core(self) -> Core:
        """Get the core application context."""
        if self._core is None:
            raise RuntimeError("Core not set for service")
        return self._core

    def set_core(self, core: Core) -> None:
        """Set the core application context."""
        self._core = core


class Services:
    """Service registry that automatically discovers and initializes services."""

    user: UserService
    kv: KVService
    session: SessionService
    journal: JournalService
    analysis: AnalysisService
    analytics: AnalyticsService
    worker: WorkerService
    queue: QueueService

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        """Initialize all services automatically using service configuration."""
        self._services: list[Service] = []
        self._database = database

        # Service configuration: (attribute_name, module_path, class_name)
        # Order matters: the queue starts last so its consumer only sees ready services,
        # and stops first during shutdown.
        service_configs = [
            ("user", "penwise.core.modules.user.service", "UserService"),
            ("kv", "penwise.core.modules.kv.service", "KVService"),
            ("session", "penwise.core.modules.session.service", "SessionService"),
            ("journal", "penwise.core.modules.journal.service", "JournalService"),
            ("analysis", "penwise.core.modules.analysis.service", "AnalysisService"),
            ("analytics", "penwise.core.modules.analytics.service", "AnalyticsService"),
            ("worker", "penwise.core.modules.worker.service", "WorkerService"),
            ("queue", "penwise.core.modules.queue.service", "QueueService"),
        ]

        # Dynamically import and instantiate services
        for attr_name, module_path, class_name in service_configs:
            module = importlib.import_module(module_path)
            service_class = cast(type[Service], getattr(module, class_name))
            service_instance = service_class(database)
            setattr(self, attr_name, service_instance)
            self._services.append(service_instance)

    def set_core(self, core: Core) -> None:
        """Set core reference for all services."""
        for service in self._services:
            service.set_core(core)

    async def start_all(self) -> None:
        """Start all services that have startup logic."""
        for service in self._services:
            await service.on_start()

    async def stop_all(self) -> None:
        """Stop all services in reverse start order."""
        for service in reversed(self._services):
            await service.on_stop()


class Core:
    """Container providing config, database, KV client, and all service instances."""

    config: Config
    mongo_client: AsyncMongoClient[dict[str, Any]]
    database: AsyncDatabase[dict[str, Any]]
    redis: Redis
    services: Services

    def __init__(self, config: Config) -> None:
        """Initialize core with config, MongoDB, Redis, and auto-register services."""
        self.config = config
        self.mongo_client = AsyncMongoClient(config.database_url, uuidRepresentation="standard", tz_aware=True)
        self.database = self.mongo_client.get_database(urlparse(config.database_url).path[1:])
        self.redis = Redis.from_url(config.redis_url, encoding="utf-8", decode_responses=True)
        self.services = Services(self.database)
        self.services.set_core(self)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage application lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        """Start all services on application startup."""
        await self.redis.ping()
        logger.info("redis_connected", url=self.config.redis_url)
        await self.services.start_all()

    async def on_stop(self) -> None:
        """Stop services and close store connections on shutdown."""
        await self.services.stop_all()
        await self.redis.aclose()
        await self.mongo_client.aclose()
