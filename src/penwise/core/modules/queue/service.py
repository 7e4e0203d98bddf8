import asyncio
import signal
from collections.abc import Callable

import structlog

from penwise.core.core import Service
from penwise.core.modules.journal.models import EntrySnapshot
from penwise.core.modules.queue.amqp import AmqpBroker
from penwise.core.modules.queue.broker import Broker
from penwise.core.modules.queue.connection import QueueConnectionManager
from penwise.core.modules.queue.consumer import QueueConsumer

logger = structlog.get_logger(__name__)


def _terminate_process() -> None:
    signal.raise_signal(signal.SIGTERM)


class QueueService(Service):
    """Owns the broker connection manager and, optionally, the entry consumer.

    A failed queue declaration is unrecoverable: it is logged as critical and
    the process is asked to terminate.
    """

    broker_factory: Callable[[], Broker] = AmqpBroker
    on_fatal: Callable[[], None] = staticmethod(_terminate_process)

    _manager: QueueConnectionManager | None = None
    _consumer: QueueConsumer | None = None

    @property
    def manager(self) -> QueueConnectionManager:
        if self._manager is None:
            config = self.core.config
            consumers = []
            if config.queue_consumer_enabled:
                self._consumer = QueueConsumer(
                    config.entry_queue,
                    self.core.services.worker.process,
                    concurrency=config.queue_prefetch,
                    max_delivery_attempts=config.queue_max_delivery_attempts,
                )
                consumers.append(self._consumer)
            self._manager = QueueConnectionManager(
                self.broker_factory(),
                config.amqp_url,
                prefetch=config.queue_prefetch,
                reconnect_delay=config.queue_reconnect_delay,
                consumers=consumers,
            )
        return self._manager

    @property
    def consumer(self) -> QueueConsumer | None:
        return self._consumer

    async def on_start(self) -> None:
        task = self.manager.start()
        task.add_done_callback(self._on_manager_done)
        logger.info("queue_started", queue=self.core.config.entry_queue, consumer=self._consumer is not None)

    async def on_stop(self) -> None:
        if self._manager is not None:
            await self._manager.stop()

    def publish_entry(self, snapshot: EntrySnapshot) -> None:
        """Hand an entry to post-processing. Buffered while the broker is unreachable."""
        body = snapshot.model_dump_json(by_alias=True).encode("utf-8")
        self.manager.publish("", self.core.config.entry_queue, body)

    def _on_manager_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.critical("queue_manager_crashed", error=str(task.exception()))
        self.on_fatal()
