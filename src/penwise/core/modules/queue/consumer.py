"""Bounded-concurrency dispatch of queue deliveries to a handler."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from penwise.core.modules.queue.broker import WorkerChannel
from penwise.core.modules.queue.models import RETRY_HEADER, Delivery, OutgoingMessage

logger = structlog.get_logger(__name__)

Handler = Callable[[Delivery], Awaitable[bool]]


class QueueConsumer:
    """Feeds deliveries to a pool of worker tasks and settles each one.

    The handler returns True to acknowledge. On False (or an exception) the
    message is retried: requeued as-is when ``max_delivery_attempts`` is 0,
    otherwise republished with an incremented retry header until the ceiling,
    then moved to the dead-letter queue.
    """

    def __init__(
        self,
        queue_name: str,
        handler: Handler,
        *,
        concurrency: int = 30,
        max_delivery_attempts: int = 5,
    ) -> None:
        self.queue_name = queue_name
        self.dead_letter_queue = f"{queue_name}.dead-letter"
        self._handler = handler
        self._concurrency = max(1, concurrency)
        self._max_attempts = max_delivery_attempts
        self._channel: WorkerChannel | None = None
        self._inbox: asyncio.Queue[tuple[WorkerChannel, Delivery]] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []

    async def attach(self, channel: WorkerChannel) -> None:
        await channel.declare_queue(self.queue_name, durable=True)
        if self._max_attempts:
            await channel.declare_queue(self.dead_letter_queue, durable=True)
        self._channel = channel
        self._inbox = asyncio.Queue()
        try:
            await channel.consume(self.queue_name, self._on_delivery)
        except Exception:
            self._channel = None
            raise
        # Deliveries wait in the inbox until the pool is up
        self._workers = [
            asyncio.create_task(self._work(), name=f"{self.queue_name}-worker-{i}") for i in range(self._concurrency)
        ]
        logger.info("queue_worker_started", queue=self.queue_name, concurrency=self._concurrency)

    async def detach(self) -> None:
        """Stop the pool. Unsettled messages are redelivered by the broker."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        if not self._inbox.empty():
            logger.info("queue_worker_dropped_unstarted", queue=self.queue_name, count=self._inbox.qsize())
        self._workers = []
        self._channel = None

    async def _on_delivery(self, delivery: Delivery | None) -> None:
        if delivery is None:
            logger.error("queue_consumer_cancelled", queue=self.queue_name)
            return
        if self._channel is None:
            return
        await self._inbox.put((self._channel, delivery))

    async def _work(self) -> None:
        while True:
            channel, delivery = await self._inbox.get()
            try:
                ok = await self._handle(delivery)
                await self._settle(channel, delivery, ok)
            finally:
                self._inbox.task_done()

    async def _handle(self, delivery: Delivery) -> bool:
        try:
            return await self._handler(delivery)
        except Exception:
            logger.exception("queue_handler_failed", queue=self.queue_name)
            return False

    async def _settle(self, channel: WorkerChannel, delivery: Delivery, ok: bool) -> None:
        try:
            if ok:
                await channel.ack(delivery)
            else:
                await self._retry(channel, delivery)
        except Exception as e:
            # Channel is gone; the broker redelivers the message
            logger.error("queue_settle_failed", queue=self.queue_name, error=str(e))

    async def _retry(self, channel: WorkerChannel, delivery: Delivery) -> None:
        if not self._max_attempts:
            await channel.reject(delivery, requeue=True)
            logger.warning("queue_message_requeued", queue=self.queue_name)
            return

        attempts = delivery.retry_count + 1
        target = self.queue_name if attempts < self._max_attempts else self.dead_letter_queue
        retry = OutgoingMessage("", target, delivery.body, {**delivery.headers, RETRY_HEADER: attempts})
        try:
            await channel.publish(retry)
        except Exception as e:
            logger.warning("queue_retry_publish_failed", queue=self.queue_name, error=str(e))
            await channel.reject(delivery, requeue=True)
            return

        await channel.ack(delivery)
        if target == self.dead_letter_queue:
            logger.error("queue_message_dead_lettered", queue=self.queue_name, attempts=attempts)
        else:
            logger.warning("queue_message_retried", queue=self.queue_name, attempts=attempts)
