"""Single owner of the broker connection.

All connection state lives inside one asyncio task. Callers only enqueue
publish commands, so a reconnect can never interleave with a publish in
flight. The loop reconnects forever with a fixed delay:

    DISCONNECTED -> CONNECTING -> CONNECTED -> READY -> DISCONNECTED -> ...

Messages whose publish fails are parked in an offline buffer and replayed
in order, ahead of any newer command, once the next connection is ready.
Delivery is therefore at-least-once: a message the broker received before
reporting failure is published again.
"""

import asyncio
import contextlib
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from penwise.core.modules.queue.broker import Broker, BrokerConnection, ChannelConsumer, CloseCallback, PublisherChannel
from penwise.core.modules.queue.models import ConnectionState, OutgoingMessage
from penwise.errors import QueueDeclareError

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class _Stop:
    pass


_STOP = _Stop()


class QueueConnectionManager:
    def __init__(
        self,
        broker: Broker,
        url: str,
        *,
        prefetch: int = 30,
        reconnect_delay: float = 1.0,
        consumers: Sequence[ChannelConsumer] = (),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._broker = broker
        self._url = url
        self._prefetch = prefetch
        self._reconnect_delay = reconnect_delay
        self._consumers = list(consumers)
        self._sleep = sleep
        self._commands: asyncio.Queue[OutgoingMessage | _Stop] = asyncio.Queue()
        self._offline: deque[OutgoingMessage] = deque()
        self._state = ConnectionState.DISCONNECTED
        self._connection: BrokerConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self.ready = asyncio.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def offline_messages(self) -> list[OutgoingMessage]:
        return list(self._offline)

    def start(self) -> asyncio.Task[None]:
        """Spawn the owning task. Idempotent."""
        if self._task is None:
            self._stopping = False
            self._task = asyncio.create_task(self._run(), name="queue-connection")
        return self._task

    async def stop(self) -> None:
        """Close the connection without reconnecting."""
        if self._task is None:
            return
        self._stopping = True
        self._commands.put_nowait(_STOP)
        if self._state != ConnectionState.READY:
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError, QueueDeclareError):
            await self._task
        self._task = None
        self._state = ConnectionState.CLOSED
        self._discard_stop_markers()
        pending = len(self._offline) + self._commands.qsize()
        if pending:
            logger.warning("queue_stopped_with_pending_messages", count=pending)

    def _discard_stop_markers(self) -> None:
        """Drop unconsumed stop markers so a restarted loop does not exit at once."""
        pending: list[OutgoingMessage] = []
        while not self._commands.empty():
            command = self._commands.get_nowait()
            self._commands.task_done()
            if not isinstance(command, _Stop):
                pending.append(command)
        for command in pending:
            self._commands.put_nowait(command)

    def publish(self, exchange: str, routing_key: str, body: bytes, headers: dict[str, Any] | None = None) -> None:
        """Queue a persistent publish. Never raises to the caller."""
        self._commands.put_nowait(OutgoingMessage(exchange, routing_key, body, headers or {}))

    async def _run(self) -> None:
        while not self._stopping:
            connection = await self._connect()
            if connection is not None:
                try:
                    await self._serve(connection)
                except QueueDeclareError:
                    logger.critical("queue_declare_failed", exc_info=True)
                    self._stopping = True
                    self._state = ConnectionState.CLOSED
                    raise
                except Exception:
                    logger.exception("queue_connection_failed")
                finally:
                    await self._teardown(connection)

            if self._stopping:
                break
            self._state = ConnectionState.DISCONNECTED
            logger.error("queue_reconnecting", delay=self._reconnect_delay)
            await self._sleep(self._reconnect_delay)
        self._state = ConnectionState.CLOSED

    async def _connect(self) -> BrokerConnection | None:
        self._state = ConnectionState.CONNECTING
        try:
            connection = await self._broker.connect(self._url)
        except Exception as e:
            logger.error("queue_connect_failed", error=str(e))
            self._state = ConnectionState.DISCONNECTED
            return None
        self._state = ConnectionState.CONNECTED
        self._connection = connection
        logger.info("queue_connected")
        return connection

    async def _serve(self, connection: BrokerConnection) -> None:
        lost = asyncio.Event()
        connection.on_close(self._connection_closed(lost))

        publisher = await connection.open_publisher_channel()
        publisher.on_close(self._channel_closed("publisher", lost))
        worker = await connection.open_worker_channel(self._prefetch)
        worker.on_close(self._channel_closed("worker", lost))

        try:
            for consumer in self._consumers:
                await consumer.attach(worker)
            self._state = ConnectionState.READY
            self.ready.set()
            if await self._drain_offline(publisher):
                await self._process_commands(publisher, lost)
        finally:
            self.ready.clear()
            for consumer in self._consumers:
                await consumer.detach()

    async def _drain_offline(self, publisher: PublisherChannel) -> bool:
        if self._offline:
            logger.info("queue_replaying_offline_messages", count=len(self._offline))
        while self._offline:
            if not await self._publish(publisher, self._offline[0]):
                await self._force_reconnect()
                return False
            self._offline.popleft()
        return True

    async def _process_commands(self, publisher: PublisherChannel, lost: asyncio.Event) -> None:
        while True:
            command = await self._next_command(lost)
            if command is None:
                return
            try:
                if isinstance(command, _Stop):
                    return
                if not await self._publish(publisher, command):
                    self._offline.append(command)
                    await self._force_reconnect()
                    return
            finally:
                self._commands.task_done()

    async def _next_command(self, lost: asyncio.Event) -> OutgoingMessage | _Stop | None:
        """Next command, or None once the connection is gone."""
        if lost.is_set():
            return None
        getter = asyncio.ensure_future(self._commands.get())
        watcher = asyncio.ensure_future(lost.wait())
        try:
            await asyncio.wait({getter, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not getter.done():
                getter.cancel()
        if getter.done() and not getter.cancelled():
            return getter.result()
        return None

    async def _publish(self, publisher: PublisherChannel, message: OutgoingMessage) -> bool:
        try:
            await publisher.publish(message)
        except Exception as e:
            logger.error(
                "queue_publish_failed", exchange=message.exchange, routing_key=message.routing_key, error=str(e)
            )
            return False
        return True

    async def _force_reconnect(self) -> None:
        if self._connection is not None:
            await self._close(self._connection)

    async def _teardown(self, connection: BrokerConnection) -> None:
        await self._close(connection)
        self._connection = None

    async def _close(self, connection: BrokerConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.warning("queue_close_failed", error=str(e))

    def _connection_closed(self, lost: asyncio.Event) -> CloseCallback:
        def callback(exc: BaseException | None) -> None:
            if exc is None:
                logger.info("queue_connection_closed")
            else:
                logger.error("queue_connection_error", error=str(exc))
            lost.set()

        return callback

    def _channel_closed(self, name: str, lost: asyncio.Event) -> CloseCallback:
        def callback(exc: BaseException | None) -> None:
            if exc is None:
                logger.warning("queue_channel_closed", channel=name)
                return
            # A channel that died on its own would leave publishing or consuming wedged
            logger.warning("queue_channel_failed", channel=name, error=str(exc))
            lost.set()

        return callback
