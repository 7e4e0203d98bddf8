"""aio-pika implementation of the broker protocols.

Reconnection is driven by the connection manager, so plain (non-robust)
connections are used here.
"""

import asyncio
from typing import Any

import aio_pika
import structlog
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractIncomingMessage, AbstractQueue
from aio_pika.exceptions import ChannelPreconditionFailed, ConnectionClosed, DeliveryError
from aiormq.exceptions import ChannelAccessRefused

from penwise.core.modules.queue.broker import CloseCallback, DeliveryHandler
from penwise.core.modules.queue.models import Delivery, OutgoingMessage
from penwise.errors import PublishError, QueueDeclareError

logger = structlog.get_logger(__name__)

NORMAL_CLOSE_CODE = 200


def is_normal_closure(exc: BaseException | None) -> bool:
    """Explicit close() calls and reply code 200 count as intentional shutdowns."""
    if exc is None or isinstance(exc, asyncio.CancelledError):
        return True
    return isinstance(exc, ConnectionClosed) and bool(exc.args) and exc.args[0] == NORMAL_CLOSE_CODE


def _close_listener(callback: CloseCallback) -> Any:
    def listener(_sender: Any, exc: BaseException | None = None, *_args: Any) -> None:
        callback(None if is_normal_closure(exc) else exc)

    return listener


class AmqpChannel:
    """Confirm-mode channel usable for publishing and, with a prefetch, for consuming."""

    def __init__(self, channel: AbstractChannel) -> None:
        self._channel = channel
        self._queues: dict[str, AbstractQueue] = {}

    def on_close(self, callback: CloseCallback) -> None:
        self._channel.close_callbacks.add(_close_listener(callback))

    async def publish(self, message: OutgoingMessage) -> None:
        if message.exchange:
            exchange = await self._channel.get_exchange(message.exchange, ensure=False)
        else:
            exchange = self._channel.default_exchange
        amqp_message = aio_pika.Message(
            message.body,
            headers=message.headers or None,
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            content_type="application/json",
        )
        try:
            await exchange.publish(amqp_message, routing_key=message.routing_key)
        except DeliveryError as e:
            raise PublishError(f"Broker rejected message for '{message.routing_key}'") from e

    async def declare_queue(self, name: str, durable: bool = True) -> None:
        try:
            self._queues[name] = await self._channel.declare_queue(name, durable=durable)
        except (ChannelPreconditionFailed, ChannelAccessRefused) as e:
            raise QueueDeclareError(f"Cannot declare queue '{name}'") from e

    async def consume(self, queue: str, handler: DeliveryHandler) -> None:
        async def on_message(message: AbstractIncomingMessage) -> None:
            await handler(
                Delivery(
                    body=message.body,
                    headers=dict(message.headers or {}),
                    redelivered=bool(message.redelivered),
                    consumer_tag=message.consumer_tag,
                    delivery_tag=message.delivery_tag,
                    raw=message,
                )
            )

        await self._queues[queue].consume(on_message, no_ack=False)

    async def ack(self, delivery: Delivery) -> None:
        await delivery.raw.ack()

    async def reject(self, delivery: Delivery, requeue: bool) -> None:
        await delivery.raw.reject(requeue=requeue)


class AmqpConnection:
    def __init__(self, connection: AbstractConnection) -> None:
        self._connection = connection

    async def open_publisher_channel(self) -> AmqpChannel:
        return AmqpChannel(await self._connection.channel(publisher_confirms=True))

    async def open_worker_channel(self, prefetch: int) -> AmqpChannel:
        channel = await self._connection.channel(publisher_confirms=True)
        await channel.set_qos(prefetch_count=prefetch)
        return AmqpChannel(channel)

    def on_close(self, callback: CloseCallback) -> None:
        self._connection.close_callbacks.add(_close_listener(callback))

    async def close(self) -> None:
        if not self._connection.is_closed:
            await self._connection.close()


class AmqpBroker:
    async def connect(self, url: str) -> AmqpConnection:
        return AmqpConnection(await aio_pika.connect(url))
