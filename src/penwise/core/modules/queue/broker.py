"""Protocols between the connection manager and a concrete broker client."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from penwise.core.modules.queue.models import Delivery, OutgoingMessage

# Receives None for a normal closure, the error otherwise
CloseCallback = Callable[[BaseException | None], None]
DeliveryHandler = Callable[[Delivery | None], Awaitable[None]]


class PublisherChannel(Protocol):
    async def publish(self, message: OutgoingMessage) -> None:
        """Publish persistently and wait for the broker confirm. Raises on nack."""
        ...

    def on_close(self, callback: CloseCallback) -> None: ...


class WorkerChannel(PublisherChannel, Protocol):
    async def declare_queue(self, name: str, durable: bool = True) -> None: ...

    async def consume(self, queue: str, handler: DeliveryHandler) -> None:
        """Subscribe with manual acknowledgement."""
        ...

    async def ack(self, delivery: Delivery) -> None: ...

    async def reject(self, delivery: Delivery, requeue: bool) -> None: ...


class BrokerConnection(Protocol):
    async def open_publisher_channel(self) -> PublisherChannel: ...

    async def open_worker_channel(self, prefetch: int) -> WorkerChannel: ...

    def on_close(self, callback: CloseCallback) -> None: ...

    async def close(self) -> None: ...


class Broker(Protocol):
    async def connect(self, url: str) -> BrokerConnection: ...


class ChannelConsumer(Protocol):
    """Something that subscribes on each fresh worker channel."""

    async def attach(self, channel: WorkerChannel) -> None: ...

    async def detach(self) -> None: ...
