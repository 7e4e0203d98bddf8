"""Tests for the single-owner broker connection manager."""

import asyncio

import pytest

from penwise.core.modules.queue.connection import QueueConnectionManager
from penwise.core.modules.queue.consumer import QueueConsumer
from penwise.core.modules.queue.models import ConnectionState
from penwise.errors import QueueDeclareError


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_manager(fake_broker, sleeps):
    managers = []

    async def fake_sleep(delay):
        sleeps.append(delay)
        await asyncio.sleep(0)

    def factory(**kwargs):
        kwargs.setdefault("reconnect_delay", 0.5)
        manager = QueueConnectionManager(fake_broker, "amqp://test", sleep=fake_sleep, **kwargs)
        managers.append(manager)
        return manager

    yield factory
    for manager in managers:
        if manager.state != ConnectionState.CLOSED:
            manager._stopping = True
            if manager._task is not None:
                manager._task.cancel()


def bodies(messages):
    return [message.body for message in messages]


class TestLifecycle:
    """Connecting, readiness and shutdown."""

    async def test_reaches_ready(self, make_manager, fake_broker, wait_until):
        manager = make_manager(prefetch=7)
        manager.start()

        await asyncio.wait_for(manager.ready.wait(), 1)

        assert manager.state == ConnectionState.READY
        connection = fake_broker.connections[0]
        assert connection.worker.prefetch == 7
        await manager.stop()
        assert manager.state == ConnectionState.CLOSED
        assert connection.closed

    async def test_start_is_idempotent(self, make_manager):
        manager = make_manager()
        assert manager.start() is manager.start()
        await manager.stop()

    async def test_retries_with_fixed_delay(self, make_manager, fake_broker, sleeps):
        fake_broker.connect_failures = 3
        manager = make_manager(reconnect_delay=0.5)
        manager.start()

        await asyncio.wait_for(manager.ready.wait(), 1)

        assert sleeps == [0.5, 0.5, 0.5]
        assert len(fake_broker.connections) == 1
        await manager.stop()

    async def test_stop_while_disconnected(self, make_manager, fake_broker):
        fake_broker.connect_failures = 1_000_000
        manager = make_manager()
        manager.start()
        await asyncio.sleep(0.01)

        await manager.stop()

        assert manager.state == ConnectionState.CLOSED
        assert fake_broker.connections == []

    async def test_restart_after_stop_while_disconnected(self, make_manager, fake_broker, wait_until):
        fake_broker.connect_failures = 1_000_000
        manager = make_manager()
        manager.start()
        await asyncio.sleep(0.01)
        await manager.stop()

        fake_broker.connect_failures = 0
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)
        manager.publish("", "entry_queue", b"after-restart")

        await wait_until(lambda: bodies(fake_broker.published) == [b"after-restart"])
        assert len(fake_broker.connections) == 1
        assert manager.state == ConnectionState.READY
        await manager.stop()

    async def test_stop_without_start(self, make_manager):
        manager = make_manager()
        await manager.stop()
        assert manager.state == ConnectionState.DISCONNECTED


class TestPublishing:
    """Ordering and the offline buffer."""

    async def test_publish_before_connect_is_delivered_in_order(self, make_manager, fake_broker, wait_until):
        manager = make_manager()
        for n in range(3):
            manager.publish("", "entry_queue", f"m{n}".encode())

        manager.start()
        await wait_until(lambda: len(fake_broker.published) == 3)

        assert bodies(fake_broker.published) == [b"m0", b"m1", b"m2"]
        assert all(message.routing_key == "entry_queue" for message in fake_broker.published)
        await manager.stop()

    async def test_failed_publish_is_replayed_first_after_reconnect(self, make_manager, fake_broker, wait_until):
        """A message whose publish failed goes out before anything queued after it."""
        manager = make_manager()
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)

        fake_broker.publish_failures = 1
        manager.publish("", "entry_queue", b"first")
        manager.publish("", "entry_queue", b"second")

        await wait_until(lambda: len(fake_broker.published) == 2)
        assert bodies(fake_broker.published) == [b"first", b"second"]
        assert len(fake_broker.connections) == 2
        assert fake_broker.connections[0].closed
        assert manager.offline_messages == []
        await manager.stop()

    async def test_replay_failure_keeps_buffer_order(self, make_manager, fake_broker, wait_until):
        manager = make_manager()
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)

        fake_broker.publish_failures = 2  # original publish and the first replay
        manager.publish("", "entry_queue", b"a")
        manager.publish("", "entry_queue", b"b")

        await wait_until(lambda: len(fake_broker.published) == 2)
        assert bodies(fake_broker.published) == [b"a", b"b"]
        assert len(fake_broker.connections) == 3
        await manager.stop()

    async def test_publish_never_raises(self, make_manager):
        manager = make_manager()
        manager.publish("", "entry_queue", b"x")
        await manager.stop()


class TestConnectionLoss:
    """Reactions to close notifications."""

    async def test_connection_error_triggers_reconnect(self, make_manager, fake_broker, wait_until):
        manager = make_manager()
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)

        for callback in fake_broker.connections[0].close_callbacks:
            callback(ConnectionResetError("heartbeat missed"))

        await wait_until(lambda: len(fake_broker.connections) == 2 and manager.state == ConnectionState.READY)
        await manager.stop()

    async def test_channel_error_triggers_reconnect(self, make_manager, fake_broker, wait_until):
        manager = make_manager()
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)

        fake_broker.connections[0].worker.fire_close(RuntimeError("PRECONDITION_FAILED"))

        await wait_until(lambda: len(fake_broker.connections) == 2 and manager.state == ConnectionState.READY)
        await manager.stop()

    async def test_clean_channel_close_is_only_logged(self, make_manager, fake_broker):
        manager = make_manager()
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)

        fake_broker.connections[0].publisher.fire_close(None)
        await asyncio.sleep(0.02)

        assert len(fake_broker.connections) == 1
        assert manager.state == ConnectionState.READY
        await manager.stop()

    async def test_consumers_reattached_after_reconnect(self, make_manager, fake_broker, wait_until):
        async def handler(delivery):
            return True

        consumer = QueueConsumer("entry_queue", handler, concurrency=1, max_delivery_attempts=0)
        manager = make_manager(consumers=[consumer])
        manager.start()
        await asyncio.wait_for(manager.ready.wait(), 1)

        for callback in fake_broker.connections[0].close_callbacks:
            callback(ConnectionResetError("gone"))

        await wait_until(lambda: len(fake_broker.connections) == 2 and manager.state == ConnectionState.READY)
        assert "entry_queue" in fake_broker.connections[1].worker.handlers
        await manager.stop()

    async def test_failed_subscribe_reconnects_without_leaking_workers(self, make_manager, fake_broker, wait_until):
        async def handler(delivery):
            return True

        fake_broker.consume_failures = 1
        consumer = QueueConsumer("entry_queue", handler, concurrency=3, max_delivery_attempts=0)
        manager = make_manager(consumers=[consumer])
        manager.start()

        await wait_until(lambda: manager.state == ConnectionState.READY)

        assert len(fake_broker.connections) == 2
        assert fake_broker.connections[0].closed
        workers = [task for task in asyncio.all_tasks() if task.get_name().startswith("entry_queue-worker-")]
        assert len(workers) == 3
        await manager.stop()


class TestFatalDeclare:
    """Queue declaration failures end the manager."""

    async def test_declare_failure_is_fatal(self, make_manager, fake_broker, sleeps):
        async def handler(delivery):
            return True

        fake_broker.refused_queues = {"entry_queue"}
        consumer = QueueConsumer("entry_queue", handler)
        manager = make_manager(consumers=[consumer])

        task = manager.start()
        with pytest.raises(QueueDeclareError):
            await asyncio.wait_for(task, 1)

        assert manager.state == ConnectionState.CLOSED
        assert len(fake_broker.connections) == 1
        assert sleeps == []
        await manager.stop()
