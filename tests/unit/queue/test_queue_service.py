"""Tests for the queue service wiring."""

import json
from uuid import uuid4

import pytest

from penwise.core.modules.journal.models import EntrySnapshot
from penwise.core.modules.queue.models import ConnectionState
from penwise.core.modules.queue.service import QueueService
from penwise.utils import now


@pytest.fixture
def queue_service(core, fake_db, fake_broker):
    service = QueueService(fake_db)
    service.set_core(core)
    service.broker_factory = lambda: fake_broker
    service.fatal_calls = []
    service.on_fatal = lambda: service.fatal_calls.append(True)
    return service


def make_snapshot():
    return EntrySnapshot(id=uuid4(), user_id=uuid4(), title="", content="A calm day.", entry_date=now())


class TestQueueService:
    """Start, publish and stop."""

    async def test_publish_entry_goes_to_entry_queue(self, queue_service, fake_broker, wait_until):
        await queue_service.on_start()
        snapshot = make_snapshot()

        queue_service.publish_entry(snapshot)

        await wait_until(lambda: len(fake_broker.published) == 1)
        [message] = fake_broker.published
        assert message.exchange == ""
        assert message.routing_key == "entry_queue"
        body = json.loads(message.body)
        assert body["id"] == str(snapshot.id)
        assert body["userId"] == str(snapshot.user_id)
        assert body["content"] == "A calm day."
        await queue_service.on_stop()
        assert queue_service.manager.state == ConnectionState.CLOSED

    async def test_publish_before_start_is_buffered(self, queue_service, fake_broker, wait_until):
        queue_service.publish_entry(make_snapshot())
        assert fake_broker.published == []

        await queue_service.on_start()
        await wait_until(lambda: len(fake_broker.published) == 1)
        await queue_service.on_stop()

    async def test_consumer_attached_when_enabled(self, queue_service, fake_broker, wait_until):
        await queue_service.on_start()
        await wait_until(lambda: queue_service.manager.state == ConnectionState.READY)

        assert queue_service.consumer is not None
        worker = fake_broker.connections[0].worker
        assert worker.declared == ["entry_queue", "entry_queue.dead-letter"]
        assert worker.prefetch == 30
        await queue_service.on_stop()

    async def test_consumer_disabled(self, queue_service, config, fake_broker, wait_until):
        config.queue_consumer_enabled = False
        await queue_service.on_start()
        await wait_until(lambda: queue_service.manager.state == ConnectionState.READY)

        assert queue_service.consumer is None
        assert fake_broker.connections[0].worker.declared == []
        await queue_service.on_stop()

    async def test_declare_failure_requests_shutdown(self, queue_service, fake_broker, wait_until):
        fake_broker.refused_queues = {"entry_queue"}
        await queue_service.on_start()

        await wait_until(lambda: queue_service.fatal_calls == [True])
        await queue_service.on_stop()

    async def test_stop_without_start(self, queue_service):
        await queue_service.on_stop()
