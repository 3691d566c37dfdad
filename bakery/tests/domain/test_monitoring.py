"""Tests for the batch monitoring task registry."""

import asyncio
from uuid import uuid4

import pytest

from bakery.domain.production.ports import batch_topic
from bakery.domain.production.services.execution_engine import ProductionExecutionEngine
from bakery.domain.production.services.monitoring import (
    BATCH_STATUS_UPDATE,
    BatchMonitorRegistry,
)
from bakery.domain.shared.exceptions import InvalidTransitionError
from bakery.infrastructure.sinks import RecordingMonitorSink
from bakery.tests.utils import at


class FlakySink(RecordingMonitorSink):
    """Fails the first publication, then records."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    async def publish(self, topic, snapshot) -> None:
        if not self.failed:
            self.failed = True
            raise ConnectionError("socket closed")
        await super().publish(topic, snapshot)


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


class TestBatchMonitorRegistry:
    @pytest.mark.asyncio
    async def test_publishes_snapshots_until_stopped(self):
        sink = RecordingMonitorSink()
        batch_id = uuid4()

        async def snapshot(requested):
            return {"batch_id": str(requested)}

        registry = BatchMonitorRegistry(sink, snapshot, interval_seconds=0.01)
        assert registry.start(batch_id)
        await _wait_for(lambda: len(sink.published) >= 2)

        assert await registry.stop(batch_id)
        count = len(sink.published)
        await asyncio.sleep(0.05)

        assert len(sink.published) == count
        assert not registry.is_monitoring(batch_id)
        topic, payload = sink.published[0]
        assert topic == batch_topic(batch_id)
        assert payload["event"] == BATCH_STATUS_UPDATE

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self):
        sink = RecordingMonitorSink()

        async def snapshot(requested):
            return {}

        registry = BatchMonitorRegistry(sink, snapshot, interval_seconds=10)
        batch_id = uuid4()

        assert registry.start(batch_id)
        assert not registry.start(batch_id)
        assert registry.monitored_batch_ids == [batch_id]
        await registry.shutdown()
        assert registry.monitored_batch_ids == []

    @pytest.mark.asyncio
    async def test_loop_ends_when_batch_finished(self):
        sink = RecordingMonitorSink()
        calls = []

        async def snapshot(requested):
            calls.append(requested)
            return None

        registry = BatchMonitorRegistry(sink, snapshot, interval_seconds=0.01)
        batch_id = uuid4()
        registry.start(batch_id)

        await _wait_for(lambda: not registry.is_monitoring(batch_id))

        assert calls == [batch_id]
        assert sink.published == []

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_stop_loop(self):
        sink = FlakySink()

        async def snapshot(requested):
            return {"ok": True}

        registry = BatchMonitorRegistry(sink, snapshot, interval_seconds=0.01)
        batch_id = uuid4()
        registry.start(batch_id)

        await _wait_for(lambda: len(sink.published) >= 1)
        assert sink.failed
        assert registry.is_monitoring(batch_id)
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_stop_unknown_batch(self):
        async def snapshot(requested):
            return {}

        registry = BatchMonitorRegistry(RecordingMonitorSink(), snapshot, interval_seconds=1)
        assert not await registry.stop(uuid4())


class TestEngineMonitoring:
    @pytest.mark.asyncio
    async def test_running_batch_gets_status_updates(
        self, batch_repository, workflow_source, notify_sink, clock, ledgers
    ):
        sink = RecordingMonitorSink()
        engine = ProductionExecutionEngine(
            batch_repository,
            workflow_source,
            notify_sink,
            sink,
            ledgers=ledgers,
            clock=clock,
            monitor_interval_seconds=0.01,
        )
        try:
            batch = await engine.create_batch("bread-v1", 30, at(6), created_by="planner")
            await engine.start_batch(batch.id, "baker-1")
            topic = batch_topic(batch.id)

            await _wait_for(lambda: BATCH_STATUS_UPDATE in sink.events_for(topic))

            await engine.pause_batch(batch.id, "break", "lead")
            assert engine.monitor.is_monitoring(batch.id)

            await engine.cancel_batch(batch.id, "order withdrawn", "lead")
            assert not engine.monitor.is_monitoring(batch.id)
            published = len(sink.published)
            await asyncio.sleep(0.05)
            assert len(sink.published) == published
        finally:
            await engine.shutdown()

    @pytest.mark.asyncio
    async def test_start_monitoring_session(self, engine, running_batch, monitor_sink):
        session = await engine.start_monitoring(running_batch.id, "lead")

        assert session.topic == batch_topic(running_batch.id)
        assert session.already_running
        assert "batch_monitoring_started" in monitor_sink.events_for(session.topic)

    @pytest.mark.asyncio
    async def test_start_monitoring_planned_batch_rejected(self, engine):
        batch = await engine.create_batch("bread-v1", 30, at(6), created_by="planner")

        with pytest.raises(InvalidTransitionError):
            await engine.start_monitoring(batch.id, "lead")
