"""
Test suite for the analytics batch queue and HTTP transport.

This module tests:
- Debounced flushing and batch sizing
- Grouping by visit and per-visit failure isolation
- Retry budget and dropping
- Shutdown and async close paths
- HttpAnalyticsTransport against httpx.MockTransport

Run with: pytest tests/test_analytics.py -v
"""
from __future__ import annotations

import asyncio
import json
import math

import httpx
import pytest

from src.reel_flow.config import RuntimeSettings
from src.reel_flow.engine.analytics import (
    MAX_BATCH_SIZE,
    MAX_RETRIES,
    AnalyticsBatchQueue,
    AnalyticsTransportError,
    HttpAnalyticsTransport,
)
from src.reel_flow.models.analytics import AnalyticsEvent, AnalyticsEventType
from tests.conftest import RecordingTransport


def make_event(visit_id: str = "visit-1", slide_id: str = "slide-a", **fields) -> AnalyticsEvent:
    return AnalyticsEvent(visit_id=visit_id, event_type=AnalyticsEventType.VIEW, slide_id=slide_id, **fields)


# =============================================================================
# TEST: QUEUE WITHOUT A LOOP
# =============================================================================

class TestQueueBasics:
    """Test queue behavior that needs no event loop."""

    def test_enqueue_without_loop_buffers(self, transport: RecordingTransport):
        """Test that events wait in the queue when no loop is running."""
        queue = AnalyticsBatchQueue(transport)

        queue.enqueue(make_event())

        assert queue.pending == 1
        assert queue.flush_scheduled is False
        assert transport.attempts == []

    def test_invalid_batch_size(self, transport: RecordingTransport):
        with pytest.raises(ValueError):
            AnalyticsBatchQueue(transport, max_batch_size=0)

    def test_from_settings(self, transport: RecordingTransport):
        settings = RuntimeSettings(batch_delay=0.5, max_batch_size=4, max_retries=1)

        queue = AnalyticsBatchQueue.from_settings(settings, transport=transport)

        assert queue.batch_delay == 0.5
        assert queue.max_batch_size == 4
        assert queue.max_retries == 1
        assert queue.transport is transport

    def test_defaults(self, transport: RecordingTransport):
        queue = AnalyticsBatchQueue(transport)

        assert queue.max_batch_size == MAX_BATCH_SIZE == 10
        assert queue.max_retries == MAX_RETRIES == 3

    def test_shutdown_sends_beacons(self, transport: RecordingTransport):
        """Test that shutdown hands every batch to the beacon once."""
        queue = AnalyticsBatchQueue(transport)
        for i in range(12):
            queue.enqueue(make_event(slide_id=f"s{i}"))
        queue.enqueue(make_event(visit_id="visit-2"))

        delivered = queue.shutdown()

        assert delivered == 13
        assert sorted(len(events) for _, events in transport.beacons) == [1, 2, 10]
        assert queue.pending == 0
        assert queue.closed is True

    def test_shutdown_does_not_retry(self):
        failing = RecordingTransport(failing_visits={"visit-1"})
        queue = AnalyticsBatchQueue(failing)
        queue.enqueue(make_event())

        assert queue.shutdown() == 0
        assert len(failing.beacons) == 1
        assert queue.events_dropped == 1
        assert queue.pending == 0

    def test_enqueue_after_shutdown_ignored(self, transport: RecordingTransport):
        queue = AnalyticsBatchQueue(transport)
        queue.shutdown()

        queue.enqueue(make_event())

        assert queue.pending == 0

    def test_shutdown_empty_queue(self, transport: RecordingTransport):
        queue = AnalyticsBatchQueue(transport)

        assert queue.shutdown() == 0
        assert transport.beacons == []


# =============================================================================
# TEST: FLUSHING
# =============================================================================

class TestQueueFlush:
    """Test timer-driven and explicit flushes."""

    @pytest.mark.asyncio
    async def test_debounced_flush_batches_by_size(self, transport: RecordingTransport):
        """Test that N events in one window produce ceil(N / batch size) requests."""
        queue = AnalyticsBatchQueue(transport, batch_delay=0.05)

        for i in range(25):
            queue.enqueue(make_event(slide_id=f"s{i}"))
        assert queue.flush_scheduled is True
        assert transport.attempts == []

        await asyncio.sleep(0.2)

        assert len(transport.attempts) == math.ceil(25 / MAX_BATCH_SIZE)
        assert [len(events) for _, events in transport.attempts] == [10, 10, 5]
        assert queue.pending == 0
        assert queue.events_sent == 25

    @pytest.mark.asyncio
    async def test_enqueue_resets_timer(self, transport: RecordingTransport):
        """Test that each enqueue pushes the flush back."""
        queue = AnalyticsBatchQueue(transport, batch_delay=0.3)

        queue.enqueue(make_event())
        await asyncio.sleep(0.1)
        queue.enqueue(make_event())
        await asyncio.sleep(0.25)

        assert transport.attempts == []

        await asyncio.sleep(0.3)

        assert len(transport.attempts) == 1
        assert len(transport.attempts[0][1]) == 2

    @pytest.mark.asyncio
    async def test_events_sent_in_wire_shape(self, transport: RecordingTransport):
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event(metadata={"type": "option_select"}))

        await queue.flush()

        visit_id, events = transport.attempts[0]
        assert visit_id == "visit-1"
        assert events == [{"eventType": "view", "slideId": "slide-a", "metadata": {"type": "option_select"}}]
        await queue.aclose()

    @pytest.mark.asyncio
    async def test_grouped_by_visit(self, transport: RecordingTransport):
        """Test that each request carries events of a single visit."""
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        for visit in ("v1", "v2", "v1", "v3", "v2"):
            queue.enqueue(make_event(visit_id=visit))

        delivered = await queue.flush()

        assert delivered == 5
        assert sorted((visit, len(events)) for visit, events in transport.attempts) == [
            ("v1", 2), ("v2", 2), ("v3", 1),
        ]
        await queue.aclose()

    @pytest.mark.asyncio
    async def test_failing_visit_does_not_block_others(self):
        """Test that one visit failing leaves the other visits delivered."""
        transport = RecordingTransport(failing_visits={"bad"})
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event(visit_id="bad"))
        queue.enqueue(make_event(visit_id="good"))

        delivered = await queue.flush()

        assert delivered == 1
        assert [visit for visit, _ in transport.delivered] == ["good"]
        assert queue.pending == 1
        assert queue.flush_scheduled is True
        queue.shutdown()

    @pytest.mark.asyncio
    async def test_retry_budget_then_drop(self):
        """Test that a failing batch is sent 1 + MAX_RETRIES times, then dropped."""
        transport = RecordingTransport(failing_visits={"visit-1"})
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())

        for _ in range(MAX_RETRIES + 3):
            await queue.flush()

        assert len(transport.attempts) == 1 + MAX_RETRIES
        assert queue.pending == 0
        assert queue.events_dropped == 1
        assert queue.requests_made == 1 + MAX_RETRIES
        queue.shutdown()

    @pytest.mark.asyncio
    async def test_retry_then_succeed(self):
        transport = RecordingTransport(failing_visits={"visit-1"})
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())

        await queue.flush()
        transport.failing_visits.clear()
        delivered = await queue.flush()

        assert delivered == 1
        assert queue.events_sent == 1
        assert queue.events_dropped == 0
        await queue.aclose()

    @pytest.mark.asyncio
    async def test_flush_empty_queue(self, transport: RecordingTransport):
        queue = AnalyticsBatchQueue(transport)

        assert await queue.flush() == 0
        assert transport.attempts == []

    @pytest.mark.asyncio
    async def test_concurrent_flush_is_noop(self):
        """Test that a flush started during another flush does nothing."""
        release = asyncio.Event()

        class SlowTransport(RecordingTransport):
            async def send_batch(self, visit_id, events):
                await release.wait()
                await super().send_batch(visit_id, events)

        transport = SlowTransport()
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())

        first = asyncio.ensure_future(queue.flush())
        await asyncio.sleep(0)
        second = await queue.flush()
        release.set()

        assert second == 0
        assert await first == 1
        assert len(transport.attempts) == 1

    @pytest.mark.asyncio
    async def test_aclose_flushes_and_closes(self, transport: RecordingTransport):
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())
        queue.enqueue(make_event())

        delivered = await queue.aclose()

        assert delivered == 2
        assert queue.closed is True
        assert queue.flush_scheduled is False

    @pytest.mark.asyncio
    async def test_aclose_drops_failures(self):
        """Test that failures during the final flush are not re-queued."""
        transport = RecordingTransport(failing_visits={"visit-1"})
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())

        delivered = await queue.aclose()

        assert delivered == 0
        assert queue.pending == 0
        assert queue.events_dropped == 1
        assert queue.flush_scheduled is False

    @pytest.mark.asyncio
    async def test_aclose_counts_events_left_by_manual_flush(self):
        """Test that events queued behind an in-progress manual flush are counted as dropped."""
        release = asyncio.Event()

        class SlowTransport(RecordingTransport):
            async def send_batch(self, visit_id, events):
                await release.wait()
                await super().send_batch(visit_id, events)

        transport = SlowTransport()
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())
        running = asyncio.ensure_future(queue.flush())
        await asyncio.sleep(0)
        queue.enqueue(make_event(slide_id="slide-b"))

        delivered = await queue.aclose()
        release.set()

        assert delivered == 0
        assert await running == 1
        assert queue.pending == 0
        assert queue.events_dropped == 1
        assert queue.flush_scheduled is False


# =============================================================================
# TEST: HTTP TRANSPORT
# =============================================================================

class TestHttpAnalyticsTransport:
    """Test the httpx transport against a mock collector."""

    @staticmethod
    def _recording_handler(requests: list, status_code: int = 200):
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(status_code, json={"received": 1})
        return handler

    def test_endpoint(self):
        transport = HttpAnalyticsTransport("https://api.example.com/")

        assert transport.endpoint_for("visit 1") == "https://api.example.com/analytics/visit/visit%201/events"

    def test_from_settings(self):
        settings = RuntimeSettings(analytics_base_url="https://collector.test", request_timeout=3, beacon_timeout=1)

        transport = HttpAnalyticsTransport.from_settings(settings)

        assert transport.base_url == "https://collector.test"
        assert transport.timeout == 3
        assert transport.beacon_timeout == 1

    @pytest.mark.asyncio
    async def test_send_batch_posts_events(self):
        requests: list[httpx.Request] = []
        transport = HttpAnalyticsTransport(
            "https://collector.test",
            http_transport=httpx.MockTransport(self._recording_handler(requests)),
        )

        await transport.send_batch("visit-1", [{"eventType": "view", "slideId": "s1"}])

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/analytics/visit/visit-1/events"
        assert json.loads(request.content) == {"events": [{"eventType": "view", "slideId": "s1"}]}

    @pytest.mark.asyncio
    async def test_send_batch_raises_on_error_status(self):
        transport = HttpAnalyticsTransport(
            "https://collector.test",
            http_transport=httpx.MockTransport(self._recording_handler([], status_code=503)),
        )

        with pytest.raises(AnalyticsTransportError) as exc_info:
            await transport.send_batch("visit-1", [{"eventType": "view"}])

        assert exc_info.value.visit_id == "visit-1"

    @pytest.mark.asyncio
    async def test_send_batch_raises_on_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = HttpAnalyticsTransport("https://collector.test", http_transport=httpx.MockTransport(handler))

        with pytest.raises(AnalyticsTransportError):
            await transport.send_batch("visit-1", [{"eventType": "view"}])

    def test_send_beacon(self):
        requests: list[httpx.Request] = []
        transport = HttpAnalyticsTransport(
            "https://collector.test",
            http_transport=httpx.MockTransport(self._recording_handler(requests)),
        )

        assert transport.send_beacon("visit-1", [{"eventType": "time_spent", "duration": 4}]) is True
        assert json.loads(requests[0].content) == {"events": [{"eventType": "time_spent", "duration": 4}]}

    def test_send_beacon_failure_returns_false(self):
        transport = HttpAnalyticsTransport(
            "https://collector.test",
            http_transport=httpx.MockTransport(self._recording_handler([], status_code=500)),
        )

        assert transport.send_beacon("visit-1", [{"eventType": "view"}]) is False

    @pytest.mark.asyncio
    async def test_queue_over_http_retries(self):
        """Test the queue and transport together: one failure, then delivery."""
        statuses = [500, 200]
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(statuses.pop(0))

        transport = HttpAnalyticsTransport("https://collector.test", http_transport=httpx.MockTransport(handler))
        queue = AnalyticsBatchQueue(transport, batch_delay=10)
        queue.enqueue(make_event())

        assert await queue.flush() == 0
        assert await queue.flush() == 1
        assert len(seen) == 2
        await queue.aclose()
