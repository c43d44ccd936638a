"""
Interaction analytics: batching queue and HTTP transport.

Events are buffered per session and flushed in size-bounded batches a
short while after the last enqueue, so a burst of activity turns into
one request instead of dozens. Batches are grouped by visit; each visit
is sent independently so one failing visit does not hold the others.

Failed batches go back into the queue with their retry counter bumped
and are dropped once they run out of retries. Analytics never blocks or
breaks the viewing session: every failure ends in a log line.

Example Usage:
    >>> transport = HttpAnalyticsTransport("https://api.example.com")
    >>> queue = AnalyticsBatchQueue(transport)
    >>> queue.enqueue(AnalyticsEvent(visit_id="v1", event_type="view", slide_id="s1"))
    >>> # ... two seconds of silence later, one POST goes out
    >>> queue.shutdown()  # best-effort send of whatever is left
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ..config import RuntimeSettings
from ..models.analytics import AnalyticsEvent

__all__ = [
    "AnalyticsTransportError",
    "AnalyticsTransport",
    "HttpAnalyticsTransport",
    "AnalyticsBatchQueue",
    "MAX_BATCH_SIZE",
    "MAX_RETRIES",
    "BATCH_DELAY",
]

logger = logging.getLogger(__name__)

BATCH_DELAY = 2.0     # Seconds of silence before a flush
MAX_BATCH_SIZE = 10   # Events per request
MAX_RETRIES = 3       # Re-sends before an event is dropped


class AnalyticsTransportError(Exception):
    """A batch could not be delivered."""

    def __init__(self, visit_id: str, message: str) -> None:
        super().__init__(f"visit {visit_id}: {message}")
        self.visit_id = visit_id


class AnalyticsTransport:
    """
    Delivery interface used by the queue.

    ``send_batch`` must raise on failure. ``send_beacon`` is the
    shutdown path: synchronous, quick, and it never raises.
    """

    async def send_batch(self, visit_id: str, events: list[dict[str, Any]]) -> None:
        raise NotImplementedError

    def send_beacon(self, visit_id: str, events: list[dict[str, Any]]) -> bool:
        raise NotImplementedError


class HttpAnalyticsTransport(AnalyticsTransport):
    """
    POSTs batches to the collector's per-visit events endpoint.

    Attributes:
        base_url: Collector base URL.
        timeout: Seconds per batch request.
        beacon_timeout: Seconds for the shutdown send.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        beacon_timeout: float = 2.0,
        http_transport: Optional[Any] = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            base_url: Collector base URL (e.g., https://api.example.com).
            timeout: Seconds per batch request.
            beacon_timeout: Seconds for the shutdown send.
            http_transport: Optional httpx transport, mainly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.beacon_timeout = beacon_timeout
        self._http_transport = http_transport

    @classmethod
    def from_settings(cls, settings: RuntimeSettings) -> "HttpAnalyticsTransport":
        return cls(
            settings.analytics_base_url,
            timeout=settings.request_timeout,
            beacon_timeout=settings.beacon_timeout,
        )

    def endpoint_for(self, visit_id: str) -> str:
        return f"{self.base_url}/analytics/visit/{quote(visit_id, safe='')}/events"

    async def send_batch(self, visit_id: str, events: list[dict[str, Any]]) -> None:
        """
        Send one batch.

        Raises:
            AnalyticsTransportError: On any HTTP or network error.
        """
        url = self.endpoint_for(visit_id)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport) as client:
                response = await client.post(
                    url,
                    json={"events": events},
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise AnalyticsTransportError(visit_id, str(e) or type(e).__name__) from e

        logger.debug(f"Delivered {len(events)} events for visit {visit_id}")

    def send_beacon(self, visit_id: str, events: list[dict[str, Any]]) -> bool:
        """Fire one synchronous request; report success instead of raising."""
        try:
            with httpx.Client(timeout=self.beacon_timeout, transport=self._http_transport) as client:
                response = client.post(self.endpoint_for(visit_id), json={"events": events})
                return response.is_success
        except httpx.HTTPError as e:
            logger.warning(f"Beacon for visit {visit_id} failed: {e}")
            return False


class AnalyticsBatchQueue:
    """
    Debounced, size-bounded, retrying event queue for one session.

    Every ``enqueue`` cancels the pending flush timer and starts a new
    one, so a burst is sent shortly after it ends. ``flush`` groups
    events by visit and sends visits concurrently. ``shutdown`` is the
    separate teardown path that hands leftovers to the transport's
    beacon once, without retries.

    Attributes:
        transport: Where batches go.
        batch_delay: Coalescing delay in seconds.
        max_batch_size: Events per request.
        max_retries: Re-sends before an event is dropped.
        requests_made: Batch requests attempted.
        events_sent: Events acknowledged by the collector.
        events_dropped: Events given up on.
    """

    def __init__(
        self,
        transport: AnalyticsTransport,
        batch_delay: float = BATCH_DELAY,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.transport = transport
        self.batch_delay = batch_delay
        self.max_batch_size = max_batch_size
        self.max_retries = max_retries

        self._queue: list[AnalyticsEvent] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._processing = False
        self._closed = False

        self.requests_made = 0
        self.events_sent = 0
        self.events_dropped = 0

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        transport: Optional[AnalyticsTransport] = None,
    ) -> "AnalyticsBatchQueue":
        return cls(
            transport or HttpAnalyticsTransport.from_settings(settings),
            batch_delay=settings.batch_delay,
            max_batch_size=settings.max_batch_size,
            max_retries=settings.max_retries,
        )

    # =========================================================================
    # ENQUEUE / TIMER
    # =========================================================================

    @property
    def pending(self) -> int:
        """Events waiting to be sent."""
        return len(self._queue)

    @property
    def flush_scheduled(self) -> bool:
        return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, event: AnalyticsEvent) -> None:
        """Buffer an event and (re)schedule the flush."""
        if self._closed:
            logger.debug(f"Queue closed, ignoring {event.event_type.value} event")
            return
        self._queue.append(event)
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (plain sync caller): events wait for flush()/shutdown()
            logger.debug("No running event loop, flush not scheduled")
            return
        self._timer = loop.call_later(self.batch_delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_task = asyncio.ensure_future(self.flush())

    # =========================================================================
    # FLUSH
    # =========================================================================

    def _batches_by_visit(self, events: list[AnalyticsEvent]) -> dict[str, list[list[AnalyticsEvent]]]:
        grouped: dict[str, list[AnalyticsEvent]] = {}
        for event in events:
            grouped.setdefault(event.visit_id, []).append(event)
        return {
            visit_id: [
                visit_events[i:i + self.max_batch_size]
                for i in range(0, len(visit_events), self.max_batch_size)
            ]
            for visit_id, visit_events in grouped.items()
        }

    async def flush(self) -> int:
        """
        Send everything currently queued.

        A flush already in progress makes this a no-op. Events that
        fail are re-queued (or dropped past the retry budget) and a new
        flush is scheduled if anything is left.

        Returns:
            Number of events acknowledged by the collector.
        """
        if self._processing or not self._queue:
            return 0

        self._processing = True
        events, self._queue = self._queue, []
        batches = self._batches_by_visit(events)
        logger.debug(f"Flushing {len(events)} events for {len(batches)} visits")

        try:
            results = await asyncio.gather(
                *(self._send_visit(visit_id, visit_batches) for visit_id, visit_batches in batches.items()),
                return_exceptions=True,
            )
        finally:
            self._processing = False

        delivered = 0
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Unexpected error while flushing analytics: {result}")
            else:
                delivered += result

        if self._queue and not self._closed:
            self._schedule_flush()

        return delivered

    async def _send_visit(self, visit_id: str, batches: list[list[AnalyticsEvent]]) -> int:
        delivered = 0
        for batch in batches:
            self.requests_made += 1
            try:
                await self.transport.send_batch(visit_id, [event.to_wire() for event in batch])
            except Exception as e:
                logger.warning(f"Analytics batch of {len(batch)} failed for visit {visit_id}: {e}")
                self._requeue(batch)
                continue
            delivered += len(batch)
            self.events_sent += len(batch)
        return delivered

    def _requeue(self, batch: list[AnalyticsEvent]) -> None:
        if self._closed:
            self.events_dropped += len(batch)
            logger.warning(f"Queue closed, dropping {len(batch)} failed analytics events")
            return
        for event in batch:
            if event.retry_count < self.max_retries:
                self._queue.append(event.with_retry())
            else:
                self.events_dropped += 1
                logger.warning(
                    f"Dropping {event.event_type.value} event for visit {event.visit_id} "
                    f"after {event.retry_count} retries"
                )

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def shutdown(self) -> int:
        """
        Best-effort final send for a session that is going away.

        Cancels the pending timer, closes the queue and hands every
        queued batch to the transport's beacon once. Nothing is retried
        and nothing raises.

        Returns:
            Number of events the beacon reported as delivered.
        """
        self._cancel_timer()
        self._closed = True
        events, self._queue = self._queue, []
        if not events:
            return 0

        delivered = 0
        for visit_id, batches in self._batches_by_visit(events).items():
            for batch in batches:
                try:
                    ok = self.transport.send_beacon(visit_id, [event.to_wire() for event in batch])
                except Exception as e:
                    logger.warning(f"Beacon raised for visit {visit_id}: {e}")
                    ok = False
                if ok:
                    delivered += len(batch)
                    self.events_sent += len(batch)
                else:
                    self.events_dropped += len(batch)

        logger.info(f"Shutdown flush delivered {delivered}/{len(events)} analytics events")
        return delivered

    async def aclose(self) -> int:
        """
        Async teardown: wait for a running flush, then flush once more.

        Failures during this final flush are dropped, not re-queued.
        """
        self._cancel_timer()
        if self._flush_task is not None and not self._flush_task.done():
            await self._flush_task
            self._cancel_timer()
        self._closed = True
        delivered = await self.flush()
        if self._queue:
            # Left behind by a flush still in progress
            self.events_dropped += len(self._queue)
            logger.warning(f"Dropping {len(self._queue)} analytics events queued after close")
            self._queue.clear()
        return delivered
