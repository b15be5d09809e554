import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Protocol

from bluelena_connect.config import SYNC_BASE_DELAY, SYNC_MAX_DELAY, SYNC_STAGGER_INTERVAL, SYNC_STALE_AFTER
from bluelena_connect.models import DeliveryOutcome, DrainSchedule, OrderId, QueueStatus, SyncRequest
from bluelena_connect.scheduler import DelayedTaskScheduler, utcnow

logger = logging.getLogger(__name__)

DRAIN_TASK_NAME = "process_sync_queue"

Reschedule = Callable[[DrainSchedule], DrainSchedule]


class QueueState(Protocol):
    """Pending requests plus the schedule of the next drain.

    ``push`` must run ``reschedule`` and store its result in the same critical
    section as the append; ``take_all`` must snapshot, clear and reset the
    schedule atomically.
    """

    async def push(self, request: SyncRequest, now: datetime, reschedule: Reschedule) -> DrainSchedule: ...

    async def take_all(self) -> list[SyncRequest]: ...

    async def get_schedule(self) -> DrainSchedule: ...

    async def pending_count(self) -> int: ...


class MemoryQueueState:
    def __init__(self):
        self._lock = threading.Lock()
        self._pending: list[SyncRequest] = []
        self._schedule = DrainSchedule()

    async def push(self, request: SyncRequest, now: datetime, reschedule: Reschedule) -> DrainSchedule:
        with self._lock:
            schedule = self._schedule.model_copy(update={
                "burst_count": self._schedule.burst_count + 1,
                "burst_started_at": self._schedule.burst_started_at or now,
            })
            schedule = reschedule(schedule)
            self._pending.append(request)
            self._schedule = schedule
            return schedule

    async def take_all(self) -> list[SyncRequest]:
        with self._lock:
            batch, self._pending = self._pending, []
            self._schedule = DrainSchedule()
            return batch

    async def get_schedule(self) -> DrainSchedule:
        with self._lock:
            return self._schedule.model_copy()

    async def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)


class SyncQueue:
    """Buffers order ids and drains them in staggered batches."""

    def __init__(
        self,
        state: QueueState,
        scheduler: DelayedTaskScheduler,
        dispatcher,
        base_delay: float = SYNC_BASE_DELAY,
        stagger_interval: float = SYNC_STAGGER_INTERVAL,
        max_delay: float = SYNC_MAX_DELAY,
        stale_after: float = SYNC_STALE_AFTER,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.state = state
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.base_delay = base_delay
        self.stagger_interval = stagger_interval
        self.max_delay = max_delay
        self.stale_after = stale_after
        self._clock = clock

    def compute_delay(self, scheduled_count: int) -> float:
        return self.base_delay + scheduled_count * self.stagger_interval

    def _plan(self, now: datetime) -> Reschedule:
        def reschedule(schedule: DrainSchedule) -> DrainSchedule:
            delay = self.compute_delay(schedule.burst_count - 1)
            # Total wait per burst is bounded from the burst's first enqueue
            run_at = min(now + timedelta(seconds=delay), schedule.burst_started_at + timedelta(seconds=self.max_delay))

            superseded = None
            if schedule.handle is not None and schedule.next_drain_at is not None:
                if schedule.next_drain_at + timedelta(seconds=self.stale_after) < now:
                    logger.warning(f"Scheduled drain {schedule.handle} at {schedule.next_drain_at.isoformat()} never ran, rescheduling.")
                elif run_at <= schedule.next_drain_at:
                    return schedule
                superseded = schedule.handle

            # The old drain stays in place until its replacement is scheduled
            run_at = max(run_at, now)
            handle = self.scheduler.schedule_once(run_at, DRAIN_TASK_NAME)
            if superseded is not None:
                try:
                    self.scheduler.cancel(superseded)
                except Exception as e:
                    # An extra drain finds an empty queue and does nothing
                    logger.warning(f"Could not cancel superseded drain {superseded}: {e}")
            return schedule.model_copy(update={"next_drain_at": run_at, "handle": handle})
        return reschedule

    async def enqueue(self, order_id: OrderId, query_params: Mapping[str, str] | None = None) -> datetime:
        """Queues one order for sync and returns when the next drain will run."""
        request = SyncRequest(order_id=order_id, query_params=dict(query_params or {}))
        now = self._clock()
        schedule = await self.state.push(request, now, self._plan(now))
        logger.info(f"Order {order_id} queued for sync, drain at {schedule.next_drain_at.isoformat()} (burst size {schedule.burst_count})")
        return schedule.next_drain_at

    async def enqueue_many(self, order_ids: Iterable[OrderId], query_params: Mapping[str, str] | None = None) -> int:
        """Queues several orders; one failing id does not stop the rest. Returns how many were queued."""
        count = 0
        for order_id in order_ids:
            try:
                await self.enqueue(order_id, query_params)
            except Exception as e:
                logger.exception(f"Failed to queue order {order_id} for sync: {e}")
                continue
            count += 1
        return count

    async def drain(self) -> list[DeliveryOutcome]:
        """Takes every queued request and attempts delivery once for each."""
        batch = await self.state.take_all()
        if not batch:
            logger.info("Sync queue is empty, nothing to drain.")
            return []

        logger.info(f"Draining {len(batch)} queued order(s)...")
        outcomes: list[DeliveryOutcome] = []
        for request in batch:
            try:
                outcome = await self.dispatcher.deliver(request.order_id, request.query_params)
            except Exception as e:
                logger.exception(f"Unexpected error delivering order {request.order_id}: {e}")
                outcome = DeliveryOutcome(order_id=request.order_id, success=False, error_message=f"Unexpected Error: {e}")
            if outcome is not None:
                outcomes.append(outcome)

        delivered = sum(1 for o in outcomes if o.success)
        logger.info(f"Finished draining sync queue: {len(batch)} queued, {delivered} delivered, {len(outcomes) - delivered} failed.")
        return outcomes

    async def status(self) -> QueueStatus:
        schedule = await self.state.get_schedule()
        return QueueStatus(
            pending=await self.state.pending_count(),
            next_drain_at=schedule.next_drain_at,
            scheduled_drains=len(self.scheduler.get_scheduled(DRAIN_TASK_NAME)),
        )
