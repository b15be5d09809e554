import inspect
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduledTask(BaseModel):
    handle: str
    callback_name: str
    run_at: datetime | None = None
    args: tuple = ()


class DelayedTaskScheduler(Protocol):
    """Runs a named callback once, at or after a given time."""

    def schedule_once(self, run_at: datetime, callback_name: str, args: tuple = ()) -> str: ...

    def cancel(self, handle: str) -> bool: ...

    def get_scheduled(self, callback_name: str) -> list[ScheduledTask]: ...


class InProcessScheduler:
    """Timer-less scheduler: due tasks run when ``run_due`` is called.

    Suitable for single-process deployments driven by a periodic tick, and for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._lock = threading.Lock()
        self._tasks: dict[str, ScheduledTask] = {}
        self._callbacks: dict[str, Callable[..., Any]] = {}

    def register(self, callback_name: str, callback: Callable[..., Any]) -> None:
        self._callbacks[callback_name] = callback

    def schedule_once(self, run_at: datetime, callback_name: str, args: tuple = ()) -> str:
        handle = str(uuid.uuid4())
        with self._lock:
            self._tasks[handle] = ScheduledTask(handle=handle, callback_name=callback_name, run_at=run_at, args=tuple(args))
        logger.debug(f"Scheduled {callback_name} at {run_at.isoformat()} (handle {handle})")
        return handle

    def cancel(self, handle: str) -> bool:
        with self._lock:
            return self._tasks.pop(handle, None) is not None

    def get_scheduled(self, callback_name: str) -> list[ScheduledTask]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.callback_name == callback_name]
        return sorted(tasks, key=lambda t: t.run_at)

    async def run_due(self, now: datetime | None = None) -> int:
        """Runs every task due at ``now``. Returns how many ran."""
        now = now or self._clock()
        with self._lock:
            due = sorted((t for t in self._tasks.values() if t.run_at <= now), key=lambda t: t.run_at)
            for task in due:
                del self._tasks[task.handle]

        for task in due:
            callback = self._callbacks.get(task.callback_name)
            if callback is None:
                logger.error(f"No callback registered for scheduled task '{task.callback_name}' (handle {task.handle})")
                continue
            try:
                result = callback(*task.args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"Scheduled task '{task.callback_name}' failed: {e}")
        return len(due)


class CeleryScheduler:
    """Schedules named Celery tasks with an ETA."""

    def __init__(self, celery_app, inspect_timeout: float = 1.0):
        self._app = celery_app
        self._inspect_timeout = inspect_timeout

    def schedule_once(self, run_at: datetime, callback_name: str, args: tuple = ()) -> str:
        result = self._app.send_task(callback_name, args=list(args), eta=run_at)
        logger.info(f"Scheduled Celery task {callback_name} at {run_at.isoformat()} (task id {result.id})")
        return result.id

    def cancel(self, handle: str) -> bool:
        self._app.control.revoke(handle)
        logger.info(f"Revoked Celery task {handle}")
        return True

    def get_scheduled(self, callback_name: str) -> list[ScheduledTask]:
        replies = self._app.control.inspect(timeout=self._inspect_timeout).scheduled() or {}
        tasks = []
        for worker_name, entries in replies.items():
            for entry in entries or []:
                request = entry.get("request") or {}
                if request.get("name") != callback_name:
                    continue
                eta = entry.get("eta")
                tasks.append(ScheduledTask(
                    handle=request.get("id"),
                    callback_name=callback_name,
                    run_at=datetime.fromisoformat(eta) if eta else None,
                    args=tuple(request.get("args") or ()),
                ))
        return tasks
