"""Delayed tasks that inject a reminder into a session's history."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from moodmix.utils.ids import generate_id
from moodmix.utils.logging import get_logger

logger = get_logger(__name__)

TaskRunner = Callable[[str, str], Awaitable[None]]


@dataclass
class ScheduledTask:
    """A task waiting to run against a session."""

    session_id: str
    description: str
    run_at: datetime
    task_id: str = field(default_factory=generate_id)


class TaskScheduler:
    """Runs each scheduled task once, after its delay, on the event loop.

    The runner receives ``(session_id, description)``. Failures are logged and
    do not affect other tasks.
    """

    def __init__(self, runner: TaskRunner):
        self.runner = runner
        self.tasks: dict[str, ScheduledTask] = {}
        self._handles: dict[str, asyncio.Task] = {}

    def schedule(self, session_id: str, description: str, delay_seconds: float) -> ScheduledTask:
        """Schedule a task. Must be called from a running event loop."""
        task = ScheduledTask(
            session_id=session_id,
            description=description,
            run_at=datetime.now(UTC) + timedelta(seconds=delay_seconds),
        )
        self.tasks[task.task_id] = task
        self._handles[task.task_id] = asyncio.create_task(self._run_later(task, delay_seconds))
        logger.info(f"Scheduled task {task.task_id} for session {session_id} in {delay_seconds}s: {description}")
        return task

    def cancel(self, task_id: str) -> bool:
        """Cancel a task that has not run yet. Returns True if it was pending."""
        handle = self._handles.pop(task_id, None)
        self.tasks.pop(task_id, None)
        if handle is None or handle.done():
            return False
        handle.cancel()
        logger.info(f"Cancelled scheduled task {task_id}")
        return True

    def cancel_session(self, session_id: str) -> int:
        """Cancel every pending task for a session."""
        task_ids = [task_id for task_id, task in self.tasks.items() if task.session_id == session_id]
        return sum(1 for task_id in task_ids if self.cancel(task_id))

    def pending_tasks(self, session_id: str | None = None) -> list[ScheduledTask]:
        """Tasks that have not run yet, optionally for one session."""
        return [task for task in self.tasks.values() if session_id is None or task.session_id == session_id]

    async def shutdown(self) -> None:
        """Cancel all pending tasks and wait for them to finish."""
        handles = list(self._handles.values())
        for handle in handles:
            handle.cancel()
        await asyncio.gather(*handles, return_exceptions=True)
        self._handles.clear()
        self.tasks.clear()

    async def _run_later(self, task: ScheduledTask, delay_seconds: float) -> None:
        try:
            await asyncio.sleep(delay_seconds)
            logger.info(f"Running scheduled task {task.task_id} for session {task.session_id}")
            await self.runner(task.session_id, task.description)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Scheduled task {task.task_id} failed: {e}", exc_info=True)
        finally:
            self.tasks.pop(task.task_id, None)
            self._handles.pop(task.task_id, None)
