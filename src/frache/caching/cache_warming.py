"""
Cache warming scheduler for Frache.

Warmup tasks are registered by id and queued on demand. A background worker
drains the queue once per interval, running the single highest-priority
ready task; at most one task body executes at any time. Every lifecycle
transition is published on the cache event bus.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..exceptions import TaskNotFoundError, TaskTimeoutError
from ..logging_config import CorrelationContext, get_logger
from ..metrics_collector import get_metrics_collector
from .events import CacheEvent, CacheEventType, EventBus, WarmupStatus

DEFAULT_WARMUP_INTERVAL = 60.0


@dataclass
class WarmupTask:
    """Warmup task definition and its run statistics."""
    id: str
    name: str
    execute: Callable[[], Union[Awaitable[Any], Any]]
    description: Optional[str] = None
    priority: int = 0
    timeout: Optional[float] = None  # seconds
    retry: bool = False
    retry_attempts: int = 0
    retry_delay: float = 1.0  # seconds
    run_count: int = 0
    success_count: int = 0
    error_count: int = 0
    avg_duration: float = 0.0
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None


@dataclass
class QueuedWarmup:
    """Pending queue entry."""
    task: WarmupTask
    priority: int
    attempt: int = 0
    not_before: float = 0.0  # time.monotonic()

    def sort_key(self):
        return (-self.priority, self.task.id)


class WarmupScheduler:
    """Priority queue of warmup tasks drained one task per interval."""

    def __init__(self, events: EventBus, interval: float = DEFAULT_WARMUP_INTERVAL):
        self.events = events
        self.interval = interval
        self.logger = get_logger(__name__, 'warmup_scheduler')
        self.metrics = get_metrics_collector()

        self.tasks: Dict[str, WarmupTask] = {}
        self.pending: List[QueuedWarmup] = []
        self.running = False
        self.worker_task: Optional[asyncio.Task] = None
        self._drain_lock = asyncio.Lock()

        self.stats = {
            'tasks_registered': 0,
            'tasks_queued': 0,
            'tasks_executed': 0,
            'tasks_succeeded': 0,
            'tasks_failed': 0,
            'retries_scheduled': 0,
            'total_warming_time': 0.0
        }

    def register(self, task: WarmupTask) -> None:
        """Register a task, replacing any task with the same id."""
        self.tasks[task.id] = task
        self.stats['tasks_registered'] += 1
        self.logger.info(f"Registered warmup task: {task.id}", operation="register")
        self._emit(task, WarmupStatus.REGISTERED, priority=task.priority)

    def unregister(self, task_id: str) -> bool:
        """Remove a task from the registry and the pending queue."""
        task = self.tasks.pop(task_id, None)
        queued_before = len(self.pending)
        self.pending = [entry for entry in self.pending if entry.task.id != task_id]
        self.metrics.record_warmup_queue(len(self.pending))

        if task is None and len(self.pending) == queued_before:
            return False

        self.logger.info(f"Unregistered warmup task: {task_id}", operation="unregister")
        self.events.emit(CacheEvent(
            type=CacheEventType.WARMUP,
            status=WarmupStatus.UNREGISTERED,
            data={'task_id': task_id}
        ))
        return True

    def get_task(self, task_id: str) -> Optional[WarmupTask]:
        return self.tasks.get(task_id)

    def list_tasks(self) -> List[WarmupTask]:
        """Registered tasks, highest priority first."""
        return sorted(self.tasks.values(), key=lambda t: (-t.priority, t.id))

    def is_queued(self, task_id: str) -> bool:
        return any(entry.task.id == task_id for entry in self.pending)

    @property
    def queue_size(self) -> int:
        return len(self.pending)

    def queue(self, task_id: str, priority: Optional[int] = None) -> bool:
        """
        Add a registered task to the pending queue.

        Args:
            task_id: Registered task id
            priority: Overrides the task's own priority for this entry

        Returns:
            False when the task is already queued

        Raises:
            TaskNotFoundError: task_id is not registered
        """
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if self.is_queued(task_id):
            return False

        entry = QueuedWarmup(task=task, priority=task.priority if priority is None else priority)
        self.pending.append(entry)
        self.metrics.record_warmup_queue(len(self.pending))
        self.stats['tasks_queued'] += 1
        self.logger.debug(f"Queued warmup task: {task_id}", operation="queue", priority=entry.priority)
        self._emit(task, WarmupStatus.QUEUED, priority=entry.priority)
        return True

    async def run(self, task_id: str) -> None:
        """
        Execute a task now, bypassing the queue.

        Failures, including TaskTimeoutError, are re-raised to the caller and
        are never retried.
        """
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        await self._execute(task)

    async def process_queue(self) -> bool:
        """
        Run the highest-priority ready task.

        Returns immediately with False when another drain is in flight or no
        entry is ready. Task failures are reported, not raised.
        """
        if self._drain_lock.locked():
            return False

        async with self._drain_lock:
            entry = self._pop_next()
            if entry is None:
                return False

            try:
                await self._execute(entry.task, attempt=entry.attempt)
            except Exception as e:
                self._schedule_retry(entry, e)
            return True

    def _pop_next(self) -> Optional[QueuedWarmup]:
        now = time.monotonic()
        ready = [entry for entry in self.pending if entry.not_before <= now]
        if not ready:
            return None
        entry = min(ready, key=QueuedWarmup.sort_key)
        self.pending.remove(entry)
        self.metrics.record_warmup_queue(len(self.pending))
        return entry

    def _schedule_retry(self, entry: QueuedWarmup, error: Exception) -> bool:
        task = entry.task
        if not task.retry or entry.attempt >= task.retry_attempts:
            return False
        if task.id not in self.tasks or self.is_queued(task.id):
            return False

        retry_entry = QueuedWarmup(
            task=task,
            priority=entry.priority,
            attempt=entry.attempt + 1,
            not_before=time.monotonic() + task.retry_delay
        )
        self.pending.append(retry_entry)
        self.metrics.record_warmup_queue(len(self.pending))
        self.stats['retries_scheduled'] += 1
        self.logger.info(
            f"Retrying warmup task {task.id} in {task.retry_delay:.2f}s "
            f"(attempt {retry_entry.attempt}/{task.retry_attempts})",
            operation="schedule_retry"
        )
        self._emit(
            task, WarmupStatus.RETRY_SCHEDULED,
            attempt=retry_entry.attempt, delay=task.retry_delay, error=error
        )
        return True

    async def _execute(self, task: WarmupTask, attempt: int = 0) -> None:
        self._emit(task, WarmupStatus.STARTED, attempt=attempt)
        start_time = time.perf_counter()

        with CorrelationContext(f"warmup:{task.id}"):
            try:
                await self._invoke(task)
            except Exception as e:
                duration = time.perf_counter() - start_time
                self._update_task_stats(task, duration, e)
                self.logger.error(
                    f"Warmup task {task.id} failed after {duration:.3f}s: {e}",
                    operation="execute",
                    task_id=task.id
                )
                self.metrics.record_warmup(task.id, 'failed', duration)
                self._emit(task, WarmupStatus.FAILED, duration=duration, attempt=attempt, error=e)
                raise

            duration = time.perf_counter() - start_time
            self._update_task_stats(task, duration)
            self.logger.info(
                f"Warmup task {task.id} completed in {duration:.3f}s",
                operation="execute",
                task_id=task.id
            )
            self.metrics.record_warmup(task.id, 'completed', duration)
            self._emit(task, WarmupStatus.COMPLETED, duration=duration, attempt=attempt)

    async def _invoke(self, task: WarmupTask) -> None:
        result = task.execute()
        if not inspect.isawaitable(result):
            return
        if task.timeout is None:
            await result
            return
        try:
            await asyncio.wait_for(result, timeout=task.timeout)
        except asyncio.TimeoutError:
            raise TaskTimeoutError(task.id, task.timeout)

    def _update_task_stats(self, task: WarmupTask, duration: float, error: Optional[Exception] = None):
        task.run_count += 1
        task.last_run = datetime.now(timezone.utc)
        task.avg_duration = (task.avg_duration * (task.run_count - 1) + duration) / task.run_count

        self.stats['tasks_executed'] += 1
        self.stats['total_warming_time'] += duration
        if error is None:
            task.success_count += 1
            self.stats['tasks_succeeded'] += 1
        else:
            task.error_count += 1
            task.last_error = str(error)
            self.stats['tasks_failed'] += 1

    def _emit(self, task: WarmupTask, status: WarmupStatus, error: Optional[Exception] = None, **data):
        self.events.emit(CacheEvent(
            type=CacheEventType.WARMUP,
            status=status,
            data={'task_id': task.id, 'task_name': task.name, **data},
            error=error
        ))

    async def start(self) -> None:
        """Start the periodic drain worker."""
        if self.running:
            self.logger.warning("Warmup scheduler is already running", operation="start")
            return

        self.running = True
        self.worker_task = asyncio.create_task(self._scheduler_worker())
        self.logger.info("Warmup scheduler started", operation="start", interval=self.interval)

    async def stop(self) -> None:
        """Stop the worker, cancelling a task body that is in flight."""
        if not self.running:
            return

        self.running = False

        if self.worker_task:
            self.worker_task.cancel()
            try:
                await self.worker_task
            except asyncio.CancelledError:
                pass
            self.worker_task = None

        self.logger.info("Warmup scheduler stopped", operation="stop")

    async def _scheduler_worker(self) -> None:
        while self.running:
            try:
                await asyncio.sleep(self.interval)
                await self.process_queue()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in warmup scheduler: {e}", operation="scheduler_worker")

    def get_stats(self) -> Dict[str, Any]:
        """Get warmup statistics."""
        task_stats = {}
        for task_id, task in self.tasks.items():
            task_stats[task_id] = {
                'name': task.name,
                'priority': task.priority,
                'run_count': task.run_count,
                'success_count': task.success_count,
                'error_count': task.error_count,
                'success_rate': task.success_count / task.run_count if task.run_count > 0 else 0,
                'avg_duration': task.avg_duration,
                'last_run': task.last_run.isoformat() if task.last_run else None,
                'last_error': task.last_error,
                'queued': self.is_queued(task_id)
            }

        return {
            'overall': dict(self.stats),
            'tasks': task_stats,
            'queue_size': self.queue_size,
            'scheduler_running': self.running
        }
