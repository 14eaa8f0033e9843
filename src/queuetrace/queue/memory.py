"""In-memory queue and worker.

This module provides a minimal host queue system: jobs are pushed onto named
in-process queues and run by asyncio workers. It announces every lifecycle
transition through an ``EventDispatcher`` and runs payload hooks while
building payloads, which is all the queue integration needs.

Suitable for development, testing and single-process deployments. It makes
no delivery guarantees and never retries a failed job.
"""

import asyncio
import inspect
import logging
import threading
from collections import defaultdict, deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from queuetrace.exceptions import InvalidJobError, JobResolutionError
from queuetrace.queue.dispatcher import EventDispatcher
from queuetrace.queue.events import (
    JobExceptionOccurred,
    JobProcessed,
    JobProcessing,
    JobQueued,
    JobQueueing,
    WorkerStopping,
)
from queuetrace.queue.interface import PayloadHook
from queuetrace.queue.jobs import queued_job_name

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION = "memory"
DEFAULT_QUEUE = "default"

JobHandler = Callable[[dict[str, Any]], Any]


def display_name(job: Any) -> str:
    """
    Human readable job name stored as ``displayName`` in the payload.

    Jobs may override it with a ``display_name`` attribute.
    """
    custom = getattr(job, "display_name", None)
    if isinstance(custom, str) and custom:
        return custom
    if isinstance(job, str):
        return job
    if inspect.isfunction(job) or inspect.ismethod(job):
        return f"Closure ({job.__module__}.{job.__qualname__})"
    cls = job if isinstance(job, type) else type(job)
    return cls.__qualname__


@dataclass
class QueuedJob:
    """
    A job sitting on, or taken from, an in-memory queue.

    Implements the ``Job`` protocol, including name resolution.

    Attributes:
        job_id: Identifier assigned when the job was pushed
        queue: Queue the job was pushed to
        connection_name: Connection the job was pushed through
        raw_payload: The payload built for the job
        command: The job as handed to ``push``
    """

    job_id: str
    queue: str
    connection_name: str
    raw_payload: dict[str, Any]
    command: Any
    _attempts: int = field(default=0, repr=False)

    def get_name(self) -> str:
        return str(self.raw_payload.get("job", ""))

    def get_queue(self) -> str:
        return self.queue

    def attempts(self) -> int:
        return self._attempts

    def payload(self) -> dict[str, Any]:
        return self.raw_payload

    def resolve_name(self) -> str:
        name = self.raw_payload.get("displayName")
        if not name:
            raise JobResolutionError(self.get_name(), "payload has no displayName")
        return str(name)

    def mark_attempted(self) -> None:
        self._attempts += 1


class InMemoryQueue:
    """
    In-memory queue connection with any number of named queues.

    Example:
        >>> queue = InMemoryQueue(dispatcher)
        >>> job_id = queue.push(SendReceipt(order_id=42), queue="emails")
        >>> queue.size("emails")
        1

    Thread Safety:
        - push, pop and size are thread-safe
        - Payload hooks run in the pushing thread
    """

    def __init__(
        self,
        dispatcher: EventDispatcher | None = None,
        *,
        connection_name: str = DEFAULT_CONNECTION,
        default_queue: str = DEFAULT_QUEUE,
    ) -> None:
        self._dispatcher = dispatcher or EventDispatcher()
        self._connection_name = connection_name
        self._default_queue = default_queue
        self._queues: dict[str, deque[QueuedJob]] = defaultdict(deque)
        self._payload_hooks: list[PayloadHook] = []
        self._lock = threading.RLock()

    @property
    def connection_name(self) -> str:
        return self._connection_name

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def create_payload_using(self, callback: PayloadHook | None) -> None:
        """
        Register a hook run for every payload built from now on.

        Args:
            callback: The hook. None removes every registered hook.
        """
        with self._lock:
            if callback is None:
                self._payload_hooks.clear()
            else:
                self._payload_hooks.append(callback)

    def _create_payload(self, job: Any, queue: str, data: dict[str, Any] | None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "uuid": str(uuid4()),
            "displayName": display_name(job),
            "job": queued_job_name(job),
            "data": dict(data or {}),
        }

        with self._lock:
            hooks = list(self._payload_hooks)

        for hook in hooks:
            extended = hook(self._connection_name, queue, payload)
            if extended is not None:
                payload = extended
        return payload

    def push(
        self,
        job: Any,
        data: dict[str, Any] | None = None,
        queue: str | None = None,
    ) -> str:
        """
        Push a job onto a queue.

        Args:
            job: A registered job name, a callable, or an object with a
                ``handle()`` method
            data: Arguments for jobs pushed by name
            queue: Target queue (default queue when None)

        Returns:
            The job id
        """
        queue_name = queue or self._default_queue
        payload = self._create_payload(job, queue_name, data)
        job_id = str(payload["uuid"])

        self._dispatcher.dispatch(
            JobQueueing(
                connection_name=self._connection_name,
                job=job,
                queue=queue_name,
                payload=payload,
            )
        )

        with self._lock:
            self._queues[queue_name].append(
                QueuedJob(
                    job_id=job_id,
                    queue=queue_name,
                    connection_name=self._connection_name,
                    raw_payload=payload,
                    command=job,
                )
            )

        self._dispatcher.dispatch(
            JobQueued(
                connection_name=self._connection_name,
                job_id=job_id,
                job=job,
                queue=queue_name,
                payload=payload,
            )
        )

        logger.debug(
            f"Pushed job {payload['displayName']} onto {queue_name}",
            extra={"job_id": job_id, "queue": queue_name},
        )
        return job_id

    def pop(self, queue: str | None = None) -> QueuedJob | None:
        """Take the oldest job from a queue, or None if it is empty."""
        queue_name = queue or self._default_queue
        with self._lock:
            jobs = self._queues.get(queue_name)
            if not jobs:
                return None
            return jobs.popleft()

    def size(self, queue: str | None = None) -> int:
        with self._lock:
            return len(self._queues.get(queue or self._default_queue, ()))


class Worker:
    """
    Asyncio worker running jobs from an ``InMemoryQueue``.

    Jobs are run one at a time. Several workers may run concurrently in one
    event loop, each in its own task.

    Args:
        queue: The queue to take jobs from
        handlers: Handlers for jobs pushed by name, keyed by that name. A
            handler receives the job's ``data`` and may be sync or async.
        poll_interval: Seconds to sleep when the queue is empty

    Example:
        >>> worker = Worker(queue, handlers={"send-receipt": send_receipt})
        >>> await worker.run("emails", stop_when_empty=True)
    """

    def __init__(
        self,
        queue: InMemoryQueue,
        *,
        handlers: Mapping[str, JobHandler] | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        self._queue = queue
        self._dispatcher = queue.dispatcher
        self._handlers = dict(handlers or {})
        self._poll_interval = poll_interval
        self._running = False
        self._failed: list[tuple[QueuedJob, BaseException]] = []
        self._stats = {
            "jobs_processed": 0,
            "jobs_failed": 0,
        }

    @property
    def failed_jobs(self) -> list[tuple[QueuedJob, BaseException]]:
        """Jobs that raised, with their exception, in the order they failed."""
        return list(self._failed)

    @property
    def running(self) -> bool:
        return self._running

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def _run_command(self, job: QueuedJob) -> None:
        command = job.command
        data = job.raw_payload.get("data", {})

        if isinstance(command, str):
            handler = self._handlers.get(command)
            if handler is None:
                raise InvalidJobError(job.job_id, f"no handler registered for {command!r}")
            result = handler(data)
        elif callable(getattr(command, "handle", None)):
            result = command.handle()
        elif callable(command):
            result = command()
        else:
            raise InvalidJobError(job.job_id, f"{type(command).__name__} is not runnable")

        if inspect.isawaitable(result):
            await result

    async def process(self, job: QueuedJob) -> None:
        """
        Run a single job, announcing its lifecycle.

        Raises:
            BaseException: Whatever the job raised, after
                ``JobExceptionOccurred`` was dispatched. Cancellation of the
                worker while the job runs is announced the same way.
        """
        connection_name = job.connection_name
        job.mark_attempted()

        self._dispatcher.dispatch(JobProcessing(connection_name=connection_name, job=job))

        try:
            await self._run_command(job)
        except BaseException as e:
            self._stats["jobs_failed"] += 1
            self._dispatcher.dispatch(
                JobExceptionOccurred(connection_name=connection_name, job=job, exception=e)
            )
            raise

        self._stats["jobs_processed"] += 1
        self._dispatcher.dispatch(JobProcessed(connection_name=connection_name, job=job))

    async def run_next(self, queue: str | None = None) -> bool:
        """
        Run the next job of a queue, recording it as failed if it raises.

        Returns:
            True if a job was taken from the queue
        """
        job = self._queue.pop(queue)
        if job is None:
            return False

        try:
            await self.process(job)
        except Exception as e:
            self._failed.append((job, e))
            logger.error(
                f"Job {job.job_id} failed: {e}",
                exc_info=True,
                extra={"job_id": job.job_id, "queue": job.queue, "error": str(e)},
            )
        return True

    async def run(
        self,
        queue: str | None = None,
        *,
        max_jobs: int | None = None,
        stop_when_empty: bool = False,
    ) -> int:
        """
        Run jobs until stopped.

        Args:
            queue: Queue to work (default queue when None)
            max_jobs: Stop after this many jobs
            stop_when_empty: Stop as soon as the queue is empty

        Returns:
            Number of jobs taken from the queue
        """
        taken = 0
        self._running = True
        try:
            while self._running:
                if max_jobs is not None and taken >= max_jobs:
                    break
                if await self.run_next(queue):
                    taken += 1
                    continue
                if stop_when_empty:
                    break
                await asyncio.sleep(self._poll_interval)
        finally:
            self._running = False
            self._dispatcher.dispatch(WorkerStopping(status=0))

        logger.info(
            f"Worker stopped after {taken} job(s)",
            extra={"jobs": taken, "queue": queue},
        )
        return taken

    def stop(self) -> None:
        """Ask ``run()`` to return after the current job."""
        self._running = False


__all__ = [
    "DEFAULT_CONNECTION",
    "DEFAULT_QUEUE",
    "InMemoryQueue",
    "JobHandler",
    "QueuedJob",
    "Worker",
    "display_name",
]
