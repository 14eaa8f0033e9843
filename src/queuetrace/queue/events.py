"""
Queue lifecycle notifications.

The host queue system dispatches these events through an ``EventDispatcher``.
Each event is an immutable record; the queue integration reads the fields it
needs and never keeps a reference to the event.

Enqueue side:
- JobQueueing: A job is about to be pushed (payload already built)
- JobQueued: A job has been pushed

Worker side:
- JobProcessing: A worker is about to run a job
- JobProcessed: The job finished successfully
- JobExceptionOccurred: The job raised
- WorkerStopping: The worker is shutting down
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from queuetrace.queue.jobs import Job


@dataclass(frozen=True)
class JobQueueing:
    """
    A job is about to be pushed onto a queue.

    Attributes:
        connection_name: Queue connection used for the push
        job: The job as handed to the queue (string, callable or object)
        queue: Target queue name
        payload: The payload built for the job
    """

    connection_name: str
    job: Any
    queue: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JobQueued:
    """
    A job has been pushed onto a queue.

    Attributes:
        connection_name: Queue connection used for the push
        job_id: Identifier the queue assigned to the job
        job: The job as handed to the queue
        queue: Target queue name
        payload: The payload stored on the queue
    """

    connection_name: str
    job_id: str
    job: Any
    queue: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JobProcessing:
    """A worker is about to run ``job`` received on ``connection_name``."""

    connection_name: str
    job: Job


@dataclass(frozen=True)
class JobProcessed:
    """``job`` completed without raising."""

    connection_name: str
    job: Job


@dataclass(frozen=True)
class JobExceptionOccurred:
    """``job`` raised ``exception`` while running."""

    connection_name: str
    job: Job
    exception: BaseException


@dataclass(frozen=True)
class WorkerStopping:
    """
    A worker is shutting down.

    Attributes:
        status: Exit status of the worker (0 for a clean shutdown)
    """

    status: int = 0


QueueEvent = JobQueueing | JobQueued | JobProcessing | JobProcessed | JobExceptionOccurred | WorkerStopping
"""Union of all queue lifecycle events."""


__all__ = [
    "JobExceptionOccurred",
    "JobProcessed",
    "JobProcessing",
    "JobQueued",
    "JobQueueing",
    "QueueEvent",
    "WorkerStopping",
]
