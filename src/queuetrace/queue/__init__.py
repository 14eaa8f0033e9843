"""
Queue integration and the in-memory host queue.

This module provides:
- QueueIntegration: Spans and breadcrumbs for queue jobs
- EventDispatcher and the lifecycle events it dispatches
- InMemoryQueue / Worker: A host queue system announcing those events
"""

from queuetrace.queue.decision import Veto, decide_on_dequeue, decide_on_enqueue
from queuetrace.queue.dispatcher import EventDispatcher
from queuetrace.queue.events import (
    JobExceptionOccurred,
    JobProcessed,
    JobProcessing,
    JobQueued,
    JobQueueing,
    QueueEvent,
    WorkerStopping,
)
from queuetrace.queue.integration import QueueIntegration
from queuetrace.queue.interface import PayloadHook, PayloadHookRegistry
from queuetrace.queue.jobs import (
    PAYLOAD_BAGGAGE_FIELD,
    PAYLOAD_TRACEPARENT_FIELD,
    Job,
    JobInfo,
    ResolvableJob,
    describe_job,
)
from queuetrace.queue.memory import InMemoryQueue, QueuedJob, Worker
from queuetrace.queue.stack import SpanScopeStack

__all__ = [
    # Integration
    "QueueIntegration",
    "SpanScopeStack",
    "Veto",
    "decide_on_dequeue",
    "decide_on_enqueue",
    # Events
    "EventDispatcher",
    "JobExceptionOccurred",
    "JobProcessed",
    "JobProcessing",
    "JobQueued",
    "JobQueueing",
    "QueueEvent",
    "WorkerStopping",
    # Jobs
    "PAYLOAD_BAGGAGE_FIELD",
    "PAYLOAD_TRACEPARENT_FIELD",
    "Job",
    "JobInfo",
    "ResolvableJob",
    "describe_job",
    # Host queue
    "InMemoryQueue",
    "PayloadHook",
    "PayloadHookRegistry",
    "QueuedJob",
    "Worker",
]
