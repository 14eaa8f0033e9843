"""
Queue integration: tracing and breadcrumbs for queue jobs.

The integration listens to the six queue lifecycle events and turns them into
spans, transactions and breadcrumbs:

- Pushing a job below an active, sampled span opens a ``queue.publish`` span
  and writes the trace continuation fields into the job payload.
- Running a job opens a ``queue.process`` span: a child of the active span
  when there is one, otherwise a transaction continuing the trace found in
  the payload. A payload whose parent was not sampled vetoes the job's
  transaction.
- The span is finished with ``ok`` when the job completes and with
  ``internal_error`` when it raises.

Example:
    >>> dispatcher = EventDispatcher()
    >>> queue = InMemoryQueue(dispatcher)
    >>> integration = QueueIntegration(
    ...     queue,
    ...     QueueTracingConfig(tracing={"queue_job_transactions": True}),
    ... )
    >>> integration.boot(dispatcher)
    True
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from queuetrace.config import QueueTracingConfig
from queuetrace.feature import Feature
from queuetrace.observability.attributes import (
    BREADCRUMB_CATEGORY_QUEUE_JOB,
    OP_QUEUE_PUBLISH,
    messaging_job_attribute,
)
from queuetrace.queue.decision import Veto, decide_on_dequeue, decide_on_enqueue
from queuetrace.queue.events import (
    JobExceptionOccurred,
    JobProcessed,
    JobProcessing,
    JobQueued,
    JobQueueing,
    WorkerStopping,
)
from queuetrace.queue.interface import PayloadHookRegistry
from queuetrace.queue.jobs import (
    describe_job,
    queued_job_name,
    read_trace_fields,
    write_trace_fields,
)
from queuetrace.queue.stack import SpanScopeStack
from queuetrace.tracing.hub import Hub
from queuetrace.tracing.propagation import encode_trace_context
from queuetrace.tracing.scope import Breadcrumb, BreadcrumbLevel, BreadcrumbType
from queuetrace.tracing.span import SpanStatus, TransactionContext

if TYPE_CHECKING:
    from queuetrace.queue.dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

E = TypeVar("E")


def _guarded(handler: Callable[[QueueIntegration, E], None]) -> Callable[[QueueIntegration, E], None]:
    """Keep tracing failures from propagating into the queue."""

    @functools.wraps(handler)
    def wrapper(self: QueueIntegration, event: E) -> None:
        try:
            handler(self, event)
        except Exception as e:
            logger.warning(
                f"Queue tracing failed in {handler.__name__}: {e}",
                exc_info=True,
                extra={"handler": handler.__name__, "event_type": type(event).__name__},
            )

    return wrapper


class QueueIntegration(Feature):
    """
    Trace queue jobs from enqueueing to completion.

    Args:
        queue: Queue whose payloads carry the trace. None when the host has no
            queue, in which case the integration is not applicable.
        config: Feature toggles
        hub: Hub to trace with. Defaults to the process-wide hub.
    """

    def __init__(
        self,
        queue: PayloadHookRegistry | None,
        config: QueueTracingConfig | None = None,
        *,
        hub: Hub | None = None,
    ) -> None:
        super().__init__(config, hub=hub)
        self._queue = queue
        self._stack = SpanScopeStack(self._hub, max_breadcrumbs=self._config.max_breadcrumbs)

    @property
    def stack(self) -> SpanScopeStack:
        return self._stack

    def is_applicable(self) -> bool:
        if self._queue is None:
            return False

        return (
            self.is_breadcrumb_feature_enabled("queue_info")
            or self.is_tracing_feature_enabled("queue_jobs")
            or self.is_tracing_feature_enabled("queue_job_transactions")
        )

    def on_boot(self, dispatcher: EventDispatcher) -> None:
        dispatcher.listen(JobQueueing, self.handle_job_queueing_event)
        dispatcher.listen(JobQueued, self.handle_job_queued_event)

        dispatcher.listen(JobProcessed, self.handle_job_processed_event)
        dispatcher.listen(JobProcessing, self.handle_job_processing_event)
        dispatcher.listen(WorkerStopping, self.handle_worker_stopping_event)
        dispatcher.listen(JobExceptionOccurred, self.handle_job_exception_occurred_event)

        if self._queue is not None and (
            self.is_tracing_feature_enabled("queue_jobs")
            or self.is_tracing_feature_enabled("queue_job_transactions")
        ):
            self._queue.create_payload_using(self.create_payload)

    def create_payload(
        self,
        connection_name: str | None,
        queue_name: str | None,
        payload: dict[str, Any] | None,
    ) -> dict[str, Any] | None:
        """
        Payload hook: open a publish span and write the trace into the payload.

        Nothing is written when there is no active, sampled span.
        """
        try:
            parent = self._hub.get_span()
            context = decide_on_enqueue(
                parent,
                queue_name,
                connection_name,
                messaging_system=self._config.messaging_system,
            )
            if parent is None or context is None:
                return payload

            span = parent.start_child(context)
            self._stack.push(span)

            if payload is not None:
                baggage, traceparent = encode_trace_context(span)
                write_trace_fields(payload, baggage, traceparent)
        except Exception as e:
            logger.warning(
                f"Could not add trace to payload for queue {queue_name}: {e}",
                exc_info=True,
                extra={"queue": queue_name, "connection": connection_name},
            )
        return payload

    @_guarded
    def handle_job_queueing_event(self, event: JobQueueing) -> None:
        current_span = self._hub.get_span()

        # Only the publish span opened by create_payload is renamed
        if current_span is None or current_span.op != OP_QUEUE_PUBLISH:
            return

        job_name = queued_job_name(event.job)
        current_span.set_data({messaging_job_attribute(self._config.messaging_system): job_name})
        current_span.set_description(job_name)

    @_guarded
    def handle_job_queued_event(self, event: JobQueued) -> None:
        # Nothing was pushed when the job was queued without a sampled span;
        # the span on top then belongs to the job doing the pushing
        span = self._stack.peek()
        if span is None or span.op != OP_QUEUE_PUBLISH:
            return

        self._stack.maybe_pop()
        span.finish()

    @_guarded
    def handle_job_processed_event(self, event: JobProcessed) -> None:
        self._finish_job_with_status(SpanStatus.OK)

        self._stack.maybe_pop_scope()

    @_guarded
    def handle_job_processing_event(self, event: JobProcessing) -> None:
        # A scope left over from a job that raised is popped here
        self._stack.maybe_pop_scope()

        self._stack.push_scope()

        job = describe_job(event.job, event.connection_name)

        if self.is_breadcrumb_feature_enabled("queue_info"):
            self._hub.add_breadcrumb(
                Breadcrumb(
                    level=BreadcrumbLevel.INFO,
                    type=BreadcrumbType.DEFAULT,
                    category=BREADCRUMB_CATEGORY_QUEUE_JOB,
                    message="Processing queue job",
                    data=job.breadcrumb_data(),
                )
            )

        parent = self._hub.get_span()
        baggage, traceparent = read_trace_fields(event.job)

        decision = decide_on_dequeue(
            parent,
            job,
            baggage,
            traceparent,
            jobs_enabled=self.is_tracing_feature_enabled("queue_jobs"),
            transactions_enabled=self.is_tracing_feature_enabled("queue_job_transactions"),
            continue_trace=self._hub.continue_trace,
        )

        if decision is None:
            return

        if decision is Veto.SAMPLED_OUT:
            logger.debug(
                f"Not tracing job {job.resolved}: parent trace was not sampled",
                extra={"job": job.resolved, "queue": job.queue},
            )
            return

        # Without a parent span the job roots a transaction
        if isinstance(decision, TransactionContext):
            span = self._hub.start_transaction(decision)
        elif parent is not None:
            span = parent.start_child(decision)
        else:
            return

        self._stack.push(span)

    @_guarded
    def handle_worker_stopping_event(self, event: WorkerStopping) -> None:
        self._hub.flush()

    @_guarded
    def handle_job_exception_occurred_event(self, event: JobExceptionOccurred) -> None:
        self._finish_job_with_status(SpanStatus.INTERNAL_ERROR, event.exception)

        self._hub.flush()

    def _finish_job_with_status(
        self,
        status: SpanStatus,
        exception: BaseException | None = None,
    ) -> None:
        span = self._stack.maybe_pop()

        if span is not None:
            if exception is not None:
                span.record_exception(exception)
            span.set_status(status)
            span.finish()


__all__ = ["QueueIntegration"]
