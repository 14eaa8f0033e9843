"""
Decisions about which span, if any, to open for a queue operation.

Both functions are pure: they inspect the current span and the job and
return a description of the span to start, leaving the starting, pushing and
finishing to the caller.

Enqueue:
    A publish span is opened only below an active, sampled span.

Dequeue:
    ============  =================  ==============================================
    current span  toggle             outcome
    ============  =================  ==============================================
    none          transactions off   None (job not traced)
    present       jobs off           None (job not traced)
    none          transactions on    decode payload; explicit unsampled parent
                                     returns ``Veto.SAMPLED_OUT``, otherwise a
                                     ``TransactionContext`` continuing the trace
    present       jobs on            a child ``SpanContext``
    ============  =================  ==============================================
"""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum

from queuetrace.observability.attributes import (
    ATTR_MESSAGING_DESTINATION_CONNECTION,
    ATTR_MESSAGING_DESTINATION_NAME,
    ATTR_MESSAGING_SYSTEM,
    OP_QUEUE_PROCESS,
    OP_QUEUE_PUBLISH,
)
from queuetrace.queue.jobs import JobInfo
from queuetrace.tracing.propagation import PropagationContext, decode_trace_context
from queuetrace.tracing.span import Span, SpanContext, TransactionContext, TransactionSource

ContinueTrace = Callable[[str, str], PropagationContext]
"""Callable taking (traceparent, baggage) and returning the continued context."""


class Veto(Enum):
    """Reasons a job must not be traced even though tracing is enabled."""

    SAMPLED_OUT = "sampled_out"
    """The remote parent was explicitly not sampled."""


def _continue_trace(traceparent: str, baggage: str) -> PropagationContext:
    return decode_trace_context(baggage, traceparent)


def decide_on_enqueue(
    current_span: Span | None,
    queue_name: str | None,
    connection_name: str | None,
    *,
    messaging_system: str,
) -> SpanContext | None:
    """
    Decide whether pushing a job opens a publish span.

    Args:
        current_span: The active span, if any
        queue_name: Queue the job is pushed to
        connection_name: Connection the job is pushed through
        messaging_system: Value of the ``messaging.system`` attribute

    Returns:
        Context of the publish span, or None if no span should be opened and
        no trace fields should be written to the payload
    """
    if current_span is None or not current_span.sampled:
        return None

    return SpanContext(
        op=OP_QUEUE_PUBLISH,
        description=queue_name,
        data={
            ATTR_MESSAGING_SYSTEM: messaging_system,
            ATTR_MESSAGING_DESTINATION_NAME: queue_name,
            ATTR_MESSAGING_DESTINATION_CONNECTION: connection_name,
        },
    )


def decide_on_dequeue(
    current_span: Span | None,
    job: JobInfo,
    baggage: str | None,
    traceparent: str | None,
    *,
    jobs_enabled: bool,
    transactions_enabled: bool,
    continue_trace: ContinueTrace = _continue_trace,
) -> SpanContext | Veto | None:
    """
    Decide how processing a job is traced.

    Args:
        current_span: The active span, if any
        job: Metadata of the job about to run
        baggage: Baggage field read from the payload
        traceparent: Traceparent field read from the payload
        jobs_enabled: Whether jobs are recorded as child spans of an active span
        transactions_enabled: Whether jobs are recorded as transactions when no
            span is active
        continue_trace: Decodes the payload fields. Receives (traceparent,
            baggage) and returns the continued propagation context.

    Returns:
        - None when tracing of this job is disabled
        - ``Veto.SAMPLED_OUT`` when the remote parent was not sampled
        - ``TransactionContext`` when the job roots a transaction
        - ``SpanContext`` when the job is a child of ``current_span``
    """
    if current_span is None and not transactions_enabled:
        return None

    if current_span is not None and not jobs_enabled:
        return None

    context: SpanContext
    if current_span is None:
        propagation_context = continue_trace(traceparent or "", baggage or "")

        # An unsampled parent forbids recording anything for the job
        if propagation_context.parent_sampled is False:
            return Veto.SAMPLED_OUT

        context = TransactionContext.from_propagation_context(propagation_context)
        context.name = job.resolved
        context.source = TransactionSource.TASK
    else:
        context = SpanContext()

    context.op = OP_QUEUE_PROCESS
    context.data = job.span_data()
    context.start_timestamp = time.time()
    return context


__all__ = [
    "ContinueTrace",
    "Veto",
    "decide_on_dequeue",
    "decide_on_enqueue",
]
