"""
queuetrace - Distributed tracing for background job queues.

This library provides:
- Spans, transactions and scopes backed by OpenTelemetry
- Trace continuation through job payloads (W3C traceparent and baggage)
- A queue integration turning job lifecycle events into spans and breadcrumbs
- An in-memory queue and asyncio worker announcing those events
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("queuetrace")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from queuetrace.config import BREADCRUMB_FEATURES, TRACING_FEATURES, QueueTracingConfig
from queuetrace.exceptions import InvalidJobError, JobResolutionError, QueueTraceError
from queuetrace.feature import Feature
from queuetrace.queue import (
    EventDispatcher,
    InMemoryQueue,
    JobExceptionOccurred,
    JobProcessed,
    JobProcessing,
    JobQueued,
    JobQueueing,
    QueueIntegration,
    SpanScopeStack,
    Veto,
    Worker,
    WorkerStopping,
)
from queuetrace.tracing import (
    Breadcrumb,
    Hub,
    OpenTelemetryHub,
    PropagationContext,
    Scope,
    Span,
    SpanContext,
    SpanStatus,
    Transaction,
    TransactionContext,
    TransactionSource,
    decode_trace_context,
    encode_trace_context,
    get_current_hub,
    set_current_hub,
)

__all__ = [
    "__version__",
    # Configuration
    "BREADCRUMB_FEATURES",
    "TRACING_FEATURES",
    "QueueTracingConfig",
    # Exceptions
    "InvalidJobError",
    "JobResolutionError",
    "QueueTraceError",
    # Features
    "Feature",
    "QueueIntegration",
    "SpanScopeStack",
    "Veto",
    # Queue host
    "EventDispatcher",
    "InMemoryQueue",
    "Worker",
    "JobExceptionOccurred",
    "JobProcessed",
    "JobProcessing",
    "JobQueued",
    "JobQueueing",
    "WorkerStopping",
    # Tracing
    "Breadcrumb",
    "Hub",
    "OpenTelemetryHub",
    "PropagationContext",
    "Scope",
    "Span",
    "SpanContext",
    "SpanStatus",
    "Transaction",
    "TransactionContext",
    "TransactionSource",
    "decode_trace_context",
    "encode_trace_context",
    "get_current_hub",
    "set_current_hub",
]
