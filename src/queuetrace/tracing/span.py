"""
Spans and transactions backed by OpenTelemetry.

A ``Span`` is a timed operation with an op, a description, structured data
and a status. A ``Transaction`` is a span that roots a trace (or continues a
trace received from another process) and additionally carries a name and a
source classification.

Spans are thin wrappers around OpenTelemetry spans: every setter is forwarded
to the wrapped span so finished spans are exported through whatever span
processors are configured on the tracer provider.

Example:
    >>> hub = get_current_hub()
    >>> transaction = hub.start_transaction(
    ...     TransactionContext(name="SendReceipt", op="queue.process")
    ... )
    >>> child = transaction.start_child(SpanContext(op="db.query", description="SELECT 1"))
    >>> child.finish()
    >>> transaction.set_status(SpanStatus.OK)
    >>> transaction.finish()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from queuetrace.observability.attributes import (
    ATTR_SPAN_OP,
    ATTR_TRANSACTION_SOURCE,
    OP_QUEUE_PROCESS,
    OP_QUEUE_PUBLISH,
)

if TYPE_CHECKING:
    from queuetrace.tracing.propagation import PropagationContext

logger = logging.getLogger(__name__)


class SpanStatus(Enum):
    """
    Final status of a span.

    Values:
        OK: The operation completed successfully
        INTERNAL_ERROR: The operation failed with an unexpected error
        UNSET: No status was recorded
    """

    OK = "ok"
    INTERNAL_ERROR = "internal_error"
    UNSET = "unset"


class TransactionSource(Enum):
    """How the name of a transaction was derived."""

    CUSTOM = "custom"
    TASK = "task"


@dataclass
class SpanContext:
    """
    Everything needed to start a span.

    Attributes:
        op: Operation name (e.g., 'queue.publish')
        description: Human readable description, used as the span name
        data: Structured key/value data attached to the span
        status: Initial status of the span
        start_timestamp: Start time in seconds since the epoch. When None the
            span starts at the moment it is created.
    """

    op: str | None = None
    description: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    status: SpanStatus = SpanStatus.UNSET
    start_timestamp: float | None = None


@dataclass
class TransactionContext(SpanContext):
    """
    Everything needed to start a transaction.

    Attributes:
        name: Transaction name
        source: How the name was derived
        propagation_context: Trace continued from another process. When None
            the transaction starts a new trace.
    """

    name: str = "<unlabeled transaction>"
    source: TransactionSource = TransactionSource.CUSTOM
    propagation_context: PropagationContext | None = None

    @property
    def parent_sampled(self) -> bool | None:
        """Sampling decision of the remote parent, None when undetermined."""
        if self.propagation_context is None:
            return None
        return self.propagation_context.parent_sampled

    @classmethod
    def from_propagation_context(cls, context: PropagationContext) -> TransactionContext:
        """Create a transaction context continuing the given trace."""
        return cls(propagation_context=context)


def to_nanoseconds(timestamp: float) -> int:
    """Convert seconds since the epoch to the nanoseconds OpenTelemetry expects."""
    return int(timestamp * 1_000_000_000)


def span_kind_for(op: str | None) -> SpanKind:
    """Map a span operation to an OpenTelemetry span kind."""
    if op == OP_QUEUE_PUBLISH:
        return SpanKind.PRODUCER
    if op == OP_QUEUE_PROCESS:
        return SpanKind.CONSUMER
    return SpanKind.INTERNAL


def to_attributes(data: dict[str, Any]) -> dict[str, Any]:
    """
    Convert span data to OpenTelemetry attributes.

    None values are dropped; values that are not primitives are stringified.
    """
    attributes: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, str | bool | int | float):
            attributes[key] = value
        else:
            attributes[key] = str(value)
    return attributes


def initial_attributes(context: SpanContext) -> dict[str, Any]:
    attributes = to_attributes(context.data)
    if context.op is not None:
        attributes[ATTR_SPAN_OP] = context.op
    if isinstance(context, TransactionContext):
        attributes[ATTR_TRANSACTION_SOURCE] = context.source.value
    return attributes


class Span:
    """
    A timed operation within a trace.

    The ``sampled`` flag is fixed when the span is created and inherited by
    every child started from it. After ``finish()`` the span is immutable and
    all setters are ignored.

    Args:
        otel_span: The wrapped OpenTelemetry span
        tracer: OpenTelemetry tracer used to start children
        op: Operation name
        description: Span description
        data: Structured data
        sampled: Sampling decision. When None it is read from the wrapped
            span's trace flags.
        parent: Parent span, if any (not owned)
        start_timestamp: Start time in seconds since the epoch
    """

    def __init__(
        self,
        otel_span: trace.Span,
        tracer: trace.Tracer,
        *,
        op: str | None = None,
        description: str | None = None,
        data: dict[str, Any] | None = None,
        sampled: bool | None = None,
        parent: Span | None = None,
        start_timestamp: float | None = None,
    ) -> None:
        self._otel_span = otel_span
        self._tracer = tracer
        self._op = op
        self._description = description
        self._data: dict[str, Any] = dict(data or {})
        self._status = SpanStatus.UNSET
        if sampled is None:
            sampled = otel_span.get_span_context().trace_flags.sampled
        self._sampled = bool(sampled)
        self._parent = parent
        self._start_timestamp = start_timestamp if start_timestamp is not None else time.time()
        self._end_timestamp: float | None = None

    @classmethod
    def from_otel(cls, otel_span: trace.Span, tracer: trace.Tracer) -> Span:
        """
        Wrap a span that was started outside of queuetrace.

        Used when application code already runs inside an OpenTelemetry span
        (for example an instrumented web request) so that queue spans can be
        recorded as its children.
        """
        return cls(otel_span, tracer)

    @property
    def op(self) -> str | None:
        return self._op

    @property
    def description(self) -> str | None:
        return self._description

    @property
    def data(self) -> dict[str, Any]:
        """Copy of the structured data of the span."""
        return dict(self._data)

    @property
    def status(self) -> SpanStatus:
        return self._status

    @property
    def sampled(self) -> bool:
        return self._sampled

    @property
    def parent(self) -> Span | None:
        return self._parent

    @property
    def start_timestamp(self) -> float:
        return self._start_timestamp

    @property
    def end_timestamp(self) -> float | None:
        return self._end_timestamp

    @property
    def is_finished(self) -> bool:
        return self._end_timestamp is not None

    @property
    def otel_span(self) -> trace.Span:
        """The wrapped OpenTelemetry span."""
        return self._otel_span

    @property
    def trace_id(self) -> str:
        """Trace id as 32 lowercase hex characters."""
        return trace.format_trace_id(self._otel_span.get_span_context().trace_id)

    @property
    def span_id(self) -> str:
        """Span id as 16 lowercase hex characters."""
        return trace.format_span_id(self._otel_span.get_span_context().span_id)

    def _check_mutable(self, operation: str) -> bool:
        if self.is_finished:
            logger.debug(
                f"Ignoring {operation} on finished span {self.span_id}",
                extra={"span_id": self.span_id, "op": self._op},
            )
            return False
        return True

    def _span_name(self) -> str:
        return self._description or self._op or "<unlabeled span>"

    def set_description(self, description: str | None) -> None:
        """Set the description, which is also used as the exported span name."""
        if not self._check_mutable("set_description"):
            return
        self._description = description
        self._otel_span.update_name(self._span_name())

    def set_data(self, data: dict[str, Any]) -> None:
        """Merge ``data`` into the structured data of the span."""
        if not self._check_mutable("set_data"):
            return
        self._data.update(data)
        self._otel_span.set_attributes(to_attributes(data))

    def set_status(self, status: SpanStatus) -> None:
        if not self._check_mutable("set_status"):
            return
        self._status = status
        if status is SpanStatus.OK:
            self._otel_span.set_status(Status(StatusCode.OK))
        elif status is SpanStatus.INTERNAL_ERROR:
            self._otel_span.set_status(Status(StatusCode.ERROR, status.value))

    def record_exception(self, exception: BaseException) -> None:
        """Attach an exception to the exported span as an event."""
        if not self._check_mutable("record_exception"):
            return
        self._otel_span.record_exception(exception)

    def start_child(self, context: SpanContext) -> Span:
        """
        Start a child span of this span.

        The child inherits this span's trace and sampling decision.

        Args:
            context: Description of the child span

        Returns:
            The started child span. Caller MUST call ``finish()`` on it.
        """
        start_timestamp = context.start_timestamp or time.time()
        otel_span = self._tracer.start_span(
            context.description or context.op or "<unlabeled span>",
            context=trace.set_span_in_context(self._otel_span),
            kind=span_kind_for(context.op),
            attributes=initial_attributes(context),
            start_time=to_nanoseconds(start_timestamp),
        )
        child = Span(
            otel_span,
            self._tracer,
            op=context.op,
            description=context.description,
            data=context.data,
            sampled=self._sampled,
            parent=self,
            start_timestamp=start_timestamp,
        )
        if context.status is not SpanStatus.UNSET:
            child.set_status(context.status)
        return child

    def finish(self, end_timestamp: float | None = None) -> None:
        """
        End the span. Finishing an already finished span does nothing.

        Args:
            end_timestamp: End time in seconds since the epoch (default: now)
        """
        if self.is_finished:
            return
        self._end_timestamp = end_timestamp if end_timestamp is not None else time.time()
        self._otel_span.end(end_time=to_nanoseconds(self._end_timestamp))

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(op={self._op!r}, description={self._description!r}, "
            f"status={self._status.value!r}, sampled={self._sampled})"
        )


class Transaction(Span):
    """
    A span that roots a trace in this process.

    Args:
        otel_span: The wrapped OpenTelemetry span
        tracer: OpenTelemetry tracer used to start children
        name: Transaction name
        source: How the name was derived
        **kwargs: Passed to ``Span``
    """

    def __init__(
        self,
        otel_span: trace.Span,
        tracer: trace.Tracer,
        *,
        name: str,
        source: TransactionSource = TransactionSource.CUSTOM,
        **kwargs: Any,
    ) -> None:
        super().__init__(otel_span, tracer, **kwargs)
        self._name = name
        self._source = source

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> TransactionSource:
        return self._source

    def _span_name(self) -> str:
        return self._name

    def set_name(self, name: str) -> None:
        if not self._check_mutable("set_name"):
            return
        self._name = name
        self._otel_span.update_name(name)


__all__ = [
    "Span",
    "SpanContext",
    "SpanStatus",
    "Transaction",
    "TransactionContext",
    "TransactionSource",
    "initial_attributes",
    "span_kind_for",
    "to_attributes",
    "to_nanoseconds",
]
