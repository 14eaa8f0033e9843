"""
Trace continuation across process boundaries.

A job is created in one process and executed in another. To continue the
trace, the enqueueing side encodes the active span into two strings that
travel inside the job payload:

- a W3C ``traceparent`` header identifying the trace, the span and the
  sampling decision
- a W3C ``baggage`` header carrying the caller's baggage entries plus the
  dynamic sampling entries (``queuetrace-trace_id``, ``queuetrace-sampled``,
  ``queuetrace-transaction``)

The executing side decodes them into a ``PropagationContext``. Decoding never
fails: missing or malformed input yields a fresh context whose
``parent_sampled`` is None (undetermined).

Example:
    >>> baggage, traceparent = encode_trace_context(span)
    >>> context = decode_trace_context(baggage, traceparent)
    >>> context.trace_id == span.trace_id
    True
"""

from __future__ import annotations

import logging
from uuid import uuid4

from opentelemetry import baggage as otel_baggage
from opentelemetry import trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.context import Context
from opentelemetry.trace import NonRecordingSpan, TraceFlags
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from pydantic import BaseModel, ConfigDict, Field

from queuetrace.tracing.span import Span, Transaction

logger = logging.getLogger(__name__)

BAGGAGE_HEADER = "baggage"
TRACEPARENT_HEADER = "traceparent"

BAGGAGE_TRACE_ID = "queuetrace-trace_id"
BAGGAGE_SAMPLED = "queuetrace-sampled"
BAGGAGE_TRANSACTION = "queuetrace-transaction"

_trace_context_propagator = TraceContextTextMapPropagator()
_baggage_propagator = W3CBaggagePropagator()


def generate_trace_id() -> str:
    """Generate a random trace id (32 lowercase hex characters)."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a random span id (16 lowercase hex characters)."""
    return uuid4().hex[16:]


class PropagationContext(BaseModel):
    """
    Trace identity used to continue a trace when no live parent span exists.

    Attributes:
        trace_id: Trace id (32 hex characters)
        span_id: Span id of this context (16 hex characters)
        parent_span_id: Span id of the remote parent, None for a fresh trace
        parent_sampled: Sampling decision of the remote parent; None when it
            could not be determined
        trace_flags: Trace flags received with the remote parent. Bits other
            than the sampled bit are passed on unchanged.
        baggage: Baggage entries received with the trace
    """

    model_config = ConfigDict(frozen=True)

    trace_id: str = Field(
        default_factory=generate_trace_id,
        description="Trace id (32 hex characters)",
    )
    span_id: str = Field(
        default_factory=generate_span_id,
        description="Span id of this context (16 hex characters)",
    )
    parent_span_id: str | None = Field(
        default=None,
        description="Span id of the remote parent",
    )
    parent_sampled: bool | None = Field(
        default=None,
        description="Sampling decision of the remote parent, None if undetermined",
    )
    trace_flags: int = Field(
        default=0,
        description="Trace flags received from the remote parent, sampled bit included",
    )
    baggage: dict[str, str] = Field(
        default_factory=dict,
        description="Baggage entries received with the trace",
    )

    @classmethod
    def from_defaults(cls) -> PropagationContext:
        """Create a fresh context starting a new trace."""
        return cls()

    def to_otel_context(self) -> Context:
        """
        Build an OpenTelemetry context to start spans from.

        When a remote parent is known the context holds a non-recording span
        for it, so spans started from the context join the remote trace and
        inherit its sampling decision.
        """
        context = Context()
        for key, value in self.baggage.items():
            context = otel_baggage.set_baggage(key, value, context=context)

        if self.parent_span_id is None:
            return context

        if self.parent_sampled:
            flags = TraceFlags(self.trace_flags | TraceFlags.SAMPLED)
        else:
            flags = TraceFlags(self.trace_flags & ~TraceFlags.SAMPLED)
        parent = trace.SpanContext(
            trace_id=int(self.trace_id, 16),
            span_id=int(self.parent_span_id, 16),
            is_remote=True,
            trace_flags=flags,
        )
        return trace.set_span_in_context(NonRecordingSpan(parent), context)


def _transaction_name(span: Span) -> str | None:
    current: Span | None = span
    while current is not None:
        if isinstance(current, Transaction):
            return current.name
        current = current.parent
    return None


def encode_trace_context(span: Span) -> tuple[str, str]:
    """
    Encode a span into transport-ready trace continuation strings.

    Args:
        span: The active span

    Returns:
        Tuple of (baggage, traceparent). Either string is empty when there is
        nothing to encode.
    """
    context = trace.set_span_in_context(span.otel_span)
    context = otel_baggage.set_baggage(BAGGAGE_TRACE_ID, span.trace_id, context=context)
    context = otel_baggage.set_baggage(
        BAGGAGE_SAMPLED, "true" if span.sampled else "false", context=context
    )
    transaction_name = _transaction_name(span)
    if transaction_name:
        context = otel_baggage.set_baggage(BAGGAGE_TRANSACTION, transaction_name, context=context)

    carrier: dict[str, str] = {}
    _trace_context_propagator.inject(carrier, context=context)
    _baggage_propagator.inject(carrier, context=context)

    return carrier.get(BAGGAGE_HEADER, ""), carrier.get(TRACEPARENT_HEADER, "")


def decode_trace_context(baggage: str | None, traceparent: str | None) -> PropagationContext:
    """
    Decode trace continuation strings into a propagation context.

    Args:
        baggage: Serialized baggage header, may be None or empty
        traceparent: Serialized traceparent header, may be None or empty

    Returns:
        A context continuing the remote trace when ``traceparent`` is valid,
        otherwise a fresh context with ``parent_sampled`` left undetermined.
    """
    entries: dict[str, str] = {}
    if baggage:
        baggage_context = _baggage_propagator.extract({BAGGAGE_HEADER: baggage})
        entries = {key: str(value) for key, value in otel_baggage.get_all(baggage_context).items()}

    if traceparent:
        extracted = _trace_context_propagator.extract({TRACEPARENT_HEADER: traceparent})
        span_context = trace.get_current_span(extracted).get_span_context()
        if span_context.is_valid:
            return PropagationContext(
                trace_id=trace.format_trace_id(span_context.trace_id),
                parent_span_id=trace.format_span_id(span_context.span_id),
                parent_sampled=span_context.trace_flags.sampled,
                trace_flags=int(span_context.trace_flags),
                baggage=entries,
            )
        logger.debug(
            "Ignoring malformed traceparent, starting a new trace",
            extra={"traceparent": traceparent},
        )

    return PropagationContext(baggage=entries)


__all__ = [
    "BAGGAGE_HEADER",
    "BAGGAGE_SAMPLED",
    "BAGGAGE_TRACE_ID",
    "BAGGAGE_TRANSACTION",
    "TRACEPARENT_HEADER",
    "PropagationContext",
    "decode_trace_context",
    "encode_trace_context",
    "generate_span_id",
    "generate_trace_id",
]
