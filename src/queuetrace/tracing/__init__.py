"""
Tracing primitives: spans, transactions, scopes and the hub.

Example:
    >>> from queuetrace.tracing import TransactionContext, get_current_hub
    >>> hub = get_current_hub()
    >>> transaction = hub.start_transaction(TransactionContext(name="nightly-report"))
    >>> transaction.finish()
"""

from queuetrace.tracing.hub import (
    DEFAULT_FLUSH_TIMEOUT_MILLIS,
    Hub,
    OpenTelemetryHub,
    get_current_hub,
    set_current_hub,
)
from queuetrace.tracing.propagation import (
    PropagationContext,
    decode_trace_context,
    encode_trace_context,
)
from queuetrace.tracing.scope import (
    Breadcrumb,
    BreadcrumbLevel,
    BreadcrumbType,
    Scope,
)
from queuetrace.tracing.span import (
    Span,
    SpanContext,
    SpanStatus,
    Transaction,
    TransactionContext,
    TransactionSource,
)

__all__ = [
    # Hub
    "DEFAULT_FLUSH_TIMEOUT_MILLIS",
    "Hub",
    "OpenTelemetryHub",
    "get_current_hub",
    "set_current_hub",
    # Propagation
    "PropagationContext",
    "decode_trace_context",
    "encode_trace_context",
    # Scope
    "Breadcrumb",
    "BreadcrumbLevel",
    "BreadcrumbType",
    "Scope",
    # Spans
    "Span",
    "SpanContext",
    "SpanStatus",
    "Transaction",
    "TransactionContext",
    "TransactionSource",
]
