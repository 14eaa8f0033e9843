"""
Hub protocol and the OpenTelemetry-backed implementation.

The hub is the process-wide entry point to tracing. It owns a stack of
scopes; the top scope holds the current span. The stack lives in a
``ContextVar``, so every thread and every asyncio task works on its own stack
and concurrent workers in one process never see each other's spans. A
context that has not used the hub yet starts with a root scope of its own.

Example:
    >>> hub = OpenTelemetryHub()
    >>> set_current_hub(hub)
    >>> hub.push_scope()
    >>> transaction = hub.start_transaction(TransactionContext(name="job"))
    >>> hub.set_span(transaction)
    >>> ...
    >>> transaction.finish()
    >>> hub.pop_scope()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextvars import ContextVar
from typing import Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.context import Context

from queuetrace.tracing.propagation import PropagationContext, decode_trace_context
from queuetrace.tracing.scope import DEFAULT_MAX_BREADCRUMBS, Breadcrumb, Scope
from queuetrace.tracing.span import (
    Span,
    Transaction,
    TransactionContext,
    initial_attributes,
    span_kind_for,
    to_nanoseconds,
)

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_TIMEOUT_MILLIS = 30_000


@runtime_checkable
class Hub(Protocol):
    """
    Protocol for the tracing collaborator used by the queue integration.

    Implementations:
    - OpenTelemetryHub: Spans exported through OpenTelemetry
    """

    def get_scope(self) -> Scope:
        """Return the scope at the top of the caller's scope stack."""
        ...

    def get_span(self) -> Span | None:
        """Return the current span, or None when no span is active."""
        ...

    def set_span(self, span: Span | None) -> None:
        """Replace the current span on the top scope."""
        ...

    def push_scope(self) -> Scope:
        """Push a copy of the top scope and return it."""
        ...

    def pop_scope(self) -> bool:
        """Pop the top scope. Returns False if only the root scope is left."""
        ...

    def configure_scope(self, callback: Callable[[Scope], None]) -> None:
        """Call ``callback`` with the top scope."""
        ...

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> bool:
        """Record a breadcrumb on the top scope."""
        ...

    def start_transaction(self, context: TransactionContext) -> Transaction:
        """Start a transaction. Caller MUST call ``finish()`` on it."""
        ...

    def continue_trace(self, traceparent: str, baggage: str) -> PropagationContext:
        """Decode trace headers and make them the top scope's propagation context."""
        ...

    def flush(self, timeout_millis: int = DEFAULT_FLUSH_TIMEOUT_MILLIS) -> bool:
        """Flush buffered spans. Returns False if the flush timed out."""
        ...


class OpenTelemetryHub:
    """
    Hub exporting spans through OpenTelemetry.

    Args:
        tracer_name: Name of the OpenTelemetry tracer
        tracer_provider: Tracer provider to use. Defaults to the global
            provider, resolved lazily so it may be configured after the hub
            is created.
        max_breadcrumbs: Maximum breadcrumbs kept per scope
    """

    def __init__(
        self,
        tracer_name: str = "queuetrace",
        *,
        tracer_provider: trace.TracerProvider | None = None,
        max_breadcrumbs: int = DEFAULT_MAX_BREADCRUMBS,
    ) -> None:
        self._tracer_provider = tracer_provider
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)
        self._max_breadcrumbs = max_breadcrumbs
        self._scopes: ContextVar[tuple[Scope, ...] | None] = ContextVar(
            f"queuetrace_scopes_{id(self)}", default=None
        )

    @property
    def tracer(self) -> trace.Tracer:
        return self._tracer

    def _stack(self) -> tuple[Scope, ...]:
        stack = self._scopes.get()
        if stack is None:
            # Each context gets its own root scope on first use
            stack = (Scope(self._max_breadcrumbs),)
            self._scopes.set(stack)
        return stack

    @property
    def scope_depth(self) -> int:
        """Number of scopes on the caller's stack, the root scope included."""
        return len(self._stack())

    def get_scope(self) -> Scope:
        return self._stack()[-1]

    def get_span(self) -> Span | None:
        span = self.get_scope().span
        if span is not None:
            return span

        otel_span = trace.get_current_span()
        if otel_span.get_span_context().is_valid:
            return Span.from_otel(otel_span, self._tracer)
        return None

    def set_span(self, span: Span | None) -> None:
        # Scopes may be shared with contexts copied from this one, so the top
        # scope is replaced rather than mutated
        stack = self._stack()
        scope = stack[-1].clone()
        scope.span = span
        self._scopes.set((*stack[:-1], scope))

    def push_scope(self) -> Scope:
        stack = self._stack()
        scope = stack[-1].clone()
        self._scopes.set((*stack, scope))
        return scope

    def pop_scope(self) -> bool:
        stack = self._stack()
        if len(stack) == 1:
            logger.debug("Refusing to pop the root scope")
            return False
        self._scopes.set(stack[:-1])
        return True

    def configure_scope(self, callback: Callable[[Scope], None]) -> None:
        callback(self.get_scope())

    def add_breadcrumb(self, breadcrumb: Breadcrumb) -> bool:
        logger.debug(
            f"Breadcrumb {breadcrumb.category}: {breadcrumb.message}",
            extra={"category": breadcrumb.category, "data": breadcrumb.data},
        )
        return self.get_scope().add_breadcrumb(breadcrumb)

    def start_transaction(self, context: TransactionContext) -> Transaction:
        start_timestamp = context.start_timestamp or time.time()

        # An empty context keeps an unrelated ambient span from becoming the parent
        if context.propagation_context is not None:
            parent_context = context.propagation_context.to_otel_context()
        else:
            parent_context = Context()

        otel_span = self._tracer.start_span(
            context.name,
            context=parent_context,
            kind=span_kind_for(context.op),
            attributes=initial_attributes(context),
            start_time=to_nanoseconds(start_timestamp),
        )
        transaction = Transaction(
            otel_span,
            self._tracer,
            name=context.name,
            source=context.source,
            op=context.op,
            description=context.description,
            data=context.data,
            start_timestamp=start_timestamp,
        )
        logger.debug(
            f"Started transaction {context.name}",
            extra={
                "transaction": context.name,
                "trace_id": transaction.trace_id,
                "sampled": transaction.sampled,
            },
        )
        return transaction

    def continue_trace(self, traceparent: str, baggage: str) -> PropagationContext:
        context = decode_trace_context(baggage, traceparent)
        self.configure_scope(lambda scope: scope.set_propagation_context(context))
        return context

    def flush(self, timeout_millis: int = DEFAULT_FLUSH_TIMEOUT_MILLIS) -> bool:
        provider = self._tracer_provider or trace.get_tracer_provider()
        force_flush = getattr(provider, "force_flush", None)
        if force_flush is None:
            return True

        flushed = bool(force_flush(timeout_millis))
        if not flushed:
            logger.warning(
                f"Flushing spans did not complete within {timeout_millis}ms",
                extra={"timeout_millis": timeout_millis},
            )
        return flushed


_current_hub: Hub | None = None


def get_current_hub() -> Hub:
    """Return the process-wide hub, creating an OpenTelemetryHub on first use."""
    global _current_hub
    if _current_hub is None:
        _current_hub = OpenTelemetryHub()
    return _current_hub


def set_current_hub(hub: Hub | None) -> Hub | None:
    """
    Replace the process-wide hub.

    Returns:
        The previous hub, so callers (typically tests) can restore it
    """
    global _current_hub
    previous = _current_hub
    _current_hub = hub
    return previous


__all__ = [
    "DEFAULT_FLUSH_TIMEOUT_MILLIS",
    "Hub",
    "OpenTelemetryHub",
    "get_current_hub",
    "set_current_hub",
]
