"""
LIFO bookkeeping of the spans and scopes pushed for queue jobs.

Every span or scope pushed while handling a job must be popped exactly once,
whichever terminal event ends the job. Pops on an empty stack are no-ops so
that a terminal event arriving without a matching push (tracing disabled,
sampled out, duplicate event) never fails.

The frames live in ``ContextVar`` instances owned by the stack, so every
thread or asyncio task sees only the frames it pushed itself.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from dataclasses import dataclass

from queuetrace.tracing.hub import Hub
from queuetrace.tracing.propagation import PropagationContext
from queuetrace.tracing.scope import Scope
from queuetrace.tracing.span import Span

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _SpanFrame:
    span: Span
    previous: Span | None


class SpanScopeStack:
    """
    Stack of spans and scopes pushed on a hub.

    Pushing a span makes it the hub's current span; popping it restores the
    span that was current before. Pushing a scope gives the job a clean scope:
    no breadcrumbs and a fresh propagation context, so nothing leaks from a
    previous job run by the same worker.

    Args:
        hub: The hub spans and scopes are pushed on
        max_breadcrumbs: Breadcrumb limit of the pushed scopes. None keeps
            the limit of the scope they are copied from.

    Example:
        >>> stack = SpanScopeStack(hub)
        >>> stack.push_scope()
        >>> stack.push(transaction)
        >>> ...
        >>> span = stack.maybe_pop()
        >>> if span is not None:
        ...     span.finish()
        >>> stack.maybe_pop_scope()
    """

    def __init__(self, hub: Hub, *, max_breadcrumbs: int | None = None) -> None:
        self._hub = hub
        self._max_breadcrumbs = max_breadcrumbs
        self._spans: ContextVar[tuple[_SpanFrame, ...]] = ContextVar(
            f"queuetrace_pushed_spans_{id(self)}", default=()
        )
        self._scopes: ContextVar[int] = ContextVar(
            f"queuetrace_pushed_scopes_{id(self)}", default=0
        )

    @property
    def span_depth(self) -> int:
        """Number of spans pushed and not yet popped in the caller's context."""
        return len(self._spans.get())

    @property
    def scope_depth(self) -> int:
        """Number of scopes pushed and not yet popped in the caller's context."""
        return self._scopes.get()

    def push(self, span: Span) -> None:
        """Make ``span`` the current span, remembering the previous one."""
        frames = self._spans.get()
        previous = self._hub.get_scope().span
        self._hub.set_span(span)
        self._spans.set((*frames, _SpanFrame(span, previous)))

    def peek(self) -> Span | None:
        """Return the most recently pushed span without popping it."""
        frames = self._spans.get()
        return frames[-1].span if frames else None

    def maybe_pop(self) -> Span | None:
        """
        Pop the most recently pushed span.

        The span that was current before it was pushed becomes current again.

        Returns:
            The popped span, or None if nothing was pushed
        """
        frames = self._spans.get()
        if not frames:
            return None

        frame = frames[-1]
        self._spans.set(frames[:-1])
        self._hub.set_span(frame.previous)
        return frame.span

    def push_scope(self) -> None:
        """Push a clean scope on the hub."""
        self._hub.push_scope()
        self._scopes.set(self._scopes.get() + 1)

        self._hub.configure_scope(self._reset_scope)

    def _reset_scope(self, scope: Scope) -> None:
        scope.clear_breadcrumbs()
        scope.set_propagation_context(PropagationContext.from_defaults())
        if self._max_breadcrumbs is not None:
            scope.set_max_breadcrumbs(self._max_breadcrumbs)

    def maybe_pop_scope(self) -> bool:
        """
        Flush buffered events and pop the most recently pushed scope.

        The flush calls the tracer provider's ``force_flush`` synchronously.
        With a batching span processor this blocks the calling thread (and
        the event loop, for asyncio workers) until the export completes or
        the hub's flush timeout expires.

        Returns:
            True if a scope was popped, False if none was pushed
        """
        self._hub.flush()

        pushed = self._scopes.get()
        if pushed == 0:
            return False

        if not self._hub.pop_scope():
            logger.warning(
                "Hub refused to pop a scope pushed for a queue job",
                extra={"pushed_scopes": pushed},
            )
        self._scopes.set(pushed - 1)
        return True


__all__ = ["SpanScopeStack"]
