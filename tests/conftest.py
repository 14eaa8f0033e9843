"""
Shared pytest fixtures for the queuetrace tests.

This module provides:
- OpenTelemetry fixtures (span_exporter, tracer_provider) capturing finished
  spans in memory
- Hub fixtures (hub, checkout_transaction, unsampled_transaction)
- Queue fixtures (dispatcher, memory_queue)
- Trace header helpers (make_traceparent, parse_traceparent)

Every test gets its own TracerProvider, so spans never leak between tests.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from queuetrace.queue.dispatcher import EventDispatcher
from queuetrace.queue.memory import InMemoryQueue
from queuetrace.tracing.hub import OpenTelemetryHub, set_current_hub
from queuetrace.tracing.propagation import PropagationContext
from queuetrace.tracing.span import Transaction, TransactionContext

REMOTE_TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"
REMOTE_SPAN_ID = "00f067aa0ba902b7"

# ============================================================================
# OpenTelemetry Fixtures
# ============================================================================


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """In-memory exporter capturing every finished, sampled span."""
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Generator[TracerProvider, None, None]:
    """
    TracerProvider exporting synchronously to ``span_exporter``.

    The default sampler is ParentBased(ALWAYS_ON): new traces are sampled,
    continued traces follow the remote parent's sampled flag.
    """
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def get_spans(span_exporter: InMemorySpanExporter) -> Callable[[], list[ReadableSpan]]:
    """
    Helper fixture to retrieve finished spans from the exporter.

    Example:
        >>> def test_spans(get_spans):
        ...     # ... operations that create spans ...
        ...     assert len(get_spans()) == 1
    """

    def _get_spans() -> list[ReadableSpan]:
        return list(span_exporter.get_finished_spans())

    return _get_spans


@pytest.fixture
def find_span(get_spans: Callable[[], list[ReadableSpan]]) -> Callable[[str], ReadableSpan | None]:
    """Helper fixture to find a finished span by exact name."""

    def _find_span(name: str) -> ReadableSpan | None:
        return next((span for span in get_spans() if span.name == name), None)

    return _find_span


# ============================================================================
# Hub Fixtures
# ============================================================================


@pytest.fixture
def hub(tracer_provider: TracerProvider) -> Generator[OpenTelemetryHub, None, None]:
    """
    Hub bound to the test's tracer provider, installed as the current hub.

    The previous hub is restored after the test.
    """
    hub = OpenTelemetryHub(tracer_provider=tracer_provider)
    previous = set_current_hub(hub)
    yield hub
    set_current_hub(previous)


@pytest.fixture
def checkout_transaction(hub: OpenTelemetryHub) -> Generator[Transaction, None, None]:
    """
    A sampled "checkout" transaction set as the hub's current span.

    The span is cleared and the transaction finished after the test.
    """
    transaction = hub.start_transaction(TransactionContext(name="checkout"))
    hub.set_span(transaction)
    yield transaction
    hub.set_span(None)
    transaction.finish()


@pytest.fixture
def unsampled_transaction(hub: OpenTelemetryHub) -> Generator[Transaction, None, None]:
    """
    A transaction continuing a remote trace that was not sampled, set as the
    hub's current span.
    """
    remote = PropagationContext(
        trace_id=REMOTE_TRACE_ID,
        parent_span_id=REMOTE_SPAN_ID,
        parent_sampled=False,
    )
    transaction = hub.start_transaction(
        TransactionContext(name="checkout", propagation_context=remote)
    )
    hub.set_span(transaction)
    yield transaction
    hub.set_span(None)
    transaction.finish()


# ============================================================================
# Queue Fixtures
# ============================================================================


@pytest.fixture
def dispatcher() -> EventDispatcher:
    """Fresh event dispatcher."""
    return EventDispatcher()


@pytest.fixture
def memory_queue(dispatcher: EventDispatcher) -> InMemoryQueue:
    """In-memory queue dispatching through ``dispatcher``."""
    return InMemoryQueue(dispatcher)


@pytest.fixture
def make_traceparent() -> Callable[..., str]:
    """
    Build W3C traceparent headers.

    Example:
        >>> def test_header(make_traceparent):
        ...     assert make_traceparent(sampled=False).endswith("-00")
    """

    def _make(
        trace_id: str = REMOTE_TRACE_ID,
        span_id: str = REMOTE_SPAN_ID,
        *,
        sampled: bool = True,
    ) -> str:
        return f"00-{trace_id}-{span_id}-{'01' if sampled else '00'}"

    return _make


@pytest.fixture
def remote_ids() -> dict[str, Any]:
    """Trace and span id used by ``make_traceparent`` by default."""
    return {"trace_id": REMOTE_TRACE_ID, "span_id": REMOTE_SPAN_ID}


@pytest.fixture
def parse_traceparent() -> Callable[[str], tuple[str, str, int]]:
    """
    Split a W3C traceparent header into (trace_id, span_id, flags).

    Compare the sampled bit of ``flags`` rather than the whole header: SDKs
    may set other flag bits (e.g. random trace id).
    """

    def _parse(header: str) -> tuple[str, str, int]:
        version, trace_id, span_id, flags = header.split("-")
        assert version == "00"
        return trace_id, span_id, int(flags, 16)

    return _parse
