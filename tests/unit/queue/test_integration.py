"""
Tests for QueueIntegration.

Jobs are pushed onto an InMemoryQueue and run by a Worker, so every test
exercises the real lifecycle events end to end. Spans are inspected through
the in-memory exporter.

Tests cover:
- Booting and feature gating
- The publish span and the trace fields written into the payload
- Job spans and transactions, including the sampling veto
- Failure handling and the scope left behind after an exception
- Breadcrumb isolation between jobs
- Concurrent workers in one event loop and isolated enqueueing contexts
- Tracing failures never failing a job
"""

from __future__ import annotations

import asyncio
import contextvars
from typing import Any
from unittest.mock import patch

import pytest
from opentelemetry import trace
from opentelemetry.trace import SpanKind, StatusCode

from queuetrace.config import QueueTracingConfig
from queuetrace.observability.attributes import (
    ATTR_MESSAGING_DESTINATION_CONNECTION,
    ATTR_MESSAGING_DESTINATION_NAME,
    ATTR_MESSAGING_SYSTEM,
    ATTR_SPAN_OP,
    ATTR_TRANSACTION_SOURCE,
    BREADCRUMB_CATEGORY_QUEUE_JOB,
    OP_QUEUE_PROCESS,
    OP_QUEUE_PUBLISH,
)
from queuetrace.queue.events import (
    JobExceptionOccurred,
    JobProcessed,
    JobQueueing,
    WorkerStopping,
)
from queuetrace.queue.integration import QueueIntegration
from queuetrace.queue.jobs import PAYLOAD_BAGGAGE_FIELD, PAYLOAD_TRACEPARENT_FIELD
from queuetrace.queue.memory import Worker
from queuetrace.tracing.scope import Breadcrumb
from queuetrace.tracing.span import SpanStatus

TRANSACTIONS = QueueTracingConfig(tracing={"queue_jobs": True, "queue_job_transactions": True})


def trace_fields(traceparent: str, baggage: str = "") -> dict[str, str]:
    return {PAYLOAD_TRACEPARENT_FIELD: traceparent, PAYLOAD_BAGGAGE_FIELD: baggage}


@pytest.fixture
def boot(hub, dispatcher, memory_queue):
    """Boot a QueueIntegration with the given config on the test queue."""

    def _boot(config: QueueTracingConfig | None = None) -> QueueIntegration:
        integration = QueueIntegration(memory_queue, config, hub=hub)
        assert integration.boot(dispatcher) is True
        return integration

    return _boot


def push_with_payload(memory_queue, job: Any, fields: dict[str, str], queue: str = "emails") -> None:
    """
    Push a job whose payload carries the given trace fields.

    The hook stays registered, so later pushes carry the same fields.
    """

    def add_fields(connection, queue_name, payload):
        payload.update(fields)
        return payload

    memory_queue.create_payload_using(add_fields)
    memory_queue.push(job, queue=queue)


# =============================================================================
# Booting
# =============================================================================


class TestBoot:
    """Tests for applicability and listener registration."""

    def test_not_applicable_without_queue(self, hub) -> None:
        assert QueueIntegration(None, hub=hub).is_applicable() is False

    def test_not_applicable_with_everything_disabled(self, hub, memory_queue, dispatcher) -> None:
        config = QueueTracingConfig(
            breadcrumbs={"queue_info": False},
            tracing={"queue_jobs": False, "queue_job_transactions": False},
        )
        integration = QueueIntegration(memory_queue, config, hub=hub)

        assert integration.boot(dispatcher) is False
        assert dispatcher.get_listener_count() == 0

    def test_registers_all_six_listeners(self, boot, dispatcher) -> None:
        boot()

        assert dispatcher.get_listener_count() == 6

    def test_boots_once(self, boot, dispatcher) -> None:
        integration = boot()

        assert integration.boot(dispatcher) is False
        assert dispatcher.get_listener_count() == 6

    def test_breadcrumbs_only_registers_no_payload_hook(
        self, boot, memory_queue, checkout_transaction
    ) -> None:
        """Without tracing features payloads are left alone."""
        boot(QueueTracingConfig(tracing={"queue_jobs": False, "queue_job_transactions": False}))

        memory_queue.push("SendReceipt", queue="emails")

        assert PAYLOAD_TRACEPARENT_FIELD not in memory_queue.pop("emails").payload()

    def test_uses_current_hub_by_default(self, hub, memory_queue) -> None:
        assert QueueIntegration(memory_queue).hub is hub


# =============================================================================
# Enqueue
# =============================================================================


class TestEnqueue:
    """Tests for the publish span."""

    def test_publish_span_lifecycle(
        self, boot, hub, dispatcher, memory_queue, checkout_transaction, get_spans
    ) -> None:
        """
        Pushing below a sampled span opens a publish span described by the
        queue, renamed after the job on JobQueueing and finished on JobQueued.
        """
        integration = boot()
        descriptions: list[str | None] = []

        def after_integration_hook(connection, queue, payload):
            descriptions.append(hub.get_span().description)
            return payload

        memory_queue.create_payload_using(after_integration_hook)
        dispatcher.listen(JobQueueing, lambda event: descriptions.append(hub.get_span().description))

        memory_queue.push("SendReceipt", queue="emails")

        assert descriptions == ["emails", "SendReceipt"]

        (publish,) = get_spans()
        assert publish.name == "SendReceipt"
        assert publish.kind == SpanKind.PRODUCER
        assert publish.attributes[ATTR_SPAN_OP] == OP_QUEUE_PUBLISH
        assert publish.attributes[ATTR_MESSAGING_SYSTEM] == "python"
        assert publish.attributes[ATTR_MESSAGING_DESTINATION_NAME] == "emails"
        assert publish.attributes[ATTR_MESSAGING_DESTINATION_CONNECTION] == "memory"
        assert publish.attributes["messaging.python.job"] == "SendReceipt"
        assert publish.parent.span_id == checkout_transaction.otel_span.get_span_context().span_id

        assert hub.get_span() is checkout_transaction
        assert integration.stack.span_depth == 0

    def test_payload_carries_publish_span(
        self, boot, memory_queue, checkout_transaction, get_spans, parse_traceparent
    ) -> None:
        boot()

        memory_queue.push("SendReceipt", queue="emails")

        payload = memory_queue.pop("emails").payload()
        publish_span_id = trace.format_span_id(get_spans()[0].context.span_id)
        trace_id, span_id, flags = parse_traceparent(payload[PAYLOAD_TRACEPARENT_FIELD])
        assert trace_id == checkout_transaction.trace_id
        assert span_id == publish_span_id
        assert flags & 0x01
        assert "queuetrace-sampled=true" in payload[PAYLOAD_BAGGAGE_FIELD]

    def test_object_jobs_named_by_class(self, boot, memory_queue, checkout_transaction, get_spans) -> None:
        class SendReceipt:
            def handle(self) -> None:
                pass

        boot()
        memory_queue.push(SendReceipt(), queue="emails")

        assert get_spans()[0].name.endswith("SendReceipt")

    def test_messaging_system_from_config(self, boot, memory_queue, checkout_transaction, get_spans) -> None:
        boot(QueueTracingConfig(messaging_system="celery"))

        memory_queue.push("SendReceipt", queue="emails")

        attributes = get_spans()[0].attributes
        assert attributes[ATTR_MESSAGING_SYSTEM] == "celery"
        assert attributes["messaging.celery.job"] == "SendReceipt"

    def test_unsampled_parent_creates_nothing(
        self, boot, memory_queue, unsampled_transaction, get_spans
    ) -> None:
        """No publish span and no trace fields below an unsampled span."""
        integration = boot()

        memory_queue.push("SendReceipt", queue="emails")

        payload = memory_queue.pop("emails").payload()
        assert PAYLOAD_TRACEPARENT_FIELD not in payload
        assert PAYLOAD_BAGGAGE_FIELD not in payload
        assert get_spans() == []
        assert integration.stack.span_depth == 0

    def test_no_active_span_creates_nothing(self, boot, hub, memory_queue, get_spans) -> None:
        boot(TRANSACTIONS)

        memory_queue.push("SendReceipt", queue="emails")

        assert PAYLOAD_TRACEPARENT_FIELD not in memory_queue.pop("emails").payload()
        assert get_spans() == []
        assert hub.get_span() is None

    def test_ambient_otel_span_is_parent(self, boot, hub, memory_queue, tracer_provider, get_spans) -> None:
        """A job pushed inside an instrumented request joins the request's trace."""
        boot()
        tracer = tracer_provider.get_tracer("web")

        with tracer.start_as_current_span("POST /checkout") as request:
            memory_queue.push("SendReceipt", queue="emails")

        publish = next(span for span in get_spans() if span.name == "SendReceipt")
        assert publish.parent.span_id == request.get_span_context().span_id
        assert publish.context.trace_id == request.get_span_context().trace_id
        assert hub.get_scope().span is None

    def test_publish_span_stays_in_its_context(self, boot, hub, tracer_provider) -> None:
        """A publish span opened in one context is never seen by another."""
        integration = boot()
        tracer = tracer_provider.get_tracer("web")
        assert hub.get_span() is None

        def enqueue() -> Any:
            with tracer.start_as_current_span("request-a"):
                integration.create_payload("memory", "emails", {})
                return hub.get_span()

        publish = contextvars.copy_context().run(enqueue)

        assert publish.op == OP_QUEUE_PUBLISH
        assert contextvars.copy_context().run(hub.get_span) is None
        assert hub.get_span() is None
        assert integration.stack.span_depth == 0
        publish.finish()

    def test_failing_trace_encoding_does_not_fail_push(
        self, boot, memory_queue, checkout_transaction, caplog
    ) -> None:
        integration = boot()

        with patch(
            "queuetrace.queue.integration.encode_trace_context",
            side_effect=RuntimeError("encoder broke"),
        ):
            memory_queue.push("SendReceipt", queue="emails")

        assert memory_queue.size("emails") == 1
        assert "encoder broke" in caplog.text
        assert integration.stack.span_depth == 0


# =============================================================================
# Dequeue
# =============================================================================


class TestDequeueTransaction:
    """Jobs run without an active span."""

    @pytest.mark.asyncio
    async def test_transaction_continues_sampled_trace(
        self, boot, memory_queue, make_traceparent, remote_ids, get_spans
    ) -> None:
        integration = boot(TRANSACTIONS)
        push_with_payload(memory_queue, "SendReceipt", trace_fields(make_traceparent()))

        await Worker(memory_queue, handlers={"SendReceipt": lambda data: None}).process(
            memory_queue.pop("emails")
        )

        (transaction,) = get_spans()
        assert transaction.name == "SendReceipt"
        assert transaction.kind == SpanKind.CONSUMER
        assert transaction.attributes[ATTR_SPAN_OP] == OP_QUEUE_PROCESS
        assert transaction.attributes[ATTR_TRANSACTION_SOURCE] == "task"
        assert transaction.attributes["queue"] == "emails"
        assert transaction.attributes["resolved"] == "SendReceipt"
        assert transaction.attributes["attempts"] == 1
        assert transaction.attributes["connection"] == "memory"
        assert transaction.status.status_code == StatusCode.OK
        assert trace.format_trace_id(transaction.context.trace_id) == remote_ids["trace_id"]
        assert trace.format_span_id(transaction.parent.span_id) == remote_ids["span_id"]

        assert integration.stack.span_depth == 0
        assert integration.stack.scope_depth == 0

    @pytest.mark.asyncio
    async def test_transaction_without_trace_fields(self, boot, memory_queue, get_spans) -> None:
        """A job without trace fields roots a new trace."""
        boot(TRANSACTIONS)
        memory_queue.push("SendReceipt", queue="emails")

        await Worker(memory_queue, handlers={"SendReceipt": lambda data: None}).process(
            memory_queue.pop("emails")
        )

        (transaction,) = get_spans()
        assert transaction.parent is None

    @pytest.mark.asyncio
    async def test_transactions_disabled(self, boot, memory_queue, make_traceparent, get_spans) -> None:
        integration = boot()
        push_with_payload(memory_queue, "SendReceipt", trace_fields(make_traceparent()))

        await Worker(memory_queue, handlers={"SendReceipt": lambda data: None}).process(
            memory_queue.pop("emails")
        )

        assert get_spans() == []
        assert integration.stack.scope_depth == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tracing",
        [
            {"queue_jobs": True, "queue_job_transactions": True},
            {"queue_jobs": False, "queue_job_transactions": True},
        ],
    )
    async def test_unsampled_parent_vetoes_job(
        self, boot, memory_queue, make_traceparent, get_spans, tracing
    ) -> None:
        """An unsampled remote parent suppresses the job's transaction."""
        integration = boot(QueueTracingConfig(tracing=tracing))
        push_with_payload(memory_queue, "SendReceipt", trace_fields(make_traceparent(sampled=False)))
        worker = Worker(memory_queue, handlers={"SendReceipt": lambda data: None})

        await worker.process(memory_queue.pop("emails"))

        assert get_spans() == []
        assert integration.stack.span_depth == 0
        assert integration.stack.scope_depth == 0

    @pytest.mark.asyncio
    async def test_vetoed_job_that_raises_finishes_nothing(
        self, boot, memory_queue, make_traceparent, get_spans
    ) -> None:
        integration = boot(TRANSACTIONS)

        def explode(data: dict[str, Any]) -> None:
            raise RuntimeError("job failed")

        push_with_payload(memory_queue, "Explode", trace_fields(make_traceparent(sampled=False)))

        with pytest.raises(RuntimeError):
            await Worker(memory_queue, handlers={"Explode": explode}).process(memory_queue.pop("emails"))

        assert get_spans() == []
        assert integration.stack.span_depth == 0


class TestDequeueChildSpan:
    """Jobs run while a span is active."""

    @pytest.mark.asyncio
    async def test_job_is_child_of_active_span(
        self, boot, memory_queue, checkout_transaction, make_traceparent, get_spans
    ) -> None:
        """The active span wins over the trace found in the payload."""
        boot()
        push_with_payload(memory_queue, "SendReceipt", trace_fields(make_traceparent()))

        await Worker(memory_queue, handlers={"SendReceipt": lambda data: None}).process(
            memory_queue.pop("emails")
        )

        # Pushing below the checkout span also recorded a publish span
        (job_span,) = [s for s in get_spans() if s.attributes[ATTR_SPAN_OP] == OP_QUEUE_PROCESS]
        assert job_span.name == OP_QUEUE_PROCESS
        assert job_span.kind == SpanKind.CONSUMER
        assert job_span.parent.span_id == checkout_transaction.otel_span.get_span_context().span_id
        assert job_span.status.status_code == StatusCode.OK
        assert ATTR_TRANSACTION_SOURCE not in job_span.attributes

    @pytest.mark.asyncio
    async def test_jobs_disabled_with_active_span(self, boot, memory_queue, checkout_transaction, get_spans) -> None:
        boot(QueueTracingConfig(tracing={"queue_jobs": False, "queue_job_transactions": True}))
        memory_queue.push("SendReceipt", queue="emails")

        await Worker(memory_queue, handlers={"SendReceipt": lambda data: None}).process(
            memory_queue.pop("emails")
        )

        assert [s for s in get_spans() if s.attributes[ATTR_SPAN_OP] == OP_QUEUE_PROCESS] == []

    @pytest.mark.asyncio
    async def test_active_span_restored_after_job(self, boot, hub, memory_queue, checkout_transaction) -> None:
        boot()
        memory_queue.push("SendReceipt", queue="emails")
        seen: list[Any] = []

        def handler(data: dict[str, Any]) -> None:
            seen.append(hub.get_span())

        await Worker(memory_queue, handlers={"SendReceipt": handler}).process(memory_queue.pop("emails"))

        assert seen[0] is not checkout_transaction
        assert seen[0].op == OP_QUEUE_PROCESS
        assert hub.get_span() is checkout_transaction

    @pytest.mark.asyncio
    async def test_unsampled_job_pushing_a_job_keeps_its_span(
        self, boot, hub, memory_queue, unsampled_transaction
    ) -> None:
        """Queueing without a publish span leaves the running job's span alone."""
        integration = boot()
        memory_queue.push("SendReceipt", queue="emails")
        seen: list[Any] = []

        def handler(data: dict[str, Any]) -> None:
            job_span = hub.get_span()
            memory_queue.push("FollowUp", queue="other")
            seen.append((job_span, hub.get_span(), job_span.is_finished))

        await Worker(memory_queue, handlers={"SendReceipt": handler}).process(memory_queue.pop("emails"))

        ((job_span, current, finished_during_job),) = seen
        assert job_span.op == OP_QUEUE_PROCESS
        assert job_span.sampled is False
        assert current is job_span
        assert finished_during_job is False
        assert job_span.is_finished
        assert job_span.status is SpanStatus.OK
        assert hub.get_span() is unsampled_transaction
        assert integration.stack.span_depth == 0

    @pytest.mark.asyncio
    async def test_sampled_job_pushing_a_job_records_publish_span(
        self, boot, memory_queue, checkout_transaction, get_spans
    ) -> None:
        boot()
        memory_queue.push("SendReceipt", queue="emails")

        def handler(data: dict[str, Any]) -> None:
            memory_queue.push("FollowUp", queue="other")

        await Worker(memory_queue, handlers={"SendReceipt": handler}).process(memory_queue.pop("emails"))

        (job_span,) = [s for s in get_spans() if s.attributes[ATTR_SPAN_OP] == OP_QUEUE_PROCESS]
        (follow_up,) = [s for s in get_spans() if s.name == "FollowUp"]
        assert follow_up.parent.span_id == job_span.context.span_id
        assert job_span.status.status_code == StatusCode.OK


# =============================================================================
# Failures
# =============================================================================


class TestJobException:
    """Tests for JobExceptionOccurred handling."""

    @pytest.mark.asyncio
    async def test_failed_job_span(self, boot, hub, memory_queue, make_traceparent, get_spans) -> None:
        """
        The span is finished with internal_error and flushed; the scope stays
        pushed until the next job starts.
        """
        integration = boot(TRANSACTIONS)

        def explode(data: dict[str, Any]) -> None:
            raise RuntimeError("job failed")

        push_with_payload(memory_queue, "Explode", trace_fields(make_traceparent()))
        worker = Worker(memory_queue, handlers={"Explode": explode, "SendReceipt": lambda data: None})

        with patch.object(hub, "flush", wraps=hub.flush) as flush:
            with pytest.raises(RuntimeError, match="job failed"):
                await worker.process(memory_queue.pop("emails"))

            assert flush.called

        (failed,) = get_spans()
        assert failed.name == "Explode"
        assert failed.status.status_code == StatusCode.ERROR
        assert failed.status.description == SpanStatus.INTERNAL_ERROR.value
        assert failed.events[0].name == "exception"
        assert integration.stack.span_depth == 0
        assert integration.stack.scope_depth == 1
        assert hub.scope_depth == 2

        # The next job pops the scope left behind before pushing its own
        memory_queue.push("SendReceipt", queue="emails")
        await worker.process(memory_queue.pop("emails"))

        assert integration.stack.scope_depth == 0
        assert hub.scope_depth == 1
        assert len(get_spans()) == 2

    @pytest.mark.asyncio
    async def test_cancelled_job_span_is_finished(self, boot, memory_queue, get_spans) -> None:
        """A worker cancelled mid-job still exports the job's span."""
        boot(TRANSACTIONS)
        started = asyncio.Event()

        async def wait_forever(data: dict[str, Any]) -> None:
            started.set()
            await asyncio.Event().wait()

        memory_queue.push("SendReceipt")
        task = asyncio.create_task(
            Worker(memory_queue, handlers={"SendReceipt": wait_forever}).process(memory_queue.pop())
        )
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        (transaction,) = get_spans()
        assert transaction.status.status_code == StatusCode.ERROR
        assert transaction.events[0].attributes["exception.type"] == "CancelledError"

    @pytest.mark.asyncio
    async def test_job_exception_propagates_unchanged(self, boot, memory_queue, checkout_transaction) -> None:
        boot()
        error = KeyError("missing")

        def explode(data: dict[str, Any]) -> None:
            raise error

        memory_queue.push("Explode")
        with pytest.raises(KeyError) as exc_info:
            await Worker(memory_queue, handlers={"Explode": explode}).process(memory_queue.pop())

        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_worker_stopping_flushes(self, boot, hub, memory_queue) -> None:
        boot()

        with patch.object(hub, "flush", wraps=hub.flush) as flush:
            await Worker(memory_queue).run(stop_when_empty=True)

        flush.assert_called_once()


# =============================================================================
# Breadcrumbs and scopes
# =============================================================================


class TestBreadcrumbs:
    """Tests for the queue_info breadcrumb and scope isolation."""

    @pytest.mark.asyncio
    async def test_breadcrumb_recorded_for_job(self, boot, hub, memory_queue) -> None:
        boot()
        memory_queue.push("SendReceipt", queue="emails")
        seen: list[Any] = []

        def handler(data: dict[str, Any]) -> None:
            seen.extend(hub.get_scope().breadcrumbs)

        await Worker(memory_queue, handlers={"SendReceipt": handler}).process(memory_queue.pop("emails"))

        (breadcrumb,) = seen
        assert breadcrumb.category == BREADCRUMB_CATEGORY_QUEUE_JOB
        assert breadcrumb.message == "Processing queue job"
        assert breadcrumb.data == {
            "job": "SendReceipt",
            "queue": "emails",
            "attempts": 1,
            "connection": "memory",
            "resolved": "SendReceipt",
        }
        assert hub.get_scope().breadcrumbs == []

    @pytest.mark.asyncio
    async def test_breadcrumbs_do_not_leak_between_jobs(self, boot, hub, memory_queue) -> None:
        """Every job sees only its own breadcrumb."""
        boot()
        seen: list[list[str]] = []

        def handler(data: dict[str, Any]) -> None:
            seen.append([crumb.data["queue"] for crumb in hub.get_scope().breadcrumbs])

        for queue in ("first", "second", "third"):
            memory_queue.push("Job", queue=queue)

        worker = Worker(memory_queue, handlers={"Job": handler})
        for queue in ("first", "second", "third"):
            await worker.run_next(queue)

        assert seen == [["first"], ["second"], ["third"]]
        assert hub.scope_depth == 1

    @pytest.mark.asyncio
    async def test_breadcrumbs_disabled(self, boot, hub, memory_queue) -> None:
        boot(QueueTracingConfig(breadcrumbs={"queue_info": False}))
        memory_queue.push("SendReceipt")
        seen: list[Any] = []

        def handler(data: dict[str, Any]) -> None:
            seen.extend(hub.get_scope().breadcrumbs)

        await Worker(memory_queue, handlers={"SendReceipt": handler}).process(memory_queue.pop())

        assert seen == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("max_breadcrumbs", "expected"), [(0, []), (1, ["from job"])])
    async def test_max_breadcrumbs_limits_job_scope(
        self, boot, hub, memory_queue, max_breadcrumbs, expected
    ) -> None:
        boot(QueueTracingConfig(max_breadcrumbs=max_breadcrumbs))
        memory_queue.push("SendReceipt")
        seen: list[str | None] = []

        def handler(data: dict[str, Any]) -> None:
            hub.add_breadcrumb(Breadcrumb(category="job", message="from job"))
            seen.extend(crumb.message for crumb in hub.get_scope().breadcrumbs)

        await Worker(memory_queue, handlers={"SendReceipt": handler}).process(memory_queue.pop())

        assert seen == expected

    @pytest.mark.asyncio
    async def test_push_and_pop_balanced_over_many_jobs(self, boot, hub, memory_queue) -> None:
        integration = boot(TRANSACTIONS)
        depths: list[int] = []

        def handler(data: dict[str, Any]) -> None:
            depths.append(hub.scope_depth)

        for _ in range(5):
            memory_queue.push("Job")

        await Worker(memory_queue, handlers={"Job": handler}).run(stop_when_empty=True)

        assert depths == [2] * 5
        assert hub.scope_depth == 1
        assert integration.stack.scope_depth == 0


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentWorkers:
    """Workers running concurrently in one event loop never see each other's spans."""

    @pytest.mark.asyncio
    async def test_each_job_sees_its_own_span(self, boot, hub, memory_queue, get_spans) -> None:
        boot(TRANSACTIONS)
        seen: list[tuple[str, Any]] = []

        async def handler(data: dict[str, Any]) -> None:
            await asyncio.sleep(0.005)
            span = hub.get_span()
            seen.append((data["queue"], span.data["queue"] if span is not None else None))
            await asyncio.sleep(0.005)

        for queue in ("a", "b"):
            for _ in range(3):
                memory_queue.push("Job", {"queue": queue}, queue=queue)

        workers = [Worker(memory_queue, handlers={"Job": handler}) for _ in range(2)]
        await asyncio.gather(
            workers[0].run("a", stop_when_empty=True),
            workers[1].run("b", stop_when_empty=True),
        )

        assert len(seen) == 6
        assert all(expected == actual for expected, actual in seen)
        assert len(get_spans()) == 6
        assert all(span.status.status_code == StatusCode.OK for span in get_spans())
        assert hub.get_span() is None
        assert hub.scope_depth == 1


# =============================================================================
# Robustness
# =============================================================================


class TestTracingFailures:
    """Tracing failures never fail a job."""

    @pytest.mark.asyncio
    async def test_hub_failure_is_logged_not_raised(self, boot, hub, memory_queue, caplog) -> None:
        boot(TRANSACTIONS)
        memory_queue.push("SendReceipt")
        calls = []

        with patch.object(hub, "start_transaction", side_effect=RuntimeError("hub down")):
            await Worker(memory_queue, handlers={"SendReceipt": lambda data: calls.append(data)}).process(
                memory_queue.pop()
            )

        assert calls == [{}]
        assert "hub down" in caplog.text

    @pytest.mark.asyncio
    async def test_terminal_events_without_processing_are_noops(self, hub, dispatcher, memory_queue) -> None:
        integration = QueueIntegration(memory_queue, TRANSACTIONS, hub=hub)
        integration.boot(dispatcher)
        memory_queue.push("SendReceipt")
        job = memory_queue.pop()

        dispatcher.dispatch(JobProcessed(connection_name="memory", job=job))
        dispatcher.dispatch(JobExceptionOccurred(connection_name="memory", job=job, exception=ValueError()))
        dispatcher.dispatch(WorkerStopping())

        assert integration.stack.span_depth == 0
        assert integration.stack.scope_depth == 0
        assert hub.scope_depth == 1
        assert dispatcher.get_stats()["listener_errors"] == 0
