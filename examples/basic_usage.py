"""
Basic Usage Example

This example demonstrates tracing a job from the request that enqueues it to
the worker that runs it:
- Configuring OpenTelemetry to print finished spans
- Booting the queue integration on an in-memory queue
- Pushing jobs below an active span
- Running them with an asyncio worker

Requires the OpenTelemetry SDK (``pip install queuetrace[test]``).

Run with: python examples/basic_usage.py
"""

import asyncio
import logging

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

from queuetrace import (
    EventDispatcher,
    InMemoryQueue,
    QueueIntegration,
    QueueTracingConfig,
    Worker,
)

# =============================================================================
# Step 1: Configure OpenTelemetry
# =============================================================================
# queuetrace exports through the global tracer provider.

provider = TracerProvider()
provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
trace.set_tracer_provider(provider)


# =============================================================================
# Step 2: Define Jobs
# =============================================================================
# Jobs are objects with a handle() method, plain callables, or names mapped
# to handlers on the worker.


class SendReceipt:
    """Email a receipt for an order."""

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id

    async def handle(self) -> None:
        await asyncio.sleep(0.01)
        print(f"  Sent receipt for order {self.order_id}")


async def rebuild_search_index(data: dict) -> None:
    await asyncio.sleep(0.01)
    print(f"  Rebuilt search index for {data['product']}")


# =============================================================================
# Step 3: Wire up the queue
# =============================================================================


async def main():
    logging.basicConfig(level=logging.INFO)

    dispatcher = EventDispatcher()
    queue = InMemoryQueue(dispatcher)

    integration = QueueIntegration(
        queue,
        QueueTracingConfig(tracing={"queue_jobs": True, "queue_job_transactions": True}),
    )
    integration.boot(dispatcher)

    # Enqueue inside a request span: publish spans and trace fields are added
    print("Handling checkout request...")
    tracer = trace.get_tracer("example.web")
    with tracer.start_as_current_span("POST /checkout"):
        queue.push(SendReceipt(order_id=42), queue="emails")
        queue.push("rebuild-search-index", {"product": "teapot"}, queue="search")

    # Each job continues the request's trace as a transaction
    print("Running workers...")
    workers = [
        Worker(queue, handlers={"rebuild-search-index": rebuild_search_index}),
        Worker(queue, handlers={"rebuild-search-index": rebuild_search_index}),
    ]
    await asyncio.gather(
        workers[0].run("emails", stop_when_empty=True),
        workers[1].run("search", stop_when_empty=True),
    )

    provider.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
