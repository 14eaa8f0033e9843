"""
Standard span attributes and operation names for queuetrace.

This module defines attribute constants used across all queuetrace components
for consistent span naming. These follow OpenTelemetry semantic conventions
where applicable.

Example:
    >>> from queuetrace.observability.attributes import (
    ...     ATTR_MESSAGING_DESTINATION_NAME,
    ...     ATTR_MESSAGING_SYSTEM,
    ... )
    >>>
    >>> data = {
    ...     ATTR_MESSAGING_SYSTEM: "python",
    ...     ATTR_MESSAGING_DESTINATION_NAME: "emails",
    ... }
"""

# =============================================================================
# Span Operations
# =============================================================================

OP_QUEUE_PUBLISH = "queue.publish"
"""Operation of the span covering the enqueueing of a job."""

OP_QUEUE_PROCESS = "queue.process"
"""Operation of the span or transaction covering the execution of a job."""

# =============================================================================
# queuetrace Span Attributes
# =============================================================================

ATTR_SPAN_OP = "queuetrace.op"
"""Operation name of the span (e.g., 'queue.publish')."""

ATTR_TRANSACTION_SOURCE = "queuetrace.transaction.source"
"""How the transaction name was derived (e.g., 'task')."""

# =============================================================================
# Messaging Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_MESSAGING_SYSTEM = "messaging.system"
"""Messaging system identifier (e.g., 'python', 'celery')."""

ATTR_MESSAGING_DESTINATION_NAME = "messaging.destination.name"
"""Destination queue name."""

ATTR_MESSAGING_DESTINATION_CONNECTION = "messaging.destination.connection"
"""Name of the queue connection the job is pushed through."""


def messaging_job_attribute(messaging_system: str) -> str:
    """
    Attribute holding the job name on a publish span.

    Args:
        messaging_system: Messaging system identifier

    Returns:
        Attribute key, e.g. 'messaging.python.job'
    """
    return f"messaging.{messaging_system}.job"


# =============================================================================
# Job Data Keys
# =============================================================================

JOB_DATA_JOB = "job"
"""Raw job name as stored in the payload."""

JOB_DATA_QUEUE = "queue"
"""Queue the job was taken from."""

JOB_DATA_RESOLVED = "resolved"
"""Resolved (display) name of the job."""

JOB_DATA_ATTEMPTS = "attempts"
"""Number of times the job has been attempted (integer)."""

JOB_DATA_CONNECTION = "connection"
"""Connection the job was received on."""

# =============================================================================
# Breadcrumbs
# =============================================================================

BREADCRUMB_CATEGORY_QUEUE_JOB = "queue.job"
"""Category of the breadcrumb recorded when a job starts processing."""
