"""
Observability constants for queuetrace.

This module provides the standard span operations, attribute names and
breadcrumb categories used across all queuetrace components.

Example:
    >>> from queuetrace.observability import OP_QUEUE_PUBLISH, ATTR_MESSAGING_SYSTEM
"""

from queuetrace.observability.attributes import (
    ATTR_MESSAGING_DESTINATION_CONNECTION,
    ATTR_MESSAGING_DESTINATION_NAME,
    # Messaging (OTEL semantic)
    ATTR_MESSAGING_SYSTEM,
    # queuetrace
    ATTR_SPAN_OP,
    ATTR_TRANSACTION_SOURCE,
    # Breadcrumbs
    BREADCRUMB_CATEGORY_QUEUE_JOB,
    JOB_DATA_ATTEMPTS,
    JOB_DATA_CONNECTION,
    # Job data
    JOB_DATA_JOB,
    JOB_DATA_QUEUE,
    JOB_DATA_RESOLVED,
    # Operations
    OP_QUEUE_PROCESS,
    OP_QUEUE_PUBLISH,
    messaging_job_attribute,
)

__all__ = [
    # Operations
    "OP_QUEUE_PUBLISH",
    "OP_QUEUE_PROCESS",
    # Attributes - queuetrace
    "ATTR_SPAN_OP",
    "ATTR_TRANSACTION_SOURCE",
    # Attributes - Messaging
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION_NAME",
    "ATTR_MESSAGING_DESTINATION_CONNECTION",
    "messaging_job_attribute",
    # Job data
    "JOB_DATA_JOB",
    "JOB_DATA_QUEUE",
    "JOB_DATA_RESOLVED",
    "JOB_DATA_ATTEMPTS",
    "JOB_DATA_CONNECTION",
    # Breadcrumbs
    "BREADCRUMB_CATEGORY_QUEUE_JOB",
]
