"""
Job protocol and helpers for reading job metadata.

Jobs come from the host queue system and are only read, never modified.
Every helper in this module is total: a job that cannot report its name,
queue, attempts or payload degrades to whatever information is available
instead of raising.
"""

from __future__ import annotations

import functools
import logging
import types
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from queuetrace.observability.attributes import (
    JOB_DATA_ATTEMPTS,
    JOB_DATA_CONNECTION,
    JOB_DATA_JOB,
    JOB_DATA_QUEUE,
    JOB_DATA_RESOLVED,
)

logger = logging.getLogger(__name__)

PAYLOAD_BAGGAGE_FIELD = "sentry_baggage_data"
"""Payload field holding the serialized baggage header."""

PAYLOAD_TRACEPARENT_FIELD = "sentry_trace_parent_data"
"""Payload field holding the serialized traceparent header."""

UNKNOWN_JOB_NAME = "<unknown>"

T = TypeVar("T")


@runtime_checkable
class Job(Protocol):
    """
    Protocol for a job received from the host queue.

    Example:
        >>> class MyJob:
        ...     def get_name(self) -> str:
        ...         return "app.jobs.SendReceipt"
        ...
        ...     def get_queue(self) -> str | None:
        ...         return "emails"
        ...
        ...     def attempts(self) -> int:
        ...         return 1
        ...
        ...     def payload(self) -> Mapping[str, Any]:
        ...         return {}
    """

    def get_name(self) -> str:
        """Raw job name as stored in the payload."""
        ...

    def get_queue(self) -> str | None:
        """Name of the queue the job was taken from."""
        ...

    def attempts(self) -> int:
        """Number of times the job has been attempted, this attempt included."""
        ...

    def payload(self) -> Mapping[str, Any]:
        """The decoded job payload."""
        ...


@runtime_checkable
class ResolvableJob(Job, Protocol):
    """A job that can resolve a display name different from its raw name."""

    def resolve_name(self) -> str:
        """Resolved (display) name of the job."""
        ...


def _safely(getter: Callable[[], T], default: T, what: str) -> T:
    try:
        return getter()
    except Exception as e:
        logger.debug(f"Could not read job {what}: {e}", extra={"error": str(e)})
        return default


def supports_name_resolution(job: Any) -> bool:
    """True if the job offers a ``resolve_name()`` method."""
    return callable(getattr(job, "resolve_name", None))


def resolve_job_name(job: Any) -> str:
    """
    Resolve the display name of a job.

    Falls back to the raw job name when the job cannot resolve names or
    resolution fails. Never raises.
    """
    if supports_name_resolution(job):
        resolved = _safely(lambda: job.resolve_name(), None, "resolved name")
        if resolved:
            return str(resolved)
    return _safely(lambda: str(job.get_name()), UNKNOWN_JOB_NAME, "name")


def queued_job_name(job: Any) -> str:
    """
    Name a job handed to the queue for pushing.

    Strings are used as-is, functions and lambdas are reported as
    ``"Closure"``, classes and instances by their qualified class name.
    """
    if isinstance(job, str):
        return job
    if isinstance(job, types.FunctionType | types.MethodType | functools.partial):
        return "Closure"
    cls = job if isinstance(job, type) else type(job)
    return f"{cls.__module__}.{cls.__qualname__}"


@dataclass(frozen=True)
class JobInfo:
    """
    Primitive job metadata extracted once per lifecycle event.

    Attributes:
        name: Raw job name
        queue: Queue name
        attempts: Attempt count
        connection: Connection the job was received on
        resolved: Resolved job name, falling back to ``name``
        resolvable: Whether the job supports name resolution
    """

    name: str
    queue: str | None
    attempts: int | None
    connection: str | None
    resolved: str
    resolvable: bool

    def breadcrumb_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            JOB_DATA_JOB: self.name,
            JOB_DATA_QUEUE: self.queue,
            JOB_DATA_ATTEMPTS: self.attempts,
            JOB_DATA_CONNECTION: self.connection,
        }
        if self.resolvable:
            data[JOB_DATA_RESOLVED] = self.resolved
        return data

    def span_data(self) -> dict[str, Any]:
        return {
            JOB_DATA_JOB: self.name,
            JOB_DATA_QUEUE: self.queue,
            JOB_DATA_RESOLVED: self.resolved,
            JOB_DATA_ATTEMPTS: self.attempts,
            JOB_DATA_CONNECTION: self.connection,
        }


def describe_job(job: Any, connection_name: str | None) -> JobInfo:
    """Extract ``JobInfo`` from a job. Never raises."""
    return JobInfo(
        name=_safely(lambda: str(job.get_name()), UNKNOWN_JOB_NAME, "name"),
        queue=_safely(lambda: job.get_queue(), None, "queue"),
        attempts=_safely(lambda: int(job.attempts()), None, "attempts"),
        connection=connection_name,
        resolved=resolve_job_name(job),
        resolvable=supports_name_resolution(job),
    )


def read_trace_fields(job: Any) -> tuple[str | None, str | None]:
    """
    Read the trace continuation fields from a job payload.

    Returns:
        Tuple of (baggage, traceparent); a field that is missing or not a
        string is returned as None.
    """
    payload = _safely(lambda: job.payload(), None, "payload")
    if not isinstance(payload, Mapping):
        return None, None

    baggage = payload.get(PAYLOAD_BAGGAGE_FIELD)
    traceparent = payload.get(PAYLOAD_TRACEPARENT_FIELD)
    return (
        baggage if isinstance(baggage, str) else None,
        traceparent if isinstance(traceparent, str) else None,
    )


def write_trace_fields(
    payload: MutableMapping[str, Any],
    baggage: str,
    traceparent: str,
) -> None:
    """Store the trace continuation fields in a payload being built."""
    payload[PAYLOAD_BAGGAGE_FIELD] = baggage
    payload[PAYLOAD_TRACEPARENT_FIELD] = traceparent


__all__ = [
    "PAYLOAD_BAGGAGE_FIELD",
    "PAYLOAD_TRACEPARENT_FIELD",
    "UNKNOWN_JOB_NAME",
    "Job",
    "JobInfo",
    "ResolvableJob",
    "describe_job",
    "queued_job_name",
    "read_trace_fields",
    "resolve_job_name",
    "supports_name_resolution",
    "write_trace_fields",
]
