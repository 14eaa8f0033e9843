"""Library exceptions for the queuetrace package."""


class QueueTraceError(Exception):
    """Base exception for queuetrace library."""

    pass


class JobResolutionError(QueueTraceError):
    """Raised when a job cannot resolve its display name."""

    def __init__(self, job_name: str, message: str) -> None:
        self.job_name = job_name
        super().__init__(f"Cannot resolve name of job {job_name}: {message}")


class InvalidJobError(QueueTraceError):
    """Raised when a queued job cannot be run by the worker."""

    def __init__(self, job_id: str, message: str) -> None:
        self.job_id = job_id
        super().__init__(f"Invalid job {job_id}: {message}")


__all__ = [
    "QueueTraceError",
    "JobResolutionError",
    "InvalidJobError",
]
